from dataclasses import dataclass

import numpy as np
import pandas as pd
from loguru import logger as log
from sklearn.tree import DecisionTreeRegressor

from .config import (
    BUYER_SEGMENT_THRESHOLDS,
    BUYER_TREE_CP,
    CLIENT_ID_COLUMN,
    CLIENT_TREE_CP,
    CLIENT_TREE_MIN_BUCKET,
    CLIENT_TREE_MIN_SPLIT,
    MIN_CLIENTS,
    N_BUYER_SEGMENTS,
)
from .errors import InsufficientDataError, UnknownLevelError


@dataclass(frozen=True)
class BuyerThresholds:
    """Expected-value bin edges; segment k covers [edges[k-2], edges[k-1])."""

    edges: tuple[float, ...]
    rank_splits: tuple[float, ...] = ()

    def __post_init__(self):
        if not all(np.isfinite(self.edges)):
            raise ValueError(f"Buyer segment thresholds must be finite, got {self.edges}")
        if any(lo >= hi for lo, hi in zip(self.edges, self.edges[1:])):
            raise ValueError(f"Buyer segment thresholds must be strictly increasing, got {self.edges}")


def _leaf_splits(tree: DecisionTreeRegressor) -> list[float]:
    internal = tree.tree_.feature >= 0
    return sorted(float(t) for t in tree.tree_.threshold[internal])


def fit_buyer_thresholds(
    scored: pd.DataFrame,
    n_segments: int = N_BUYER_SEGMENTS,
    complexity: float = BUYER_TREE_CP,
) -> BuyerThresholds:
    """Derive expected-value thresholds from a regression tree of score on expected-value rank.

    Records are ordered by expected_value and dense-ranked. A tree with at most
    n_segments leaves is grown on rank, keeping only splits that reduce total
    squared error by at least `complexity` of the root error (rpart's cp). Each
    rank split becomes the expected_value of the first record to its right.

    This is a retraining step. The scoring path uses pinned thresholds.

    Raises:
        InsufficientDataError: The tree did not yield n_segments - 1 splits
    """
    ordered = scored.sort_values("expected_value", kind="stable")
    rank = ordered["expected_value"].rank(method="dense").to_numpy()
    y = ordered["score"].to_numpy(dtype=float)

    tree = DecisionTreeRegressor(
        max_leaf_nodes=n_segments,
        min_impurity_decrease=complexity * float(np.var(y)),
        random_state=0,
    )
    tree.fit(rank.reshape(-1, 1), y)
    splits = _leaf_splits(tree)
    if len(splits) != n_segments - 1:
        raise InsufficientDataError(
            f"Buyer tree produced {len(splits) + 1} leaves on {len(ordered)} records; {n_segments} required"
        )

    values = ordered["expected_value"].to_numpy(dtype=float)
    edges = tuple(float(values[rank > split][0]) for split in splits)
    thresholds = BuyerThresholds(edges=edges, rank_splits=tuple(splits))
    log.info(f"Buyer tree splits at ranks {splits} -> expected value thresholds {edges}")
    return thresholds


def assign_buyer_segment(
    expected_value: pd.Series,
    thresholds: BuyerThresholds | tuple[float, ...] = BUYER_SEGMENT_THRESHOLDS,
) -> pd.Series:
    """Assign ordinal buyer segments 1..len(edges)+1 using fixed half-open bins."""
    if not isinstance(thresholds, BuyerThresholds):
        thresholds = BuyerThresholds(edges=tuple(thresholds))
    values = expected_value.to_numpy(dtype=float)
    if not np.isfinite(values).all():
        raise ValueError("Buyer segments are only defined for finite expected values")
    segments = np.searchsorted(np.asarray(thresholds.edges), values, side="right") + 1
    return pd.Series(segments, index=expected_value.index, name="buyer_segment")


@dataclass(frozen=True)
class ClientGroups:
    """Leaf-mean score per client from the client regression tree."""

    groups: tuple[tuple[object, float], ...]

    def as_series(self) -> pd.Series:
        return pd.Series(dict(self.groups), name="client_group", dtype=float)


def fit_client_groups(
    scored: pd.DataFrame,
    min_clients: int = MIN_CLIENTS,
    complexity: float = CLIENT_TREE_CP,
    min_split: int = CLIENT_TREE_MIN_SPLIT,
    min_bucket: int = CLIENT_TREE_MIN_BUCKET,
) -> ClientGroups:
    """Group clients with a regression tree of score on client id.

    Client id is an unordered categorical. Ordering clients by mean score and
    splitting on that order finds the best partition of the categories, so
    every leaf is a set of clients and each client gets its leaf's mean score.

    Raises:
        InsufficientDataError: Fewer than min_clients distinct clients
    """
    n_clients = scored[CLIENT_ID_COLUMN].nunique()
    if n_clients < min_clients:
        raise InsufficientDataError(f"{n_clients} distinct clients; at least {min_clients} required")

    client_means = scored.groupby(CLIENT_ID_COLUMN)["score"].mean().sort_values(kind="stable")
    order = pd.Series(np.arange(len(client_means), dtype=float), index=client_means.index)

    x = scored[CLIENT_ID_COLUMN].map(order).to_numpy().reshape(-1, 1)
    y = scored["score"].to_numpy(dtype=float)
    tree = DecisionTreeRegressor(
        min_samples_split=min_split,
        min_samples_leaf=min_bucket,
        min_impurity_decrease=complexity * float(np.var(y)),
        random_state=0,
    )
    tree.fit(x, y)

    leaf_means = tree.predict(order.to_numpy().reshape(-1, 1))
    log.info(f"Client tree grouped {n_clients} clients into {tree.get_n_leaves()} groups")
    return ClientGroups(groups=tuple((client, float(v)) for client, v in zip(order.index, leaf_means)))


def assign_client_group(records: pd.DataFrame, groups: ClientGroups) -> pd.Series:
    """Map each record to its client's group value."""
    lookup = groups.as_series()
    unknown = ~records[CLIENT_ID_COLUMN].isin(lookup.index)
    if unknown.any():
        raise UnknownLevelError(f"Unknown clients: {records.loc[unknown, CLIENT_ID_COLUMN].unique().tolist()}")
    return records[CLIENT_ID_COLUMN].map(lookup).rename("client_group")


def log_segment_stats(segmented: pd.DataFrame) -> None:
    """Log buyer segment sizes and expected value ranges."""
    summary = segmented.groupby("buyer_segment")["expected_value"].agg(["count", "min", "mean", "max"])
    log.info(f"Buyer segments:\n{summary.round(3)}")
    log.info(f"Client groups: {segmented['client_group'].nunique()} distinct values")
