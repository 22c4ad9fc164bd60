from dataclasses import dataclass

import numpy as np
import pandas as pd
from loguru import logger as log

from .config import (
    FALLBACK_CONVERSION_PROBABILITY,
    HORIZONS,
    MIN_EVENT_TIMES,
    OUTCOME_TIME_COLUMN,
    SCORING_HORIZON,
)
from .errors import InsufficientDataError
from .features import drop_invalid, event_observed
from .hazard import HazardFit, predict_risk


@dataclass(frozen=True, eq=False)
class BaselineCurveTable:
    """Dense per-day baseline curve.

    `table` is indexed by integer day 0..max outcome time and holds the
    cumulative baseline hazard, the single-day increment and the incremental
    conversion probability for each horizon (NaN where day + horizon runs past
    the end of the table).
    """

    table: pd.DataFrame
    horizons: tuple[int, ...]
    fallback: float

    @property
    def max_day(self) -> int:
        return int(self.table.index[-1])


def _breslow_increments(durations: np.ndarray, events: np.ndarray, risk: np.ndarray) -> pd.Series:
    """Breslow jumps d_k / sum(risk over the risk set) at each distinct event time."""
    order = np.argsort(durations, kind="stable")
    durations, events, risk = durations[order], events[order], risk[order]

    # Risk set at t is everyone with duration >= t, i.e. a reverse cumulative sum
    at_risk = np.cumsum(risk[::-1])[::-1]
    deaths = pd.Series(events).groupby(durations).sum()
    deaths = deaths[deaths > 0]
    first_at_time = np.searchsorted(durations, deaths.index.to_numpy(), side="left")

    return pd.Series(deaths.to_numpy() / at_risk[first_at_time], index=deaths.index)


def derive_curve(
    fit: HazardFit,
    training: pd.DataFrame,
    horizons: tuple[int, ...] = HORIZONS,
    fallback: float = FALLBACK_CONVERSION_PROBABILITY,
    min_event_times: int = MIN_EVENT_TIMES,
) -> BaselineCurveTable:
    """Derive the dense baseline conversion curve from a hazard fit.

    Args:
        fit: Fitted hazard model
        training: The records the hazard model was fitted on
        horizons: Conversion windows in days
        fallback: Probability returned for lookups beyond the curve

    Returns:
        Immutable BaselineCurveTable

    Raises:
        InsufficientDataError: Fewer than min_event_times distinct event times
    """
    # fit_hazard has already warned about these rows
    covariates = [name for name, _ in fit.encoding.levels] + list(fit.encoding.numeric)
    df = drop_invalid(training, "training", covariates, level="DEBUG")
    durations = df[OUTCOME_TIME_COLUMN].astype(float).to_numpy()
    events = event_observed(df).to_numpy()

    n_event_times = len(np.unique(durations[events == 1]))
    if n_event_times < min_event_times:
        raise InsufficientDataError(
            f"{n_event_times} distinct event times; at least {min_event_times} needed for a baseline curve"
        )

    risk = predict_risk(fit, df).to_numpy()
    increments = _breslow_increments(durations, events, risk)

    days = np.arange(0, int(durations.max()) + 1)
    # Step function: H(day) is the sum of all jumps at event times <= day
    cumulative = np.concatenate([[0.0], np.cumsum(increments.to_numpy())])
    H = cumulative[np.searchsorted(increments.index.to_numpy(), days, side="right")]

    table = pd.DataFrame({"cumulative_hazard": H}, index=pd.Index(days, name="day"))
    table["hazard"] = table["cumulative_hazard"].diff().fillna(table["cumulative_hazard"])

    survival = np.exp(-H)
    for w in horizons:
        conversion = np.full(len(days), np.nan)
        if len(days) > w:
            conversion[: len(days) - w] = survival[: len(days) - w] - survival[w:]
        table[f"conversion_{w}"] = conversion

    curve = BaselineCurveTable(table=table, horizons=tuple(horizons), fallback=fallback)
    log.info(f"Derived baseline curve over days 0-{curve.max_day} from {n_event_times} event times")
    checkpoints = table.reindex([0, 30, 60, 90]).dropna(how="all")
    log.info(f"Baseline curve checkpoints:\n{checkpoints.round(5)}")
    return curve


def lookup(curve: BaselineCurveTable, t: int, horizon: int = SCORING_HORIZON) -> float:
    """Baseline probability of converting within `horizon` days given survival to day t.

    Days outside the curve, or where t + horizon runs past it, return the
    curve's fallback probability.
    """
    column = f"conversion_{horizon}"
    if column not in curve.table.columns:
        raise ValueError(f"Curve has no {horizon}-day horizon; available: {curve.horizons}")
    if not np.isfinite(t) or t < 0 or t > curve.max_day or t != int(t):
        return curve.fallback
    value = curve.table.at[int(t), column]
    if np.isnan(value):
        return curve.fallback
    return float(value)
