from dataclasses import dataclass

import numpy as np
import pandas as pd
from loguru import logger as log

from .config import (
    CATEGORICAL_COVARIATES,
    CUSTOMER_ID_COLUMN,
    EVENT_FLAG_COLUMN,
    EVENT_OBSERVED_VALUE,
    NUMERIC_COVARIATES,
    OUTCOME_TIME_COLUMN,
)
from .errors import InvalidRecordError, UnknownLevelError


def require_columns(df: pd.DataFrame, cols: list[str], name: str) -> None:
    """Ensure a DataFrame contains required columns.

    Args:
        df: DataFrame to validate.
        cols: Required column names.
        name: Dataset name for error messages.
    """
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise ValueError(f"{name} missing columns: {missing}")


def event_observed(df: pd.DataFrame) -> pd.Series:
    """Return 1 where a second purchase was observed, 0 where the record is right-censored."""
    flag = df[EVENT_FLAG_COLUMN]
    if flag.isna().any():
        raise InvalidRecordError(f"{flag.isna().sum()} records have no '{EVENT_FLAG_COLUMN}' flag")
    return (flag.astype(bool) == bool(EVENT_OBSERVED_VALUE)).astype(np.int32)


@dataclass(frozen=True)
class CovariateEncoding:
    """Treatment coding captured at fit time.

    Each categorical covariate keeps its sorted levels; the first level is the
    reference and has no design column. Numeric covariates pass through.
    """

    levels: tuple[tuple[str, tuple[str, ...]], ...]
    numeric: tuple[str, ...]

    @property
    def columns(self) -> list[str]:
        cols = []
        for name, levels in self.levels:
            cols.extend(f"{name}[{level}]" for level in levels[1:])
        return cols + list(self.numeric)

    @property
    def reference_levels(self) -> dict[str, str]:
        return {name: levels[0] for name, levels in self.levels}


def fit_encoding(
    df: pd.DataFrame,
    categorical: list[str] = CATEGORICAL_COVARIATES,
    numeric: list[str] = NUMERIC_COVARIATES,
) -> CovariateEncoding:
    levels = tuple((col, tuple(sorted(df[col].astype(str).unique()))) for col in categorical)
    return CovariateEncoding(levels=levels, numeric=tuple(numeric))


def unknown_levels(encoding: CovariateEncoding, df: pd.DataFrame) -> pd.Series:
    """Describe unseen categorical values per record (empty string when all levels are known)."""
    reasons = pd.Series("", index=df.index, dtype=object)
    for name, levels in encoding.levels:
        values = df[name].astype(str)
        unseen = ~values.isin(levels)
        reasons[unseen] += f"unknown {name} level " + values[unseen] + "; "
    return reasons.str.rstrip("; ")


def encode(encoding: CovariateEncoding, df: pd.DataFrame) -> pd.DataFrame:
    """Build the design matrix for df using the fitted encoding.

    Raises:
        InvalidRecordError: A covariate is missing.
        UnknownLevelError: A categorical value was not seen at fit time.
    """
    cols = [name for name, _ in encoding.levels] + list(encoding.numeric)
    require_columns(df, cols, "records")
    if df[cols].isna().any().any():
        raise InvalidRecordError(f"Missing covariate values in columns {df[cols].columns[df[cols].isna().any()].tolist()}")

    unseen = unknown_levels(encoding, df)
    if (unseen != "").any():
        raise UnknownLevelError("; ".join(unseen[unseen != ""].unique()))

    X = pd.DataFrame(index=df.index)
    for name, levels in encoding.levels:
        values = df[name].astype(str)
        for level in levels[1:]:
            X[f"{name}[{level}]"] = (values == level).astype(float)
    for name in encoding.numeric:
        X[name] = df[name].astype(float)
    return X[encoding.columns]


def invalid_reasons(df: pd.DataFrame, covariates: list[str] | None = None, require_outcome: bool = True) -> pd.Series:
    """Describe missing or out-of-range fields per record (empty string when valid).

    Missing values are reported, never coerced.
    """
    if covariates is None:
        covariates = CATEGORICAL_COVARIATES + NUMERIC_COVARIATES

    reasons = pd.Series("", index=df.index, dtype=object)
    for col in covariates:
        if col not in df.columns:
            reasons += f"missing {col}; "
            continue
        if col in NUMERIC_COVARIATES:
            values = pd.to_numeric(df[col], errors="coerce")
            bad = ~np.isfinite(values.astype(float))
        else:
            bad = df[col].isna()
        reasons[bad] += f"missing {col}; "

    if require_outcome:
        reasons += _outcome_time_reasons(df)
    return reasons.str.rstrip("; ")


def _outcome_time_reasons(df: pd.DataFrame) -> pd.Series:
    reasons = pd.Series("", index=df.index, dtype=object)
    if OUTCOME_TIME_COLUMN not in df.columns:
        return reasons + f"missing {OUTCOME_TIME_COLUMN}; "
    t = pd.to_numeric(df[OUTCOME_TIME_COLUMN], errors="coerce").astype(float)
    missing = ~np.isfinite(t)
    reasons[missing] += f"missing {OUTCOME_TIME_COLUMN}; "
    # Whole days only
    out_of_range = ~missing & ((t < 0) | (t != np.floor(t)))
    reasons[out_of_range] += f"{OUTCOME_TIME_COLUMN} out of range; "
    return reasons


def drop_invalid(
    df: pd.DataFrame, name: str, covariates: list[str] | None = None, level: str = "WARNING"
) -> pd.DataFrame:
    """Drop and log records with missing or out-of-range fields at `level`."""
    reasons = invalid_reasons(df, covariates)
    bad = reasons != ""
    if bad.any():
        ids = df.loc[bad, CUSTOMER_ID_COLUMN] if CUSTOMER_ID_COLUMN in df.columns else df.index[bad]
        for customer_id, reason in zip(ids, reasons[bad]):
            log.log(level, f"Excluding {name} record {customer_id}: {reason}")
        log.log(level, f"Dropped {bad.sum()} of {len(df)} {name} records")
    return df.loc[~bad].copy()
