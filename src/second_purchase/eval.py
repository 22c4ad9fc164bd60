import numpy as np
import pandas as pd
from loguru import logger as log

from .baseline import BaselineCurveTable
from .config import (
    BUYER_SEGMENT_THRESHOLDS,
    BUYER_TREE_CP,
    CALIBRATION_BIN_WIDTH,
    CLIENT_TREE_CP,
    COVARIATES,
    FALLBACK_CONVERSION_PROBABILITY,
    HORIZONS,
    OUTCOME_TIME_COLUMN,
    SCORING_HORIZON,
)
from .features import event_observed
from .hazard import HazardFit
from .profit import ProfitFit
from .scoring import score_batch


def log_dataframe_stats(df: pd.DataFrame, name: str):
    """Log dataframe statistics in consistent format"""
    log.info(f"{name} with {df.shape[0]} rows")
    log.info(f"Columns: {df.columns.tolist()}")
    log.info(f"Sample data:\n{df.head()}")
    log.info(f"Statistics:\n{df.describe().round(3)}")
    if "buyer_segment" in df.columns:
        log.info(f"Segment distribution:\n{df['buyer_segment'].value_counts(normalize=True).sort_index().round(3)}")


def log_config_constants():
    """Log all configuration constants"""
    log.info("Configuration constants:")
    log.info(f"  COVARIATES: {COVARIATES}")
    log.info(f"  HORIZONS: {HORIZONS} days (scoring on {SCORING_HORIZON})")
    log.info(f"  FALLBACK_CONVERSION_PROBABILITY: {FALLBACK_CONVERSION_PROBABILITY}")
    log.info(f"  BUYER_SEGMENT_THRESHOLDS: {BUYER_SEGMENT_THRESHOLDS}")
    log.info(f"  BUYER_TREE_CP: {BUYER_TREE_CP}")
    log.info(f"  CLIENT_TREE_CP: {CLIENT_TREE_CP}")
    log.info(f"  CALIBRATION_BIN_WIDTH: {CALIBRATION_BIN_WIDTH}")


def calibration_bins(
    scores: pd.Series, outcomes: pd.Series, bin_width: float = CALIBRATION_BIN_WIDTH
) -> pd.DataFrame:
    """Observed outcome rate per fixed-width score bin over [0, 1].

    Scores above 1 (a risk multiplier can push the product past 1) fall in the
    top bin. Empty bins are reported with n_records 0 and NaN rates.
    """
    n_bins = int(round(1 / bin_width))
    edges = np.linspace(0.0, 1.0, n_bins + 1)
    clipped = scores.clip(lower=0.0, upper=1.0)
    # Right-open bins, with 1.0 itself in the last one
    bin_idx = np.minimum(np.floor(clipped.to_numpy() / bin_width + 1e-9).astype(int), n_bins - 1)

    df = pd.DataFrame({"bin": bin_idx, "score": scores.to_numpy(), "outcome": outcomes.to_numpy()})
    grouped = df.groupby("bin").agg(
        n_records=("outcome", "size"),
        mean_score=("score", "mean"),
        observed_rate=("outcome", "mean"),
    )
    table = grouped.reindex(range(n_bins))
    table["n_records"] = table["n_records"].fillna(0).astype(int)
    table.insert(0, "bin_upper", edges[1:])
    table.insert(0, "bin_lower", edges[:-1])
    table.index.name = "bin"
    return table


def is_monotonic_calibration(table: pd.DataFrame) -> bool:
    """Whether observed rates are non-decreasing across non-empty bins. Reported, never enforced."""
    rates = table.loc[table["n_records"] > 0, "observed_rate"]
    return bool(rates.is_monotonic_increasing)


def validate(
    held_out: pd.DataFrame,
    hazard_fit: HazardFit,
    curve: BaselineCurveTable,
    profit_fit: ProfitFit,
    bin_width: float = CALIBRATION_BIN_WIDTH,
    horizon: int = SCORING_HORIZON,
) -> pd.DataFrame:
    """Calibration table comparing binned scores to the observed 90-day conversion rate.

    Never raises on poor calibration; the numbers are for reporting.
    """
    scored = score_batch(held_out, hazard_fit, curve, profit_fit)
    outcome = (event_observed(scored).astype(bool) & (scored[OUTCOME_TIME_COLUMN] <= horizon)).astype(int)

    table = calibration_bins(scored["score"], outcome, bin_width)
    filled = table[table["n_records"] > 0]
    log.info(f"Calibration on {len(scored)} held-out records (observed {horizon}-day rate {outcome.mean():.1%})")
    log.info(f"Calibration table:\n{filled.round(3)}")
    if not is_monotonic_calibration(table):
        log.warning("Observed conversion rate is not monotonic across score bins")
    return table
