from dataclasses import dataclass

import pandas as pd
from loguru import logger as log

from .baseline import BaselineCurveTable, derive_curve
from .config import (
    BUYER_SEGMENT_THRESHOLDS,
    FINAL_COLUMNS,
    HELD_OUT_QUERY,
    SCORING_QUERY,
    TABLE_NAME,
    TRAINING_QUERY,
)
from .eval import log_config_constants, log_dataframe_stats, validate
from .hazard import HazardFit, fit_hazard
from .profit import ProfitFit, fit_profit
from .scoring import score_batch
from .segment import (
    BuyerThresholds,
    assign_buyer_segment,
    assign_client_group,
    fit_buyer_thresholds,
    fit_client_groups,
    log_segment_stats,
)


@dataclass(frozen=True)
class FittedModels:
    hazard: HazardFit
    curve: BaselineCurveTable
    profit: ProfitFit


def fetch_records(bq, query: str, name: str) -> pd.DataFrame:
    """Fetch a record set through the data source"""
    records = bq.to_dataframe(query)
    log.info(f"Fetched {len(records):,} {name} records")
    return records


def train_models(training: pd.DataFrame) -> FittedModels:
    """Fit the hazard model, its baseline curve and the profit model. Any FitError aborts."""
    hazard = fit_hazard(training)
    curve = derive_curve(hazard, training)
    profit = fit_profit(training)
    return FittedModels(hazard=hazard, curve=curve, profit=profit)


def score_and_segment(
    scoring: pd.DataFrame,
    models: FittedModels,
    thresholds: BuyerThresholds | tuple[float, ...] = BUYER_SEGMENT_THRESHOLDS,
) -> pd.DataFrame:
    """Score a batch and attach buyer segments (pinned thresholds) and client groups.

    Returns:
        One row per scored record with FINAL_COLUMNS
    """
    scored = score_batch(scoring, models.hazard, models.curve, models.profit)
    scored["buyer_segment"] = assign_buyer_segment(scored["expected_value"], thresholds)
    groups = fit_client_groups(scored)
    scored["client_group"] = assign_client_group(scored, groups)
    log_segment_stats(scored)

    # score_batch has already dropped repeated customer ids
    return scored[FINAL_COLUMNS].reset_index(drop=True)


def run(
    training: pd.DataFrame,
    scoring: pd.DataFrame,
    held_out: pd.DataFrame | None = None,
    thresholds: BuyerThresholds | tuple[float, ...] = BUYER_SEGMENT_THRESHOLDS,
) -> dict:
    """Train, score, segment and (optionally) validate.

    Returns:
        dict with models, rows (persistence shape) and calibration (None without held-out records)
    """
    log.info("=" * 80)
    log.info("STEP 1: Fitting hazard, baseline curve and profit models")
    log.info("=" * 80)
    models = train_models(training)

    log.info("=" * 80)
    log.info("STEP 2: Scoring and segmenting")
    log.info("=" * 80)
    rows = score_and_segment(scoring, models, thresholds)

    calibration = None
    if held_out is not None:
        log.info("=" * 80)
        log.info("STEP 3: Validating calibration on held-out records")
        log.info("=" * 80)
        calibration = validate(held_out, models.hazard, models.curve, models.profit)

    return {"models": models, "rows": rows, "calibration": calibration}


def pipe(bq, thresholds: BuyerThresholds | tuple[float, ...] = BUYER_SEGMENT_THRESHOLDS):
    """
    Production pipeline: fetch records, fit, score, segment, validate and save.

    Args:
        bq: BigQuery helper instance (to_dataframe / write_to)
        thresholds: Buyer segment thresholds; defaults to the pinned configuration
    """
    log.info("=" * 80)
    log.info("Starting second purchase propensity scoring")
    log.info("=" * 80)

    training = fetch_records(bq, TRAINING_QUERY, "training")
    scoring = fetch_records(bq, SCORING_QUERY, "scoring")
    held_out = fetch_records(bq, HELD_OUT_QUERY, "held-out")

    results = run(training, scoring, held_out, thresholds)
    final = results["rows"]

    log.info("=" * 80)
    log.info("FINAL RESULTS")
    log.info("=" * 80)
    log_dataframe_stats(final, "Production scores")
    log_config_constants()

    log.info("=" * 80)
    log.info("SAVING TO BIGQUERY")
    log.info("=" * 80)
    bq.write_to(final, TABLE_NAME)
    log.info(f"Successfully saved {len(final)} customer scores to {TABLE_NAME}")
    return results


def refit_buyer_thresholds(bq) -> BuyerThresholds:
    """Retraining procedure: fit models, score the training population and derive new thresholds.

    The result is meant to be reviewed and pinned as BUYER_SEGMENT_THRESHOLDS;
    it is never applied automatically.
    """
    training = fetch_records(bq, TRAINING_QUERY, "training")
    models = train_models(training)
    scored = score_batch(training, models.hazard, models.curve, models.profit)
    thresholds = fit_buyer_thresholds(scored)
    log.info(f"Current pinned thresholds: {BUYER_SEGMENT_THRESHOLDS}")
    log.info(f"Refitted thresholds:       {thresholds.edges}")
    return thresholds
