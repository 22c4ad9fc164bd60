from dataclasses import dataclass

import numpy as np
import pandas as pd
from loguru import logger as log

from .baseline import BaselineCurveTable, lookup
from .config import CLIENT_ID_COLUMN, CUSTOMER_ID_COLUMN, OUTCOME_TIME_COLUMN, SCORING_HORIZON
from .errors import InvalidRecordError
from .features import invalid_reasons, unknown_levels
from .hazard import HazardFit, predict_risk
from .profit import ProfitFit, predict_profit

SCORE_COLUMNS = [
    "conversion_probability_90",
    "risk_multiplier",
    "score",
    "expected_profit",
    "expected_value",
]


@dataclass(frozen=True)
class ScoredRecord:
    customer_id: object
    client_id: object
    outcome_time: int
    covariates: tuple[tuple[str, object], ...]
    conversion_probability_90: float
    risk_multiplier: float
    score: float
    expected_profit: float
    expected_value: float


def _covariate_names(hazard_fit: HazardFit, profit_fit: ProfitFit) -> list[str]:
    names = []
    for encoding in (hazard_fit.encoding, profit_fit.encoding):
        for name in [n for n, _ in encoding.levels] + list(encoding.numeric):
            if name not in names:
                names.append(name)
    return names


def _score_frame(
    df: pd.DataFrame,
    hazard_fit: HazardFit,
    curve: BaselineCurveTable,
    profit_fit: ProfitFit,
    horizon: int = SCORING_HORIZON,
) -> pd.DataFrame:
    """Compute score columns for records already known to be valid."""
    out = df.copy()
    days = out[OUTCOME_TIME_COLUMN].astype(int)
    # lookup depends on the day only, so evaluate each distinct day once
    by_day = {t: lookup(curve, t, horizon) for t in days.unique()}
    out["conversion_probability_90"] = days.map(by_day).astype(float)
    out["risk_multiplier"] = predict_risk(hazard_fit, out)
    out["score"] = out["conversion_probability_90"] * out["risk_multiplier"]
    out["expected_profit"] = predict_profit(profit_fit, out)
    out["expected_value"] = out["score"] * out["expected_profit"]
    return out


def score_record(
    record: pd.Series | dict,
    hazard_fit: HazardFit,
    curve: BaselineCurveTable,
    profit_fit: ProfitFit,
) -> ScoredRecord:
    """Score a single record.

    Raises:
        InvalidRecordError: Missing covariate or out-of-range outcome_time
        UnknownLevelError: Categorical level not seen when the models were fitted
    """
    df = pd.DataFrame([dict(record)])
    covariates = _covariate_names(hazard_fit, profit_fit)
    reason = invalid_reasons(df, covariates).iloc[0]
    if reason:
        raise InvalidRecordError(f"Record {df.get(CUSTOMER_ID_COLUMN, pd.Series([None])).iloc[0]}: {reason}")

    row = _score_frame(df, hazard_fit, curve, profit_fit).iloc[0]
    return ScoredRecord(
        customer_id=row.get(CUSTOMER_ID_COLUMN),
        client_id=row.get(CLIENT_ID_COLUMN),
        outcome_time=int(row[OUTCOME_TIME_COLUMN]),
        covariates=tuple((name, row[name]) for name in covariates),
        conversion_probability_90=float(row["conversion_probability_90"]),
        risk_multiplier=float(row["risk_multiplier"]),
        score=float(row["score"]),
        expected_profit=float(row["expected_profit"]),
        expected_value=float(row["expected_value"]),
    )


def _log_excluded(df: pd.DataFrame, reasons: pd.Series) -> None:
    excluded = reasons != ""
    for customer_id, reason in zip(df.loc[excluded, CUSTOMER_ID_COLUMN], reasons[excluded]):
        log.warning(f"Excluding record {customer_id} from scoring: {reason}")


def score_batch(
    records: pd.DataFrame,
    hazard_fit: HazardFit,
    curve: BaselineCurveTable,
    profit_fit: ProfitFit,
) -> pd.DataFrame:
    """Score a batch of records.

    Per-record problems (missing customer_id or client_id, missing or
    out-of-range fields, unseen categorical levels, repeated customer_id,
    non-finite expected value) exclude that record and are logged with its
    customer_id. They never abort the batch.

    Returns:
        The valid records with SCORE_COLUMNS appended
    """
    df = records.copy()
    if CUSTOMER_ID_COLUMN not in df.columns:
        raise ValueError(f"records missing columns: ['{CUSTOMER_ID_COLUMN}']")

    reasons = invalid_reasons(df, _covariate_names(hazard_fit, profit_fit))
    for col in (CUSTOMER_ID_COLUMN, CLIENT_ID_COLUMN):
        if col in df.columns:
            missing = df[col].isna()
            reasons[missing] = (reasons[missing] + f"; missing {col}").str.lstrip("; ")
    valid = reasons == ""
    for encoding in (hazard_fit.encoding, profit_fit.encoding):
        unseen = unknown_levels(encoding, df[valid])
        reasons[unseen.index] = unseen
        valid = reasons == ""

    duplicated = valid & df[CUSTOMER_ID_COLUMN].where(valid).duplicated(keep="first")
    reasons[duplicated] = "duplicate customer_id"

    _log_excluded(df, reasons)
    valid = reasons == ""
    if not valid.any():
        log.warning(f"No valid records to score out of {len(df)}")
        return df.iloc[0:0].assign(**{col: pd.Series(dtype=float) for col in SCORE_COLUMNS})

    scored = _score_frame(df[valid], hazard_fit, curve, profit_fit)

    non_finite = ~np.isfinite(scored["expected_value"])
    if non_finite.any():
        for customer_id in scored.loc[non_finite, CUSTOMER_ID_COLUMN]:
            log.warning(f"Excluding record {customer_id}: non-finite expected value")
        scored = scored[~non_finite]

    log.info(f"Scored {len(scored)} of {len(df)} records ({len(df) - len(scored)} excluded)")
    return scored
