from dataclasses import dataclass

import numpy as np
import pandas as pd
from lifelines import CoxPHFitter
from lifelines.exceptions import ConvergenceError
from loguru import logger as log

from .config import (
    CATEGORICAL_COVARIATES,
    HAZARD_PENALIZER,
    NUMERIC_COVARIATES,
    OUTCOME_TIME_COLUMN,
)
from .errors import FitError
from .features import CovariateEncoding, drop_invalid, encode, event_observed, fit_encoding

DURATION = "_duration"
EVENT = "_event"


@dataclass(frozen=True)
class HazardFit:
    """Fitted proportional-hazards coefficients.

    Ties were handled with the Efron correction. Risk multipliers are
    exp(coefficients . x) on the uncentred design, the same scale the
    baseline curve is derived on.
    """

    encoding: CovariateEncoding
    coefficients: tuple[float, ...]
    n_records: int
    n_events: int

    @property
    def hazard_ratios(self) -> pd.Series:
        return pd.Series(np.exp(self.coefficients), index=self.encoding.columns, name="hazard_ratio")


def _check_degenerate(df: pd.DataFrame, events: pd.Series, categorical: list[str], numeric: list[str]) -> None:
    for col in categorical:
        n_levels = df[col].astype(str).nunique()
        if n_levels < 2:
            raise FitError(f"Covariate '{col}' has {n_levels} level(s); at least 2 are required")
    for col in numeric:
        if df[col].astype(float).nunique() < 2:
            raise FitError(f"Covariate '{col}' is constant")
    if events.sum() == 0:
        raise FitError("No second purchases observed in training data")
    pairs = pd.DataFrame({"t": df[OUTCOME_TIME_COLUMN].values, "e": events.values}).drop_duplicates()
    if len(pairs) < 2:
        raise FitError("All training records share the same (outcome_time, event) pair")


def fit_hazard(
    training: pd.DataFrame,
    penalizer: float = HAZARD_PENALIZER,
    categorical: list[str] = CATEGORICAL_COVARIATES,
    numeric: list[str] = NUMERIC_COVARIATES,
) -> HazardFit:
    """Fit a Cox proportional-hazards model to time-to-second-purchase data.

    Args:
        training: Records with covariates, outcome_time and the event flag
        penalizer: Ridge penalty passed to lifelines (0 = plain partial likelihood)

    Returns:
        Immutable HazardFit

    Raises:
        FitError: Degenerate data or the partial likelihood did not converge
    """
    df = drop_invalid(training, "training", categorical + numeric)
    if df.empty:
        raise FitError("No valid training records")

    events = event_observed(df)
    _check_degenerate(df, events, categorical, numeric)

    encoding = fit_encoding(df, categorical, numeric)
    X = encode(encoding, df)
    data = X.assign(**{DURATION: df[OUTCOME_TIME_COLUMN].astype(float), EVENT: events})

    cph = CoxPHFitter(penalizer=penalizer)
    try:
        cph.fit(data, duration_col=DURATION, event_col=EVENT)
    except (ConvergenceError, np.linalg.LinAlgError) as e:
        raise FitError(f"Cox partial likelihood did not converge: {e}") from e

    params = cph.params_.reindex(encoding.columns)
    if not np.isfinite(params).all():
        raise FitError("Cox fit produced non-finite coefficients")

    fit = HazardFit(
        encoding=encoding,
        coefficients=tuple(float(c) for c in params),
        n_records=len(df),
        n_events=int(events.sum()),
    )
    log.info(f"Fitted hazard model on {fit.n_records} records ({fit.n_events} second purchases)")
    log.info(f"Hazard ratios:\n{fit.hazard_ratios.round(3)}")
    return fit


def predict_risk(fit: HazardFit, records: pd.DataFrame) -> pd.Series:
    """Risk multiplier exp(coefficients . x) per record, using the fit-time encoding.

    Raises:
        InvalidRecordError: A covariate is missing
        UnknownLevelError: A categorical level was not seen at fit time
    """
    X = encode(fit.encoding, records)
    linear_predictor = X.to_numpy() @ np.asarray(fit.coefficients)
    return pd.Series(np.exp(linear_predictor), index=records.index, name="risk_multiplier")
