from dataclasses import dataclass

import numpy as np
import pandas as pd
from loguru import logger as log
from sklearn.linear_model import LinearRegression

from .config import CATEGORICAL_COVARIATES, NET_MARGIN_COLUMN, NUMERIC_COVARIATES
from .errors import FitError
from .features import CovariateEncoding, encode, fit_encoding, invalid_reasons, require_columns


@dataclass(frozen=True)
class ProfitFit:
    """OLS coefficients for expected profit contribution over the scoring horizon."""

    encoding: CovariateEncoding
    intercept: float
    coefficients: tuple[float, ...]
    n_records: int
    r_squared: float


def fit_profit(
    records: pd.DataFrame,
    categorical: list[str] = CATEGORICAL_COVARIATES,
    numeric: list[str] = NUMERIC_COVARIATES,
) -> ProfitFit:
    """Fit ordinary least squares of realized net margin on the covariates.

    Only records with a realized margin are used.

    Raises:
        FitError: No usable records, or the design matrix is rank-deficient
    """
    require_columns(records, categorical + numeric + [NET_MARGIN_COLUMN], "profit training")
    has_margin = records[NET_MARGIN_COLUMN].notna()
    covariates_ok = invalid_reasons(records, categorical + numeric, require_outcome=False) == ""
    df = records.loc[has_margin & covariates_ok].copy()
    log.info(f"Fitting profit model on {len(df)} of {len(records)} records with realized margin")
    if df.empty:
        raise FitError("No records with realized net margin to fit the profit model")

    encoding = fit_encoding(df, categorical, numeric)
    X = encode(encoding, df)

    design = np.column_stack([np.ones(len(X)), X.to_numpy()])
    rank = np.linalg.matrix_rank(design)
    if rank < design.shape[1]:
        raise FitError(f"Profit design matrix is rank-deficient (rank {rank} < {design.shape[1]} columns)")

    y = df[NET_MARGIN_COLUMN].astype(float)
    ols = LinearRegression()
    ols.fit(X, y)

    fit = ProfitFit(
        encoding=encoding,
        intercept=float(ols.intercept_),
        coefficients=tuple(float(c) for c in ols.coef_),
        n_records=len(df),
        r_squared=float(ols.score(X, y)),
    )
    log.info(f"Profit model R^2: {fit.r_squared:.3f}, intercept: {fit.intercept:.2f}")
    return fit


def predict_profit(fit: ProfitFit, records: pd.DataFrame) -> pd.Series:
    """Expected profit per record (may be negative)."""
    X = encode(fit.encoding, records)
    preds = fit.intercept + X.to_numpy() @ np.asarray(fit.coefficients)
    return pd.Series(preds, index=records.index, name="expected_profit")
