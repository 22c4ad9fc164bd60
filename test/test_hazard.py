import numpy as np
import pandas as pd
import pytest

from src.second_purchase.errors import FitError, InvalidRecordError, UnknownLevelError
from src.second_purchase.hazard import fit_hazard, predict_risk

from conftest import make_records


def test_recovers_known_hazard_ratio(hazard_fit):
    """Paid buyers convert at twice the organic rate by construction."""
    ratio = hazard_fit.hazard_ratios["acquisition_channel[paid]"]
    assert ratio == pytest.approx(2.0, rel=0.15)


def test_encoding_uses_sorted_reference_levels(hazard_fit):
    assert hazard_fit.encoding.reference_levels == {
        "acquisition_quarter": "2023Q1",
        "acquisition_channel": "organic",
        "user_group": "A",
    }
    assert hazard_fit.encoding.columns[-1] == "days_to_first_purchase"
    assert len(hazard_fit.coefficients) == len(hazard_fit.encoding.columns)


def test_predict_risk_is_exp_of_linear_predictor(hazard_fit, training_records):
    records = training_records.head(2).copy()
    records["acquisition_quarter"] = "2023Q1"
    records["user_group"] = "A"
    records["days_to_first_purchase"] = 0
    records["acquisition_channel"] = ["organic", "paid"]

    risk = predict_risk(hazard_fit, records)

    assert risk.iloc[0] == pytest.approx(1.0)
    assert risk.iloc[1] == pytest.approx(hazard_fit.hazard_ratios["acquisition_channel[paid]"])
    assert (predict_risk(hazard_fit, training_records) > 0).all()


def test_unseen_level_is_rejected(hazard_fit, training_records):
    records = training_records.head(3).copy()
    records.loc[records.index[1], "acquisition_channel"] = "affiliate"

    with pytest.raises(UnknownLevelError, match="affiliate"):
        predict_risk(hazard_fit, records)


def test_missing_covariate_is_not_coerced(hazard_fit, training_records):
    records = training_records.head(3).copy()
    records.loc[records.index[0], "days_to_first_purchase"] = np.nan

    with pytest.raises(InvalidRecordError):
        predict_risk(hazard_fit, records)


def test_single_level_covariate_fails():
    records = make_records(n=200)
    records["acquisition_channel"] = "paid"

    with pytest.raises(FitError, match="acquisition_channel"):
        fit_hazard(records)


def test_identical_outcomes_fail():
    records = make_records(n=200)
    records["outcome_time"] = 30
    records["censored"] = True

    with pytest.raises(FitError, match="same"):
        fit_hazard(records)


def test_no_events_fail():
    records = make_records(n=200)
    records["censored"] = False

    with pytest.raises(FitError, match="No second purchases"):
        fit_hazard(records)


def test_invalid_training_rows_are_dropped(training_records):
    records = training_records.head(400).copy()
    records.loc[records.index[:5], "outcome_time"] = -1
    records.loc[records.index[5:8], "user_group"] = None

    fit = fit_hazard(records)

    assert fit.n_records == 392
    assert isinstance(fit.hazard_ratios, pd.Series)
