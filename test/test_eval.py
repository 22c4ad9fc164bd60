import numpy as np
import pandas as pd
import pytest

from src.second_purchase.eval import calibration_bins, is_monotonic_calibration, validate


@pytest.fixture
def calibrated_scores():
    """20 records per 0.05-wide bin whose outcome rate matches the bin midpoint."""
    scores, outcomes = [], []
    for k in range(20):
        midpoint = (k + 0.5) * 0.05
        n_positive = int(round(20 * midpoint))
        scores += [midpoint] * 20
        outcomes += [1] * n_positive + [0] * (20 - n_positive)
    return pd.Series(scores), pd.Series(outcomes)


def test_calibrated_dataset_is_monotonic(calibrated_scores):
    scores, outcomes = calibrated_scores
    table = calibration_bins(scores, outcomes)

    assert len(table) == 20
    assert (table["n_records"] == 20).all()
    np.testing.assert_allclose(table["bin_lower"].to_numpy(), np.arange(20) * 0.05)
    np.testing.assert_allclose(table["bin_upper"].to_numpy(), (np.arange(20) + 1) * 0.05)
    np.testing.assert_allclose(table["observed_rate"].to_numpy(), table["mean_score"].to_numpy(), atol=0.03)
    assert is_monotonic_calibration(table)


def test_edges_and_out_of_domain_scores():
    scores = pd.Series([0.0, 0.05, 0.0999, 1.0, 3.2])
    outcomes = pd.Series([0, 1, 0, 1, 1])

    table = calibration_bins(scores, outcomes)

    assert table.loc[0, "n_records"] == 1
    assert table.loc[1, "n_records"] == 2
    assert table.loc[19, "n_records"] == 2
    assert table.loc[19, "observed_rate"] == 1.0
    assert table["n_records"].sum() == 5
    assert np.isnan(table.loc[5, "observed_rate"])


def test_non_monotonic_is_reported_not_raised():
    table = calibration_bins(pd.Series([0.1, 0.1, 0.9, 0.9]), pd.Series([1, 1, 0, 0]))
    assert not is_monotonic_calibration(table)


def test_validate_reports_per_bin(training_records, hazard_fit, curve, profit_fit):
    held_out = training_records.sample(n=300, random_state=5)

    table = validate(held_out, hazard_fit, curve, profit_fit)

    assert len(table) == 20
    assert table["n_records"].sum() == 300
    filled = table[table["n_records"] > 0]
    assert filled["observed_rate"].between(0, 1).all()


def test_validate_counts_only_events_within_horizon(training_records, hazard_fit, curve, profit_fit):
    held_out = training_records.head(50).assign(censored=True, outcome_time=120)

    table = validate(held_out, hazard_fit, curve, profit_fit)

    # Every record converted, but after day 90
    assert table.loc[table["n_records"] > 0, "observed_rate"].eq(0).all()


def test_validate_skips_invalid_held_out_records(training_records, hazard_fit, curve, profit_fit):
    held_out = training_records.head(20).copy()
    held_out.loc[held_out.index[0], "outcome_time"] = -1

    table = validate(held_out, hazard_fit, curve, profit_fit)

    assert table["n_records"].sum() == 19
