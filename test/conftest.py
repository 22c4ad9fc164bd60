import numpy as np
import pandas as pd
import pytest
from loguru import logger

QUARTERS = ["2023Q1", "2023Q2", "2023Q3", "2023Q4"]
GROUPS = ["A", "B", "C"]


def make_records(
    n: int = 1000,
    hazard_ratio: float = 2.0,
    organic_mean_days: float = 120.0,
    censor_at: int = 300,
    n_clients: int = 10,
    seed: int = 7,
) -> pd.DataFrame:
    """Synthetic first-time buyers.

    Half arrive through "organic", half through "paid". Times to the second
    purchase are exponential quantiles at evenly spaced probabilities within
    each channel, so the paid/organic hazard ratio is `hazard_ratio` by
    construction. Other covariates are random and have no effect.
    """
    rng = np.random.default_rng(seed)
    m = n // 2
    u = (np.arange(m) + 0.5) / m
    organic = np.ceil(-np.log(1 - u) * organic_mean_days)
    paid = np.ceil(-np.log(1 - u) * organic_mean_days / hazard_ratio)

    channel = np.array(["organic"] * m + ["paid"] * m)
    event_time = np.concatenate([organic, paid]).astype(int)
    observed = event_time <= censor_at
    lag = rng.integers(0, 30, size=2 * m)

    df = pd.DataFrame(
        {
            "customer_id": np.arange(2 * m),
            "client_id": [f"client_{i:02d}" for i in rng.integers(0, n_clients, size=2 * m)],
            "acquisition_quarter": rng.choice(QUARTERS, size=2 * m),
            "acquisition_channel": channel,
            "user_group": rng.choice(GROUPS, size=2 * m),
            "days_to_first_purchase": lag,
            "outcome_time": np.minimum(event_time, censor_at),
            "censored": observed,
            "net_margin_realized": 20.0 + 5.0 * (channel == "paid") + 0.3 * lag + rng.normal(0, 2, size=2 * m),
        }
    )
    return df.sample(frac=1.0, random_state=seed).reset_index(drop=True)


def make_scoring_records(n: int = 300, max_day: int = 400, seed: int = 11) -> pd.DataFrame:
    """Scoring batch: same covariate levels, outcome_time is days since first purchase so far."""
    rng = np.random.default_rng(seed)
    return pd.DataFrame(
        {
            "customer_id": np.arange(10_000, 10_000 + n),
            "client_id": [f"client_{i:02d}" for i in rng.integers(0, 10, size=n)],
            "acquisition_quarter": rng.choice(QUARTERS, size=n),
            "acquisition_channel": rng.choice(["organic", "paid"], size=n),
            "user_group": rng.choice(GROUPS, size=n),
            "days_to_first_purchase": rng.integers(0, 30, size=n),
            "outcome_time": rng.integers(0, max_day, size=n),
            "censored": rng.random(size=n) < 0.3,
        }
    )


@pytest.fixture(scope="session")
def training_records() -> pd.DataFrame:
    return make_records()


@pytest.fixture(scope="session")
def scoring_records() -> pd.DataFrame:
    return make_scoring_records()


@pytest.fixture(scope="session")
def hazard_fit(training_records):
    from src.second_purchase.hazard import fit_hazard

    return fit_hazard(training_records)


@pytest.fixture(scope="session")
def curve(hazard_fit, training_records):
    from src.second_purchase.baseline import derive_curve

    return derive_curve(hazard_fit, training_records)


@pytest.fixture(scope="session")
def profit_fit(training_records):
    from src.second_purchase.profit import fit_profit

    return fit_profit(training_records)


@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during a test."""
    messages = []
    sink_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(sink_id)
