# Record columns
CUSTOMER_ID_COLUMN = "customer_id"
CLIENT_ID_COLUMN = "client_id"
OUTCOME_TIME_COLUMN = "outcome_time"
NET_MARGIN_COLUMN = "net_margin_realized"

# The source flag is called "censored" but True means the second purchase WAS observed.
# Everything downstream goes through features.event_observed(), never the raw flag.
EVENT_FLAG_COLUMN = "censored"
EVENT_OBSERVED_VALUE = True

CATEGORICAL_COVARIATES = ["acquisition_quarter", "acquisition_channel", "user_group"]
NUMERIC_COVARIATES = ["days_to_first_purchase"]
COVARIATES = CATEGORICAL_COVARIATES + NUMERIC_COVARIATES

# Conversion curve
HORIZONS = (30, 60, 90)
SCORING_HORIZON = 90
FALLBACK_CONVERSION_PROBABILITY = 0.007422  # Long-tail conversion likelihood beyond the curve
MIN_EVENT_TIMES = 2
HAZARD_PENALIZER = 0.0

# Buyer segmentation
N_BUYER_SEGMENTS = 3
BUYER_TREE_CP = 0.01  # Minimum relative SSE improvement per split
# Pinned expected-value edges (segment 1 below the first, segment 3 at/above the second).
# Refresh with pipeline.refit_buyer_thresholds(), never inside the scoring path.
BUYER_SEGMENT_THRESHOLDS = (0.75, 4.5)

# Client segmentation (rpart defaults)
MIN_CLIENTS = 2
CLIENT_TREE_CP = 0.01
CLIENT_TREE_MIN_SPLIT = 20
CLIENT_TREE_MIN_BUCKET = 7

# Validation
CALIBRATION_BIN_WIDTH = 0.05

# Output
TABLE_NAME = "second_purchase_scores"


# Queries
_RECORD_COLUMNS = """
        customer_id,
        client_id,
        acquisition_quarter,
        acquisition_channel,
        user_group,
        days_to_first_purchase,
        outcome_time,
        censored
"""

TRAINING_QUERY = f"""
    SELECT {_RECORD_COLUMNS},
        net_margin_realized
    FROM `mpb-data-science-dev-ab-602d.dsci_daw.first_time_buyers_training`
    WHERE outcome_time is not null
    """

SCORING_QUERY = f"""
    SELECT {_RECORD_COLUMNS}
    FROM `mpb-data-science-dev-ab-602d.dsci_daw.first_time_buyers_scoring`
    """

HELD_OUT_QUERY = f"""
    SELECT {_RECORD_COLUMNS}
    FROM `mpb-data-science-dev-ab-602d.dsci_daw.first_time_buyers_holdout`
    WHERE outcome_time is not null
    """

FINAL_COLUMNS = [
    "customer_id",
    "client_id",
    "score",
    "expected_value",
    "buyer_segment",
    "client_group",
]
