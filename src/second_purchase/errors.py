class SecondPurchaseError(ValueError):
    """Base class for modelling errors raised by the second purchase package."""


class FitError(SecondPurchaseError):
    """Training data is degenerate or rank-deficient; no usable model was produced."""


class UnknownLevelError(SecondPurchaseError):
    """A categorical value was not seen when the model was fitted."""


class InvalidRecordError(SecondPurchaseError):
    """A record has missing or out-of-range fields at scoring time."""


class InsufficientDataError(SecondPurchaseError):
    """Too few distinct clients or event times to fit a stable curve or tree."""
