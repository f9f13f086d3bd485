"""
Exception types for the valuation engine.

Only malformed input raises. Sparse data, degenerate estimates and
disqualified deals are reported through result objects instead.
"""


class ValuationError(Exception):
    """Base class for all engine errors."""


class ValidationError(ValuationError, ValueError):
    """
    Raised when an input record or parameter is malformed.

    Attributes:
        field: Name of the offending attribute (if known)
    """

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field
