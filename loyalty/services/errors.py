"""
Error taxonomy for the commission engine.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with. The API renders them as
``{"success": false, "error": {"code": ..., "message": ...}}``.
"""


class CommissionError(Exception):
    """Base class for commission engine errors."""

    code = "commission_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(CommissionError):
    """Malformed rule: rate, type or priority out of bounds."""

    code = "validation_error"
    status_code = 400


class NotFoundError(CommissionError):
    """Settings or rule absent when required."""

    code = "not_found"
    status_code = 404


class ComputationError(CommissionError):
    """Numeric input that cannot be evaluated (e.g. a negative sale amount)."""

    code = "computation_error"
    status_code = 422


class PersistenceError(CommissionError):
    """A per-sale write failed during a recalculation run."""

    code = "persistence_error"
    status_code = 500
