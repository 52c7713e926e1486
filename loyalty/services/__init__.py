"""Business logic services."""

from loyalty.services.commission import calculate_cashback, calculate_commission, evaluate_sale
from loyalty.services.errors import (
    CommissionError,
    ComputationError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from loyalty.services.recalculation import RecalculationJob, run_recalculation
from loyalty.services.rule_selector import select_rule

__all__ = [
    "calculate_commission",
    "calculate_cashback",
    "evaluate_sale",
    "select_rule",
    "RecalculationJob",
    "run_recalculation",
    "CommissionError",
    "ValidationError",
    "NotFoundError",
    "ComputationError",
    "PersistenceError",
]
