"""
Core state synchronization: model, authoritative store, persistence and export.
"""

from .models import Invalid, PayrollState, Valid, ValidationResult, empty_state, validate_state
from .state import StateStore

__all__ = [
    "PayrollState",
    "Valid",
    "Invalid",
    "ValidationResult",
    "empty_state",
    "validate_state",
    "StateStore",
]
