"""
Payroll state model and validation.

The server treats the individual weeks as opaque records: a state is valid
as long as it is an object carrying a `weeks` array whose nesting stays
within MAX_NESTING_DEPTH, so every later copy or encode of it is bounded.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Union

PayrollState = Dict[str, Any]

# Deepest container nesting accepted inside a state, counting `weeks` as 1
MAX_NESTING_DEPTH = 32


def empty_state() -> PayrollState:
    """Default state for a store with no prior data."""
    return {"weeks": []}


@dataclass(frozen=True)
class Valid:
    """Candidate accepted; `state` is the normalized payroll state."""
    state: PayrollState


@dataclass(frozen=True)
class Invalid:
    """Candidate rejected."""
    reason: str


ValidationResult = Union[Valid, Invalid]


def validate_state(candidate: Any) -> ValidationResult:
    """
    Check that a candidate is a well-formed payroll state.

    Only the `weeks` key is carried over; anything else on the candidate is
    dropped so the stored document always has the same shape.

    Args:
        candidate: Decoded JSON payload from a client or a backing store

    Returns:
        Valid with the normalized state, or Invalid with the reason
    """
    if not isinstance(candidate, Mapping):
        return Invalid(f"expected an object, got {type(candidate).__name__}")

    if "weeks" not in candidate:
        return Invalid("missing 'weeks'")

    weeks = candidate["weeks"]
    if not isinstance(weeks, (list, tuple)):
        return Invalid(f"'weeks' must be an array, got {type(weeks).__name__}")

    if exceeds_depth(weeks, MAX_NESTING_DEPTH):
        return Invalid(f"'weeks' is nested deeper than {MAX_NESTING_DEPTH} levels")

    return Valid({"weeks": list(weeks)})


def exceeds_depth(value: Any, limit: int) -> bool:
    """True if `value` holds lists or objects nested more than `limit` deep."""
    stack = [(value, 1)]
    while stack:
        item, depth = stack.pop()
        if isinstance(item, Mapping):
            children = item.values()
        elif isinstance(item, (list, tuple)):
            children = item
        else:
            continue
        if depth > limit:
            return True
        stack.extend((child, depth + 1) for child in children)
    return False
