"""Order status values and the transitions the order flow declares."""

PENDING = "pending"
PAID = "paid"
FULFILMENT = "fulfilment"
# Reserved: no transition in the current flow assigns these.
COMPLETED = "completed"
FAILED = "failed"

ORDER_STATUSES = (PENDING, PAID, FULFILMENT, COMPLETED, FAILED)
TERMINAL_STATUSES = frozenset({FULFILMENT, COMPLETED, FAILED})

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {PAID},
    # Redelivered payment events rewrite the same value.
    PAID: {PAID, FULFILMENT},
    FULFILMENT: {FULFILMENT},
    COMPLETED: set(),
    FAILED: set(),
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not declared by the order state machine."""

    if current not in ORDER_STATUSES or new not in ORDER_STATUSES:
        raise ValueError(f"Unknown status: {current} -> {new}")
    if new not in ALLOWED_TRANSITIONS[current]:
        raise ValueError(f"Invalid transition: {current} -> {new}")
