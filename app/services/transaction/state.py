from app.models.enums.transaction_status import TransactionStatus

# Status transitions are linear, terminal states have no way out.
ALLOWED_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.ESCROW: frozenset(
        {
            TransactionStatus.DELIVERED,
            TransactionStatus.COMPLETED,
            TransactionStatus.CANCELLED,
        }
    ),
    TransactionStatus.DELIVERED: frozenset({TransactionStatus.COMPLETED}),
    TransactionStatus.COMPLETED: frozenset(),
    TransactionStatus.CANCELLED: frozenset(),
}

OPEN_STATUSES = (TransactionStatus.ESCROW, TransactionStatus.DELIVERED)


class InvalidTransactionTransition(Exception):
    """Raised when a transaction cannot move to the requested status."""

    def __init__(self, current: TransactionStatus, target: TransactionStatus):
        self.current = current
        self.target = target
        super().__init__(
            f"Transaction cannot move from '{current.value}' to '{target.value}'."
        )


def can_transition(current: TransactionStatus, target: TransactionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: TransactionStatus, target: TransactionStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransactionTransition(current, target)


def is_terminal(current: TransactionStatus) -> bool:
    return not ALLOWED_TRANSITIONS[current]
