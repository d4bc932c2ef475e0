from __future__ import annotations

from enum import Enum
from typing import Optional


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[TransactionStatus] = frozenset(
    {TransactionStatus.COMPLETED, TransactionStatus.FAILED}
)

# prior status (None = no row yet) -> statuses a notification may move it to.
# pending -> pending is allowed: it refreshes fields without side effects.
ALLOWED_TRANSITIONS: dict[Optional[TransactionStatus], frozenset[TransactionStatus]] = {
    None: frozenset(TransactionStatus),
    TransactionStatus.PENDING: frozenset(TransactionStatus),
    TransactionStatus.COMPLETED: frozenset(),
    TransactionStatus.FAILED: frozenset(),
}


def can_transition(prior: Optional[TransactionStatus], new: TransactionStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[prior]


def is_completion(prior: Optional[TransactionStatus], new: TransactionStatus) -> bool:
    """True only for the transition *into* completed."""
    return new is TransactionStatus.COMPLETED and prior is not TransactionStatus.COMPLETED


def status_from_paid_flag(paid: object) -> TransactionStatus:
    """Notification status mapping.

    A literal boolean true means completed; anything else is pending. The
    notification shape never reports a failure: declined cards surface only on
    the synchronous charge call, which creates no transaction at all.
    """
    if paid is True:
        return TransactionStatus.COMPLETED
    return TransactionStatus.PENDING
