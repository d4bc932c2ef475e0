import pytest

from app.core.payments.status import (
    TransactionStatus,
    can_transition,
    is_completion,
    status_from_paid_flag,
)


@pytest.mark.parametrize(
    "paid,expected",
    [
        (True, TransactionStatus.COMPLETED),
        (False, TransactionStatus.PENDING),
        (None, TransactionStatus.PENDING),
        ("true", TransactionStatus.PENDING),
        (1, TransactionStatus.PENDING),
    ],
)
def test_status_from_paid_flag_only_literal_true_completes(paid, expected):
    assert status_from_paid_flag(paid) is expected


def test_notification_mapping_never_yields_failed():
    for paid in (True, False, None, 0, "", "failed", {}):
        assert status_from_paid_flag(paid) is not TransactionStatus.FAILED


def test_new_and_pending_rows_accept_every_status():
    for new in TransactionStatus:
        assert can_transition(None, new)
        assert can_transition(TransactionStatus.PENDING, new)


@pytest.mark.parametrize("terminal", [TransactionStatus.COMPLETED, TransactionStatus.FAILED])
def test_terminal_statuses_are_absorbing(terminal):
    assert terminal.is_terminal
    for new in TransactionStatus:
        assert not can_transition(terminal, new)


def test_pending_is_not_terminal():
    assert not TransactionStatus.PENDING.is_terminal


def test_is_completion_only_on_transition_into_completed():
    assert is_completion(None, TransactionStatus.COMPLETED)
    assert is_completion(TransactionStatus.PENDING, TransactionStatus.COMPLETED)
    assert not is_completion(TransactionStatus.COMPLETED, TransactionStatus.COMPLETED)
    assert not is_completion(TransactionStatus.PENDING, TransactionStatus.PENDING)
    assert not is_completion(TransactionStatus.PENDING, TransactionStatus.FAILED)
