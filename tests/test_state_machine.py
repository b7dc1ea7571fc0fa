"""Unit tests for order state-machine guardrails."""

import pytest

from topup.common.state_machine import (
    ALLOWED_TRANSITIONS,
    COMPLETED,
    FULFILMENT,
    ORDER_STATUSES,
    PAID,
    PENDING,
    TERMINAL_STATUSES,
    validate_transition,
)


def test_valid_transition():
    """Sanity check: the happy path is declared."""

    validate_transition(PENDING, PAID)
    validate_transition(PAID, FULFILMENT)


def test_redelivered_payment_is_declared():
    validate_transition(PAID, PAID)


def test_invalid_transition():
    """Skipping payment must be rejected."""

    with pytest.raises(ValueError):
        validate_transition(PENDING, FULFILMENT)


def test_late_duplicate_after_fulfilment_is_undeclared():
    with pytest.raises(ValueError):
        validate_transition(FULFILMENT, PAID)


def test_completed_has_no_way_in():
    for status in (PENDING, PAID, FULFILMENT):
        with pytest.raises(ValueError):
            validate_transition(status, COMPLETED)


def test_every_status_declares_its_transitions():
    assert set(ALLOWED_TRANSITIONS) == set(ORDER_STATUSES)


def test_terminal_statuses_only_rewrite_themselves():
    for status in TERMINAL_STATUSES:
        for target in set(ORDER_STATUSES) - {status}:
            with pytest.raises(ValueError):
                validate_transition(status, target)


def test_unknown_status_is_rejected():
    with pytest.raises(ValueError, match="Unknown status"):
        validate_transition("refunded", PAID)
