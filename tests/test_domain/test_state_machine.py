"""Tests for the TransactionStateMachine domain guard.

These tests verify that:
    1. All valid transitions are allowed.
    2. All invalid transitions are blocked.
    3. The convenience function validate_transition works.
    4. Terminal states never move again.
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from interbank_settlement.domain.state_machine import (
    TransactionStateMachine,
    validate_transition,
)


class TestHappyPath:
    """Pending -> In Progress -> Completed."""

    def test_full_lifecycle(self) -> None:
        sm = TransactionStateMachine("Pending")
        assert sm.status == "Pending"

        sm.claim()
        assert sm.status == "In Progress"

        sm.complete()
        assert sm.status == "Completed"

    def test_default_status_is_pending(self) -> None:
        assert TransactionStateMachine().status == "Pending"


class TestRetryPath:
    """A released transaction can be claimed again on the next pass."""

    def test_release_then_claim(self) -> None:
        sm = TransactionStateMachine("In Progress")
        sm.release()
        assert sm.status == "Pending"

        sm.claim()
        assert sm.status == "In Progress"


class TestFailurePaths:
    def test_expire_from_pending(self) -> None:
        sm = TransactionStateMachine("Pending")
        sm.expire()
        assert sm.status == "Failed"

    def test_reject_from_in_progress(self) -> None:
        sm = TransactionStateMachine("In Progress")
        sm.reject()
        assert sm.status == "Failed"


class TestIllegalTransitions:
    """Verify that illegal transitions raise TransitionNotAllowed."""

    def test_pending_cannot_complete(self) -> None:
        sm = TransactionStateMachine("Pending")
        with pytest.raises(TransitionNotAllowed):
            sm.complete()

    def test_in_progress_cannot_expire(self) -> None:
        sm = TransactionStateMachine("In Progress")
        with pytest.raises(TransitionNotAllowed):
            sm.expire()

    def test_completed_is_final(self) -> None:
        sm = TransactionStateMachine("Completed")
        assert sm.get_allowed_events() == []

    def test_failed_is_final(self) -> None:
        sm = TransactionStateMachine("Failed")
        assert sm.get_allowed_events() == []

    def test_completed_cannot_go_back_to_pending(self) -> None:
        with pytest.raises(TransitionNotAllowed):
            validate_transition("Completed", "release")


class TestAllowedEvents:
    def test_pending_allowed(self) -> None:
        allowed = TransactionStateMachine("Pending").get_allowed_events()
        assert sorted(allowed) == ["claim", "expire"]

    def test_in_progress_allowed(self) -> None:
        allowed = TransactionStateMachine("In Progress").get_allowed_events()
        assert sorted(allowed) == ["complete", "reject", "release"]


class TestValidateTransitionFunction:
    def test_valid_transition(self) -> None:
        assert validate_transition("Pending", "claim") == "In Progress"

    def test_invalid_event_name(self) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            validate_transition("Pending", "nonexistent_event")

    def test_invalid_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            TransactionStateMachine("Settled")
