"""
Tests for the election state machine.

Covers transitions, the deploy guard with its start-time clamp, schedule
validation, and results visibility.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from core.exceptions import AuthorizationError, ConflictError, ValidationError
from models.documents import BallotKind, ElectionDocument, ElectionStatus
from services.election_state import ElectionStateMachine

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def make_election(**overrides) -> ElectionDocument:
    values = {
        "creator_id": "creator-1",
        "title": "Test",
        "start_time": NOW + timedelta(hours=1),
        "end_time": NOW + timedelta(hours=5),
    }
    values.update(overrides)
    return ElectionDocument(**values)


@pytest.mark.unit
class TestTransitions:
    """Status transitions."""

    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            (ElectionStatus.DRAFT, ElectionStatus.SCHEDULED, True),
            (ElectionStatus.DRAFT, ElectionStatus.CANCELLED, True),
            (ElectionStatus.SCHEDULED, ElectionStatus.ACTIVE, True),
            (ElectionStatus.SCHEDULED, ElectionStatus.CANCELLED, True),
            (ElectionStatus.ACTIVE, ElectionStatus.COMPLETED, True),
            (ElectionStatus.ACTIVE, ElectionStatus.CANCELLED, False),
            (ElectionStatus.DRAFT, ElectionStatus.ACTIVE, False),
            (ElectionStatus.COMPLETED, ElectionStatus.ACTIVE, False),
        ],
    )
    def test_can_transition(self, current, target, allowed) -> None:
        assert ElectionStateMachine.can_transition(current, target) is allowed

    def test_transition_stamps_started_at(self) -> None:
        election = make_election(status=ElectionStatus.SCHEDULED)
        ElectionStateMachine.transition(election, ElectionStatus.ACTIVE, NOW)

        assert election.status == ElectionStatus.ACTIVE
        assert election.started_at == NOW

    def test_transition_stamps_cancelled_at(self) -> None:
        election = make_election()
        ElectionStateMachine.transition(election, ElectionStatus.CANCELLED, NOW)

        assert election.cancelled_at == NOW

    def test_invalid_transition_raises_conflict(self) -> None:
        election = make_election(status=ElectionStatus.COMPLETED)

        with pytest.raises(ConflictError):
            ElectionStateMachine.transition(election, ElectionStatus.ACTIVE, NOW)
        assert election.status == ElectionStatus.COMPLETED


@pytest.mark.unit
class TestDeployGuard:
    """check_can_deploy and the start-time clamp."""

    def test_future_start_is_not_clamped(self) -> None:
        election = make_election()
        start, adjusted = ElectionStateMachine.check_can_deploy(election, NOW)

        assert start == election.start_time
        assert adjusted is False

    def test_past_start_is_clamped_to_now(self) -> None:
        election = make_election(start_time=NOW - timedelta(hours=3))
        start, adjusted = ElectionStateMachine.check_can_deploy(election, NOW)

        assert start == NOW
        assert adjusted is True

    def test_exactly_minimum_duration_is_accepted(self) -> None:
        election = make_election(start_time=NOW - timedelta(hours=1), end_time=NOW + timedelta(seconds=3600))

        ElectionStateMachine.check_can_deploy(election, NOW)

    def test_remaining_duration_below_minimum_is_rejected(self) -> None:
        # Started in the past, so the clamp leaves only 59 minutes
        election = make_election(start_time=NOW - timedelta(hours=2), end_time=NOW + timedelta(minutes=59))

        with pytest.raises(ValidationError):
            ElectionStateMachine.check_can_deploy(election, NOW)

    def test_already_deployed_is_conflict(self) -> None:
        election = make_election(ledger_address="0x" + "11" * 20)

        with pytest.raises(ConflictError):
            ElectionStateMachine.check_can_deploy(election, NOW)

    def test_active_election_cannot_deploy(self) -> None:
        election = make_election(status=ElectionStatus.ACTIVE)

        with pytest.raises(ConflictError):
            ElectionStateMachine.check_can_deploy(election, NOW)


@pytest.mark.unit
class TestGuards:
    """Activation, editing, voting window, and ballot edit guards."""

    def test_activate_requires_start_reached(self) -> None:
        election = make_election(status=ElectionStatus.SCHEDULED)

        with pytest.raises(ConflictError):
            ElectionStateMachine.check_can_activate(election, NOW)
        ElectionStateMachine.check_can_activate(election, election.start_time)

    def test_edit_only_in_draft(self) -> None:
        ElectionStateMachine.check_can_edit(make_election())

        with pytest.raises(ConflictError):
            ElectionStateMachine.check_can_edit(make_election(status=ElectionStatus.SCHEDULED))

    def test_voting_closed_after_end(self) -> None:
        election = make_election(status=ElectionStatus.ACTIVE)

        with pytest.raises(ConflictError):
            ElectionStateMachine.check_voting_open(election, election.end_time + timedelta(seconds=1))

    def test_candidates_editable_while_active(self) -> None:
        election = make_election(status=ElectionStatus.ACTIVE)

        ElectionStateMachine.check_can_edit_ballot(election, BallotKind.CANDIDATES)
        with pytest.raises(ConflictError):
            ElectionStateMachine.check_can_edit_ballot(election, BallotKind.QUESTIONS)


@pytest.mark.unit
class TestResultsVisibility:
    """Gating of result views."""

    def test_active_without_real_time_results_is_hidden(self) -> None:
        election = make_election(status=ElectionStatus.ACTIVE, real_time_results=False)

        with pytest.raises(AuthorizationError):
            ElectionStateMachine.check_results_visible(election, NOW)

    def test_scheduled_before_release_time_is_hidden(self) -> None:
        election = make_election(status=ElectionStatus.SCHEDULED, results_release_time=NOW + timedelta(hours=2))

        with pytest.raises(AuthorizationError):
            ElectionStateMachine.check_results_visible(election, NOW)
        ElectionStateMachine.check_results_visible(election, NOW + timedelta(hours=2))

    def test_public_view_requires_public_flag(self) -> None:
        election = make_election(status=ElectionStatus.COMPLETED, is_public=False)

        ElectionStateMachine.check_results_visible(election, NOW)
        with pytest.raises(AuthorizationError):
            ElectionStateMachine.check_results_visible(election, NOW, public=True)


@pytest.mark.unit
class TestScheduleValidation:
    """Creation-time schedule rules."""

    def test_end_before_start_is_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            ElectionStateMachine.validate_schedule(NOW + timedelta(hours=2), NOW + timedelta(hours=1), NOW)

        assert "End time must be after start time" in exc_info.value.errors

    def test_same_day_start_allowed_by_default(self) -> None:
        earlier_today = NOW.replace(hour=1)

        ElectionStateMachine.validate_schedule(earlier_today, NOW + timedelta(days=1), NOW)

    def test_yesterday_start_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ElectionStateMachine.validate_schedule(NOW - timedelta(days=1), NOW + timedelta(days=1), NOW)

    def test_strict_future_start_when_same_day_disabled(self) -> None:
        with patch("services.election_state.settings") as mock_settings:
            mock_settings.ALLOW_SAME_DAY_START = False

            with pytest.raises(ValidationError) as exc_info:
                ElectionStateMachine.validate_schedule(NOW.replace(hour=1), NOW + timedelta(days=1), NOW)

        assert "Start time must be in the future" in exc_info.value.errors

    def test_release_before_start_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ElectionStateMachine.validate_schedule(
                NOW + timedelta(hours=1),
                NOW + timedelta(hours=5),
                NOW,
                results_release_time=NOW,
            )
