"""
Tests for ballot versioning and question validation.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from core.exceptions import ConflictError, NotFoundError, ValidationError
from models.documents import BallotDocument, BallotKind, BallotQuestion, ElectionStatus
from schemas.ballot import BallotCreate
from services.ballot_service import SAVE_ATTEMPTS, BallotService


@pytest.fixture
def service(ballots) -> BallotService:
    return BallotService(ballots)


@pytest.mark.unit
class TestSaveBallot:
    """Saving creates a new active version."""

    async def test_first_save_is_version_one(self, service, draft_election, sample_questions) -> None:
        ballot = await service.save_ballot(draft_election, BallotCreate(questions=sample_questions))

        assert ballot.version == 1
        assert ballot.is_active is True

    async def test_second_save_supersedes_first(self, service, ballots, draft_election, sample_questions) -> None:
        first = await service.save_ballot(draft_election, BallotCreate(questions=sample_questions))
        second = await service.save_ballot(draft_election, BallotCreate(questions=sample_questions[:1]))

        active = await service.get_active(draft_election.id)
        assert second.version == 2
        assert active.id == second.id
        assert ballots.items[first.id].is_active is False
        assert [b.version for b in await service.list_versions(draft_election.id)] == [2, 1]

    async def test_old_version_still_readable(self, service, draft_election, sample_questions) -> None:
        await service.save_ballot(draft_election, BallotCreate(questions=sample_questions))
        await service.save_ballot(draft_election, BallotCreate(questions=sample_questions[:1]))

        first = await service.get_version(draft_election.id, 1)
        assert len(first.questions) == 4

    async def test_questions_locked_after_publish(self, service, draft_election, sample_questions) -> None:
        draft_election.status = ElectionStatus.SCHEDULED

        with pytest.raises(ConflictError):
            await service.save_ballot(draft_election, BallotCreate(questions=sample_questions))

    async def test_candidates_editable_while_active(self, service, active_election, sample_questions) -> None:
        ballot = await service.save_ballot(
            active_election, BallotCreate(questions=sample_questions[:1]), kind=BallotKind.CANDIDATES
        )

        assert ballot.kind == BallotKind.CANDIDATES
        with pytest.raises(NotFoundError):
            await service.get_active(active_election.id)

    async def test_invalid_questions_rejected(self, service, draft_election) -> None:
        questions = [
            {"question_id": "q1", "question": "Rank", "type": "ranking", "options": [{"option_id": "a", "text": "A"}]},
            {"question_id": "q1", "question": "Pick", "type": "single"},
        ]

        with pytest.raises(ValidationError) as exc_info:
            await service.save_ballot(draft_election, BallotCreate(questions=questions))

        errors = exc_info.value.errors
        assert "Duplicate question id 'q1'" in errors
        assert "Ranking question 'q1' needs at least two options" in errors
        assert "Question 'q1' needs at least one option" in errors

    async def test_missing_version_is_not_found(self, service, draft_election) -> None:
        with pytest.raises(NotFoundError):
            await service.get_version(draft_election.id, 3)


    async def test_concurrent_saves_leave_one_active_version(self, service, ballots, draft_election,
                                                             sample_questions) -> None:
        await service.save_ballot(draft_election, BallotCreate(questions=sample_questions))

        saved = await asyncio.gather(
            service.save_ballot(draft_election, BallotCreate(title="A", questions=sample_questions)),
            service.save_ballot(draft_election, BallotCreate(title="B", questions=sample_questions)),
        )

        versions = sorted(b.version for b in ballots.items.values())
        active = [b for b in ballots.items.values() if b.is_active]
        assert versions == [1, 2, 3]
        assert sorted(b.version for b in saved) == [2, 3]
        assert [b.version for b in active] == [3]

    async def test_save_retires_every_older_active_version(self, service, ballots, draft_election,
                                                           sample_questions) -> None:
        # Left behind by an interrupted save
        await ballots.create(BallotDocument(election_id=draft_election.id, questions=sample_questions, version=1))
        await ballots.create(BallotDocument(election_id=draft_election.id, questions=sample_questions, version=2))

        latest = await service.save_ballot(draft_election, BallotCreate(questions=sample_questions))

        assert latest.version == 3
        assert [b.id for b in ballots.items.values() if b.is_active] == [latest.id]

    async def test_gives_up_when_version_keeps_colliding(self, service, ballots, draft_election,
                                                         sample_questions) -> None:
        with patch.object(ballots, "create", AsyncMock(side_effect=ConflictError("Duplicate ballots item"))):
            with pytest.raises(ConflictError):
                await service.save_ballot(draft_election, BallotCreate(questions=sample_questions))

            assert ballots.create.await_count == SAVE_ATTEMPTS


@pytest.mark.unit
class TestPublication:
    """Publishing, unpublishing, export and deletion."""

    async def test_publish_and_unpublish(self, service, ballots, draft_election, sample_questions) -> None:
        saved = await service.save_ballot(draft_election, BallotCreate(questions=sample_questions))

        published = await service.publish(draft_election)
        assert published.published_at is not None
        assert ballots.items[saved.id].published_at == published.published_at

        unpublished = await service.unpublish(draft_election)
        assert unpublished.published_at is None
        assert ballots.items[saved.id].published_at is None

    async def test_new_version_starts_unpublished(self, service, draft_election, sample_questions) -> None:
        await service.save_ballot(draft_election, BallotCreate(questions=sample_questions))
        await service.publish(draft_election)

        latest = await service.save_ballot(draft_election, BallotCreate(questions=sample_questions[:1]))

        assert latest.published_at is None
        assert (await service.get_version(draft_election.id, 1)).published_at is not None

    async def test_publish_without_ballot(self, service, draft_election) -> None:
        with pytest.raises(NotFoundError):
            await service.publish(draft_election)

    async def test_question_ballot_publish_locked_after_draft(self, service, draft_election,
                                                              sample_questions) -> None:
        await service.save_ballot(draft_election, BallotCreate(questions=sample_questions))
        draft_election.status = ElectionStatus.SCHEDULED

        with pytest.raises(ConflictError):
            await service.publish(draft_election)

    async def test_delete_candidate_ballot(self, service, ballots, active_election, sample_questions) -> None:
        for _ in range(2):
            await service.save_ballot(
                active_election, BallotCreate(questions=sample_questions[:1]), kind=BallotKind.CANDIDATES
            )
        await ballots.create(BallotDocument(election_id=active_election.id, questions=sample_questions))

        deleted = await service.delete_ballot(active_election, BallotKind.CANDIDATES)

        assert deleted == 2
        assert [b.kind for b in ballots.items.values()] == [BallotKind.QUESTIONS]

    async def test_delete_missing_candidate_ballot(self, service, active_election) -> None:
        with pytest.raises(NotFoundError):
            await service.delete_ballot(active_election, BallotKind.CANDIDATES)

    async def test_candidates_locked_after_completion(self, service, active_election, sample_questions) -> None:
        await service.save_ballot(
            active_election, BallotCreate(questions=sample_questions[:1]), kind=BallotKind.CANDIDATES
        )
        active_election.status = ElectionStatus.COMPLETED

        with pytest.raises(ConflictError):
            await service.delete_ballot(active_election, BallotKind.CANDIDATES)

    async def test_export_orders_questions_and_drops_rules(self, service, draft_election, sample_questions) -> None:
        await service.save_ballot(draft_election, BallotCreate(questions=list(reversed(sample_questions))))

        exported = await service.export_for_deployment(draft_election.id)

        assert exported.version == 1
        assert [q.question_id for q in exported.questions] == ["chair", "committees", "priorities", "comments"]
        assert "validation" not in exported.questions[0].model_dump()
        assert [o.option_id for o in exported.questions[0].options] == ["alice", "bob"]


@pytest.mark.unit
class TestValidateQuestions:
    """Consistency rules for a question list."""

    def test_sample_questions_are_valid(self, sample_questions) -> None:
        questions = [BallotQuestion(**q) for q in sample_questions]

        assert BallotService.validate_questions(questions) == []

    def test_min_above_max_selections(self) -> None:
        question = BallotQuestion(
            question_id="q",
            question="Pick",
            type="multiple",
            options=[{"option_id": "a", "text": "A"}, {"option_id": "a", "text": "A2"}],
            validation={"min_selections": 3, "max_selections": 1},
        )

        errors = BallotService.validate_questions([question])

        assert "Question 'q' has duplicate option ids" in errors
        assert "Question 'q' min selections exceeds max selections" in errors
