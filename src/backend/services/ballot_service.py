"""
Ballot service.

Ballots are versioned: saving creates a new version that supersedes the
active one, so votes always reference the exact schema they answered.
Version numbers are unique per kind; a save that loses a race for a number
takes the next one, and every older active version is retired afterwards.
"""

from typing import Optional

import structlog

from core.exceptions import ConflictError, NotFoundError, ValidationError
from models.documents import BallotDocument, BallotKind, BallotQuestion, ElectionDocument, QuestionType
from repositories.provider import BallotRepositoryProtocol
from schemas.ballot import BallotCreate, BallotExport, ExportedOption, ExportedQuestion
from services.election_state import ElectionStateMachine, utc_now

logger = structlog.get_logger(__name__)

CHOICE_TYPES = frozenset({QuestionType.SINGLE, QuestionType.MULTIPLE, QuestionType.RANKING})

# Version-number collisions tolerated before a save gives up
SAVE_ATTEMPTS = 3


class BallotService:
    """Manage ballot versions for an election."""

    def __init__(self, ballots: BallotRepositoryProtocol):
        self.ballots = ballots

    async def save_ballot(
        self,
        election: ElectionDocument,
        data: BallotCreate,
        kind: BallotKind = BallotKind.QUESTIONS,
        created_by: Optional[str] = None,
    ) -> BallotDocument:
        """
        Save a new ballot version and make it the active one.

        Raises:
            ConflictError: The election's status does not allow ballot edits,
                or concurrent saves kept taking the version number
            ValidationError: The question schema is inconsistent
        """
        ElectionStateMachine.check_can_edit_ballot(election, kind)
        errors = self.validate_questions(data.questions)
        if errors:
            raise ValidationError("Invalid ballot", errors=errors)

        for attempt in range(1, SAVE_ATTEMPTS + 1):
            versions = await self.ballots.list_versions(election.id, kind)
            ballot = BallotDocument(
                election_id=election.id,
                kind=kind,
                title=data.title,
                description=data.description,
                questions=data.questions,
                version=versions[0].version + 1 if versions else 1,
                is_active=True,
                created_by=created_by,
            )
            # New version first: readers pick the highest active version meanwhile
            try:
                await self.ballots.create(ballot)
                break
            except ConflictError:
                if attempt == SAVE_ATTEMPTS:
                    raise
                logger.info("ballot_version_taken", election_id=election.id, version=ballot.version)

        await self._retire_older(ballot)
        logger.info(
            "ballot_saved",
            election_id=election.id,
            kind=BallotKind(kind).value,
            version=ballot.version,
        )
        return ballot

    async def _retire_older(self, ballot: BallotDocument) -> None:
        for other in await self.ballots.list_versions(ballot.election_id, ballot.kind):
            if other.is_active and other.version < ballot.version:
                await self.ballots.deactivate(ballot.election_id, other.id)

    async def get_active(self, election_id: str, kind: BallotKind = BallotKind.QUESTIONS) -> BallotDocument:
        ballot = await self.ballots.get_active(election_id, kind)
        if ballot is None:
            raise NotFoundError("No active ballot for this election")
        return ballot

    async def get_version(
        self, election_id: str, version: int, kind: BallotKind = BallotKind.QUESTIONS
    ) -> BallotDocument:
        ballot = await self.ballots.get_version(election_id, version, kind)
        if ballot is None:
            raise NotFoundError(f"Ballot version {version} not found")
        return ballot

    async def list_versions(self, election_id: str, kind: BallotKind = BallotKind.QUESTIONS) -> list[BallotDocument]:
        return await self.ballots.list_versions(election_id, kind)

    # ========================================================================
    # Publication
    # ========================================================================

    async def publish(self, election: ElectionDocument, kind: BallotKind = BallotKind.QUESTIONS) -> BallotDocument:
        """
        Mark the active version as published. Saving a new version starts unpublished.

        Raises:
            ConflictError: The election's status does not allow ballot edits
            NotFoundError: No active ballot
            ValidationError: The ballot has no questions
        """
        ElectionStateMachine.check_can_edit_ballot(election, kind)
        ballot = await self.get_active(election.id, kind)
        if not ballot.questions:
            raise ValidationError("Ballot must have at least one question")

        ballot.published_at = utc_now()
        await self.ballots.set_published(election.id, ballot.id, ballot.published_at)
        logger.info("ballot_published", election_id=election.id, kind=BallotKind(kind).value, version=ballot.version)
        return ballot

    async def unpublish(self, election: ElectionDocument, kind: BallotKind = BallotKind.QUESTIONS) -> BallotDocument:
        ElectionStateMachine.check_can_edit_ballot(election, kind)
        ballot = await self.get_active(election.id, kind)
        ballot.published_at = None
        await self.ballots.set_published(election.id, ballot.id, None)
        logger.info("ballot_unpublished", election_id=election.id, kind=BallotKind(kind).value, version=ballot.version)
        return ballot

    async def delete_ballot(self, election: ElectionDocument, kind: BallotKind = BallotKind.CANDIDATES) -> int:
        """
        Delete every version of a ballot kind.

        Raises:
            ConflictError: The election's status does not allow ballot edits
            NotFoundError: There is no ballot of that kind
        """
        ElectionStateMachine.check_can_edit_ballot(election, kind)
        deleted = await self.ballots.delete_versions(election.id, kind)
        if not deleted:
            raise NotFoundError("No ballot to delete")
        logger.info("ballot_deleted", election_id=election.id, kind=BallotKind(kind).value, versions=deleted)
        return deleted

    async def export_for_deployment(self, election_id: str) -> BallotExport:
        """The active question ballot without validation rules, in display order."""
        ballot = await self.get_active(election_id, BallotKind.QUESTIONS)
        return BallotExport(
            election_id=election_id,
            version=ballot.version,
            title=ballot.title,
            description=ballot.description,
            published_at=ballot.published_at,
            questions=[
                ExportedQuestion(
                    question_id=q.question_id,
                    question=q.question,
                    type=QuestionType(q.type).value,
                    options=[ExportedOption(option_id=o.option_id, text=o.text, value=o.value) for o in q.options],
                    required=q.required,
                    order=q.order,
                )
                for q in ballot.ordered_questions()
            ],
        )

    @staticmethod
    def validate_questions(questions: list[BallotQuestion]) -> list[str]:
        """Check the internal consistency of a ballot's questions."""
        errors: list[str] = []
        seen_questions: set[str] = set()

        for question in questions:
            label = question.question_id
            if question.question_id in seen_questions:
                errors.append(f"Duplicate question id '{label}'")
            seen_questions.add(question.question_id)

            option_ids = [o.option_id for o in question.options]
            if len(option_ids) != len(set(option_ids)):
                errors.append(f"Question '{label}' has duplicate option ids")

            qtype = QuestionType(question.type)
            if qtype in CHOICE_TYPES and not question.options:
                errors.append(f"Question '{label}' needs at least one option")
            if qtype == QuestionType.RANKING and len(question.options) < 2:
                errors.append(f"Ranking question '{label}' needs at least two options")

            rules = question.validation
            if rules.max_selections is not None and rules.max_selections < 1:
                errors.append(f"Question '{label}' max selections must be at least 1")
            if (
                rules.min_selections is not None
                and rules.max_selections is not None
                and rules.min_selections > rules.max_selections
            ):
                errors.append(f"Question '{label}' min selections exceeds max selections")
            if rules.max_length is not None and rules.max_length < 1:
                errors.append(f"Question '{label}' max length must be positive")

        return errors
