"""
Voter credential registry.

Issues voter secrets and verification tokens, stores them encrypted/hashed,
verifies them, and manages per-voter eligibility status.
"""

import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from pydantic import ValidationError as SchemaValidationError

from core.config import settings
from core.encryption import decrypt_field, encrypt_field, hash_email, hash_secret, hash_token
from core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from core.security import generate_verification_token, generate_voter_secret
from models.documents import ElectionDocument, ElectionStatus, VoterDocument, VoterStatus
from repositories.provider import VoterRepositoryProtocol
from schemas.voter import (
    ImportRowError,
    VoterCreate,
    VoterEnrollment,
    VoterExportEntry,
    VoterImportReport,
    VoterImportRow,
    VoterResponse,
    VoterStats,
)

logger = structlog.get_logger(__name__)

VOTING_ELIGIBLE_STATUSES = frozenset({VoterStatus.VERIFIED, VoterStatus.ACTIVE})
ENROLLMENT_CLOSED_STATUSES = frozenset({ElectionStatus.COMPLETED, ElectionStatus.CANCELLED})

# Forward path plus suspend/reinstate
STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    VoterStatus.PENDING: frozenset({VoterStatus.VERIFIED, VoterStatus.SUSPENDED}),
    VoterStatus.VERIFIED: frozenset({VoterStatus.ACTIVE, VoterStatus.SUSPENDED}),
    VoterStatus.ACTIVE: frozenset({VoterStatus.SUSPENDED}),
    VoterStatus.SUSPENDED: frozenset({VoterStatus.PENDING, VoterStatus.VERIFIED, VoterStatus.ACTIVE}),
}


class VoterCredentialRegistry:
    """Enrollment, credential verification, and status management for voters."""

    def __init__(self, voters: VoterRepositoryProtocol):
        self.voters = voters

    # ========================================================================
    # Enrollment
    # ========================================================================

    async def enroll(self, election: ElectionDocument, data: VoterCreate) -> VoterEnrollment:
        """
        Enroll one voter and issue their credentials.

        The returned secret and verification token are not retrievable later.

        Raises:
            ConflictError: Duplicate unique_id or email, or enrollment is closed
            ValidationError: Vote weight out of range
        """
        if election.status in ENROLLMENT_CLOSED_STATUSES:
            raise ConflictError(f"Cannot enroll voters while the election is {election.status}")
        if not 1 <= data.vote_weight <= settings.MAX_VOTE_WEIGHT:
            raise ValidationError(f"Vote weight must be between 1 and {settings.MAX_VOTE_WEIGHT}")

        unique_id = data.unique_id.strip()
        email_hash = hash_email(data.email)
        if await self.voters.get_by_unique_id(election.id, unique_id):
            raise ConflictError(f"Voter with unique id '{unique_id}' already exists")
        if await self.voters.get_by_email_hash(election.id, email_hash):
            raise ConflictError("Voter with this email already exists")

        secret = generate_voter_secret()
        token = generate_verification_token()
        expires_at = datetime.now(timezone.utc) + timedelta(hours=settings.VOTER_VERIFICATION_TOKEN_HOURS)

        voter = VoterDocument(
            election_id=election.id,
            unique_id=unique_id,
            name=data.name.strip(),
            email=encrypt_field(data.email.strip()),
            email_hash=email_hash,
            secret=encrypt_field(secret),
            secret_hash=hash_secret(secret),
            vote_weight=data.vote_weight,
            verification_token_hash=hash_token(token),
            verification_token_expires_at=expires_at,
            metadata=data.metadata,
        )
        # The store's unique keys catch a concurrent duplicate the lookups missed
        await self.voters.create(voter)
        logger.info("voter_enrolled", election_id=election.id, voter_id=voter.id)

        return VoterEnrollment(
            voter=self.to_response(voter),
            secret=secret,
            verification_token=token,
            verification_expires_at=expires_at,
        )

    async def bulk_enroll(self, election: ElectionDocument, rows: list[VoterImportRow]) -> VoterImportReport:
        """
        Enroll a list of voters, reporting success or failure per row.

        A failing row never aborts the rest of the batch.
        """
        report = VoterImportReport()
        seen_ids: set[str] = set()
        seen_emails: set[str] = set()

        for index, row in enumerate(rows):
            error = self._check_import_row(row, seen_ids, seen_emails)
            if error is None:
                try:
                    enrollment = await self.enroll(
                        election,
                        VoterCreate(
                            unique_id=row.unique_id,
                            name=row.name,
                            email=row.email,
                            vote_weight=row.vote_weight,
                            metadata=row.metadata,
                        ),
                    )
                except SchemaValidationError as e:
                    error = "; ".join(err["msg"] for err in e.errors())
                except (ConflictError, ValidationError) as e:
                    error = e.detail
                else:
                    report.success += 1
                    report.enrolled.append(enrollment)

            if error is not None:
                report.failed += 1
                report.errors.append(ImportRowError(index=index, error=error))

        logger.info(
            "voters_bulk_enrolled",
            election_id=election.id,
            success=report.success,
            failed=report.failed,
        )
        return report

    @staticmethod
    def _check_import_row(row: VoterImportRow, seen_ids: set[str], seen_emails: set[str]) -> Optional[str]:
        missing = [name for name in ("unique_id", "name", "email") if not (getattr(row, name) or "").strip()]
        if missing:
            return f"Missing required fields: {', '.join(missing)}"

        unique_id = row.unique_id.strip()
        email = row.email.strip().lower()
        if unique_id in seen_ids:
            return f"Duplicate unique id '{unique_id}' in import"
        if email in seen_emails:
            return "Duplicate email in import"
        seen_ids.add(unique_id)
        seen_emails.add(email)
        return None

    # ========================================================================
    # Verification
    # ========================================================================

    async def verify_token(self, election_id: str, token: str) -> VoterDocument:
        """
        Redeem a single-use verification token: PENDING -> VERIFIED.

        Raises:
            NotFoundError: Unknown or already used token
            ValidationError: Token expired
        """
        voter = await self.voters.get_by_verification_token(election_id, hash_token(token))
        if voter is None:
            raise NotFoundError("Invalid or already used verification token")

        now = datetime.now(timezone.utc)
        if voter.verification_token_expires_at is None or voter.verification_token_expires_at < now:
            raise ValidationError("Verification token has expired")
        if voter.status == VoterStatus.SUSPENDED:
            raise ConflictError("Voter is suspended")

        if voter.status == VoterStatus.PENDING:
            voter.status = VoterStatus.VERIFIED
            voter.verified_at = now
        voter.verification_token_hash = None
        voter.verification_token_expires_at = None
        await self.voters.update(voter)
        logger.info("voter_verified", election_id=election_id, voter_id=voter.id)
        return voter

    def verify_secret(self, voter: VoterDocument, secret: str) -> bool:
        """Constant-time comparison of a supplied secret against the stored hash."""
        return hmac.compare_digest(hash_secret(secret), voter.secret_hash)

    async def authenticate(self, election_id: str, unique_id: str, secret: str) -> VoterDocument:
        """
        Resolve a voter for casting: exists, eligible status, matching secret.

        Raises:
            NotFoundError: No such voter in this election
            AuthorizationError: Ineligible status or wrong secret
        """
        voter = await self.voters.get_by_unique_id(election_id, unique_id.strip())
        if voter is None:
            raise NotFoundError("Voter not found")
        if voter.status not in VOTING_ELIGIBLE_STATUSES:
            raise AuthorizationError(f"Voter is not eligible to vote (status {voter.status})")
        if not self.verify_secret(voter, secret):
            logger.warning("voter_secret_mismatch", election_id=election_id, voter_id=voter.id)
            raise AuthorizationError("Invalid voter credentials")
        return voter

    # ========================================================================
    # Status management
    # ========================================================================

    async def update_status(self, election: ElectionDocument, voter_id: str, status: VoterStatus) -> VoterDocument:
        voter = await self.get_voter(election.id, voter_id)
        target = VoterStatus(status)
        if voter.status == target:
            return voter
        if target not in STATUS_TRANSITIONS[VoterStatus(voter.status)]:
            raise ConflictError(f"Cannot change voter status from {voter.status} to {target.value}")

        voter.status = target
        if target == VoterStatus.VERIFIED and voter.verified_at is None:
            voter.verified_at = datetime.now(timezone.utc)
        await self.voters.update(voter)
        logger.info("voter_status_updated", election_id=election.id, voter_id=voter.id, status=target.value)
        return voter

    async def mark_registered(self, voter: VoterDocument) -> None:
        await self.voters.mark_registered(voter.election_id, voter.id)
        voter.ledger_registered = True

    async def delete_voter(self, election: ElectionDocument, voter_id: str) -> None:
        if election.status != ElectionStatus.DRAFT:
            raise ConflictError("Voters can only be removed while the election is a draft")
        await self.get_voter(election.id, voter_id)
        await self.voters.delete(election.id, voter_id)
        logger.info("voter_deleted", election_id=election.id, voter_id=voter_id)

    # ========================================================================
    # Queries
    # ========================================================================

    async def get_voter(self, election_id: str, voter_id: str) -> VoterDocument:
        voter = await self.voters.get_by_id(election_id, voter_id)
        if voter is None:
            raise NotFoundError("Voter not found")
        return voter

    async def list_voters(
        self,
        election_id: str,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> list[VoterResponse]:
        voters = await self.voters.list_by_election(
            election_id, status=status, search=search, offset=(page - 1) * per_page, limit=per_page
        )
        return [self.to_response(v) for v in voters]

    async def count_voters(self, election_id: str, status: Optional[str] = None) -> int:
        by_status = await self.voters.count_by_status(election_id)
        if status:
            return by_status.get(status, 0)
        return sum(by_status.values())

    async def stats(self, election_id: str) -> VoterStats:
        by_status = await self.voters.count_by_status(election_id)
        voters = await self.voters.list_by_election(election_id)
        return VoterStats(
            total=sum(by_status.values()),
            voted=sum(1 for v in voters if v.has_voted),
            by_status=by_status,
        )

    async def eligible_for_registration(self, election_id: str) -> list[VoterDocument]:
        """Voters that should exist on the ledger: status ACTIVE."""
        return await self.voters.list_by_election(election_id, status=VoterStatus.ACTIVE.value)

    async def export_for_deployment(self, election_id: str) -> list[VoterExportEntry]:
        voters = await self.eligible_for_registration(election_id)
        return [
            VoterExportEntry(unique_id=v.unique_id, secret_hash=v.secret_hash, vote_weight=v.vote_weight)
            for v in voters
        ]

    @staticmethod
    def to_response(voter: VoterDocument) -> VoterResponse:
        return VoterResponse(
            id=voter.id,
            election_id=voter.election_id,
            unique_id=voter.unique_id,
            name=voter.name,
            email=decrypt_field(voter.email),
            status=voter.status,
            vote_weight=voter.vote_weight,
            has_voted=voter.has_voted,
            voted_at=voter.voted_at,
            ledger_registered=voter.ledger_registered,
            verified_at=voter.verified_at,
            created_at=voter.created_at,
        )
