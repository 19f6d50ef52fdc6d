"""
Vote intake.

Accepts ballots on two paths:

- web: the vote is stored PENDING and later confirmed or rejected by the
  election's creator.
- ledger: the vote is cast through the election contract, either by a
  client-held wallet (prepare + record) or relayed by the service's signer.
  A ledger vote is stored CONFIRMED only after its receipt has been checked;
  a relayed vote whose receipt did not arrive in time is stored PENDING with
  its transaction hash and settled from the receipt later.

On every path the voter's has_voted flag is flipped with a conditional write
before the vote row is created, so two concurrent submissions for the same
voter cannot both succeed. Once a ledger transaction has been sent the flag
stays set unless its receipt shows a revert, even if the vote row cannot be
written.
"""

import asyncio
from typing import Optional

import structlog

from core.config import settings
from core.exceptions import (
    ConfigurationError,
    ConflictError,
    ExternalLedgerError,
    LedgerTransactionPendingError,
    NotFoundError,
    ValidationError,
)
from core.logging import shorten
from core.security import generate_ballot_hash
from models.documents import (
    BallotDocument,
    BallotKind,
    BallotQuestion,
    ElectionDocument,
    QuestionType,
    VoteChoice,
    VoteDocument,
    VoterDocument,
    VoteStatus,
    VotingMethod,
)
from repositories.provider import (
    BallotRepositoryProtocol,
    ElectionRepositoryProtocol,
    VoteRepositoryProtocol,
    VoterRepositoryProtocol,
)
from schemas.vote import (
    LedgerVotePrepare,
    LedgerVoteRecord,
    PreparedLedgerCall,
    VoteConfirm,
    VoterCredentials,
    VoteResponse,
    VoterVoteStatus,
    VoteSubmit,
)
from services.credential_service import VoterCredentialRegistry
from services.election_state import ElectionStateMachine, utc_now
from services.ledger_client import LedgerClient, resolve_fees

logger = structlog.get_logger(__name__)

# Writes of a vote whose transaction is already on the ledger
STORE_ATTEMPTS = 3
STORE_RETRY_DELAY_SECONDS = 0.2


# ============================================================================
# Choice validation
# ============================================================================


def _validate_answer(question: BallotQuestion, choice: Optional[VoteChoice]) -> list[str]:
    label = f"Question '{question.question}'"
    qtype = QuestionType(question.type)
    option_ids = {o.option_id for o in question.options}
    rules = question.validation

    if qtype == QuestionType.TEXT:
        answer = (choice.text_answer or "").strip() if choice else ""
        if not answer:
            return [f"{label} is required"] if question.required else []
        if rules.max_length is not None and len(answer) > rules.max_length:
            return [f"{label} answer exceeds {rules.max_length} characters"]
        return []

    if qtype == QuestionType.RANKING:
        order = choice.ranking_order if choice else []
        if not order:
            return [f"{label} is required"] if question.required else []
        if len(order) != len(set(order)) or set(order) != option_ids:
            return [f"{label} ranking must include every option exactly once"]
        return []

    selected = choice.selected_options if choice else []
    if not selected:
        return [f"{label} is required"] if question.required else []

    errors: list[str] = []
    if len(selected) != len(set(selected)):
        errors.append(f"{label} has duplicate selections")
    if not set(selected) <= option_ids:
        errors.append(f"{label} contains an unknown option")

    if qtype == QuestionType.SINGLE:
        if len(selected) != 1:
            errors.append(f"{label} requires exactly one selection")
    else:
        if rules.max_selections is not None and len(selected) > rules.max_selections:
            errors.append(f"{label} allows at most {rules.max_selections} selections")
        if rules.min_selections is not None and len(selected) < rules.min_selections:
            errors.append(f"{label} requires at least {rules.min_selections} selections")
    return errors


def validate_choices(ballot: BallotDocument, choices: list[VoteChoice]) -> list[str]:
    """
    Validate a submission against a ballot.

    Returns:
        Every violation found; an empty list means the ballot is acceptable
    """
    errors: list[str] = []
    questions = {q.question_id: q for q in ballot.questions}
    answered: dict[str, VoteChoice] = {}

    for choice in choices:
        if choice.question_id not in questions:
            errors.append(f"Unknown question '{choice.question_id}'")
        elif choice.question_id in answered:
            errors.append(f"Question '{questions[choice.question_id].question}' answered more than once")
        else:
            answered[choice.question_id] = choice

    for question in ballot.ordered_questions():
        errors.extend(_validate_answer(question, answered.get(question.question_id)))
    return errors


def with_gas_buffer(estimate: int) -> int:
    return estimate * (100 + settings.VOTE_GAS_BUFFER_PERCENT) // 100


# ============================================================================
# Intake engine
# ============================================================================


class VoteIntakeEngine:
    """Validate and record votes on the web and ledger paths."""

    def __init__(
        self,
        elections: ElectionRepositoryProtocol,
        voters: VoterRepositoryProtocol,
        ballots: BallotRepositoryProtocol,
        votes: VoteRepositoryProtocol,
        ledger: Optional[LedgerClient] = None,
    ):
        self.elections = elections
        self.voters = voters
        self.ballots = ballots
        self.votes = votes
        self.ledger = ledger
        self.credentials = VoterCredentialRegistry(voters)

    # ------------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------------

    async def _get_election(self, election_id: str) -> ElectionDocument:
        election = await self.elections.get_by_id(election_id)
        if election is None:
            raise NotFoundError("Election not found")
        return election

    async def _get_active_ballot(self, election_id: str) -> BallotDocument:
        ballot = await self.ballots.get_active(election_id, BallotKind.QUESTIONS)
        if ballot is None:
            raise NotFoundError("No active ballot for this election")
        return ballot

    async def _check_submission(
        self, election_id: str, data: VoteSubmit
    ) -> tuple[ElectionDocument, VoterDocument, BallotDocument]:
        """
        Run the submission preconditions in order, then validate the choices.

        Raises:
            NotFoundError: Unknown election, unknown voter, or no active ballot
            ConflictError: Voting closed or the voter already voted
            AuthorizationError: Ineligible voter status or wrong secret
            ValidationError: The choices do not fit the ballot
        """
        election = await self._get_election(election_id)
        ElectionStateMachine.check_voting_open(election, utc_now())
        voter = await self.credentials.authenticate(election_id, data.voter_id, data.secret)
        if voter.has_voted:
            raise ConflictError("Voter has already voted")
        ballot = await self._get_active_ballot(election_id)

        errors = validate_choices(ballot, data.choices)
        if errors:
            raise ValidationError("Invalid ballot submission", errors=errors)
        return election, voter, ballot

    def _require_ledger(self, election: ElectionDocument) -> tuple[LedgerClient, str]:
        if self.ledger is None:
            raise ConfigurationError("Ledger is not configured")
        if not election.ledger_address:
            raise ConflictError("Election is not deployed to the ledger")
        return self.ledger, election.ledger_address

    async def _check_ledger_eligibility(self, ledger: LedgerClient, contract: str, voter: VoterDocument) -> None:
        if not await ledger.is_voter_registered(contract, voter.unique_id):
            raise ConflictError("Voter is not registered on the ledger")
        if await ledger.has_voter_voted(contract, voter.unique_id):
            raise ConflictError("Voter has already voted on the ledger")

    @staticmethod
    def _build_vote(
        election: ElectionDocument,
        voter: VoterDocument,
        ballot: BallotDocument,
        choices: list[VoteChoice],
        method: VotingMethod,
    ) -> VoteDocument:
        return VoteDocument(
            election_id=election.id,
            voter_id=voter.id,
            ballot_id=ballot.id,
            ballot_version=ballot.version,
            choices=choices,
            vote_weight=voter.vote_weight,
            vote_hash=generate_ballot_hash(election.id, voter.unique_id, [c.model_dump() for c in choices]),
            voting_method=method,
        )

    async def _claim(self, voter: VoterDocument) -> None:
        if not await self.voters.claim_vote(voter.election_id, voter.id):
            raise ConflictError("Voter has already voted")

    async def _store_claimed(self, voter: VoterDocument, vote: VoteDocument) -> VoteDocument:
        """Persist a vote for a voter whose claim already succeeded; undo the claim on failure."""
        try:
            await self.votes.create(vote)
        except Exception:
            await self.voters.release_vote(voter.election_id, voter.id)
            raise
        voter.has_voted = True
        return vote

    async def _store_sent(self, voter: VoterDocument, vote: VoteDocument) -> VoteDocument:
        """
        Persist a vote whose ledger transaction has already been sent.

        The ledger may count the vote whatever happens here, so the claim is
        never released: the write is retried and a final failure propagates
        with the voter still marked as voted.
        """
        for attempt in range(1, STORE_ATTEMPTS + 1):
            try:
                await self.votes.create(vote)
                break
            except Exception as e:
                if attempt == STORE_ATTEMPTS:
                    logger.error(
                        "ledger_vote_store_failed",
                        election_id=vote.election_id,
                        voter_id=voter.id,
                        tx_hash=shorten(vote.ledger_tx_hash),
                        error=str(e),
                    )
                    raise
                logger.warning("ledger_vote_store_retry", election_id=vote.election_id, attempt=attempt)
                await asyncio.sleep(STORE_RETRY_DELAY_SECONDS * attempt)
        voter.has_voted = True
        return vote

    # ------------------------------------------------------------------------
    # Web path
    # ------------------------------------------------------------------------

    async def submit_web_vote(self, election_id: str, data: VoteSubmit) -> VoteDocument:
        """Cast a ballot through the web path. The vote is stored PENDING."""
        election, voter, ballot = await self._check_submission(election_id, data)
        vote = self._build_vote(election, voter, ballot, data.choices, VotingMethod.WEB)

        await self._claim(voter)
        await self._store_claimed(voter, vote)
        logger.info("vote_submitted", election_id=election_id, vote_id=vote.id, method=VotingMethod.WEB.value)
        return vote

    async def get_vote_status(self, election_id: str, data: VoterCredentials) -> VoterVoteStatus:
        await self._get_election(election_id)
        voter = await self.credentials.authenticate(election_id, data.voter_id, data.secret)
        vote = await self.votes.get_for_voter(election_id, voter.id)
        return VoterVoteStatus(
            has_voted=voter.has_voted,
            vote=VoteResponse.model_validate(vote) if vote else None,
        )

    # ------------------------------------------------------------------------
    # Administrative confirmation
    # ------------------------------------------------------------------------

    async def _get_vote(self, election: ElectionDocument, vote_id: str) -> VoteDocument:
        vote = await self.votes.get_by_id(election.id, vote_id)
        if vote is None:
            raise NotFoundError("Vote not found")
        return vote

    async def confirm_vote(self, election: ElectionDocument, vote_id: str, data: VoteConfirm) -> VoteDocument:
        vote = await self._get_vote(election, vote_id)
        if vote.status != VoteStatus.PENDING:
            raise ConflictError(f"Only pending votes can be confirmed (status is {vote.status})")
        if vote.voting_method == VotingMethod.LEDGER:
            raise ConflictError("Ledger votes are confirmed from their receipt")

        vote.status = VoteStatus.CONFIRMED
        vote.confirmed_at = utc_now()
        if data.tx_hash:
            vote.ledger_tx_hash = data.tx_hash.lower()
        if data.block_number is not None:
            vote.block_number = data.block_number
        await self.votes.update(vote)
        logger.info("vote_confirmed", election_id=election.id, vote_id=vote.id)
        return vote

    async def reject_vote(self, election: ElectionDocument, vote_id: str, reason: str) -> VoteDocument:
        """
        Reject a vote and let the voter submit again.

        Raises:
            ConflictError: Already rejected, or recorded on the ledger
        """
        vote = await self._get_vote(election, vote_id)
        if vote.status == VoteStatus.REJECTED:
            raise ConflictError("Vote is already rejected")
        if vote.voting_method == VotingMethod.LEDGER:
            raise ConflictError("Votes recorded on the ledger cannot be rejected")

        vote.status = VoteStatus.REJECTED
        vote.rejection_reason = reason
        vote.rejected_at = utc_now()
        await self.votes.update(vote)
        await self.voters.release_vote(election.id, vote.voter_id)
        logger.info("vote_rejected", election_id=election.id, vote_id=vote.id)
        return vote

    # ------------------------------------------------------------------------
    # Ledger path
    # ------------------------------------------------------------------------

    async def prepare_ledger_vote(self, election_id: str, data: LedgerVotePrepare) -> PreparedLedgerCall:
        """Return an unsigned castVote call for a client wallet to sign and broadcast."""
        election, voter, ballot = await self._check_submission(election_id, data)
        ledger, contract = self._require_ledger(election)
        await self._check_ledger_eligibility(ledger, contract, voter)

        vote_hash = self._build_vote(election, voter, ballot, data.choices, VotingMethod.LEDGER).vote_hash
        gas = None
        if data.from_address:
            await ledger.simulate_cast_vote(contract, vote_hash, voter.unique_id, data.from_address)
            gas = with_gas_buffer(
                await ledger.estimate_cast_vote_gas(contract, vote_hash, voter.unique_id, data.from_address)
            )

        return PreparedLedgerCall(
            to=contract,
            data=ledger.encode_cast_vote(vote_hash, voter.unique_id),
            chain_id=ledger.chain_id,
            gas=gas,
            vote_hash=vote_hash,
        )

    async def _settle_pending(self, ledger: LedgerClient, vote: VoteDocument) -> VoteDocument:
        """Resolve a relayed vote whose receipt was not available when it was sent."""
        receipt = await ledger.get_receipt(vote.ledger_tx_hash)
        if receipt is None:
            return vote

        if receipt.succeeded:
            vote.status = VoteStatus.CONFIRMED
            vote.confirmed_at = utc_now()
            vote.block_number = receipt.block_number
        else:
            # Mined and reverted: the ledger holds no vote, so the voter may try again
            vote.status = VoteStatus.REJECTED
            vote.rejection_reason = f"Ledger transaction failed (receipt status {receipt.status})"
            vote.rejected_at = utc_now()
            await self.voters.release_vote(vote.election_id, vote.voter_id)
        await self.votes.update(vote)
        logger.info("ledger_vote_settled", election_id=vote.election_id, vote_id=vote.id, status=vote.status)
        return vote

    async def record_ledger_vote(self, election_id: str, data: LedgerVoteRecord) -> VoteDocument:
        """
        Record a vote the client cast on the ledger, after verifying it there.

        The transaction must be this voter's castVoteById call carrying the
        hash of the submitted choices. Recording the same transaction again
        returns the existing vote, settling it first if it is still pending.

        Raises:
            ExternalLedgerError: Transaction not found or failed
            ValidationError: Transaction did not target this election's contract,
                is not this voter's vote for these choices, or the ledger has no
                vote for this voter
        """
        tx_hash = data.tx_hash.lower()
        election = await self._get_election(election_id)
        voter = await self.credentials.authenticate(election_id, data.voter_id, data.secret)

        existing = await self.votes.get_by_tx_hash(election_id, tx_hash)
        if existing is not None:
            if existing.voter_id != voter.id:
                raise ConflictError("Transaction is already recorded for another voter")
            if existing.status == VoteStatus.PENDING and existing.voting_method == VotingMethod.LEDGER:
                ledger, _ = self._require_ledger(election)
                return await self._settle_pending(ledger, existing)
            return existing

        election, voter, ballot = await self._check_submission(election_id, data)
        ledger, contract = self._require_ledger(election)

        receipt = await ledger.get_receipt(tx_hash)
        if receipt is None:
            raise ExternalLedgerError("Transaction not found on the ledger", reason=tx_hash)
        if not receipt.succeeded:
            raise ExternalLedgerError("Ledger transaction failed", reason=f"receipt status {receipt.status}")
        if (receipt.to or "").lower() != contract.lower():
            raise ValidationError("Transaction was not sent to this election's contract")
        if not await ledger.has_voter_voted(contract, voter.unique_id):
            raise ValidationError("The ledger has no vote recorded for this voter")

        vote = self._build_vote(election, voter, ballot, data.choices, VotingMethod.LEDGER)
        transaction = await ledger.get_transaction(tx_hash)
        expected = ledger.encode_cast_vote(vote.vote_hash, voter.unique_id).lower()
        if transaction is None or transaction.input.lower() != expected:
            raise ValidationError("Transaction is not this voter's vote for the submitted choices")

        vote.status = VoteStatus.CONFIRMED
        vote.confirmed_at = utc_now()
        vote.ledger_tx_hash = tx_hash
        vote.block_number = receipt.block_number

        await self._claim(voter)
        await self._store_claimed(voter, vote)
        logger.info("ledger_vote_recorded", election_id=election_id, vote_id=vote.id, tx_hash=shorten(tx_hash))
        return vote

    async def submit_ledger_vote(self, election_id: str, data: VoteSubmit) -> VoteDocument:
        """
        Cast a vote on the ledger through the service's signer.

        The voter is claimed before the paying call. The claim is released
        only when the transaction was never sent or was mined and reverted.
        A sent transaction without a receipt is stored PENDING with its hash
        and settled when the vote is recorded again.
        """
        election, voter, ballot = await self._check_submission(election_id, data)
        ledger, contract = self._require_ledger(election)
        await self._check_ledger_eligibility(ledger, contract, voter)

        vote = self._build_vote(election, voter, ballot, data.choices, VotingMethod.LEDGER)
        signer = ledger.signer_address()
        await ledger.simulate_cast_vote(contract, vote.vote_hash, voter.unique_id, signer)
        gas_limit = with_gas_buffer(
            await ledger.estimate_cast_vote_gas(contract, vote.vote_hash, voter.unique_id, signer)
        )
        fees = resolve_fees(await ledger.suggested_fees())
        required = gas_limit * fees.max_fee_per_gas
        balance = await ledger.get_balance(signer)
        if balance < required:
            raise ExternalLedgerError(
                "Signer balance does not cover the vote transaction",
                reason=f"balance {balance} wei, required {required} wei",
            )

        await self._claim(voter)
        try:
            receipt = await ledger.cast_vote(contract, vote.vote_hash, voter.unique_id, gas_limit, fees)
        except LedgerTransactionPendingError as e:
            vote.ledger_tx_hash = e.tx_hash.lower()
            await self._store_sent(voter, vote)
            logger.warning(
                "ledger_vote_unconfirmed",
                election_id=election_id,
                vote_id=vote.id,
                tx_hash=shorten(vote.ledger_tx_hash),
            )
            return vote
        except ExternalLedgerError:
            await self.voters.release_vote(voter.election_id, voter.id)
            raise

        if not receipt.succeeded:
            await self.voters.release_vote(voter.election_id, voter.id)
            raise ExternalLedgerError("Vote transaction failed", reason=f"receipt status {receipt.status}")

        vote.status = VoteStatus.CONFIRMED
        vote.confirmed_at = utc_now()
        vote.ledger_tx_hash = receipt.tx_hash.lower()
        vote.block_number = receipt.block_number
        await self._store_sent(voter, vote)
        logger.info(
            "ledger_vote_relayed",
            election_id=election_id,
            vote_id=vote.id,
            tx_hash=shorten(vote.ledger_tx_hash),
        )
        return vote
