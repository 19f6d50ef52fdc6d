"""
Deployment orchestrator.

Publishes an election to the external ledger, or adopts one the creator
published from their own wallet, and keeps the local record in
step with it. The required part of the pipeline (guards, dry run, fee and
balance checks, publish) either completes and is committed in one local
write, or aborts leaving the record untouched. The follow-ups (starting the
election on the ledger, registering voters) are best-effort: they report
what happened and can be re-run on their own, checking ledger state first so
repeated calls converge.
"""

import re
from datetime import datetime, timezone
from typing import Optional

import structlog
from azure.cosmos.exceptions import CosmosHttpResponseError

from core.config import settings
from core.exceptions import (
    ConflictError,
    ExternalLedgerError,
    LedgerRevertError,
    NotFoundError,
    TallyError,
    ValidationError,
)
from core.logging import shorten
from models.documents import ElectionDocument, ElectionStatus, VoterDocument
from repositories.provider import ElectionRepositoryProtocol
from schemas.ledger import (
    DeploymentResult,
    ElectionPayload,
    FactoryInfo,
    FollowUpResult,
    PreflightResult,
    RegistrationReport,
    StartResult,
)
from services.credential_service import VoterCredentialRegistry
from services.election_state import DEPLOYABLE_STATUSES, ElectionStateMachine, utc_now
from services.ledger_client import LedgerClient, deploy_gas_limit, resolve_fees

logger = structlog.get_logger(__name__)

AUTHORIZATION_FAILURE = re.compile(r"unauthor|not authorized|forbidden|creator", re.IGNORECASE)

# Failures a best-effort follow-up reports instead of raising
FOLLOW_UP_ERRORS = (TallyError, CosmosHttpResponseError)


def to_unix(value: Optional[datetime]) -> int:
    return int(value.timestamp()) if value else 0


def is_authorization_failure(reason: Optional[str]) -> bool:
    return bool(reason and AUTHORIZATION_FAILURE.search(reason))


def error_text(error: Exception) -> str:
    if isinstance(error, ExternalLedgerError):
        return error.reason or error.detail
    if isinstance(error, TallyError):
        return error.detail
    return str(error)


def build_payload(election: ElectionDocument, start_time: datetime) -> ElectionPayload:
    """Map an election record onto the factory's createElection arguments."""
    return ElectionPayload(
        title=election.title,
        description=election.description,
        start_time=to_unix(start_time),
        end_time=to_unix(election.end_time),
        timezone=election.timezone,
        max_voters=election.max_voters_count,
        allow_voter_registration=election.allow_voter_registration,
        login_instructions=election.login_instructions,
        vote_confirmation=election.vote_confirmation,
        after_election_message=election.after_election_message,
        public_results=election.is_public,
        real_time_results=election.real_time_results,
        results_release_time=to_unix(election.results_release_time),
    )


def chunked(items: list, size: int) -> list[list]:
    return [items[i : i + size] for i in range(0, len(items), max(size, 1))]


class DeploymentOrchestrator:
    """Publish elections and their voters to the external ledger."""

    def __init__(
        self,
        elections: ElectionRepositoryProtocol,
        credentials: VoterCredentialRegistry,
        ledger: LedgerClient,
    ):
        self.elections = elections
        self.credentials = credentials
        self.ledger = ledger

    # ========================================================================
    # Publish
    # ========================================================================

    async def deploy(self, election: ElectionDocument) -> DeploymentResult:
        """
        Publish an election to the ledger.

        Raises:
            ConflictError: Already deployed or wrong status
            ValidationError: Less than the minimum duration remains
            ExternalLedgerError: Dry run reverted, insufficient balance, or the
                publish transaction failed. The local record is unchanged.
        """
        start_time, adjusted = ElectionStateMachine.check_can_deploy(election, utc_now())
        payload = build_payload(election, start_time)
        signer = self.ledger.signer_address()
        value = await self.ledger.creation_fee()

        self_authorized = await self._preflight_with_bootstrap(election.id, payload, signer, value)

        fees = resolve_fees(await self.ledger.suggested_fees())
        gas_limit = deploy_gas_limit()
        required = fees.max_fee_per_gas * gas_limit + value
        balance = await self.ledger.get_balance(signer)
        if balance < required:
            raise ExternalLedgerError(
                "Signer balance does not cover the deployment cost",
                reason=f"balance {balance} wei, required {required} wei",
            )

        contract_address = await self.ledger.simulate_publish(payload, signer, value)

        # Last guard before the paying call: a concurrent deploy may have committed meanwhile
        current = await self.elections.get_by_id(election.id)
        if current is None:
            raise NotFoundError("Election not found")
        ElectionStateMachine.check_can_deploy(current, utc_now())

        receipt = await self.ledger.publish_election(payload, gas_limit, fees, value)
        if not receipt.succeeded:
            raise ExternalLedgerError("Publish transaction failed", reason=f"receipt status {receipt.status}")

        current.ledger_address = contract_address
        current.ledger_tx_hash = receipt.tx_hash.lower()
        current.deployed_at = utc_now()
        if adjusted:
            current.start_time = start_time
        if current.status == ElectionStatus.DRAFT:
            ElectionStateMachine.transition(current, ElectionStatus.SCHEDULED)
        await self.elections.update(current)

        logger.info(
            "election_deployed",
            election_id=current.id,
            ledger_address=contract_address,
            tx_hash=shorten(receipt.tx_hash),
            start_time_adjusted=adjusted,
            self_authorized=self_authorized,
        )

        auto_start = await self._auto_start(current)
        registration = await self._register_best_effort(current)

        return DeploymentResult(
            election_id=current.id,
            ledger_address=contract_address,
            tx_hash=current.ledger_tx_hash,
            status=current.status,
            start_time_adjusted=adjusted,
            self_authorized=self_authorized,
            auto_start=auto_start,
            voter_registration=registration,
        )

    async def record_external_deployment(
        self, election: ElectionDocument, ledger_address: str, tx_hash: str
    ) -> DeploymentResult:
        """
        Adopt a deployment the creator sent from their own wallet.

        The creation transaction must be a mined createElection call on the
        configured factory whose title and end time match this election.
        The ledger start time wins over the local one.

        Raises:
            ConflictError: Already deployed or wrong status
            ValidationError: The transaction does not publish this election
            ExternalLedgerError: Receipt missing or reverted
        """
        if election.ledger_address:
            raise ConflictError("Election is already deployed to the ledger")
        if election.status not in DEPLOYABLE_STATUSES:
            raise ConflictError(f"Election cannot be deployed while {election.status}")

        receipt = await self.ledger.get_receipt(tx_hash)
        if receipt is None:
            raise ExternalLedgerError("Deployment transaction not found", reason=f"no receipt for {shorten(tx_hash)}")
        if not receipt.succeeded:
            raise ExternalLedgerError("Deployment transaction failed", reason=f"receipt status {receipt.status}")

        factory = self.ledger.factory_address
        if not factory or (receipt.to or "").lower() != factory.lower():
            raise ValidationError("Transaction was not sent to the election factory")
        tx = await self.ledger.get_transaction(tx_hash)
        payload = self.ledger.decode_publish(tx.input) if tx else None
        if payload is None:
            raise ValidationError("Transaction is not a createElection call")
        mismatched = [
            name
            for name, expected in (("title", election.title), ("end_time", to_unix(election.end_time)))
            if getattr(payload, name) != expected
        ]
        if mismatched:
            raise ValidationError(
                "Transaction publishes a different election", errors=[f"{name} does not match" for name in mismatched]
            )

        try:
            await self.ledger.is_election_active(ledger_address)
        except ExternalLedgerError as e:
            raise ValidationError("Address is not an election contract") from e

        current = await self.elections.get_by_id(election.id)
        if current is None:
            raise NotFoundError("Election not found")
        if current.ledger_address:
            raise ConflictError("Election is already deployed to the ledger")

        ledger_start = datetime.fromtimestamp(payload.start_time, tz=timezone.utc)
        adjusted = to_unix(current.start_time) != payload.start_time
        current.ledger_address = ledger_address
        current.ledger_tx_hash = receipt.tx_hash.lower()
        current.deployed_at = utc_now()
        if adjusted:
            current.start_time = ledger_start
        if current.status == ElectionStatus.DRAFT:
            ElectionStateMachine.transition(current, ElectionStatus.SCHEDULED)
        await self.elections.update(current)

        logger.info(
            "election_deployment_recorded",
            election_id=current.id,
            ledger_address=ledger_address,
            tx_hash=shorten(receipt.tx_hash),
            start_time_adjusted=adjusted,
        )

        auto_start = await self._auto_start(current)
        registration = await self._register_best_effort(current)

        return DeploymentResult(
            election_id=current.id,
            ledger_address=ledger_address,
            tx_hash=current.ledger_tx_hash,
            status=current.status,
            start_time_adjusted=adjusted,
            auto_start=auto_start,
            voter_registration=registration,
        )

    async def _preflight_with_bootstrap(
        self, election_id: str, payload: ElectionPayload, signer: str, value: int
    ) -> bool:
        """
        Dry-run the publish; authorize the signer once if it owns the factory.

        Returns:
            Whether a self-authorization transaction was sent
        """
        try:
            await self.ledger.simulate_publish(payload, signer, value)
            return False
        except LedgerRevertError as e:
            if not is_authorization_failure(e.reason):
                raise
            owner = await self.ledger.factory_owner()
            if not owner or owner.lower() != signer.lower():
                raise
            logger.warning("ledger_self_authorizing", election_id=election_id, signer=shorten(signer))

        receipt = await self.ledger.authorize_creator(signer)
        if not receipt.succeeded:
            raise ExternalLedgerError(
                "Self-authorization transaction failed", reason=f"receipt status {receipt.status}"
            )
        await self.ledger.simulate_publish(payload, signer, value)
        return True

    async def preflight(self, election: ElectionDocument, from_address: Optional[str] = None) -> PreflightResult:
        """Dry-run the publish without sending anything."""
        start_time, adjusted = ElectionStateMachine.check_can_deploy(election, utc_now())
        payload = build_payload(election, start_time)
        sender = from_address or self.ledger.signer_address()
        value = await self.ledger.creation_fee()
        try:
            await self.ledger.simulate_publish(payload, sender, value)
        except LedgerRevertError as e:
            return PreflightResult(
                ok=False,
                reason=e.reason or e.detail,
                from_address=sender,
                payload=payload,
                start_time_adjusted=adjusted,
            )
        return PreflightResult(ok=True, from_address=sender, payload=payload, start_time_adjusted=adjusted)

    async def factory_info(self) -> FactoryInfo:
        signer = self.ledger.signer_address()
        return FactoryInfo(
            factory_address=self.ledger.factory_address,
            owner=await self.ledger.factory_owner(),
            signer_address=signer,
            signer_authorized=await self.ledger.is_authorized_creator(signer),
            creation_fee_wei=await self.ledger.creation_fee(),
        )

    # ========================================================================
    # Start on ledger
    # ========================================================================

    async def _auto_start(self, election: ElectionDocument) -> FollowUpResult:
        if utc_now() < election.start_time:
            return FollowUpResult(skipped_reason="Start time not reached")
        try:
            started = await self._ensure_started(election)
        except FOLLOW_UP_ERRORS as e:
            logger.warning("election_auto_start_failed", election_id=election.id, error=error_text(e))
            return FollowUpResult(attempted=True, error=error_text(e))
        return FollowUpResult(attempted=True, succeeded=True, tx_hash=started.tx_hash)

    async def _ensure_started(self, election: ElectionDocument) -> StartResult:
        """Start the election on the ledger unless it already is, then mirror ACTIVE locally."""
        already_active = await self.ledger.is_election_active(election.ledger_address)
        tx_hash = None
        if not already_active:
            receipt = await self.ledger.start_election(election.ledger_address)
            if not receipt.succeeded:
                raise ExternalLedgerError("Start transaction failed", reason=f"receipt status {receipt.status}")
            tx_hash = receipt.tx_hash.lower()

        if election.status == ElectionStatus.SCHEDULED:
            ElectionStateMachine.transition(election, ElectionStatus.ACTIVE)
            await self.elections.update(election)
            logger.info("election_started", election_id=election.id, already_active=already_active)

        return StartResult(
            election_id=election.id,
            status=election.status,
            already_active=already_active,
            tx_hash=tx_hash,
        )

    async def start_on_ledger(self, election: ElectionDocument) -> StartResult:
        """
        Manually start a published election. Safe to repeat.

        Raises:
            ConflictError: Not deployed, or not SCHEDULED/ACTIVE
        """
        if not election.ledger_address:
            raise ConflictError("Election is not deployed to the ledger")
        if election.status not in (ElectionStatus.SCHEDULED, ElectionStatus.ACTIVE):
            raise ConflictError(f"Election cannot be started while {election.status}")
        return await self._ensure_started(election)

    async def activate_election(self, election: ElectionDocument) -> ElectionDocument:
        """
        Move a SCHEDULED election whose start time has passed to ACTIVE.

        A deployed election is started on the ledger first; a ledger failure
        leaves it SCHEDULED.
        """
        ElectionStateMachine.check_can_activate(election, utc_now())
        if election.ledger_address:
            await self._ensure_started(election)
        else:
            ElectionStateMachine.transition(election, ElectionStatus.ACTIVE)
            await self.elections.update(election)
            logger.info("election_activated", election_id=election.id)
        return election

    # ========================================================================
    # Voter registration
    # ========================================================================

    async def _register_best_effort(self, election: ElectionDocument) -> RegistrationReport:
        try:
            return await self._register(election)
        except FOLLOW_UP_ERRORS as e:
            logger.warning("voter_registration_failed", election_id=election.id, error=error_text(e))
            return RegistrationReport(errors=[error_text(e)])

    async def register_voters(self, election: ElectionDocument) -> RegistrationReport:
        """
        Register ACTIVE voters missing from the ledger. Safe to repeat.

        Raises:
            ConflictError: Election is not deployed
        """
        if not election.ledger_address:
            raise ConflictError("Election is not deployed to the ledger")
        return await self._register(election)

    async def _mark_registered(self, voter: VoterDocument, report: RegistrationReport) -> bool:
        """Mirror a ledger registration locally; a failed write counts the voter as failed."""
        try:
            await self.credentials.mark_registered(voter)
        except FOLLOW_UP_ERRORS as e:
            logger.warning("voter_mark_registered_failed", election_id=voter.election_id, voter_id=voter.id)
            report.failed += 1
            report.errors.append(f"{voter.unique_id}: registered on the ledger but not locally ({error_text(e)})")
            return False
        return True

    async def _register(self, election: ElectionDocument) -> RegistrationReport:
        contract = election.ledger_address
        voters = await self.credentials.eligible_for_registration(election.id)
        report = RegistrationReport(eligible=len(voters))

        pending: list[VoterDocument] = []
        for voter in voters:
            try:
                registered = await self.ledger.is_voter_registered(contract, voter.unique_id)
            except ExternalLedgerError as e:
                report.failed += 1
                report.errors.append(f"{voter.unique_id}: {e.reason or e.detail}")
                continue
            if registered:
                if voter.ledger_registered or await self._mark_registered(voter, report):
                    report.already_registered += 1
            else:
                pending.append(voter)

        for batch in chunked(pending, settings.VOTER_REGISTRATION_BATCH_SIZE):
            try:
                receipt = await self.ledger.register_voters(
                    contract,
                    [v.unique_id for v in batch],
                    [v.secret_hash for v in batch],
                )
                if not receipt.succeeded:
                    raise ExternalLedgerError(
                        "Registration transaction failed", reason=f"receipt status {receipt.status}"
                    )
            except ExternalLedgerError as e:
                report.failed += len(batch)
                report.errors.append(f"Batch of {len(batch)} voters: {e.reason or e.detail}")
                continue

            report.tx_hashes.append(receipt.tx_hash.lower())
            for voter in batch:
                if await self._mark_registered(voter, report):
                    report.registered += 1

        logger.info(
            "voters_registered_on_ledger",
            election_id=election.id,
            eligible=report.eligible,
            registered=report.registered,
            already_registered=report.already_registered,
            failed=report.failed,
        )
        return report
