"""
Schemas exchanged with the external ledger client and reported by deployment.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ElectionPayload(BaseModel):
    """Arguments of the factory's createElection call, in ledger units (unix seconds)."""

    title: str
    description: str
    start_time: int
    end_time: int
    timezone: str
    ballot_receipt: bool = False
    submit_confirmation: bool = True
    max_voters: int
    allow_voter_registration: bool
    login_instructions: str
    vote_confirmation: str
    after_election_message: str
    public_results: bool
    real_time_results: bool
    results_release_time: int
    allow_results_download: bool = False

    def as_args(self) -> list:
        """Positional argument order expected by the contract."""
        return [
            self.title,
            self.description,
            self.start_time,
            self.end_time,
            self.timezone,
            self.ballot_receipt,
            self.submit_confirmation,
            self.max_voters,
            self.allow_voter_registration,
            self.login_instructions,
            self.vote_confirmation,
            self.after_election_message,
            self.public_results,
            self.real_time_results,
            self.results_release_time,
            self.allow_results_download,
        ]


class ExternalDeployment(BaseModel):
    """A createElection transaction the creator sent from their own wallet."""

    ledger_address: str = Field(..., pattern=r"^0x[0-9a-fA-F]{40}$")
    tx_hash: str = Field(..., pattern=r"^0x[0-9a-fA-F]{64}$")


class TxReceipt(BaseModel):
    """The parts of a transaction receipt the service relies on."""

    tx_hash: str
    status: int
    block_number: Optional[int] = None
    to: Optional[str] = None
    from_address: Optional[str] = None
    gas_used: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class LedgerTransaction(BaseModel):
    """A transaction as broadcast, independent of its outcome."""

    tx_hash: str
    from_address: Optional[str] = None
    to: Optional[str] = None
    input: str = "0x"
    block_number: Optional[int] = None


class FeeParameters(BaseModel):
    """EIP-1559 fees in wei."""

    max_priority_fee_per_gas: int
    max_fee_per_gas: int


class FactoryInfo(BaseModel):
    factory_address: Optional[str] = None
    owner: Optional[str] = None
    signer_address: Optional[str] = None
    signer_authorized: Optional[bool] = None
    creation_fee_wei: Optional[int] = None


class PreflightResult(BaseModel):
    ok: bool
    reason: Optional[str] = None
    from_address: str
    payload: ElectionPayload
    start_time_adjusted: bool = False


class FollowUpResult(BaseModel):
    """Outcome of a best-effort step after publish."""

    attempted: bool = False
    succeeded: bool = False
    skipped_reason: Optional[str] = None
    error: Optional[str] = None
    tx_hash: Optional[str] = None


class RegistrationReport(BaseModel):
    """Per-voter outcome of a ledger registration run."""

    eligible: int = 0
    already_registered: int = 0
    registered: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
    tx_hashes: list[str] = Field(default_factory=list)


class DeploymentResult(BaseModel):
    election_id: str
    ledger_address: str
    tx_hash: str
    status: str
    start_time_adjusted: bool = False
    self_authorized: bool = False
    auto_start: FollowUpResult = Field(default_factory=FollowUpResult)
    voter_registration: RegistrationReport = Field(default_factory=RegistrationReport)


class StartResult(BaseModel):
    election_id: str
    status: str
    already_active: bool = False
    tx_hash: Optional[str] = None
