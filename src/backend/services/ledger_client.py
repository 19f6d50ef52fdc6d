"""
External ledger client.

LedgerClient is the capability surface the election services depend on:
dry runs, fee data, balance, paying calls that wait for a receipt, and
read-only state queries. Web3LedgerClient implements it over an EVM JSON-RPC
endpoint with web3.py. Every network call is bounded by a timeout and every
failure surfaces as ExternalLedgerError (LedgerRevertError for contract
rejections), so callers never see raw RPC exceptions.

The signing key is read only from LEDGER_SIGNER_PRIVATE_KEY; there is no
fallback key.
"""

import asyncio
from functools import lru_cache
from typing import Any, Awaitable, Optional, Protocol, TypeVar, runtime_checkable

import structlog
from aiohttp import ClientError
from eth_abi import encode as abi_encode
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound, Web3Exception

from core.config import settings
from core.exceptions import (
    ConfigurationError,
    ExternalLedgerError,
    LedgerRevertError,
    LedgerTransactionPendingError,
)
from core.logging import shorten
from schemas.ledger import ElectionPayload, FeeParameters, LedgerTransaction, TxReceipt
from services.ledger_abi import (
    CAST_VOTE_SIGNATURE,
    CREATE_ELECTION_INPUTS,
    ELECTION_CORE_ABI,
    ELECTION_FACTORY_ABI,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

GWEI = 10**9


def resolve_signer_key() -> str:
    """
    Return the ledger signing key from configuration.

    Raises:
        ConfigurationError: If no key is configured
    """
    key = (settings.LEDGER_SIGNER_PRIVATE_KEY or "").strip()
    if not key:
        raise ConfigurationError("LEDGER_SIGNER_PRIVATE_KEY is not configured")
    return key


def resolve_fees(suggested: Optional[FeeParameters]) -> FeeParameters:
    """
    Apply configured caps and defaults to the chain's suggested fees.

    A configured cap wins; otherwise the chain's suggestion; otherwise the default.
    """
    if settings.MAX_PRIORITY_FEE_GWEI is not None:
        priority = int(settings.MAX_PRIORITY_FEE_GWEI * GWEI)
    elif suggested is not None:
        priority = suggested.max_priority_fee_per_gas
    else:
        priority = int(settings.DEFAULT_PRIORITY_FEE_GWEI * GWEI)

    if settings.MAX_FEE_GWEI is not None:
        max_fee = int(settings.MAX_FEE_GWEI * GWEI)
    elif suggested is not None:
        max_fee = suggested.max_fee_per_gas
    else:
        max_fee = int(settings.DEFAULT_MAX_FEE_GWEI * GWEI)

    return FeeParameters(max_priority_fee_per_gas=priority, max_fee_per_gas=max(max_fee, priority))


def deploy_gas_limit() -> int:
    """Configured publish gas budget, never below the minimum."""
    return max(settings.DEPLOY_GAS_LIMIT, settings.MIN_DEPLOY_GAS_LIMIT)


def revert_reason(error: BaseException) -> str:
    """Best-effort human-readable reason from a contract error."""
    message = getattr(error, "message", None) or str(error)
    return message.replace("execution reverted: ", "").strip() or "execution reverted"


@runtime_checkable
class LedgerClient(Protocol):
    """Capabilities of the external ledger used by deployment and voting."""

    chain_id: int
    factory_address: Optional[str]

    def signer_address(self) -> str: ...
    async def factory_owner(self) -> Optional[str]: ...
    async def is_authorized_creator(self, address: str) -> Optional[bool]: ...
    async def creation_fee(self) -> int: ...
    async def simulate_publish(self, payload: ElectionPayload, from_address: str, value: int = 0) -> str: ...
    async def authorize_creator(self, address: str) -> TxReceipt: ...
    async def suggested_fees(self) -> Optional[FeeParameters]: ...
    async def get_balance(self, address: str) -> int: ...
    async def publish_election(
        self, payload: ElectionPayload, gas_limit: int, fees: FeeParameters, value: int = 0
    ) -> TxReceipt: ...
    async def is_election_active(self, contract_address: str) -> bool: ...
    async def start_election(self, contract_address: str) -> TxReceipt: ...
    async def is_voter_registered(self, contract_address: str, voter_id: str) -> bool: ...
    async def has_voter_voted(self, contract_address: str, voter_id: str) -> bool: ...
    async def register_voters(
        self, contract_address: str, voter_ids: list[str], credentials: list[str]
    ) -> TxReceipt: ...
    def encode_cast_vote(self, vote_hash: str, voter_id: str) -> str: ...
    async def simulate_cast_vote(
        self, contract_address: str, vote_hash: str, voter_id: str, from_address: str
    ) -> None: ...
    async def estimate_cast_vote_gas(
        self, contract_address: str, vote_hash: str, voter_id: str, from_address: str
    ) -> int: ...
    async def cast_vote(
        self, contract_address: str, vote_hash: str, voter_id: str, gas_limit: int, fees: FeeParameters
    ) -> TxReceipt: ...
    async def get_receipt(self, tx_hash: str) -> Optional[TxReceipt]: ...
    async def get_transaction(self, tx_hash: str) -> Optional[LedgerTransaction]: ...
    def decode_publish(self, input_data: str) -> Optional[ElectionPayload]: ...


class Web3LedgerClient:
    """LedgerClient over an EVM JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        factory_address: Optional[str],
        chain_id: int,
        call_timeout: float = 30.0,
        receipt_timeout: float = 180.0,
    ):
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.chain_id = chain_id
        self.factory_address = AsyncWeb3.to_checksum_address(factory_address) if factory_address else None
        self.call_timeout = call_timeout
        self.receipt_timeout = receipt_timeout
        # Serializes nonce assignment for the single signer
        self._send_lock = asyncio.Lock()

    # ========================================================================
    # Plumbing
    # ========================================================================

    async def _bounded(self, awaitable: Awaitable[T], operation: str, timeout: Optional[float] = None) -> T:
        """Await a ledger call with a timeout, translating failures to domain errors."""
        try:
            return await asyncio.wait_for(awaitable, timeout or self.call_timeout)
        except asyncio.TimeoutError as e:
            logger.warning("ledger_call_timeout", operation=operation)
            raise ExternalLedgerError(f"Ledger call '{operation}' timed out") from e
        except ContractLogicError as e:
            reason = revert_reason(e)
            logger.info("ledger_call_reverted", operation=operation, reason=reason)
            raise LedgerRevertError(f"Ledger rejected '{operation}'", reason=reason) from e
        except TimeExhausted as e:
            raise ExternalLedgerError(f"No receipt for '{operation}' within the timeout") from e
        except (Web3Exception, ClientError, ValueError) as e:
            logger.warning("ledger_call_failed", operation=operation, error=str(e))
            raise ExternalLedgerError(f"Ledger call '{operation}' failed", reason=str(e)) from e

    def _factory(self):
        if not self.factory_address:
            raise ConfigurationError("LEDGER_FACTORY_ADDRESS is not configured")
        return self.w3.eth.contract(address=self.factory_address, abi=ELECTION_FACTORY_ABI)

    def _election(self, contract_address: str):
        return self.w3.eth.contract(address=AsyncWeb3.to_checksum_address(contract_address), abi=ELECTION_CORE_ABI)

    def signer_address(self) -> str:
        return Account.from_key(resolve_signer_key()).address

    async def _transact(
        self,
        function: Any,
        operation: str,
        gas_limit: Optional[int] = None,
        fees: Optional[FeeParameters] = None,
        value: int = 0,
    ) -> TxReceipt:
        """
        Build, sign, send, and wait for a contract transaction from the signer.

        Raises:
            ExternalLedgerError: The transaction was not sent, or it was mined
                and the receipt could not be read
            LedgerTransactionPendingError: The transaction may have been sent
                but no receipt arrived in time
        """
        private_key = resolve_signer_key()
        sender = Account.from_key(private_key).address
        fees = fees or resolve_fees(await self.suggested_fees())

        async with self._send_lock:
            nonce = await self._bounded(self.w3.eth.get_transaction_count(sender, "pending"), "get_nonce")
            tx_params: dict[str, Any] = {
                "from": sender,
                "nonce": nonce,
                "chainId": self.chain_id,
                "value": value,
                "maxPriorityFeePerGas": fees.max_priority_fee_per_gas,
                "maxFeePerGas": fees.max_fee_per_gas,
            }
            if gas_limit:
                tx_params["gas"] = gas_limit
            tx = await self._bounded(function.build_transaction(tx_params), f"{operation}:build")
            signed = Account.sign_transaction(tx, private_key)
            raw_tx = getattr(signed, "raw_transaction", None) or signed.rawTransaction
            tx_hash_hex = AsyncWeb3.to_hex(signed.hash).lower()
            try:
                await self._bounded(self.w3.eth.send_raw_transaction(raw_tx), f"{operation}:send")
            except ExternalLedgerError as e:
                # A timed-out send may still have reached the node
                if isinstance(e.__cause__, asyncio.TimeoutError):
                    raise LedgerTransactionPendingError(
                        f"Ledger did not acknowledge '{operation}'", tx_hash=tx_hash_hex, reason=e.detail
                    ) from e
                raise

        logger.info("ledger_tx_sent", operation=operation, tx_hash=shorten(tx_hash_hex))
        try:
            receipt = await self._bounded(
                self.w3.eth.wait_for_transaction_receipt(tx_hash_hex, timeout=self.receipt_timeout),
                f"{operation}:receipt",
                timeout=self.receipt_timeout + 5,
            )
        except ExternalLedgerError as e:
            logger.warning("ledger_tx_unconfirmed", operation=operation, tx_hash=shorten(tx_hash_hex))
            raise LedgerTransactionPendingError(
                f"No receipt for '{operation}' yet", tx_hash=tx_hash_hex, reason=e.reason or e.detail
            ) from e
        return self._to_receipt(receipt)

    @staticmethod
    def _to_receipt(receipt: Any) -> TxReceipt:
        return TxReceipt(
            tx_hash=AsyncWeb3.to_hex(receipt["transactionHash"]).lower(),
            status=int(receipt["status"]),
            block_number=receipt.get("blockNumber"),
            to=receipt.get("to"),
            from_address=receipt.get("from"),
            gas_used=receipt.get("gasUsed"),
        )

    # ========================================================================
    # Factory
    # ========================================================================

    async def factory_owner(self) -> Optional[str]:
        return await self._bounded(self._factory().functions.owner().call(), "owner")

    async def is_authorized_creator(self, address: str) -> Optional[bool]:
        return await self._bounded(
            self._factory().functions.authorizedCreators(AsyncWeb3.to_checksum_address(address)).call(),
            "authorizedCreators",
        )

    async def creation_fee(self) -> int:
        try:
            return int(await self._bounded(self._factory().functions.creationFee().call(), "creationFee"))
        except LedgerRevertError:
            # Factories without a fee revert on the selector
            return 0

    async def simulate_publish(self, payload: ElectionPayload, from_address: str, value: int = 0) -> str:
        """Dry-run createElection and return the address it would create."""
        function = self._factory().functions.createElection(*payload.as_args())
        return await self._bounded(
            function.call({"from": AsyncWeb3.to_checksum_address(from_address), "value": value}),
            "createElection:simulate",
        )

    async def authorize_creator(self, address: str) -> TxReceipt:
        function = self._factory().functions.authorizeCreator(AsyncWeb3.to_checksum_address(address))
        return await self._transact(function, "authorizeCreator")

    async def publish_election(
        self, payload: ElectionPayload, gas_limit: int, fees: FeeParameters, value: int = 0
    ) -> TxReceipt:
        function = self._factory().functions.createElection(*payload.as_args())
        return await self._transact(function, "createElection", gas_limit=gas_limit, fees=fees, value=value)

    def decode_publish(self, input_data: str) -> Optional[ElectionPayload]:
        """Decode createElection calldata; None when the data is any other call."""
        try:
            function, params = self._factory().decode_function_input(input_data)
        except (ValueError, Web3Exception):
            return None
        if function.fn_name != "createElection":
            return None
        values = [params[arg["name"]] for arg in CREATE_ELECTION_INPUTS]
        return ElectionPayload(**dict(zip(ElectionPayload.model_fields, values)))

    # ========================================================================
    # Accounts and fees
    # ========================================================================

    async def suggested_fees(self) -> Optional[FeeParameters]:
        """Chain fee suggestion: priority fee plus twice the latest base fee."""
        try:
            priority = await self._bounded(self.w3.eth.max_priority_fee, "max_priority_fee")
            block = await self._bounded(self.w3.eth.get_block("latest"), "get_block")
        except ExternalLedgerError:
            return None
        base_fee = block.get("baseFeePerGas")
        if base_fee is None:
            return None
        return FeeParameters(max_priority_fee_per_gas=priority, max_fee_per_gas=base_fee * 2 + priority)

    async def get_balance(self, address: str) -> int:
        return await self._bounded(self.w3.eth.get_balance(AsyncWeb3.to_checksum_address(address)), "get_balance")

    async def get_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        try:
            receipt = await self._bounded(self.w3.eth.get_transaction_receipt(tx_hash), "get_receipt")
        except ExternalLedgerError as e:
            if isinstance(e.__cause__, TransactionNotFound):
                return None
            raise
        return self._to_receipt(receipt)

    async def get_transaction(self, tx_hash: str) -> Optional[LedgerTransaction]:
        try:
            tx = await self._bounded(self.w3.eth.get_transaction(tx_hash), "get_transaction")
        except ExternalLedgerError as e:
            if isinstance(e.__cause__, TransactionNotFound):
                return None
            raise
        return LedgerTransaction(
            tx_hash=AsyncWeb3.to_hex(tx["hash"]).lower(),
            from_address=tx.get("from"),
            to=tx.get("to"),
            input=AsyncWeb3.to_hex(tx.get("input") or b"").lower(),
            block_number=tx.get("blockNumber"),
        )

    # ========================================================================
    # Election contract
    # ========================================================================

    async def is_election_active(self, contract_address: str) -> bool:
        return await self._bounded(
            self._election(contract_address).functions.isElectionActive().call(), "isElectionActive"
        )

    async def start_election(self, contract_address: str) -> TxReceipt:
        return await self._transact(self._election(contract_address).functions.startElection(), "startElection")

    async def is_voter_registered(self, contract_address: str, voter_id: str) -> bool:
        return await self._bounded(
            self._election(contract_address).functions.isVoterIdRegistered(voter_id).call(), "isVoterIdRegistered"
        )

    async def has_voter_voted(self, contract_address: str, voter_id: str) -> bool:
        return await self._bounded(
            self._election(contract_address).functions.hasVoterIdVoted(voter_id).call(), "hasVoterIdVoted"
        )

    async def register_voters(self, contract_address: str, voter_ids: list[str], credentials: list[str]) -> TxReceipt:
        function = self._election(contract_address).functions.batchRegisterVoterIds(voter_ids, credentials)
        return await self._transact(function, "batchRegisterVoterIds")

    def encode_cast_vote(self, vote_hash: str, voter_id: str) -> str:
        """ABI-encode castVoteById calldata for a client wallet to sign."""
        selector = AsyncWeb3.keccak(text=CAST_VOTE_SIGNATURE)[:4]
        arguments = abi_encode(["bytes32", "string"], [bytes.fromhex(vote_hash.removeprefix("0x")), voter_id])
        return "0x" + (selector + arguments).hex()

    def _cast_vote_function(self, contract_address: str, vote_hash: str, voter_id: str):
        return self._election(contract_address).functions.castVoteById(
            bytes.fromhex(vote_hash.removeprefix("0x")), voter_id
        )

    async def simulate_cast_vote(self, contract_address: str, vote_hash: str, voter_id: str, from_address: str) -> None:
        function = self._cast_vote_function(contract_address, vote_hash, voter_id)
        await self._bounded(
            function.call({"from": AsyncWeb3.to_checksum_address(from_address)}), "castVoteById:simulate"
        )

    async def estimate_cast_vote_gas(
        self, contract_address: str, vote_hash: str, voter_id: str, from_address: str
    ) -> int:
        function = self._cast_vote_function(contract_address, vote_hash, voter_id)
        return await self._bounded(
            function.estimate_gas({"from": AsyncWeb3.to_checksum_address(from_address)}), "castVoteById:estimate"
        )

    async def cast_vote(
        self, contract_address: str, vote_hash: str, voter_id: str, gas_limit: int, fees: FeeParameters
    ) -> TxReceipt:
        function = self._cast_vote_function(contract_address, vote_hash, voter_id)
        return await self._transact(function, "castVoteById", gas_limit=gas_limit, fees=fees)


@lru_cache
def _ledger_client() -> LedgerClient:
    return Web3LedgerClient(
        rpc_url=settings.LEDGER_RPC_URL,
        factory_address=settings.LEDGER_FACTORY_ADDRESS,
        chain_id=settings.LEDGER_CHAIN_ID,
        call_timeout=settings.LEDGER_CALL_TIMEOUT_SECONDS,
        receipt_timeout=settings.LEDGER_RECEIPT_TIMEOUT_SECONDS,
    )


async def get_ledger_client() -> LedgerClient:
    """
    Get the shared ledger client.

    Raises:
        ConfigurationError: If the RPC endpoint or factory address is missing
    """
    if not settings.ledger_configured:
        raise ConfigurationError("Ledger is not configured. Set LEDGER_RPC_URL and LEDGER_FACTORY_ADDRESS.")
    return _ledger_client()
