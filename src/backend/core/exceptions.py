"""
Domain error taxonomy.

Services raise these; the application maps each one to a JSON response
with the status code carried by the exception class.
"""

from typing import Any


class TallyError(Exception):
    """Base class for errors that translate directly into an HTTP response."""

    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.detail}


class ValidationError(TallyError):
    """Malformed input or a ballot that does not match the election's schema."""

    status_code = 400

    def __init__(self, detail: str, errors: list[str] | None = None) -> None:
        super().__init__(detail)
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        if self.errors:
            body["errors"] = self.errors
        return body


class AuthorizationError(TallyError):
    """Ownership, credential, or visibility failure."""

    status_code = 403


class NotFoundError(TallyError):
    status_code = 404


class ConflictError(TallyError):
    """Operation not allowed in the current state (already deployed, already voted, ...)."""

    status_code = 409


class ExternalLedgerError(TallyError):
    """Simulation revert, insufficient funds, failed or timed-out ledger call."""

    status_code = 502

    def __init__(self, detail: str, reason: str | None = None) -> None:
        super().__init__(detail)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        if self.reason:
            body["reason"] = self.reason
        return body


class LedgerRevertError(ExternalLedgerError):
    """A dry run or transaction was rejected by the contract."""


class ConfigurationError(TallyError):
    """A required setting (e.g. the signing key) is missing."""

    status_code = 500


class LedgerTransactionPendingError(ExternalLedgerError):
    """A transaction was broadcast but no receipt arrived; it may still be mined."""

    def __init__(self, detail: str, tx_hash: str, reason: str | None = None) -> None:
        super().__init__(detail, reason=reason)
        self.tx_hash = tx_hash

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["tx_hash"] = self.tx_hash
        return body
