"""Security utilities: creator tokens, voter credentials, and ballot hashes.

Creator tokens are issued by an external identity service and only verified here.
Voter secrets are random strings from an unambiguous alphabet.
"""

import hashlib
import json
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from core.config import settings

# No 0/O or 1/I to keep secrets readable when typed by hand
VOTER_SECRET_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def create_access_token(
    subject: str,
    expires_delta: timedelta | None = None,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """Create a creator JWT. Used by tooling and tests; production tokens come from the identity service."""
    now = datetime.now(timezone.utc)
    to_encode: dict[str, Any] = dict(extra_claims or {})
    to_encode.update(
        {
            "sub": subject,
            "exp": now + (expires_delta or timedelta(minutes=30)),
            "iat": now,
            "type": "access",
            "iss": settings.JWT_ISSUER,
            "aud": settings.JWT_AUDIENCE,
            "jti": secrets.token_urlsafe(16),
        }
    )
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, expected_type: str | None = "access") -> dict[str, Any] | None:
    """
    Decode and validate a JWT token.

    Returns:
        The decoded payload or None if invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError:
        return None
    if expected_type and payload.get("type") != expected_type:
        return None
    return payload


def generate_voter_secret(length: int | None = None) -> str:
    """Generate a voter secret of VOTER_SECRET_LENGTH characters."""
    size = length or settings.VOTER_SECRET_LENGTH
    return "".join(secrets.choice(VOTER_SECRET_ALPHABET) for _ in range(size))


def generate_verification_token() -> str:
    """32 random bytes, hex encoded."""
    return secrets.token_hex(32)


def generate_ballot_hash(election_id: str, voter_id: str, choices: list[dict[str, Any]]) -> str:
    """
    Hash a submitted ballot for the ledger's castVote call.

    The hash commits to the election, the voter and the canonical JSON of the
    choices, so it can be recomputed from the stored vote for audit.

    Returns:
        0x-prefixed 32-byte hex digest
    """
    canonical = json.dumps(choices, sort_keys=True, separators=(",", ":"))
    data = f"{election_id}:{voter_id}:{canonical}"
    return "0x" + hashlib.sha256(data.encode()).hexdigest()
