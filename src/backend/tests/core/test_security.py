"""
Tests for creator tokens, voter secrets and ballot hashes.
"""

from datetime import timedelta

import pytest

from core.security import (
    VOTER_SECRET_ALPHABET,
    create_access_token,
    decode_token,
    generate_ballot_hash,
    generate_verification_token,
    generate_voter_secret,
)


@pytest.mark.unit
class TestCreatorTokens:
    """JWT creation and validation."""

    def test_round_trip(self):
        payload = decode_token(create_access_token("creator-1"))

        assert payload is not None
        assert payload["sub"] == "creator-1"
        assert payload["type"] == "access"

    def test_extra_claims_kept(self):
        payload = decode_token(create_access_token("creator-1", extra_claims={"org": "acme"}))

        assert payload["org"] == "acme"

    def test_expired_token_rejected(self):
        token = create_access_token("creator-1", expires_delta=timedelta(seconds=-1))

        assert decode_token(token) is None

    def test_wrong_type_rejected(self):
        token = create_access_token("creator-1", extra_claims={"type": "refresh"})

        assert decode_token(token) is not None
        assert decode_token(token, expected_type="refresh") is None

    def test_garbage_rejected(self):
        assert decode_token("not-a-token") is None


@pytest.mark.unit
class TestVoterCredentials:
    """Random voter secrets and verification tokens."""

    def test_secret_uses_unambiguous_alphabet(self):
        secret = generate_voter_secret(200)

        assert len(secret) == 200
        assert set(secret) <= set(VOTER_SECRET_ALPHABET)
        assert not {"0", "O", "1", "I"} & set(secret)

    def test_default_secret_length(self):
        from core.config import settings

        assert len(generate_voter_secret()) == settings.VOTER_SECRET_LENGTH

    def test_verification_token_is_64_hex_chars(self):
        token = generate_verification_token()

        assert len(token) == 64
        int(token, 16)
        assert generate_verification_token() != token


@pytest.mark.unit
class TestBallotHash:
    """Hashes recorded with each vote and sent to the ledger."""

    CHOICES = [{"question_id": "chair", "selected_options": ["alice"]}]

    def test_hash_format(self):
        vote_hash = generate_ballot_hash("election-1", "V001", self.CHOICES)

        assert vote_hash.startswith("0x")
        assert len(vote_hash) == 66

    def test_key_order_does_not_matter(self):
        reordered = [{"selected_options": ["alice"], "question_id": "chair"}]

        assert generate_ballot_hash("e", "V001", self.CHOICES) == generate_ballot_hash("e", "V001", reordered)

    @pytest.mark.parametrize(
        "election_id,voter_id,choices",
        [
            ("election-2", "V001", CHOICES),
            ("election-1", "V002", CHOICES),
            ("election-1", "V001", [{"question_id": "chair", "selected_options": ["bob"]}]),
        ],
    )
    def test_hash_commits_to_inputs(self, election_id, voter_id, choices):
        assert generate_ballot_hash(election_id, voter_id, choices) != generate_ballot_hash(
            "election-1", "V001", self.CHOICES
        )
