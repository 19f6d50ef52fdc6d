"""
Pytest fixtures for Tally backend tests.
"""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
# base64 of 32 bytes
os.environ.setdefault("FIELD_ENCRYPTION_KEY", "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA=")

from fakes import (  # noqa: E402
    FakeBallotRepository,
    FakeElectionRepository,
    FakeLedgerClient,
    FakeVoteRepository,
    FakeVoterRepository,
)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
async def app() -> Any:
    """Create FastAPI application for testing."""
    from main import app as fastapi_app

    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def client(app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Origin": "http://localhost:3000"},
    ) as ac:
        yield ac


# =============================================================================
# In-memory collaborators
# =============================================================================


@pytest.fixture
def elections() -> FakeElectionRepository:
    return FakeElectionRepository()


@pytest.fixture
def voters() -> FakeVoterRepository:
    return FakeVoterRepository()


@pytest.fixture
def ballots() -> FakeBallotRepository:
    return FakeBallotRepository()


@pytest.fixture
def votes() -> FakeVoteRepository:
    return FakeVoteRepository()


@pytest.fixture
def ledger() -> FakeLedgerClient:
    return FakeLedgerClient()


# =============================================================================
# Sample data
# =============================================================================


@pytest.fixture
def creator_id() -> str:
    return "creator-123"


@pytest.fixture
def auth_headers(creator_id: str) -> dict[str, str]:
    """Bearer token for the sample creator."""
    from core.security import create_access_token

    return {"Authorization": f"Bearer {create_access_token(creator_id)}"}


@pytest.fixture
def draft_election(creator_id: str):
    """A draft election starting in one hour and running for a day."""
    from models.documents import ElectionDocument

    now = datetime.now(timezone.utc)
    return ElectionDocument(
        creator_id=creator_id,
        title="Board Election",
        description="Annual board election",
        start_time=now + timedelta(hours=1),
        end_time=now + timedelta(days=1),
        max_voters_count=10,
    )


@pytest.fixture
def active_election(creator_id: str):
    """An election that is open for voting and deployed to the ledger."""
    from fakes import CONTRACT
    from models.documents import ElectionDocument, ElectionStatus

    now = datetime.now(timezone.utc)
    return ElectionDocument(
        creator_id=creator_id,
        title="Budget Vote",
        start_time=now - timedelta(hours=1),
        end_time=now + timedelta(days=1),
        status=ElectionStatus.ACTIVE,
        real_time_results=True,
        is_public=True,
        max_voters_count=10,
        ledger_address=CONTRACT,
        started_at=now - timedelta(hours=1),
    )


@pytest.fixture
def sample_questions() -> list[dict[str, Any]]:
    """One question of each type."""
    return [
        {
            "question_id": "chair",
            "question": "Who should chair the board?",
            "type": "single",
            "required": True,
            "order": 0,
            "options": [
                {"option_id": "alice", "text": "Alice"},
                {"option_id": "bob", "text": "Bob"},
            ],
        },
        {
            "question_id": "committees",
            "question": "Which committees should exist?",
            "type": "multiple",
            "order": 1,
            "validation": {"max_selections": 2},
            "options": [
                {"option_id": "audit", "text": "Audit"},
                {"option_id": "finance", "text": "Finance"},
                {"option_id": "events", "text": "Events"},
            ],
        },
        {
            "question_id": "priorities",
            "question": "Rank the priorities",
            "type": "ranking",
            "order": 2,
            "options": [
                {"option_id": "a", "text": "A"},
                {"option_id": "b", "text": "B"},
            ],
        },
        {
            "question_id": "comments",
            "question": "Any comments?",
            "type": "text",
            "order": 3,
            "validation": {"max_length": 20},
        },
    ]


@pytest.fixture
def wired_app(app: Any, elections, voters, ballots, votes, ledger) -> Any:
    """The app with storage and ledger dependencies pointed at the in-memory fakes."""
    from repositories.provider import (
        get_ballot_repository,
        get_election_repository,
        get_vote_repository,
        get_voter_repository,
    )
    from api.deps import get_optional_ledger_client
    from services.ledger_client import get_ledger_client

    app.dependency_overrides[get_election_repository] = lambda: elections
    app.dependency_overrides[get_voter_repository] = lambda: voters
    app.dependency_overrides[get_ballot_repository] = lambda: ballots
    app.dependency_overrides[get_vote_repository] = lambda: votes
    app.dependency_overrides[get_ledger_client] = lambda: ledger
    app.dependency_overrides[get_optional_ledger_client] = lambda: ledger
    return app
