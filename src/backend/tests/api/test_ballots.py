"""
Tests for ballot API endpoints.
"""

import pytest
from httpx import AsyncClient

from models.documents import BallotDocument, BallotKind


def ballot_url(election_id: str, path: str = "") -> str:
    return f"/api/v1/elections/{election_id}/ballot{path}"


@pytest.mark.unit
class TestBallotEndpoints:
    """Saving, publishing, exporting and deleting ballots."""

    async def test_save_then_publish(self, client: AsyncClient, wired_app, auth_headers, elections, ballots,
                                     draft_election, sample_questions) -> None:
        await elections.create(draft_election)
        saved = await client.put(ballot_url(draft_election.id), json={"questions": sample_questions},
                                 headers=auth_headers)

        response = await client.post(ballot_url(draft_election.id, "/publish"), headers=auth_headers)

        assert saved.status_code == 200
        assert saved.json()["published_at"] is None
        assert response.status_code == 200
        assert response.json()["published_at"] is not None
        assert ballots.items[saved.json()["id"]].published_at is not None

    async def test_unpublish(self, client: AsyncClient, wired_app, auth_headers, elections, ballots,
                             draft_election, sample_questions) -> None:
        await elections.create(draft_election)
        await client.put(ballot_url(draft_election.id), json={"questions": sample_questions}, headers=auth_headers)
        await client.post(ballot_url(draft_election.id, "/publish"), headers=auth_headers)

        response = await client.post(ballot_url(draft_election.id, "/unpublish"), headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["published_at"] is None

    async def test_publish_without_ballot(self, client: AsyncClient, wired_app, auth_headers, elections,
                                          draft_election) -> None:
        await elections.create(draft_election)

        response = await client.post(ballot_url(draft_election.id, "/publish"), headers=auth_headers)

        assert response.status_code == 404

    async def test_export(self, client: AsyncClient, wired_app, auth_headers, elections, draft_election,
                          sample_questions) -> None:
        await elections.create(draft_election)
        await client.put(ballot_url(draft_election.id), json={"questions": sample_questions}, headers=auth_headers)

        response = await client.get(ballot_url(draft_election.id, "/export"), headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["election_id"] == draft_election.id
        assert data["version"] == 1
        assert [q["question_id"] for q in data["questions"]] == ["chair", "committees", "priorities", "comments"]
        assert "validation" not in data["questions"][0]

    async def test_export_requires_owner(self, client: AsyncClient, wired_app, elections, draft_election) -> None:
        await elections.create(draft_election)

        response = await client.get(ballot_url(draft_election.id, "/export"))

        assert response.status_code in [401, 403]

    async def test_delete_candidates(self, client: AsyncClient, wired_app, auth_headers, elections, ballots,
                                     active_election, sample_questions) -> None:
        await elections.create(active_election)
        await ballots.create(BallotDocument(election_id=active_election.id, questions=sample_questions))
        await ballots.create(
            BallotDocument(election_id=active_election.id, kind=BallotKind.CANDIDATES, questions=sample_questions[:1])
        )

        response = await client.delete(ballot_url(active_election.id, "/candidates"), headers=auth_headers)
        again = await client.delete(ballot_url(active_election.id, "/candidates"), headers=auth_headers)

        assert response.status_code == 204
        assert again.status_code == 404
        assert [b.kind for b in ballots.items.values()] == [BallotKind.QUESTIONS]
