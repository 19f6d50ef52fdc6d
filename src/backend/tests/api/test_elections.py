"""
Tests for election API endpoints.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from fakes import CONTRACT
from models.documents import ElectionStatus


def election_payload(**overrides) -> dict:
    now = datetime.now(timezone.utc)
    payload = {
        "title": "Board Election",
        "description": "Annual board election",
        "start_time": (now + timedelta(hours=2)).isoformat(),
        "end_time": (now + timedelta(days=2)).isoformat(),
        "max_voters_count": 25,
    }
    payload.update(overrides)
    return payload


@pytest.mark.unit
class TestElectionAuthentication:
    """Creator endpoints require a bearer token."""

    async def test_create_requires_authentication(self, client: AsyncClient, wired_app) -> None:
        response = await client.post("/api/v1/elections", json=election_payload())
        assert response.status_code in [401, 403]

    async def test_invalid_token_rejected(self, client: AsyncClient, wired_app) -> None:
        response = await client.get("/api/v1/elections", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


@pytest.mark.unit
class TestElectionCrud:
    """Draft lifecycle through the API."""

    async def test_create_election(self, client: AsyncClient, wired_app, auth_headers, elections, creator_id) -> None:
        response = await client.post("/api/v1/elections", json=election_payload(), headers=auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "DRAFT"
        assert data["creator_id"] == creator_id
        assert data["ledger_address"] is None
        assert data["id"] in elections.items

    async def test_create_rejects_inverted_schedule(self, client: AsyncClient, wired_app, auth_headers) -> None:
        now = datetime.now(timezone.utc)
        payload = election_payload(
            start_time=(now + timedelta(days=2)).isoformat(), end_time=(now + timedelta(days=1)).isoformat()
        )

        response = await client.post("/api/v1/elections", json=payload, headers=auth_headers)

        assert response.status_code in [400, 422]
        assert "detail" in response.json()

    async def test_list_my_elections(self, client: AsyncClient, wired_app, auth_headers) -> None:
        for title in ("First", "Second"):
            await client.post("/api/v1/elections", json=election_payload(title=title), headers=auth_headers)

        response = await client.get("/api/v1/elections", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert {e["title"] for e in data["elections"]} == {"First", "Second"}

    async def test_owner_sees_full_record(self, client: AsyncClient, wired_app, auth_headers, elections,
                                          draft_election) -> None:
        await elections.create(draft_election)

        response = await client.get(f"/api/v1/elections/{draft_election.id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["creator_id"] == draft_election.creator_id

    async def test_private_draft_hidden_from_strangers(self, client: AsyncClient, wired_app, elections,
                                                       draft_election) -> None:
        await elections.create(draft_election)

        response = await client.get(f"/api/v1/elections/{draft_election.id}")

        assert response.status_code == 404

    async def test_unknown_election(self, client: AsyncClient, wired_app, auth_headers) -> None:
        response = await client.get("/api/v1/elections/missing", headers=auth_headers)

        assert response.status_code == 404
        assert "detail" in response.json()

    async def test_update_draft(self, client: AsyncClient, wired_app, auth_headers, elections, draft_election) -> None:
        await elections.create(draft_election)

        response = await client.patch(
            f"/api/v1/elections/{draft_election.id}", json={"title": "Renamed"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert elections.items[draft_election.id].title == "Renamed"

    async def test_update_with_null_is_bad_request(self, client: AsyncClient, wired_app, auth_headers, elections,
                                                   draft_election) -> None:
        await elections.create(draft_election)

        response = await client.patch(
            f"/api/v1/elections/{draft_election.id}", json={"max_voters_count": None}, headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["errors"] == ["max_voters_count cannot be null"]

    async def test_update_active_election_conflicts(self, client: AsyncClient, wired_app, auth_headers, elections,
                                                    active_election) -> None:
        await elections.create(active_election)

        response = await client.patch(
            f"/api/v1/elections/{active_election.id}", json={"title": "Renamed"}, headers=auth_headers
        )

        assert response.status_code == 409

    async def test_delete_draft(self, client: AsyncClient, wired_app, auth_headers, elections, draft_election) -> None:
        await elections.create(draft_election)

        response = await client.delete(f"/api/v1/elections/{draft_election.id}", headers=auth_headers)

        assert response.status_code == 204
        assert draft_election.id not in elections.items

    async def test_other_creator_cannot_delete(self, client: AsyncClient, wired_app, elections,
                                               draft_election) -> None:
        from core.security import create_access_token

        await elections.create(draft_election)
        headers = {"Authorization": f"Bearer {create_access_token('someone-else')}"}

        response = await client.delete(f"/api/v1/elections/{draft_election.id}", headers=headers)

        assert response.status_code in [403, 404]
        assert draft_election.id in elections.items


@pytest.mark.unit
class TestDeploymentEndpoints:
    """Publishing a draft to the ledger."""

    async def test_deploy_draft(self, client: AsyncClient, wired_app, auth_headers, elections,
                                draft_election) -> None:
        await elections.create(draft_election)

        response = await client.post(f"/api/v1/elections/{draft_election.id}/deploy", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["ledger_address"] == CONTRACT
        assert data["tx_hash"].startswith("0x")
        stored = elections.items[draft_election.id]
        assert stored.status == ElectionStatus.SCHEDULED
        assert stored.ledger_address == CONTRACT

    async def test_second_deploy_conflicts(self, client: AsyncClient, wired_app, auth_headers, elections,
                                           draft_election) -> None:
        await elections.create(draft_election)
        first = await client.post(f"/api/v1/elections/{draft_election.id}/deploy", headers=auth_headers)

        second = await client.post(f"/api/v1/elections/{draft_election.id}/deploy", headers=auth_headers)

        assert first.status_code == 200
        assert second.status_code == 409
        assert "detail" in second.json()

    async def test_unauthorized_signer_reports_reason(self, client: AsyncClient, wired_app, auth_headers, elections,
                                                      draft_election, ledger) -> None:
        await elections.create(draft_election)
        ledger.authorized = False
        ledger.owner = "0x" + "99" * 20

        response = await client.post(f"/api/v1/elections/{draft_election.id}/deploy", headers=auth_headers)

        assert response.status_code == 502
        assert elections.items[draft_election.id].status == ElectionStatus.DRAFT
        assert elections.items[draft_election.id].ledger_address is None

    async def test_preflight(self, client: AsyncClient, wired_app, auth_headers, elections, draft_election) -> None:
        await elections.create(draft_election)

        response = await client.post(f"/api/v1/elections/{draft_election.id}/preflight", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["ok"] is True

    async def test_update_deployment_from_wallet(self, client: AsyncClient, wired_app, auth_headers, elections,
                                                 draft_election, ledger) -> None:
        from services.deployment_orchestrator import build_payload

        await elections.create(draft_election)
        receipt = await ledger.publish_election(build_payload(draft_election, draft_election.start_time), 0, None)
        ledger.receipts[receipt.tx_hash] = receipt

        response = await client.post(
            f"/api/v1/elections/{draft_election.id}/update-deployment",
            json={"ledger_address": CONTRACT, "tx_hash": receipt.tx_hash},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["tx_hash"] == receipt.tx_hash
        assert elections.items[draft_election.id].status == ElectionStatus.SCHEDULED

    async def test_update_deployment_with_unrelated_transaction(self, client: AsyncClient, wired_app, auth_headers,
                                                                elections, draft_election, ledger) -> None:
        await elections.create(draft_election)
        receipt = await ledger.start_election(CONTRACT)
        ledger.receipts[receipt.tx_hash] = receipt

        response = await client.post(
            f"/api/v1/elections/{draft_election.id}/update-deployment",
            json={"ledger_address": CONTRACT, "tx_hash": receipt.tx_hash},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert elections.items[draft_election.id].ledger_address is None

    async def test_update_deployment_rejects_malformed_hash(self, client: AsyncClient, wired_app, auth_headers,
                                                            elections, draft_election) -> None:
        await elections.create(draft_election)

        response = await client.post(
            f"/api/v1/elections/{draft_election.id}/update-deployment",
            json={"ledger_address": CONTRACT, "tx_hash": "0x1234"},
            headers=auth_headers,
        )

        assert response.status_code in [400, 422]
