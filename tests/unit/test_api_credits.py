"""Tests for the credits and transactions endpoints."""

import uuid

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.models import CreditPlan
from creditflow.providers.errors import PaymentGatewayError
from creditflow.providers.payments.mock_adapter import MockPaymentGateway
from tests.conftest import create_plan

# =============================================================================
# GET /credits/balance, /credits/plans
# =============================================================================


class TestBalance:
    async def test_returns_balance(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/credits/balance")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_credits"] == 10
        assert data["used_credits"] == 0
        assert data["available_credits"] == 10
        assert "as_of" in data

    async def test_requires_auth(self, unauthenticated_client: AsyncClient) -> None:
        response = await unauthenticated_client.get("/api/v1/credits/balance")

        assert response.status_code == 401

    async def test_responses_are_not_cached(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/credits/balance")

        assert response.headers["Cache-Control"] == "no-store, max-age=0"


class TestPlans:
    async def test_lists_active_plans_in_order(
        self, unauthenticated_client: AsyncClient, db_session: AsyncSession
    ) -> None:
        await create_plan(db_session, name="Empresarial", credits=500, display_order=3)
        await create_plan(db_session, name="Iniciante", credits=10, display_order=1)
        await create_plan(db_session, name="Legado", is_active=False, display_order=2)

        response = await unauthenticated_client.get("/api/v1/credits/plans")

        assert response.status_code == 200
        assert [p["name"] for p in response.json()["data"]] == [
            "Iniciante",
            "Empresarial",
        ]


# =============================================================================
# /transactions
# =============================================================================


class TestCreatePurchase:
    async def test_returns_pix_charge(
        self,
        client: AsyncClient,
        starter_plan: CreditPlan,
        mock_gateway: MockPaymentGateway,
    ) -> None:
        response = await client.post(
            "/api/v1/transactions", json={"plan_id": str(starter_plan.id)}
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "pending"
        assert data["amount_in_cents"] == 2990
        assert data["pix_copy_paste"]
        assert data["qr_code"]
        assert data["expires_at"] is not None
        assert mock_gateway.calls[0]["payer_email"] == "test@example.com"

    async def test_unknown_plan_is_404(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/transactions", json={"plan_id": str(uuid.uuid4())}
        )

        assert response.status_code == 404

    async def test_gateway_failure_is_502(
        self,
        client: AsyncClient,
        starter_plan: CreditPlan,
        mock_gateway: MockPaymentGateway,
    ) -> None:
        mock_gateway.fail_create = PaymentGatewayError("down")

        response = await client.post(
            "/api/v1/transactions", json={"plan_id": str(starter_plan.id)}
        )
        listing = await client.get("/api/v1/transactions")

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "PAYMENT_GATEWAY_ERROR"
        assert [t["status"] for t in listing.json()["data"]] == ["failed"]

    async def test_requires_auth(
        self, unauthenticated_client: AsyncClient, starter_plan: CreditPlan
    ) -> None:
        response = await unauthenticated_client.post(
            "/api/v1/transactions", json={"plan_id": str(starter_plan.id)}
        )

        assert response.status_code == 401


class TestReadTransactions:
    async def test_list_is_paginated(
        self, client: AsyncClient, starter_plan: CreditPlan
    ) -> None:
        for _ in range(3):
            await client.post(
                "/api/v1/transactions", json={"plan_id": str(starter_plan.id)}
            )

        response = await client.get("/api/v1/transactions?page=1&per_page=2")

        body = response.json()
        assert response.status_code == 200
        assert len(body["data"]) == 2
        assert body["meta"]["total"] == 3

    async def test_other_users_transaction_is_404(
        self,
        client: AsyncClient,
        client_user_b: AsyncClient,
        starter_plan: CreditPlan,
    ) -> None:
        created = await client_user_b.post(
            "/api/v1/transactions", json={"plan_id": str(starter_plan.id)}
        )
        txn_id = created.json()["data"]["id"]

        own = await client_user_b.get(f"/api/v1/transactions/{txn_id}")
        foreign = await client.get(f"/api/v1/transactions/{txn_id}")

        assert own.status_code == 200
        assert foreign.status_code == 404
