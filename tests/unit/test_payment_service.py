"""Tests for PaymentService purchase flow."""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.core.errors import NotFoundError, PaymentGatewayUnavailableError
from creditflow.models import CreditPlan, User
from creditflow.providers.errors import PaymentGatewayError
from creditflow.providers.payments.mock_adapter import MockPaymentGateway
from creditflow.repositories.transaction_repository import TransactionRepository
from creditflow.services.payment_service import (
    PaymentService,
    charge_description,
    external_reference_for,
)
from tests.conftest import create_plan, create_user


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest.fixture
async def buyer(db_session: AsyncSession) -> User:
    return await create_user(db_session, email="buyer@example.com", credits=0)


@pytest.fixture
async def plan(db_session: AsyncSession) -> CreditPlan:
    return await create_plan(
        db_session, name="Profissional", credits=50, price_in_cents=12990
    )


class TestCreatePurchase:
    async def test_creates_pending_transaction_with_charge(
        self,
        db_session: AsyncSession,
        gateway: MockPaymentGateway,
        buyer: User,
        plan: CreditPlan,
    ) -> None:
        txn = await PaymentService(db_session, gateway).create_purchase(
            buyer.id, plan.id
        )

        assert txn.status == "pending"
        assert txn.amount_in_cents == 12990
        assert txn.external_id == "mock-1"
        assert txn.pix_copy_paste
        assert txn.qr_code
        assert txn.expires_at is not None
        call = gateway.calls[0]
        assert call["amount_in_cents"] == 12990
        assert call["payer_email"] == "buyer@example.com"
        assert call["external_reference"] == external_reference_for(txn.id)
        assert call["description"] == "Profissional - 50 créditos"

    async def test_unknown_plan_is_not_found(
        self, db_session: AsyncSession, gateway: MockPaymentGateway, buyer: User
    ) -> None:
        with pytest.raises(NotFoundError):
            await PaymentService(db_session, gateway).create_purchase(
                buyer.id, uuid.uuid4()
            )
        assert gateway.calls == []

    async def test_inactive_plan_is_not_found(
        self, db_session: AsyncSession, gateway: MockPaymentGateway, buyer: User
    ) -> None:
        retired = await create_plan(db_session, name="Retired", is_active=False)

        with pytest.raises(NotFoundError):
            await PaymentService(db_session, gateway).create_purchase(
                buyer.id, retired.id
            )

    async def test_gateway_failure_marks_transaction_failed(
        self,
        db_session: AsyncSession,
        gateway: MockPaymentGateway,
        buyer: User,
        plan: CreditPlan,
    ) -> None:
        gateway.fail_create = PaymentGatewayError("boom", status_code=500)

        with pytest.raises(PaymentGatewayUnavailableError) as exc_info:
            await PaymentService(db_session, gateway).create_purchase(
                buyer.id, plan.id
            )

        assert exc_info.value.status_code == 502
        txns, total = await TransactionRepository.list_by_user(db_session, buyer.id)
        assert total == 1
        failed = await TransactionRepository.get_by_id(db_session, txns[0].id)
        assert failed is not None
        assert failed.status == "failed"
        assert failed.external_id is None


class TestReads:
    async def test_get_transaction_is_owner_scoped(
        self,
        db_session: AsyncSession,
        gateway: MockPaymentGateway,
        buyer: User,
        plan: CreditPlan,
    ) -> None:
        other = await create_user(db_session)
        service = PaymentService(db_session, gateway)
        txn = await service.create_purchase(buyer.id, plan.id)

        assert (await service.get_transaction(buyer.id, txn.id)).id == txn.id
        with pytest.raises(NotFoundError):
            await service.get_transaction(other.id, txn.id)

    async def test_list_transactions(
        self,
        db_session: AsyncSession,
        gateway: MockPaymentGateway,
        buyer: User,
        plan: CreditPlan,
    ) -> None:
        service = PaymentService(db_session, gateway)
        await service.create_purchase(buyer.id, plan.id)
        await service.create_purchase(buyer.id, plan.id)

        txns, total = await service.list_transactions(buyer.id, limit=1)

        assert total == 2
        assert len(txns) == 1


def test_charge_description() -> None:
    plan = CreditPlan(name="Iniciante", credits=10, price_in_cents=2990)
    assert charge_description(plan) == "Iniciante - 10 créditos"
