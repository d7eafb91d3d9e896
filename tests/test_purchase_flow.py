import asyncio
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from wifi_portal.core.errors import (
    InvalidPhoneNumberError, PackageNotFoundError, PaymentFailedError
)
from wifi_portal.db.models import Transaction, TransactionStatus
from wifi_portal.services.packages import create_package
from wifi_portal.services.payments import PaymentGateway, PaymentOutcome, SimulatedGateway, format_msisdn
from wifi_portal.services.purchase import PurchaseFlow, list_transactions
from wifi_portal.services.session_registry import SessionRegistry
from wifi_portal.services.window_store import MemoryWindowStore


class HangingGateway(PaymentGateway):
    async def initiate(self, phone_number, amount, reference):
        await asyncio.sleep(10)
        return PaymentOutcome(True)


class FailingGateway(PaymentGateway):
    async def initiate(self, phone_number, amount, reference):
        raise ValueError("unexpected response body")


@pytest.fixture
def registry(clock):
    return SessionRegistry(store=MemoryWindowStore(), clock=clock)


@pytest.fixture
async def three_hours(db):
    return await create_package(db, name=f"Standard {uuid.uuid4().hex[:6]}", price=50, duration=3, duration_unit="hours")


@pytest.fixture
def session_key():
    return f"session-{uuid.uuid4().hex}"


async def transactions_for(db, session_key):
    result = await db.execute(select(Transaction).where(Transaction.session_key == session_key))
    return result.scalars().all()


async def test_successful_purchase_opens_window(db, registry, clock, three_hours, session_key):
    flow = PurchaseFlow(registry, SimulatedGateway(delay_seconds=0), clock=clock)
    window = await flow.purchase(db, session_key, three_hours.id, "0712 345 678")

    assert window.package_id == str(three_hours.id)
    assert window.start_time == clock.now
    assert window.end_time == clock.now + timedelta(hours=3)
    assert await registry.get(session_key) == window
    assert await registry.is_active(session_key)

    [transaction] = await transactions_for(db, session_key)
    assert transaction.status == TransactionStatus.SUCCESS
    assert transaction.phone_number == "0712345678"
    assert float(transaction.amount) == 50
    assert transaction.receipt_number


async def test_declined_payment_leaves_no_session(db, registry, clock, three_hours, session_key):
    flow = PurchaseFlow(registry, SimulatedGateway(delay_seconds=0, succeed=False), clock=clock)
    with pytest.raises(PaymentFailedError) as exc_info:
        await flow.purchase(db, session_key, three_hours.id, "0712345678")

    assert exc_info.value.reference.startswith("WIFI-")
    assert await registry.get(session_key) is None
    [transaction] = await transactions_for(db, session_key)
    assert transaction.status == TransactionStatus.FAILED
    assert transaction.failure_reason == "Payment declined"


async def test_gateway_timeout_fails_the_attempt(db, registry, clock, three_hours, session_key):
    flow = PurchaseFlow(registry, HangingGateway(), timeout_seconds=0.05, clock=clock)
    with pytest.raises(PaymentFailedError, match="timed out"):
        await flow.purchase(db, session_key, three_hours.id, "0712345678")
    [transaction] = await transactions_for(db, session_key)
    assert transaction.status == TransactionStatus.FAILED


async def test_cancelled_purchase_is_marked_failed(db, registry, clock, three_hours, session_key):
    flow = PurchaseFlow(registry, HangingGateway(), clock=clock)
    task = asyncio.create_task(flow.purchase(db, session_key, three_hours.id, "0712345678"))
    await asyncio.sleep(0.1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    [transaction] = await transactions_for(db, session_key)
    assert transaction.status == TransactionStatus.FAILED
    assert transaction.failure_reason == "Payment cancelled"
    assert await registry.get(session_key) is None


async def test_gateway_error_fails_the_attempt(db, registry, clock, three_hours, session_key):
    flow = PurchaseFlow(registry, FailingGateway(), clock=clock)
    with pytest.raises(PaymentFailedError) as exc_info:
        await flow.purchase(db, session_key, three_hours.id, "0712345678")

    assert exc_info.value.reference.startswith("WIFI-")
    [transaction] = await transactions_for(db, session_key)
    assert transaction.status == TransactionStatus.FAILED
    assert "unexpected response body" in transaction.failure_reason
    assert await registry.get(session_key) is None


@pytest.mark.parametrize("phone", ["", "0712", "abc-def-ghi", "+254 71"])
async def test_invalid_phone_is_rejected_before_charging(db, registry, clock, three_hours, session_key, phone):
    flow = PurchaseFlow(registry, SimulatedGateway(delay_seconds=0), clock=clock)
    with pytest.raises(InvalidPhoneNumberError):
        await flow.purchase(db, session_key, three_hours.id, phone)
    assert await transactions_for(db, session_key) == []


async def test_unknown_package(db, registry, clock, session_key):
    flow = PurchaseFlow(registry, SimulatedGateway(delay_seconds=0), clock=clock)
    with pytest.raises(PackageNotFoundError):
        await flow.purchase(db, session_key, 999999, "0712345678")


async def test_second_purchase_replaces_first(db, registry, clock, three_hours, session_key):
    one_day = await create_package(db, name=f"Full Day {uuid.uuid4().hex[:6]}", price=150, duration=1, duration_unit="days")
    flow = PurchaseFlow(registry, SimulatedGateway(delay_seconds=0), clock=clock)
    await flow.purchase(db, session_key, three_hours.id, "0712345678")
    clock.advance(hours=2)
    second = await flow.purchase(db, session_key, one_day.id, "0712345678")

    stored = await registry.get(session_key)
    assert stored == second
    assert stored.end_time == clock.now + timedelta(days=1)


async def test_list_transactions_filters_by_status(db, registry, clock, three_hours, session_key):
    ok = PurchaseFlow(registry, SimulatedGateway(delay_seconds=0), clock=clock)
    declined = PurchaseFlow(registry, SimulatedGateway(delay_seconds=0, succeed=False), clock=clock)
    await ok.purchase(db, session_key, three_hours.id, "0712345678")
    with pytest.raises(PaymentFailedError):
        await declined.purchase(db, session_key, three_hours.id, "0712345678")

    failed = await list_transactions(db, TransactionStatus.FAILED, limit=1000)
    assert all(t.status == TransactionStatus.FAILED for t in failed)
    assert session_key in {t.session_key for t in failed}


@pytest.mark.parametrize("phone,expected", [
    ("0712345678", "254712345678"),
    ("712 345 678", "254712345678"),
    ("+254712345678", "254712345678"),
])
def test_format_msisdn(phone, expected):
    assert format_msisdn(phone) == expected
