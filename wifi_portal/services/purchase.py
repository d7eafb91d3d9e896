"""
Purchase flow: package selection -> payment -> access window.

A payment attempt moves through pending -> processing -> success | failed
and is recorded in the ``transactions`` table at every step. The access
window is computed only once the gateway reports success, from the instant
of that confirmation, and then replaces whatever the session held before.
"""

from datetime import timezone
from typing import Optional
import asyncio
import logging
import secrets

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from wifi_portal.core.access_window import AccessWindow, Clock, compute_window, utcnow, validate_package_terms
from wifi_portal.core.errors import PaymentFailedError
from wifi_portal.db.models import Transaction, TransactionStatus
from wifi_portal.services.packages import get_package
from wifi_portal.services.payments import PaymentGateway, normalize_phone_number
from wifi_portal.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


def generate_reference() -> str:
    return f"WIFI-{secrets.token_hex(6).upper()}"


class PurchaseFlow:
    def __init__(self, registry: SessionRegistry, gateway: PaymentGateway,
                 timeout_seconds: float = 60.0, clock: Clock = utcnow):
        self.registry = registry
        self.gateway = gateway
        self.timeout_seconds = timeout_seconds
        self.clock = clock

    async def _set_status(self, db: AsyncSession, transaction: Transaction, status: TransactionStatus,
                          receipt: Optional[str] = None, reason: Optional[str] = None):
        transaction.status = status
        transaction.updated_at = self.clock().astimezone(timezone.utc).replace(tzinfo=None)
        if receipt:
            transaction.receipt_number = receipt
        if reason:
            transaction.failure_reason = reason[:500]
        await db.commit()
        logger.info(f"Transaction {transaction.reference} -> {status.value}")

    async def purchase(self, db: AsyncSession, session_key: str, package_id: int, phone_number: str) -> AccessWindow:
        package = await get_package(db, package_id)
        # Reject bad catalog rows before anyone is charged
        validate_package_terms(package.duration, package.duration_unit)
        phone = normalize_phone_number(phone_number)

        transaction = Transaction(
            reference=generate_reference(),
            phone_number=phone,
            amount=package.price,
            package_id=package.id,
            session_key=session_key,
            status=TransactionStatus.PENDING
        )
        db.add(transaction)
        await db.commit()
        await db.refresh(transaction)

        await self._set_status(db, transaction, TransactionStatus.PROCESSING)
        try:
            outcome = await asyncio.wait_for(
                self.gateway.initiate(phone, package.price, transaction.reference),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            await self._set_status(db, transaction, TransactionStatus.FAILED, reason="Payment timed out")
            raise PaymentFailedError("Payment timed out", transaction.reference)
        except asyncio.CancelledError:
            await self._set_status(db, transaction, TransactionStatus.FAILED, reason="Payment cancelled")
            raise
        except Exception as e:
            logger.error(f"Gateway error for {transaction.reference}: {e}")
            await self._set_status(db, transaction, TransactionStatus.FAILED, reason=f"Gateway error: {e}")
            raise PaymentFailedError("Payment could not be processed", transaction.reference) from e

        if not outcome.success:
            await self._set_status(db, transaction, TransactionStatus.FAILED, reason=outcome.message)
            raise PaymentFailedError(outcome.message or "Payment failed", transaction.reference)

        await self._set_status(db, transaction, TransactionStatus.SUCCESS, receipt=outcome.receipt)
        window = compute_window(package, self.clock())
        await self.registry.set(session_key, window)
        logger.info(
            f"PAYMENT CONFIRMED {transaction.reference}: session {session_key} on package {package.id} "
            f"until {window.end_time.isoformat()}"
        )
        return window


async def list_transactions(db: AsyncSession, status: Optional[TransactionStatus] = None, limit: int = 100):
    stmt = select(Transaction).order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(limit)
    if status is not None:
        stmt = stmt.where(Transaction.status == status)
    result = await db.execute(stmt)
    return result.scalars().all()
