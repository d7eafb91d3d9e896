from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Optional
import logging

from wifi_portal.db.database import get_db
from wifi_portal.db.models import Admin, Package, Transaction, TransactionStatus
from wifi_portal.core.deps import get_registry
from wifi_portal.services.auth import get_current_admin
from wifi_portal.services.purchase import list_transactions
from wifi_portal.services.session_registry import SessionRegistry
from wifi_portal.services.session_reaper import reap_expired_sessions
from wifi_portal.api.session_routes import session_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/sessions")
async def get_active_sessions(
    registry: SessionRegistry = Depends(get_registry),
    admin: Admin = Depends(get_current_admin)
):
    """Currently active sessions, soonest expiry first"""
    now = registry.clock()
    sessions = []
    for key, window in await registry.active_sessions(now):
        payload = session_payload(key, window, now)
        payload["minutes_remaining"] = payload["remaining_seconds"] // 60
        sessions.append(payload)
    return {"total": len(sessions), "sessions": sessions}


@router.post("/sessions/reap")
async def reap_sessions(
    registry: SessionRegistry = Depends(get_registry),
    admin: Admin = Depends(get_current_admin)
):
    expired = await reap_expired_sessions(registry)
    return {"reaped": len(expired), "session_keys": expired}


@router.delete("/sessions/{session_key}")
async def end_session(
    session_key: str,
    registry: SessionRegistry = Depends(get_registry),
    admin: Admin = Depends(get_current_admin)
):
    if not await registry.clear(session_key):
        raise HTTPException(status_code=404, detail="Session not found")
    logger.info(f"Session {session_key} ended by admin {admin.id}")
    return {"success": True}


@router.get("/transactions")
async def get_transactions(
    status: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    admin: Admin = Depends(get_current_admin)
):
    status_enum = None
    if status is not None:
        try:
            status_enum = TransactionStatus(status.lower())
        except ValueError:
            valid = ", ".join(s.value for s in TransactionStatus)
            raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {valid}")
    try:
        transactions = await list_transactions(db, status_enum, limit)
    except Exception as e:
        logger.error(f"Error fetching transactions: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch transactions")
    return [
        {
            "id": t.id,
            "reference": t.reference,
            "phone_number": t.phone_number,
            "amount": float(t.amount),
            "package_id": t.package_id,
            "session_key": t.session_key,
            "status": t.status.value,
            "receipt_number": t.receipt_number,
            "failure_reason": t.failure_reason,
            "created_at": t.created_at.isoformat() if t.created_at else None,
        }
        for t in transactions
    ]


@router.get("/stats")
async def get_stats(
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_registry),
    admin: Admin = Depends(get_current_admin)
):
    try:
        status_counts = dict(
            (row[0].value, row[1]) for row in (await db.execute(
                select(Transaction.status, func.count(Transaction.id)).group_by(Transaction.status)
            )).all()
        )
        revenue = (await db.execute(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(Transaction.status == TransactionStatus.SUCCESS)
        )).scalar()
        package_count = (await db.execute(select(func.count(Package.id)))).scalar()
    except Exception as e:
        logger.error(f"Error computing stats: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to compute stats")
    return {
        "active_sessions": len(await registry.active_sessions()),
        "packages": package_count,
        "transactions": {s.value: status_counts.get(s.value, 0) for s in TransactionStatus},
        "revenue": float(revenue or 0),
    }
