"""
Customer-facing session endpoints
=================================

  POST   /api/sessions/purchase               Pay for a package, open a window
  GET    /api/sessions/{session_key}          Window + countdown sample
  GET    /api/sessions/{session_key}/status   Active flag only (routing)
  DELETE /api/sessions/{session_key}          Disconnect
  WS     /api/sessions/{session_key}/countdown  Live countdown, one sample per tick
"""

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel
import logging

from wifi_portal.db.database import get_db
from wifi_portal.core.access_window import AccessWindow, ensure_aware
from wifi_portal.core.deps import get_registry, get_purchase_flow
from wifi_portal.core.errors import (
    InvalidPackageError, InvalidPhoneNumberError, PackageNotFoundError, PaymentFailedError
)
from wifi_portal.core.window_clock import ClockSample, sample
from wifi_portal.services.purchase import PurchaseFlow
from wifi_portal.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions"])


class PurchaseRequest(BaseModel):
    session_key: str
    package_id: int
    phone_number: str


def session_payload(session_key: str, window: AccessWindow, now) -> dict:
    now = ensure_aware(now)
    return {
        "session_key": session_key,
        "active": now < window.end_time,
        "window": window.to_dict(),
        **sample(window, now).to_dict(),
    }


@router.post("/api/sessions/purchase", status_code=201)
async def purchase_api(
    request: PurchaseRequest,
    db: AsyncSession = Depends(get_db),
    flow: PurchaseFlow = Depends(get_purchase_flow)
):
    if not request.session_key.strip():
        raise HTTPException(status_code=400, detail="session_key is required")
    try:
        window = await flow.purchase(db, request.session_key, request.package_id, request.phone_number)
    except PackageNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InvalidPhoneNumberError, InvalidPackageError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentFailedError as e:
        raise HTTPException(status_code=402, detail={"message": str(e), "reference": e.reference})
    return session_payload(request.session_key, window, flow.registry.clock())


@router.get("/api/sessions/{session_key}")
async def get_session_api(session_key: str, registry: SessionRegistry = Depends(get_registry)):
    window = await registry.get(session_key)
    if window is None:
        raise HTTPException(status_code=404, detail="No active session")
    return session_payload(session_key, window, registry.clock())


@router.get("/api/sessions/{session_key}/status")
async def get_session_status_api(session_key: str, registry: SessionRegistry = Depends(get_registry)):
    return {"session_key": session_key, "active": await registry.is_active(session_key)}


@router.delete("/api/sessions/{session_key}")
async def disconnect_session_api(session_key: str, registry: SessionRegistry = Depends(get_registry)):
    if not await registry.clear(session_key):
        raise HTTPException(status_code=404, detail="No active session")
    return {"success": True, "message": "Disconnected"}


@router.websocket("/api/sessions/{session_key}/countdown")
async def countdown_ws(websocket: WebSocket, session_key: str):
    await websocket.accept()
    registry: SessionRegistry = websocket.app.state.registry

    async def push(current: ClockSample):
        await websocket.send_json({"session_key": session_key, "active": current.remaining_seconds > 0, **current.to_dict()})

    ticker = await registry.watch(session_key, push)
    if ticker is None:
        await websocket.send_json({"session_key": session_key, "active": False})
        await websocket.close()
        return
    try:
        await ticker.wait()
        # Expired, cleared or superseded by a new purchase; the client reconnects for the new one
        await websocket.send_json({
            "session_key": session_key,
            "ended": True,
            "active": await registry.is_active(session_key),
        })
        await websocket.close()
    except WebSocketDisconnect:
        logger.info(f"Countdown viewer for {session_key} disconnected")
    except Exception as e:
        logger.warning(f"Countdown for {session_key} ended: {e}")
    finally:
        await registry.unwatch(session_key, ticker)
