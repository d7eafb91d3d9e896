from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel

from wifi_portal.db.database import get_db
from wifi_portal.db.models import Admin
from wifi_portal.services.auth import authenticate_admin, get_current_admin
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/api/auth/login")
async def login_api(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """Login and get JWT token"""
    try:
        return await authenticate_admin(db, request.email, request.password)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Login error: {str(e)}")
        raise HTTPException(status_code=500, detail="Login failed")


@router.get("/api/auth/me")
async def current_admin_api(admin: Admin = Depends(get_current_admin)):
    return {"id": admin.id, "email": admin.email, "is_admin": True}
