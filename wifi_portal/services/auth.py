from fastapi import HTTPException, Depends, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from jose import jwt, JWTError
from datetime import timedelta
from passlib.context import CryptContext
from wifi_portal.db.models import Admin
from wifi_portal.db.database import get_db
from wifi_portal.config import settings
from wifi_portal.core.access_window import utcnow
import logging

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


async def create_admin(db: AsyncSession, email: str, password: str) -> Admin:
    admin = Admin(
        email=email.lower(),
        password_hash=pwd_context.hash(password)
    )
    db.add(admin)
    await db.commit()
    await db.refresh(admin)
    return admin


async def ensure_default_admin(db: AsyncSession) -> bool:
    stmt = select(Admin).filter(Admin.email == settings.DEFAULT_ADMIN_EMAIL.lower())
    result = await db.execute(stmt)
    if result.scalar_one_or_none():
        return False
    await create_admin(db, settings.DEFAULT_ADMIN_EMAIL, settings.DEFAULT_ADMIN_PASSWORD)
    logger.info(f"Created default admin {settings.DEFAULT_ADMIN_EMAIL}")
    return True


def create_access_token(data: dict, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    to_encode.update({"exp": utcnow() + expires_delta})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


async def authenticate_admin(db: AsyncSession, email: str, password: str) -> dict:
    stmt = select(Admin).filter(Admin.email == email.lower())
    result = await db.execute(stmt)
    admin = result.scalar_one_or_none()
    if not admin or not pwd_context.verify(password, admin.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    access_token = create_access_token(
        data={"sub": str(admin.id), "admin_id": admin.id, "email": admin.email},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "admin": {"id": admin.id, "email": admin.email}
    }


async def verify_token(token: str = Depends(oauth2_scheme)) -> dict:
    """
    Verify JWT token and return decoded payload.
    Raises HTTPException if token is invalid or expired.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if payload.get("admin_id") is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: admin_id not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


async def get_current_admin(payload: dict = Depends(verify_token), db: AsyncSession = Depends(get_db)) -> Admin:
    stmt = select(Admin).filter(Admin.id == int(payload["admin_id"]))
    result = await db.execute(stmt)
    admin = result.scalar_one_or_none()
    if not admin:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return admin
