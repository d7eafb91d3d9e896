from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel
from typing import Optional

from wifi_portal.db.database import get_db
from wifi_portal.db.models import Admin
from wifi_portal.core.errors import InvalidPackageError, PackageNotFoundError
from wifi_portal.services.auth import get_current_admin
from wifi_portal.services.packages import (
    list_packages_cached, get_package, create_package, update_package, delete_package, serialize_package
)
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["packages"])


class PackageCreateRequest(BaseModel):
    name: str
    price: int
    duration: int
    duration_unit: str
    description: Optional[str] = None
    popular: bool = False


class PackageUpdateRequest(BaseModel):
    name: Optional[str] = None
    price: Optional[int] = None
    duration: Optional[int] = None
    duration_unit: Optional[str] = None
    description: Optional[str] = None
    popular: Optional[bool] = None


@router.get("/api/packages")
async def get_packages_api(db: AsyncSession = Depends(get_db)):
    """Package picker for the portal - CACHED"""
    try:
        return await list_packages_cached(db)
    except Exception as e:
        logger.error(f"Error fetching packages: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch packages")


@router.get("/api/packages/{package_id}")
async def get_package_api(package_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return serialize_package(await get_package(db, package_id))
    except PackageNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/api/packages", status_code=201)
async def create_package_api(
    request: PackageCreateRequest,
    db: AsyncSession = Depends(get_db),
    admin: Admin = Depends(get_current_admin)
):
    try:
        package = await create_package(
            db,
            name=request.name,
            price=request.price,
            duration=request.duration,
            duration_unit=request.duration_unit,
            description=request.description,
            popular=request.popular
        )
        logger.info(f"Package {package.id} created by admin {admin.id}")
        return serialize_package(package)
    except InvalidPackageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating package: {str(e)}")
        await db.rollback()
        raise HTTPException(status_code=500, detail=f"Failed to create package: {str(e)}")


@router.put("/api/packages/{package_id}")
async def update_package_api(
    package_id: int,
    request: PackageUpdateRequest,
    db: AsyncSession = Depends(get_db),
    admin: Admin = Depends(get_current_admin)
):
    try:
        package = await update_package(db, package_id, **request.model_dump(exclude_unset=True))
        return serialize_package(package)
    except PackageNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidPackageError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating package: {str(e)}")
        await db.rollback()
        raise HTTPException(status_code=500, detail=f"Failed to update package: {str(e)}")


@router.delete("/api/packages/{package_id}")
async def delete_package_api(
    package_id: int,
    db: AsyncSession = Depends(get_db),
    admin: Admin = Depends(get_current_admin)
):
    try:
        await delete_package(db, package_id)
        return {"success": True, "message": f"Package {package_id} deleted"}
    except PackageNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting package: {str(e)}")
        await db.rollback()
        raise HTTPException(status_code=500, detail=f"Failed to delete package: {str(e)}")
