from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from wifi_portal.db.models import Package
from wifi_portal.core.access_window import validate_package_terms
from wifi_portal.core.cache import cache
from wifi_portal.core.errors import InvalidPackageError, PackageNotFoundError
from typing import Optional, List, Dict
import logging

logger = logging.getLogger(__name__)

PACKAGE_CACHE_KEY = "packages:all"
PACKAGE_CACHE_TTL = 300  # 5 minutes

DEFAULT_PACKAGES = [
    {"name": "Quick Browse", "price": 20, "duration": 1, "duration_unit": "hours",
     "description": "Perfect for checking emails and quick browsing"},
    {"name": "Standard", "price": 50, "duration": 3, "duration_unit": "hours",
     "description": "Great for longer browsing sessions", "popular": True},
    {"name": "Half Day", "price": 100, "duration": 12, "duration_unit": "hours",
     "description": "Ideal for work and entertainment"},
    {"name": "Full Day", "price": 150, "duration": 1, "duration_unit": "days",
     "description": "Unlimited access for a full day"},
]


def serialize_package(package: Package) -> Dict:
    return {
        "id": package.id,
        "name": package.name,
        "price": package.price,
        "duration": package.duration,
        "duration_unit": package.duration_unit.value,
        "description": package.description,
        "popular": bool(package.popular),
    }


def _validate_fields(name: Optional[str], price: Optional[int]):
    if name is not None and not name.strip():
        raise InvalidPackageError("Package name is required")
    if price is not None and price < 0:
        raise InvalidPackageError("Price cannot be negative")


async def list_packages_cached(db: AsyncSession) -> List[Dict]:
    async def fetch_packages():
        result = await db.execute(select(Package).order_by(Package.price))
        serialized = [serialize_package(p) for p in result.scalars().all()]
        logger.info(f"Fetched {len(serialized)} packages from DB")
        return serialized

    return await cache.get_or_set(PACKAGE_CACHE_KEY, fetch_packages, PACKAGE_CACHE_TTL)


async def invalidate_package_cache():
    await cache.clear_pattern("packages")
    logger.info("Package cache invalidated")


async def get_package(db: AsyncSession, package_id: int) -> Package:
    result = await db.execute(select(Package).where(Package.id == package_id))
    package = result.scalar_one_or_none()
    if package is None:
        raise PackageNotFoundError(f"Package {package_id} not found")
    return package


async def create_package(
    db: AsyncSession,
    name: str,
    price: int,
    duration: int,
    duration_unit: str,
    description: str = None,
    popular: bool = False
) -> Package:
    _validate_fields(name, price)
    unit = validate_package_terms(duration, duration_unit)
    package = Package(
        name=name.strip(),
        price=price,
        duration=duration,
        duration_unit=unit,
        description=description,
        popular=popular
    )
    db.add(package)
    await db.commit()
    await db.refresh(package)
    await invalidate_package_cache()
    logger.info(f"Package created: {package.id} ({package.name}, {package.duration} {package.duration_unit.value})")
    return package


async def update_package(db: AsyncSession, package_id: int, **changes) -> Package:
    package = await get_package(db, package_id)
    changes = {k: v for k, v in changes.items() if v is not None}
    _validate_fields(changes.get("name"), changes.get("price"))
    unit = validate_package_terms(
        changes.get("duration", package.duration),
        changes.get("duration_unit", package.duration_unit)
    )
    for field, value in changes.items():
        setattr(package, field, value)
    package.duration_unit = unit
    await db.commit()
    await db.refresh(package)
    await invalidate_package_cache()
    logger.info(f"Package {package_id} updated: duration={package.duration}, duration_unit={package.duration_unit.value}")
    return package


async def delete_package(db: AsyncSession, package_id: int):
    package = await get_package(db, package_id)
    await db.delete(package)
    await db.commit()
    await invalidate_package_cache()
    logger.info(f"Package {package_id} deleted")


async def seed_default_packages(db: AsyncSession) -> int:
    """Insert the default catalog into an empty packages table."""
    count = (await db.execute(select(func.count(Package.id)))).scalar()
    if count:
        return 0
    for data in DEFAULT_PACKAGES:
        db.add(Package(
            name=data["name"],
            price=data["price"],
            duration=data["duration"],
            duration_unit=validate_package_terms(data["duration"], data["duration_unit"]),
            description=data.get("description"),
            popular=data.get("popular", False)
        ))
    await db.commit()
    await invalidate_package_cache()
    logger.info(f"Seeded {len(DEFAULT_PACKAGES)} default packages")
    return len(DEFAULT_PACKAGES)
