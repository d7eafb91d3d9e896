"""
Access windows
==============

An access window is the interval during which a purchased package grants
connectivity. It is derived once, when the payment succeeds, from the
package's duration and the purchase instant, and never changes afterwards.

Minute and hour packages add elapsed time (computed in UTC, so a DST shift
in the caller's zone does not stretch or shrink the window). Day packages
add calendar days: the wall-clock time of day is kept and month/year
rollover follows the calendar, leap years included.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
import enum

from wifi_portal.core.errors import InvalidPackageError, DeserializationError


class DurationUnit(str, enum.Enum):
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"


UNIT_SECONDS = {
    DurationUnit.MINUTES: 60,
    DurationUnit.HOURS: 3600,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


Clock = Callable[[], datetime]


def ensure_aware(instant: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant


def parse_duration_unit(value: Any) -> DurationUnit:
    if isinstance(value, DurationUnit):
        return value
    if isinstance(value, str):
        try:
            return DurationUnit(value.strip().lower())
        except ValueError:
            pass
    valid = ", ".join(u.value for u in DurationUnit)
    raise InvalidPackageError(f"Invalid duration unit {value!r}. Must be one of: {valid}")


def validate_package_terms(duration: Any, duration_unit: Any) -> DurationUnit:
    """Check a package's duration terms and return the parsed unit."""
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise InvalidPackageError(f"Duration must be an integer, got {duration!r}")
    if duration <= 0:
        raise InvalidPackageError(f"Duration must be at least 1, got {duration}")
    return parse_duration_unit(duration_unit)


def add_duration(start: datetime, duration: int, unit: DurationUnit) -> datetime:
    start = ensure_aware(start)
    if unit is DurationUnit.DAYS:
        # Aware datetime + timedelta(days) is wall-clock arithmetic
        return start + timedelta(days=duration)
    elapsed = timedelta(seconds=duration * UNIT_SECONDS[unit])
    return start.astimezone(timezone.utc) + elapsed


def _parse_instant(value: Any, field: str) -> datetime:
    if not isinstance(value, str):
        raise DeserializationError(f"{field} must be an ISO-8601 string, got {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_aware(datetime.fromisoformat(text))
    except ValueError as e:
        raise DeserializationError(f"Invalid {field} {value!r}: {e}")


@dataclass(frozen=True)
class AccessWindow:
    package_id: str
    start_time: datetime
    end_time: datetime

    def __post_init__(self):
        # Stored in UTC: same-zone subtraction would ignore DST offset changes
        object.__setattr__(self, "start_time", ensure_aware(self.start_time).astimezone(timezone.utc))
        object.__setattr__(self, "end_time", ensure_aware(self.end_time).astimezone(timezone.utc))

    @property
    def duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    def is_expired(self, now: datetime) -> bool:
        return ensure_aware(now) >= self.end_time

    def to_dict(self) -> Dict[str, str]:
        return {
            "packageId": self.package_id,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "AccessWindow":
        if not isinstance(data, dict):
            raise DeserializationError(f"Expected a JSON object, got {type(data).__name__}")
        missing = [k for k in ("packageId", "startTime", "endTime") if k not in data]
        if missing:
            raise DeserializationError(f"Missing fields: {', '.join(missing)}")
        package_id = data["packageId"]
        if package_id is None or package_id == "":
            raise DeserializationError("packageId is empty")
        start = _parse_instant(data["startTime"], "startTime")
        end = _parse_instant(data["endTime"], "endTime")
        if end <= start:
            raise DeserializationError(f"endTime {data['endTime']} is not after startTime {data['startTime']}")
        return cls(package_id=str(package_id), start_time=start, end_time=end)


def compute_window(package, purchase_instant: Optional[datetime] = None, clock: Clock = utcnow) -> AccessWindow:
    """
    Build the access window for a package bought at ``purchase_instant``.

    ``package`` only needs ``id``, ``duration`` and ``duration_unit``
    attributes, so both catalog rows and plain records work.
    """
    unit = validate_package_terms(package.duration, package.duration_unit)
    start = ensure_aware(purchase_instant if purchase_instant is not None else clock())
    end = add_duration(start, package.duration, unit)
    return AccessWindow(package_id=str(package.id), start_time=start, end_time=end)
