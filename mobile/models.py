"""Location record model and timestamp helpers.

Records are immutable. Timestamps created on the device use one canonical,
fixed-width UTC format (``YYYY-MM-DD HH:MM:SS``) so that plain string
comparison orders them chronologically. Timestamps received from the server
are kept as opaque strings.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
MAPS_URL_TEMPLATE = "https://www.google.com/maps?q={lat:f},{lng:f}"


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """Return ``now`` (default: current UTC time) in the canonical format."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime(TIMESTAMP_FORMAT)


def normalize_timestamp(value: Any) -> str:
    """Coerce a sample timestamp into the canonical format.

    Accepts datetimes, epoch seconds/milliseconds (numbers or digit strings)
    and ISO-8601 strings. Anything else is returned unchanged as a string.
    """
    if value is None:
        return utc_timestamp()
    if isinstance(value, datetime):
        return utc_timestamp(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _from_epoch(float(value)) or str(value)

    text = str(value).strip()
    if text.isdigit():
        return _from_epoch(float(text)) or text
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return utc_timestamp(parsed)


def _from_epoch(seconds: float) -> Optional[str]:
    # Anything past year 2286 in seconds is really milliseconds.
    if seconds > 1e10:
        seconds /= 1000.0
    try:
        return utc_timestamp(datetime.fromtimestamp(seconds, tz=timezone.utc))
    except (OverflowError, OSError, ValueError):
        return None


@dataclass(frozen=True)
class LocationSample:
    """A raw fix delivered by a location provider."""

    latitude: float
    longitude: float
    timestamp: str


@dataclass(frozen=True)
class LocationRecord:
    """One location sample attributed to a tracked person.

    Attributes:
        latitude: Raw sensor latitude.
        longitude: Raw sensor longitude.
        owner_identity: Trackie name the sample belongs to.
        inserted_at: Opaque, sortable timestamp string.
        user_id: Account id, filled in once the user is authenticated.
    """

    latitude: float
    longitude: float
    owner_identity: str
    inserted_at: str
    user_id: Optional[str] = None

    @classmethod
    def from_sample(cls, sample: LocationSample, owner_identity: str,
                    user_id: Optional[str] = None) -> "LocationRecord":
        return cls(
            latitude=float(sample.latitude),
            longitude=float(sample.longitude),
            owner_identity=owner_identity,
            inserted_at=normalize_timestamp(sample.timestamp),
            user_id=user_id,
        )

    @property
    def dedup_key(self) -> str:
        return f"{self.owner_identity or self.user_id or ''}_{self.inserted_at}"

    @property
    def has_fix(self) -> bool:
        return not (self.latitude == 0.0 and self.longitude == 0.0)

    @property
    def maps_url(self) -> Optional[str]:
        if not self.has_fix:
            return None
        return MAPS_URL_TEMPLATE.format(lat=self.latitude, lng=self.longitude)

    def with_user_id(self, user_id: Optional[str]) -> "LocationRecord":
        return replace(self, user_id=user_id)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the wire field names."""
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "userName": self.owner_identity,
            "insertionTimestamp": self.inserted_at,
            "userId": self.user_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocationRecord":
        """Build a record from a wire/cache dict.

        Raises:
            ValueError: If coordinates are missing or not numeric.
        """
        if not isinstance(data, dict):
            raise ValueError(f"location entry must be an object, got {type(data).__name__}")
        try:
            latitude = float(data["latitude"])
            longitude = float(data["longitude"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"invalid coordinates in {data!r}") from exc

        owner = data.get("userName") or data.get("userEmail") or ""
        inserted_at = data.get("insertionTimestamp")
        user_id = data.get("userId")
        return cls(
            latitude=latitude,
            longitude=longitude,
            owner_identity=str(owner),
            inserted_at="" if inserted_at is None else str(inserted_at),
            user_id=None if user_id is None else str(user_id),
        )
