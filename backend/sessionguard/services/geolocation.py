"""IP geolocation with a time-bounded cache.

Lookups fail open: any problem reaching or parsing the geolocation API is
logged and resolves to None, so session creation proceeds without location.

The cache sits behind the GeoCache interface. MemoryGeoCache is process
local and only coherent for a single instance; deployments running several
instances must use DatabaseGeoCache (GEO_CACHE_BACKEND=database) so every
instance sees the same entries.
"""
from datetime import datetime
from functools import lru_cache
import ipaddress
import json
import logging
import time
from typing import Any, Callable, Protocol

from pydantic import ValidationError
import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from sessionguard.config import get_settings
from sessionguard.models.security import GeoCacheEntry
from sessionguard.schemas.device import GeoLocation

logger = logging.getLogger(__name__)
settings = get_settings()

LOCAL_COUNTRY_CODE = "LO"
GEO_FIELDS = "status,country,countryCode,regionName,city,timezone,isp"
MAX_IP_LENGTH = 45  # matches the ip_address columns


class GeoCache(Protocol):
    """Key/value store with per-entry expiry."""

    def get(self, key: str) -> dict[str, Any] | None: ...

    def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None: ...


class MemoryGeoCache:
    """In-process cache. Not shared between instances."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._memory: dict[str, tuple[float, str]] = {}  # key -> (expires_at, json_value)

    def get(self, key: str) -> dict[str, Any] | None:
        if key not in self._memory:
            return None
        expires_at, raw = self._memory[key]
        if self._clock() >= expires_at:
            del self._memory[key]
            return None
        return json.loads(raw)

    def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._memory.items() if now >= expires_at]
        for k in expired:
            del self._memory[k]
        self._memory[key] = (now + ttl_seconds, json.dumps(value))


class DatabaseGeoCache:
    """Cache kept in the geo_cache table, shared by all instances on the database.

    Cache trouble is treated as a miss; it must never block a lookup.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def get(self, key: str) -> dict[str, Any] | None:
        db: Session = self._session_factory()
        try:
            entry = db.get(GeoCacheEntry, key)
            if entry is None or self._clock() >= entry.expires_at:
                return None
            return json.loads(entry.payload)
        except SQLAlchemyError as e:
            logger.warning(f"Geo cache read failed for {key}: {e}")
            return None
        finally:
            db.close()

    def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        """Store an entry, dropping every expired entry in the same commit."""
        db: Session = self._session_factory()
        try:
            now = self._clock()
            self._delete_expired(db, now)
            db.merge(GeoCacheEntry(
                ip_address=key,
                payload=json.dumps(value),
                expires_at=now + ttl_seconds,
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Geo cache write failed for {key}: {e}")
        finally:
            db.close()

    def purge_expired(self) -> int:
        """Delete expired entries. Returns the number removed."""
        db: Session = self._session_factory()
        try:
            removed = self._delete_expired(db, self._clock())
            db.commit()
            return removed
        finally:
            db.close()

    @staticmethod
    def _delete_expired(db: Session, now: float) -> int:
        return db.query(GeoCacheEntry).filter(
            GeoCacheEntry.expires_at <= now,
        ).delete(synchronize_session=False)


def is_private_ip(ip: str | None) -> bool:
    """Check whether an address is loopback, private network or localhost."""
    if not ip or ip.strip().lower() == "localhost":
        return True
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return False
    return address.is_loopback or address.is_private


def normalize_ip(ip: str | None) -> str | None:
    """Canonical text form of an IP address, or None if it is not one.

    "localhost" maps to the IPv4 loopback address.
    """
    if not ip:
        return None
    value = ip.strip()
    if value.lower() == "localhost":
        return "127.0.0.1"
    try:
        normalized = str(ipaddress.ip_address(value))
    except ValueError:
        return None
    return normalized if len(normalized) <= MAX_IP_LENGTH else None


def local_location() -> GeoLocation:
    """Synthetic location for private and loopback addresses."""
    return GeoLocation(
        country="Local",
        country_code=LOCAL_COUNTRY_CODE,
        city="Local Network",
        region="",
        timezone=str(datetime.now().astimezone().tzinfo or ""),
        isp="Local",
    )


class GeolocationResolver:
    """Resolve IP addresses to coarse locations."""

    def __init__(
        self,
        cache: GeoCache,
        api_url: str,
        timeout_seconds: float,
        ttl_seconds: int,
    ) -> None:
        self.cache = cache
        self.api_url = api_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.ttl_seconds = ttl_seconds

    def resolve(self, ip: str | None) -> GeoLocation | None:
        """Get the location of an IP address, or None when it is unknown."""
        if is_private_ip(ip):
            return local_location()

        normalized = normalize_ip(ip)
        if normalized is None:
            logger.warning(f"Skipping geolocation for malformed IP address: {ip!r}")
            return None
        ip = normalized

        cached = self.cache.get(ip)
        if cached is not None:
            try:
                return GeoLocation.model_validate(cached)
            except ValidationError:
                logger.warning(f"Discarding malformed geo cache entry for {ip}")

        geo = self._lookup(ip)
        if geo is not None:
            self.cache.set(ip, geo.model_dump(), self.ttl_seconds)
        return geo

    def _lookup(self, ip: str) -> GeoLocation | None:
        """Single outbound lookup, no retries."""
        try:
            response = requests.get(
                f"{self.api_url}/{ip}",
                params={"fields": GEO_FIELDS},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            logger.warning(f"Geolocation request failed for {ip}: {e}")
            return None

        if not response.ok:
            logger.warning(f"Geolocation API error for {ip}: HTTP {response.status_code}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Geolocation API returned invalid JSON for {ip}")
            return None

        if not isinstance(data, dict) or data.get("status") != "success":
            logger.warning(f"Geolocation failed for {ip}: {data}")
            return None

        try:
            return GeoLocation(
                country=data.get("country") or "Unknown",
                country_code=data.get("countryCode") or "UN",
                city=data.get("city") or "Unknown",
                region=data.get("regionName") or "",
                timezone=data.get("timezone") or "",
                isp=data.get("isp") or "",
            )
        except ValidationError as e:
            logger.warning(f"Geolocation payload for {ip} is malformed: {e}")
            return None


def format_location(
    country: str | None,
    city: str | None,
    country_code: str | None = None,
) -> str:
    """Format a location snapshot for display."""
    if not country and not city:
        return "Unknown location"
    if country_code == LOCAL_COUNTRY_CODE:
        return "Local network"
    if city and country:
        return f"{city}, {country}"
    return country or "Unknown"


@lru_cache
def get_geolocation_resolver() -> GeolocationResolver:
    """Get the process-wide resolver for the configured cache backend."""
    if settings.geo_cache_backend == "database":
        from sessionguard.database import SessionLocal

        cache: GeoCache = DatabaseGeoCache(SessionLocal)
    else:
        cache = MemoryGeoCache()

    return GeolocationResolver(
        cache=cache,
        api_url=settings.geo_api_url,
        timeout_seconds=settings.geo_timeout_seconds,
        ttl_seconds=settings.geo_cache_ttl_seconds,
    )
