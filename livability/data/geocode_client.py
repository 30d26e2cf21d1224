import logging
from typing import Any, Optional

import httpx

from .base import (
    Coordinate, GeocodeClient, GeocodeError, GeocodeNotFound, GeocodeOutcome, GeocodeSuccess,
)
from ..core.config import settings
from ..core.metrics import GEOCODE_OUTCOMES
from ..core.ratelimit import RateLimiter
from ..core.utils import fnv1a_32, seeded_rand

logger = logging.getLogger(__name__)

# Nominatim's usage policy is a global per-client cadence, so every
# geocoder in the process shares one limiter.
_shared_limiter = RateLimiter(min_interval=settings.GEOCODE_MIN_INTERVAL_MS / 1000.0)

class MockGeocode(GeocodeClient):
    """
    Mock geocoder that turns the address string into a stable lat/lon
    around Prague. Deterministic and free of external dependencies.
    """
    async def resolve(self, address: str) -> GeocodeOutcome:
        seed = fnv1a_32(address)
        lat = 49.95 + seeded_rand(seed, 1)[0] * 0.25
        lon = 14.25 + seeded_rand(seed + 1, 1)[0] * 0.45
        outcome = GeocodeSuccess(
            coordinate=Coordinate(lat=round(lat, 6), lon=round(lon, 6)),
            display_name=address.strip(),
            address_details={"city": "Praha", "country": "Česko", "country_code": "cz"},
        )
        GEOCODE_OUTCOMES.labels(status=outcome.status).inc()
        return outcome

class NominatimGeocode(GeocodeClient):
    """
    Forward geocoding against a Nominatim `search` endpoint.

    Every request goes through the rate limiter. Failures never raise; they
    come back as GeocodeError / GeocodeNotFound outcomes.
    """
    def __init__(
        self,
        base_url: str,
        user_agent: str,
        limiter: Optional[RateLimiter] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.user_agent = user_agent
        self.limiter = limiter or _shared_limiter
        self.timeout = timeout
        self._transport = transport

    async def _search(self, address: str) -> list[dict[str, Any]]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            r = await client.get(
                self.base_url,
                params={"q": address, "format": "json", "limit": 1, "addressdetails": 1},
                headers={"User-Agent": self.user_agent},
            )
            r.raise_for_status()
            data = r.json()
            if not isinstance(data, list):
                raise ValueError("unexpected geocoder payload")
            return data

    async def resolve(self, address: str) -> GeocodeOutcome:
        try:
            candidates = await self.limiter.submit(lambda: self._search(address))
            if not candidates:
                outcome: GeocodeOutcome = GeocodeNotFound()
            else:
                # Upstream ranks by relevance; only the first candidate is used
                top = candidates[0]
                outcome = GeocodeSuccess(
                    coordinate=Coordinate(lat=float(top["lat"]), lon=float(top["lon"])),
                    display_name=top.get("display_name") or address,
                    address_details=top.get("address") or {},
                )
        except httpx.TimeoutException:
            logger.warning("geocode timed out", extra={"address": address})
            outcome = GeocodeError(message="Geocoding request timed out")
        except Exception as exc:
            logger.warning("geocode failed: %s", exc, extra={"address": address})
            outcome = GeocodeError(message=str(exc) or exc.__class__.__name__)
        GEOCODE_OUTCOMES.labels(status=outcome.status).inc()
        return outcome

def geocode_client() -> GeocodeClient:
    """
    Factory picks mock or http based on env flags.
    """
    if settings.GEO_PROVIDER == "http":
        return NominatimGeocode(
            settings.NOMINATIM_URL,
            settings.NOMINATIM_USER_AGENT,
            timeout=settings.GEOCODE_TIMEOUT_SECONDS,
        )
    return MockGeocode()
