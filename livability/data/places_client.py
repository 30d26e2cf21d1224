import asyncio
import logging
from typing import Any, Optional

import httpx

from .base import (
    Category, Coordinate, FetchStatus, PLACES_CATEGORIES, POIItem, PoiClient, PoiFragment, Source,
)
from ..core.cache import PoiCache, SingleFlight
from ..core.config import settings
from ..core.metrics import PROVIDER_FETCHES, UPSTREAM_ATTEMPTS
from ..core.utils import cache_key, dedupe_by_name_and_distance, distance_m, fnv1a_32, seeded_rand

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "fsq"
MAX_PER_CATEGORY = 5

# Checked in this order; 17114 (pharmacy) is listed under both and lands in shops.
CATEGORY_IDS: dict[Category, frozenset[str]] = {
    Category.SHOPS: frozenset({"17069", "17145", "17001", "17002", "17114"}),
    Category.HOSPITALS: frozenset({"15014", "15015", "15016"}),
    Category.SERVICES: frozenset({"17114", "17029", "17143"}),
}

CATEGORY_NAME_HINTS: dict[Category, tuple[str, ...]] = {
    Category.SHOPS: ("shop", "store", "market", "pharmacy"),
    Category.HOSPITALS: ("hospital", "clinic", "medical", "doctor"),
    Category.SERVICES: ("bank", "atm"),
}

def classify_place(category_id: Optional[str], category_name: Optional[str]) -> Optional[Category]:
    """Map a place's primary category to a bucket; None means drop it."""
    if category_id:
        for category, ids in CATEGORY_IDS.items():
            if category_id in ids:
                return category
    lowered = (category_name or "").lower()
    for category, hints in CATEGORY_NAME_HINTS.items():
        if any(h in lowered for h in hints):
            return category
    return None

def _place_distance(place: dict[str, Any], origin: Coordinate) -> int:
    if place.get("distance") is not None:
        return max(0, int(place["distance"]))
    lat, lon = place.get("latitude"), place.get("longitude")
    if lat is not None and lon is not None:
        return int(round(distance_m(origin.lat, origin.lon, float(lat), float(lon))))
    return 0

def build_fragment(places: list[dict[str, Any]], origin: Coordinate) -> PoiFragment:
    buckets: dict[Category, list[POIItem]] = {c: [] for c in PLACES_CATEGORIES}
    for place in places:
        primary = (place.get("categories") or [{}])[0] or {}
        category = classify_place(
            str(primary["fsq_category_id"]) if primary.get("fsq_category_id") is not None else None,
            primary.get("name"),
        )
        if category is None:
            continue
        buckets[category].append(POIItem(
            name=place.get("name") or settings.UNNAMED_POI_NAME,
            distance_m=_place_distance(place, origin),
            category=category,
            source=Source.FOURSQUARE,
            kind=primary.get("name"),
        ))
    items = {
        c: tuple(dedupe_by_name_and_distance(sorted(v, key=lambda p: p.distance_m))[:MAX_PER_CATEGORY])
        for c, v in buckets.items()
    }
    return PoiFragment(source=Source.FOURSQUARE, items=items)

class MockPlaces(PoiClient):
    """
    Synthetic shops/hospitals/services around a point. Names and distances
    are plausible but fake.
    """
    _NAMES = {
        Category.SHOPS: ["Albert", "Billa", "Lidl", "Dr.Max lékárna", "Tesco Express"],
        Category.HOSPITALS: ["Poliklinika", "Nemocnice Na Františku", "Zdravotní středisko"],
        Category.SERVICES: ["Česká spořitelna", "ČSOB bankomat", "Komerční banka", "Fio banka"],
    }

    async def fetch(self, coordinate: Coordinate, radius: int) -> PoiFragment:
        seed = fnv1a_32(cache_key(CACHE_NAMESPACE, coordinate.lat, coordinate.lon, radius))
        items: dict[Category, tuple[POIItem, ...]] = {}
        for offset, (category, names) in enumerate(self._NAMES.items()):
            count = int(seeded_rand(seed + offset, 1)[0] * (len(names) + 1))
            generated = [
                POIItem(
                    name=names[i],
                    distance_m=int(seeded_rand(seed + 31 * offset + i, 1)[0] * radius),
                    category=category,
                    source=Source.FOURSQUARE,
                )
                for i in range(count)
            ]
            items[category] = tuple(sorted(generated, key=lambda p: p.distance_m)[:MAX_PER_CATEGORY])
        PROVIDER_FETCHES.labels(provider=Source.FOURSQUARE.value, status=FetchStatus.FRESH.value).inc()
        return PoiFragment(source=Source.FOURSQUARE, items=items)

class FoursquarePlaces(PoiClient):
    """
    Single-call area search against the Foursquare Places API.

    Best effort: any failure yields an empty FALLBACK fragment and is never
    cached, so the next call retries upstream. The whole call, connect and
    body included, is bounded by `timeout`.
    """
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://places-api.foursquare.com",
        api_version: str = "2025-06-17",
        limit: int = 20,
        timeout: float = 10.0,
        cache: Optional[PoiCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.limit = limit
        self.timeout = timeout
        self.cache = cache if cache is not None else PoiCache(CACHE_NAMESPACE)
        self._transport = transport
        self._inflight = SingleFlight()

    async def _search(self, coordinate: Coordinate, radius: int) -> list[dict[str, Any]]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            r = await client.get(
                f"{self.base_url}/places/search",
                params={"ll": f"{coordinate.lat},{coordinate.lon}", "radius": radius, "limit": self.limit},
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "X-Places-Api-Version": self.api_version,
                    "accept": "application/json",
                },
            )
            r.raise_for_status()
            results = r.json().get("results") or []
            if not isinstance(results, list):
                raise ValueError("unexpected places payload")
            return results

    def _fallback(self, error: str) -> PoiFragment:
        PROVIDER_FETCHES.labels(provider=Source.FOURSQUARE.value, status=FetchStatus.FALLBACK.value).inc()
        return PoiFragment.fallback(Source.FOURSQUARE, PLACES_CATEGORIES, error)

    async def fetch(self, coordinate: Coordinate, radius: int) -> PoiFragment:
        if not self.api_key:
            logger.warning("foursquare api key not configured, skipping")
            return self._fallback("api key not configured")

        key = cache_key(CACHE_NAMESPACE, coordinate.lat, coordinate.lon, radius)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("poi cache hit", extra={"cache_key": key})
            PROVIDER_FETCHES.labels(provider=Source.FOURSQUARE.value, status=FetchStatus.CACHED.value).inc()
            return PoiFragment(source=cached.source, items=cached.items, status=FetchStatus.CACHED)

        return await self._inflight.run(key, lambda: self._load(coordinate, radius, key))

    async def _load(self, coordinate: Coordinate, radius: int, key: str) -> PoiFragment:
        try:
            places = await asyncio.wait_for(self._search(coordinate, radius), timeout=self.timeout)
            fragment = build_fragment(places, coordinate)
        except asyncio.TimeoutError:
            UPSTREAM_ATTEMPTS.labels(provider=Source.FOURSQUARE.value, outcome="error").inc()
            logger.error("foursquare search exceeded %.1fs", self.timeout, extra={"cache_key": key})
            return self._fallback(f"deadline of {self.timeout:g}s exceeded")
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
            UPSTREAM_ATTEMPTS.labels(provider=Source.FOURSQUARE.value, outcome="error").inc()
            logger.error("foursquare search failed: %s", exc, extra={"cache_key": key})
            return self._fallback(str(exc) or exc.__class__.__name__)

        UPSTREAM_ATTEMPTS.labels(provider=Source.FOURSQUARE.value, outcome="ok").inc()
        logger.info(
            "foursquare places fetched",
            extra={"cache_key": key, "fetched": len(places), "kept": fragment.total},
        )
        self.cache.put(key, fragment)
        PROVIDER_FETCHES.labels(provider=Source.FOURSQUARE.value, status=FetchStatus.FRESH.value).inc()
        return fragment

def places_client() -> PoiClient:
    if settings.PLACES_PROVIDER == "http":
        return FoursquarePlaces(
            settings.FOURSQUARE_API_KEY,
            base_url=settings.FOURSQUARE_BASE_URL,
            api_version=settings.FOURSQUARE_API_VERSION,
            limit=settings.PLACES_LIMIT,
            timeout=settings.PLACES_TIMEOUT_SECONDS,
        )
    return MockPlaces()
