import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx

from .base import (
    Category, Coordinate, FetchStatus, POIItem, PoiClient, PoiFragment, Source, TAGS_CATEGORIES,
)
from ..core.cache import PoiCache, SingleFlight
from ..core.config import settings
from ..core.metrics import PROVIDER_FETCHES, UPSTREAM_ATTEMPTS
from ..core.utils import cache_key, dedupe_by_name_and_distance, distance_m, fnv1a_32, seeded_rand

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "overpass"
MAX_PER_CATEGORY = 10

# (tag key, tag value) pairs selected by the query, grouped by bucket
TAG_FILTERS: dict[Category, tuple[tuple[str, str], ...]] = {
    Category.TRANSPORT: (
        ("public_transport", "stop_position"),
        ("highway", "bus_stop"),
        ("railway", "tram_stop"),
        ("railway", "station"),
    ),
    Category.SCHOOLS: (
        ("amenity", "school"),
        ("amenity", "kindergarten"),
        ("amenity", "university"),
    ),
}

class FailureKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"

class OverpassUnavailable(Exception):
    """Every endpoint and every retry failed."""

def classify_failure(exc: BaseException) -> FailureKind:
    """
    Timeouts, dropped/reset connections and 5xx answers are worth retrying;
    anything else (4xx, malformed payloads) will fail the same way again.
    """
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return FailureKind.TRANSIENT
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code >= 500:
        return FailureKind.TRANSIENT
    return FailureKind.PERMANENT

def build_query(coordinate: Coordinate, radius: int, timeout: int = 15) -> str:
    around = f"(around:{radius},{coordinate.lat},{coordinate.lon})"
    selectors = "\n".join(
        f'  node["{k}"="{v}"]{around};'
        for pairs in TAG_FILTERS.values()
        for k, v in pairs
    )
    return f"[out:json][timeout:{timeout}];\n(\n{selectors}\n);\nout body;"

def classify_element(tags: dict[str, str]) -> Optional[tuple[Category, str]]:
    for category, pairs in TAG_FILTERS.items():
        for k, v in pairs:
            if tags.get(k) == v:
                return category, v
    return None

def build_fragment(elements: Sequence[dict[str, Any]], origin: Coordinate) -> PoiFragment:
    buckets: dict[Category, list[POIItem]] = {c: [] for c in TAGS_CATEGORIES}
    for el in elements:
        tags = el.get("tags") or {}
        if el.get("lat") is None or el.get("lon") is None:
            continue
        match = classify_element(tags)
        if match is None:
            continue
        category, kind = match
        buckets[category].append(POIItem(
            name=tags.get("name") or tags.get("ref") or settings.UNNAMED_POI_NAME,
            distance_m=int(round(distance_m(origin.lat, origin.lon, float(el["lat"]), float(el["lon"])))),
            category=category,
            source=Source.OVERPASS,
            kind=kind,
        ))
    items = {
        c: tuple(dedupe_by_name_and_distance(sorted(v, key=lambda p: p.distance_m))[:MAX_PER_CATEGORY])
        for c, v in buckets.items()
    }
    return PoiFragment(source=Source.OVERPASS, items=items)

class MockOverpass(PoiClient):
    """
    Synthetic stops and schools around a point.
    """
    _NAMES = {
        Category.TRANSPORT: ["Můstek", "Muzeum", "Václavské náměstí", "Jindřišská", "Vodičkova", "Náměstí Republiky"],
        Category.SCHOOLS: ["ZŠ Vodičkova", "MŠ Jindřišská", "Gymnázium Jana Nerudy", "Univerzita Karlova"],
    }

    async def fetch(self, coordinate: Coordinate, radius: int) -> PoiFragment:
        seed = fnv1a_32(cache_key(CACHE_NAMESPACE, coordinate.lat, coordinate.lon, radius))
        items: dict[Category, tuple[POIItem, ...]] = {}
        for offset, (category, names) in enumerate(self._NAMES.items()):
            count = int(seeded_rand(seed + offset, 1)[0] * (len(names) + 1))
            generated = [
                POIItem(
                    name=names[i],
                    distance_m=int(seeded_rand(seed + 17 * offset + i, 1)[0] * radius),
                    category=category,
                    source=Source.OVERPASS,
                )
                for i in range(count)
            ]
            items[category] = tuple(sorted(generated, key=lambda p: p.distance_m)[:MAX_PER_CATEGORY])
        PROVIDER_FETCHES.labels(provider=Source.OVERPASS.value, status=FetchStatus.FRESH.value).inc()
        return PoiFragment(source=Source.OVERPASS, items=items)

class OverpassTags(PoiClient):
    """
    Tag query against interchangeable Overpass interpreter endpoints.

    Endpoints are tried in order; each gets up to `max_attempts` attempts with
    exponential backoff, but only transient failures are retried there. A
    permanent failure or an exhausted budget moves on to the next endpoint.
    When nothing answers, or the whole walk outlasts `deadline` (by default
    `timeout * max_attempts`), `fetch` returns an empty FALLBACK fragment.
    """
    def __init__(
        self,
        endpoints: Sequence[str],
        max_attempts: int = 3,
        backoff: float = 1.0,
        timeout: float = 15.0,
        cache: Optional[PoiCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        deadline: Optional[float] = None,
    ):
        if not endpoints:
            raise ValueError("at least one Overpass endpoint is required")
        self.endpoints = list(endpoints)
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self.timeout = timeout
        self.cache = cache if cache is not None else PoiCache(CACHE_NAMESPACE)
        self._transport = transport
        self._sleep = sleep
        self.deadline = timeout * self.max_attempts if deadline is None else deadline
        self._inflight = SingleFlight()

    async def _post(self, endpoint: str, query: str) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            r = await client.post(endpoint, content=query.encode("utf-8"), headers={"Content-Type": "text/plain"})
            r.raise_for_status()
            data = r.json()
            if not isinstance(data, dict):
                raise ValueError("unexpected overpass payload")
            return data

    async def run_query(self, query: str) -> dict[str, Any]:
        last_error: Optional[BaseException] = None
        for index, endpoint in enumerate(self.endpoints, start=1):
            for attempt in range(1, self.max_attempts + 1):
                try:
                    data = await self._post(endpoint, query)
                except (httpx.HTTPError, ValueError) as exc:
                    last_error = exc
                    kind = classify_failure(exc)
                    UPSTREAM_ATTEMPTS.labels(provider=Source.OVERPASS.value, outcome=kind.value).inc()
                    logger.warning(
                        "overpass attempt failed: %s", exc,
                        extra={"endpoint": endpoint, "endpoint_index": index, "attempt": attempt, "failure": kind.value},
                    )
                    if kind is FailureKind.TRANSIENT and attempt < self.max_attempts:
                        await self._sleep(self.backoff * 2 ** (attempt - 1))
                        continue
                    break
                UPSTREAM_ATTEMPTS.labels(provider=Source.OVERPASS.value, outcome="ok").inc()
                logger.info("overpass answered", extra={"endpoint": endpoint, "endpoint_index": index, "attempt": attempt})
                return data
        raise OverpassUnavailable(f"all {len(self.endpoints)} Overpass endpoints failed: {last_error}") from last_error

    async def fetch(self, coordinate: Coordinate, radius: int) -> PoiFragment:
        key = cache_key(CACHE_NAMESPACE, coordinate.lat, coordinate.lon, radius)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("poi cache hit", extra={"cache_key": key})
            PROVIDER_FETCHES.labels(provider=Source.OVERPASS.value, status=FetchStatus.CACHED.value).inc()
            return PoiFragment(source=cached.source, items=cached.items, status=FetchStatus.CACHED)

        return await self._inflight.run(key, lambda: self._load(coordinate, radius, key))

    async def _load(self, coordinate: Coordinate, radius: int, key: str) -> PoiFragment:
        # The server-side budget never exceeds what the client is willing to wait.
        query = build_query(coordinate, radius, timeout=max(1, int(self.timeout)))
        try:
            data = await asyncio.wait_for(self.run_query(query), timeout=self.deadline)
            elements = data.get("elements") or []
            fragment = build_fragment(elements, coordinate)
        except asyncio.TimeoutError:
            logger.error("overpass lookup exceeded %.1fs deadline", self.deadline, extra={"cache_key": key})
            PROVIDER_FETCHES.labels(provider=Source.OVERPASS.value, status=FetchStatus.FALLBACK.value).inc()
            return PoiFragment.fallback(Source.OVERPASS, TAGS_CATEGORIES, f"deadline of {self.deadline:g}s exceeded")
        except (OverpassUnavailable, ValueError, TypeError, AttributeError) as exc:
            logger.error("overpass lookup gave up: %s", exc, extra={"cache_key": key})
            PROVIDER_FETCHES.labels(provider=Source.OVERPASS.value, status=FetchStatus.FALLBACK.value).inc()
            return PoiFragment.fallback(Source.OVERPASS, TAGS_CATEGORIES, str(exc))

        self.cache.put(key, fragment)
        PROVIDER_FETCHES.labels(provider=Source.OVERPASS.value, status=FetchStatus.FRESH.value).inc()
        return fragment

def overpass_client() -> PoiClient:
    if settings.TAGS_PROVIDER == "http":
        return OverpassTags(
            settings.overpass_endpoints,
            max_attempts=settings.OVERPASS_MAX_ATTEMPTS,
            backoff=settings.OVERPASS_BACKOFF_SECONDS,
            timeout=settings.OVERPASS_TIMEOUT_SECONDS,
        )
    return MockOverpass()
