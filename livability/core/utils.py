import math
from typing import Iterable, TypeVar

EARTH_RADIUS_M = 6_371_000.0

T = TypeVar("T")

def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters (haversine)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Clamp against float drift for antipodal points
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

def cache_key(namespace: str, lat: float, lon: float, radius: int) -> str:
    """Stable key: coordinates quantized to 4 decimals (~11 m)."""
    return f"{namespace}_{lat:.4f},{lon:.4f},{radius}"

def distance_bucket(meters: float) -> int:
    """10 m bucket, rounding half up."""
    return math.floor(meters / 10 + 0.5)

def dedupe_by_name_and_distance(items: Iterable[T]) -> list[T]:
    """
    Drop items whose lower-cased name and 10 m distance bucket
    were already seen. First occurrence wins.
    """
    seen: set[tuple[str, int]] = set()
    out: list[T] = []
    for item in items:
        key = (item.name.lower(), distance_bucket(item.distance_m))
        if key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out

def fnv1a_32(s: str) -> int:
    """Deterministic, fast hash for seed generation."""
    h = 0x811c9dc5
    for c in s.encode("utf-8"):
        h ^= c
        h = (h * 0x01000193) & 0xFFFFFFFF
    return h

def seeded_rand(seed: int, n: int = 1) -> list[float]:
    """
    Stateless pseudo-random generator (Mulberry32-like) so
    same seed → same outputs without storing PRNG state.
    """
    out = []
    t = (seed + 0x6D2B79F5) & 0xFFFFFFFF
    for _ in range(n):
        t = (t ^ (t >> 15)) * (t | 1) & 0xFFFFFFFF
        t ^= t + ((t ^ (t >> 7)) * (t | 61) & 0xFFFFFFFF)
        r = ((t ^ (t >> 14)) & 0xFFFFFFFF) / 4294967296.0
        out.append(r)
    return out
