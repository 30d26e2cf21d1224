from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Protocol, Union

from ..core.utils import distance_m

# ----- Enums -----

class Category(str, Enum):
    TRANSPORT = "transport"
    SCHOOLS = "schools"
    SHOPS = "shops"
    HOSPITALS = "hospitals"
    SERVICES = "services"

class Source(str, Enum):
    FOURSQUARE = "foursquare"   # categorized area search
    OVERPASS = "overpass"       # OSM tag query

class FetchStatus(str, Enum):
    FRESH = "fresh"
    CACHED = "cached"
    FALLBACK = "fallback"

PLACES_CATEGORIES = (Category.SHOPS, Category.HOSPITALS, Category.SERVICES)
TAGS_CATEGORIES = (Category.TRANSPORT, Category.SCHOOLS)

# ----- Data shapes -----

@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float

    def __post_init__(self):
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"latitude out of range: {self.lat}")
        if not -180.0 <= self.lon <= 180.0:
            raise ValueError(f"longitude out of range: {self.lon}")

    def distance_to(self, other: "Coordinate") -> float:
        return distance_m(self.lat, self.lon, other.lat, other.lon)

@dataclass(frozen=True)
class POIItem:
    name: str
    distance_m: int
    category: Category
    source: Source
    kind: Optional[str] = None   # upstream category name or tag value

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "distance": self.distance_m,
            "category": self.category.value,
            "source": self.source.value,
            "type": self.kind,
        }

@dataclass(frozen=True)
class PoiFragment:
    """
    One provider's contribution to a bundle. A FALLBACK fragment is empty and
    carries the error that caused it.
    """
    source: Source
    items: Mapping[Category, tuple[POIItem, ...]] = field(default_factory=dict)
    status: FetchStatus = FetchStatus.FRESH
    error: Optional[str] = None

    def get(self, category: Category) -> tuple[POIItem, ...]:
        return tuple(self.items.get(category, ()))

    @property
    def total(self) -> int:
        return sum(len(v) for v in self.items.values())

    @classmethod
    def fallback(cls, source: Source, categories: tuple[Category, ...], error: str) -> "PoiFragment":
        return cls(source=source, items={c: () for c in categories}, status=FetchStatus.FALLBACK, error=error)

@dataclass(frozen=True)
class POIBundle:
    transport: tuple[POIItem, ...] = ()
    schools: tuple[POIItem, ...] = ()
    shops: tuple[POIItem, ...] = ()
    hospitals: tuple[POIItem, ...] = ()
    services: tuple[POIItem, ...] = ()

    def get(self, category: Category) -> tuple[POIItem, ...]:
        return getattr(self, category.value)

    def counts(self) -> dict[Category, int]:
        return {c: len(self.get(c)) for c in Category}

    @property
    def is_empty(self) -> bool:
        return not any(self.get(c) for c in Category)

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {c.value: [p.to_dict() for p in self.get(c)] for c in Category}

# ----- Geocode outcomes -----

@dataclass(frozen=True)
class GeocodeSuccess:
    coordinate: Coordinate
    display_name: str
    address_details: dict[str, Any] = field(default_factory=dict)
    status: str = field(default="success", init=False)

@dataclass(frozen=True)
class GeocodeNotFound:
    message: str = "Address not found"
    status: str = field(default="not_found", init=False)

@dataclass(frozen=True)
class GeocodeError:
    message: str
    status: str = field(default="error", init=False)

GeocodeOutcome = Union[GeocodeSuccess, GeocodeNotFound, GeocodeError]

# ----- Protocols (interfaces) -----

class GeocodeClient(Protocol):
    async def resolve(self, address: str) -> GeocodeOutcome: ...

class PoiClient(Protocol):
    async def fetch(self, coordinate: Coordinate, radius: int) -> PoiFragment: ...
