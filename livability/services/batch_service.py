import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from ..core.config import settings
from ..data.base import Coordinate, GeocodeClient, GeocodeSuccess, POIBundle
from ..data.geocode_client import geocode_client
from .poi_service import PoiService

logger = logging.getLogger(__name__)

class InvalidBatchError(ValueError):
    """Batch rejected before any network call."""

@dataclass(frozen=True)
class LocationResult:
    address: str
    status: str                                   # success | not_found | error
    search_radius: int
    message: Optional[str] = None
    coordinate: Optional[Coordinate] = None
    display_name: Optional[str] = None
    address_details: dict[str, Any] = field(default_factory=dict)
    poi_nearby: Optional[POIBundle] = None

    @property
    def poi_status(self) -> str:
        return "available" if self.poi_nearby is not None else "unavailable"

def validate_batch(addresses: Sequence[str], radius: int, max_size: int) -> None:
    if isinstance(addresses, str):
        raise InvalidBatchError("addresses must be a list of strings")
    if not addresses:
        raise InvalidBatchError("at least one address is required")
    if len(addresses) > max_size:
        raise InvalidBatchError(f"at most {max_size} addresses per batch")
    for i, address in enumerate(addresses):
        if not isinstance(address, str) or not address.strip():
            raise InvalidBatchError(f"address #{i + 1} is empty")
    if isinstance(radius, bool) or not isinstance(radius, int) or radius <= 0:
        raise InvalidBatchError("radius must be a positive integer (meters)")

class BatchService:
    """
    Orchestrates:
      addresses → geocode (one at a time, rate limited) → POI bundle per hit
    Input order is preserved. Per-address failures end up in that address's
    result and never abort the batch.
    """
    def __init__(
        self,
        geo: GeocodeClient | None = None,
        poi: PoiService | None = None,
        max_batch_size: int | None = None,
    ):
        self.geo = geo or geocode_client()
        self.poi = poi or PoiService()
        self.max_batch_size = max_batch_size or settings.MAX_BATCH_SIZE

    async def process(self, addresses: Sequence[str], radius: int = settings.DEFAULT_RADIUS_M) -> list[LocationResult]:
        validate_batch(addresses, radius, self.max_batch_size)
        results: list[LocationResult] = []
        for address in addresses:
            results.append(await self._process_one(address.strip(), radius))
        logger.info(
            "batch processed",
            extra={
                "addresses": len(results),
                "geocoded": sum(1 for r in results if r.status == "success"),
                "with_poi": sum(1 for r in results if r.poi_nearby is not None),
            },
        )
        return results

    async def _process_one(self, address: str, radius: int) -> LocationResult:
        outcome = await self.geo.resolve(address)
        if not isinstance(outcome, GeocodeSuccess):
            logger.info("address not geocoded", extra={"address": address, "status": outcome.status})
            return LocationResult(address=address, status=outcome.status, message=outcome.message, search_radius=radius)

        bundle = await self.poi.aggregate(outcome.coordinate, radius)
        return LocationResult(
            address=address,
            status=outcome.status,
            search_radius=radius,
            coordinate=outcome.coordinate,
            display_name=outcome.display_name,
            address_details=outcome.address_details,
            poi_nearby=None if bundle.is_empty else bundle,
        )
