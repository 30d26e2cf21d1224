import asyncio
import logging

from ..data.base import (
    Category, Coordinate, PLACES_CATEGORIES, POIBundle, PoiClient, PoiFragment, Source, TAGS_CATEGORIES,
)
from ..data.overpass_client import overpass_client
from ..data.places_client import places_client

logger = logging.getLogger(__name__)

class PoiService:
    """
    Fans out to both POI providers for one coordinate and merges the result.

    transport/schools come only from the tag-query provider, shops/hospitals/
    services only from the places provider. One provider failing never
    affects the other. Both providers bound their own time, so a call
    returns within the slower provider's deadline even when both fail.
    """
    def __init__(self, places: PoiClient | None = None, tags: PoiClient | None = None):
        self.places = places or places_client()
        self.tags = tags or overpass_client()

    @staticmethod
    def _settle(result: PoiFragment | BaseException, source: Source, categories: tuple[Category, ...]) -> PoiFragment:
        if isinstance(result, BaseException):
            if isinstance(result, asyncio.CancelledError):
                raise result
            logger.error("%s provider raised: %r", source.value, result, extra={"provider": source.value})
            return PoiFragment.fallback(source, categories, repr(result))
        return result

    async def aggregate(self, coordinate: Coordinate, radius: int) -> POIBundle:
        places_res, tags_res = await asyncio.gather(
            self.places.fetch(coordinate, radius),
            self.tags.fetch(coordinate, radius),
            return_exceptions=True,
        )
        places = self._settle(places_res, Source.FOURSQUARE, PLACES_CATEGORIES)
        tags = self._settle(tags_res, Source.OVERPASS, TAGS_CATEGORIES)
        bundle = POIBundle(
            transport=tags.get(Category.TRANSPORT),
            schools=tags.get(Category.SCHOOLS),
            shops=places.get(Category.SHOPS),
            hospitals=places.get(Category.HOSPITALS),
            services=places.get(Category.SERVICES),
        )
        logger.info(
            "poi bundle assembled",
            extra={
                "lat": coordinate.lat,
                "lon": coordinate.lon,
                "radius": radius,
                "places_status": places.status.value,
                "tags_status": tags.status.value,
                "counts": {c.value: n for c, n in bundle.counts().items()},
            },
        )
        return bundle
