from functools import lru_cache
from fastapi import APIRouter, Depends, HTTPException
from ..schemas import GeocodeRequest, GeocodeResponse
from ..models.rating import rate, rating_label
from ..services.batch_service import BatchService, InvalidBatchError, LocationResult

router = APIRouter()

@lru_cache(maxsize=1)
def service_dep() -> BatchService:
    # Built once: provider caches and the geocode limiter live for the process.
    return BatchService()

def to_payload(result: LocationResult) -> dict:
    if result.status != "success" or result.coordinate is None:
        return {"address": result.address, "status": result.status, "message": result.message}
    rating = round(rate(result.poi_nearby), 2)
    return {
        "address": result.address,
        "status": result.status,
        "data": {
            "lat": result.coordinate.lat,
            "lon": result.coordinate.lon,
            "display_name": result.display_name,
            "address_details": result.address_details,
            "search_radius": result.search_radius,
            "poi_nearby": result.poi_nearby.to_dict() if result.poi_nearby else None,
            "poi_status": result.poi_status,
            "rating": rating,
            "rating_label": rating_label(rating),
        },
    }

@router.post("/geocode", response_model=GeocodeResponse)
async def post_geocode(body: GeocodeRequest, svc: BatchService = Depends(service_dep)):
    try:
        results = await svc.process(body.addresses, body.radius)
    except InvalidBatchError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"results": [to_payload(r) for r in results]}
