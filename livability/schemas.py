from typing import Any, Literal
from pydantic import BaseModel, Field, field_validator
from .core.config import settings

class GeocodeRequest(BaseModel):
    addresses: list[str] = Field(min_length=1, max_length=settings.MAX_BATCH_SIZE)
    radius: int = Field(default=settings.DEFAULT_RADIUS_M, gt=0)

    @field_validator("addresses")
    @classmethod
    def no_blank_addresses(cls, v: list[str]) -> list[str]:
        if any(not a.strip() for a in v):
            raise ValueError("addresses must be non-empty strings")
        return v

class POIOut(BaseModel):
    name: str
    distance: int
    category: str
    source: str
    type: str | None = None

class POIBundleOut(BaseModel):
    transport: list[POIOut]
    schools: list[POIOut]
    shops: list[POIOut]
    hospitals: list[POIOut]
    services: list[POIOut]

class LocationData(BaseModel):
    lat: float
    lon: float
    display_name: str
    address_details: dict[str, Any] = {}
    search_radius: int
    poi_nearby: POIBundleOut | None = None
    poi_status: Literal["available", "unavailable"]
    rating: float = Field(ge=0, le=10)
    rating_label: str

class LocationOut(BaseModel):
    address: str
    status: Literal["success", "not_found", "error"]
    message: str | None = None
    data: LocationData | None = None

class GeocodeResponse(BaseModel):
    results: list[LocationOut]
