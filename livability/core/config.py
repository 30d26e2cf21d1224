import os
from pydantic import BaseModel

DEFAULT_OVERPASS_ENDPOINTS = ",".join([
    "https://overpass-api.de/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
    "https://maps.mail.ru/osm/tools/overpass/api/interpreter",
])

class Settings(BaseModel):
    # Basic
    ENV: str = os.getenv("ENV", "dev")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Batch
    MAX_BATCH_SIZE: int = int(os.getenv("MAX_BATCH_SIZE", "20"))
    DEFAULT_RADIUS_M: int = int(os.getenv("DEFAULT_RADIUS_M", "1000"))
    UNNAMED_POI_NAME: str = os.getenv("UNNAMED_POI_NAME", "Bez názvu")

    # Geocoding (Nominatim)
    GEO_PROVIDER: str = os.getenv("GEO_PROVIDER", "mock")          # mock | http
    NOMINATIM_URL: str = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org/search")
    NOMINATIM_USER_AGENT: str = os.getenv("NOMINATIM_USER_AGENT", "livability/0.1 (contact@example.com)")
    GEOCODE_MIN_INTERVAL_MS: int = int(os.getenv("GEOCODE_MIN_INTERVAL_MS", "1000"))
    GEOCODE_TIMEOUT_SECONDS: float = float(os.getenv("GEOCODE_TIMEOUT_SECONDS", "30"))

    # POI provider A (Foursquare Places)
    PLACES_PROVIDER: str = os.getenv("PLACES_PROVIDER", "mock")    # mock | http
    FOURSQUARE_API_KEY: str | None = os.getenv("FOURSQUARE_API_KEY")
    FOURSQUARE_BASE_URL: str = os.getenv("FOURSQUARE_BASE_URL", "https://places-api.foursquare.com")
    FOURSQUARE_API_VERSION: str = os.getenv("FOURSQUARE_API_VERSION", "2025-06-17")
    PLACES_LIMIT: int = int(os.getenv("PLACES_LIMIT", "20"))
    PLACES_TIMEOUT_SECONDS: float = float(os.getenv("PLACES_TIMEOUT_SECONDS", "10"))

    # POI provider B (Overpass)
    TAGS_PROVIDER: str = os.getenv("TAGS_PROVIDER", "mock")        # mock | http
    OVERPASS_ENDPOINTS: str = os.getenv("OVERPASS_ENDPOINTS", DEFAULT_OVERPASS_ENDPOINTS)
    OVERPASS_TIMEOUT_SECONDS: float = float(os.getenv("OVERPASS_TIMEOUT_SECONDS", "15"))
    OVERPASS_MAX_ATTEMPTS: int = int(os.getenv("OVERPASS_MAX_ATTEMPTS", "3"))
    OVERPASS_BACKOFF_SECONDS: float = float(os.getenv("OVERPASS_BACKOFF_SECONDS", "1.0"))

    # Cache
    POI_CACHE_TTL_SECONDS: int = int(os.getenv("POI_CACHE_TTL_SECONDS", str(24 * 3600)))

    # CORS
    ALLOW_ORIGINS: str = os.getenv("ALLOW_ORIGINS", "*")

    # Metrics
    PROMETHEUS_ENABLED: bool = os.getenv("PROMETHEUS_ENABLED", "true").lower() == "true"

    @property
    def overpass_endpoints(self) -> list[str]:
        return [e.strip() for e in self.OVERPASS_ENDPOINTS.split(",") if e.strip()]

settings = Settings()
