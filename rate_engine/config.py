from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database (rate card store + pincode master)
    DATABASE_URL: str = "sqlite+aiosqlite:///./rate_engine.db"

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    DEBUG: bool = False

    # Cache Settings
    REDIS_URL: Optional[str] = None  # e.g., "redis://localhost:6379/0"
    CACHE_ENABLED: bool = True
    CACHE_NAMESPACE: str = "rates"
    ZONE_CACHE_TTL: int = 86400  # 24 hours for pincode master lookups
    RATE_CARD_CACHE_TTL: int = 3600  # 1 hour for rate card documents
    CACHE_FETCH_TIMEOUT_SECONDS: float = 0.25  # Slow cache reads count as a miss
    CACHE_GENERATION_TTL: int = 2592000  # 30 days; must outlive every cached document

    # Pricing defaults (used only where a rate card leaves a value unset)
    DEFAULT_GST_PERCENTAGE: float = 18.0
    DEFAULT_VOLUMETRIC_DIVISOR: int = 5000
    DEFAULT_ROUNDING_UNIT_KG: float = 0.5
    DEFAULT_ZONE_B_DISTANCE_KM: float = 500.0
    FALLBACK_COD_PERCENTAGE: float = 2.0
    FALLBACK_COD_MINIMUM: float = 30.0

    # Cities treated as metro when the pincode master has no explicit flag
    METRO_CITIES: list[str] = [
        "NEW DELHI",
        "DELHI",
        "MUMBAI",
        "KOLKATA",
        "CHENNAI",
        "BENGALURU",
        "BANGALORE",
        "HYDERABAD",
        "AHMEDABAD",
        "PUNE",
    ]

    @field_validator('METRO_CITIES', mode='before')
    @classmethod
    def parse_metro_cities(cls, v):
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except json.JSONDecodeError:
                v = v.split(',')
        return [city.strip().upper() for city in v if city and city.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
