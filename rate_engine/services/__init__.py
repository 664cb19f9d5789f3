# Services module
from rate_engine.services.cache_service import (
    CacheBackend,
    InMemoryCache,
    RedisCache,
    PricingCacheService,
    build_cache,
)
from rate_engine.services.pincode_lookup_service import PincodeLookupService
from rate_engine.services.zone_service import ZoneResolver, classify_zone
from rate_engine.services.rate_card_service import RateCardService, select_from_candidates
from rate_engine.services.pricing_calculator import PricingCalculator
from rate_engine.services.pricing_engine import PricingEngine
from rate_engine.services.legacy_rate_card_converter import convert_legacy_rate_card
from rate_engine.services.rate_card_import_service import RateCardImportService
from rate_engine.services.rate_card_version_service import RateCardVersionService

__all__ = [
    "CacheBackend",
    "InMemoryCache",
    "RedisCache",
    "PricingCacheService",
    "build_cache",
    "PincodeLookupService",
    "ZoneResolver",
    "classify_zone",
    "RateCardService",
    "select_from_candidates",
    "PricingCalculator",
    "PricingEngine",
    "convert_legacy_rate_card",
    "RateCardImportService",
    "RateCardVersionService",
]
