"""
Pricing error taxonomy.

Every failure of a pricing call surfaces as one of these types so the
calling workflow can tell "fix your postal data" apart from "configure a
rate card" apart from "bad input". None of them is recovered inside the
engine and no default price is ever substituted.
"""
from typing import Any, Dict, Optional


class PricingError(Exception):
    """Base class for all engine errors."""

    code = "PRICING_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ZoneResolutionError(PricingError):
    """A pincode is absent from the postal master data or unserviceable."""

    code = "ZONE_RESOLUTION_ERROR"


class NoRateCardError(PricingError):
    """No active, non-deleted, date-valid rate card matches the filters."""

    code = "NO_RATE_CARD"


class ConfigError(PricingError):
    """The selected rate card is missing zone pricing or is otherwise malformed."""

    code = "CONFIG_ERROR"


class ValidationError(PricingError):
    """Bad request input: weight, dimensions, payment mode, pincode, state."""

    code = "VALIDATION_ERROR"


class CacheInvalidationError(PricingError):
    """A configuration write could not evict its cache keys."""

    code = "CACHE_INVALIDATION_ERROR"
