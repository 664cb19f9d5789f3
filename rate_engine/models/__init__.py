from rate_engine.models.pincode import PincodeMaster
from rate_engine.models.rate_card import (
    RateCard,
    RateCardPointer,
    ZoneCode,
    ShipmentType,
    PaymentMode,
    RateCardStatus,
    ZoneBType,
    FuelSurchargeBase,
    MinimumFareBase,
    ChargeType,
    RoundingMode,
)

__all__ = [
    "PincodeMaster",
    "RateCard",
    "RateCardPointer",
    "ZoneCode",
    "ShipmentType",
    "PaymentMode",
    "RateCardStatus",
    "ZoneBType",
    "FuelSurchargeBase",
    "MinimumFareBase",
    "ChargeType",
    "RoundingMode",
]
