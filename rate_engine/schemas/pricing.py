"""Request and result schemas for a pricing call."""
import re
import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator, model_validator

from rate_engine.core.enum_utils import (
    create_uppercase_validator,
    VALID_SHIPMENT_TYPES,
    VALID_PAYMENT_MODES,
)
from rate_engine.models.rate_card import ZoneCode, ShipmentType, PaymentMode
from rate_engine.schemas.base import BaseInputSchema, BaseSnapshotSchema


PINCODE_PATTERN = re.compile(r"^[1-9][0-9]{5}$")


class ZoneSource(str, Enum):
    INTERNAL = "INTERNAL"
    EXTERNAL = "EXTERNAL"


class CodRule(str, Enum):
    """Which COD rule produced cod_charge."""
    SLAB = "SLAB"
    PERCENTAGE = "PERCENTAGE"
    FALLBACK = "FALLBACK"
    NOT_APPLICABLE = "NOT_APPLICABLE"


# ============================================
# REQUEST
# ============================================

class PricingRequest(BaseInputSchema):
    """
    Inbound shipment to price.

    Dimensions are all-or-none; when present the volumetric weight is
    compared against the actual weight. effective_date defaults to the
    caller's "today" at the engine boundary.
    """
    company_id: str = Field(..., min_length=1, max_length=64)
    shipment_type: ShipmentType = ShipmentType.FORWARD
    category: Optional[str] = Field(default=None, max_length=50)
    customer_id: Optional[str] = None
    customer_group: Optional[str] = None

    from_pincode: str
    to_pincode: str

    weight_kg: Decimal = Field(..., gt=0)
    length_cm: Optional[Decimal] = Field(default=None, gt=0)
    width_cm: Optional[Decimal] = Field(default=None, gt=0)
    height_cm: Optional[Decimal] = Field(default=None, gt=0)

    payment_mode: PaymentMode = PaymentMode.PREPAID
    declared_value: Decimal = Field(default=Decimal("0"), ge=0)
    effective_date: Optional[date] = None

    # Zone already assigned by the courier, e.g. "zone_c"
    external_zone: Optional[str] = None

    _normalize_shipment_type = create_uppercase_validator('shipment_type', VALID_SHIPMENT_TYPES)
    _normalize_payment_mode = create_uppercase_validator('payment_mode', VALID_PAYMENT_MODES)

    @field_validator('from_pincode', 'to_pincode', mode='before')
    @classmethod
    def validate_pincode(cls, v):
        if isinstance(v, int):
            v = str(v)
        if not isinstance(v, str) or not PINCODE_PATTERN.match(v.strip()):
            raise ValueError(f"Invalid pincode '{v}': expected 6 digits, first non-zero")
        return v.strip()

    @model_validator(mode='after')
    def check_dimensions(self):
        dims = (self.length_cm, self.width_cm, self.height_cm)
        provided = [d for d in dims if d is not None]
        if provided and len(provided) != len(dims):
            raise ValueError("length_cm, width_cm and height_cm must be given together")
        return self

    @property
    def has_dimensions(self) -> bool:
        return self.length_cm is not None


# ============================================
# RESULT
# ============================================

class TaxBreakdown(BaseSnapshotSchema):
    """GST on the subtotal. Intra-state fills cgst/sgst, inter-state fills igst."""
    gst_percentage: Decimal
    is_intra_state: bool
    cgst: Optional[Decimal] = None
    sgst: Optional[Decimal] = None
    igst: Optional[Decimal] = None
    total_tax: Decimal


class PricingResult(BaseSnapshotSchema):
    """Itemised, tax-inclusive price of one shipment."""
    zone: ZoneCode
    zone_source: ZoneSource = ZoneSource.INTERNAL

    actual_weight_kg: Decimal
    volumetric_weight_kg: Decimal
    chargeable_weight_kg: Decimal

    freight: Decimal
    discount: Decimal = Decimal("0.00")
    cod_charge: Decimal
    cod_rule: CodRule = CodRule.NOT_APPLICABLE
    fuel_surcharge: Decimal
    remote_area_charge: Decimal
    minimum_fare_top_up: Decimal
    subtotal: Decimal
    tax_breakdown: TaxBreakdown
    total: Decimal

    rate_card_id: uuid.UUID
    rate_card_version: int
    currency: str = "INR"
