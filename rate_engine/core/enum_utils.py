"""
Enum Utilities for VARCHAR-based Configuration Fields

STORAGE STANDARD:
━━━━━━━━━━━━━━━━━
• Database: VARCHAR(20) - NOT PostgreSQL ENUM
• SQLAlchemy: String(20) with Mapped[str]
• Pydantic: Python str Enum for validation
• Case: All enum values stored in UPPERCASE

DATA FLOW:
━━━━━━━━━━
INPUT (rate card import, pricing request):
    'cod' / 'Cod' / 'COD' → normalize_to_uppercase() → PaymentMode.COD

STORAGE (rate card row):
    ZoneBType.STATE → .value → "STATE" → VARCHAR

OUTPUT (snapshot read from the database):
    VARCHAR "STATE" → ZoneBType("STATE")

USAGE PATTERNS:
━━━━━━━━━━━━━━━
1. In SQLAlchemy Models:
   status: Mapped[str] = mapped_column(String(20), default="DRAFT",
                                       comment=enum_comment(RateCardStatus))

2. In Pydantic Schemas (with case normalization):
   _normalize_status = create_uppercase_validator('status', VALID_RATE_CARD_STATUSES)
"""

from enum import Enum
from typing import Any, Optional, TypeVar, Type, Set


T = TypeVar('T', bound=Enum)


def get_enum_value(value: Any) -> Optional[str]:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(ZoneBType.STATE)
        'STATE'
        >>> get_enum_value("STATE")
        'STATE'
        >>> get_enum_value(None)
        None
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def to_enum(value: Any, enum_class: Type[T]) -> Optional[T]:
    """
    Convert a string value to an enum instance, case-insensitively.

    Returns None when the value is not a member.

    Examples:
        >>> to_enum("forward", ShipmentType)
        ShipmentType.FORWARD
        >>> to_enum("sideways", ShipmentType)
        None
    """
    if value is None:
        return None
    if isinstance(value, enum_class):
        return value
    if isinstance(value, str):
        value = value.strip().upper()
    try:
        return enum_class(value)
    except (ValueError, KeyError):
        return None


def enum_values(enum_class: Type[Enum]) -> list:
    """Get all values from an enum class."""
    return [e.value for e in enum_class]


def enum_comment(enum_class: Type[Enum]) -> str:
    """
    Generate a comment string for a VARCHAR column.

    Examples:
        >>> enum_comment(ZoneBType)
        'STATE, DISTANCE'
    """
    return ", ".join(enum_values(enum_class))


# =============================================================================
# CASE NORMALIZATION FOR PYDANTIC SCHEMAS
# =============================================================================

def normalize_to_uppercase(value: Any, valid_values: Set[str]) -> Any:
    """
    Normalize a string value to UPPERCASE if it's a valid enum value.

    Invalid values are returned as-is so Pydantic raises the validation error.

    Examples:
        >>> normalize_to_uppercase('prepaid', {'COD', 'PREPAID'})
        'PREPAID'
        >>> normalize_to_uppercase('cash', {'COD', 'PREPAID'})
        'cash'
    """
    if value is None:
        return value
    if isinstance(value, str):
        upper_v = value.strip().upper()
        if upper_v in valid_values:
            return upper_v
    return value


def create_uppercase_validator(field_name: str, valid_values: Set[str]) -> classmethod:
    """
    Create a Pydantic field_validator that normalizes values to UPPERCASE.

    Usage:
        class PricingRequest(BaseModel):
            payment_mode: PaymentMode

            _normalize_payment_mode = create_uppercase_validator(
                'payment_mode', VALID_PAYMENT_MODES
            )
    """
    from pydantic import field_validator

    @field_validator(field_name, mode='before')
    @classmethod
    def validate(cls, v):
        return normalize_to_uppercase(v, valid_values)

    return validate


# =============================================================================
# PRE-DEFINED VALID VALUE SETS
# =============================================================================

VALID_SHIPMENT_TYPES = {"FORWARD", "REVERSE"}

VALID_PAYMENT_MODES = {"COD", "PREPAID"}

VALID_RATE_CARD_STATUSES = {"DRAFT", "ACTIVE", "INACTIVE", "EXPIRED"}

VALID_ZONE_B_TYPES = {"STATE", "DISTANCE"}

VALID_FUEL_SURCHARGE_BASES = {"FREIGHT", "FREIGHT_COD"}

VALID_MINIMUM_FARE_BASES = {"FREIGHT", "FREIGHT_OVERHEAD"}

VALID_CHARGE_TYPES = {"FLAT", "PERCENTAGE"}

VALID_ROUNDING_MODES = {"CEIL"}
