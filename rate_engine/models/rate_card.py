"""Rate card models: versioned, company-scoped pricing configuration."""
import uuid
from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    String, Boolean, DateTime, Date, ForeignKey, Integer, Text,
    Numeric, UniqueConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column

from rate_engine.config import settings
from rate_engine.core.enum_utils import enum_comment
from rate_engine.database import Base
from rate_engine.db_types import JSONType, UUIDType


# ============================================
# ENUMS
# ============================================

class ZoneCode(str, Enum):
    """Zone classification for delivery."""
    A = "A"  # Local / within city
    B = "B"  # Within state, or within distance threshold
    C = "C"  # Metro to metro
    D = "D"  # Rest of India
    E = "E"  # Special (North-East / J&K / islands / remote)


class ShipmentType(str, Enum):
    FORWARD = "FORWARD"
    REVERSE = "REVERSE"


class PaymentMode(str, Enum):
    COD = "COD"
    PREPAID = "PREPAID"


class RateCardStatus(str, Enum):
    """Rate card lifecycle status."""
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    EXPIRED = "EXPIRED"


class ZoneBType(str, Enum):
    """How Zone B is decided."""
    STATE = "STATE"        # Same state
    DISTANCE = "DISTANCE"  # Centroid distance below threshold


class FuelSurchargeBase(str, Enum):
    FREIGHT = "FREIGHT"
    FREIGHT_COD = "FREIGHT_COD"


class MinimumFareBase(str, Enum):
    FREIGHT = "FREIGHT"
    FREIGHT_OVERHEAD = "FREIGHT_OVERHEAD"  # freight + fuel + remote + cod


class ChargeType(str, Enum):
    """How a COD slab charge is calculated."""
    FLAT = "FLAT"
    PERCENTAGE = "PERCENTAGE"


class RoundingMode(str, Enum):
    CEIL = "CEIL"


# Weight policy defaults for cards that leave them unset
def default_rounding_unit_kg() -> Decimal:
    return Decimal(str(settings.DEFAULT_ROUNDING_UNIT_KG))


def default_volumetric_divisor() -> int:
    return settings.DEFAULT_VOLUMETRIC_DIVISOR


# ============================================
# RATE CARDS
# ============================================

class RateCard(Base):
    """
    Immutable rate card snapshot.

    Pricing fields are never updated in place: an edit appends a new row
    whose parent_version_id points at the row it supersedes. Only status
    and is_deleted change on an existing row.
    """
    __tablename__ = "rate_cards"
    __table_args__ = (
        UniqueConstraint(
            "company_id", "name", "version_number",
            name="uq_rate_card_version"
        ),
        Index("idx_rate_card_lookup", "company_id", "status", "is_deleted"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Identity
    company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipment_type: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment=f"{enum_comment(ShipmentType)}; NULL = any shipment type"
    )
    category: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="economy/standard/premium; NULL = any category"
    )
    carrier: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    service_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Zone pricing: {"A": {"base_weight": "0.5", "base_price": "30", "additional_price_per_kg": "20"}, ...}
    zone_pricing: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    # COD
    cod_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 3), nullable=True)
    cod_minimum_charge: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    cod_maximum_charge: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    cod_slabs: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="[{min, max, type: FLAT|PERCENTAGE, value}]"
    )

    # Fuel
    fuel_surcharge_percentage: Mapped[Decimal] = mapped_column(Numeric(6, 3), default=0)
    fuel_surcharge_base: Mapped[str] = mapped_column(
        String(20),
        default=FuelSurchargeBase.FREIGHT.value,
        comment=enum_comment(FuelSurchargeBase)
    )

    # Remote area
    remote_area_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    remote_area_surcharge: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)

    # Minimum fare
    minimum_fare: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    minimum_fare_calculated_on: Mapped[str] = mapped_column(
        String(20),
        default=MinimumFareBase.FREIGHT.value,
        comment=enum_comment(MinimumFareBase)
    )

    # Tax
    gst_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)

    # Zone B classification
    zone_b_type: Mapped[str] = mapped_column(
        String(20),
        default=ZoneBType.STATE.value,
        comment=enum_comment(ZoneBType)
    )
    zone_b_distance_km: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)

    # Weight policy
    rounding_unit_kg: Mapped[Decimal] = mapped_column(Numeric(6, 3), default=default_rounding_unit_kg)
    rounding_mode: Mapped[str] = mapped_column(String(20), default=RoundingMode.CEIL.value)
    volumetric_divisor: Mapped[int] = mapped_column(Integer, default=default_volumetric_divisor)

    # Customer overrides: [{customer_id | customer_group, discount_percentage | flat_discount, priority}]
    customer_overrides: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    # Lifecycle
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        default=RateCardStatus.DRAFT.value,
        index=True,
        comment=enum_comment(RateCardStatus)
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    is_default: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Company's designated default for its category"
    )
    is_special_promotion: Mapped[bool] = mapped_column(Boolean, default=False)
    priority: Mapped[int] = mapped_column(Integer, default=0)

    # Version chain
    version_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    parent_version_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("rate_cards.id", ondelete="SET NULL"),
        nullable=True
    )

    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<RateCard(name='{self.name}', company_id='{self.company_id}', v{self.version_number})>"


class RateCardPointer(Base):
    """
    Current version pointer per (company, rate card name).

    The rate_cards table is an append-only log; this row says which entry
    of the chain is live.
    """
    __tablename__ = "rate_card_pointers"
    __table_args__ = (
        UniqueConstraint("company_id", "name", name="uq_rate_card_pointer"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    current_rate_card_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("rate_cards.id", ondelete="RESTRICT"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<RateCardPointer({self.company_id}/{self.name} -> {self.current_rate_card_id})>"
