"""Pincode master: postal areas and their zoning attributes."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Numeric, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from rate_engine.database import Base
from rate_engine.db_types import UUIDType


class PincodeMaster(Base):
    """
    Postal master entry, for a single pincode or a contiguous pincode range.

    Rows with company_id NULL form the shared default catalogue; a company
    may add its own rows which take precedence for that company.
    """
    __tablename__ = "pincode_master"
    __table_args__ = (
        UniqueConstraint(
            "company_id", "pincode_from", "pincode_to",
            name="uq_pincode_master_range"
        ),
        Index("idx_pincode_master_range", "pincode_from", "pincode_to"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    company_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
        comment="NULL for the shared default catalogue"
    )

    # Single pincode when pincode_from == pincode_to
    pincode_from: Mapped[str] = mapped_column(String(6), nullable=False)
    pincode_to: Mapped[str] = mapped_column(String(6), nullable=False)

    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[str] = mapped_column(String(100), nullable=False)

    # Centroid, used for distance-based Zone B
    latitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(9, 6), nullable=True)
    longitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(9, 6), nullable=True)

    is_metro: Mapped[bool] = mapped_column(Boolean, default=False)
    is_remote: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Remote / out-of-delivery area"
    )
    is_serviceable: Mapped[bool] = mapped_column(Boolean, default=True)
    zone_override: Mapped[Optional[str]] = mapped_column(
        String(1),
        nullable=True,
        comment="Forces the zone for shipments delivered here: A-E"
    )

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
        return f"<PincodeMaster({self.pincode_from}-{self.pincode_to}, {self.state})>"
