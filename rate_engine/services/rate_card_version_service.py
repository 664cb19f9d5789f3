"""
Rate Card Versioning.

rate_cards is an append-only log: publishing an edit inserts a new row
linked to its predecessor through parent_version_id, retires the
predecessor and moves the (company, name) pointer. Pricing fields of an
existing row are never updated, so any historical quote can be
re-derived from the version it was priced against.

Every write evicts the company's rate card cache keys before returning.
"""
import logging
import uuid
from typing import List, Optional, Union

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from rate_engine.core.exceptions import CacheInvalidationError, NoRateCardError
from rate_engine.models.rate_card import RateCard, RateCardPointer, RateCardStatus
from rate_engine.schemas.rate_card import RateCardDraft, RateCardSnapshot
from rate_engine.services.cache_service import PricingCacheService
from rate_engine.services.rate_card_service import snapshot_from_row

logger = logging.getLogger(__name__)


class RateCardVersionService:
    """Publishes, retires and retrieves rate card versions."""

    def __init__(self, db: AsyncSession, cache: Optional[PricingCacheService] = None):
        self.db = db
        self.cache = cache

    async def _get_pointer(self, company_id: str, name: str) -> Optional[RateCardPointer]:
        result = await self.db.execute(
            select(RateCardPointer).where(
                and_(
                    RateCardPointer.company_id == company_id,
                    RateCardPointer.name == name,
                )
            )
        )
        return result.scalar_one_or_none()

    async def _latest_version_number(self, company_id: str, name: str) -> int:
        result = await self.db.execute(
            select(func.max(RateCard.version_number)).where(
                and_(RateCard.company_id == company_id, RateCard.name == name)
            )
        )
        return result.scalar() or 0

    async def _invalidate(self, company_id: str) -> None:
        if self.cache is None:
            return
        if not await self.cache.invalidate_rate_cards(company_id):
            raise CacheInvalidationError(
                f"Could not evict cached rate cards for company {company_id}",
                details={"company_id": company_id},
            )

    async def publish_version(
        self,
        draft: Union[RateCardDraft, RateCardSnapshot],
        created_by: Optional[str] = None,
    ) -> RateCardSnapshot:
        """
        Append a new ACTIVE version of a rate card.

        The version number continues the (company, name) chain; the
        previously current version becomes INACTIVE.
        """
        if isinstance(draft, RateCardSnapshot):
            draft = RateCardDraft.from_snapshot(draft)

        pointer = await self._get_pointer(draft.company_id, draft.name)
        version_number = await self._latest_version_number(draft.company_id, draft.name) + 1

        parent_version_id = None
        if pointer:
            parent_version_id = pointer.current_rate_card_id
            previous = await self.db.get(RateCard, pointer.current_rate_card_id)
            if previous is not None and previous.status == RateCardStatus.ACTIVE.value:
                previous.status = RateCardStatus.INACTIVE.value

        data = draft.model_dump(mode="json")
        rate_card = RateCard(
            id=uuid.uuid4(),
            company_id=draft.company_id,
            name=draft.name,
            description=draft.description,
            shipment_type=data["shipment_type"],
            category=draft.category,
            carrier=draft.carrier,
            service_type=draft.service_type,
            zone_pricing=data["zone_pricing"],
            cod_percentage=draft.cod_percentage,
            cod_minimum_charge=draft.cod_minimum_charge,
            cod_maximum_charge=draft.cod_maximum_charge,
            cod_slabs=data["cod_slabs"],
            fuel_surcharge_percentage=draft.fuel_surcharge_percentage,
            fuel_surcharge_base=data["fuel_surcharge_base"],
            remote_area_enabled=draft.remote_area_enabled,
            remote_area_surcharge=draft.remote_area_surcharge,
            minimum_fare=draft.minimum_fare,
            minimum_fare_calculated_on=data["minimum_fare_calculated_on"],
            gst_percentage=draft.gst_percentage,
            zone_b_type=data["zone_b_type"],
            zone_b_distance_km=draft.zone_b_distance_km,
            rounding_unit_kg=draft.rounding_unit_kg,
            rounding_mode=data["rounding_mode"],
            volumetric_divisor=draft.volumetric_divisor,
            customer_overrides=data["customer_overrides"],
            effective_from=draft.effective_from,
            effective_to=draft.effective_to,
            status=RateCardStatus.ACTIVE.value,
            is_deleted=False,
            is_default=draft.is_default,
            is_special_promotion=draft.is_special_promotion,
            priority=draft.priority,
            version_number=version_number,
            parent_version_id=parent_version_id,
            created_by=created_by,
        )
        self.db.add(rate_card)
        await self.db.flush()

        if pointer:
            pointer.current_rate_card_id = rate_card.id
            pointer.category = draft.category
        else:
            self.db.add(RateCardPointer(
                company_id=draft.company_id,
                name=draft.name,
                category=draft.category,
                current_rate_card_id=rate_card.id,
            ))

        await self.db.commit()
        await self.db.refresh(rate_card)
        await self._invalidate(draft.company_id)

        logger.info(
            f"Published rate card {rate_card.name} v{rate_card.version_number} "
            f"({rate_card.id}) for company {rate_card.company_id}"
        )
        return snapshot_from_row(rate_card)

    async def soft_delete(self, rate_card_id: uuid.UUID) -> RateCardSnapshot:
        """Flag a version as deleted. Rows are never removed."""
        rate_card = await self.db.get(RateCard, rate_card_id)
        if rate_card is None:
            raise NoRateCardError(
                f"Rate card {rate_card_id} not found",
                details={"rate_card_id": str(rate_card_id)},
            )
        rate_card.is_deleted = True
        await self.db.commit()
        await self.db.refresh(rate_card)
        await self._invalidate(rate_card.company_id)

        logger.info(f"Soft-deleted rate card {rate_card.name} v{rate_card.version_number} ({rate_card.id})")
        return snapshot_from_row(rate_card)

    async def get_version(self, rate_card_id: uuid.UUID) -> RateCardSnapshot:
        """Any version by id, including retired and deleted ones."""
        rate_card = await self.db.get(RateCard, rate_card_id)
        if rate_card is None:
            raise NoRateCardError(
                f"Rate card {rate_card_id} not found",
                details={"rate_card_id": str(rate_card_id)},
            )
        return snapshot_from_row(rate_card)

    async def get_current(self, company_id: str, name: str) -> Optional[RateCardSnapshot]:
        pointer = await self._get_pointer(company_id, name)
        if pointer is None:
            return None
        return await self.get_version(pointer.current_rate_card_id)

    async def list_versions(self, company_id: str, name: str) -> List[RateCardSnapshot]:
        """Whole chain of a rate card, oldest first."""
        result = await self.db.execute(
            select(RateCard)
            .where(and_(RateCard.company_id == company_id, RateCard.name == name))
            .order_by(RateCard.version_number)
        )
        return [snapshot_from_row(row) for row in result.scalars().all()]
