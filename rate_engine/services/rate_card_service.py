"""
Rate Card Selection.

Picks the single rate card that prices a shipment. Candidates are the
company's ACTIVE, non-deleted cards; they are filtered by validity
window, shipment type and category, then ranked:

    1. customer-specific override matching customer_id
    2. customer-group override matching customer_group
    3. special promotion
    4. company default for the requested category, then the
       catch-all default (no category)
    5. any other surviving card

Ties break on override priority or default specificity, card priority,
version number (all descending) and finally the card id, so the ranking
is a total order.
"""
import logging
import uuid
from datetime import date
from typing import List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from rate_engine.core.enum_utils import VALID_SHIPMENT_TYPES, to_enum
from rate_engine.core.exceptions import ConfigError, NoRateCardError, ValidationError
from rate_engine.models.rate_card import RateCard, RateCardStatus, ShipmentType
from rate_engine.schemas.rate_card import CustomerOverride, RateCardSnapshot
from rate_engine.services.cache_service import PricingCacheService

logger = logging.getLogger(__name__)


TIER_CUSTOMER = 1
TIER_CUSTOMER_GROUP = 2
TIER_PROMOTION = 3
TIER_DEFAULT = 4
TIER_OTHER = 5


def snapshot_from_row(row: RateCard) -> RateCardSnapshot:
    """Build a snapshot from an ORM row; malformed configuration is a ConfigError."""
    try:
        return RateCardSnapshot.model_validate(row)
    except PydanticValidationError as e:
        raise ConfigError(
            f"Rate card {row.id} ({row.name} v{row.version_number}) is misconfigured",
            details={"rate_card_id": str(row.id), "errors": e.errors(include_url=False)},
        ) from e


def find_customer_override(
    rate_card: RateCardSnapshot,
    customer_id: Optional[str] = None,
    customer_group: Optional[str] = None,
) -> Optional[CustomerOverride]:
    """
    Best override on a card for this payer.

    An override on the customer id beats any group override; among
    several matches the highest priority wins, then list order.
    """
    if customer_id:
        matches = [o for o in rate_card.customer_overrides if o.customer_id == customer_id]
        if matches:
            return max(matches, key=lambda o: o.priority)
    if customer_group:
        matches = [o for o in rate_card.customer_overrides if o.customer_group == customer_group]
        if matches:
            return max(matches, key=lambda o: o.priority)
    return None


def _rank(
    card: RateCardSnapshot,
    category: Optional[str],
    customer_id: Optional[str],
    customer_group: Optional[str],
) -> Tuple[int, int]:
    """(tier, precedence within the tier) of a filtered candidate."""
    if customer_id:
        matches = [o.priority for o in card.customer_overrides if o.customer_id == customer_id]
        if matches:
            return TIER_CUSTOMER, max(matches)
    if customer_group:
        matches = [o.priority for o in card.customer_overrides if o.customer_group == customer_group]
        if matches:
            return TIER_CUSTOMER_GROUP, max(matches)
    if card.is_special_promotion:
        return TIER_PROMOTION, 0
    if card.is_default and card.category in (None, category):
        return TIER_DEFAULT, 0 if card.category is None else 1
    return TIER_OTHER, 0


def _passes_filter(
    card: RateCardSnapshot,
    shipment_type: Optional[ShipmentType],
    category: Optional[str],
    effective_date: date,
) -> bool:
    if card.status != RateCardStatus.ACTIVE or card.is_deleted:
        return False
    if not card.is_effective_on(effective_date):
        return False
    if card.shipment_type is not None and card.shipment_type != shipment_type:
        return False
    if card.category is not None and card.category != category:
        return False
    return True


def select_from_candidates(
    candidates: Sequence[RateCardSnapshot],
    shipment_type: Optional[ShipmentType],
    effective_date: date,
    category: Optional[str] = None,
    customer_id: Optional[str] = None,
    customer_group: Optional[str] = None,
) -> RateCardSnapshot:
    """Pure selection over an already loaded candidate list."""
    ranked = []
    for card in candidates:
        if not _passes_filter(card, shipment_type, category, effective_date):
            continue
        tier, precedence = _rank(card, category, customer_id, customer_group)
        ranked.append((
            (tier, -precedence, -card.priority, -card.version_number, str(card.id)),
            card,
        ))

    if not ranked:
        company_id = candidates[0].company_id if candidates else None
        raise NoRateCardError(
            "No applicable rate card",
            details={
                "company_id": company_id,
                "shipment_type": shipment_type.value if shipment_type else None,
                "category": category,
                "effective_date": effective_date.isoformat(),
            },
        )

    ranked.sort(key=lambda item: item[0])
    return ranked[0][1]


class RateCardService:
    """Loads rate cards from the store (through the cache) and selects one."""

    def __init__(self, db: AsyncSession, cache: Optional[PricingCacheService] = None):
        self.db = db
        self.cache = cache

    async def load_candidates(self, company_id: str) -> List[RateCardSnapshot]:
        """ACTIVE, non-deleted rate cards of a company."""
        generation = None
        if self.cache:
            generation = await self.cache.get_rate_card_generation(company_id)
            if generation is not None:
                cached = await self.cache.get_rate_cards(company_id, generation)
                if cached is not None:
                    return [RateCardSnapshot.model_validate(item) for item in cached]

        stmt = (
            select(RateCard)
            .where(
                and_(
                    RateCard.company_id == company_id,
                    RateCard.status == RateCardStatus.ACTIVE.value,
                    RateCard.is_deleted == False,
                )
            )
            .order_by(RateCard.name, RateCard.version_number)
        )
        result = await self.db.execute(stmt)
        snapshots = [snapshot_from_row(row) for row in result.scalars().all()]

        # Filled under the generation read before the query; a publish in
        # between has moved readers to the next generation
        if self.cache and generation is not None:
            await self.cache.set_rate_cards(
                company_id, [s.model_dump(mode="json") for s in snapshots], generation
            )
        return snapshots

    async def select_rate_card(
        self,
        company_id: str,
        shipment_type: Optional[ShipmentType],
        effective_date: date,
        category: Optional[str] = None,
        customer_id: Optional[str] = None,
        customer_group: Optional[str] = None,
    ) -> RateCardSnapshot:
        """
        Return the applicable rate card.

        Raises ValidationError for an unknown shipment type and
        NoRateCardError when no card survives the filter.
        """
        requested = shipment_type
        shipment_type = to_enum(shipment_type, ShipmentType)
        if requested is not None and shipment_type is None:
            raise ValidationError(
                f"Unknown shipment type: {requested}",
                details={"shipment_type": requested, "allowed": sorted(VALID_SHIPMENT_TYPES)},
            )

        candidates = await self.load_candidates(company_id)
        if not candidates:
            raise NoRateCardError(
                f"No active rate card configured for company {company_id}",
                details={"company_id": company_id, "category": category},
            )

        card = select_from_candidates(
            candidates,
            shipment_type=shipment_type,
            effective_date=effective_date,
            category=category,
            customer_id=customer_id,
            customer_group=customer_group,
        )
        logger.info(
            f"Selected rate card {card.name} v{card.version_number} ({card.id}) "
            f"for company {company_id}, category={category}, date={effective_date}"
        )
        return card

    async def get_rate_card(
        self,
        rate_card_id: uuid.UUID,
        company_id: Optional[str] = None,
    ) -> Optional[RateCardSnapshot]:
        """Any version by id, whatever its status. Used for audit re-pricing."""
        generation = None
        if self.cache and company_id:
            generation = await self.cache.get_rate_card_generation(company_id)
            if generation is not None:
                cached = await self.cache.get_rate_card(company_id, str(rate_card_id), generation)
                if cached is not None:
                    return RateCardSnapshot.model_validate(cached)

        stmt = select(RateCard).where(RateCard.id == rate_card_id)
        if company_id:
            stmt = stmt.where(RateCard.company_id == company_id)
        result = await self.db.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            return None

        snapshot = snapshot_from_row(row)
        if self.cache and generation is not None:
            await self.cache.set_rate_card(
                company_id, str(snapshot.id), snapshot.model_dump(mode="json"), generation
            )
        return snapshot
