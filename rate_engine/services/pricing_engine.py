"""
Pricing Engine.

Entry point for pricing a shipment. Per request:

1. Validate the request
2. Select the applicable rate card (its zone B mode drives step 3)
3. Resolve the zone, or accept a courier-supplied one
4. Calculate the itemised, tax-inclusive price

Failures surface as PricingError subclasses; there is no default price.
"""
import logging
import uuid
from datetime import date
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from rate_engine.config import Settings, settings as default_settings
from rate_engine.core.exceptions import NoRateCardError, ValidationError
from rate_engine.schemas.pricing import PricingRequest, PricingResult, ZoneSource
from rate_engine.schemas.rate_card import RateCardSnapshot, normalize_zone_code
from rate_engine.services.cache_service import PricingCacheService
from rate_engine.services.pincode_lookup_service import PincodeLookupService
from rate_engine.services.pricing_calculator import PricingCalculator
from rate_engine.services.rate_card_service import RateCardService, find_customer_override
from rate_engine.services.zone_service import ZoneResolver, is_remote_location

logger = logging.getLogger(__name__)


def parse_request(request: Union[PricingRequest, dict]) -> PricingRequest:
    """Validate caller input, reporting problems as ValidationError."""
    if isinstance(request, PricingRequest):
        return request
    try:
        return PricingRequest.model_validate(request)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid pricing request",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


class PricingEngine:
    """Prices shipments against the configured rate cards."""

    def __init__(
        self,
        db: AsyncSession,
        cache: Optional[PricingCacheService] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.rate_cards = RateCardService(db, cache)
        self.zones = ZoneResolver(PincodeLookupService(db, cache), self.config)
        self.calculator = PricingCalculator(self.config)

    async def quote(
        self,
        request: Union[PricingRequest, dict],
        today: Optional[date] = None,
    ) -> PricingResult:
        """Price a shipment with the rate card applicable on its effective date."""
        request = parse_request(request)
        effective_date = request.effective_date or today or date.today()

        rate_card = await self.rate_cards.select_rate_card(
            company_id=request.company_id,
            shipment_type=request.shipment_type,
            effective_date=effective_date,
            category=request.category,
            customer_id=request.customer_id,
            customer_group=request.customer_group,
        )
        return await self._price(request, rate_card)

    async def reprice(
        self,
        request: Union[PricingRequest, dict],
        rate_card_id: uuid.UUID,
    ) -> PricingResult:
        """
        Price a shipment against a specific rate card version.

        Used to re-derive a historical price; the version is used whatever
        its current status.
        """
        request = parse_request(request)
        rate_card = await self.rate_cards.get_rate_card(rate_card_id, request.company_id)
        if rate_card is None:
            raise NoRateCardError(
                f"Rate card {rate_card_id} not found",
                details={"rate_card_id": str(rate_card_id), "company_id": request.company_id},
            )
        return await self._price(request, rate_card)

    async def _price(self, request: PricingRequest, rate_card: RateCardSnapshot) -> PricingResult:
        zone = None
        zone_source = ZoneSource.INTERNAL
        if request.external_zone:
            zone = normalize_zone_code(request.external_zone)
            if zone is None:
                logger.warning(f"Ignoring invalid external zone '{request.external_zone}'")
            else:
                zone_source = ZoneSource.EXTERNAL

        if zone is None:
            resolution = await self.zones.resolve(
                request.company_id,
                request.from_pincode,
                request.to_pincode,
                zone_b_type=rate_card.zone_b_type,
                zone_b_distance_km=rate_card.zone_b_distance_km,
            )
            zone = resolution.zone
            origin, destination = resolution.origin, resolution.destination
        else:
            # States are still needed for GST
            origin = await self.zones.get_location(request.company_id, request.from_pincode)
            destination = await self.zones.get_location(request.company_id, request.to_pincode)

        dimensions = None
        if request.has_dimensions:
            dimensions = (request.length_cm, request.width_cm, request.height_cm)

        result = self.calculator.calculate(
            rate_card=rate_card,
            zone=zone,
            weight_kg=request.weight_kg,
            payment_mode=request.payment_mode,
            declared_value=request.declared_value,
            origin_state=origin.state,
            destination_state=destination.state,
            dimensions_cm=dimensions,
            is_remote_route=is_remote_location(destination),
            customer_override=find_customer_override(
                rate_card, request.customer_id, request.customer_group
            ),
            zone_source=zone_source,
        )
        logger.info(
            f"Priced {request.from_pincode}->{request.to_pincode} for {request.company_id}: "
            f"zone {result.zone.value}, {result.chargeable_weight_kg} kg, total {result.total} "
            f"(rate card {rate_card.id} v{rate_card.version_number})"
        )
        return result
