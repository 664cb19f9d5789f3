"""
Pricing Calculator.

Pure computation of an itemised shipping charge from a rate card snapshot:

1. Chargeable weight (actual vs volumetric, rounded up to the card's unit)
2. Freight from the zone's base price and per-kg rate
3. Customer discount on freight
4. COD charge (slab, card percentage or platform fallback)
5. Fuel surcharge
6. Remote area surcharge
7. Minimum fare top-up
8. GST (CGST + SGST intra-state, IGST inter-state)

No database, cache or clock access happens here; identical inputs always
give an identical PricingResult.
"""
import logging
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from typing import Optional, Tuple, Union

from rate_engine.config import Settings, settings as default_settings
from rate_engine.core.enum_utils import to_enum
from rate_engine.core.exceptions import ConfigError, ValidationError
from rate_engine.core.states import get_state_code
from rate_engine.models.rate_card import (
    ChargeType, FuelSurchargeBase, MinimumFareBase, PaymentMode, RoundingMode, ZoneCode,
)
from rate_engine.schemas.pricing import CodRule, PricingResult, TaxBreakdown, ZoneSource
from rate_engine.schemas.rate_card import CustomerOverride, RateCardSnapshot

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
WEIGHT_PLACES = Decimal("0.001")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

Dimensions = Tuple[Decimal, Decimal, Decimal]


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value: Decimal) -> Decimal:
    """Quantize to paise, half-up."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def calculate_volumetric_weight(
    length_cm: Decimal,
    width_cm: Decimal,
    height_cm: Decimal,
    divisor: int = 5000,
) -> Decimal:
    """L x W x H / divisor, in kg."""
    return (to_decimal(length_cm) * to_decimal(width_cm) * to_decimal(height_cm)) / Decimal(divisor)


def round_up_to_unit(weight_kg: Decimal, unit_kg: Decimal) -> Decimal:
    """Smallest multiple of unit_kg that is >= weight_kg."""
    units = (weight_kg / unit_kg).quantize(Decimal("1"), rounding=ROUND_CEILING)
    return units * unit_kg


def get_chargeable_weight(
    actual_weight_kg: Decimal,
    volumetric_weight_kg: Optional[Decimal] = None,
    rounding_unit_kg: Decimal = Decimal("0.5"),
) -> Decimal:
    """
    Chargeable weight: max(actual, volumetric), rounded up to the unit.

    1.2 kg with a 0.5 kg unit -> 1.5 kg.
    """
    weight = to_decimal(actual_weight_kg)
    if volumetric_weight_kg is not None and volumetric_weight_kg > weight:
        weight = to_decimal(volumetric_weight_kg)
    return round_up_to_unit(weight, to_decimal(rounding_unit_kg))


class PricingCalculator:
    """Prices one shipment against one rate card."""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings

    # ============================================
    # COMPONENTS
    # ============================================

    def _freight(self, rate_card: RateCardSnapshot, zone: ZoneCode, chargeable_kg: Decimal) -> Decimal:
        price = rate_card.zone_price(zone)
        if price is None:
            raise ConfigError(
                f"Rate card {rate_card.name} v{rate_card.version_number} has no pricing for zone {zone.value}",
                details={"rate_card_id": str(rate_card.id), "zone": zone.value},
            )
        if chargeable_kg <= price.base_weight:
            return money(price.base_price)
        extra_kg = chargeable_kg - price.base_weight
        return money(price.base_price + extra_kg * price.additional_price_per_kg)

    def _discount(self, freight: Decimal, override: Optional[CustomerOverride]) -> Decimal:
        if override is None:
            return ZERO.quantize(TWO_PLACES)
        if override.discount_percentage is not None:
            return money(freight * override.discount_percentage / HUNDRED)
        return money(min(override.flat_discount, freight))

    def _cod(
        self,
        rate_card: RateCardSnapshot,
        payment_mode: PaymentMode,
        declared_value: Decimal,
    ) -> Tuple[Decimal, CodRule]:
        if payment_mode != PaymentMode.COD:
            return ZERO.quantize(TWO_PLACES), CodRule.NOT_APPLICABLE

        if rate_card.cod_slabs:
            for slab in sorted(rate_card.cod_slabs, key=lambda s: (s.min, s.max)):
                if slab.contains(declared_value):
                    if slab.type == ChargeType.PERCENTAGE:
                        return money(declared_value * slab.value / HUNDRED), CodRule.SLAB
                    return money(slab.value), CodRule.SLAB
            logger.debug(f"No COD slab covers {declared_value} on rate card {rate_card.id}")

        if rate_card.cod_percentage is not None:
            charge = declared_value * rate_card.cod_percentage / HUNDRED
            charge = max(charge, rate_card.cod_minimum_charge or ZERO)
            if rate_card.cod_maximum_charge is not None:
                charge = min(charge, rate_card.cod_maximum_charge)
            return money(charge), CodRule.PERCENTAGE

        percentage = to_decimal(self.config.FALLBACK_COD_PERCENTAGE)
        minimum = to_decimal(self.config.FALLBACK_COD_MINIMUM)
        return money(max(declared_value * percentage / HUNDRED, minimum)), CodRule.FALLBACK

    def _tax(
        self,
        rate_card: RateCardSnapshot,
        subtotal: Decimal,
        origin_state: str,
        destination_state: str,
    ) -> TaxBreakdown:
        gst_percentage = rate_card.gst_percentage
        if gst_percentage is None:
            gst_percentage = to_decimal(self.config.DEFAULT_GST_PERCENTAGE)

        is_intra_state = get_state_code(origin_state) == get_state_code(destination_state)
        total_tax = money(subtotal * gst_percentage / HUNDRED)

        if is_intra_state:
            # Split the rounded total so CGST + SGST always equals IGST
            cgst = money(total_tax / 2)
            return TaxBreakdown(
                gst_percentage=gst_percentage,
                is_intra_state=True,
                cgst=cgst,
                sgst=total_tax - cgst,
                total_tax=total_tax,
            )
        return TaxBreakdown(
            gst_percentage=gst_percentage,
            is_intra_state=False,
            igst=total_tax,
            total_tax=total_tax,
        )

    # ============================================
    # CALCULATION
    # ============================================

    def calculate(
        self,
        rate_card: RateCardSnapshot,
        zone: Union[ZoneCode, str],
        weight_kg: Decimal,
        payment_mode: Union[PaymentMode, str],
        declared_value: Decimal,
        origin_state: str,
        destination_state: str,
        dimensions_cm: Optional[Dimensions] = None,
        is_remote_route: bool = False,
        customer_override: Optional[CustomerOverride] = None,
        zone_source: ZoneSource = ZoneSource.INTERNAL,
    ) -> PricingResult:
        """
        Price a shipment.

        Raises:
            ValidationError: non-positive weight or dimensions, negative
                declared value, unknown payment mode or state.
            ConfigError: the card has no entry for the zone, or an
                unsupported rounding mode.
        """
        zone_code = to_enum(zone, ZoneCode)
        if zone_code is None:
            raise ConfigError(f"Unknown zone '{zone}'", details={"zone": str(zone)})

        mode = to_enum(payment_mode, PaymentMode)
        if mode is None:
            raise ValidationError(
                f"Invalid payment mode '{payment_mode}'",
                details={"payment_mode": str(payment_mode)},
            )

        actual_kg = to_decimal(weight_kg)
        if actual_kg <= 0:
            raise ValidationError(
                f"Weight must be positive, got {weight_kg}",
                details={"weight_kg": str(weight_kg)},
            )

        declared = to_decimal(declared_value or 0)
        if declared < 0:
            raise ValidationError(
                f"Declared value cannot be negative, got {declared_value}",
                details={"declared_value": str(declared_value)},
            )

        if rate_card.rounding_mode != RoundingMode.CEIL:
            raise ConfigError(
                f"Unsupported rounding mode '{rate_card.rounding_mode}'",
                details={"rate_card_id": str(rate_card.id)},
            )

        volumetric_kg = ZERO
        if dimensions_cm is not None:
            dims = tuple(to_decimal(d) for d in dimensions_cm)
            if len(dims) != 3 or any(d <= 0 for d in dims):
                raise ValidationError(
                    "Dimensions must be three positive values",
                    details={"dimensions_cm": [str(d) for d in dimensions_cm]},
                )
            volumetric_kg = calculate_volumetric_weight(*dims, divisor=rate_card.volumetric_divisor)

        chargeable_kg = get_chargeable_weight(actual_kg, volumetric_kg, rate_card.rounding_unit_kg)

        freight = self._freight(rate_card, zone_code, chargeable_kg)
        discount = self._discount(freight, customer_override)
        net_freight = freight - discount

        cod_charge, cod_rule = self._cod(rate_card, mode, declared)

        fuel_basis = net_freight
        if rate_card.fuel_surcharge_base == FuelSurchargeBase.FREIGHT_COD:
            fuel_basis += cod_charge
        fuel_surcharge = money(fuel_basis * rate_card.fuel_surcharge_percentage / HUNDRED)

        remote_area_charge = ZERO.quantize(TWO_PLACES)
        if rate_card.remote_area_enabled and (is_remote_route or zone_code == ZoneCode.E):
            remote_area_charge = money(rate_card.remote_area_surcharge)

        minimum_basis = net_freight
        if rate_card.minimum_fare_calculated_on == MinimumFareBase.FREIGHT_OVERHEAD:
            minimum_basis += fuel_surcharge + remote_area_charge + cod_charge
        minimum_fare_top_up = money(max(ZERO, rate_card.minimum_fare - minimum_basis))

        subtotal = net_freight + cod_charge + fuel_surcharge + remote_area_charge + minimum_fare_top_up
        tax = self._tax(rate_card, subtotal, origin_state, destination_state)
        total = money(subtotal + tax.total_tax)

        return PricingResult(
            zone=zone_code,
            zone_source=zone_source,
            actual_weight_kg=actual_kg,
            volumetric_weight_kg=volumetric_kg.quantize(WEIGHT_PLACES, rounding=ROUND_HALF_UP),
            chargeable_weight_kg=chargeable_kg,
            freight=freight,
            discount=discount,
            cod_charge=cod_charge,
            cod_rule=cod_rule,
            fuel_surcharge=fuel_surcharge,
            remote_area_charge=remote_area_charge,
            minimum_fare_top_up=minimum_fare_top_up,
            subtotal=subtotal,
            tax_breakdown=tax,
            total=total,
            rate_card_id=rate_card.id,
            rate_card_version=rate_card.version_number,
        )
