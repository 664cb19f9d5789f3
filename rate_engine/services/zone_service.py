"""
Zone Resolution.

Classifies an origin/destination pincode pair into one of five zones:

    A  same pincode or same city
    -  zone override on the destination row, else on the origin row
    B  same state (STATE mode) or centroids closer than the
       threshold (DISTANCE mode)
    C  metro to metro
    E  either end remote or in a special region
    D  everything else

Rules are checked in that order and the first match wins, so exactly one
zone comes out for every serviceable pair.
"""
import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Union

from rate_engine.config import Settings, settings as default_settings
from rate_engine.core.enum_utils import to_enum
from rate_engine.core.exceptions import ConfigError, ZoneResolutionError
from rate_engine.core.states import find_state_code, is_special_region_state, normalize_state_name
from rate_engine.models.rate_card import ZoneBType, ZoneCode
from rate_engine.schemas.rate_card import PincodeInfo
from rate_engine.services.pincode_lookup_service import PincodeLookupService

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def _same_state(origin: PincodeInfo, destination: PincodeInfo) -> bool:
    origin_code = find_state_code(origin.state)
    destination_code = find_state_code(destination.state)
    if origin_code and destination_code:
        return origin_code == destination_code
    return normalize_state_name(origin.state) == normalize_state_name(destination.state)


def _same_city(origin: PincodeInfo, destination: PincodeInfo) -> bool:
    if not origin.city or not destination.city:
        return False
    return origin.city.strip().upper() == destination.city.strip().upper()


def _is_metro(info: PincodeInfo, metro_cities: Iterable[str]) -> bool:
    if info.is_metro:
        return True
    return bool(info.city) and info.city.strip().upper() in metro_cities


def is_remote_location(info: PincodeInfo) -> bool:
    """Remote flag on the pincode, or a state in the special-region set."""
    return info.is_remote or is_special_region_state(info.state)


def classify_zone(
    origin: PincodeInfo,
    destination: PincodeInfo,
    zone_b_type: Union[ZoneBType, str] = ZoneBType.STATE,
    zone_b_distance_km: Optional[Decimal] = None,
    metro_cities: Iterable[str] = (),
) -> ZoneCode:
    """
    Pure zone classification of two already looked-up pincodes.

    Raises ConfigError for an unknown zone_b_type.
    """
    mode = to_enum(zone_b_type, ZoneBType)
    if mode is None:
        raise ConfigError(
            f"Invalid zone B type '{zone_b_type}'",
            details={"zone_b_type": str(zone_b_type)},
        )

    if origin.pincode == destination.pincode or _same_city(origin, destination):
        return ZoneCode.A

    for end in (destination, origin):
        if end.zone_override is not None:
            return end.zone_override

    if mode == ZoneBType.DISTANCE:
        has_coordinates = None not in (
            origin.latitude, origin.longitude, destination.latitude, destination.longitude
        )
        if has_coordinates:
            threshold = float(zone_b_distance_km or default_settings.DEFAULT_ZONE_B_DISTANCE_KM)
            distance = haversine_km(
                float(origin.latitude), float(origin.longitude),
                float(destination.latitude), float(destination.longitude),
            )
            if distance < threshold:
                return ZoneCode.B
        else:
            # No centroids on file, judge by state instead
            logger.warning(
                f"Missing coordinates for {origin.pincode}->{destination.pincode}, "
                f"using same-state rule for zone B"
            )
            if _same_state(origin, destination):
                return ZoneCode.B
    elif _same_state(origin, destination):
        return ZoneCode.B

    metro_set = {city.upper() for city in metro_cities}
    if _is_metro(origin, metro_set) and _is_metro(destination, metro_set):
        return ZoneCode.C

    if is_remote_location(origin) or is_remote_location(destination):
        return ZoneCode.E

    return ZoneCode.D


@dataclass(frozen=True)
class ZoneResolution:
    """A resolved zone plus the pincode records it was derived from."""
    zone: ZoneCode
    origin: PincodeInfo
    destination: PincodeInfo


class ZoneResolver:
    """Looks up both pincodes and classifies the route."""

    def __init__(self, lookup: PincodeLookupService, config: Optional[Settings] = None):
        self.lookup = lookup
        self.config = config or default_settings

    async def get_location(self, company_id: str, pincode: str) -> PincodeInfo:
        info = await self.lookup.lookup(company_id, pincode)
        if info is None:
            raise ZoneResolutionError(
                f"Pincode {pincode} not found in postal master",
                details={"pincode": pincode, "company_id": company_id},
            )
        if not info.is_serviceable:
            raise ZoneResolutionError(
                f"Pincode {pincode} is not serviceable",
                details={"pincode": pincode, "company_id": company_id},
            )
        return info

    async def resolve(
        self,
        company_id: str,
        from_pincode: str,
        to_pincode: str,
        zone_b_type: Union[ZoneBType, str] = ZoneBType.STATE,
        zone_b_distance_km: Optional[Decimal] = None,
    ) -> ZoneResolution:
        origin = await self.get_location(company_id, from_pincode)
        destination = await self.get_location(company_id, to_pincode)
        zone = classify_zone(
            origin,
            destination,
            zone_b_type=zone_b_type,
            zone_b_distance_km=zone_b_distance_km or Decimal(str(self.config.DEFAULT_ZONE_B_DISTANCE_KM)),
            metro_cities=self.config.METRO_CITIES,
        )
        logger.debug(f"Zone {zone.value} for {from_pincode}->{to_pincode} ({company_id})")
        return ZoneResolution(zone=zone, origin=origin, destination=destination)

    async def resolve_zone(
        self,
        company_id: str,
        from_pincode: str,
        to_pincode: str,
        zone_b_type: Union[ZoneBType, str] = ZoneBType.STATE,
        zone_b_distance_km: Optional[Decimal] = None,
    ) -> ZoneCode:
        resolution = await self.resolve(
            company_id, from_pincode, to_pincode, zone_b_type, zone_b_distance_km
        )
        return resolution.zone
