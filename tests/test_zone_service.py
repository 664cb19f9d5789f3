from decimal import Decimal

import pytest

from rate_engine.config import Settings
from rate_engine.core.exceptions import ConfigError, ZoneResolutionError
from rate_engine.models.rate_card import ZoneCode
from rate_engine.services.pincode_lookup_service import PincodeLookupService
from rate_engine.services.zone_service import ZoneResolver, classify_zone, haversine_km
from tests.factories import COMPANY, add_pincode, pin, seed_pincodes

METROS = Settings().METRO_CITIES

MUMBAI = pin("400001", "Mumbai", "Maharashtra", is_metro=True, latitude="19.0760", longitude="72.8777")
MUMBAI_2 = pin("400050", "MUMBAI", "Maharashtra", is_metro=True)
PUNE = pin("411001", "Pune", "Maharashtra", latitude="18.5204", longitude="73.8567")
NAGPUR = pin("440001", "Nagpur", "Maharashtra", latitude="21.1458", longitude="79.0882")
DELHI = pin("110001", "New Delhi", "Delhi", is_metro=True, latitude="28.6139", longitude="77.2090")
BENGALURU = pin("560001", "Bengaluru", "Karnataka")
JAIPUR = pin("302001", "Jaipur", "Rajasthan")
LUCKNOW = pin("226001", "Lucknow", "Uttar Pradesh")
GUWAHATI = pin("781001", "Guwahati", "Assam")


# ============================================
# PURE CLASSIFICATION
# ============================================

def test_same_pincode_is_zone_a():
    assert classify_zone(JAIPUR, JAIPUR, "STATE", metro_cities=METROS) == ZoneCode.A


def test_same_city_is_zone_a_case_insensitive():
    assert classify_zone(MUMBAI, MUMBAI_2, "STATE", metro_cities=METROS) == ZoneCode.A


def test_same_state_is_zone_b_in_state_mode():
    assert classify_zone(MUMBAI, NAGPUR, "state", metro_cities=METROS) == ZoneCode.B


def test_distance_mode_uses_threshold():
    near = classify_zone(MUMBAI, PUNE, "DISTANCE", Decimal("500"), metro_cities=METROS)
    far_same_state = classify_zone(MUMBAI, NAGPUR, "DISTANCE", Decimal("500"), metro_cities=METROS)

    assert near == ZoneCode.B
    # Nagpur is ~690 km from Mumbai and not a metro
    assert far_same_state == ZoneCode.D


def test_distance_mode_below_threshold_falls_through_to_metro():
    assert classify_zone(MUMBAI, PUNE, "DISTANCE", Decimal("100"), metro_cities=METROS) == ZoneCode.C


def test_distance_mode_without_coordinates_uses_state():
    no_coords = pin("440002", "Wardha", "Maharashtra")
    assert classify_zone(MUMBAI_2, no_coords, "DISTANCE", Decimal("500"), metro_cities=METROS) == ZoneCode.B


def test_metro_to_metro_is_zone_c():
    assert classify_zone(MUMBAI, DELHI, "STATE", metro_cities=METROS) == ZoneCode.C


def test_metro_by_city_list_without_flag():
    # Bengaluru carries no metro flag but is a configured metro city
    assert classify_zone(DELHI, BENGALURU, "STATE", metro_cities=METROS) == ZoneCode.C


def test_special_region_state_is_zone_e():
    assert classify_zone(DELHI, GUWAHATI, "STATE", metro_cities=METROS) == ZoneCode.E


def test_remote_flag_is_zone_e():
    remote = pin("302999", "Barmer", "Rajasthan", is_remote=True)
    assert classify_zone(LUCKNOW, remote, "STATE", metro_cities=METROS) == ZoneCode.E


def test_rest_of_india_is_zone_d():
    assert classify_zone(JAIPUR, LUCKNOW, "STATE", metro_cities=METROS) == ZoneCode.D


def test_destination_zone_override():
    forced = pin("226010", "Lucknow Cantt", "Uttar Pradesh", zone_override="zone_e")
    assert classify_zone(JAIPUR, forced, "STATE", metro_cities=METROS) == ZoneCode.E


def test_zone_override_does_not_beat_same_city():
    forced = pin("302002", "Jaipur", "Rajasthan", zone_override="D")
    assert classify_zone(JAIPUR, forced, "STATE", metro_cities=METROS) == ZoneCode.A


def test_origin_zone_override_applies():
    forced_origin = pin("226010", "Lucknow Cantt", "Uttar Pradesh", zone_override="E")
    assert classify_zone(forced_origin, JAIPUR, "STATE", metro_cities=METROS) == ZoneCode.E


def test_destination_zone_override_wins_over_origin():
    forced_origin = pin("226010", "Lucknow Cantt", "Uttar Pradesh", zone_override="E")
    forced_destination = pin("302002", "Amer", "Rajasthan", zone_override="B")
    assert classify_zone(forced_origin, forced_destination, "STATE", metro_cities=METROS) == ZoneCode.B
    assert classify_zone(forced_destination, forced_origin, "STATE", metro_cities=METROS) == ZoneCode.E


def test_invalid_zone_b_mode_is_config_error():
    with pytest.raises(ConfigError):
        classify_zone(JAIPUR, LUCKNOW, "POSTAL_CIRCLE", metro_cities=METROS)


@pytest.mark.parametrize("origin,destination", [
    (MUMBAI, PUNE), (MUMBAI, DELHI), (DELHI, GUWAHATI), (JAIPUR, LUCKNOW),
    (JAIPUR, JAIPUR), (BENGALURU, NAGPUR), (GUWAHATI, LUCKNOW),
])
@pytest.mark.parametrize("mode", ["STATE", "DISTANCE"])
def test_every_pair_gets_exactly_one_zone(origin, destination, mode):
    zone = classify_zone(origin, destination, mode, Decimal("500"), metro_cities=METROS)
    assert zone in set(ZoneCode)
    assert zone == classify_zone(origin, destination, mode, Decimal("500"), metro_cities=METROS)


def test_haversine_mumbai_delhi():
    distance = haversine_km(19.0760, 72.8777, 28.6139, 77.2090)
    assert 1100 < distance < 1200


# ============================================
# RESOLVER (postal master + cache)
# ============================================


@pytest.mark.asyncio
async def test_resolver_classifies_seeded_pincodes(session, cache, test_settings):
    await seed_pincodes(session)
    resolver = ZoneResolver(PincodeLookupService(session, cache), test_settings)

    assert await resolver.resolve_zone(COMPANY, "400001", "411001", "STATE") == ZoneCode.B
    assert await resolver.resolve_zone(COMPANY, "400001", "560001", "STATE") == ZoneCode.C
    assert await resolver.resolve_zone(COMPANY, "302001", "226001", "STATE") == ZoneCode.D
    assert await resolver.resolve_zone(COMPANY, "110001", "781001", "STATE") == ZoneCode.E


@pytest.mark.asyncio
async def test_unknown_pincode_raises(session, cache, test_settings):
    await seed_pincodes(session)
    resolver = ZoneResolver(PincodeLookupService(session, cache), test_settings)

    with pytest.raises(ZoneResolutionError) as exc:
        await resolver.resolve_zone(COMPANY, "400001", "999999", "STATE")
    assert exc.value.details["pincode"] == "999999"


@pytest.mark.asyncio
async def test_unserviceable_pincode_raises(session, cache, test_settings):
    await seed_pincodes(session)
    await add_pincode(session, "123456", "Nowhere", "Haryana", is_serviceable=False)
    resolver = ZoneResolver(PincodeLookupService(session, cache), test_settings)

    with pytest.raises(ZoneResolutionError):
        await resolver.resolve_zone(COMPANY, "400001", "123456", "STATE")


@pytest.mark.asyncio
async def test_company_row_wins_over_shared_catalogue(session, cache):
    await add_pincode(session, "302001", "Jaipur", "Rajasthan")
    await add_pincode(session, "302001", "Jaipur", "Rajasthan", company_id=COMPANY, is_remote=True)
    lookup = PincodeLookupService(session, cache)

    mine = await lookup.lookup(COMPANY, "302001")
    theirs = await lookup.lookup("other-co", "302001")

    assert mine.company_id == COMPANY and mine.is_remote
    assert theirs.company_id is None and not theirs.is_remote


@pytest.mark.asyncio
async def test_range_row_covers_pincodes_inside_it(session):
    await add_pincode(session, "793001", "Shillong", "Meghalaya", pincode_to="793999")
    await add_pincode(session, "793100", "Shillong East", "Meghalaya")
    lookup = PincodeLookupService(session)

    in_range = await lookup.lookup(COMPANY, "793500")
    exact = await lookup.lookup(COMPANY, "793100")

    assert in_range.city == "SHILLONG"
    assert exact.city == "SHILLONG EAST"
    assert await lookup.lookup(COMPANY, "794001") is None


@pytest.mark.asyncio
async def test_lookup_is_served_from_cache(session, cache):
    row = await add_pincode(session, "302001", "Jaipur", "Rajasthan")
    lookup = PincodeLookupService(session, cache)
    await lookup.lookup(COMPANY, "302001")

    await session.delete(row)
    await session.commit()

    cached = await lookup.lookup(COMPANY, "302001")
    assert cached is not None and cached.state == "RAJASTHAN"

    await cache.invalidate_pincodes(COMPANY, "302001")
    assert await lookup.lookup(COMPANY, "302001") is None


@pytest.mark.asyncio
async def test_shared_catalogue_write_reaches_every_company(session, cache):
    row = await add_pincode(session, "302001", "Jaipur", "Rajasthan")
    lookup = PincodeLookupService(session, cache)
    assert not (await lookup.lookup(COMPANY, "302001")).is_remote
    assert not (await lookup.lookup("other-co", "302001")).is_remote

    row.is_remote = True
    await session.commit()
    assert await cache.invalidate_shared_pincodes()

    assert (await lookup.lookup(COMPANY, "302001")).is_remote
    assert (await lookup.lookup("other-co", "302001")).is_remote


@pytest.mark.asyncio
async def test_company_range_row_visible_after_company_eviction(session, cache):
    await add_pincode(session, "793100", "Shillong", "Meghalaya")
    lookup = PincodeLookupService(session, cache)
    assert (await lookup.lookup(COMPANY, "793100")).company_id is None

    await add_pincode(session, "793001", "Shillong", "Meghalaya",
                      company_id=COMPANY, pincode_to="793999", is_remote=True)
    await cache.invalidate_pincodes(COMPANY)

    info = await lookup.lookup(COMPANY, "793100")
    assert info.company_id == COMPANY and info.is_remote
