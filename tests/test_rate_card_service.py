import random
import uuid
from datetime import date

import pytest

from rate_engine.config import Settings
from rate_engine.core.exceptions import ConfigError, NoRateCardError, ValidationError
from rate_engine.models.rate_card import ShipmentType
from rate_engine.services.cache_service import InMemoryCache, PricingCacheService
from rate_engine.services.rate_card_service import (
    RateCardService,
    find_customer_override,
    select_from_candidates,
)
from rate_engine.services.rate_card_version_service import RateCardVersionService
from tests.factories import COMPANY, add_rate_card, make_draft, make_snapshot

TODAY = date(2024, 6, 1)


def pick(cards, **kwargs):
    kwargs.setdefault("shipment_type", ShipmentType.FORWARD)
    kwargs.setdefault("effective_date", TODAY)
    return select_from_candidates(cards, **kwargs)


# ============================================
# FILTERING
# ============================================

def test_no_candidates_raises():
    with pytest.raises(NoRateCardError):
        pick([])


def test_category_without_card_raises():
    electronics = make_snapshot(category="electronics")

    with pytest.raises(NoRateCardError) as exc:
        pick([electronics], category="furniture")
    assert exc.value.details["category"] == "furniture"


@pytest.mark.parametrize("overrides", [
    {"status": "DRAFT"},
    {"status": "INACTIVE"},
    {"is_deleted": True},
    {"effective_from": date(2024, 7, 1)},
    {"effective_from": date(2023, 1, 1), "effective_to": date(2024, 5, 31)},
    {"shipment_type": "REVERSE"},
    {"category": "electronics"},
])
def test_card_filtered_out(overrides):
    with pytest.raises(NoRateCardError):
        pick([make_snapshot(**overrides)])


def test_validity_window_is_inclusive():
    card = make_snapshot(effective_from=TODAY, effective_to=TODAY)
    assert pick([card]).id == card.id


def test_card_without_type_or_category_matches_anything():
    card = make_snapshot()
    assert pick([card], shipment_type=ShipmentType.REVERSE, category="apparel").id == card.id


# ============================================
# RANKING
# ============================================

def test_tier_order():
    other = make_snapshot(name="Other", priority=100)
    default = make_snapshot(name="Default", is_default=True, priority=50)
    promo = make_snapshot(name="Promo", is_special_promotion=True)
    group = make_snapshot(
        name="Group",
        customer_overrides=[{"customer_group": "gold", "discount_percentage": "5"}],
    )
    customer = make_snapshot(
        name="Customer",
        customer_overrides=[{"customer_id": "cust-1", "discount_percentage": "10"}],
    )
    cards = [other, default, promo, group, customer]

    assert pick(cards, customer_id="cust-1", customer_group="gold").name == "Customer"
    assert pick(cards, customer_group="gold").name == "Group"
    assert pick(cards).name == "Promo"
    assert pick([other, default]).name == "Default"
    assert pick([other]).name == "Other"


def test_catch_all_default_beats_higher_priority_stray_card():
    catch_all = make_snapshot(name="Catch-all default", is_default=True, priority=0)
    stray = make_snapshot(name="Stray", priority=5)

    assert pick([stray, catch_all]).name == "Catch-all default"
    assert pick([stray, catch_all], category="apparel").name == "Catch-all default"


def test_category_default_beats_catch_all_default():
    catch_all = make_snapshot(name="Catch-all default", is_default=True, priority=50)
    apparel = make_snapshot(name="Apparel default", is_default=True, category="apparel")
    electronics = make_snapshot(name="Electronics default", is_default=True, category="electronics")
    cards = [catch_all, apparel, electronics]

    assert pick(cards, category="apparel").name == "Apparel default"
    assert pick(cards, category="furniture").name == "Catch-all default"
    assert pick(cards).name == "Catch-all default"


def test_group_override_priority_breaks_tie():
    low = make_snapshot(
        name="Low",
        priority=10,
        customer_overrides=[{"customer_group": "gold", "discount_percentage": "5", "priority": 1}],
    )
    high = make_snapshot(
        name="High",
        customer_overrides=[{"customer_group": "gold", "discount_percentage": "2", "priority": 5}],
    )
    assert pick([low, high], customer_group="gold").name == "High"


def test_card_priority_then_version_breaks_tie():
    v1 = make_snapshot(version_number=1)
    v2 = make_snapshot(version_number=2)
    boosted = make_snapshot(version_number=1, priority=3)

    assert pick([v1, v2]).id == v2.id
    assert pick([v1, v2, boosted]).id == boosted.id


def test_selection_independent_of_candidate_order():
    cards = [make_snapshot(id=uuid.UUID(int=i), name=f"Card {i}") for i in range(1, 8)]
    expected = pick(cards)
    # identical rank except id, smallest id string wins
    assert expected.id == uuid.UUID(int=1)

    rng = random.Random(7)
    for _ in range(20):
        shuffled = cards[:]
        rng.shuffle(shuffled)
        assert pick(shuffled).id == expected.id


def test_find_customer_override_prefers_id_over_group():
    card = make_snapshot(customer_overrides=[
        {"customer_group": "gold", "discount_percentage": "20", "priority": 9},
        {"customer_id": "cust-1", "flat_discount": "5"},
        {"customer_id": "cust-1", "flat_discount": "7", "priority": 2},
    ])

    assert find_customer_override(card, "cust-1", "gold").flat_discount == 7
    assert find_customer_override(card, "cust-2", "gold").discount_percentage == 20
    assert find_customer_override(card, "cust-2", "silver") is None


# ============================================
# SERVICE (store + cache)
# ============================================

@pytest.mark.asyncio
async def test_service_selects_from_store(session, cache):
    await add_rate_card(session, name="Draft", status="DRAFT", priority=99)
    active = await add_rate_card(session, name="Live")
    await add_rate_card(session, company_id="someone-else", priority=99)
    service = RateCardService(session, cache)

    card = await service.select_rate_card(COMPANY, "forward", TODAY)

    assert card.id == active.id


@pytest.mark.asyncio
async def test_company_without_cards_raises(session, cache):
    service = RateCardService(session, cache)

    with pytest.raises(NoRateCardError) as exc:
        await service.select_rate_card(COMPANY, ShipmentType.FORWARD, TODAY)
    assert exc.value.details["company_id"] == COMPANY


@pytest.mark.asyncio
async def test_misconfigured_card_is_config_error(session, cache):
    await add_rate_card(session, rounding_mode="FLOOR")
    service = RateCardService(session, cache)

    with pytest.raises(ConfigError):
        await service.select_rate_card(COMPANY, ShipmentType.FORWARD, TODAY)


@pytest.mark.asyncio
async def test_cached_candidates_until_invalidated(session, cache):
    await add_rate_card(session, name="Old")
    service = RateCardService(session, cache)
    assert (await service.select_rate_card(COMPANY, ShipmentType.FORWARD, TODAY)).name == "Old"

    # written behind the cache's back
    await add_rate_card(session, name="New", priority=5)
    assert (await service.select_rate_card(COMPANY, ShipmentType.FORWARD, TODAY)).name == "Old"

    assert await cache.invalidate_rate_cards(COMPANY)
    assert (await service.select_rate_card(COMPANY, ShipmentType.FORWARD, TODAY)).name == "New"


@pytest.mark.asyncio
async def test_get_rate_card_returns_any_status(session, cache):
    retired = await add_rate_card(session, status="INACTIVE", is_deleted=True)
    service = RateCardService(session, cache)

    card = await service.get_rate_card(retired.id, COMPANY)

    assert card.id == retired.id
    assert card.is_deleted
    assert await service.get_rate_card(uuid.uuid4(), COMPANY) is None
    assert await service.get_rate_card(retired.id, "someone-else") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("shipment_type", ["sideways", "", 7])
async def test_unknown_shipment_type_is_rejected(session, cache, shipment_type):
    await add_rate_card(session)
    service = RateCardService(session, cache)

    with pytest.raises(ValidationError) as exc:
        await service.select_rate_card(COMPANY, shipment_type, TODAY)
    assert exc.value.details["shipment_type"] == shipment_type


@pytest.mark.asyncio
async def test_missing_shipment_type_matches_untyped_cards(session, cache):
    untyped = await add_rate_card(session, name="Any")
    await add_rate_card(session, name="Forward only", shipment_type="FORWARD", priority=9)
    service = RateCardService(session, cache)

    assert (await service.select_rate_card(COMPANY, None, TODAY)).id == untyped.id


class PublishDuringFillCache(InMemoryCache):
    """Runs before_fill just before the candidate list is stored."""

    def __init__(self):
        super().__init__()
        self.before_fill = None

    async def set(self, key, value, ttl=3600):
        if "rate_cards:active" in key and self.before_fill is not None:
            hook, self.before_fill = self.before_fill, None
            await hook()
        return await super().set(key, value, ttl)


@pytest.mark.asyncio
async def test_publish_during_fill_is_not_masked(session):
    backend = PublishDuringFillCache()
    cache = PricingCacheService(
        backend, config=Settings(REDIS_URL=None, CACHE_FETCH_TIMEOUT_SECONDS=5)
    )
    versions = RateCardVersionService(session, cache)
    service = RateCardService(session, cache)
    await versions.publish_version(make_draft())

    backend.before_fill = lambda: versions.publish_version(make_draft(priority=1))
    in_flight = await service.load_candidates(COMPANY)
    assert [c.version_number for c in in_flight] == [1]

    reloaded = await service.load_candidates(COMPANY)
    assert [c.version_number for c in reloaded] == [2]
    card = await service.select_rate_card(COMPANY, ShipmentType.FORWARD, TODAY)
    assert card.version_number == 2


@pytest.mark.asyncio
async def test_get_rate_card_fill_after_invalidation_is_not_served(session):
    backend = InMemoryCache()
    cache = PricingCacheService(backend, config=Settings(REDIS_URL=None))
    row = await add_rate_card(session)
    service = RateCardService(session, cache)

    generation = await cache.get_rate_card_generation(COMPANY)
    assert await cache.invalidate_rate_cards(COMPANY)
    # a fill that read its generation before the invalidation
    await cache.set_rate_card(COMPANY, str(row.id), {"stale": True}, generation)

    card = await service.get_rate_card(row.id, COMPANY)
    assert card.id == row.id
