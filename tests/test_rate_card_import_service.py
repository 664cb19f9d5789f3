from datetime import date
from decimal import Decimal

import pytest

from rate_engine.core.exceptions import ValidationError
from rate_engine.models.rate_card import MinimumFareBase, RateCardStatus, ShipmentType, ZoneCode
from rate_engine.services.rate_card_import_service import (
    RateCardImportService,
    parse_amount,
    parse_date,
)
from rate_engine.services.rate_card_version_service import RateCardVersionService
from tests.factories import COMPANY

HEADER = "Name,Zone,Base Weight,Base Price,Additional Price Per Kg,Status,Effective Start,Shipment Type,Minimum Fare,Minimum Fare Calculated On\n"


def zone_rows(name, status="active", zones="ABCDE", start="2024-01-01", **cells):
    lines = []
    for i, zone in enumerate(zones):
        price = cells.get(f"price_{zone}", str(30 + 5 * i))
        lines.append(
            f"{name},zone_{zone.lower()},0.5,{price},20,{status},{start},forward,40,freight_overhead"
        )
    return "\n".join(lines) + "\n"


@pytest.fixture
def importer() -> RateCardImportService:
    return RateCardImportService(COMPANY)


def test_valid_sheet(importer):
    cards, errors = importer.parse_zone_pricing_csv(HEADER + zone_rows("Standard"))

    assert errors == []
    assert len(cards) == 1
    card = cards[0]
    assert card.status == RateCardStatus.ACTIVE
    assert card.row_numbers == [2, 3, 4, 5, 6]
    assert card.draft.company_id == COMPANY
    assert card.draft.shipment_type == ShipmentType.FORWARD
    assert card.draft.minimum_fare == Decimal("40")
    assert card.draft.minimum_fare_calculated_on == MinimumFareBase.FREIGHT_OVERHEAD
    assert card.draft.effective_from == date(2024, 1, 1)
    assert card.draft.zone_pricing[ZoneCode.E].base_price == Decimal("50")


def test_flexible_headers_and_bom(importer):
    content = "\ufeffRate Card,ZONE,base_weight,BasePrice,additional per kg,Start Date\n"
    for zone in "ABCDE":
        content += f"Lite,{zone},1,25,10,01/02/2024\n"

    cards, errors = importer.parse_zone_pricing_csv(content)

    assert errors == []
    assert cards[0].status == RateCardStatus.DRAFT
    assert cards[0].draft.effective_from == date(2024, 2, 1)


def test_missing_zone_reports_first_row(importer):
    cards, errors = importer.parse_zone_pricing_csv(HEADER + zone_rows("Standard", zones="ABCD"))

    assert cards == []
    assert errors[0].row_number == 2
    assert "Missing zones: E" in errors[0].error


def test_bad_card_does_not_block_others(importer):
    content = HEADER + zone_rows("Broken", zones="ABCE") + zone_rows("Good")

    cards, errors = importer.parse_zone_pricing_csv(content)

    assert [c.draft.name for c in cards] == ["Good"]
    assert [e.name for e in errors] == ["Broken"]


def test_inconsistent_metadata(importer):
    content = HEADER + zone_rows("Standard", zones="ABCD") + zone_rows("Standard", zones="E", status="draft")

    cards, errors = importer.parse_zone_pricing_csv(content)

    assert cards == []
    assert errors[0].row_number == 6
    assert "Inconsistent status" in errors[0].error


def test_negative_price(importer):
    cards, errors = importer.parse_zone_pricing_csv(HEADER + zone_rows("Standard", price_C="-5"))

    assert cards == []
    assert errors[0].row_number == 4
    assert "zone 'C'" in errors[0].error


def test_invalid_and_duplicate_zone(importer):
    content = HEADER + zone_rows("Standard") + "Standard,zone_f,0.5,10,5,active,2024-01-01,forward,40,freight_overhead\n"
    content += "Standard,a,0.5,10,5,active,2024-01-01,forward,40,freight_overhead\n"

    cards, errors = importer.parse_zone_pricing_csv(content)

    assert cards == []
    assert [e.row_number for e in errors] == [7, 8]
    assert "Invalid zone" in errors[0].error
    assert "Duplicate zone" in errors[1].error


def test_missing_start_date(importer):
    cards, errors = importer.parse_zone_pricing_csv(HEADER + zone_rows("Standard", start=""))
    assert cards == []
    assert "effective start" in errors[0].error

    cards, errors = importer.parse_zone_pricing_csv(
        HEADER + zone_rows("Standard", start=""), default_effective_from=date(2024, 3, 1)
    )
    assert errors == []
    assert cards[0].draft.effective_from == date(2024, 3, 1)


def test_unsupported_layout(importer):
    with pytest.raises(ValidationError) as exc:
        importer.parse_zone_pricing_csv("Name,Price\nStandard,10\n")
    assert "zone" in exc.value.details["missing_columns"]

    with pytest.raises(ValidationError):
        importer.parse_zone_pricing_csv("")


def test_parse_helpers():
    assert parse_amount("₹1,250.50") == Decimal("1250.50")
    assert parse_amount("12%") == Decimal("12")
    assert parse_amount("  ") is None
    assert parse_date("15-Mar-2024") == date(2024, 3, 15)
    with pytest.raises(ValueError):
        parse_amount("abc")
    with pytest.raises(ValueError):
        parse_date("yesterday")


@pytest.mark.asyncio
async def test_import_publishes_active_cards_only(importer, session, cache):
    content = HEADER + zone_rows("Standard") + zone_rows("Pilot", status="draft")
    versions = RateCardVersionService(session, cache)

    published, errors = await importer.import_rate_cards(content, versions, created_by="ops")

    assert errors == []
    assert [p.name for p in published] == ["Standard"]
    assert published[0].status == RateCardStatus.ACTIVE
    assert await versions.get_current(COMPANY, "Pilot") is None
