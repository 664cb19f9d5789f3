"""
Zone Pricing CSV Import

Parses the zone pricing template: one row per (rate card, zone), grouped
by rate card name. Expected columns (header spelling is flexible):

    Name, Zone, Base Weight, Base Price, Additional Price Per Kg,
    Status, Effective Start, Effective End, Category, Shipment Type,
    Minimum Fare, Minimum Fare Calculated On, COD Percentage,
    COD Minimum Charge, Fuel Surcharge, Zone B Type

A card is accepted only if all five zones are present with non-negative
numbers and its metadata columns agree across rows. Problems are
reported per row; parsing never writes to the database.
"""
import csv
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from rate_engine.core.enum_utils import to_enum
from rate_engine.core.exceptions import ValidationError
from rate_engine.models.rate_card import (
    MinimumFareBase, RateCardStatus, ShipmentType, ZoneBType, ZoneCode,
)
from rate_engine.schemas.rate_card import RateCardDraft, RateCardSnapshot, normalize_zone_code

logger = logging.getLogger(__name__)


# Normalized header -> field
HEADER_ALIASES = {
    "name": "name",
    "ratecard": "name",
    "ratecardname": "name",
    "zone": "zone",
    "baseweight": "base_weight",
    "baseprice": "base_price",
    "additionalpriceperkg": "additional_price_per_kg",
    "additionalperkg": "additional_price_per_kg",
    "status": "status",
    "effectivestart": "effective_from",
    "effectivestartdate": "effective_from",
    "effectivefrom": "effective_from",
    "startdate": "effective_from",
    "effectiveend": "effective_to",
    "effectiveenddate": "effective_to",
    "effectiveto": "effective_to",
    "enddate": "effective_to",
    "expiry": "effective_to",
    "category": "category",
    "shipmenttype": "shipment_type",
    "minimumfare": "minimum_fare",
    "minfare": "minimum_fare",
    "minimumfarecalculatedon": "minimum_fare_calculated_on",
    "codpercentage": "cod_percentage",
    "codpercent": "cod_percentage",
    "codminimumcharge": "cod_minimum_charge",
    "codmin": "cod_minimum_charge",
    "fuelsurcharge": "fuel_surcharge_percentage",
    "fuelsurchargepercentage": "fuel_surcharge_percentage",
    "zonebtype": "zone_b_type",
}

REQUIRED_COLUMNS = ("name", "zone", "base_weight", "base_price", "additional_price_per_kg")

METADATA_COLUMNS = (
    "status",
    "effective_from",
    "effective_to",
    "category",
    "shipment_type",
    "minimum_fare",
    "minimum_fare_calculated_on",
    "cod_percentage",
    "cod_minimum_charge",
    "fuel_surcharge_percentage",
    "zone_b_type",
)

DATE_FORMATS = ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%d %b %Y", "%d-%b-%Y")


@dataclass
class ImportRowError:
    name: Optional[str]
    row_number: int
    error: str

    def to_dict(self) -> dict:
        return {"name": self.name, "row_number": self.row_number, "error": self.error}


@dataclass
class ImportedRateCard:
    """A parsed rate card and the status requested for it in the sheet."""
    draft: RateCardDraft
    status: RateCardStatus
    row_numbers: List[int] = field(default_factory=list)


def normalize_header(header: str) -> str:
    return re.sub(r"[^a-z0-9]", "", header.lower())


def parse_amount(value: Optional[str]) -> Optional[Decimal]:
    """'₹1,250.50' -> Decimal('1250.50'); blank -> None. Raises ValueError on junk."""
    if value is None:
        return None
    cleaned = re.sub(r"[%₹,\s]", "", str(value))
    if not cleaned:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"'{value}' is not a number")


def parse_date(value: Optional[str]) -> Optional[date]:
    if value is None or not str(value).strip():
        return None
    value = str(value).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"'{value}' is not a date")


class RateCardImportService:
    """Parses zone pricing sheets for one company."""

    def __init__(self, company_id: str):
        self.company_id = company_id

    def _read_rows(self, content: str) -> List[Tuple[int, Dict[str, str]]]:
        reader = csv.reader(io.StringIO(content.lstrip("\ufeff")))
        rows = list(reader)
        if not rows:
            raise ValidationError("File is empty")

        columns = [HEADER_ALIASES.get(normalize_header(h)) for h in rows[0]]
        missing = [c for c in REQUIRED_COLUMNS if c not in columns]
        if missing:
            raise ValidationError(
                "Unsupported import format, use the zone pricing template",
                details={"missing_columns": missing},
            )

        parsed = []
        # Header is row 1
        for row_number, row in enumerate(rows[1:], start=2):
            data = {}
            for column, cell in zip(columns, row):
                if column and column not in data:
                    data[column] = cell.strip()
            if not data.get("name") or not data.get("zone"):
                continue
            parsed.append((row_number, data))
        return parsed

    def parse_zone_pricing_csv(
        self,
        content: str,
        default_effective_from: Optional[date] = None,
    ) -> Tuple[List[ImportedRateCard], List[ImportRowError]]:
        """
        Parse a zone pricing CSV into rate card drafts.

        Returns (cards, errors). A card with any error is left out of
        `cards`; the other cards in the file are unaffected.
        """
        rows = self._read_rows(content)
        if not rows:
            raise ValidationError("File contains no data rows")

        grouped: Dict[str, List[Tuple[int, Dict[str, str]]]] = {}
        for row_number, data in rows:
            grouped.setdefault(data["name"], []).append((row_number, data))

        cards: List[ImportedRateCard] = []
        errors: List[ImportRowError] = []
        for name, card_rows in grouped.items():
            card, card_errors = self._build_card(name, card_rows, default_effective_from)
            errors.extend(card_errors)
            if card is not None:
                cards.append(card)

        logger.info(
            f"Parsed zone pricing import for {self.company_id}: "
            f"{len(cards)} rate cards, {len(errors)} errors"
        )
        return cards, errors

    def _build_card(
        self,
        name: str,
        card_rows: List[Tuple[int, Dict[str, str]]],
        default_effective_from: Optional[date],
    ) -> Tuple[Optional[ImportedRateCard], List[ImportRowError]]:
        errors: List[ImportRowError] = []
        first_row, reference = card_rows[0]

        for row_number, data in card_rows[1:]:
            for column in METADATA_COLUMNS:
                value, expected = data.get(column), reference.get(column)
                if value and expected and value != expected:
                    errors.append(ImportRowError(name, row_number, f"Inconsistent {column} value within rate card rows"))
        if errors:
            return None, errors

        by_zone: Dict[ZoneCode, Tuple[int, Dict[str, str]]] = {}
        for row_number, data in card_rows:
            zone = normalize_zone_code(data["zone"])
            if zone is None:
                errors.append(ImportRowError(name, row_number, f"Invalid zone '{data['zone']}'"))
            elif zone in by_zone:
                errors.append(ImportRowError(name, row_number, f"Duplicate zone '{zone.value}'"))
            else:
                by_zone[zone] = (row_number, data)

        missing = [zone.value for zone in ZoneCode if zone not in by_zone]
        if missing:
            errors.append(ImportRowError(name, first_row, f"Missing zones: {', '.join(missing)}"))
        if errors:
            return None, errors

        zone_pricing = {}
        for zone, (row_number, data) in by_zone.items():
            try:
                values = [parse_amount(data.get(c)) for c in ("base_weight", "base_price", "additional_price_per_kg")]
            except ValueError as e:
                errors.append(ImportRowError(name, row_number, f"Invalid pricing values for zone '{zone.value}': {e}"))
                continue
            if any(v is None or v < 0 for v in values):
                errors.append(ImportRowError(name, row_number, f"Invalid pricing values for zone '{zone.value}'"))
                continue
            zone_pricing[zone] = {
                "base_weight": values[0],
                "base_price": values[1],
                "additional_price_per_kg": values[2],
            }
        if errors:
            return None, errors

        try:
            metadata = self._parse_metadata(reference, default_effective_from)
        except ValueError as e:
            return None, [ImportRowError(name, first_row, str(e))]

        status = metadata.pop("status")
        try:
            draft = RateCardDraft(
                company_id=self.company_id,
                name=name,
                zone_pricing=zone_pricing,
                **metadata,
            )
        except PydanticValidationError as e:
            messages = "; ".join(err["msg"] for err in e.errors())
            return None, [ImportRowError(name, first_row, messages)]

        return ImportedRateCard(draft, status, [r for r, _ in card_rows]), []

    def _parse_metadata(self, data: Dict[str, str], default_effective_from: Optional[date]) -> dict:
        metadata = {}

        status = to_enum(data.get("status") or RateCardStatus.DRAFT.value, RateCardStatus)
        if status is None:
            raise ValueError(f"Invalid status '{data['status']}'")
        metadata["status"] = status

        effective_from = parse_date(data.get("effective_from")) or default_effective_from
        if effective_from is None:
            raise ValueError("Missing effective start date")
        metadata["effective_from"] = effective_from
        metadata["effective_to"] = parse_date(data.get("effective_to"))

        if data.get("category"):
            metadata["category"] = data["category"]

        if data.get("shipment_type"):
            shipment_type = to_enum(data["shipment_type"], ShipmentType)
            if shipment_type is None:
                raise ValueError(f"Invalid shipment type '{data['shipment_type']}'. Use 'forward' or 'reverse'.")
            metadata["shipment_type"] = shipment_type

        if data.get("zone_b_type"):
            zone_b_type = to_enum(data["zone_b_type"], ZoneBType)
            if zone_b_type is None:
                raise ValueError(f"Invalid zone B type '{data['zone_b_type']}'. Use 'state' or 'distance'.")
            metadata["zone_b_type"] = zone_b_type

        if data.get("minimum_fare_calculated_on"):
            basis = to_enum(data["minimum_fare_calculated_on"], MinimumFareBase)
            if basis is None:
                raise ValueError(
                    f"Invalid minimum fare basis '{data['minimum_fare_calculated_on']}'. "
                    f"Use 'freight' or 'freight_overhead'."
                )
            metadata["minimum_fare_calculated_on"] = basis

        for column in ("minimum_fare", "cod_percentage", "cod_minimum_charge", "fuel_surcharge_percentage"):
            amount = parse_amount(data.get(column))
            if amount is not None:
                metadata[column] = amount

        return metadata

    async def import_rate_cards(
        self,
        content: str,
        version_service,
        created_by: Optional[str] = None,
        default_effective_from: Optional[date] = None,
    ) -> Tuple[List[RateCardSnapshot], List[ImportRowError]]:
        """
        Parse a sheet and publish every valid card marked ACTIVE.

        Cards with any other status are parsed and validated but not
        published.
        """
        cards, errors = self.parse_zone_pricing_csv(content, default_effective_from)
        published = []
        for card in cards:
            if card.status != RateCardStatus.ACTIVE:
                logger.info(f"Skipping publish of {card.draft.name}: status {card.status.value}")
                continue
            published.append(await version_service.publish_version(card.draft, created_by=created_by))
        return published, errors
