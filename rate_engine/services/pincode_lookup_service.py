"""
Pincode Master Lookup.

Resolves a pincode to its postal attributes (state, city, centroid,
metro / remote flags, zone override) for one company. A company's own
rows win over the shared catalogue (company_id NULL); within a scope a
narrower range wins over a wider one.

Writers to the shared catalogue call
PricingCacheService.invalidate_shared_pincodes after committing.
"""
import logging
from typing import Optional

from sqlalchemy import select, and_, or_, case
from sqlalchemy.ext.asyncio import AsyncSession

from rate_engine.models.pincode import PincodeMaster
from rate_engine.schemas.rate_card import PincodeInfo
from rate_engine.services.cache_service import PricingCacheService

logger = logging.getLogger(__name__)


class PincodeLookupService:
    """Read-only, cached access to the pincode master."""

    def __init__(self, db: AsyncSession, cache: Optional[PricingCacheService] = None):
        self.db = db
        self.cache = cache

    async def lookup(self, company_id: str, pincode: str) -> Optional[PincodeInfo]:
        """
        Return the postal attributes of a pincode, or None if unknown.

        Only hits are cached; an unknown pincode is looked up again on the
        next call so newly seeded rows show up without an eviction.
        """
        generation = None
        if self.cache:
            generation = await self.cache.get_pincode_generation()
            if generation is not None:
                cached = await self.cache.get_pincode(company_id, pincode, generation)
                if cached is not None:
                    return PincodeInfo.model_validate(cached)

        row = await self._find_row(company_id, pincode)
        if row is None:
            logger.info(f"Pincode {pincode} not found for company {company_id}")
            return None

        info = PincodeInfo(
            pincode=pincode,
            state=row.state,
            city=row.city,
            latitude=row.latitude,
            longitude=row.longitude,
            is_metro=bool(row.is_metro),
            is_remote=bool(row.is_remote),
            is_serviceable=row.is_serviceable is not False,
            zone_override=row.zone_override,
            company_id=row.company_id,
        )

        if self.cache and generation is not None:
            await self.cache.set_pincode(
                company_id, pincode, info.model_dump(mode="json"), generation
            )
        return info

    async def _find_row(self, company_id: str, pincode: str) -> Optional[PincodeMaster]:
        query = (
            select(PincodeMaster)
            .where(
                and_(
                    or_(
                        PincodeMaster.company_id == company_id,
                        PincodeMaster.company_id.is_(None),
                    ),
                    PincodeMaster.pincode_from <= pincode,
                    PincodeMaster.pincode_to >= pincode,
                )
            )
            .order_by(
                # Company rows before the shared catalogue
                case((PincodeMaster.company_id.is_(None), 1), else_=0),
                PincodeMaster.pincode_from.desc(),
                PincodeMaster.pincode_to.asc(),
            )
            .limit(1)
        )
        result = await self.db.execute(query)
        return result.scalars().first()
