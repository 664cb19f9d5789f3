"""
Seed the shared pincode catalogue.

Adds metro and special-region pincodes (company_id NULL) so the zone
resolver works out of the box. Existing rows are left untouched. Cached
lookups of every company are evicted when rows were added.
"""
import asyncio
import sys
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select, func, and_
from rate_engine.database import async_session_factory, init_db
from rate_engine.models.pincode import PincodeMaster
from rate_engine.services.cache_service import RedisCache, build_cache


# pincode: (city, state, latitude, longitude, is_metro, is_remote)
SHARED_PINCODES = {
    # Delhi NCR
    "110001": ("New Delhi", "Delhi", "28.6328", "77.2197", True, False),
    "110002": ("New Delhi", "Delhi", "28.6400", "77.2400", True, False),
    "122001": ("Gurgaon", "Haryana", "28.4595", "77.0266", False, False),
    "201301": ("Noida", "Uttar Pradesh", "28.5355", "77.3910", False, False),
    # Mumbai
    "400001": ("Mumbai", "Maharashtra", "18.9388", "72.8354", True, False),
    "400050": ("Mumbai", "Maharashtra", "19.0596", "72.8295", True, False),
    # Pune
    "411001": ("Pune", "Maharashtra", "18.5204", "73.8567", True, False),
    # Bangalore
    "560001": ("Bengaluru", "Karnataka", "12.9716", "77.5946", True, False),
    "560008": ("Bengaluru", "Karnataka", "12.9784", "77.6408", True, False),
    # Chennai
    "600001": ("Chennai", "Tamil Nadu", "13.0827", "80.2707", True, False),
    # Kolkata
    "700001": ("Kolkata", "West Bengal", "22.5726", "88.3639", True, False),
    # Hyderabad
    "500001": ("Hyderabad", "Telangana", "17.3850", "78.4867", True, False),
    # Ahmedabad
    "380001": ("Ahmedabad", "Gujarat", "23.0225", "72.5714", True, False),
    # Tier 2
    "302001": ("Jaipur", "Rajasthan", "26.9124", "75.7873", False, False),
    "226001": ("Lucknow", "Uttar Pradesh", "26.8467", "80.9462", False, False),
    "682001": ("Kochi", "Kerala", "9.9312", "76.2673", False, False),
    # North-East
    "781001": ("Guwahati", "Assam", "26.1445", "91.7362", False, False),
    "793001": ("Shillong", "Meghalaya", "25.5788", "91.8933", False, False),
    "795001": ("Imphal", "Manipur", "24.8170", "93.9368", False, False),
    "737101": ("Gangtok", "Sikkim", "27.3389", "88.6065", False, False),
    # J&K / Ladakh
    "190001": ("Srinagar", "Jammu & Kashmir", "34.0837", "74.7973", False, False),
    "194101": ("Leh", "Ladakh", "34.1526", "77.5771", False, True),
    # Islands
    "744101": ("Port Blair", "Andaman & Nicobar Islands", "11.6234", "92.7265", False, True),
    "682555": ("Kavaratti", "Lakshadweep", "10.5593", "72.6358", False, True),
}


async def evict_cached_lookups():
    """Retire every company's cached pincode lookups."""
    cache = build_cache()
    try:
        if await cache.invalidate_shared_pincodes():
            print("Evicted cached pincode lookups.")
        else:
            print("WARNING: could not evict cached pincode lookups; they expire with ZONE_CACHE_TTL.")
    finally:
        if isinstance(cache.backend, RedisCache):
            await cache.backend.close()


async def main():
    print("Seeding shared pincode catalogue...")
    await init_db()

    async with async_session_factory() as session:
        added = 0
        skipped = 0

        for pincode, (city, state, lat, lng, is_metro, is_remote) in SHARED_PINCODES.items():
            existing = await session.execute(
                select(PincodeMaster).where(
                    and_(
                        PincodeMaster.company_id.is_(None),
                        PincodeMaster.pincode_from == pincode,
                        PincodeMaster.pincode_to == pincode,
                    )
                )
            )
            if existing.scalar_one_or_none():
                skipped += 1
                continue

            session.add(PincodeMaster(
                company_id=None,
                pincode_from=pincode,
                pincode_to=pincode,
                city=city,
                state=state,
                latitude=Decimal(lat),
                longitude=Decimal(lng),
                is_metro=is_metro,
                is_remote=is_remote,
                is_serviceable=True,
            ))
            added += 1

        await session.commit()

        print(f"Added {added} new pincodes, skipped {skipped} existing ones.")

        if added:
            await evict_cached_lookups()

        result = await session.execute(select(func.count()).select_from(PincodeMaster))
        print(f"Total pincode rows in database: {result.scalar()}")


if __name__ == "__main__":
    asyncio.run(main())
