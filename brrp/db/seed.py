"""
Optional development seeding script.

Ingests a week of readings for the Nelson demonstrator and takes the first
day's emissions record through verification and minting.
"""

import asyncio
import logging
from datetime import datetime, timedelta

from brrp.core.database import AsyncSessionLocal, init_db
from brrp.models.verification import VerificationStandard, VerificationStatus
from brrp.handlers.credits import mint_credit
from brrp.handlers.measurements import ingest_measurement
from brrp.handlers.verification import initiate_verification, update_verification_status
from brrp.utils.time import utc_now

logger = logging.getLogger(__name__)

FACILITY_ID = "BRRP-NELSON"
LOCATION = {"latitude": -41.2706, "longitude": 173.2840, "address": "Bell Island, Nelson"}


async def seed_data():
    """Seed database with sample data for development."""
    await init_db()

    async with AsyncSessionLocal() as session:
        today = utc_now().replace(hour=0, minute=0, second=0, microsecond=0)
        records = []
        for i in range(7):
            day = today - timedelta(days=7 - i)
            # Slightly varying daily biogas yield
            generated = 2600.0 + 25.0 * i
            _, record = await ingest_measurement(session, {
                "facilityId": FACILITY_ID,
                "timestamp": datetime.combine(day.date(), datetime.min.time().replace(hour=23)),
                "wasteProcessed": 10.0,
                "methaneGenerated": generated,
                "methaneDestroyed": generated * 0.955,
                "electricityProduced": 1200.0,
                "location": LOCATION,
            })
            records.append(record)

        logger.info("Created %d measurements with emissions records", len(records))

        verification = await initiate_verification(
            session, records[0], VerificationStandard.TOITU_EKOS, "Toitū Envirocare"
        )
        await update_verification_status(session, verification, VerificationStatus.IN_PROGRESS)
        await update_verification_status(
            session, verification, VerificationStatus.VERIFIED,
            certificate_url="https://certificates.example.org/brrp/0001"
        )
        credit = await mint_credit(session, records[0], verification)

        logger.info("Minted credit %s for %.3f t CO2eq", credit.token_id, credit.units)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed_data())
