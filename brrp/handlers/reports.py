"""
Report and aggregation handlers.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select, func
from datetime import datetime
from typing import Dict, Any, Optional

from brrp.core.errors import NotFoundError
from brrp.models.credit import CarbonCredit, CreditStatus
from brrp.models.emissions import EmissionsRecord
from brrp.models.measurement import Measurement
from brrp.models.verification import VerificationRecord
from brrp.handlers.credits import credit_summary
from brrp.handlers.ledger import get_transaction_history
from brrp.utils.time import to_naive_utc


async def get_facility_emissions_summary(
    session: AsyncSession,
    facility_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Aggregate a facility's measurements and their emissions records.

    Returns:
        Dictionary with measurement count and totals of methane destroyed,
        CO2 equivalent, energy produced and gross emissions reduction
    """
    statement = select(
        func.count(Measurement.id),
        func.coalesce(func.sum(EmissionsRecord.methane_destroyed), 0.0),
        func.coalesce(func.sum(EmissionsRecord.co2_equivalent), 0.0),
        func.coalesce(func.sum(EmissionsRecord.energy_produced), 0.0),
        func.coalesce(func.sum(EmissionsRecord.gross_emissions_reduction), 0.0),
    ).select_from(Measurement).outerjoin(
        EmissionsRecord, EmissionsRecord.measurement_id == Measurement.id
    ).where(Measurement.facility_id == facility_id)

    if start:
        statement = statement.where(Measurement.timestamp >= to_naive_utc(start))
    if end:
        statement = statement.where(Measurement.timestamp <= to_naive_utc(end))

    result = await session.execute(statement)
    count, methane, co2, energy, ger = result.one()

    return {
        "facility_id": facility_id,
        "measurement_count": count or 0,
        "total_methane_destroyed": round(methane, 3),
        "total_co2_equivalent": round(co2, 3),
        "total_energy_produced": round(energy, 3),
        "total_gross_emissions_reduction": round(ger, 3)
    }


async def get_credit_portfolio_summary(session: AsyncSession) -> Dict[str, Any]:
    """
    Credit counts and units by lifecycle status.

    Returns:
        Dictionary with totals and a per-status breakdown
    """
    statement = select(
        CarbonCredit.status,
        func.count(CarbonCredit.id),
        func.coalesce(func.sum(CarbonCredit.units), 0.0)
    ).group_by(CarbonCredit.status)

    result = await session.execute(statement)
    by_status = {status.value: {"count": 0, "units": 0.0} for status in CreditStatus}
    for status, count, units in result.all():
        by_status[CreditStatus(status).value] = {"count": count, "units": round(units, 3)}

    circulating = (CreditStatus.MINTED, CreditStatus.AVAILABLE, CreditStatus.SOLD)
    return {
        "total_credits": sum(v["count"] for v in by_status.values()),
        "total_units": round(sum(v["units"] for v in by_status.values()), 3),
        "circulating_units": round(sum(by_status[s.value]["units"] for s in circulating), 3),
        "retired_units": round(
            by_status[CreditStatus.OFFSET.value]["units"]
            + by_status[CreditStatus.DESTROYED.value]["units"],
            3
        ),
        "by_status": by_status
    }


async def get_credit_auditor_view(
    session: AsyncSession,
    credit_id: int
) -> Dict[str, Any]:
    """
    Single-credit "auditor view": the credit, the emissions and verification
    records it was minted from, and its full ledger.
    """
    credit = await session.get(CarbonCredit, credit_id)
    if not credit:
        raise NotFoundError(f"Carbon credit {credit_id} not found")

    emissions = await session.get(EmissionsRecord, credit.emissions_record_id)
    verification = await session.get(VerificationRecord, credit.verification_record_id)
    measurement = await session.get(Measurement, emissions.measurement_id)
    transactions = await get_transaction_history(session, credit.id)

    return {
        "credit": credit_summary(credit),
        "measurement": {
            "id": measurement.id,
            "facility_id": measurement.facility_id,
            "timestamp": measurement.timestamp.isoformat(),
            "methane_generated": measurement.methane_generated,
            "methane_destroyed": measurement.methane_destroyed
        },
        "emissions": {
            "id": emissions.id,
            "co2_equivalent": emissions.co2_equivalent,
            "gross_emissions_reduction": emissions.gross_emissions_reduction,
            "global_warming_potential": emissions.global_warming_potential,
            "def_value": emissions.def_value,
            "standard_used": emissions.standard_used.value,
            "calculated_at": emissions.calculated_at.isoformat()
        },
        "verification": {
            "id": verification.id,
            "standard": verification.standard.value,
            "verified_by": verification.verified_by,
            "status": verification.status.value,
            "certificate_url": verification.certificate_url,
            "next_verification_due": verification.next_verification_due.isoformat()
        },
        "transactions": [
            {
                "id": t.id,
                "type": t.transaction_type.value,
                "buyer_id": t.buyer_id,
                "amount": t.amount,
                "currency": t.currency,
                "timestamp": t.timestamp.isoformat(),
                "blockchain_tx_hash": t.blockchain_tx_hash
            }
            for t in transactions
        ]
    }
