"""
Report and aggregation endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Dict, Any, List

from brrp.core.database import get_session
from brrp.models.credit import CarbonCreditRead, CreditStatus
from brrp.handlers.credits import list_credits
from brrp.handlers.reports import (
    get_credit_auditor_view,
    get_credit_portfolio_summary,
    get_facility_emissions_summary,
)

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/facilities/{facility_id}/emissions")
async def facility_emissions_endpoint(
    facility_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    session: AsyncSession = Depends(get_session)
) -> Dict[str, Any]:
    """
    Aggregated emissions for a facility.

    Returns:
        - measurement_count
        - total_methane_destroyed
        - total_co2_equivalent
        - total_energy_produced
        - total_gross_emissions_reduction
    """
    return await get_facility_emissions_summary(session, facility_id, start, end)


@router.get("/credits/summary")
async def credit_portfolio_endpoint(
    session: AsyncSession = Depends(get_session)
) -> Dict[str, Any]:
    """Credit counts and units per lifecycle status."""
    return await get_credit_portfolio_summary(session)


@router.get("/credits", response_model=List[CarbonCreditRead])
async def credits_by_status_endpoint(
    status: CreditStatus | None = None,
    session: AsyncSession = Depends(get_session)
):
    """Get credits filtered by status."""
    return await list_credits(session, status)


@router.get("/credits/{credit_id}/audit")
async def credit_auditor_view_endpoint(
    credit_id: int,
    session: AsyncSession = Depends(get_session)
) -> Dict[str, Any]:
    """
    Single-credit "auditor view".

    Returns:
        - credit details
        - source measurement, emissions and verification records
        - full transaction ledger
    """
    return await get_credit_auditor_view(session, credit_id)
