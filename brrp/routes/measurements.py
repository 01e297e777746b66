"""
Measurement ingestion and query endpoints.
"""

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Any, Dict, List, Optional

from brrp.core.config import get_settings
from brrp.core.database import get_session
from brrp.core.errors import NotFoundError
from brrp.models.emissions import AccountingStandard, EmissionsRecordRead
from brrp.models.measurement import MeasurementRead
from brrp.handlers.emissions import get_emissions_for_measurement
from brrp.handlers.measurements import (
    get_measurement,
    get_measurements,
    ingest_measurement,
)

router = APIRouter(prefix="/measurements", tags=["measurements"])
settings = get_settings()


@router.post("", response_model=MeasurementRead, status_code=status.HTTP_201_CREATED)
async def ingest_measurement_endpoint(
    payload: Dict[str, Any] = Body(...),
    standard: Optional[AccountingStandard] = None,
    session: AsyncSession = Depends(get_session)
):
    """
    Ingest one SCADA measurement and calculate its emissions record.

    Body (camelCase):
    {"facilityId": "...", "timestamp": "2025-01-15T10:00:00Z",
     "wasteProcessed": 10, "methaneGenerated": 2600, "methaneDestroyed": 2485,
     "electricityProduced": 1200, "processHeatProduced": null,
     "location": {"latitude": -41.3, "longitude": 173.2, "address": "..."}}

    Validation failures return 400 with a field-level error list.
    """
    measurement, record = await ingest_measurement(
        session,
        payload,
        standard or AccountingStandard(settings.default_accounting_standard)
    )
    return MeasurementRead.from_row(measurement, record.id)


@router.get("", response_model=List[MeasurementRead])
async def list_measurements_endpoint(
    facility_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    session: AsyncSession = Depends(get_session)
):
    """Get a facility's measurements in timestamp order, optionally within a time range."""
    measurements = await get_measurements(session, facility_id, start, end)
    return [MeasurementRead.from_row(m) for m in measurements]


@router.get("/{measurement_id}", response_model=MeasurementRead)
async def get_measurement_endpoint(
    measurement_id: int,
    session: AsyncSession = Depends(get_session)
):
    """Get measurement by ID."""
    measurement = await get_measurement(session, measurement_id)
    record = await get_emissions_for_measurement(session, measurement_id)
    return MeasurementRead.from_row(measurement, record.id if record else None)


@router.get("/{measurement_id}/emissions", response_model=EmissionsRecordRead)
async def get_measurement_emissions_endpoint(
    measurement_id: int,
    session: AsyncSession = Depends(get_session)
):
    """Get the emissions record calculated for a measurement."""
    record = await get_emissions_for_measurement(session, measurement_id)
    if not record:
        raise NotFoundError(f"No emissions record for measurement {measurement_id}")
    return record
