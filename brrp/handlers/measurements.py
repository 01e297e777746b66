"""
Measurement log handler - immutable SCADA reading ingestion.

Only ``record`` and ``query`` style operations are exposed; measurements are
never updated or deleted once stored.
"""

import logging
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Union
from datetime import datetime

from brrp.core.database import rollback_and_reload
from brrp.core.errors import NotFoundError, ValidationError
from brrp.models.emissions import AccountingStandard, EmissionsRecord
from brrp.models.measurement import Measurement, MeasurementCreate
from brrp.handlers.audit import record_audit
from brrp.handlers.emissions import stage_emissions_record
from brrp.utils.time import to_naive_utc

logger = logging.getLogger(__name__)


def _field_name(loc: Tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc) or "body"


def _raw_value(payload: Any, camel: str, snake: str) -> Any:
    if not isinstance(payload, dict):
        return None
    return payload.get(camel, payload.get(snake))


def _exceeds(destroyed: Any, generated: Any) -> bool:
    """Methane balance check on raw values; unparsable values are left to field validation."""
    try:
        return float(destroyed) > float(generated)
    except (TypeError, ValueError):
        return False


def validate_measurement(payload: Union[Dict[str, Any], MeasurementCreate]) -> MeasurementCreate:
    """
    Parse and validate an ingestion payload.

    Accepts camelCase or snake_case keys. Raises ValidationError with a
    field-level error list if anything is missing, negative, out of range,
    or if more methane was destroyed than generated.
    """
    if isinstance(payload, MeasurementCreate):
        data = payload
        generated, destroyed = data.methane_generated, data.methane_destroyed
        errors = []
    else:
        data = None
        generated = _raw_value(payload, "methaneGenerated", "methane_generated")
        destroyed = _raw_value(payload, "methaneDestroyed", "methane_destroyed")
        try:
            data = MeasurementCreate.model_validate(payload)
            errors = []
        except SchemaValidationError as e:
            errors = [
                {"field": _field_name(err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]

    if _exceeds(destroyed, generated):
        errors.append({
            "field": "methaneDestroyed",
            "message": "Methane destroyed cannot exceed methane generated"
        })

    if errors:
        raise ValidationError("Invalid measurement data", errors)
    return data


async def _stage_measurement(session: AsyncSession, data: MeasurementCreate) -> Measurement:
    measurement = data.to_row()
    session.add(measurement)
    await session.flush()

    await record_audit(
        session,
        action="measurement_recorded",
        entity_type="measurement",
        entity_id=measurement.id,
        payload=data.model_dump(mode="json")
    )
    return measurement


async def record_measurement(
    session: AsyncSession,
    payload: Union[Dict[str, Any], MeasurementCreate]
) -> Measurement:
    """Validate and store one measurement (append-only)."""
    measurement = await _stage_measurement(session, validate_measurement(payload))
    await session.commit()
    await session.refresh(measurement)

    logger.info(
        "Recorded measurement %d for facility %s at %s",
        measurement.id, measurement.facility_id, measurement.timestamp.isoformat()
    )
    return measurement


async def ingest_measurement(
    session: AsyncSession,
    payload: Union[Dict[str, Any], MeasurementCreate],
    standard: AccountingStandard = AccountingStandard.ACM0022
) -> Tuple[Measurement, EmissionsRecord]:
    """
    Record a measurement and synchronously calculate its emissions record.

    Expected format:
    {"facilityId": "BRRP-NELSON", "timestamp": "2025-01-15T10:00:00Z",
     "wasteProcessed": 10, "methaneGenerated": 2600, "methaneDestroyed": 2485,
     "electricityProduced": 1200, "location": {"latitude": -41.3, "longitude": 173.2}}
    """
    data = validate_measurement(payload)
    try:
        measurement = await _stage_measurement(session, data)
        record = await stage_emissions_record(session, measurement, standard)
        await session.commit()
    except SQLAlchemyError:
        await rollback_and_reload(session)
        raise

    await session.refresh(measurement)
    await session.refresh(record)

    logger.info(
        "Ingested measurement %d for facility %s: co2eq=%.3f t standard=%s",
        measurement.id, measurement.facility_id, record.co2_equivalent, record.standard_used.value
    )
    return measurement, record


def _range_statement(
    facility_id: str,
    start: Optional[datetime],
    end: Optional[datetime]
):
    statement = select(Measurement).where(Measurement.facility_id == facility_id)

    if start:
        statement = statement.where(Measurement.timestamp >= to_naive_utc(start))
    if end:
        statement = statement.where(Measurement.timestamp <= to_naive_utc(end))

    return statement.order_by(Measurement.timestamp, Measurement.id)


async def query_measurements(
    session: AsyncSession,
    facility_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None
) -> AsyncIterator[Measurement]:
    """Stream a facility's measurements in timestamp order (bounds inclusive)."""
    result = await session.stream_scalars(_range_statement(facility_id, start, end))
    async for measurement in result:
        yield measurement


async def get_measurements(
    session: AsyncSession,
    facility_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None
) -> List[Measurement]:
    """Get a facility's measurements in timestamp order."""
    result = await session.execute(_range_statement(facility_id, start, end))
    return list(result.scalars().all())


async def get_measurement(session: AsyncSession, measurement_id: int) -> Measurement:
    """Get measurement by ID."""
    measurement = await session.get(Measurement, measurement_id)
    if not measurement:
        raise NotFoundError(f"Measurement {measurement_id} not found")
    return measurement
