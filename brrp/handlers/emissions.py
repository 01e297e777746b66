"""
Emissions calculation handler.

Pure, deterministic conversion of a measurement into an emissions record,
plus persistence of the result. The calculation functions never touch the
database and never raise on a validated measurement.
"""

import logging
from dataclasses import dataclass, field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from typing import Dict, List, Optional

from brrp.core.constants import (
    CO2_DECIMALS,
    DEF_DECIMALS,
    DEMONSTRATOR_ELECTRICITY_SURPLUS_KWH,
    DEMONSTRATOR_GREEN_WASTE_DAILY,
    DEMONSTRATOR_SEWAGE_SLUDGE_DAILY,
    GER_TOLERANCE,
    GWP_MAX,
    GWP_MIN,
    METHANE_DENSITY_KG_PER_M3,
    METHANE_GWP,
    METHANE_YIELDS_M3_PER_TONNE,
    MFE_EMISSION_FACTORS,
    MFE_DEFAULT_EMISSION_FACTORS,
    MFE_VARIANCE_TOLERANCE_PERCENT,
    MJ_PER_KWH,
)
from brrp.core.database import is_unique_violation, rollback_and_reload
from brrp.core.errors import DuplicateError, NotFoundError, ValidationError
from brrp.models.emissions import AccountingStandard, EmissionsRecord
from brrp.models.measurement import Measurement
from brrp.handlers.audit import record_audit
from brrp.utils.time import utc_now

logger = logging.getLogger(__name__)


def methane_tonnes(methane_destroyed_m3: float) -> float:
    """Convert a methane volume (m³) to mass in tonnes."""
    return methane_destroyed_m3 * METHANE_DENSITY_KG_PER_M3 / 1000.0


def calculate_co2_equivalent(methane_destroyed_m3: float) -> float:
    """
    Calculate CO2 equivalent of destroyed methane in tonnes.

    Formula: (m³ * 0.657 kg/m³) / 1000 * GWP 28, rounded to 3 decimals
    """
    return round(methane_tonnes(methane_destroyed_m3) * METHANE_GWP, CO2_DECIMALS)


def calculate_energy_produced(
    electricity_produced: Optional[float],
    process_heat_produced: Optional[float]
) -> float:
    """Electricity in kWh if reported, else process heat converted MJ -> kWh, else 0."""
    if electricity_produced:
        return electricity_produced
    if process_heat_produced:
        return process_heat_produced / MJ_PER_KWH
    return 0.0


def calculate_def(
    energy_produced: float,
    methane_destroyed_m3: float,
    gwp: float = METHANE_GWP
) -> float:
    """Default Emission Factor: CO2eq tonnes per kWh produced (0 with no energy)."""
    if energy_produced == 0:
        return 0.0
    return round(methane_tonnes(methane_destroyed_m3) * gwp / energy_produced, DEF_DECIMALS)


def calculate(
    measurement: Measurement,
    standard: AccountingStandard = AccountingStandard.ACM0022
) -> EmissionsRecord:
    """
    Calculate the emissions record for one measurement.

    The result is not added to any session. Gross emissions reduction equals
    the CO2 equivalent: methane destruction is the only reduction pathway.
    """
    co2_equivalent = calculate_co2_equivalent(measurement.methane_destroyed)
    energy_produced = calculate_energy_produced(
        measurement.electricity_produced,
        measurement.process_heat_produced
    )

    return EmissionsRecord(
        measurement_id=measurement.id,
        methane_destroyed=measurement.methane_destroyed,
        co2_equivalent=co2_equivalent,
        global_warming_potential=METHANE_GWP,
        energy_produced=energy_produced,
        def_value=calculate_def(energy_produced, measurement.methane_destroyed),
        gross_emissions_reduction=co2_equivalent,
        standard_used=AccountingStandard(standard),
        calculated_at=utc_now()
    )


@dataclass
class StandardValidation:
    """Advisory result of checking a record against an accounting standard."""
    valid: bool
    errors: List[str] = field(default_factory=list)


def validate_against_standard(
    record: EmissionsRecord,
    standard: AccountingStandard
) -> StandardValidation:
    """Check GWP range, positivity, the GER identity and standard-specific minimums."""
    errors: List[str] = []

    if not GWP_MIN <= record.global_warming_potential <= GWP_MAX:
        errors.append(f"GWP value outside IPCC AR5 range ({GWP_MIN}-{GWP_MAX})")

    if record.co2_equivalent <= 0:
        errors.append("CO2 equivalent must be positive")

    if abs(record.gross_emissions_reduction - record.co2_equivalent) > GER_TOLERANCE:
        errors.append("GER calculation mismatch")

    if standard == AccountingStandard.ACM0022:
        if record.methane_destroyed <= 0:
            errors.append("ACM0022 requires positive methane destruction")
    elif standard == AccountingStandard.AM0053:
        if record.energy_produced <= 0:
            errors.append("AM0053 requires positive energy production")
    elif standard == AccountingStandard.AMS_I_D:
        if record.energy_produced <= 0:
            errors.append("AMS-I.D requires electricity generation")

    return StandardValidation(valid=not errors, errors=errors)


@dataclass
class MFEValidation:
    valid: bool
    variance: float
    message: str


def validate_against_mfe(actual_value: float, category: str) -> MFEValidation:
    """
    Compare an emission factor with the MFE default for ``category``.

    ``actual_value`` must be in the category's unit (kg CO2eq/kWh for the
    energy categories, so a stored ``def_value`` is multiplied by 1000).
    Within 15% of the default is acceptable. Advisory only; an unknown
    category is reported as invalid rather than raised.
    """
    default = MFE_DEFAULT_EMISSION_FACTORS.get(category)
    if default is None:
        return MFEValidation(
            valid=False,
            variance=0.0,
            message=f"No MFE data available for category: {category}"
        )

    factor, unit = default
    variance = (actual_value - factor) / factor * 100
    acceptable = abs(variance) <= MFE_VARIANCE_TOLERANCE_PERCENT
    verdict = "within" if acceptable else "outside"
    return MFEValidation(
        valid=acceptable,
        variance=variance,
        message=f"Emissions {verdict} acceptable range ({variance:.2f}% variance from {factor} {unit})"
    )


# Waste diversion (MFE methodology, E = Q x F)

def calculate_waste_diversion_reduction(quantity_tonnes: float, waste_type: str) -> float:
    """
    Emissions avoided by diverting waste from landfill, in tonnes CO2eq.

    Formula: E = Q x F with the MFE factor for ``waste_type``.
    """
    factor = MFE_EMISSION_FACTORS.get(waste_type)
    if factor is None:
        raise ValidationError(
            f"Unknown waste type {waste_type!r}",
            [{"field": "wasteType", "message": f"must be one of {sorted(MFE_EMISSION_FACTORS)}"}]
        )
    return round(quantity_tonnes * factor, CO2_DECIMALS)


def estimate_methane_generation(quantity_tonnes: float, feedstock: str) -> float:
    """Estimated methane yield in m³ for a feedstock quantity."""
    methane_yield = METHANE_YIELDS_M3_PER_TONNE.get(feedstock)
    if methane_yield is None:
        raise ValidationError(
            f"Unknown feedstock {feedstock!r}",
            [{"field": "feedstock", "message": f"must be one of {sorted(METHANE_YIELDS_M3_PER_TONNE)}"}]
        )
    return quantity_tonnes * methane_yield


def calculate_daily_diversion(
    sewage_sludge_tonnes: float = DEMONSTRATOR_SEWAGE_SLUDGE_DAILY,
    green_waste_tonnes: float = DEMONSTRATOR_GREEN_WASTE_DAILY,
    grape_marc_tonnes: float = 0.0
) -> Dict[str, float]:
    """Per-stream and total daily diversion reduction for the demonstrator plant."""
    sewage_sludge = calculate_waste_diversion_reduction(sewage_sludge_tonnes, "SEWAGE_SLUDGE")
    green_waste = calculate_waste_diversion_reduction(green_waste_tonnes, "GARDEN_WASTE")
    grape_marc = (
        calculate_waste_diversion_reduction(grape_marc_tonnes, "GRAPE_MARC")
        if grape_marc_tonnes > 0 else 0.0
    )

    return {
        "sewage_sludge_reduction": sewage_sludge,
        "green_waste_reduction": green_waste,
        "grape_marc_reduction": grape_marc,
        "total_reduction": round(sewage_sludge + green_waste + grape_marc, CO2_DECIMALS),
        "electricity_produced": DEMONSTRATOR_ELECTRICITY_SURPLUS_KWH,
    }


# Persistence

async def stage_emissions_record(
    session: AsyncSession,
    measurement: Measurement,
    standard: AccountingStandard = AccountingStandard.ACM0022
) -> EmissionsRecord:
    """Calculate, flush and audit the record for ``measurement``. Does not commit."""
    record = calculate(measurement, standard)
    session.add(record)
    await session.flush()
    await record_audit(
        session,
        action="emissions_calculated",
        entity_type="emissions_record",
        entity_id=record.id,
        payload=record.model_dump()
    )
    return record


async def calculate_emissions(
    session: AsyncSession,
    measurement: Measurement,
    standard: AccountingStandard = AccountingStandard.ACM0022
) -> EmissionsRecord:
    """
    Calculate and store the emissions record for a stored measurement.

    Raises DuplicateError if the measurement already has a record.
    """
    measurement_id = measurement.id
    if await get_emissions_for_measurement(session, measurement_id):
        logger.warning("Emissions record already exists for measurement %s", measurement_id)
        raise DuplicateError(
            f"Measurement {measurement_id} already has an emissions record"
        )

    try:
        record = await stage_emissions_record(session, measurement, standard)
        await session.commit()
    except IntegrityError as e:
        await rollback_and_reload(session)
        if not is_unique_violation(e, "measurement_id"):
            raise
        logger.warning("Emissions record already exists for measurement %s", measurement_id)
        raise DuplicateError(
            f"Measurement {measurement_id} already has an emissions record"
        )

    await session.refresh(record)
    logger.info(
        "Calculated emissions for measurement %s: co2eq=%.3f t standard=%s",
        measurement_id, record.co2_equivalent, record.standard_used.value
    )
    return record


async def get_emissions_record(session: AsyncSession, record_id: int) -> EmissionsRecord:
    """Get emissions record by ID."""
    record = await session.get(EmissionsRecord, record_id)
    if not record:
        raise NotFoundError(f"Emissions record {record_id} not found")
    return record


async def get_emissions_for_measurement(
    session: AsyncSession,
    measurement_id: int
) -> Optional[EmissionsRecord]:
    """Get the emissions record calculated for a measurement, if any."""
    statement = select(EmissionsRecord).where(
        EmissionsRecord.measurement_id == measurement_id
    )
    result = await session.execute(statement)
    return result.scalars().first()
