"""
Emissions record model - calculated climate-accounting result for one measurement.
"""

from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

from brrp.models.base import CamelModel, append_only
from brrp.utils.time import utc_now


class AccountingStandard(str, Enum):
    """Methodologies governing calculation rules and minimum thresholds."""
    ACM0022 = "ACM0022"  # Alternative waste treatment processes
    AM0053 = "AM0053"  # Biogenic methane injection to a natural gas grid
    AMS_I_D = "AMS-I.D"  # Grid connected renewable electricity generation


class EmissionsRecordBase(SQLModel):
    """Base emissions record schema."""
    measurement_id: int = Field(..., foreign_key="measurements.id", unique=True, index=True)
    methane_destroyed: float = Field(..., description="Methane destroyed in m³ (copied)")
    co2_equivalent: float = Field(..., description="CO2 equivalent in tonnes")
    global_warming_potential: float = Field(..., description="GWP factor applied")
    energy_produced: float = Field(..., description="Energy in kWh-equivalent")
    def_value: float = Field(..., description="Derived emission intensity per kWh")
    gross_emissions_reduction: float = Field(..., description="GER in tonnes CO2eq")
    standard_used: AccountingStandard = Field(...)
    calculated_at: datetime = Field(default_factory=utc_now)


@append_only
class EmissionsRecord(EmissionsRecordBase, table=True):
    """Emissions record database table - written once."""
    __tablename__ = "emissions_records"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utc_now)


class EmissionsRecordRead(CamelModel):
    """Schema for reading an emissions record."""
    id: int
    measurement_id: int
    methane_destroyed: float
    co2_equivalent: float
    global_warming_potential: float
    energy_produced: float
    def_value: float
    gross_emissions_reduction: float
    standard_used: AccountingStandard
    calculated_at: datetime
