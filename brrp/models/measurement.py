"""
Measurement model - immutable facility sensor readings from SCADA.
"""

from sqlmodel import SQLModel, Field
from pydantic import Field as SchemaField, field_validator
from typing import Optional
from datetime import datetime

from brrp.models.base import CamelModel, append_only
from brrp.utils.time import to_naive_utc, utc_now


class GeoLocation(CamelModel):
    """Facility location attached to a reading."""
    latitude: float = SchemaField(..., ge=-90, le=90)
    longitude: float = SchemaField(..., ge=-180, le=180)
    address: Optional[str] = None


class MeasurementBase(SQLModel):
    """Base measurement schema."""
    facility_id: str = Field(..., index=True, description="Facility identifier")
    timestamp: datetime = Field(..., index=True, description="Time of the reading (UTC)")
    waste_processed: float = Field(..., description="Waste processed in tonnes", ge=0)
    methane_generated: float = Field(..., description="Methane generated in m³", ge=0)
    methane_destroyed: float = Field(..., description="Methane destroyed in m³", ge=0)
    electricity_produced: Optional[float] = Field(default=None, description="Electricity in kWh", ge=0)
    process_heat_produced: Optional[float] = Field(default=None, description="Process heat in MJ", ge=0)
    latitude: Optional[float] = Field(default=None)
    longitude: Optional[float] = Field(default=None)
    location_address: Optional[str] = Field(default=None)


@append_only
class Measurement(MeasurementBase, table=True):
    """Measurement database table - append-only."""
    __tablename__ = "measurements"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utc_now)


class MeasurementCreate(CamelModel):
    """Ingestion payload from the facility controller."""
    facility_id: str = SchemaField(..., min_length=1)
    timestamp: datetime
    waste_processed: float = SchemaField(..., ge=0)
    methane_generated: float = SchemaField(..., ge=0)
    methane_destroyed: float = SchemaField(..., ge=0)
    electricity_produced: Optional[float] = SchemaField(default=None, ge=0)
    process_heat_produced: Optional[float] = SchemaField(default=None, ge=0)
    location: Optional[GeoLocation] = None

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return to_naive_utc(value)

    def to_row(self) -> Measurement:
        location = self.location
        return Measurement(
            facility_id=self.facility_id,
            timestamp=self.timestamp,
            waste_processed=self.waste_processed,
            methane_generated=self.methane_generated,
            methane_destroyed=self.methane_destroyed,
            electricity_produced=self.electricity_produced,
            process_heat_produced=self.process_heat_produced,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            location_address=location.address if location else None,
        )


class MeasurementRead(CamelModel):
    """Schema for reading a measurement (echoed back on ingestion)."""
    id: int
    facility_id: str
    timestamp: datetime
    waste_processed: float
    methane_generated: float
    methane_destroyed: float
    electricity_produced: Optional[float] = None
    process_heat_produced: Optional[float] = None
    location: Optional[GeoLocation] = None
    emissions_record_id: Optional[int] = None
    created_at: datetime

    @classmethod
    def from_row(cls, measurement: Measurement, emissions_record_id: Optional[int] = None) -> "MeasurementRead":
        location = None
        if measurement.latitude is not None and measurement.longitude is not None:
            location = GeoLocation(
                latitude=measurement.latitude,
                longitude=measurement.longitude,
                address=measurement.location_address,
            )
        return cls(
            id=measurement.id,
            facility_id=measurement.facility_id,
            timestamp=measurement.timestamp,
            waste_processed=measurement.waste_processed,
            methane_generated=measurement.methane_generated,
            methane_destroyed=measurement.methane_destroyed,
            electricity_produced=measurement.electricity_produced,
            process_heat_produced=measurement.process_heat_produced,
            location=location,
            emissions_record_id=emissions_record_id,
            created_at=measurement.created_at,
        )
