"""
Verification record model - third-party attestation of an emissions record.
"""

from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

from brrp.models.base import CamelModel
from brrp.utils.time import utc_now


class VerificationStandard(str, Enum):
    """Third-party verification schemes."""
    VERRA = "VERRA"
    GOLD_STANDARD = "GOLD_STANDARD"
    TOITU_EKOS = "TOITU_EKOS"


class VerificationStatus(str, Enum):
    """Verification lifecycle status."""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class VerificationRecordBase(SQLModel):
    """Base verification record schema."""
    emissions_record_id: int = Field(..., foreign_key="emissions_records.id", index=True)
    standard: VerificationStandard = Field(...)
    verified_by: str = Field(..., description="Name of the verification body")
    verification_date: datetime = Field(default_factory=utc_now)
    status: VerificationStatus = Field(default=VerificationStatus.PENDING, index=True)
    certificate_url: Optional[str] = Field(
        default=None,
        description="Certificate issued by the verifier; present only when VERIFIED"
    )
    next_verification_due: datetime = Field(..., description="Bi-annual re-verification date")
    notes: Optional[str] = Field(default=None)


class VerificationRecord(VerificationRecordBase, table=True):
    """Verification record database table - never deleted."""
    __tablename__ = "verification_records"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class VerificationRecordRead(CamelModel):
    """Schema for reading a verification record."""
    id: int
    emissions_record_id: int
    standard: VerificationStandard
    verified_by: str
    verification_date: datetime
    status: VerificationStatus
    certificate_url: Optional[str] = None
    next_verification_due: datetime
    notes: Optional[str] = None
