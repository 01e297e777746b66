"""
Carbon credit model - one tradeable unit minted from a verified emissions record.
"""

from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

from brrp.models.base import CamelModel
from brrp.utils.time import utc_now


class CreditStatus(str, Enum):
    """Carbon credit status lifecycle."""
    MINTED = "MINTED"
    AVAILABLE = "AVAILABLE"
    SOLD = "SOLD"
    OFFSET = "OFFSET"
    DESTROYED = "DESTROYED"  # burned after offset, never re-enters circulation


class CarbonCreditBase(SQLModel):
    """Base carbon credit schema."""
    token_id: str = Field(..., unique=True, index=True, description="Opaque NFT token id")
    emissions_record_id: int = Field(..., foreign_key="emissions_records.id", unique=True)
    verification_record_id: int = Field(..., foreign_key="verification_records.id")
    units: float = Field(..., description="Tonnes CO2eq (GER of the emissions record)", ge=0)
    minted_at: datetime = Field(default_factory=utc_now)
    blockchain_address: str = Field(..., description="Opaque address from the signer")
    registry_id: str = Field(..., unique=True, description="Opaque Open Earth registry id")
    national_carbon_budget_validated: bool = Field(default=False)
    status: CreditStatus = Field(default=CreditStatus.MINTED, index=True)
    market_value: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None)


class CarbonCredit(CarbonCreditBase, table=True):
    """Carbon credit database table."""
    __tablename__ = "carbon_credits"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class CarbonCreditRead(CamelModel):
    """Schema for reading a carbon credit."""
    id: int
    token_id: str
    emissions_record_id: int
    verification_record_id: int
    units: float
    minted_at: datetime
    blockchain_address: str
    registry_id: str
    national_carbon_budget_validated: bool
    status: CreditStatus
    market_value: Optional[float] = None
    currency: Optional[str] = None
