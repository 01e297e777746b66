"""
Transaction model - append-only ledger of carbon credit lifecycle events.
"""

from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

from brrp.models.base import CamelModel, append_only
from brrp.utils.time import utc_now


class TransactionType(str, Enum):
    MINT = "MINT"
    SALE = "SALE"
    OFFSET = "OFFSET"
    DESTROY = "DESTROY"


class TransactionBase(SQLModel):
    """Base transaction schema."""
    carbon_credit_id: int = Field(..., foreign_key="carbon_credits.id", index=True)
    transaction_type: TransactionType = Field(...)
    buyer_id: Optional[str] = Field(default=None)
    seller_id: Optional[str] = Field(default=None)
    amount: float = Field(default=0.0, ge=0)
    currency: str = Field(...)
    timestamp: datetime = Field(default_factory=utc_now, index=True)
    blockchain_tx_hash: str = Field(..., description="Opaque transaction hash")


@append_only
class Transaction(TransactionBase, table=True):
    """Transaction database table - append-only."""
    __tablename__ = "credit_transactions"

    id: Optional[int] = Field(default=None, primary_key=True)


class TransactionRead(CamelModel):
    """Schema for reading a ledger entry."""
    id: int
    carbon_credit_id: int
    transaction_type: TransactionType
    buyer_id: Optional[str] = None
    seller_id: Optional[str] = None
    amount: float
    currency: str
    timestamp: datetime
    blockchain_tx_hash: str
