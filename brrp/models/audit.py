"""
Audit log model - append-only, hash-chained audit trail.
"""

from sqlalchemy import DDL, event
from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime

from brrp.models.base import append_only
from brrp.utils.time import utc_now


class AuditLogBase(SQLModel):
    """Base audit log schema."""
    action: str = Field(..., description="Action type (e.g., 'measurement_recorded', 'credit_minted')")
    entity_type: str = Field(..., description="Entity type (e.g., 'carbon_credit', 'measurement')")
    entity_id: Optional[int] = Field(default=None, description="ID of the entity")
    payload_hash: str = Field(..., description="SHA-256 hash of the audited payload")
    previous_hash: Optional[str] = Field(default=None, description="Chain hash of the prior entry")
    chain_hash: str = Field(..., unique=True, index=True)
    extra_data: Optional[str] = Field(
        default=None,
        description="JSON string of additional metadata"
    )


@append_only
class AuditLog(AuditLogBase, table=True):
    """Audit log database table - append-only."""
    __tablename__ = "audit_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utc_now)


class AuditLogRead(AuditLogBase):
    """Schema for reading an audit log entry."""
    id: int
    created_at: datetime


class AuditChainHead(SQLModel, table=True):
    """
    Single-row chain head.

    Every audit append bumps ``length`` first, so concurrent writers queue on
    this row and each one reads the hash its predecessor committed.
    """
    __tablename__ = "audit_chain_head"

    id: int = Field(default=1, primary_key=True)
    length: int = Field(default=0)


event.listen(
    AuditChainHead.__table__,
    "after_create",
    DDL("INSERT INTO audit_chain_head (id, length) VALUES (1, 0)")
)
