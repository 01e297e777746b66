"""
Hash-chained audit trail handler.
"""

import json
import logging
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from typing import Any, Dict, List, Optional

from brrp.models.audit import AuditChainHead, AuditLog
from brrp.utils.hashing import chain_hash, hash_payload

logger = logging.getLogger(__name__)


async def _lock_chain_head(session: AsyncSession) -> None:
    result = await session.execute(
        update(AuditChainHead)
        .where(AuditChainHead.id == 1)
        .values(length=AuditChainHead.length + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        session.add(AuditChainHead(id=1, length=1))
        await session.flush()


async def _latest_chain_hash(session: AsyncSession) -> Optional[str]:
    result = await session.execute(
        select(AuditLog.chain_hash).order_by(AuditLog.id.desc()).limit(1)
    )
    return result.scalar()


async def record_audit(
    session: AsyncSession,
    action: str,
    entity_type: str,
    entity_id: Optional[int],
    payload: Dict[str, Any],
    extra: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Append an audit entry chained onto the latest one.

    The entry is added to the session and flushed; the caller owns the commit
    so the audit entry lands in the same transaction as the audited change.
    The chain head row stays locked until that commit, so appends from
    concurrent sessions are serialized.
    """
    await _lock_chain_head(session)
    previous = await _latest_chain_hash(session)
    payload_hash = hash_payload(payload)

    audit = AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        payload_hash=payload_hash,
        previous_hash=previous,
        chain_hash=chain_hash(previous, payload_hash),
        extra_data=json.dumps(extra, sort_keys=True, default=str) if extra else None
    )
    session.add(audit)
    await session.flush()
    return audit


async def get_audit_trail(
    session: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None
) -> List[AuditLog]:
    """Get audit entries in chain order, optionally for one entity."""
    statement = select(AuditLog)
    if entity_type:
        statement = statement.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        statement = statement.where(AuditLog.entity_id == entity_id)
    statement = statement.order_by(AuditLog.id)

    result = await session.execute(statement)
    return list(result.scalars().all())


async def verify_audit_chain(session: AsyncSession) -> bool:
    """Recompute every chain hash; False if any link was tampered with."""
    previous = None
    for entry in await get_audit_trail(session):
        if entry.previous_hash != previous:
            logger.error("Audit chain broken at entry %d (previous hash mismatch)", entry.id)
            return False
        if entry.chain_hash != chain_hash(previous, entry.payload_hash):
            logger.error("Audit chain broken at entry %d (chain hash mismatch)", entry.id)
            return False
        previous = entry.chain_hash
    return True
