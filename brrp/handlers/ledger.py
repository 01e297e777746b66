"""
Transaction ledger handler - append-only record of credit lifecycle events.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from typing import List, Optional

from brrp.core.identifiers import IdentifierProvider
from brrp.models.transaction import Transaction, TransactionType
from brrp.utils.time import utc_now


def append_transaction(
    session: AsyncSession,
    carbon_credit_id: int,
    transaction_type: TransactionType,
    currency: str,
    identifiers: IdentifierProvider,
    amount: float = 0.0,
    buyer_id: Optional[str] = None,
    seller_id: Optional[str] = None
) -> Transaction:
    """
    Add one ledger entry to the session.

    The caller commits, so the entry is written atomically with the status
    change it records.
    """
    transaction = Transaction(
        carbon_credit_id=carbon_credit_id,
        transaction_type=transaction_type,
        buyer_id=buyer_id,
        seller_id=seller_id,
        amount=amount,
        currency=currency,
        timestamp=utc_now(),
        blockchain_tx_hash=identifiers.transaction_hash()
    )
    session.add(transaction)
    return transaction


async def get_transaction_history(
    session: AsyncSession,
    carbon_credit_id: int
) -> List[Transaction]:
    """Get all ledger entries for a credit in the order they happened."""
    statement = select(Transaction).where(
        Transaction.carbon_credit_id == carbon_credit_id
    ).order_by(Transaction.timestamp, Transaction.id)

    result = await session.execute(statement)
    return list(result.scalars().all())
