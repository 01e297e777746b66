"""
Carbon credit lifecycle handler.

Mints a credit from a verified emissions record and drives it through
MINTED -> AVAILABLE -> SOLD -> OFFSET -> DESTROYED. Every status change is a
conditional UPDATE on the status that was read (compare-and-swap on the
row) and is committed together with its ledger entries.
"""

import logging
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from typing import Any, Dict, Iterable, List, Optional

from brrp.core.config import get_settings
from brrp.core.database import is_unique_violation, rollback_and_reload
from brrp.core.errors import (
    AlreadyDestroyed,
    BudgetNotValidated,
    DuplicateMint,
    ExternalSyncError,
    InvalidState,
    NotAvailable,
    NotFoundError,
    NotVerified,
    ValidationError,
)
from brrp.core.identifiers import IdentifierProvider, RandomIdentifierProvider
from brrp.core.state_machine import CREDIT_TRANSITIONS
from brrp.models.credit import CarbonCredit, CreditStatus
from brrp.models.emissions import EmissionsRecord
from brrp.models.transaction import Transaction, TransactionType
from brrp.models.verification import VerificationRecord, VerificationStatus
from brrp.handlers.audit import record_audit
from brrp.handlers.ledger import append_transaction
from brrp.handlers.registry import (
    BudgetValidation,
    NationalBudgetValidator,
    RegistryClient,
    RegistrySyncResult,
)
from brrp.utils.time import utc_now

settings = get_settings()
logger = logging.getLogger(__name__)


async def _compare_and_set_status(
    session: AsyncSession,
    credit: CarbonCredit,
    expected: Iterable[CreditStatus],
    target: CreditStatus,
    **values: Any
) -> bool:
    """Set ``target`` only if the row is still in one of ``expected``. Does not commit."""
    result = await session.execute(
        update(CarbonCredit)
        .where(
            CarbonCredit.id == credit.id,
            CarbonCredit.status.in_(list(expected))
        )
        .values(status=target, updated_at=utc_now(), **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _existing_credit_id(session: AsyncSession, emissions_record_id: int) -> Optional[int]:
    result = await session.execute(
        select(CarbonCredit.id).where(CarbonCredit.emissions_record_id == emissions_record_id)
    )
    return result.scalar()


async def mint_credit(
    session: AsyncSession,
    emissions_record: EmissionsRecord,
    verification_record: VerificationRecord,
    identifiers: Optional[IdentifierProvider] = None
) -> CarbonCredit:
    """
    Mint a carbon credit from a verified emissions record.

    Units are the record's gross emissions reduction. A MINT ledger entry is
    written in the same commit.

    Raises:
        NotVerified: verification not VERIFIED or for another emissions record
        DuplicateMint: a credit already exists for the emissions record
    """
    if verification_record.status != VerificationStatus.VERIFIED:
        raise NotVerified(
            f"Emissions record {emissions_record.id} is not verified "
            f"(verification {verification_record.id} is {verification_record.status.value})"
        )
    if verification_record.emissions_record_id != emissions_record.id:
        raise NotVerified(
            f"Verification {verification_record.id} does not attest emissions record {emissions_record.id}"
        )

    emissions_record_id = emissions_record.id
    if await _existing_credit_id(session, emissions_record_id) is not None:
        logger.warning("Duplicate mint rejected for emissions record %d", emissions_record_id)
        raise DuplicateMint(
            f"Emissions record {emissions_record_id} already has a carbon credit"
        )

    identifiers = identifiers or RandomIdentifierProvider()
    token_id = identifiers.token_id()

    credit = CarbonCredit(
        token_id=token_id,
        emissions_record_id=emissions_record.id,
        verification_record_id=verification_record.id,
        units=emissions_record.gross_emissions_reduction,
        minted_at=utc_now(),
        blockchain_address=identifiers.blockchain_address(token_id),
        registry_id=identifiers.registry_id(),
        national_carbon_budget_validated=False,
        status=CreditStatus.MINTED
    )
    session.add(credit)

    try:
        await session.flush()
        append_transaction(
            session,
            carbon_credit_id=credit.id,
            transaction_type=TransactionType.MINT,
            currency=settings.default_currency,
            identifiers=identifiers
        )
        await record_audit(
            session,
            action="credit_minted",
            entity_type="carbon_credit",
            entity_id=credit.id,
            payload={
                "token_id": credit.token_id,
                "emissions_record_id": emissions_record.id,
                "verification_record_id": verification_record.id,
                "units": credit.units,
            }
        )
        await session.commit()
    except IntegrityError as e:
        await rollback_and_reload(session)
        if not is_unique_violation(e, "emissions_record_id"):
            raise
        logger.warning("Duplicate mint rejected for emissions record %d", emissions_record_id)
        raise DuplicateMint(
            f"Emissions record {emissions_record_id} already has a carbon credit"
        )

    await session.refresh(credit)
    logger.info(
        "Minted credit %d (%s) for %.3f t CO2eq", credit.id, credit.token_id, credit.units
    )
    return credit


async def validate_against_national_budget(
    session: AsyncSession,
    credit: CarbonCredit,
    validator: NationalBudgetValidator
) -> BudgetValidation:
    """
    Check a credit against the national carbon budget.

    A valid result marks the credit as budget-validated. Validator failures
    raise ExternalSyncError and leave the credit untouched.
    """
    try:
        validation = await validator.validate(credit)
    except ExternalSyncError as e:
        logger.error("National budget validation failed for credit %d: %s", credit.id, e.detail)
        raise

    if validation.valid and not credit.national_carbon_budget_validated:
        await session.execute(
            update(CarbonCredit)
            .where(CarbonCredit.id == credit.id)
            .values(national_carbon_budget_validated=True, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await record_audit(
            session,
            action="credit_budget_validated",
            entity_type="carbon_credit",
            entity_id=credit.id,
            payload={"token_id": credit.token_id, "message": validation.message}
        )
        await session.commit()
        await session.refresh(credit)
        logger.info("Credit %d validated against national budget", credit.id)
    elif not validation.valid:
        logger.warning(
            "Credit %d failed national budget validation: %s", credit.id, validation.message
        )

    return validation


async def make_available(
    session: AsyncSession,
    credit: CarbonCredit,
    market_value: float,
    currency: Optional[str] = None
) -> CarbonCredit:
    """
    List a minted, budget-validated credit for sale.

    Raises:
        InvalidState: credit is not MINTED
        BudgetNotValidated: national budget validation has not passed
        ValidationError: negative market value
    """
    CREDIT_TRANSITIONS.require(credit.status, CreditStatus.AVAILABLE, InvalidState)

    if not credit.national_carbon_budget_validated:
        raise BudgetNotValidated(
            f"Credit {credit.id} must be validated against the national carbon budget"
        )
    if market_value < 0:
        raise ValidationError(
            "Invalid market value",
            [{"field": "marketValue", "message": "must be >= 0"}]
        )

    currency = currency or settings.default_currency
    swapped = await _compare_and_set_status(
        session, credit,
        expected=[CreditStatus.MINTED],
        target=CreditStatus.AVAILABLE,
        market_value=market_value,
        currency=currency
    )
    if not swapped:
        await rollback_and_reload(session)
        raise InvalidState(
            f"Credit {credit.id} is {credit.status.value}, expected MINTED"
        )

    await record_audit(
        session,
        action="credit_listed",
        entity_type="carbon_credit",
        entity_id=credit.id,
        payload={"market_value": market_value, "currency": currency}
    )
    await session.commit()
    await session.refresh(credit)

    logger.info("Credit %d listed at %.2f %s", credit.id, market_value, currency)
    return credit


async def sell_credit(
    session: AsyncSession,
    credit: CarbonCredit,
    buyer_id: str,
    amount: float,
    seller_id: Optional[str] = None,
    identifiers: Optional[IdentifierProvider] = None
) -> Transaction:
    """
    Sell an available credit to a single buyer.

    The credit moves to SOLD; resale is not supported.

    Raises:
        NotAvailable: credit is not AVAILABLE (or was sold concurrently)
    """
    if credit.status != CreditStatus.AVAILABLE:
        raise NotAvailable(
            f"Credit {credit.id} is {credit.status.value}, not available for sale"
        )
    if amount < 0:
        raise ValidationError(
            "Invalid sale amount",
            [{"field": "amount", "message": "must be >= 0"}]
        )

    identifiers = identifiers or RandomIdentifierProvider()
    swapped = await _compare_and_set_status(
        session, credit,
        expected=[CreditStatus.AVAILABLE],
        target=CreditStatus.SOLD
    )
    if not swapped:
        await rollback_and_reload(session)
        raise NotAvailable(f"Credit {credit.id} is no longer available for sale")

    transaction = append_transaction(
        session,
        carbon_credit_id=credit.id,
        transaction_type=TransactionType.SALE,
        currency=credit.currency or settings.default_currency,
        identifiers=identifiers,
        amount=amount,
        buyer_id=buyer_id,
        seller_id=seller_id
    )
    await session.flush()
    await record_audit(
        session,
        action="credit_sold",
        entity_type="carbon_credit",
        entity_id=credit.id,
        payload={"buyer_id": buyer_id, "amount": amount, "transaction_id": transaction.id}
    )
    await session.commit()
    await session.refresh(credit)
    await session.refresh(transaction)

    logger.info("Credit %d sold to %s for %.2f", credit.id, buyer_id, amount)
    return transaction


async def offset_and_destroy(
    session: AsyncSession,
    credit: CarbonCredit,
    buyer_id: str,
    identifiers: Optional[IdentifierProvider] = None
) -> Transaction:
    """
    Offset a sold credit against the buyer's emissions and destroy it.

    Writes an OFFSET entry (unless the credit was already OFFSET) and a DESTROY
    entry in one commit. Only one caller can win the status swap, so a credit
    is destroyed exactly once.

    Returns:
        The DESTROY transaction

    Raises:
        AlreadyDestroyed: credit is (or concurrently became) DESTROYED
        InvalidState: credit has not been sold
    """
    if credit.status == CreditStatus.DESTROYED:
        logger.warning("Credit %d already destroyed", credit.id)
        raise AlreadyDestroyed(f"Credit {credit.id} has already been destroyed")

    previous = credit.status
    if previous == CreditStatus.SOLD:
        CREDIT_TRANSITIONS.require(previous, CreditStatus.OFFSET, InvalidState)
    else:
        CREDIT_TRANSITIONS.require(previous, CreditStatus.DESTROYED, InvalidState)

    identifiers = identifiers or RandomIdentifierProvider()
    swapped = await _compare_and_set_status(
        session, credit,
        expected=[previous],
        target=CreditStatus.DESTROYED
    )
    if not swapped:
        await rollback_and_reload(session)
        if credit.status == CreditStatus.DESTROYED:
            logger.warning("Credit %d destroyed concurrently", credit.id)
            raise AlreadyDestroyed(f"Credit {credit.id} has already been destroyed")
        raise InvalidState(
            f"Credit {credit.id} moved to {credit.status.value} during offset"
        )

    currency = credit.currency or settings.default_currency
    if previous == CreditStatus.SOLD:
        append_transaction(
            session,
            carbon_credit_id=credit.id,
            transaction_type=TransactionType.OFFSET,
            currency=currency,
            identifiers=identifiers,
            amount=credit.market_value or 0.0,
            buyer_id=buyer_id
        )
    destroy = append_transaction(
        session,
        carbon_credit_id=credit.id,
        transaction_type=TransactionType.DESTROY,
        currency=currency,
        identifiers=identifiers,
        buyer_id=buyer_id
    )
    await session.flush()
    await record_audit(
        session,
        action="credit_destroyed",
        entity_type="carbon_credit",
        entity_id=credit.id,
        payload={"buyer_id": buyer_id, "transaction_id": destroy.id}
    )
    await session.commit()
    await session.refresh(credit)
    await session.refresh(destroy)

    logger.info("Credit %d offset by %s and destroyed", credit.id, buyer_id)
    return destroy


async def sync_to_global_registry(
    credit: CarbonCredit,
    client: RegistryClient
) -> RegistrySyncResult:
    """
    Publish a credit to the global registry.

    Best-effort bookkeeping: failures raise ExternalSyncError, the credit's
    lifecycle state is never rolled back.
    """
    try:
        result = await client.sync(credit)
    except ExternalSyncError as e:
        logger.error("Registry sync failed for credit %d: %s", credit.id, e.detail)
        raise

    logger.info("Credit %d synced to registry at %s", credit.id, result.registry_url)
    return result


async def get_credit(session: AsyncSession, credit_id: int) -> CarbonCredit:
    """Get carbon credit by ID."""
    credit = await session.get(CarbonCredit, credit_id)
    if not credit:
        raise NotFoundError(f"Carbon credit {credit_id} not found")
    return credit


async def get_credit_by_token(session: AsyncSession, token_id: str) -> CarbonCredit:
    """Get carbon credit by its token id."""
    result = await session.execute(
        select(CarbonCredit).where(CarbonCredit.token_id == token_id)
    )
    credit = result.scalars().first()
    if not credit:
        raise NotFoundError(f"Carbon credit with token {token_id} not found")
    return credit


async def list_credits(
    session: AsyncSession,
    status: Optional[CreditStatus] = None
) -> List[CarbonCredit]:
    """Get credits, optionally filtered by status, newest first."""
    statement = select(CarbonCredit)

    if status:
        statement = statement.where(CarbonCredit.status == status)

    statement = statement.order_by(CarbonCredit.minted_at.desc(), CarbonCredit.id.desc())

    result = await session.execute(statement)
    return list(result.scalars().all())


def credit_summary(credit: CarbonCredit) -> Dict[str, Any]:
    """Plain dictionary view of a credit for reports."""
    return {
        "id": credit.id,
        "token_id": credit.token_id,
        "units": credit.units,
        "status": credit.status.value,
        "registry_id": credit.registry_id,
        "national_carbon_budget_validated": credit.national_carbon_budget_validated,
        "market_value": credit.market_value,
        "currency": credit.currency,
        "minted_at": credit.minted_at.isoformat(),
    }
