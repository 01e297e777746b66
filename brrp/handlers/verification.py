"""
Verification workflow handler.

Tracks third-party attestation (Verra, Gold Standard, Toitū/Ekos) of an
emissions record. Status moves only along the edges of
``VERIFICATION_TRANSITIONS``; VERIFIED and REJECTED are terminal.
"""

import logging
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from datetime import datetime
from typing import Any, Dict, List, Optional

from brrp.core.constants import (
    VERIFICATION_INTERVAL_MONTHS,
    WWTP_INSPECTION_INTERVAL_MONTHS,
    WWTP_STANDARDS,
)
from brrp.core.database import rollback_and_reload
from brrp.core.errors import (
    InvalidTransition,
    MissingCertificate,
    NotFoundError,
    ValidationError,
)
from brrp.core.state_machine import VERIFICATION_TRANSITIONS
from brrp.models.emissions import EmissionsRecord
from brrp.models.verification import (
    VerificationRecord,
    VerificationStandard,
    VerificationStatus,
)
from brrp.handlers.audit import record_audit
from brrp.utils.time import add_months, utc_now

logger = logging.getLogger(__name__)


VERIFICATION_REQUIREMENTS = {
    VerificationStandard.VERRA: [
        "VCS (Verified Carbon Standard) compliance",
        "Project documentation including monitoring plan",
        "Baseline and monitoring methodology",
        "Evidence of emissions reductions",
        "Third-party validation report",
        "Stakeholder consultation documentation",
    ],
    VerificationStandard.GOLD_STANDARD: [
        "Gold Standard certification requirements",
        "Sustainable Development Goals (SDG) impact assessment",
        "Additionality demonstration",
        "Monitoring and verification plan",
        "Environmental and social safeguards",
        "Local stakeholder engagement evidence",
    ],
    VerificationStandard.TOITU_EKOS: [
        "Toitū carbonreduce or carbonzero certification",
        "New Zealand emissions factors compliance",
        "Greenhouse gas inventory",
        "Verification to ISO 14064-3",
        "Evidence of emissions reduction activities",
        "Third-party assurance statement",
    ],
}


def next_due_date(from_date: datetime) -> datetime:
    """Bi-annual re-verification date."""
    return add_months(from_date, VERIFICATION_INTERVAL_MONTHS)


async def initiate_verification(
    session: AsyncSession,
    emissions_record: EmissionsRecord,
    standard: VerificationStandard,
    verifier: str
) -> VerificationRecord:
    """
    Open a verification of an emissions record with an external body.

    The record starts PENDING, due for re-verification six months out.
    """
    if not verifier or not verifier.strip():
        raise ValidationError(
            "Verifier name is required",
            [{"field": "verifiedBy", "message": "must not be empty"}]
        )

    now = utc_now()
    record = VerificationRecord(
        emissions_record_id=emissions_record.id,
        standard=VerificationStandard(standard),
        verified_by=verifier.strip(),
        verification_date=now,
        status=VerificationStatus.PENDING,
        next_verification_due=next_due_date(now),
        created_at=now,
        updated_at=now
    )
    session.add(record)
    await session.flush()

    await record_audit(
        session,
        action="verification_initiated",
        entity_type="verification_record",
        entity_id=record.id,
        payload={
            "emissions_record_id": emissions_record.id,
            "standard": record.standard.value,
            "verified_by": record.verified_by,
        }
    )
    await session.commit()
    await session.refresh(record)

    logger.info(
        "Verification %d initiated for emissions record %d with %s (%s)",
        record.id, emissions_record.id, record.verified_by, record.standard.value
    )
    return record


async def update_verification_status(
    session: AsyncSession,
    record: VerificationRecord,
    new_status: VerificationStatus,
    certificate_url: Optional[str] = None,
    notes: Optional[str] = None
) -> VerificationRecord:
    """
    Move a verification record to ``new_status``.

    Raises:
        InvalidTransition: target not reachable from the current status, or
            the row changed status concurrently
        MissingCertificate: VERIFIED requested without a certificate URL
        ValidationError: certificate URL supplied for a non-VERIFIED target
    """
    new_status = VerificationStatus(new_status)
    current = record.status

    VERIFICATION_TRANSITIONS.require(current, new_status)

    if new_status == VerificationStatus.VERIFIED and not certificate_url:
        raise MissingCertificate(
            f"Verification {record.id} cannot be VERIFIED without a certificate URL"
        )
    if new_status != VerificationStatus.VERIFIED and certificate_url:
        raise ValidationError(
            "Certificate URL is only accepted when verifying",
            [{"field": "certificateUrl", "message": f"not allowed for status {new_status.value}"}]
        )

    now = utc_now()
    values: Dict[str, Any] = {
        "status": new_status,
        "verification_date": now,
        "updated_at": now,
        "certificate_url": certificate_url,
    }
    if notes is not None:
        values["notes"] = notes
    if new_status == VerificationStatus.VERIFIED:
        values["next_verification_due"] = next_due_date(now)

    # Compare-and-swap on the status we read
    result = await session.execute(
        update(VerificationRecord)
        .where(
            VerificationRecord.id == record.id,
            VerificationRecord.status == current
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await rollback_and_reload(session)
        logger.warning(
            "Verification %d changed concurrently (expected %s, found %s)",
            record.id, current.value, record.status.value
        )
        raise InvalidTransition(
            f"verification: record {record.id} is no longer {current.value}"
        )

    await record_audit(
        session,
        action="verification_status_changed",
        entity_type="verification_record",
        entity_id=record.id,
        payload={
            "from": current.value,
            "to": new_status.value,
            "certificate_url": certificate_url,
        },
        extra={"notes": notes} if notes else None
    )
    await session.commit()
    await session.refresh(record)

    logger.info(
        "Verification %d moved %s -> %s", record.id, current.value, new_status.value
    )
    return record


def is_verification_due(record: VerificationRecord, now: Optional[datetime] = None) -> bool:
    """True once the re-verification date has been reached."""
    return (now or utc_now()) >= record.next_verification_due


def get_verification_requirements(standard: VerificationStandard) -> List[str]:
    """Documentation a verifier expects for ``standard``."""
    return list(VERIFICATION_REQUIREMENTS[VerificationStandard(standard)])


def get_wwtp_compliance(plant_name: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Compliance status of a wastewater treatment plant.

    A plant is compliant when it holds at least one standard and was
    inspected within the last twelve months. Unknown plants are not compliant.
    """
    plant = WWTP_STANDARDS.get("-".join(plant_name.lower().split()))
    if plant is None:
        return {"compliant": False, "standards": [], "last_inspection": None}

    last_inspection = datetime.fromisoformat(plant["last_inspection"])
    cutoff = add_months(now or utc_now(), -WWTP_INSPECTION_INTERVAL_MONTHS)
    return {
        "compliant": bool(plant["standards"]) and last_inspection >= cutoff,
        "standards": list(plant["standards"]),
        "last_inspection": last_inspection,
    }


def validate_verification_record(
    record: VerificationRecord,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Completeness check of a verification record.

    Returns:
        Dictionary with ``valid`` and a list of ``errors``
    """
    errors: List[str] = []

    if not record.emissions_record_id:
        errors.append("Missing emissions record ID")

    if not record.verified_by or not record.verified_by.strip():
        errors.append("Verifier name is required")

    if record.status == VerificationStatus.VERIFIED and not record.certificate_url:
        errors.append("Certificate URL required for verified status")

    if record.status != VerificationStatus.VERIFIED and record.certificate_url:
        errors.append("Certificate URL present on a record that is not verified")

    if record.status == VerificationStatus.VERIFIED and is_verification_due(record, now):
        errors.append("Verification is older than 6 months and may need renewal")

    return {"valid": not errors, "errors": errors}


def generate_verification_report(
    record: VerificationRecord,
    emissions_record: EmissionsRecord
) -> Dict[str, Any]:
    """Summary of a verification and the emissions it attests."""
    return {
        "verification_id": record.id,
        "emissions_record_id": emissions_record.id,
        "standard": record.standard.value,
        "verified_by": record.verified_by,
        "verification_date": record.verification_date.isoformat(),
        "status": record.status.value,
        "emissions_summary": {
            "methane_destroyed": emissions_record.methane_destroyed,
            "co2_equivalent": emissions_record.co2_equivalent,
            "gross_emissions_reduction": emissions_record.gross_emissions_reduction,
            "standard_used": emissions_record.standard_used.value,
        },
        "requirements": get_verification_requirements(record.standard),
        "next_verification": record.next_verification_due.isoformat(),
        "certificate_url": record.certificate_url,
        "notes": record.notes,
        "generated_at": utc_now().isoformat()
    }


async def get_verification_record(session: AsyncSession, record_id: int) -> VerificationRecord:
    """Get verification record by ID."""
    record = await session.get(VerificationRecord, record_id)
    if not record:
        raise NotFoundError(f"Verification record {record_id} not found")
    return record


async def get_verifications_for_emissions(
    session: AsyncSession,
    emissions_record_id: int
) -> List[VerificationRecord]:
    """All verification attempts of an emissions record, oldest first."""
    statement = select(VerificationRecord).where(
        VerificationRecord.emissions_record_id == emissions_record_id
    ).order_by(VerificationRecord.created_at, VerificationRecord.id)

    result = await session.execute(statement)
    return list(result.scalars().all())


async def list_due_verifications(
    session: AsyncSession,
    now: Optional[datetime] = None
) -> List[VerificationRecord]:
    """VERIFIED records whose re-verification date has passed."""
    statement = select(VerificationRecord).where(
        VerificationRecord.status == VerificationStatus.VERIFIED,
        VerificationRecord.next_verification_due <= (now or utc_now())
    ).order_by(VerificationRecord.next_verification_due)

    result = await session.execute(statement)
    return list(result.scalars().all())
