"""
Tests for the verification workflow.
"""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta

from brrp.core.errors import (
    InvalidTransition,
    MissingCertificate,
    NotFoundError,
    ValidationError,
)
from brrp.handlers.audit import get_audit_trail
from brrp.handlers.emissions import get_emissions_record
from brrp.handlers.verification import (
    generate_verification_report,
    get_verification_record,
    get_verification_requirements,
    get_verifications_for_emissions,
    get_wwtp_compliance,
    initiate_verification,
    is_verification_due,
    list_due_verifications,
    update_verification_status,
    validate_verification_record,
)
from brrp.models.verification import VerificationStandard, VerificationStatus
from brrp.utils.time import add_months

CERTIFICATE = "https://certificates.test/brrp/0001"


@pytest_asyncio.fixture
async def pending_record(session, emissions_record):
    return await initiate_verification(
        session, emissions_record, VerificationStandard.VERRA, "SCS Global Services"
    )


class TestInitiate:

    async def test_starts_pending(self, pending_record, emissions_record):
        assert pending_record.status == VerificationStatus.PENDING
        assert pending_record.emissions_record_id == emissions_record.id
        assert pending_record.certificate_url is None
        assert pending_record.next_verification_due == add_months(pending_record.verification_date, 6)

    @pytest.mark.parametrize("verifier", ["", "   "])
    async def test_verifier_required(self, session, emissions_record, verifier):
        with pytest.raises(ValidationError):
            await initiate_verification(session, emissions_record, VerificationStandard.VERRA, verifier)

    async def test_several_attempts_per_record(self, session, emissions_record, pending_record):
        await update_verification_status(session, pending_record, VerificationStatus.REJECTED)
        second = await initiate_verification(
            session, emissions_record, VerificationStandard.GOLD_STANDARD, "Earthood"
        )

        attempts = await get_verifications_for_emissions(session, emissions_record.id)
        assert [r.id for r in attempts] == [pending_record.id, second.id]


class TestTransitions:
    """PENDING -> IN_PROGRESS -> VERIFIED, with REJECTED from either open state."""

    async def test_happy_path(self, session, pending_record):
        record = await update_verification_status(session, pending_record, VerificationStatus.IN_PROGRESS)
        assert record.status == VerificationStatus.IN_PROGRESS

        record = await update_verification_status(
            session, record, VerificationStatus.VERIFIED, certificate_url=CERTIFICATE, notes="Site visit done"
        )
        assert record.status == VerificationStatus.VERIFIED
        assert record.certificate_url == CERTIFICATE
        assert record.notes == "Site visit done"
        assert record.next_verification_due == add_months(record.verification_date, 6)

    async def test_cannot_skip_in_progress(self, session, pending_record):
        with pytest.raises(InvalidTransition):
            await update_verification_status(
                session, pending_record, VerificationStatus.VERIFIED, certificate_url=CERTIFICATE
            )

    async def test_pending_can_be_rejected(self, session, pending_record):
        record = await update_verification_status(session, pending_record, VerificationStatus.REJECTED)
        assert record.status == VerificationStatus.REJECTED

    async def test_in_progress_can_be_rejected(self, session, pending_record):
        await update_verification_status(session, pending_record, VerificationStatus.IN_PROGRESS)
        record = await update_verification_status(
            session, pending_record, VerificationStatus.REJECTED, notes="Meter calibration lapsed"
        )
        assert record.status == VerificationStatus.REJECTED

    async def test_verified_requires_certificate(self, session, pending_record):
        await update_verification_status(session, pending_record, VerificationStatus.IN_PROGRESS)

        with pytest.raises(MissingCertificate):
            await update_verification_status(session, pending_record, VerificationStatus.VERIFIED)

        assert pending_record.status == VerificationStatus.IN_PROGRESS

    async def test_certificate_only_when_verifying(self, session, pending_record):
        with pytest.raises(ValidationError):
            await update_verification_status(
                session, pending_record, VerificationStatus.IN_PROGRESS, certificate_url=CERTIFICATE
            )

    @pytest.mark.parametrize("target", list(VerificationStatus))
    async def test_verified_is_terminal(self, session, verified_record, target):
        with pytest.raises(InvalidTransition):
            await update_verification_status(session, verified_record, target, certificate_url=CERTIFICATE)

    @pytest.mark.parametrize("target", list(VerificationStatus))
    async def test_rejected_is_terminal(self, session, pending_record, target):
        await update_verification_status(session, pending_record, VerificationStatus.REJECTED)

        with pytest.raises(InvalidTransition):
            await update_verification_status(session, pending_record, target)

    async def test_stale_record_loses_race(self, session, session_factory, pending_record):
        async with session_factory() as other:
            stale = await get_verification_record(other, pending_record.id)
            await other.commit()

            await update_verification_status(session, pending_record, VerificationStatus.REJECTED)

            with pytest.raises(InvalidTransition):
                await update_verification_status(other, stale, VerificationStatus.IN_PROGRESS)

            assert stale.status == VerificationStatus.REJECTED

    async def test_losing_session_keeps_its_records(self, session, session_factory, pending_record):
        async with session_factory() as other:
            stale = await get_verification_record(other, pending_record.id)
            record = await get_emissions_record(other, pending_record.emissions_record_id)
            await other.commit()

            await update_verification_status(session, pending_record, VerificationStatus.IN_PROGRESS)

            with pytest.raises(InvalidTransition):
                await update_verification_status(other, stale, VerificationStatus.REJECTED)

            assert record.co2_equivalent == pytest.approx(45.714)
            assert stale.status == VerificationStatus.IN_PROGRESS

    async def test_transitions_audited(self, session, verified_record):
        trail = await get_audit_trail(session, "verification_record", verified_record.id)
        assert [a.action for a in trail] == [
            "verification_initiated",
            "verification_status_changed",
            "verification_status_changed",
        ]


class TestScheduling:
    """Bi-annual re-verification."""

    async def test_due_after_six_months(self, verified_record):
        due = verified_record.next_verification_due

        assert not is_verification_due(verified_record, due - timedelta(seconds=1))
        assert is_verification_due(verified_record, due)
        assert is_verification_due(verified_record, due + timedelta(days=30))

    async def test_list_due(self, session, verified_record):
        due = verified_record.next_verification_due

        assert await list_due_verifications(session, due - timedelta(days=1)) == []
        found = await list_due_verifications(session, due + timedelta(days=1))
        assert [r.id for r in found] == [verified_record.id]

    def test_add_months_clamps_day(self):
        assert add_months(datetime(2025, 8, 31), 6) == datetime(2026, 2, 28)
        assert add_months(datetime(2023, 8, 31), 6) == datetime(2024, 2, 29)
        assert add_months(datetime(2025, 1, 15, 9, 30), 6) == datetime(2025, 7, 15, 9, 30)


class TestRequirementsAndReports:

    @pytest.mark.parametrize("standard", list(VerificationStandard))
    def test_requirements_listed(self, standard):
        requirements = get_verification_requirements(standard)
        assert len(requirements) == 6

    def test_requirements_are_copies(self):
        get_verification_requirements(VerificationStandard.VERRA).clear()
        assert get_verification_requirements(VerificationStandard.VERRA)

    async def test_validate_verified_record(self, verified_record):
        result = validate_verification_record(verified_record, now=verified_record.verification_date)
        assert result == {"valid": True, "errors": []}

    async def test_validate_flags_overdue(self, verified_record):
        later = verified_record.next_verification_due + timedelta(days=1)
        result = validate_verification_record(verified_record, now=later)

        assert not result["valid"]
        assert len(result["errors"]) == 1

    async def test_report(self, verified_record, emissions_record):
        report = generate_verification_report(verified_record, emissions_record)

        assert report["status"] == "VERIFIED"
        assert report["standard"] == "TOITU_EKOS"
        assert report["certificate_url"] == "https://certificates.test/brrp/0001"
        assert report["emissions_summary"]["co2_equivalent"] == emissions_record.co2_equivalent
        assert len(report["requirements"]) == 6

    async def test_missing_record(self, session):
        with pytest.raises(NotFoundError):
            await get_verification_record(session, 404)


class TestWWTPCompliance:
    """Treatment plant standards and inspection currency."""

    def test_recently_inspected_plant(self):
        result = get_wwtp_compliance("auckland-wwtp", now=datetime(2024, 6, 1))

        assert result["compliant"]
        assert result["standards"] == ["ISO 14001", "ISO 50001", "NZ Water & Waste"]
        assert result["last_inspection"] == datetime(2024, 1, 15)

    def test_plant_name_normalised(self):
        result = get_wwtp_compliance("Wellington WWTP", now=datetime(2024, 6, 1))
        assert result["compliant"]

    def test_inspection_lapsed(self):
        result = get_wwtp_compliance("auckland-wwtp", now=datetime(2025, 1, 16))

        assert not result["compliant"]
        assert result["standards"]

    def test_inspection_exactly_a_year_old(self):
        assert get_wwtp_compliance("auckland-wwtp", now=datetime(2025, 1, 15))["compliant"]

    def test_unknown_plant(self):
        assert get_wwtp_compliance("nelson-wwtp") == {
            "compliant": False,
            "standards": [],
            "last_inspection": None,
        }
