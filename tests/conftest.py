"""
Pytest configuration and fixtures for the BRRP carbon engine test suite.

Every test gets its own SQLite file so async sessions from different
fixtures can see each other's commits.
"""

import itertools
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from typing import Any, Dict

import brrp.models  # noqa: F401  (registers every table on the metadata)
from brrp.core.errors import ExternalSyncError
from brrp.handlers.registry import BudgetValidation, RegistrySyncResult
from brrp.models.credit import CarbonCredit
from brrp.models.verification import VerificationStandard, VerificationStatus


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh async SQLite database with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'brrp-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test database."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    """Async database session."""
    async with session_factory() as session:
        yield session


# ============================================================================
# External Collaborators
# ============================================================================

class SequentialIdentifiers:
    """Deterministic identifier provider."""

    def __init__(self):
        self._counter = itertools.count(1)

    def token_id(self) -> str:
        return f"TEST-TOKEN-{next(self._counter):04d}"

    def blockchain_address(self, token_id: str) -> str:
        return f"0xaddr-{token_id}"

    def registry_id(self) -> str:
        return f"TEST-REG-{next(self._counter):04d}"

    def transaction_hash(self) -> str:
        return f"0xtx-{next(self._counter):04d}"


class StubBudgetValidator:
    """National budget validator with a canned answer."""

    def __init__(self, valid: bool = True, fail: bool = False):
        self.valid = valid
        self.fail = fail
        self.calls = []

    async def validate(self, credit: CarbonCredit) -> BudgetValidation:
        self.calls.append(credit.token_id)
        if self.fail:
            raise ExternalSyncError("budget service unreachable")
        message = "Within national budget" if self.valid else "Budget exhausted"
        return BudgetValidation(valid=self.valid, message=message)


class StubRegistryClient:
    """Registry client that records synced tokens or fails."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.synced = []

    async def sync(self, credit: CarbonCredit) -> RegistrySyncResult:
        if self.fail:
            raise ExternalSyncError("registry returned 503")
        self.synced.append(credit.token_id)
        return RegistrySyncResult(success=True, registry_url=f"https://registry.test/{credit.registry_id}")


@pytest.fixture
def identifiers():
    return SequentialIdentifiers()


@pytest.fixture
def budget_validator():
    return StubBudgetValidator()


@pytest.fixture
def registry_client():
    return StubRegistryClient()


# ============================================================================
# Pipeline Fixtures
# ============================================================================

@pytest.fixture
def measurement_payload() -> Dict[str, Any]:
    """One day of readings from the Nelson demonstrator (camelCase wire format)."""
    return {
        "facilityId": "BRRP-NELSON",
        "timestamp": "2025-01-15T10:00:00Z",
        "wasteProcessed": 10.0,
        "methaneGenerated": 2600.0,
        "methaneDestroyed": 2485.0,
        "electricityProduced": 1200.0,
        "location": {"latitude": -41.2706, "longitude": 173.2840, "address": "Bell Island, Nelson"},
    }


@pytest_asyncio.fixture
async def ingested(session, measurement_payload):
    """(measurement, emissions record) for the sample payload."""
    from brrp.handlers.measurements import ingest_measurement
    return await ingest_measurement(session, measurement_payload)


@pytest.fixture
def emissions_record(ingested):
    return ingested[1]


@pytest_asyncio.fixture
async def verified_record(session, emissions_record):
    """Verification record taken through IN_PROGRESS to VERIFIED."""
    from brrp.handlers.verification import initiate_verification, update_verification_status

    record = await initiate_verification(
        session, emissions_record, VerificationStandard.TOITU_EKOS, "Toitū Envirocare"
    )
    await update_verification_status(session, record, VerificationStatus.IN_PROGRESS)
    return await update_verification_status(
        session, record, VerificationStatus.VERIFIED,
        certificate_url="https://certificates.test/brrp/0001"
    )


@pytest_asyncio.fixture
async def minted_credit(session, emissions_record, verified_record, identifiers):
    from brrp.handlers.credits import mint_credit
    return await mint_credit(session, emissions_record, verified_record, identifiers)


@pytest_asyncio.fixture
async def available_credit(session, minted_credit, budget_validator):
    """Budget-validated credit listed for sale."""
    from brrp.handlers.credits import make_available, validate_against_national_budget

    await validate_against_national_budget(session, minted_credit, budget_validator)
    return await make_available(session, minted_credit, market_value=25.0, currency="NZD")
