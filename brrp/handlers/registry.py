"""
National carbon budget and Open Earth registry integrations.

Both are advisory: failures are reported as ExternalSyncError and never roll
back a credit's lifecycle state.
"""

import httpx
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from brrp.core.config import get_settings
from brrp.core.errors import ExternalSyncError
from brrp.models.credit import CarbonCredit

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass
class BudgetValidation:
    valid: bool
    message: str


@dataclass
class RegistrySyncResult:
    success: bool
    registry_url: str


class NationalBudgetValidator(Protocol):
    """Checks a credit against the Nationally Determined Contribution budget."""

    async def validate(self, credit: CarbonCredit) -> BudgetValidation: ...


class RegistryClient(Protocol):
    """Publishes a credit to the global registry."""

    async def sync(self, credit: CarbonCredit) -> RegistrySyncResult: ...


def credit_payload(credit: CarbonCredit) -> Dict[str, Any]:
    """Wire representation of a credit for external systems."""
    return {
        "tokenId": credit.token_id,
        "registryId": credit.registry_id,
        "blockchainAddress": credit.blockchain_address,
        "units": credit.units,
        "status": credit.status.value,
        "mintedAt": credit.minted_at.isoformat(),
    }


async def _post_json(
    url: str,
    payload: Dict[str, Any],
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Dict[str, Any]:
    """POST a JSON payload and return the decoded response, mapping failures to ExternalSyncError."""
    try:
        async with httpx.AsyncClient(
            timeout=settings.external_timeout_seconds,
            transport=transport
        ) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            return response.json() if response.content else {}
    except httpx.HTTPError as e:
        raise ExternalSyncError(f"Request to {url} failed: {e}")
    except ValueError as e:
        raise ExternalSyncError(f"Invalid JSON from {url}: {e}")


class HttpNationalBudgetValidator:
    """
    Validator backed by a government budget API.

    POST {base_url}/validate {"registryId", "tokenId", "units"} -> {"valid", "message"}
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        base_url = base_url or settings.national_budget_url
        if not base_url:
            raise ExternalSyncError("NATIONAL_BUDGET_URL is not configured")
        self.base_url = base_url.rstrip("/")
        self.transport = transport

    async def validate(self, credit: CarbonCredit) -> BudgetValidation:
        data = await _post_json(
            f"{self.base_url}/validate",
            {
                "registryId": credit.registry_id,
                "tokenId": credit.token_id,
                "units": credit.units,
            },
            self.transport
        )
        return BudgetValidation(
            valid=bool(data.get("valid", False)),
            message=str(data.get("message", ""))
        )


class OpenEarthRegistryClient:
    """
    Client for the Open Earth global registry.

    POST {base_url}/credits <credit payload> -> {"registryUrl"}
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.registry_base_url).rstrip("/")
        self.transport = transport

    async def sync(self, credit: CarbonCredit) -> RegistrySyncResult:
        data = await _post_json(f"{self.base_url}/credits", credit_payload(credit), self.transport)
        registry_url = data.get("registryUrl") or f"{self.base_url}/registry/{credit.registry_id}"
        return RegistrySyncResult(success=True, registry_url=registry_url)
