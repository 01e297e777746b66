"""
Opaque identifier generation for minted credits and ledger entries.

Stands in for the external signer/registry. Only uniqueness matters; the
formats are cosmetic and belong to the external systems.
"""

import secrets
import time
from typing import Protocol

from brrp.core.config import get_settings


class IdentifierProvider(Protocol):
    """Capability that issues opaque identifiers."""

    def token_id(self) -> str: ...

    def blockchain_address(self, token_id: str) -> str: ...

    def registry_id(self) -> str: ...

    def transaction_hash(self) -> str: ...


class RandomIdentifierProvider:
    """Default provider backed by ``secrets``."""

    def __init__(self, token_prefix: str | None = None, registry_prefix: str | None = None):
        settings = get_settings()
        self.token_prefix = token_prefix or settings.token_prefix
        self.registry_prefix = registry_prefix or settings.registry_prefix

    @staticmethod
    def _stamp() -> int:
        return time.time_ns() // 1_000_000

    def token_id(self) -> str:
        return f"{self.token_prefix}-{self._stamp()}-{secrets.token_hex(6).upper()}"

    def blockchain_address(self, token_id: str) -> str:
        return f"0x{secrets.token_hex(20)}"

    def registry_id(self) -> str:
        return f"{self.registry_prefix}-{self._stamp()}-{secrets.token_hex(6).upper()}"

    def transaction_hash(self) -> str:
        return f"0x{secrets.token_hex(32)}"
