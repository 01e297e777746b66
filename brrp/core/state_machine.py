"""
Transition tables for the verification and carbon credit lifecycles.

Verification:
    PENDING ──(start)──→ IN_PROGRESS ──(attest)──→ VERIFIED
       │                     │
       └──(cancel)──→ REJECTED ←──(reject)──┘

Carbon credit:
    MINTED ──(budget validated & listed)──→ AVAILABLE ──(sale)──→ SOLD
    SOLD ──(offset request)──→ OFFSET ──(destroy)──→ DESTROYED
"""

import logging
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Type

from brrp.core.errors import InvalidTransition, StateError
from brrp.models.credit import CreditStatus
from brrp.models.verification import VerificationStatus

logger = logging.getLogger(__name__)


class TransitionTable:
    """Allowed ``state -> {next states}`` edges for one lifecycle."""

    def __init__(self, name: str, edges: Dict[Enum, Iterable[Enum]]):
        self.name = name
        self._edges: Dict[Enum, FrozenSet[Enum]] = {
            state: frozenset(targets) for state, targets in edges.items()
        }

    def targets(self, current: Enum) -> FrozenSet[Enum]:
        return self._edges.get(current, frozenset())

    def can_transition(self, current: Enum, target: Enum) -> bool:
        return target in self.targets(current)

    def is_terminal(self, state: Enum) -> bool:
        return not self.targets(state)

    def sources(self, target: Enum) -> FrozenSet[Enum]:
        """States from which ``target`` is reachable in one step."""
        return frozenset(s for s, t in self._edges.items() if target in t)

    def require(
        self,
        current: Enum,
        target: Enum,
        error: Type[StateError] = InvalidTransition,
    ) -> None:
        """Raise ``error`` unless ``current -> target`` is an edge."""
        if not self.can_transition(current, target):
            logger.warning(
                "Rejected %s transition %s -> %s",
                self.name, current.value, target.value,
            )
            raise error(
                f"{self.name}: cannot move from {current.value} to {target.value}"
            )


VERIFICATION_TRANSITIONS = TransitionTable(
    "verification",
    {
        VerificationStatus.PENDING: {VerificationStatus.IN_PROGRESS, VerificationStatus.REJECTED},
        VerificationStatus.IN_PROGRESS: {VerificationStatus.VERIFIED, VerificationStatus.REJECTED},
        VerificationStatus.VERIFIED: set(),
        VerificationStatus.REJECTED: set(),
    },
)

CREDIT_TRANSITIONS = TransitionTable(
    "carbon_credit",
    {
        CreditStatus.MINTED: {CreditStatus.AVAILABLE},
        CreditStatus.AVAILABLE: {CreditStatus.SOLD},
        CreditStatus.SOLD: {CreditStatus.OFFSET},
        CreditStatus.OFFSET: {CreditStatus.DESTROYED},
        CreditStatus.DESTROYED: set(),
    },
)
