"""
Error taxonomy for the emissions-to-credit pipeline.

Every rejected operation raises one of these with a machine-readable
``kind`` and a human-readable ``detail``. Routes render them through the
exception handlers registered in ``main.py``.
"""

from typing import Any, Dict, List, Optional


class MRVError(Exception):
    """Base class for all pipeline errors."""

    kind = "MRVError"
    http_status = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "detail": self.detail}


class ValidationError(MRVError):
    """Malformed or out-of-range input, rejected before anything is stored."""

    kind = "ValidationError"
    http_status = 400

    def __init__(self, detail: str, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(detail)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["errors"] = self.errors
        return body


class NotFoundError(MRVError):
    kind = "NotFound"
    http_status = 404


class ImmutableRecordError(MRVError):
    """Raised when an append-only row is updated or deleted."""

    kind = "ImmutableRecord"
    http_status = 409


# State errors

class StateError(MRVError):
    """Operation not permitted from the entity's current state."""

    kind = "StateError"
    http_status = 409


class InvalidTransition(StateError):
    kind = "InvalidTransition"


class InvalidState(StateError):
    kind = "InvalidState"


class NotVerified(StateError):
    kind = "NotVerified"


class NotAvailable(StateError):
    kind = "NotAvailable"


class MissingCertificate(StateError):
    kind = "MissingCertificate"


class BudgetNotValidated(StateError):
    kind = "BudgetNotValidated"


# Duplicate errors

class DuplicateError(MRVError):
    """Uniqueness violation (second mint, second destruction)."""

    kind = "DuplicateError"
    http_status = 409


class DuplicateMint(DuplicateError):
    kind = "DuplicateMint"


class AlreadyDestroyed(StateError, DuplicateError):
    kind = "AlreadyDestroyed"


class ExternalSyncError(MRVError):
    """Registry sync or national budget validation failed."""

    kind = "ExternalSyncError"
    http_status = 502
