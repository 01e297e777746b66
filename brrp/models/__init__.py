# SQLModel database models

from brrp.models.measurement import Measurement
from brrp.models.emissions import EmissionsRecord
from brrp.models.verification import VerificationRecord
from brrp.models.credit import CarbonCredit
from brrp.models.transaction import Transaction
from brrp.models.audit import AuditChainHead, AuditLog

__all__ = [
    "Measurement",
    "EmissionsRecord",
    "VerificationRecord",
    "CarbonCredit",
    "Transaction",
    "AuditLog",
    "AuditChainHead",
]
