from app.core.models.gas_station import GasStation
from app.core.models.pump import ExpectedChildTag, Pump
from app.core.models.verification_session import ScannedChildTag, VerificationSession
from app.core.models.audit_log import AuditLog

__all__ = [
    "AuditLog",
    "ExpectedChildTag",
    "GasStation",
    "Pump",
    "ScannedChildTag",
    "VerificationSession",
]
