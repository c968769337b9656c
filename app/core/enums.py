from enum import Enum


class StationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    MAINTENANCE = "MAINTENANCE"


class PumpStatus(str, Enum):
    LOCKED = "LOCKED"
    OPEN = "OPEN"
    BROKEN = "BROKEN"


class VerificationResult(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    ERROR = "ERROR"


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class AuditEntityType(str, Enum):
    STATION = "STATION"
    PUMP = "PUMP"
    USER = "USER"
    VERIFICATION = "VERIFICATION"


ADMIN_ROLES = (UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value)
