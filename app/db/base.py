# Import every model so Base.metadata is complete for create_all and the mapper registry.
from app.auth.models import AuthToken, User  # noqa: F401
from app.core.models import (  # noqa: F401
    AuditLog,
    ExpectedChildTag,
    GasStation,
    Pump,
    ScannedChildTag,
    VerificationSession,
)
from app.db.session import Base  # noqa: F401
