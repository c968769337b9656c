from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.core.enums import StationStatus
from app.core.time_utils import utcnow
from app.db.session import Base


class GasStation(Base):
    """Gas station owning a set of sealed pumps."""

    __tablename__ = "gas_stations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    location = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=StationStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    # Admin who last created/updated the station
    last_modified_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    last_verification_at = Column(DateTime(timezone=True), nullable=True)

    pumps = relationship("Pump", back_populates="station", order_by="Pump.pump_number")
    last_modifier = relationship("User", foreign_keys=[last_modified_by])
