"""
Pump and its expected child (seal) tags. station_id is fixed at creation;
expected tags are deactivated rather than deleted so old sessions stay explainable.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.enums import PumpStatus
from app.core.time_utils import utcnow
from app.db.session import Base


class Pump(Base):
    __tablename__ = "pumps"
    __table_args__ = (
        UniqueConstraint("station_id", "pump_number", name="uq_pump_station_number"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    station_id = Column(Integer, ForeignKey("gas_stations.id"), nullable=False, index=True)
    pump_number = Column(Integer, nullable=False)
    main_rfid_tag = Column(String(255), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default=PumpStatus.LOCKED.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    station = relationship("GasStation", back_populates="pumps")
    expected_child_tags = relationship(
        "ExpectedChildTag",
        back_populates="pump",
        order_by="ExpectedChildTag.id",
        cascade="all, delete-orphan",
    )
    verification_sessions = relationship("VerificationSession", back_populates="pump")


class ExpectedChildTag(Base):
    __tablename__ = "expected_child_tags"
    __table_args__ = (
        UniqueConstraint("pump_id", "tag_id", name="uq_expected_tag_pump_tag"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    pump_id = Column(Integer, ForeignKey("pumps.id", ondelete="CASCADE"), nullable=False, index=True)
    tag_id = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    pump = relationship("Pump", back_populates="expected_child_tags")
