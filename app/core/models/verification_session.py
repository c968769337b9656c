"""
Verification sessions and the child tags scanned during them.
Both are written once per verification and never updated or deleted.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.core.time_utils import utcnow
from app.db.session import Base


class VerificationSession(Base):
    __tablename__ = "verification_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pump_id = Column(Integer, ForeignKey("pumps.id"), nullable=False, index=True)
    # Null for system scans
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    main_tag_scanned = Column(String(255), nullable=False)
    verification_result = Column(String(20), nullable=False)
    missing_tags_count = Column(Integer, nullable=False, default=0)
    unexpected_tags_count = Column(Integer, nullable=False, default=0)
    total_scanned = Column(Integer, nullable=False, default=0)
    result_message = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    pump = relationship("Pump", back_populates="verification_sessions")
    user = relationship("User")
    scanned_child_tags = relationship(
        "ScannedChildTag",
        back_populates="session",
        order_by="ScannedChildTag.scan_order",
        cascade="all, delete-orphan",
    )


class ScannedChildTag(Base):
    __tablename__ = "scanned_child_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        Integer, ForeignKey("verification_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tag_id = Column(String(255), nullable=False)
    scan_order = Column(Integer, nullable=False)  # 1-based, physical scan sequence
    is_expected = Column(Boolean, nullable=False)  # Snapshot against active expected tags at scan time

    session = relationship("VerificationSession", back_populates="scanned_child_tags")
