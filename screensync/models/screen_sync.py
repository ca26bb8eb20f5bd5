import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from screensync.db import Base, utcnow


class ScreenSyncState(Base):
    __tablename__ = "screen_sync_state"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    screen_id = Column(String(36), ForeignKey("screen.id"), nullable=False, unique=True)
    last_action = Column(String(16), nullable=True)
    ok = Column(Boolean, nullable=False, default=False)
    error_reason = Column(String(64), nullable=True)
    playlist_id = Column(String(64), nullable=True)
    baseline_count = Column(Integer, nullable=False, default=0)
    ads_count = Column(Integer, nullable=False, default=0)
    item_count = Column(Integer, nullable=False, default=0)
    verified = Column(Boolean, nullable=False, default=False)
    mismatch = Column(Boolean, nullable=False, default=False)
    logs_json = Column(Text, nullable=True)
    proof_status = Column(String(16), nullable=True)
    proof_reason = Column(String(32), nullable=True)
    proof_checked_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
