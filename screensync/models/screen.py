import uuid
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from screensync.db import Base, utcnow


class Screen(Base):
    __tablename__ = "screen"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code = Column(String(32), nullable=True, unique=True)
    name = Column(String, nullable=False)
    location_id = Column(String(36), ForeignKey("location.id"), nullable=True)
    device_id = Column(String(64), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    status = Column(String(16), nullable=False, default="unknown")
    last_seen_at = Column(DateTime, nullable=True)
    playlist_id = Column(String(64), nullable=True)
    last_push_at = Column(DateTime, nullable=True)
    last_push_result = Column(String(16), nullable=True)
    last_push_error = Column(Text, nullable=True)
    last_verify_at = Column(DateTime, nullable=True)
    last_verify_result = Column(String(16), nullable=True)
    last_verify_error = Column(Text, nullable=True)
    screenshot_url = Column(Text, nullable=True)
    screenshot_byte_size = Column(Integer, nullable=True)
    screenshot_hash = Column(String(64), nullable=True)
    screenshot_last_ok_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
