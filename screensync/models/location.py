import uuid
from sqlalchemy import Column, DateTime, String
from screensync.db import Base, utcnow

LAYOUT_MODE_LAYOUT = "LAYOUT"
LAYOUT_MODE_FALLBACK = "FALLBACK_SCHEDULE"


class Location(Base):
    __tablename__ = "location"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    combined_playlist_id = Column(String(64), nullable=True)
    layout_mode = Column(String(32), nullable=False, default=LAYOUT_MODE_FALLBACK)
    layout_id = Column(String(64), nullable=True)
    # Pre-combined-playlist installs pointed screens at this one directly.
    legacy_playlist_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=utcnow)
