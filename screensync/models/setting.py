from sqlalchemy import Column, DateTime, String, Text
from screensync.db import Base, utcnow


class SystemSetting(Base):
    __tablename__ = "system_setting"
    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
