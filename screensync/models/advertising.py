import uuid
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from screensync.db import Base, utcnow


class Advertiser(Base):
    __tablename__ = "advertiser"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class Contract(Base):
    __tablename__ = "contract"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    advertiser_id = Column(String(36), ForeignKey("advertiser.id"), nullable=False)
    status = Column(String(16), nullable=False, default="draft")
    created_at = Column(DateTime, default=utcnow)


class Placement(Base):
    __tablename__ = "placement"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    screen_id = Column(String(36), ForeignKey("screen.id"), nullable=False)
    contract_id = Column(String(36), ForeignKey("contract.id"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)


class AdAsset(Base):
    __tablename__ = "ad_asset"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    advertiser_id = Column(String(36), ForeignKey("advertiser.id"), nullable=False)
    file_name = Column(String, nullable=True)
    remote_media_id = Column(Integer, nullable=True)
    approval_status = Column(String(16), nullable=False, default="PENDING")
    duration_sec = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)
