from pydantic import BaseModel, Field
from datetime import datetime

class ScreenCreateIn(BaseModel):
    name: str = Field(..., min_length=1)
    code: str | None = None
    location_id: str | None = None
    device_id: str | None = None

class ScreenLinkIn(BaseModel):
    device_id: str = Field(..., min_length=1)

class ScreenOut(BaseModel):
    id: str
    code: str | None = None
    name: str
    location_id: str | None = None
    device_id: str | None = None
    is_active: bool = True
    status: str
    last_seen_at: datetime | None = None
    playlist_id: str | None = None
    last_push_at: datetime | None = None
    last_push_result: str | None = None
    last_verify_at: datetime | None = None
    last_verify_result: str | None = None
    screenshot_url: str | None = None
    screenshot_byte_size: int | None = None
    screenshot_last_ok_at: datetime | None = None

    class Config:
        from_attributes = True
