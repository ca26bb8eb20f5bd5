from pydantic import BaseModel, Field

class BaselineIn(BaseModel):
    playlist_id: str = Field(..., min_length=1)
