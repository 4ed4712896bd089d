from datetime import datetime

from pydantic import BaseModel, Field


class StoreSetupIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    address: str = Field(..., min_length=1, max_length=300)
    phone: str = Field(..., min_length=3, max_length=32)
    image_url: str | None = Field(default=None, max_length=1000)


class StoreOut(BaseModel):
    id: str
    user_id: str
    name: str
    address: str
    phone: str
    image_url: str | None = None
    created_at: datetime
    updated_at: datetime
