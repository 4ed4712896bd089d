from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class SubscriptionOut(BaseModel):
    trial_start: datetime | None = None
    trial_end: datetime | None = None
    subscription_end: datetime | None = None
    is_active: bool = False
    updated_at: datetime | None = None


class EntitlementStatusOut(BaseModel):
    access: Literal["entitled", "not_entitled"]
    source: Literal["trial", "subscription", "none"]
    access_until: datetime | None = None
    days_remaining: int = 0
    subscription: SubscriptionOut | None = None


class EntitlementSimulateIn(BaseModel):
    trial_end_offset_days: int = Field(default=0, ge=-3650, le=3650)
    subscription_end_offset_days: int | None = Field(default=None, ge=-3650, le=3650)
    is_active: bool = False


class CouponCreateIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    days: int = Field(..., ge=0, le=3650)
    is_active: bool = True
    expires_at: datetime | None = None


class CouponOut(BaseModel):
    id: str
    code: str
    days: int
    is_active: bool
    expires_at: datetime | None = None
