from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


OnboardingStateCode = Literal[
    "no_session",
    "session_no_subscription",
    "session_not_entitled",
    "session_entitled_no_store",
    "session_entitled_with_store",
]
RouteCode = Literal["sign_in", "coupon_prompt", "store_setup", "main"]


class RoutingStateOut(BaseModel):
    state: OnboardingStateCode
    route: RouteCode
    user_id: str | None = None
    evaluated_at: datetime | None = None


class CouponRedeemIn(BaseModel):
    code: str = Field(..., max_length=256, examples=["WELCOME30"])


class CouponRedeemOut(BaseModel):
    ok: bool = True
    code: str
    days: int
    subscription_end: datetime
    onboarding: RoutingStateOut
