from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from app.core.config import settings
from app.core.security import as_utc
from app.services.sessions import AuthProvider
from app.services.subscriptions import CouponRecord, EntitlementStore

logger = logging.getLogger(__name__)


class RejectReason(str, Enum):
    EMPTY_CODE = "empty_code"
    INVALID_OR_EXPIRED = "invalid_or_expired"
    NO_SESSION = "no_session"
    NO_SUBSCRIPTION = "no_subscription"


REJECT_MESSAGES = {
    RejectReason.EMPTY_CODE: "Please enter a coupon code",
    RejectReason.INVALID_OR_EXPIRED: "Invalid or expired coupon code",
    RejectReason.NO_SESSION: "Sign in to redeem a coupon",
    RejectReason.NO_SUBSCRIPTION: "No subscription found for this account",
}

MAX_COUPON_DAYS = 3650


@dataclass(frozen=True)
class ExtendedUntil:
    subscription_end: datetime
    code: str
    days: int
    user_id: str


@dataclass(frozen=True)
class Rejected:
    reason: RejectReason

    @property
    def message(self) -> str:
        return REJECT_MESSAGES[self.reason]


RedemptionResult = ExtendedUntil | Rejected


def canonicalize_code(raw: str | None) -> str:
    return (raw or "").strip().upper()


def _is_redeemable(coupon: CouponRecord, now: datetime, enforce_expiry: bool) -> bool:
    if not coupon.is_active or coupon.days < 0:
        return False
    expires_at = as_utc(coupon.expires_at)
    if enforce_expiry and expires_at is not None and now > expires_at:
        return False
    return True


def redeem(
    store: EntitlementStore,
    auth: AuthProvider,
    raw_code: str | None,
    now: datetime,
    *,
    enforce_expiry: bool | None = None,
) -> RedemptionResult:
    """Exchange a coupon code for a new subscription_end.

    The new end is always now + coupon.days and replaces any previous value;
    remaining days from an earlier redemption are not carried over. The same
    code can be redeemed any number of times. CollaboratorFailure from the
    store propagates so the caller can roll back.
    """
    if enforce_expiry is None:
        enforce_expiry = settings.COUPON_ENFORCE_EXPIRY
    now = as_utc(now)

    code = canonicalize_code(raw_code)
    if not code:
        return Rejected(RejectReason.EMPTY_CODE)
    if len(code) > settings.COUPON_CODE_MAX_LENGTH:
        return Rejected(RejectReason.INVALID_OR_EXPIRED)

    coupon = store.find_active_coupon(code)
    if coupon is None or not _is_redeemable(coupon, now, enforce_expiry):
        logger.info("coupon %s rejected: not found, inactive or expired", code)
        return Rejected(RejectReason.INVALID_OR_EXPIRED)

    session = auth.get_current_session()
    if session is None:
        return Rejected(RejectReason.NO_SESSION)

    try:
        new_end = now + timedelta(days=coupon.days)
    except OverflowError:
        logger.warning("coupon %s grants %s days, past the representable date range", code, coupon.days)
        return Rejected(RejectReason.INVALID_OR_EXPIRED)

    previous = store.get_subscription(session.user_id)
    if not store.extend_subscription(session.user_id, new_end, now):
        logger.warning("coupon %s redeemed by user %s without a subscription row", code, session.user_id)
        return Rejected(RejectReason.NO_SUBSCRIPTION)

    store.record_redemption(
        user_id=session.user_id,
        coupon=coupon,
        previous_end=previous.subscription_end if previous else None,
        new_end=new_end,
        now=now,
    )
    logger.info("coupon %s redeemed by user %s, access until %s", code, session.user_id, new_end.isoformat())
    return ExtendedUntil(subscription_end=new_end, code=code, days=coupon.days, user_id=session.user_id)
