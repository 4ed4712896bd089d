from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from app.core.security import as_utc
from app.services.subscriptions import SubscriptionRecord


class Access(str, Enum):
    ENTITLED = "entitled"
    NOT_ENTITLED = "not_entitled"


@dataclass(frozen=True)
class EntitlementStatus:
    access: Access
    source: str  # trial|subscription|none
    access_until: datetime | None
    days_remaining: int


def _within(now: datetime, until: datetime | None) -> bool:
    return until is not None and now <= until


def _paid_until(record: SubscriptionRecord) -> datetime | None:
    # is_active gates only the coupon window; the trial window ignores it.
    if not record.is_active:
        return None
    return as_utc(record.subscription_end)


def evaluate(record: SubscriptionRecord | None, now: datetime) -> Access:
    if record is None:
        return Access.NOT_ENTITLED
    now = as_utc(now)
    if _within(now, as_utc(record.trial_end)):
        return Access.ENTITLED
    if _within(now, _paid_until(record)):
        return Access.ENTITLED
    return Access.NOT_ENTITLED


def describe(record: SubscriptionRecord | None, now: datetime) -> EntitlementStatus:
    """Explain an evaluate() decision: which window grants access and until when.

    When both windows are open the later end wins, since that is how long the
    user keeps access without doing anything.
    """
    access = evaluate(record, now)
    if record is None or access is Access.NOT_ENTITLED:
        return EntitlementStatus(access=access, source="none", access_until=None, days_remaining=0)

    now = as_utc(now)
    candidates = []
    trial_end = as_utc(record.trial_end)
    if _within(now, trial_end):
        candidates.append(("trial", trial_end))
    paid_until = _paid_until(record)
    if _within(now, paid_until):
        candidates.append(("subscription", paid_until))
    source, until = max(candidates, key=lambda item: item[1])
    days = math.ceil((until - now).total_seconds() / 86400)
    return EntitlementStatus(access=access, source=source, access_until=until, days_remaining=max(days, 0))
