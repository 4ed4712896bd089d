from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.security import as_utc


class CollaboratorFailure(RuntimeError):
    """The remote store could not answer; callers decide how to fail closed."""


@dataclass(frozen=True)
class SubscriptionRecord:
    user_id: str
    trial_start: datetime | None
    trial_end: datetime | None
    subscription_end: datetime | None = None
    is_active: bool = False
    updated_at: datetime | None = None


@dataclass(frozen=True)
class CouponRecord:
    id: str
    code: str
    days: int
    is_active: bool = True
    expires_at: datetime | None = None


class EntitlementStore(Protocol):
    def get_subscription(self, user_id: str) -> SubscriptionRecord | None: ...

    def store_exists(self, user_id: str) -> bool: ...

    def find_active_coupon(self, code: str) -> CouponRecord | None: ...

    def extend_subscription(self, user_id: str, subscription_end: datetime, now: datetime) -> bool: ...

    def provision_trial(self, user_id: str, now: datetime, days: int) -> SubscriptionRecord: ...

    def record_redemption(
        self,
        *,
        user_id: str,
        coupon: CouponRecord,
        previous_end: datetime | None,
        new_end: datetime,
        now: datetime,
    ) -> None: ...


_SUBSCRIPTION_SELECT = """
    SELECT
        user_id::text AS user_id,
        trial_start,
        trial_end,
        subscription_end,
        is_active,
        updated_at
    FROM user_subscriptions
    WHERE user_id=:u
"""


def _subscription_from_row(row) -> SubscriptionRecord:
    return SubscriptionRecord(
        user_id=row["user_id"],
        trial_start=as_utc(row["trial_start"]),
        trial_end=as_utc(row["trial_end"]),
        subscription_end=as_utc(row["subscription_end"]),
        is_active=bool(row["is_active"]),
        updated_at=as_utc(row["updated_at"]),
    )


class SqlEntitlementStore:
    """EntitlementStore backed by the user_subscriptions, stores and coupons tables.

    Writes are left uncommitted; the request that owns the session commits or
    rolls back, which keeps a redemption all-or-nothing.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_subscription(self, user_id: str) -> SubscriptionRecord | None:
        try:
            row = self.db.execute(sa.text(_SUBSCRIPTION_SELECT), {"u": user_id}).mappings().first()
        except SQLAlchemyError as exc:
            raise CollaboratorFailure("subscription lookup failed") from exc
        if not row:
            return None
        return _subscription_from_row(row)

    def store_exists(self, user_id: str) -> bool:
        try:
            row = self.db.execute(sa.text("""
                SELECT 1 FROM stores WHERE user_id=:u
            """), {"u": user_id}).first()
        except SQLAlchemyError as exc:
            raise CollaboratorFailure("store lookup failed") from exc
        return row is not None

    def find_active_coupon(self, code: str) -> CouponRecord | None:
        try:
            row = self.db.execute(sa.text("""
                SELECT id::text AS id, code, days, is_active, expires_at
                FROM coupons
                WHERE code=:c AND is_active=true
            """), {"c": code}).mappings().first()
        except SQLAlchemyError as exc:
            raise CollaboratorFailure("coupon lookup failed") from exc
        if not row:
            return None
        return CouponRecord(
            id=row["id"],
            code=row["code"],
            days=int(row["days"]),
            is_active=bool(row["is_active"]),
            expires_at=as_utc(row["expires_at"]),
        )

    def extend_subscription(self, user_id: str, subscription_end: datetime, now: datetime) -> bool:
        # Unconditional overwrite: no compare-and-swap on updated_at, last writer wins.
        try:
            result = self.db.execute(sa.text("""
                UPDATE user_subscriptions
                SET subscription_end=:end,
                    is_active=true,
                    updated_at=:now
                WHERE user_id=:u
            """), {"u": user_id, "end": subscription_end, "now": now})
        except SQLAlchemyError as exc:
            raise CollaboratorFailure("subscription update failed") from exc
        return bool(result.rowcount)

    def provision_trial(self, user_id: str, now: datetime, days: int) -> SubscriptionRecord:
        try:
            self.db.execute(sa.text("""
                INSERT INTO user_subscriptions (user_id, trial_start, trial_end, is_active, updated_at)
                VALUES (:u, :start, :end, false, :start)
                ON CONFLICT (user_id) DO NOTHING
            """), {"u": user_id, "start": now, "end": now + timedelta(days=days)})
            row = self.db.execute(sa.text(_SUBSCRIPTION_SELECT), {"u": user_id}).mappings().first()
        except SQLAlchemyError as exc:
            raise CollaboratorFailure("trial provisioning failed") from exc
        if not row:
            raise CollaboratorFailure("trial provisioning left no subscription row")
        return _subscription_from_row(row)

    def record_redemption(
        self,
        *,
        user_id: str,
        coupon: CouponRecord,
        previous_end: datetime | None,
        new_end: datetime,
        now: datetime,
    ) -> None:
        try:
            self.db.execute(sa.text("""
                INSERT INTO coupon_redemptions (
                    user_id,
                    coupon_id,
                    code,
                    days,
                    previous_subscription_end,
                    new_subscription_end,
                    redeemed_at
                )
                VALUES (:u, :coupon_id, :code, :days, :prev, :new_end, :now)
            """), {
                "u": user_id,
                "coupon_id": coupon.id,
                "code": coupon.code,
                "days": coupon.days,
                "prev": previous_end,
                "new_end": new_end,
                "now": now,
            })
        except SQLAlchemyError as exc:
            raise CollaboratorFailure("redemption ledger insert failed") from exc
