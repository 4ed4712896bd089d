from datetime import timedelta

import sqlalchemy as sa
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import get_current_session, get_entitlement_store
from app.core.config import settings
from app.core.security import now_utc
from app.db.session import get_db
from app.schemas.entitlements import (
    CouponCreateIn,
    CouponOut,
    EntitlementSimulateIn,
    EntitlementStatusOut,
    SubscriptionOut,
)
from app.services.audit import audit
from app.services.coupons import canonicalize_code
from app.services.entitlements import describe
from app.services.sessions import Session as AuthSession
from app.services.subscriptions import CollaboratorFailure, SqlEntitlementStore

router = APIRouter()


def _status_out(store: SqlEntitlementStore, user_id: str) -> EntitlementStatusOut:
    record = store.get_subscription(user_id)
    status = describe(record, now_utc())
    subscription = None
    if record is not None:
        subscription = SubscriptionOut(
            trial_start=record.trial_start,
            trial_end=record.trial_end,
            subscription_end=record.subscription_end,
            is_active=record.is_active,
            updated_at=record.updated_at,
        )
    return EntitlementStatusOut(
        access=status.access.value,
        source=status.source,
        access_until=status.access_until,
        days_remaining=status.days_remaining,
        subscription=subscription,
    )


@router.get("/me", response_model=EntitlementStatusOut)
def my_entitlement(
    session: AuthSession = Depends(get_current_session),
    store: SqlEntitlementStore = Depends(get_entitlement_store),
):
    try:
        return _status_out(store, session.user_id)
    except CollaboratorFailure:
        raise HTTPException(503, "Something went wrong, try again")


@router.post("/me/simulate", response_model=EntitlementStatusOut)
def simulate_subscription(
    payload: EntitlementSimulateIn,
    session: AuthSession = Depends(get_current_session),
    store: SqlEntitlementStore = Depends(get_entitlement_store),
    db: Session = Depends(get_db),
):
    if settings.ENV != "dev":
        raise HTTPException(404, "Not available")

    now = now_utc()
    subscription_end = None
    if payload.subscription_end_offset_days is not None:
        subscription_end = now + timedelta(days=payload.subscription_end_offset_days)
    trial_end = now + timedelta(days=payload.trial_end_offset_days)

    db.execute(
        sa.text(
            """
            INSERT INTO user_subscriptions (user_id, trial_start, trial_end, subscription_end, is_active, updated_at)
            VALUES (:u, :trial_start, :trial_end, :subscription_end, :is_active, :now)
            ON CONFLICT (user_id) DO UPDATE
            SET trial_start=:trial_start,
                trial_end=:trial_end,
                subscription_end=:subscription_end,
                is_active=:is_active,
                updated_at=:now
            """
        ),
        {
            "u": session.user_id,
            "trial_start": min(now, trial_end),
            "trial_end": trial_end,
            "subscription_end": subscription_end,
            "is_active": payload.is_active,
            "now": now,
        },
    )
    audit(
        db,
        session.user_id,
        "subscription",
        session.user_id,
        "subscription_simulated",
        payload.model_dump(),
    )
    out = _status_out(store, session.user_id)
    db.commit()
    return out


@router.post("/coupons", response_model=CouponOut)
def create_coupon(
    payload: CouponCreateIn,
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    if settings.ENV != "dev":
        raise HTTPException(404, "Not available")

    code = canonicalize_code(payload.code)
    if not code:
        raise HTTPException(400, "Coupon code is required")
    row = db.execute(
        sa.text(
            """
            INSERT INTO coupons (code, days, is_active, expires_at)
            VALUES (:code, :days, :is_active, :expires_at)
            ON CONFLICT (code) DO UPDATE
            SET days=:days,
                is_active=:is_active,
                expires_at=:expires_at
            RETURNING id::text AS id, code, days, is_active, expires_at
            """
        ),
        {"code": code, "days": payload.days, "is_active": payload.is_active, "expires_at": payload.expires_at},
    ).mappings().one()
    audit(db, session.user_id, "coupon", row["id"], "coupon_upserted", {"code": code, "days": payload.days})
    db.commit()
    return CouponOut(**row)
