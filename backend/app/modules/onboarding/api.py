import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import get_current_session, get_sequencer, routing_state_out
from app.db.session import commit_or_rollback, get_db
from app.schemas.onboarding import CouponRedeemIn, CouponRedeemOut, RoutingStateOut
from app.services.audit import audit
from app.services.coupons import RejectReason, Rejected
from app.services.onboarding import OnboardingSequencer
from app.services.sessions import Session as AuthSession
from app.services.subscriptions import CollaboratorFailure

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/state", response_model=RoutingStateOut)
def onboarding_state(sequencer: OnboardingSequencer = Depends(get_sequencer), db: Session = Depends(get_db)):
    decision = sequencer.start() or sequencer.current
    commit_or_rollback(db)
    return routing_state_out(decision)


@router.post("/coupon", response_model=CouponRedeemOut)
def redeem_coupon(
    payload: CouponRedeemIn,
    session: AuthSession = Depends(get_current_session),
    sequencer: OnboardingSequencer = Depends(get_sequencer),
    db: Session = Depends(get_db),
):
    try:
        result = sequencer.submit_coupon(payload.code)
    except CollaboratorFailure:
        db.rollback()
        logger.exception("coupon redemption failed for user %s", session.user_id)
        raise HTTPException(503, "Something went wrong, try again")

    if isinstance(result, Rejected):
        db.rollback()
        status = 401 if result.reason is RejectReason.NO_SESSION else 422
        raise HTTPException(status, {"reason": result.reason.value, "message": result.message})

    audit(
        db,
        result.user_id,
        "subscription",
        result.user_id,
        "coupon_redeemed",
        {"code": result.code, "days": result.days, "subscription_end": result.subscription_end.isoformat()},
    )
    decision = sequencer.current or sequencer.run("coupon_redeemed")
    db.commit()
    return CouponRedeemOut(
        code=result.code,
        days=result.days,
        subscription_end=result.subscription_end,
        onboarding=routing_state_out(decision),
    )


@router.post("/sign-out", response_model=RoutingStateOut)
def sign_out(sequencer: OnboardingSequencer = Depends(get_sequencer), db: Session = Depends(get_db)):
    decision = sequencer.sign_out()
    if sequencer.sign_out_failed:
        db.rollback()
        raise HTTPException(503, "Could not sign out, try again")
    if not commit_or_rollback(db):
        raise HTTPException(503, "Could not sign out, try again")
    return routing_state_out(decision)
