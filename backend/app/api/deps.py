from collections.abc import Callable

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.onboarding import RoutingStateOut
from app.services.onboarding import OnboardingSequencer, OnboardingState, RoutingDecision
from app.services.sessions import BearerSessionAuth, Session as AuthSession
from app.services.subscriptions import SqlEntitlementStore

bearer = HTTPBearer(auto_error=False)


def routing_state_out(decision: RoutingDecision) -> RoutingStateOut:
    return RoutingStateOut(
        state=decision.state.value,
        route=decision.route,
        user_id=decision.user_id,
        evaluated_at=decision.evaluated_at,
    )


def get_auth(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> BearerSessionAuth:
    return BearerSessionAuth(db, creds.credentials if creds else None)


def get_entitlement_store(db: Session = Depends(get_db)) -> SqlEntitlementStore:
    return SqlEntitlementStore(db)


def get_sequencer(
    auth: BearerSessionAuth = Depends(get_auth),
    store: SqlEntitlementStore = Depends(get_entitlement_store),
) -> OnboardingSequencer:
    sequencer = OnboardingSequencer(auth, store)
    try:
        yield sequencer
    finally:
        sequencer.close()


def get_current_session(auth: BearerSessionAuth = Depends(get_auth)) -> AuthSession:
    session = auth.get_current_session()
    if session is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    return session


def _gate(sequencer: OnboardingSequencer, allowed: Callable[[RoutingDecision], bool]) -> RoutingDecision:
    decision = sequencer.start() or sequencer.current or RoutingDecision(OnboardingState.NO_SESSION)
    if decision.state is OnboardingState.NO_SESSION:
        raise HTTPException(status_code=401, detail=routing_state_out(decision).model_dump(mode="json"))
    if not allowed(decision):
        raise HTTPException(status_code=403, detail=routing_state_out(decision).model_dump(mode="json"))
    return decision


def require_entitled(sequencer: OnboardingSequencer = Depends(get_sequencer)) -> RoutingDecision:
    return _gate(sequencer, lambda decision: decision.is_entitled)


def require_main_app(sequencer: OnboardingSequencer = Depends(get_sequencer)) -> RoutingDecision:
    return _gate(sequencer, lambda decision: decision.may_enter_app)
