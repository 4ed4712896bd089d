from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from app.core.config import settings
from app.core.security import now_utc
from app.services.coupons import ExtendedUntil, RedemptionResult, redeem
from app.services.entitlements import Access, evaluate
from app.services.sessions import AuthProvider, Session
from app.services.subscriptions import EntitlementStore

logger = logging.getLogger(__name__)

POLICY_DENY = "deny"
POLICY_PROVISION_TRIAL = "provision_trial"
_VALID_POLICIES = {POLICY_DENY, POLICY_PROVISION_TRIAL}


class OnboardingState(str, Enum):
    NO_SESSION = "no_session"
    SESSION_NO_SUBSCRIPTION = "session_no_subscription"
    SESSION_NOT_ENTITLED = "session_not_entitled"
    SESSION_ENTITLED_NO_STORE = "session_entitled_no_store"
    SESSION_ENTITLED_WITH_STORE = "session_entitled_with_store"


ROUTES = {
    OnboardingState.NO_SESSION: "sign_in",
    OnboardingState.SESSION_NO_SUBSCRIPTION: "sign_in",
    OnboardingState.SESSION_NOT_ENTITLED: "coupon_prompt",
    OnboardingState.SESSION_ENTITLED_NO_STORE: "store_setup",
    OnboardingState.SESSION_ENTITLED_WITH_STORE: "main",
}


@dataclass(frozen=True)
class RoutingDecision:
    state: OnboardingState
    user_id: str | None = None
    evaluated_at: datetime | None = None

    @property
    def route(self) -> str:
        return ROUTES[self.state]

    @property
    def is_entitled(self) -> bool:
        return self.state in {
            OnboardingState.SESSION_ENTITLED_NO_STORE,
            OnboardingState.SESSION_ENTITLED_WITH_STORE,
        }

    @property
    def may_enter_app(self) -> bool:
        return self.state is OnboardingState.SESSION_ENTITLED_WITH_STORE


def normalize_missing_policy(raw: str | None) -> str:
    value = (raw or POLICY_DENY).strip().lower()
    return value if value in _VALID_POLICIES else POLICY_DENY


def _resolve(
    auth: AuthProvider,
    store: EntitlementStore,
    now: datetime,
    policy: str,
    trial_days: int,
) -> RoutingDecision:
    session: Session | None = auth.get_current_session()
    if session is None:
        return RoutingDecision(OnboardingState.NO_SESSION, evaluated_at=now)
    user_id = session.user_id

    record = store.get_subscription(user_id)
    if record is None:
        if policy != POLICY_PROVISION_TRIAL:
            return RoutingDecision(OnboardingState.SESSION_NO_SUBSCRIPTION, user_id, now)
        record = store.provision_trial(user_id, now, trial_days)
        logger.info("provisioned %s-day trial for user %s", trial_days, user_id)

    if evaluate(record, now) is Access.NOT_ENTITLED:
        return RoutingDecision(OnboardingState.SESSION_NOT_ENTITLED, user_id, now)

    if not store.store_exists(user_id):
        return RoutingDecision(OnboardingState.SESSION_ENTITLED_NO_STORE, user_id, now)
    return RoutingDecision(OnboardingState.SESSION_ENTITLED_WITH_STORE, user_id, now)


def resolve_onboarding(
    auth: AuthProvider,
    store: EntitlementStore,
    now: datetime | None = None,
    *,
    missing_policy: str | None = None,
    trial_days: int | None = None,
) -> RoutingDecision:
    """Run the session -> subscription -> entitlement -> store checks once.

    This is the only place the routing state is computed; app start, login and
    the main-app route guard all call it. Nothing is cached between calls. Any
    collaborator error routes to NO_SESSION.
    """
    now = now or now_utc()
    policy = normalize_missing_policy(missing_policy or settings.SUBSCRIPTION_MISSING_POLICY)
    days = settings.TRIAL_DAYS if trial_days is None else trial_days
    try:
        return _resolve(auth, store, now, policy, days)
    except Exception:
        logger.exception("onboarding check failed, routing to sign-in")
        return RoutingDecision(OnboardingState.NO_SESSION, evaluated_at=now)


Navigate = Callable[[RoutingDecision], None]


class OnboardingSequencer:
    """Keeps one routing decision current for a client session.

    Each run takes a new generation number before resolving; its result is
    applied only if no newer run has started meanwhile, so a slow check can
    never overwrite the decision of a later session change.
    """

    def __init__(
        self,
        auth: AuthProvider,
        store: EntitlementStore,
        navigate: Navigate | None = None,
        *,
        clock: Callable[[], datetime] = now_utc,
        missing_policy: str | None = None,
        trial_days: int | None = None,
    ):
        self.auth = auth
        self.store = store
        self.navigate = navigate
        self.clock = clock
        self.missing_policy = missing_policy
        self.trial_days = trial_days
        self.current: RoutingDecision | None = None
        self._generation = 0
        self._lock = threading.RLock()
        self._unsubscribe: Callable[[], None] | None = None
        self.sign_out_failed = False

    def start(self) -> RoutingDecision | None:
        if self._unsubscribe is None:
            self._unsubscribe = self.auth.subscribe_to_session_changes(self._on_session_change)
        return self.run("start")

    def close(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_session_change(self, session: Session | None):
        self.run("session_change")

    def _next_generation(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def _apply(self, generation: int, decision: RoutingDecision, trigger: str) -> bool:
        with self._lock:
            if generation != self._generation:
                logger.debug(
                    "discarding stale onboarding result %s (trigger=%s, generation %s < %s)",
                    decision.state.value,
                    trigger,
                    generation,
                    self._generation,
                )
                return False
            previous = self.current
            self.current = decision
            changed = previous is None or (previous.state, previous.user_id) != (decision.state, decision.user_id)
            if changed and self.navigate is not None:
                self.navigate(decision)
            return True

    def run(self, trigger: str = "manual") -> RoutingDecision | None:
        """Resolve from scratch; returns the decision, or None if a newer run superseded it."""
        generation = self._next_generation()
        decision = resolve_onboarding(
            self.auth,
            self.store,
            self.clock(),
            missing_policy=self.missing_policy,
            trial_days=self.trial_days,
        )
        if not self._apply(generation, decision, trigger):
            return None
        return decision

    def submit_coupon(self, code: str | None) -> RedemptionResult:
        result = redeem(self.store, self.auth, code, self.clock())
        if isinstance(result, ExtendedUntil):
            self.run("coupon_redeemed")
        return result

    def sign_out(self) -> RoutingDecision:
        """Route to sign-in even when the provider fails; sign_out_failed records that it did."""
        self.sign_out_failed = False
        try:
            self.auth.sign_out()
        except Exception:
            self.sign_out_failed = True
            logger.exception("sign-out failed, routing to sign-in anyway")
        decision = RoutingDecision(OnboardingState.NO_SESSION, evaluated_at=self.clock())
        self._apply(self._next_generation(), decision, "sign_out")
        return decision
