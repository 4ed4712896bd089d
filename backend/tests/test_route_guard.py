from datetime import timedelta

import pytest
from fastapi import HTTPException

from app.api.deps import require_entitled, require_main_app
from app.services.onboarding import OnboardingSequencer, OnboardingState
from tests.testkit import FakeAuth

DAY = timedelta(days=1)


def _sequencer(auth, store, now):
    return OnboardingSequencer(auth, store, clock=lambda: now)


def test_guards_reject_anonymous_callers_with_401(store, now):
    for guard in (require_entitled, require_main_app):
        with pytest.raises(HTTPException) as exc:
            guard(_sequencer(FakeAuth(None), store, now))
        assert exc.value.status_code == 401
        assert exc.value.detail["route"] == "sign_in"


def test_expired_user_is_held_at_coupon_prompt(store, auth, now):
    store.add_subscription("user-1", now, trial_end_offset=-DAY)

    with pytest.raises(HTTPException) as exc:
        require_entitled(_sequencer(auth, store, now))
    assert exc.value.status_code == 403
    assert exc.value.detail["route"] == "coupon_prompt"


def test_store_setup_is_open_before_main_app(store, auth, now):
    store.add_subscription("user-1", now, trial_end_offset=DAY)

    decision = require_entitled(_sequencer(auth, store, now))
    assert decision.state is OnboardingState.SESSION_ENTITLED_NO_STORE

    with pytest.raises(HTTPException) as exc:
        require_main_app(_sequencer(auth, store, now))
    assert exc.value.status_code == 403
    assert exc.value.detail["route"] == "store_setup"


def test_main_app_opens_once_the_store_exists(store, auth, now):
    store.add_subscription("user-1", now, trial_end_offset=DAY)
    store.stores.add("user-1")

    assert require_main_app(_sequencer(auth, store, now)).may_enter_app
    assert require_entitled(_sequencer(auth, store, now)).is_entitled
