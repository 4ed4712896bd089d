import pytest

from tests.testkit import ApiError, register_user, simulate_subscription


def _state(api, token):
    return api.call("GET", "/onboarding/state", token=token)


def test_anonymous_client_is_sent_to_sign_in(api):
    out = _state(api, None)
    assert out["state"] == "no_session"
    assert out["route"] == "sign_in"

    with pytest.raises(ApiError) as exc:
        api.call("GET", "/stores/me")
    assert exc.value.status_code == 401


def test_register_returns_onboarding_route(api, identity_factory):
    out = register_user(api, identity_factory.next_email())
    assert out["onboarding"]["state"] in {"session_no_subscription", "session_entitled_no_store"}
    assert out["onboarding"]["user_id"]


def test_trial_user_sets_up_store_and_enters_main(api, identity_factory):
    token = register_user(api, identity_factory.next_email())["access_token"]
    simulate_subscription(api, token, trial_end_offset_days=7)

    assert _state(api, token)["route"] == "store_setup"
    with pytest.raises(ApiError) as exc:
        api.call("GET", "/stores/me", token=token)
    assert exc.value.status_code == 403
    assert exc.value.payload["detail"]["route"] == "store_setup"

    store = api.call(
        "POST",
        "/stores",
        token=token,
        body={"name": "Sharma General Store", "address": "12 MG Road", "phone": "+919800000000"},
    )
    assert store["name"] == "Sharma General Store"
    assert _state(api, token)["route"] == "main"
    assert api.call("GET", "/stores/me", token=token)["id"] == store["id"]

    with pytest.raises(ApiError) as exc:
        api.call(
            "POST",
            "/stores",
            token=token,
            body={"name": "Second", "address": "Elsewhere", "phone": "+919800000001"},
        )
    assert exc.value.status_code == 409


def test_expired_user_redeems_coupon(api, identity_factory):
    token = register_user(api, identity_factory.next_email())["access_token"]
    simulate_subscription(api, token, trial_end_offset_days=-1, subscription_end_offset_days=-1)
    assert _state(api, token)["route"] == "coupon_prompt"

    code = identity_factory.next_coupon_code("SAVE")
    api.call("POST", "/entitlements/coupons", token=token, body={"code": code, "days": 10})

    with pytest.raises(ApiError) as exc:
        api.call("POST", "/stores", token=token, body={"name": "Shop", "address": "Lane 1", "phone": "12345"})
    assert exc.value.status_code == 403

    out = api.call("POST", "/onboarding/coupon", token=token, body={"code": f"  {code.lower()} "})
    assert out["ok"] is True
    assert out["days"] == 10
    assert out["onboarding"]["route"] == "store_setup"

    status = api.call("GET", "/entitlements/me", token=token)
    assert status["access"] == "entitled"
    assert status["source"] == "subscription"


def test_rejected_coupons_do_not_change_access(api, identity_factory):
    token = register_user(api, identity_factory.next_email())["access_token"]
    simulate_subscription(api, token, trial_end_offset_days=-1)

    code = identity_factory.next_coupon_code("OFF")
    api.call("POST", "/entitlements/coupons", token=token, body={"code": code, "days": 30, "is_active": False})

    for attempt in (code, "NOPE-NOT-A-CODE"):
        with pytest.raises(ApiError) as exc:
            api.call("POST", "/onboarding/coupon", token=token, body={"code": attempt})
        assert exc.value.status_code == 422
        assert exc.value.payload["detail"]["reason"] == "invalid_or_expired"

    assert api.call("GET", "/entitlements/me", token=token)["access"] == "not_entitled"
    assert _state(api, token)["route"] == "coupon_prompt"


def test_sign_out_revokes_the_session(api, identity_factory):
    token = register_user(api, identity_factory.next_email())["access_token"]
    simulate_subscription(api, token, trial_end_offset_days=7)

    out = api.call("POST", "/onboarding/sign-out", token=token)
    assert out["route"] == "sign_in"
    assert _state(api, token)["state"] == "no_session"


def test_refresh_rotates_tokens_and_reports_route(api, identity_factory):
    session = register_user(api, identity_factory.next_email())
    simulate_subscription(api, session["access_token"], trial_end_offset_days=3)

    out = api.call("POST", "/auth/refresh", body={"refresh_token": session["refresh_token"]})
    assert out["access_token"] != session["access_token"]
    assert out["onboarding"]["route"] == "store_setup"

    with pytest.raises(ApiError) as exc:
        api.call("POST", "/auth/refresh", body={"refresh_token": session["refresh_token"]})
    assert exc.value.status_code == 401


def test_anonymous_coupon_attempts_do_not_reveal_valid_codes(api, identity_factory):
    token = register_user(api, identity_factory.next_email())["access_token"]
    code = identity_factory.next_coupon_code("REAL")
    api.call("POST", "/entitlements/coupons", token=token, body={"code": code, "days": 10})

    answers = []
    for attempt in (code, "NOPE-NOT-A-CODE"):
        with pytest.raises(ApiError) as exc:
            api.call("POST", "/onboarding/coupon", body={"code": attempt})
        answers.append((exc.value.status_code, exc.value.payload))

    assert answers[0] == answers[1]
    assert answers[0][0] == 401
