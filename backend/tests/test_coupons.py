from datetime import timedelta

import pytest

from app.services.coupons import (
    MAX_COUPON_DAYS,
    ExtendedUntil,
    RejectReason,
    Rejected,
    canonicalize_code,
    redeem,
)
from app.services.subscriptions import CollaboratorFailure
from tests.testkit import FakeAuth

DAY = timedelta(days=1)


@pytest.fixture
def expired_user(store, now):
    return store.add_subscription("user-1", now, trial_end_offset=-DAY)


@pytest.mark.parametrize("raw", ["SAVE10", "save10", " Save10 ", "\tsAvE10\n"])
def test_codes_are_matched_case_insensitively_after_trimming(store, auth, now, expired_user, raw):
    store.add_coupon("SAVE10", 10)
    result = redeem(store, auth, raw, now)
    assert isinstance(result, ExtendedUntil)
    assert result.code == "SAVE10"


def test_canonicalize_code():
    assert canonicalize_code("  welcome30 ") == "WELCOME30"
    assert canonicalize_code(None) == ""


@pytest.mark.parametrize("prior_offset", [3 * DAY, 40 * DAY], ids=["prior_earlier", "prior_later"])
def test_redemption_overwrites_previous_subscription_end(store, auth, now, prior_offset):
    store.add_subscription("user-1", now, trial_end_offset=-DAY, subscription_end_offset=prior_offset)
    store.add_coupon("SAVE10", 10)

    result = redeem(store, auth, "SAVE10", now)

    assert result == ExtendedUntil(subscription_end=now + 10 * DAY, code="SAVE10", days=10, user_id="user-1")
    record = store.subscriptions["user-1"]
    assert record.subscription_end == now + 10 * DAY
    assert record.is_active is True
    assert record.updated_at == now
    assert store.redemptions[-1]["previous_end"] == now + prior_offset


@pytest.mark.parametrize(
    "raw, reason",
    [
        ("", RejectReason.EMPTY_CODE),
        ("   ", RejectReason.EMPTY_CODE),
        ("NOPE", RejectReason.INVALID_OR_EXPIRED),
        ("OLD5", RejectReason.INVALID_OR_EXPIRED),
    ],
    ids=["empty", "blank", "unknown", "inactive"],
)
def test_rejections_leave_the_record_untouched(store, auth, now, expired_user, raw, reason):
    store.add_coupon("OLD5", 5, is_active=False)

    result = redeem(store, auth, raw, now)

    assert result == Rejected(reason)
    assert store.subscriptions["user-1"] == expired_user
    assert store.redemptions == []


def test_expired_coupon_is_rejected_when_expiry_is_enforced(store, auth, now, expired_user):
    store.add_coupon("LAUNCH", 7, expires_at=now - DAY)

    assert redeem(store, auth, "LAUNCH", now, enforce_expiry=True) == Rejected(RejectReason.INVALID_OR_EXPIRED)
    assert store.subscriptions["user-1"] == expired_user

    result = redeem(store, auth, "LAUNCH", now, enforce_expiry=False)
    assert isinstance(result, ExtendedUntil)
    assert result.subscription_end == now + 7 * DAY


def test_coupon_valid_until_its_expiry_instant(store, auth, now, expired_user):
    store.add_coupon("LAUNCH", 7, expires_at=now)
    assert isinstance(redeem(store, auth, "LAUNCH", now, enforce_expiry=True), ExtendedUntil)


def test_no_session_is_rejected(store, now, expired_user):
    store.add_coupon("SAVE10", 10)
    assert redeem(store, FakeAuth(None), "SAVE10", now) == Rejected(RejectReason.NO_SESSION)
    assert store.subscriptions["user-1"] == expired_user


def test_missing_subscription_row_is_rejected(store, auth, now):
    store.add_coupon("SAVE10", 10)
    assert redeem(store, auth, "SAVE10", now) == Rejected(RejectReason.NO_SUBSCRIPTION)
    assert store.redemptions == []


def test_same_code_redeems_more_than_once(store, auth, now, expired_user):
    store.add_coupon("SAVE10", 10)

    first = redeem(store, auth, "SAVE10", now)
    second = redeem(store, auth, "save10", now + 5 * DAY)

    assert isinstance(first, ExtendedUntil)
    assert isinstance(second, ExtendedUntil)
    assert store.subscriptions["user-1"].subscription_end == now + 15 * DAY
    assert len(store.redemptions) == 2


def test_zero_day_coupon_ends_access_now(store, auth, now, expired_user):
    store.add_coupon("ZERO", 0)
    result = redeem(store, auth, "ZERO", now)
    assert result.subscription_end == now


def test_store_failure_propagates(store, auth, now, expired_user):
    store.add_coupon("SAVE10", 10)
    store.fail_on.add("extend_subscription")

    with pytest.raises(CollaboratorFailure):
        redeem(store, auth, "SAVE10", now)
    assert store.subscriptions["user-1"] == expired_user


def test_rejection_messages_are_user_facing():
    assert Rejected(RejectReason.INVALID_OR_EXPIRED).message == "Invalid or expired coupon code"
    assert Rejected(RejectReason.EMPTY_CODE).message == "Please enter a coupon code"


def test_coupon_past_the_calendar_is_rejected_without_writing(store, auth, now, expired_user):
    store.add_coupon("FOREVER", 3_000_000)

    assert redeem(store, auth, "forever", now) == Rejected(RejectReason.INVALID_OR_EXPIRED)
    assert store.subscriptions["user-1"] == expired_user
    assert store.redemptions == []


@pytest.mark.parametrize("days", ["-1", str(MAX_COUPON_DAYS + 1)])
def test_upsert_coupon_script_bounds_days(days):
    from scripts.upsert_coupon import parse_args

    with pytest.raises(SystemExit):
        parse_args(["SAVE10", days])
    assert parse_args(["save10", str(MAX_COUPON_DAYS)]).days == MAX_COUPON_DAYS
