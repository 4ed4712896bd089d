from __future__ import annotations

import json
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from urllib import error, request

from app.services.sessions import Session, SessionSignals
from app.services.subscriptions import CollaboratorFailure, CouponRecord, SubscriptionRecord


class ApiError(RuntimeError):
    def __init__(self, status_code: int, payload):
        self.status_code = status_code
        self.payload = payload
        super().__init__(f"HTTP {status_code}: {payload}")


class ApiClient:
    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    def call(self, method: str, path: str, *, token: str | None = None, body=None, timeout: int = 20):
        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json"}
        payload = None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if body is not None:
            headers["Content-Type"] = "application/json"
            payload = json.dumps(body).encode("utf-8")

        req = request.Request(url=url, data=payload, headers=headers, method=method.upper())
        try:
            with request.urlopen(req, timeout=timeout) as resp:
                raw = resp.read().decode("utf-8")
                return _parse_payload(raw)
        except error.HTTPError as exc:
            raw = exc.read().decode("utf-8")
            raise ApiError(exc.code, _parse_payload(raw)) from exc


@dataclass
class IdentityFactory:
    seed: str
    counter: int = 0

    def next_email(self, prefix: str = "owner") -> str:
        self.counter += 1
        return f"{prefix}_{self.seed}_{self.counter}@kiraana.test"

    def next_coupon_code(self, prefix: str) -> str:
        self.counter += 1
        return f"{prefix}{self.seed}{self.counter}".upper()


def _parse_payload(raw: str):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def register_user(api: ApiClient, email: str, password: str | None = None) -> dict:
    pwd = password or f"Kiraana_{email[:4]}_Aa1"
    try:
        out = api.call("POST", "/auth/register", body={"email": email, "password": pwd})
    except ApiError as exc:
        if exc.status_code != 409:
            raise
        out = api.call("POST", "/auth/login", body={"email": email, "password": pwd})
    if not isinstance(out, dict) or not out.get("access_token"):
        raise AssertionError("No access_token returned.")
    return out


def simulate_subscription(
    api: ApiClient,
    token: str,
    *,
    trial_end_offset_days: int,
    subscription_end_offset_days: int | None = None,
    is_active: bool = False,
):
    return api.call(
        "POST",
        "/entitlements/me/simulate",
        token=token,
        body={
            "trial_end_offset_days": trial_end_offset_days,
            "subscription_end_offset_days": subscription_end_offset_days,
            "is_active": is_active,
        },
    )


# In-memory collaborators for the onboarding core.


class FakeAuth:
    def __init__(self, user_id: str | None = None):
        self.session = Session(user_id=user_id, session_id=f"sid-{user_id}") if user_id else None
        self.signals = SessionSignals()
        self.sign_out_calls = 0
        self.fail = False
        self.fail_sign_out = False

    def get_current_session(self) -> Session | None:
        if self.fail:
            raise ConnectionError("auth provider unavailable")
        return self.session

    def subscribe_to_session_changes(self, handler):
        return self.signals.subscribe(handler)

    def sign_in(self, user_id: str):
        self.session = Session(user_id=user_id, session_id=f"sid-{user_id}")
        self.signals.emit(self.session)

    def sign_out(self):
        self.sign_out_calls += 1
        if self.fail_sign_out:
            raise ConnectionError("auth provider unavailable")
        self.session = None
        self.signals.emit(None)


class InMemoryEntitlementStore:
    def __init__(self):
        self.subscriptions: dict[str, SubscriptionRecord] = {}
        self.stores: set[str] = set()
        self.coupons: dict[str, CouponRecord] = {}
        self.redemptions: list[dict] = []
        self.fail_on: set[str] = set()

    def _check(self, operation: str):
        if operation in self.fail_on:
            raise CollaboratorFailure(f"{operation} unavailable")

    def add_subscription(
        self,
        user_id: str,
        now: datetime,
        *,
        trial_end_offset: timedelta,
        subscription_end_offset: timedelta | None = None,
        is_active: bool | None = None,
    ) -> SubscriptionRecord:
        subscription_end = now + subscription_end_offset if subscription_end_offset is not None else None
        record = SubscriptionRecord(
            user_id=user_id,
            trial_start=now + trial_end_offset - timedelta(days=14),
            trial_end=now + trial_end_offset,
            subscription_end=subscription_end,
            is_active=(subscription_end is not None) if is_active is None else is_active,
            updated_at=now - timedelta(days=1),
        )
        self.subscriptions[user_id] = record
        return record

    def add_coupon(self, code: str, days: int, *, is_active: bool = True, expires_at: datetime | None = None):
        coupon = CouponRecord(
            id=f"coupon-{len(self.coupons) + 1}",
            code=code,
            days=days,
            is_active=is_active,
            expires_at=expires_at,
        )
        self.coupons[code] = coupon
        return coupon

    def get_subscription(self, user_id: str) -> SubscriptionRecord | None:
        self._check("get_subscription")
        return self.subscriptions.get(user_id)

    def store_exists(self, user_id: str) -> bool:
        self._check("store_exists")
        return user_id in self.stores

    def find_active_coupon(self, code: str) -> CouponRecord | None:
        self._check("find_active_coupon")
        coupon = self.coupons.get(code)
        if coupon is None or not coupon.is_active:
            return None
        return coupon

    def extend_subscription(self, user_id: str, subscription_end: datetime, now: datetime) -> bool:
        self._check("extend_subscription")
        record = self.subscriptions.get(user_id)
        if record is None:
            return False
        self.subscriptions[user_id] = replace(
            record,
            subscription_end=subscription_end,
            is_active=True,
            updated_at=now,
        )
        return True

    def provision_trial(self, user_id: str, now: datetime, days: int) -> SubscriptionRecord:
        self._check("provision_trial")
        return self.subscriptions.setdefault(
            user_id,
            SubscriptionRecord(
                user_id=user_id,
                trial_start=now,
                trial_end=now + timedelta(days=days),
                updated_at=now,
            ),
        )

    def record_redemption(self, **kwargs) -> None:
        self._check("record_redemption")
        self.redemptions.append(kwargs)


class BlockingFirstLookupStore(InMemoryEntitlementStore):
    """Holds the first subscription lookup until released, returning `first_result`."""

    def __init__(self, first_result: SubscriptionRecord | None):
        super().__init__()
        self.first_result = first_result
        self.entered = threading.Event()
        self.release = threading.Event()
        self._calls = 0
        self._lock = threading.Lock()

    def get_subscription(self, user_id: str) -> SubscriptionRecord | None:
        with self._lock:
            self._calls += 1
            first = self._calls == 1
        if first:
            self.entered.set()
            self.release.wait(timeout=5)
            return self.first_result
        return super().get_subscription(user_id)
