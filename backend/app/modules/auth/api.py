from datetime import timedelta
from uuid import uuid4

import sqlalchemy as sa
from fastapi import APIRouter, Depends, HTTPException
from jose import JWTError
from sqlalchemy.orm import Session

from app.api.deps import routing_state_out
from app.core.config import settings
from app.core.security import (
    as_utc,
    create_access_token_for_session,
    create_refresh_token_for_session,
    decode_token,
    hash_password,
    hash_refresh_token,
    now_utc,
    pii_hash,
    verify_password,
)
from app.db.session import commit_or_rollback, get_db
from app.schemas.auth import (
    LoginIn,
    LogoutIn,
    RefreshIn,
    RegisterIn,
    SessionOut,
    SimpleOKOut,
    TokenOut,
)
from app.services.audit import audit
from app.services.onboarding import OnboardingSequencer
from app.services.sessions import BearerSessionAuth, revoke_session
from app.services.subscriptions import SqlEntitlementStore

router = APIRouter()


def _create_session_tokens(db: Session, user_id: str) -> TokenOut:
    sid = str(uuid4())
    refresh_token = create_refresh_token_for_session(user_id, sid=sid)
    refresh_hash = hash_refresh_token(refresh_token)
    expires_at = now_utc() + timedelta(days=settings.JWT_REFRESH_DAYS)

    db.execute(sa.text("""
        INSERT INTO auth_sessions (id, user_id, refresh_hash, expires_at)
        VALUES (:sid, :u, :h, :e)
    """), {"sid": sid, "u": user_id, "h": refresh_hash, "e": expires_at})

    access_token = create_access_token_for_session(user_id, sid=sid)
    return TokenOut(access_token=access_token, refresh_token=refresh_token)


def _session_out(db: Session, tokens: TokenOut) -> SessionOut:
    # Post-login trigger: same onboarding routine as app start and the route guard.
    sequencer = OnboardingSequencer(BearerSessionAuth(db, tokens.access_token), SqlEntitlementStore(db))
    try:
        decision = sequencer.start() or sequencer.current
    finally:
        sequencer.close()
    return SessionOut(**tokens.model_dump(), onboarding=routing_state_out(decision))


def _check_login_rate_limit(db: Session, login_key_hash: str):
    failed = int(db.execute(sa.text("""
        SELECT count(*)
        FROM auth_login_attempts
        WHERE login_key_hash=:k
          AND success=false
          AND created_at >= :since
    """), {
        "k": login_key_hash,
        "since": now_utc() - timedelta(minutes=settings.LOGIN_ATTEMPTS_WINDOW_MINUTES),
    }).scalar_one())
    if failed >= settings.LOGIN_MAX_FAILED_ATTEMPTS:
        raise HTTPException(429, "Too many sign-in attempts, try again later")


def _record_login_attempt(db: Session, login_key_hash: str, success: bool):
    db.execute(sa.text("""
        INSERT INTO auth_login_attempts (login_key_hash, success)
        VALUES (:k, :s)
    """), {"k": login_key_hash, "s": success})


@router.post("/register", response_model=SessionOut)
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    user_id = db.execute(sa.text("""
        INSERT INTO users (email, status)
        VALUES (:e, 'active')
        ON CONFLICT (email) DO NOTHING
        RETURNING id::text
    """), {"e": payload.email}).scalar()
    if not user_id:
        raise HTTPException(409, "An account with this email already exists. Sign in instead.")

    db.execute(sa.text("""
        INSERT INTO auth_credentials (user_id, password_hash, password_updated_at)
        VALUES (:u, :h, now())
    """), {"u": user_id, "h": hash_password(payload.password)})

    tokens = _create_session_tokens(db, user_id)
    audit(db, user_id, "auth", user_id, "register_completed", {})
    db.commit()
    out = _session_out(db, tokens)
    commit_or_rollback(db)
    return out


@router.post("/login", response_model=SessionOut)
def login(payload: LoginIn, db: Session = Depends(get_db)):
    login_key_hash = pii_hash(payload.email, "login")
    _check_login_rate_limit(db, login_key_hash)

    row = db.execute(sa.text("""
        SELECT u.id::text AS user_id, u.status, c.password_hash
        FROM users u
        LEFT JOIN auth_credentials c ON c.user_id = u.id
        WHERE u.email=:e
    """), {"e": payload.email}).mappings().first()
    if not row or not row["password_hash"] or not verify_password(payload.password, row["password_hash"]):
        _record_login_attempt(db, login_key_hash, False)
        db.commit()
        raise HTTPException(401, "Invalid credentials")
    if row["status"] != "active":
        raise HTTPException(403, "Account blocked")

    user_id = row["user_id"]
    _record_login_attempt(db, login_key_hash, True)
    db.execute(sa.text("UPDATE users SET last_login_at=now() WHERE id=:u"), {"u": user_id})
    tokens = _create_session_tokens(db, user_id)
    audit(db, user_id, "auth", user_id, "login", {})
    db.commit()
    out = _session_out(db, tokens)
    commit_or_rollback(db)
    return out


@router.post("/refresh", response_model=SessionOut)
def refresh(payload: RefreshIn, db: Session = Depends(get_db)):
    """Rotate a refresh token and report where the client should land now."""
    try:
        claims = decode_token(payload.refresh_token)
    except JWTError:
        raise HTTPException(401, "Invalid refresh token")
    sid = claims.get("sid")
    if claims.get("type") != "refresh" or not sid:
        raise HTTPException(401, "Invalid refresh token")

    row = db.execute(sa.text("""
        SELECT s.user_id::text AS user_id, s.refresh_hash, s.expires_at, s.revoked_at, u.status
        FROM auth_sessions s
        JOIN users u ON u.id = s.user_id
        WHERE s.id=:sid
        FOR UPDATE OF s
    """), {"sid": sid}).mappings().first()
    if not row or row["user_id"] != str(claims.get("sub")):
        raise HTTPException(401, "Session not found")
    if row["revoked_at"] is not None or now_utc() > as_utc(row["expires_at"]):
        raise HTTPException(401, "Session expired, sign in again")
    if row["refresh_hash"] != hash_refresh_token(payload.refresh_token):
        raise HTTPException(401, "Invalid refresh token")
    if row["status"] != "active":
        raise HTTPException(403, "Account blocked")

    tokens = _create_session_tokens(db, row["user_id"])
    revoke_session(db, sid, "rotated", replaced_by=decode_token(tokens.refresh_token)["sid"])
    db.commit()
    out = _session_out(db, tokens)
    commit_or_rollback(db)
    return out


@router.post("/logout", response_model=SimpleOKOut)
def logout(payload: LogoutIn, db: Session = Depends(get_db)):
    try:
        decoded = decode_token(payload.refresh_token)
    except JWTError:
        return SimpleOKOut(ok=True)
    sid = decoded.get("sid")
    if sid:
        row = db.execute(sa.text("""
            SELECT refresh_hash
            FROM auth_sessions
            WHERE id=:sid
            FOR UPDATE
        """), {"sid": sid}).mappings().first()
        if row and row["refresh_hash"] == hash_refresh_token(payload.refresh_token):
            revoke_session(db, sid, "logout")
            db.commit()
    return SimpleOKOut(ok=True)
