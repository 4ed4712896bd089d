import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class AuthCredential(Base):
    __tablename__ = "auth_credentials"

    user_id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    password_hash: Mapped[str] = mapped_column(sa.Text, nullable=False)
    password_updated_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))


class AuthSession(Base):
    __tablename__ = "auth_sessions"

    id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, primary_key=True)
    user_id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    refresh_hash: Mapped[str] = mapped_column(sa.Text, nullable=False)
    expires_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    revoked_reason: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    replaced_by: Mapped[sa.Uuid | None] = mapped_column(sa.Uuid, nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.Index("ix_auth_sessions_user_active", "user_id", "revoked_at"),
        sa.Index("ix_auth_sessions_expires", "expires_at"),
    )


class AuthLoginAttempt(Base):
    __tablename__ = "auth_login_attempts"

    id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, primary_key=True, server_default=sa.text("gen_random_uuid()"))
    login_key_hash: Mapped[str] = mapped_column(sa.Text, nullable=False)
    success: Mapped[bool] = mapped_column(sa.Boolean, nullable=False)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.Index("ix_auth_login_attempts_key_created", "login_key_hash", sa.text("created_at DESC")),
    )
