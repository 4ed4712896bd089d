import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Coupon(Base):
    __tablename__ = "coupons"

    id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, primary_key=True, server_default=sa.text("gen_random_uuid()"))
    code: Mapped[str] = mapped_column(sa.Text, nullable=False, unique=True)
    days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.text("true"))
    expires_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.CheckConstraint("days >= 0", name="ck_coupons_days_non_negative"),
        sa.CheckConstraint("code = upper(btrim(code))", name="ck_coupons_code_canonical"),
    )


class CouponRedemption(Base):
    __tablename__ = "coupon_redemptions"

    id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, primary_key=True, server_default=sa.text("gen_random_uuid()"))
    user_id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    coupon_id: Mapped[sa.Uuid | None] = mapped_column(sa.Uuid, sa.ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)
    code: Mapped[str] = mapped_column(sa.Text, nullable=False)
    days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    previous_subscription_end: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    new_subscription_end: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    redeemed_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.Index("ix_coupon_redemptions_user_redeemed", "user_id", sa.text("redeemed_at DESC")),
        sa.Index("ix_coupon_redemptions_coupon", "coupon_id"),
    )
