import argparse
from datetime import datetime, timezone

import sqlalchemy as sa

from app.db.session import SessionLocal
from app.services.coupons import MAX_COUPON_DAYS, canonicalize_code


def _parse_expires(value: str | None) -> datetime | None:
    if not value:
        return None
    txt = value.strip()
    if txt.endswith("Z"):
        txt = txt[:-1] + "+00:00"
    dt = datetime.fromisoformat(txt)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Create or update a coupon in the catalog.")
    parser.add_argument("code")
    parser.add_argument("days", type=int)
    parser.add_argument("--inactive", action="store_true", help="store the coupon as not redeemable")
    parser.add_argument("--expires-at", default=None, help="ISO-8601 instant after which the code stops working")
    args = parser.parse_args(argv)
    if not 0 <= args.days <= MAX_COUPON_DAYS:
        parser.error(f"days must be between 0 and {MAX_COUPON_DAYS}")
    if not canonicalize_code(args.code):
        parser.error("code must not be empty")
    return args


def main(argv=None):
    args = parse_args(argv)
    code = canonicalize_code(args.code)
    db = SessionLocal()
    try:
        row = db.execute(sa.text("""
            INSERT INTO coupons (code, days, is_active, expires_at)
            VALUES (:code, :days, :is_active, :expires_at)
            ON CONFLICT (code) DO UPDATE
            SET days=:days,
                is_active=:is_active,
                expires_at=:expires_at
            RETURNING id::text AS id
        """), {
            "code": code,
            "days": args.days,
            "is_active": not args.inactive,
            "expires_at": _parse_expires(args.expires_at),
        }).mappings().one()
        db.commit()
        print(f"ok: coupon {code} saved (id={row['id']}, days={args.days}, active={not args.inactive})")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
