import argparse
import logging
from datetime import timedelta

import sqlalchemy as sa

from app.core.config import settings
from app.core.logging import configure_logging
from app.core.security import now_utc
from app.db.session import SessionLocal

logger = logging.getLogger("scripts.cleanup_auth_artifacts")

PURGES = {
    "auth_login_attempts": """
        DELETE FROM auth_login_attempts
        WHERE created_at < :login_cutoff
    """,
    # revoked and rotated rows survive until the retention window
    "auth_sessions": """
        DELETE FROM auth_sessions
        WHERE (revoked_at IS NOT NULL AND revoked_at < :session_cutoff)
           OR expires_at < :session_cutoff
    """,
}


def cleanup(db, now, dry_run: bool = False) -> dict[str, int]:
    params = {
        "login_cutoff": now - timedelta(days=settings.AUTH_LOGIN_ATTEMPTS_RETENTION_DAYS),
        "session_cutoff": now - timedelta(days=settings.AUTH_SESSIONS_RETENTION_DAYS),
    }
    counts = {table: db.execute(sa.text(sql), params).rowcount for table, sql in PURGES.items()}
    if dry_run:
        db.rollback()
    else:
        db.commit()
    return counts


def main(argv=None):
    parser = argparse.ArgumentParser(description="Delete stale login attempts and dead auth sessions.")
    parser.add_argument("--dry-run", action="store_true", help="report counts without deleting")
    args = parser.parse_args(argv)

    configure_logging()
    db = SessionLocal()
    try:
        counts = cleanup(db, now_utc(), dry_run=args.dry_run)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    summary = ", ".join(f"{table}={count}" for table, count in counts.items())
    logger.info("cleanup %s (%s)", "dry run" if args.dry_run else "finished", summary)
    print(f"ok: {summary}")


if __name__ == "__main__":
    main()
