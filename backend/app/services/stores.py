from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Session

_STORE_COLUMNS = """
    id::text AS id,
    user_id::text AS user_id,
    name,
    address,
    phone,
    image_url,
    created_at,
    updated_at
"""


class StoreAlreadyExists(ValueError):
    pass


def _clean(value: str | None) -> str:
    return " ".join((value or "").split())


def get_store(db: Session, user_id: str) -> dict[str, object] | None:
    row = db.execute(
        sa.text(f"SELECT {_STORE_COLUMNS} FROM stores WHERE user_id=:u"),
        {"u": user_id},
    ).mappings().first()
    return dict(row) if row else None


def create_store(
    db: Session,
    *,
    user_id: str,
    name: str,
    address: str,
    phone: str,
    image_url: str | None = None,
) -> dict[str, object]:
    values = {"name": _clean(name), "address": _clean(address), "phone": _clean(phone)}
    missing = [key for key, value in values.items() if not value]
    if missing:
        raise ValueError(f"Missing required store fields: {', '.join(missing)}")

    row = db.execute(
        sa.text(
            f"""
            INSERT INTO stores (user_id, name, address, phone, image_url)
            VALUES (:u, :name, :address, :phone, :image_url)
            ON CONFLICT (user_id) DO NOTHING
            RETURNING {_STORE_COLUMNS}
            """
        ),
        {"u": user_id, **values, "image_url": (image_url or "").strip() or None},
    ).mappings().first()
    if not row:
        raise StoreAlreadyExists("Store already set up for this account")
    return dict(row)
