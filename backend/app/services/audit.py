import logging
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.audit_log import AUDIT_ENTITY_TYPES, AuditLog

logger = logging.getLogger(__name__)


def audit(db: Session, actor_user_id, entity_type: str, entity_id: str, action: str, data: dict):
    if entity_type not in AUDIT_ENTITY_TYPES:
        raise ValueError(f"unknown audit entity_type: {entity_type}")
    row = AuditLog(
        actor_user_id=UUID(str(actor_user_id)) if actor_user_id else None,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        data=data or {},
    )
    db.add(row)
    logger.info("audit %s.%s entity=%s actor=%s", entity_type, action, entity_id, actor_user_id)
