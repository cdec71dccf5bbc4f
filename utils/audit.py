import logging

from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.audit_log import AuditLog
from utils.request_info import client_ip, client_user_agent

logger = logging.getLogger(__name__)


def log_event(action: str, user_id=None, entity=None, entity_id=None, metadata=None):
    """Append an audit row. Works outside a request (CLI) with ip='unknown'."""
    row = AuditLog(
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=client_ip(),
        user_agent=client_user_agent(),
        metadata_json=metadata or None,
    )
    db.session.add(row)
    try:
        db.session.commit()
    except SQLAlchemyError:
        # the audited action already happened; losing its audit row is logged, not raised
        db.session.rollback()
        logger.exception("Failed to write audit event %s", action)
