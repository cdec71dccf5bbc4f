import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.db import utcnow
from models.security_alert import ALERT_STATUSES, TERMINAL_STATUSES, SecurityAlert
from security.errors import AlertNotFound, InvalidTransitionError, StorageError, ValidationError
from utils.audit import log_event

logger = logging.getLogger(__name__)

# status -> statuses it may move to; terminal statuses have no way out
ALLOWED_TRANSITIONS = {
    "open": {"investigating", "resolved", "false_positive"},
    "investigating": {"resolved", "false_positive"},
    "resolved": set(),
    "false_positive": set(),
}


def can_transition(current: str, new_status: str) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(current, set())


def transition_alert(alert_id: int, new_status: str, actor_id: int, notes: Optional[str] = None) -> SecurityAlert:
    """
    Move an alert forward through open -> investigating -> resolved/false_positive.
    `notes`, when given, replaces the existing notes.
    """
    if new_status not in ALERT_STATUSES:
        raise ValidationError(f"Unknown alert status {new_status!r}")

    alert = db.session.get(SecurityAlert, alert_id)
    if alert is None:
        raise AlertNotFound(alert_id)

    previous = alert.status
    if not can_transition(previous, new_status):
        raise InvalidTransitionError(previous, new_status)

    alert.status = new_status
    if new_status in TERMINAL_STATUSES:
        alert.resolved_by = actor_id
        alert.resolved_at = utcnow()
    if notes is not None:
        alert.notes = notes

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(f"could not update security alert {alert_id}: {exc}") from exc

    log_event(
        "SECURITY_ALERT_TRANSITION",
        user_id=actor_id,
        entity="security_alert",
        entity_id=alert.id,
        metadata={"from": previous, "to": new_status},
    )
    logger.info("Security alert %s moved %s -> %s by user %s", alert.id, previous, new_status, actor_id)
    return alert
