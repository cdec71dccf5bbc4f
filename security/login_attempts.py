import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.db import utcnow
from models.login_attempt import FAILURE_REASONS, LoginAttempt
from models.user import USER_TYPES
from security.alerts import evaluate_attempt
from security.errors import ScoringTimeout, SecurityError, StorageError, ValidationError
from security.geolocation import lookup_location
from security.risk import RiskPolicy, degraded_assessment, load_recent_history, score_attempt

logger = logging.getLogger(__name__)


@dataclass
class AttemptInput:
    """What the authentication flow knows about one login call."""

    email: str
    success: bool
    ip_address: str
    user_type: Optional[str] = None
    user_id: Optional[int] = None
    failure_reason: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[dict] = None
    blocked: bool = False
    metadata: Optional[dict] = None
    occurred_at: Optional[datetime] = None


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


def current_policy() -> RiskPolicy:
    return RiskPolicy.from_config(current_app.config)


def validate_attempt(data: AttemptInput) -> None:
    if not normalize_email(data.email):
        raise ValidationError("email is required")
    if not data.ip_address:
        raise ValidationError("ip_address is required")
    if data.success and data.failure_reason is not None:
        raise ValidationError("failure_reason must be empty on a successful attempt")
    if not data.success and data.failure_reason is None:
        raise ValidationError("failure_reason is required on a failed attempt")
    if data.failure_reason is not None and data.failure_reason not in FAILURE_REASONS:
        raise ValidationError(f"Unknown failure_reason {data.failure_reason!r}")
    if data.user_type is not None and data.user_type not in USER_TYPES:
        raise ValidationError(f"Unknown user_type {data.user_type!r}")
    if data.user_id is not None and data.user_type is None:
        raise ValidationError("user_id requires user_type")


def _apply_location(row: LoginAttempt, location: Optional[dict]) -> None:
    if not location:
        return
    country = location.get("country")
    city = location.get("city")
    row.country = str(country)[:64] if country else None
    row.city = str(city)[:120] if city else None
    coords = location.get("coordinates") or {}
    row.latitude = coords.get("latitude")
    row.longitude = coords.get("longitude")


def _write_with_retry(apply: Callable[[], None], what: str) -> None:
    """apply() stages the change; it is re-run after a rollback so the retry sees it again."""
    backoff = current_app.config.get("STORAGE_RETRY_BACKOFF_SECONDS", 0.2)
    for attempt_no in (1, 2):
        apply()
        try:
            db.session.commit()
            return
        except SQLAlchemyError as exc:
            db.session.rollback()
            if attempt_no == 2:
                raise StorageError(f"{what} failed after retry: {exc}") from exc
            logger.warning("Login attempt %s failed, retrying in %ss: %s", what, backoff, exc)
            time.sleep(backoff)


def record_attempt(data: AttemptInput, policy: Optional[RiskPolicy] = None) -> LoginAttempt:
    """
    Persist one authentication attempt and return it already scored.
    Raises ValidationError before writing anything, StorageError if the insert fails twice.
    """
    validate_attempt(data)
    policy = policy or current_policy()

    location = data.location if data.location is not None else lookup_location(data.ip_address)

    row = LoginAttempt(
        email=normalize_email(data.email),
        user_type=data.user_type,
        user_id=data.user_id,
        success=bool(data.success),
        failure_reason=data.failure_reason,
        ip_address=data.ip_address[:64],
        user_agent=data.user_agent[:255] if data.user_agent else None,
        risk_score=0,
        risk_factors=[],
        blocked=bool(data.blocked),
        metadata_json=data.metadata or None,
        created_at=data.occurred_at or utcnow(),
    )
    _apply_location(row, location)
    _write_with_retry(lambda: db.session.add(row), "insert")

    try:
        history = load_recent_history(row, policy)
        assessment = score_attempt(row, history, policy)
    except (ScoringTimeout, StorageError) as exc:
        logger.warning("Degraded risk scoring for attempt %s (%s): %s", row.id, row.email, exc)
        assessment = degraded_assessment(str(exc))

    def _apply_score():
        row.risk_score = assessment.score
        row.risk_factors = assessment.factor_dicts()

    _write_with_retry(_apply_score, "score update")

    try:
        evaluate_attempt(row, policy)
    except StorageError:
        logger.exception("Alert generation failed for attempt %s", row.id)

    return row


def record_attempt_safely(data: AttemptInput, policy: Optional[RiskPolicy] = None) -> Optional[LoginAttempt]:
    """Authentication-boundary wrapper: security telemetry never breaks a login."""
    try:
        return record_attempt(data, policy)
    except ValidationError as exc:
        logger.error("Rejected login attempt record for %s: %s", data.email, exc)
    except SecurityError as exc:
        logger.error("Dropped login attempt telemetry for %s: %s", data.email, exc)
    return None


def should_block_attempt(email: str, ip_address: str, policy: Optional[RiskPolicy] = None,
                         now: Optional[datetime] = None) -> bool:
    """True when this email or IP produced a high-risk failure inside the block window."""
    policy = policy or current_policy()
    since = (now or utcnow()) - policy.block_window
    try:
        hit = (
            LoginAttempt.query
            .filter(or_(LoginAttempt.email == normalize_email(email), LoginAttempt.ip_address == ip_address))
            .filter(
                LoginAttempt.success.is_(False),
                LoginAttempt.risk_score >= policy.block_threshold,
                LoginAttempt.created_at >= since,
            )
            .first()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Block lookup failed for %s / %s; allowing attempt", email, ip_address)
        return False
    return hit is not None
