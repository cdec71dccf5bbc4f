import logging
from dataclasses import dataclass, field, fields
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.security_alert import ACTIVE_STATUSES, SecurityAlert
from security.errors import StorageError
from security.risk import RiskPolicy

logger = logging.getLogger(__name__)

# keep the per-alert attempt trail bounded
MAX_TRACKED_ATTEMPTS = 50

LOCATION_FACTORS = {"new_ip", "new_location"}

_DESCRIPTIONS = {
    "account_takeover_attempt": "Successful login for {email} right after repeated failures",
    "brute_force_detected": "Brute-force pattern against {email}",
    "suspicious_location": "Login for {email} from a country not seen before",
    "new_device": "Login for {email} from an IP not seen before",
    "unusual_time": "Login for {email} at an unusual hour",
    "high_risk_login": "High-risk login attempt for {email}",
    "multiple_failed_attempts": "Several risk signals on login attempts for {email}",
}


@dataclass
class AlertDetails:
    """Evidence attached to an alert; unknown keys survive in `extra`."""

    risk_score: int = 0
    risk_factors: List[dict] = field(default_factory=list)
    user_agent: Optional[str] = None
    occurrences: int = 0
    login_attempt_ids: List[int] = field(default_factory=list)
    first_seen_at: Optional[str] = None
    last_seen_at: Optional[str] = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "AlertDetails":
        data = dict(data or {})
        known = {f.name for f in fields(cls)} - {"extra"}
        kwargs = {k: data.pop(k) for k in list(data) if k in known}
        extra = dict(data.pop("extra", None) or {})
        extra.update(data)
        return cls(extra=extra, **kwargs)

    def to_dict(self) -> dict:
        out = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "extra"}
        if self.extra:
            out["extra"] = dict(self.extra)
        return out

    def record(self, attempt) -> None:
        seen = attempt.created_at.isoformat()
        self.risk_score = attempt.risk_score
        self.risk_factors = list(attempt.risk_factors or [])
        self.user_agent = attempt.user_agent
        self.occurrences += 1
        self.login_attempt_ids = (self.login_attempt_ids + [attempt.id])[-MAX_TRACKED_ATTEMPTS:]
        self.first_seen_at = self.first_seen_at or seen
        self.last_seen_at = seen


def severity_for(score: int, alert_type: str) -> str:
    if score >= 90:
        severity = "critical"
    elif score >= 70:
        severity = "high"
    elif score >= 40:
        severity = "medium"
    else:
        severity = "low"

    if alert_type == "account_takeover_attempt" and severity in ("low", "medium"):
        return "high"
    return severity


def classify(attempt, policy: RiskPolicy) -> Optional[str]:
    """Map an attempt's scored factors to an alert type, or None."""
    factors = {
        f.get("factor"): f
        for f in (attempt.risk_factors or [])
        if f.get("factor") != "scoring_degraded"
    }
    names = set(factors)
    score = attempt.risk_score or 0
    velocity = factors.get("velocity")

    if velocity and attempt.success:
        return "account_takeover_attempt"
    if velocity and velocity.get("severity") == "high" and not attempt.success:
        return "brute_force_detected"
    if "rapid_attempts" in names:
        return "brute_force_detected"
    if attempt.success and names and names <= LOCATION_FACTORS:
        return "suspicious_location" if "new_location" in names else "new_device"
    if names == {"unusual_time"}:
        return "unusual_time"
    if score >= policy.alert_high_threshold:
        return "high_risk_login"
    if not attempt.success and len(names) >= 2 and score >= policy.alert_medium_threshold:
        return "multiple_failed_attempts"
    return None


def find_active_duplicate(email: str, alert_type: str, since) -> Optional[SecurityAlert]:
    return (
        SecurityAlert.query
        .filter(
            SecurityAlert.email == email,
            SecurityAlert.alert_type == alert_type,
            SecurityAlert.status.in_(ACTIVE_STATUSES),
            SecurityAlert.created_at >= since,
        )
        .order_by(SecurityAlert.created_at.desc(), SecurityAlert.id.desc())
        .first()
    )


def evaluate_attempt(attempt, policy: Optional[RiskPolicy] = None) -> Optional[SecurityAlert]:
    """
    Create or refresh the alert an already-scored attempt calls for.
    Returns None when no alert rule matches.
    """
    policy = policy or RiskPolicy()
    alert_type = classify(attempt, policy)
    if alert_type is None:
        return None

    try:
        alert = find_active_duplicate(attempt.email, alert_type, attempt.created_at - policy.dedup_window)
        if alert is not None:
            details = AlertDetails.from_dict(alert.details)
            details.record(attempt)
            alert.details = details.to_dict()
            alert.login_attempt_id = attempt.id
            db.session.commit()
            logger.info(
                "Security alert %s (%s) updated for %s, occurrence %d",
                alert.id, alert_type, attempt.email, details.occurrences,
            )
            return alert

        details = AlertDetails()
        details.record(attempt)
        alert = SecurityAlert(
            alert_type=alert_type,
            severity=severity_for(attempt.risk_score or 0, alert_type),
            email=attempt.email,
            user_type=attempt.user_type,
            user_id=attempt.user_id,
            ip_address=attempt.ip_address,
            description=_DESCRIPTIONS[alert_type].format(email=attempt.email)
            + f" (risk score {attempt.risk_score})",
            details=details.to_dict(),
            login_attempt_id=attempt.id,
            status="open",
            created_at=attempt.created_at,
        )
        db.session.add(alert)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(f"could not persist security alert: {exc}") from exc

    logger.warning(
        "[SECURITY ALERT] %s severity=%s email=%s ip=%s risk=%s",
        alert_type, alert.severity, attempt.email, attempt.ip_address, attempt.risk_score,
    )
    return alert
