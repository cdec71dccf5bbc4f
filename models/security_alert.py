from models.db import db, utcnow
from models.user import AccountRef

ALERT_TYPES = (
    "multiple_failed_attempts",
    "suspicious_location",
    "unusual_time",
    "new_device",
    "brute_force_detected",
    "account_takeover_attempt",
    "high_risk_login",
)

ALERT_SEVERITIES = ("low", "medium", "high", "critical")

ALERT_STATUSES = ("open", "investigating", "resolved", "false_positive")
ACTIVE_STATUSES = ("open", "investigating")
TERMINAL_STATUSES = ("resolved", "false_positive")


class SecurityAlert(db.Model):
    __tablename__ = "security_alerts"
    __table_args__ = (
        db.Index("ix_security_alerts_email_created_at", "email", "created_at"),
        db.Index("ix_security_alerts_severity_status", "severity", "status"),
        db.Index("ix_security_alerts_type_created_at", "alert_type", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)

    alert_type = db.Column(db.String(40), nullable=False)
    severity = db.Column(db.String(16), nullable=False, default="medium")

    # targeted actor
    email = db.Column(db.String(255), nullable=False)
    user_type = db.Column(db.String(16), nullable=True)
    user_id = db.Column(db.Integer, nullable=True)
    ip_address = db.Column(db.String(64), nullable=False)

    description = db.Column(db.Text, nullable=False)
    details = db.Column(db.JSON, nullable=True)

    login_attempt_id = db.Column(db.Integer, db.ForeignKey("login_attempts.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="open")
    resolved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    login_attempt = db.relationship("LoginAttempt")

    @property
    def account(self):
        return AccountRef.from_columns(self.user_type, self.user_id)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "alert_type": self.alert_type,
            "severity": self.severity,
            "email": self.email,
            "user_type": self.user_type,
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "description": self.description,
            "details": self.details or {},
            "login_attempt_id": self.login_attempt_id,
            "status": self.status,
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
