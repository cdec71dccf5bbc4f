from models.db import db, utcnow
from models.user import AccountRef

FAILURE_REASONS = (
    "invalid_password",
    "user_not_found",
    "account_suspended",
    "account_pending",
    "other",
)

FACTOR_SEVERITIES = ("low", "medium", "high")


class LoginAttempt(db.Model):
    """One row per authentication call, success or failure."""

    __tablename__ = "login_attempts"
    __table_args__ = (
        db.Index("ix_login_attempts_email_created_at", "email", "created_at"),
        db.Index("ix_login_attempts_ip_created_at", "ip_address", "created_at"),
        db.Index("ix_login_attempts_success_created_at", "success", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), nullable=False, index=True)
    user_type = db.Column(db.String(16), nullable=True)
    user_id = db.Column(db.Integer, nullable=True)  # resolved through (user_type, user_id)

    success = db.Column(db.Boolean, nullable=False)
    failure_reason = db.Column(db.String(32), nullable=True)

    ip_address = db.Column(db.String(64), nullable=False, index=True)
    user_agent = db.Column(db.String(255), nullable=True)

    # coarse geolocation of ip_address
    country = db.Column(db.String(64), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    risk_score = db.Column(db.Integer, default=0, nullable=False, index=True)
    risk_factors = db.Column(db.JSON, default=list, nullable=False)
    blocked = db.Column(db.Boolean, default=False, nullable=False)

    metadata_json = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def account(self):
        return AccountRef.from_columns(self.user_type, self.user_id)

    @property
    def location(self):
        if not self.country and not self.city and self.latitude is None:
            return None
        out = {"country": self.country, "city": self.city}
        if self.latitude is not None and self.longitude is not None:
            out["coordinates"] = {"latitude": self.latitude, "longitude": self.longitude}
        return out

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "user_type": self.user_type,
            "user_id": self.user_id,
            "success": self.success,
            "failure_reason": self.failure_reason,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "location": self.location,
            "risk_score": self.risk_score,
            "risk_factors": list(self.risk_factors or []),
            "blocked": self.blocked,
            "metadata": self.metadata_json,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
