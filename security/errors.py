class SecurityError(Exception):
    """Base class for errors raised by the login-risk subsystem."""


class ValidationError(SecurityError):
    """Malformed attempt input or an unknown enum value. Nothing was written."""


class StorageError(SecurityError):
    """The database rejected or could not complete a write/read."""


class ScoringTimeout(SecurityError):
    """The history lookup did not finish within SCORING_TIMEOUT_MS."""


class InvalidTransitionError(SecurityError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move alert from {current!r} to {requested!r}")
        self.current = current
        self.requested = requested


class AlertNotFound(SecurityError):
    def __init__(self, alert_id):
        super().__init__(f"Security alert {alert_id} not found")
        self.alert_id = alert_id
