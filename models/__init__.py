from .db import db
from .user import User, AccountRef, resolve_account
from .session import Session
from .audit_log import AuditLog
from .login_attempt import LoginAttempt
from .security_alert import SecurityAlert
