from .health import health_bp
from .auth import auth_bp
from .security_admin import security_bp
from .audit_logs import audit_bp
