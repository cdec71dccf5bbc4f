from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow() -> datetime:
    # naive UTC, matching what SQLite hands back for DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)
