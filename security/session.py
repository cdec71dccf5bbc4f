import hashlib
import secrets
from datetime import timedelta

from flask import current_app, request

from models import db
from models.db import utcnow
from models.session import Session
from utils.request_info import client_ip, client_user_agent


def _hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random session tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user_id: int) -> str:
    """
    Creates a server-side session and returns the RAW token (to set as cookie).
    Only the hash is stored in DB.
    """
    raw_token = secrets.token_urlsafe(32)
    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 28800)

    db.session.add(Session(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        expires_at=utcnow() + timedelta(seconds=lifetime),
        ip=client_ip(),
        user_agent=client_user_agent(),
    ))
    db.session.commit()
    return raw_token


def get_session_from_request():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "loginguard_session")
    raw_token = request.cookies.get(cookie_name)
    if not raw_token:
        return None

    sess = Session.query.filter_by(token_hash=_hash_token(raw_token), revoked=False).first()
    if not sess:
        return None

    now = utcnow()
    if sess.expires_at <= now:
        return None

    idle_seconds = current_app.config.get("IDLE_TIMEOUT_SECONDS", 1200)
    last_seen = sess.last_seen_at or sess.created_at
    if last_seen + timedelta(seconds=idle_seconds) <= now:
        return None

    sess.last_seen_at = now
    db.session.commit()
    return sess


def revoke_session(raw_token: str) -> bool:
    if not raw_token:
        return False
    sess = Session.query.filter_by(token_hash=_hash_token(raw_token)).first()
    if not sess:
        return False
    sess.revoked = True
    db.session.commit()
    return True


def revoke_all_sessions(user_id: int) -> int:
    sessions = Session.query.filter_by(user_id=user_id, revoked=False).all()
    for s in sessions:
        s.revoked = True
    db.session.commit()
    return len(sessions)
