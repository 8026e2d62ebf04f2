from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import Blueprint, abort, current_app, g, jsonify, request, session
from sqlalchemy.orm import Session

from app.dms.audit import record_event
from app.dms.constants import SYSTEM_USER_ID, AuditAction, EntityType, Role
from app.dms.db import db_session
from app.dms.errors import AuthenticationFailed
from app.dms.models import User
from app.dms.modules.users.service import authenticate, check_password, normalize_email
from app.dms.security import ensure_csrf_token
from app.dms.utils import utcnow

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


@dataclass(frozen=True)
class Actor:
    id: str
    role: Role


def _check_rate_limit(ip: str) -> bool:
    now = utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    s = db_session()
    user = s.get(User, user_id)
    if not user or not user.enabled:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        abort(401)
    return u


def current_actor() -> Actor:
    u = current_user()
    return Actor(id=u.id, role=u.role_enum)


def verify_reentry(s: Session, actor_id: str, credential: str | None) -> bool:
    """Credential re-entry check performed immediately before a signature is applied."""
    if not credential:
        return False
    return check_password(s, actor_id, credential)


@bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        return jsonify(error="rate_limited", message="Too many login attempts. Please wait 5 minutes."), 429

    _record_attempt(ip)

    s = db_session()
    try:
        user = authenticate(s, email, password)
    except AuthenticationFailed as e:
        record_event(
            s,
            actor_id=SYSTEM_USER_ID,
            action=AuditAction.USER_LOGIN_FAILED,
            entity_type=EntityType.USER,
            entity_id=email or "unknown",
            summary=f"Failed login for {email or 'unknown'}",
            metadata={"email": email, "reason": e.message},
        )
        s.commit()
        current_app.logger.warning("login failed email=%s ip=%s request_id=%s", email, ip, g.request_id)
        raise

    session.clear()
    session["user_id"] = user.id
    _login_attempts[ip].clear()
    record_event(
        s,
        actor_id=user.id,
        action=AuditAction.USER_LOGIN,
        entity_type=EntityType.USER,
        entity_id=user.id,
        summary=f"{user.name} signed in",
    )
    s.commit()
    return jsonify(user=user.to_dict(), csrf_token=ensure_csrf_token())


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(
            s,
            actor_id=user.id,
            action=AuditAction.USER_LOGOUT,
            entity_type=EntityType.USER,
            entity_id=user.id,
            summary=f"{user.name} signed out",
        )
        s.commit()
    session.pop("user_id", None)
    return jsonify(ok=True)


@bp.get("/me")
def me():
    u = current_user()
    return jsonify(user=u.to_dict(), csrf_token=ensure_csrf_token())
