from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select
from werkzeug.security import check_password_hash, generate_password_hash

from app.dms.audit import record_event
from app.dms.constants import AuditAction, EntityType, Role
from app.dms.errors import AlreadyExists, AuthenticationFailed, PermissionDenied, UserNotFound, ValidationFailed
from app.dms.models import User
from app.dms.utils import clean_str, new_id, parse_enum, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

MIN_PASSWORD_LENGTH = 8


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def find_by_email(s: "Session", email: str) -> User | None:
    return s.scalars(select(User).where(func.lower(User.email) == normalize_email(email))).first()


def get_user(s: "Session", user_id: str) -> User:
    u = s.get(User, user_id)
    if not u:
        raise UserNotFound(user_id=user_id)
    return u


def list_users(s: "Session") -> list[User]:
    return list(s.scalars(select(User).order_by(User.created_at.desc())))


def create_user(
    s: "Session",
    *,
    name: str,
    email: str,
    password: str,
    role: Role | str,
    signature: str | None = None,
) -> User:
    """Unchecked insert used by seeding; `register_user` is the gated path."""
    email = normalize_email(email)
    if find_by_email(s, email):
        raise AlreadyExists("User with this email already exists.", email=email)
    u = User(
        id=new_id(),
        name=clean_str(name),
        email=email,
        role=parse_enum(Role, role, "role").value,
        password_hash=generate_password_hash(password),
        signature=clean_str(signature) or None,
        enabled=True,
        created_at=utcnow(),
    )
    s.add(u)
    s.flush()
    return u


def register_user(s: "Session", payload: dict, actor: User) -> User:
    """Provision an account. Only administrators may do this."""
    if actor.role_enum is not Role.ADMIN:
        raise PermissionDenied("Only administrators can provision new users.")

    errors = []
    if not clean_str(payload.get("name")):
        errors.append("name")
    if "@" not in normalize_email(payload.get("email")):
        errors.append("email")
    if len(payload.get("password") or "") < MIN_PASSWORD_LENGTH:
        errors.append("password")
    if errors:
        raise ValidationFailed(f"Invalid fields: {', '.join(errors)}", fields=errors)

    u = create_user(
        s,
        name=payload["name"],
        email=payload["email"],
        password=payload["password"],
        role=payload.get("role") or Role.VIEWER.value,
        signature=payload.get("signature"),
    )
    record_event(
        s,
        actor_id=actor.id,
        action=AuditAction.USER_REGISTERED,
        entity_type=EntityType.USER,
        entity_id=u.id,
        summary=f"Provisioned user {u.email} as {u.role}",
        metadata={"email": u.email, "role": u.role},
    )
    return u


def set_user_enabled(s: "Session", user_id: str, enabled: bool, actor: User) -> User:
    if actor.role_enum is not Role.ADMIN:
        raise PermissionDenied("Only administrators can enable or disable users.")
    if actor.id == user_id:
        raise ValidationFailed("You cannot change the state of your own account.")
    u = get_user(s, user_id)
    u.enabled = bool(enabled)
    record_event(
        s,
        actor_id=actor.id,
        action=AuditAction.USER_UPDATED,
        entity_type=EntityType.USER,
        entity_id=u.id,
        summary=f"User {u.email} {'enabled' if u.enabled else 'disabled'}",
        metadata={"enabled": u.enabled},
    )
    return u


def update_signature(s: "Session", user_id: str, signature: str, actor: User) -> User:
    """Users maintain their own default evidence statement; admins may edit anyone's."""
    if actor.id != user_id and actor.role_enum is not Role.ADMIN:
        raise PermissionDenied("You can only update your own signature.")
    signature = clean_str(signature)
    if not signature:
        raise ValidationFailed("Signature statement is required.", field="signature")
    u = get_user(s, user_id)
    u.signature = signature
    record_event(
        s,
        actor_id=actor.id,
        action=AuditAction.USER_UPDATED,
        entity_type=EntityType.USER,
        entity_id=u.id,
        summary=f"Signature statement updated for {u.email}",
        metadata={"signature": signature},
    )
    return u


def authenticate(s: "Session", email: str, password: str) -> User:
    u = find_by_email(s, email)
    if not u or not check_password_hash(u.password_hash, password or ""):
        raise AuthenticationFailed("Invalid credentials.")
    if not u.enabled:
        raise AuthenticationFailed("Account is disabled. Contact QA administration.")
    u.last_login_at = utcnow()
    return u


def check_password(s: "Session", user_id: str, password: str) -> bool:
    u = s.get(User, user_id)
    if not u or not u.enabled:
        return False
    return check_password_hash(u.password_hash, password or "")
