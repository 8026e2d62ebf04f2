import pytest

from app.dms.constants import Role
from app.dms.errors import AlreadyExists, AuthenticationFailed, PermissionDenied, ValidationFailed
from app.dms.modules.users.service import (
    authenticate,
    get_user,
    register_user,
    set_user_enabled,
    update_signature,
)

from conftest import PASSWORD, ROLE_EMAILS


def _new_user_payload(**overrides):
    payload = {"name": "New Reviewer", "email": "New.Reviewer@Example.com", "password": "long-enough-1", "role": "Reviewer"}
    payload.update(overrides)
    return payload


def test_only_admin_can_register(s, users):
    with pytest.raises(PermissionDenied):
        register_user(s, _new_user_payload(), get_user(s, users[Role.QA]))

    u = register_user(s, _new_user_payload(), get_user(s, users[Role.ADMIN]))
    s.commit()
    assert u.email == "new.reviewer@example.com"
    assert u.role == "Reviewer"
    assert u.password_hash != "long-enough-1"


def test_register_validates_and_rejects_duplicates(s, users):
    admin = get_user(s, users[Role.ADMIN])
    with pytest.raises(AlreadyExists):
        register_user(s, _new_user_payload(email=ROLE_EMAILS[Role.QA]), admin)
    with pytest.raises(ValidationFailed):
        register_user(s, _new_user_payload(role="Janitor"), admin)
    with pytest.raises(ValidationFailed):
        register_user(s, _new_user_payload(password="short"), admin)


def test_authenticate_and_disable(s, users):
    u = authenticate(s, ROLE_EMAILS[Role.AUTHOR], PASSWORD)
    assert u.last_login_at is not None

    with pytest.raises(AuthenticationFailed):
        authenticate(s, ROLE_EMAILS[Role.AUTHOR], "wrong")

    admin = get_user(s, users[Role.ADMIN])
    set_user_enabled(s, users[Role.AUTHOR], False, admin)
    s.commit()
    with pytest.raises(AuthenticationFailed):
        authenticate(s, ROLE_EMAILS[Role.AUTHOR], PASSWORD)

    with pytest.raises(ValidationFailed):
        set_user_enabled(s, admin.id, False, admin)


def test_signature_statement_is_self_service(s, users):
    author = get_user(s, users[Role.AUTHOR])
    update_signature(s, author.id, "Authored per SOP-001", author)
    s.commit()
    assert get_user(s, author.id).signature == "Authored per SOP-001"

    with pytest.raises(PermissionDenied):
        update_signature(s, users[Role.QA], "Not mine", author)
    with pytest.raises(ValidationFailed):
        update_signature(s, author.id, "   ", author)
