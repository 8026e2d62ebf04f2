from flask import Blueprint, jsonify

from app.dms.api import json_body
from app.dms.auth import current_user
from app.dms.db import db_session
from app.dms.modules.users.service import list_users, register_user, set_user_enabled, update_signature
from app.dms.rbac import require_permission

bp = Blueprint("users", __name__)


@bp.get("/")
@require_permission("users.view")
def users_list():
    s = db_session()
    return jsonify(users=[u.to_dict() for u in list_users(s)])


@bp.post("/")
@require_permission("users.manage")
def users_create():
    s = db_session()
    actor = current_user()
    u = register_user(s, json_body(), actor)
    s.commit()
    return jsonify(user=u.to_dict()), 201


@bp.post("/<user_id>/state")
@require_permission("users.manage")
def users_set_state(user_id: str):
    s = db_session()
    actor = current_user()
    payload = json_body()
    u = set_user_enabled(s, user_id, bool(payload.get("enabled")), actor)
    s.commit()
    return jsonify(user=u.to_dict())


@bp.post("/<user_id>/signature")
def users_signature(user_id: str):
    # Any signed-in user may maintain their own statement; the service gates the rest.
    s = db_session()
    actor = current_user()
    u = update_signature(s, user_id, json_body().get("signature") or "", actor)
    s.commit()
    return jsonify(user=u.to_dict())
