from flask import Blueprint, current_app, g, jsonify, request

from app.dms.api import json_body
from app.dms.auth import current_actor, current_user, verify_reentry
from app.dms.db import db_session
from app.dms.errors import ReentryFailed, ValidationFailed
from app.dms.modules.workflow_engine.service import (
    advance,
    archive,
    dashboard_summary,
    pending_tasks,
    reject,
    release_effective,
    run_transition,
)
from app.dms.rbac import require_permission
from app.dms.utils import clean_str

bp = Blueprint("workflow_engine", __name__)


@bp.post("/documents/<doc_id>/advance")
@require_permission("workflow.act")
def advance_document(doc_id: str):
    s = db_session()
    u = current_user()
    actor = current_actor()
    payload = json_body()

    if not verify_reentry(s, actor.id, payload.get("password")):
        current_app.logger.warning("signature re-entry failed user=%s document=%s request_id=%s", u.id, doc_id, g.request_id)
        raise ReentryFailed()

    reason = clean_str(payload.get("reason"))
    evidence = clean_str(payload.get("evidence")) or clean_str(u.signature)
    missing = [k for k, v in (("reason", reason), ("evidence", evidence)) if not v]
    if missing:
        raise ValidationFailed("Signature reason and evidence are required.", fields=missing)

    # None lets the engine fall back to the step's configured meaning.
    meaning = clean_str(payload.get("signatureMeaning")) or None
    d = run_transition(
        s,
        doc_id,
        advance,
        actor.id,
        actor.role,
        reason,
        meaning,
        evidence,
        notes=clean_str(payload.get("notes")) or None,
    )
    return jsonify(document=d.to_dict())


@bp.post("/documents/<doc_id>/reject")
@require_permission("workflow.act")
def reject_document(doc_id: str):
    s = db_session()
    actor = current_actor()
    payload = json_body()
    reason = clean_str(payload.get("reason"))
    if not reason:
        raise ValidationFailed("Rejection reason is required.", field="reason")
    d = run_transition(s, doc_id, reject, actor.id, actor.role, reason)
    return jsonify(document=d.to_dict())


@bp.post("/documents/<doc_id>/effective")
@require_permission("docs.release")
def make_effective(doc_id: str):
    s = db_session()
    actor = current_actor()
    d = run_transition(s, doc_id, release_effective, actor.id, actor.role)
    return jsonify(document=d.to_dict())


@bp.post("/documents/<doc_id>/archive")
@require_permission("docs.archive")
def archive_doc(doc_id: str):
    s = db_session()
    actor = current_actor()
    d = run_transition(s, doc_id, archive, actor.id, actor.role)
    return jsonify(document=d.to_dict())


@bp.get("/tasks")
@require_permission("docs.view")
def my_tasks():
    s = db_session()
    actor = current_actor()
    role = request.args.get("role") or actor.role.value
    return jsonify(role=role, tasks=pending_tasks(s, role))


@bp.get("/dashboard")
@require_permission("docs.view")
def dashboard():
    s = db_session()
    actor = current_actor()
    return jsonify(summary=dashboard_summary(s), tasks=pending_tasks(s, actor.role))
