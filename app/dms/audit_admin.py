from flask import Blueprint, jsonify, request

from app.dms.api import arg_datetime, arg_limit
from app.dms.audit import list_events, replay_document, verify_chain
from app.dms.db import db_session
from app.dms.modules.document_control.service import get_document
from app.dms.rbac import require_permission

bp = Blueprint("audit", __name__)


@bp.get("/")
@require_permission("audit.view")
def audit_log():
    s = db_session()
    events = list_events(
        s,
        entity_type=request.args.get("entity_type") or None,
        entity_id=request.args.get("entity_id") or None,
        document_id=request.args.get("document_id") or None,
        action=request.args.get("action") or None,
        actor_user_id=request.args.get("actor") or None,
        since=arg_datetime("since"),
        until=arg_datetime("until"),
        q=request.args.get("q") or None,
        limit=arg_limit(),
    )
    return jsonify(events=[e.to_dict() for e in events])


@bp.get("/verify")
@require_permission("audit.view")
def verify():
    s = db_session()
    report = verify_chain(s)
    return jsonify(report.to_dict()), (200 if report.ok else 409)


@bp.get("/replay/<doc_id>")
@require_permission("audit.view")
def replay(doc_id: str):
    s = db_session()
    d = get_document(s, doc_id)
    state = replay_document(s, d.id)
    state["matchesStored"] = (
        state["status"] == d.workflow_status and state["currentStepIndex"] == d.current_step_index
    )
    return jsonify(state)
