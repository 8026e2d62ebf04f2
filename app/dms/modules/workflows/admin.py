from flask import Blueprint, jsonify

from app.dms.api import json_body
from app.dms.auth import current_user
from app.dms.db import db_session
from app.dms.modules.workflows.service import create_workflow, get_workflow, list_workflows, update_workflow
from app.dms.rbac import require_permission

bp = Blueprint("workflows", __name__)


@bp.get("/")
@require_permission("workflows.view")
def list_templates():
    s = db_session()
    return jsonify(workflows=[w.to_dict() for w in list_workflows(s)])


@bp.post("/")
@require_permission("workflows.manage")
def create_template():
    s = db_session()
    u = current_user()
    w = create_workflow(s, json_body(), u.id)
    s.commit()
    return jsonify(workflow=w.to_dict()), 201


@bp.get("/<workflow_id>")
@require_permission("workflows.view")
def template_detail(workflow_id: str):
    s = db_session()
    return jsonify(workflow=get_workflow(s, workflow_id).to_dict())


@bp.patch("/<workflow_id>")
@require_permission("workflows.manage")
def update_template(workflow_id: str):
    s = db_session()
    u = current_user()
    w = update_workflow(s, workflow_id, json_body(), u.id)
    s.commit()
    return jsonify(workflow=w.to_dict())
