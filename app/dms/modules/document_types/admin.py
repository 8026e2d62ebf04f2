from flask import Blueprint, jsonify, request

from app.dms.api import json_body
from app.dms.auth import current_user
from app.dms.db import db_session
from app.dms.modules.document_types.service import (
    create_document_type,
    get_document_type,
    list_document_types,
    update_document_type,
)
from app.dms.rbac import require_permission

bp = Blueprint("document_types", __name__)


@bp.get("/")
@require_permission("doc_types.view")
def list_types():
    s = db_session()
    include_obsolete = (request.args.get("include_obsolete") or "1") != "0"
    return jsonify(documentTypes=[t.to_dict() for t in list_document_types(s, include_obsolete=include_obsolete)])


@bp.post("/")
@require_permission("doc_types.manage")
def create_type():
    s = db_session()
    u = current_user()
    dt = create_document_type(s, json_body(), u.id)
    s.commit()
    return jsonify(documentType=dt.to_dict()), 201


@bp.get("/<type_id>")
@require_permission("doc_types.view")
def type_detail(type_id: str):
    s = db_session()
    return jsonify(documentType=get_document_type(s, type_id).to_dict())


@bp.patch("/<type_id>")
@require_permission("doc_types.manage")
def update_type(type_id: str):
    s = db_session()
    u = current_user()
    dt = update_document_type(s, type_id, json_body(), u.id)
    s.commit()
    return jsonify(documentType=dt.to_dict())
