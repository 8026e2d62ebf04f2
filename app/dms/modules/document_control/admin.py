from flask import Blueprint, jsonify, request

from app.dms.api import json_body
from app.dms.auth import current_user
from app.dms.db import db_session
from app.dms.locks import document_lock
from app.dms.modules.document_control.service import (
    add_version,
    create_document,
    get_document,
    list_documents,
    update_document,
)
from app.dms.rbac import require_permission

bp = Blueprint("doc_control", __name__)


@bp.get("/")
@require_permission("docs.view")
def list_docs():
    s = db_session()
    docs = list_documents(s, status=request.args.get("status") or None, q=request.args.get("q") or None)
    return jsonify(documents=[d.to_dict() for d in docs])


@bp.post("/")
@require_permission("docs.create")
def create_doc():
    s = db_session()
    u = current_user()
    d = create_document(s, json_body(), u.id)
    s.commit()
    return jsonify(document=d.to_dict()), 201


@bp.get("/<doc_id>")
@require_permission("docs.view")
def document_detail(doc_id: str):
    s = db_session()
    return jsonify(document=get_document(s, doc_id).to_dict())


@bp.patch("/<doc_id>")
@require_permission("docs.edit")
def update_doc(doc_id: str):
    s = db_session()
    u = current_user()
    payload = json_body()
    with document_lock(doc_id):
        d = update_document(s, doc_id, payload, u.id)
        s.commit()
    return jsonify(document=d.to_dict())


@bp.get("/<doc_id>/versions")
@require_permission("docs.view")
def list_versions(doc_id: str):
    s = db_session()
    d = get_document(s, doc_id)
    return jsonify(versions=[v.to_dict() for v in d.version_history])


@bp.post("/<doc_id>/versions")
@require_permission("docs.version")
def new_version(doc_id: str):
    s = db_session()
    u = current_user()
    payload = json_body()
    with document_lock(doc_id):
        d = add_version(s, doc_id, payload.get("versionLabel") or "", payload.get("summary") or "", u.id)
        s.commit()
    return jsonify(document=d.to_dict()), 201
