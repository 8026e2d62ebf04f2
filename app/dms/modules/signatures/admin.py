from flask import Blueprint, jsonify, request

from app.dms.api import arg_datetime
from app.dms.db import db_session
from app.dms.modules.document_control.service import get_document
from app.dms.modules.signatures.service import get_signature, list_signatures
from app.dms.rbac import require_permission

bp = Blueprint("signatures", __name__)


@bp.get("/signatures")
@require_permission("audit.view")
def list_all():
    s = db_session()
    sigs = list_signatures(
        s,
        document_id=request.args.get("document_id") or None,
        user_id=request.args.get("user_id") or None,
        since=arg_datetime("since"),
        until=arg_datetime("until"),
    )
    return jsonify(signatures=[sig.to_dict() for sig in sigs])


@bp.get("/signatures/<signature_id>")
@require_permission("audit.view")
def signature_detail(signature_id: str):
    s = db_session()
    return jsonify(signature=get_signature(s, signature_id).to_dict())


@bp.get("/documents/<doc_id>/signatures")
@require_permission("docs.view")
def document_signatures(doc_id: str):
    s = db_session()
    d = get_document(s, doc_id)
    return jsonify(signatures=[sig.to_dict() for sig in list_signatures(s, document_id=d.id)])
