from flask import Blueprint, g, jsonify

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    user = getattr(g, "current_user", None)
    return jsonify(service="dms", user=user.to_dict() if user else None)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for container probes. No DB access, minimal overhead.
    """
    return "ok", 200
