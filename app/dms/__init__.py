import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request, session
from werkzeug.exceptions import HTTPException

from app.dms.auth import bp as auth_bp, load_current_user
from app.dms.audit_admin import bp as audit_bp
from app.dms.config import load_config
from app.dms.db import init_db, session_scope, teardown_db_session
from app.dms.errors import DmsError
from app.dms.models import Base
from app.dms.modules.document_control.admin import bp as doc_control_bp
from app.dms.modules.document_types.admin import bp as document_types_bp
from app.dms.modules.signatures.admin import bp as signatures_bp
from app.dms.modules.users.admin import bp as users_bp
from app.dms.modules.workflow_engine.admin import bp as workflow_engine_bp
from app.dms.modules.workflows.admin import bp as workflows_bp
from app.dms.routes import bp as routes_bp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.json.sort_keys = False

    logging.getLogger().setLevel(app.config["LOG_LEVEL"])
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # CSRF protection (minimal)
    from app.dms.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Allow safe auth endpoints to pass through (login/logout)
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return jsonify(error="csrf_failed", message="CSRF token missing or invalid."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    if app.config.get("AUTO_CREATE_SCHEMA"):
        app.logger.warning("AUTO_CREATE_SCHEMA=1 set; creating missing tables without Alembic.")
        Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    if app.config.get("BOOTSTRAP_DEFAULTS"):
        from app.dms.bootstrap import bootstrap_defaults

        with session_scope(app) as s:
            if bootstrap_defaults(s):
                app.logger.info("Seeded default document types and workflow.")

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(users_bp, url_prefix="/api/users")
    app.register_blueprint(document_types_bp, url_prefix="/api/document-types")
    app.register_blueprint(workflows_bp, url_prefix="/api/workflows")
    app.register_blueprint(doc_control_bp, url_prefix="/api/documents")
    app.register_blueprint(workflow_engine_bp, url_prefix="/api")
    app.register_blueprint(signatures_bp, url_prefix="/api")
    app.register_blueprint(audit_bp, url_prefix="/api/audit")

    def _load_user_wrapper():
        if request.path.startswith(("/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(DmsError)
    def _err_dms(e: DmsError):  # type: ignore[no-redef]
        if e.status_code >= 500:
            app.logger.error("%s (request_id=%s): %s", e.code, getattr(g, "request_id", None), e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        if e.code == 403:
            missing = getattr(g, "missing_permission", None)
            if missing:
                app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return jsonify(error=(e.name or "error").lower().replace(" ", "_"), message=e.description), e.code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return jsonify(error="internal_error", message="Internal server error.", request_id=rid), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
