import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

# Models first: the module model files import Base from here.
from app.hse import models as _models  # noqa: F401
from app.hse.config import load_config, production_problems
from app.hse.db import init_db, teardown_db_session
from app.hse.errors import DocumentControlError
from app.hse.security import UNGUARDED_PATH_PREFIXES, csrf_guard
from app.hse.storage import StorageError, storage_from_config
from app.hse.routes import bp as routes_bp
from app.hse.auth import bp as auth_bp, load_current_user
from app.hse.modules.document_control.admin import bp as doc_control_bp
from app.hse.modules.approvals.admin import bp as approvals_bp
from app.hse.modules.esign.admin import bp as esign_bp
from app.hse.modules.distribution.admin import bp as distribution_bp
from app.hse.modules.change_requests.admin import bp as change_requests_bp
from app.hse.modules.external_documents.admin import bp as external_documents_bp

_BLUEPRINTS = (
    (routes_bp, None),
    (auth_bp, "/auth"),
    (doc_control_bp, "/api/documents"),
    (approvals_bp, "/api/approvals"),
    (esign_bp, "/api/esign"),
    (distribution_bp, "/api/distributions"),
    (change_requests_bp, "/api/change-requests"),
    (external_documents_bp, "/api/external-documents"),
)

_S3_REQUIRED = ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")


def _setup_storage(app: Flask) -> None:
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing = [key for key in _S3_REQUIRED if not app.config.get(key)]
        if missing:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing))
    storage = storage_from_config(app.config)
    try:
        storage.check()
        app.logger.info("Storage health check PASSED (%s backend)", storage.name)
    except StorageError as e:
        app.logger.error("STORAGE CONFIG ERROR: %s", e)
    app.extensions["hse_storage"] = storage


def _dispose_engine_on_fork(app: Flask) -> None:
    # gunicorn --preload forks workers after the engine exists.
    if not hasattr(os, "register_at_fork"):
        return

    def _after_fork_child():
        engine = app.extensions.get("sqlalchemy_engine")
        if engine:
            engine.dispose()
            app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

    os.register_at_fork(after_in_child=_after_fork_child)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DocumentControlError)
    def _err_domain(e: DocumentControlError):
        app.logger.warning(
            "%s on %s %s: %s context=%s request_id=%s",
            e.code,
            request.method,
            request.path,
            e.message,
            e.context,
            getattr(g, "request_id", None),
        )
        return jsonify(e.to_dict()), e.http_status

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):
        body = {"error": (e.name or "error").lower().replace(" ", "_"), "message": e.description}
        missing = getattr(g, "missing_permission", None) if e.code == 403 else None
        if missing:
            body["context"] = {"missing_permission": missing}
        return jsonify(body), e.code

    @app.errorhandler(500)
    def _err_500(e):
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "internal_server_error", "message": "Internal server error."}), 500


def _load_user():
    if request.path.startswith(UNGUARDED_PATH_PREFIXES):
        g.current_user = None
        return None
    return load_current_user()


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    problems = production_problems(app.config)
    if problems:
        for p in problems:
            app.logger.critical("PRODUCTION CONFIG ERROR: %s", p)
        raise RuntimeError(problems[0])
    if app.config.get("ESIGN_PROVIDER") == "http" and not app.config.get("ESIGN_WEBHOOK_SECRET"):
        app.logger.warning("ESIGN_WEBHOOK_SECRET is empty; e-sign callbacks are not authenticated.")

    init_db(app)
    _dispose_engine_on_fork(app)
    _setup_storage(app)

    app.before_request(csrf_guard)
    for bp, prefix in _BLUEPRINTS:
        app.register_blueprint(bp, url_prefix=prefix)
    app.before_request(_load_user)
    app.teardown_appcontext(teardown_db_session)
    _register_error_handlers(app)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")
    return app
