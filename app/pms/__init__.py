import logging
import os

from flask import Flask, g, jsonify, render_template, request
from dotenv import load_dotenv

from app.pms.config import load_config
from app.pms.db import init_db, teardown_db_session
from app.pms.errors import RepoError
from app.pms.routes import bp as routes_bp
from app.pms.auth import bp as auth_bp, load_current_user
from app.pms.admin import bp as admin_bp
from app.pms.modules.tenants.admin import bp as tenants_bp
from app.pms.modules.properties.admin import bp as properties_bp
from app.pms.modules.onboarding.admin import bp as onboarding_bp
from app.pms.modules.onboarding.portal import bp as tenant_portal_bp
from app.pms.modules.tenant_orgs.admin import bp as tenant_orgs_bp
from app.pms.modules.tenant_orgs.portal import bp as tenant_org_portal_bp
from app.pms.modules.banking.admin import bp as banking_bp
from app.pms.modules.meter_readings.admin import bp as meter_readings_bp
from app.pms.modules.reports.admin import bp as reports_bp
from app.pms.modules.settings.admin import bp as settings_bp
from app.pms.modules.notifications.admin import bp as notifications_bp

_UNGUARDED_PREFIXES = ("/static/", "/health", "/healthz")


def _is_api_request() -> bool:
    return request.path.startswith("/api/")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())

    from app.pms.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_permissions() -> dict:
        from app.pms.rbac import user_has_permission

        def has_perm(key: str) -> bool:
            return user_has_permission(getattr(g, "current_user", None), key)

        return {"has_perm": has_perm}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.before_request
    def _csrf_guard():
        # JSON APIs rely on the SameSite auth cookie; form posts carry the session token.
        if request.path.startswith(_UNGUARDED_PREFIXES) or _is_api_request():
            return None
        ensure_csrf_token()
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400
        return None

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        for key in ("SECRET_KEY", "AUTH_SECRET"):
            if not app.config.get(key) or str(app.config[key]) in ("", "change-me"):
                raise RuntimeError(f"{key} must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [k for k in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(k)]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(tenants_bp)
    app.register_blueprint(properties_bp)
    app.register_blueprint(onboarding_bp)
    app.register_blueprint(tenant_portal_bp)
    app.register_blueprint(tenant_orgs_bp)
    app.register_blueprint(tenant_org_portal_bp)
    app.register_blueprint(banking_bp)
    app.register_blueprint(meter_readings_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(notifications_bp)

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(RepoError)
    def _err_repo(e: RepoError):
        if e.status >= 500:
            app.logger.error("%s (request_id=%s)", e.message, getattr(g, "request_id", None))
        return jsonify(e.to_dict()), e.status

    @app.errorhandler(500)
    def _err_500(e):
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        if _is_api_request():
            return jsonify({"ok": False, "error": "Internal server error."}), 500
        return render_template("errors/500.html"), 500

    @app.errorhandler(404)
    def _err_404(e):
        if _is_api_request():
            return jsonify({"ok": False, "error": "Not found."}), 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(403)
    def _err_403(e):
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        if _is_api_request():
            return jsonify({"ok": False, "error": "Forbidden."}), 403
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(413)
    def _err_413(e):
        if _is_api_request():
            return jsonify({"ok": False, "error": "File too large."}), 413
        return render_template("errors/400.html", message="File too large. Maximum size is 25MB."), 413

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
