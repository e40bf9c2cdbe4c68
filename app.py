import os
import uuid

from flask import Flask, g, jsonify, redirect, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.middleware.proxy_fix import ProxyFix

from config import Config
from extensions import db, limiter, mail, migrate
from routes.report_routes import reports_bp
from routes.student_portal import student_portal_bp
from utils.errors import ReportError

app = Flask(__name__)

# Load configuration from Config (environment overrides live inside Config)
app.config.from_object(Config)

# Trust reverse proxy headers for scheme/host when enabled
if app.config.get("TRUST_PROXY", True):
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)  # type: ignore[assignment]


# Set modern security headers on every response
@app.after_request
def _set_security_headers(resp):
    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    resp.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    resp.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    resp.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    resp.headers.setdefault("Content-Security-Policy", "default-src 'self'; frame-ancestors 'self'")
    # HSTS only when cookies marked secure (implies HTTPS)
    if app.config.get("SESSION_COOKIE_SECURE", False):
        resp.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    if getattr(g, "request_id", None):
        resp.headers.setdefault("X-Request-ID", g.request_id)
    return resp


# Enforce HTTPS for all requests (except localhost) when enabled
@app.before_request
def _enforce_https_redirect():
    if not app.config.get("ENFORCE_HTTPS", False):
        return None
    host = (request.host or "").split(":")[0]
    if host in ("127.0.0.1", "localhost"):
        return None
    xf_proto = request.headers.get("X-Forwarded-Proto", "").split(",")[0].strip().lower()
    if request.is_secure or xf_proto == "https":
        return None
    return redirect(request.url.replace("http://", "https://", 1), code=301)


# Assign a per-request correlation id for tracing
@app.before_request
def _assign_request_id():
    g.request_id = uuid.uuid4().hex[:16]


db.init_app(app)
migrate.init_app(app, db)
limiter.init_app(app)
mail.init_app(app)

app.register_blueprint(reports_bp)
app.register_blueprint(student_portal_bp)


@app.errorhandler(ReportError)
def _report_error(exc: ReportError):
    if exc.status_code >= 500:
        app.logger.error("report request failed [%s]: %s", getattr(g, "request_id", "-"), exc)
    else:
        app.logger.info("rejected report request: %s %s", exc.kind, exc)
    return jsonify(exc.to_dict()), exc.status_code


@app.errorhandler(403)
def _forbidden(_exc):
    return jsonify({"ok": False, "error": "Forbidden", "message": "You do not have access to this page."}), 403


@app.errorhandler(429)
def _rate_limited(_exc):
    return jsonify({"ok": False, "error": "RateLimited", "message": "Too many requests, slow down."}), 429


@app.route("/healthz")
def healthz():
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db.session.rollback()
        app.logger.exception("health check: database unreachable")
        return jsonify({"ok": False, "db": "down"}), 503
    return jsonify({"ok": True, "db": "up"})


# Create tables on startup for quick local setups; migrations are the normal path
if os.environ.get("AUTO_CREATE_TABLES", "").strip().lower() in ("1", "true", "yes"):
    with app.app_context():
        db.create_all()


if __name__ == "__main__":
    app.run(debug=True)
