from __future__ import annotations

from flask import (
    Blueprint,
    request,
    current_app,
    jsonify,
    Response,
)
from flask_mail import Message

from extensions import limiter, mail
from utils import admin_required
from utils.audit import fetch_audit_logs, log_event
from utils.errors import InvalidFilter
from utils.export import CONTENT_TYPES, export, export_filename, to_csv
from utils.financial_status import refresh_financial_status
from utils.ledger import FILTER_VALUES
from utils.periods import PERIOD_TOKENS
from utils.reports import DEFAULT_PERIODS, REPORT_NAMES, generate_report


reports_bp = Blueprint("reports", __name__, url_prefix="/admin/reports")


def _report_from_request(name: str):
    args = request.values
    filters = {key: args.get(key) for key in FILTER_VALUES if args.get(key) not in (None, "")}
    return generate_report(
        name,
        period_token=(args.get("period") or "").strip() or None,
        date_from=args.get("date_from"),
        date_to=args.get("date_to"),
        filters=filters,
    )


def _audit(name: str, action: str, bundle) -> None:
    period = bundle.period
    log_event(
        f"{name}_report_{action}",
        target=name,
        detail=f"Period: {period['from']} to {period['to']}; filters: {bundle.filters or 'none'}",
    )


@reports_bp.route("/")
@admin_required
def index():
    return jsonify({
        "ok": True,
        "reports": [{"name": n, "default_period": DEFAULT_PERIODS[n]} for n in REPORT_NAMES],
        "periods": list(PERIOD_TOKENS),
        "filters": {k: (list(v) if v else None) for k, v in FILTER_VALUES.items()},
        "formats": list(CONTENT_TYPES),
    })


@reports_bp.route("/activity")
@admin_required
def activity():
    try:
        limit = min(int(request.args.get("limit", 50)), 500)
    except ValueError:
        raise InvalidFilter("limit must be an integer") from None
    return jsonify({"ok": True, "events": fetch_audit_logs(limit)})


@reports_bp.route("/financial-status/refresh", methods=["POST"])
@admin_required
def refresh_status():
    student_id = request.values.get("student_id")
    try:
        sid = int(student_id) if student_id else None
    except ValueError:
        raise InvalidFilter("student_id must be an integer") from None
    dry_run = (request.values.get("dry_run") or "").lower() in ("1", "true", "yes")
    result = refresh_financial_status(student_id=sid, dry_run=dry_run)
    log_event("financial_status_refresh", target=str(sid or "all"),
              detail=f"created={result['created']} updated={result['updated']} dry_run={dry_run}")
    result["drifted"] = [list(k) for k in result["drifted"]]
    return jsonify({"ok": True, **result})


@reports_bp.route("/<name>")
@admin_required
def view(name: str):
    bundle = _report_from_request(name)
    _audit(name, "view", bundle)
    return jsonify({"ok": True, "report": bundle.as_dict()})


@reports_bp.route("/<name>/export")
@admin_required
def download(name: str):
    fmt = (request.args.get("format") or "csv").strip().lower()
    section = (request.args.get("section") or "").strip() or None
    bundle = _report_from_request(name)
    body = export(bundle, fmt, section)
    _audit(name, "export", bundle)
    return Response(body, headers={
        "Content-Type": CONTENT_TYPES[fmt],
        "Content-Disposition": f"attachment; filename={export_filename(bundle, fmt, section)}",
    })


@reports_bp.route("/<name>/email", methods=["POST"])
@limiter.limit("6 per minute")
@admin_required
def email(name: str):
    recipient = (request.form.get("recipient") or "").strip()
    recipients = [recipient] if recipient else list(current_app.config.get("REPORT_EMAIL_RECIPIENTS", ()))
    if not recipients:
        return jsonify({"ok": False, "error": "NoRecipients", "message": "No report recipients configured."}), 400

    sender = (
        current_app.config.get("MAIL_SENDER")
        or current_app.config.get("MAIL_DEFAULT_SENDER")
        or current_app.config.get("MAIL_USERNAME")
        or None
    )
    if not sender:
        return jsonify({"ok": False, "error": "MailNotConfigured", "message": "Set MAIL_SENDER or MAIL_USERNAME."}), 400

    bundle = _report_from_request(name)
    section = (request.form.get("section") or "").strip() or None
    data = to_csv(bundle, section)
    brand = current_app.config.get("BRAND_NAME", "Tuition Portal")
    msg = Message(
        subject=f"{brand} | {name.replace('_', ' ').title()} report {bundle.period['from']} to {bundle.period['to']}",
        sender=sender,
        recipients=recipients,
    )
    msg.body = f"Attached is the {name.replace('_', ' ')} report for {bundle.period['from']} to {bundle.period['to']}."
    msg.attach(export_filename(bundle, "csv", section), "text/csv", data)
    try:
        mail.send(msg)
    except (OSError, RuntimeError):
        current_app.logger.exception("Failed to email %s report", name)
        log_event(f"{name}_report_email_failed", target=name, detail=", ".join(recipients))
        return jsonify({"ok": False, "error": "MailFailed", "message": "Failed to send the report email."}), 502
    _audit(name, "email", bundle)
    return jsonify({"ok": True, "recipients": recipients})
