from __future__ import annotations

from flask import Blueprint, Response, g, jsonify, request

from models import INVOICE_STATUSES
from utils import student_required
from utils.audit import log_event
from utils.errors import InvalidFilter
from utils.export import CONTENT_TYPES, export_filename, to_csv
from utils.reports import student_dashboard


student_portal_bp = Blueprint("student_portal", __name__, url_prefix="/portal")


@student_portal_bp.route("/dashboard")
@student_required
def dashboard():
    """The signed-in student's balances, invoices and recent payments."""
    bundle = student_dashboard(g.current_user["id"])
    log_event("student_dashboard_view", target=str(g.current_user["id"]))
    return jsonify({"ok": True, "dashboard": bundle.as_dict()})


@student_portal_bp.route("/invoices")
@student_required
def invoices():
    status = (request.args.get("status") or "").strip().lower()
    if status and status not in INVOICE_STATUSES:
        raise InvalidFilter(f"Invalid status {status!r}")
    data = student_dashboard(g.current_user["id"]).as_dict()
    rows = data["sections"]["invoices"]
    if status:
        rows = [r for r in rows if r["status"] == status]
    return jsonify({
        "ok": True,
        "invoices": rows,
        "summary": data["summary"],
    })


@student_portal_bp.route("/statement.csv")
@student_required
def statement():
    bundle = student_dashboard(g.current_user["id"])
    section = (request.args.get("section") or "").strip() or None
    data = to_csv(bundle, section)
    return Response(data, headers={
        "Content-Type": CONTENT_TYPES["csv"],
        "Content-Disposition": f"attachment; filename={export_filename(bundle, 'csv', section)}",
    })
