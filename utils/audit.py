from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from flask import current_app, session
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import AuditLog


def log_event(action: str, target: str | None = None, detail: str | None = None) -> None:
    """Record who looked at which report.

    The audit trail must never block a report, so a failed insert is rolled
    back and logged instead of raised.
    """
    user_id = session.get("user_id") or session.get("student_id")
    user_role = session.get("role") or ("student" if session.get("student_logged_in") else "admin")
    try:
        db.session.add(
            AuditLog(
                user_id=user_id,
                user_role=user_role,
                action=action,
                target=target,
                detail=detail,
                created_at=datetime.utcnow(),
            )
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to write audit event %s", action)


def fetch_audit_logs(limit: int = 50) -> List[Dict[str, Any]]:
    rows = AuditLog.query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
    return [
        {
            "id": r.id,
            "user_id": r.user_id,
            "user_role": r.user_role,
            "action": r.action,
            "target": r.target,
            "detail": r.detail,
            "created_at": r.created_at,
        }
        for r in rows
    ]
