from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.hse.api import as_bool, as_date, as_int_list, current_user, json_body, notifier, require_fields
from app.hse.db import db_session
from app.hse.rbac import require_permission

from .service import (
    acknowledge,
    compliance_summary,
    distribute,
    distribution_to_dict,
    get_compliance_status,
    list_for_recipient,
    mark_read,
)

bp = Blueprint("distribution", __name__)


@bp.post("/documents/<int:doc_id>")
@require_permission("distribution.send")
def distribution_send(doc_id: int):
    s = db_session()
    u = current_user()
    data = json_body()
    require_fields(data, "recipients")
    batch = distribute(
        s,
        doc_id,
        as_int_list(data["recipients"], "recipients"),
        user=u,
        is_mandatory=as_bool(data.get("is_mandatory"), True),
        deadline=as_date(data.get("deadline"), "deadline"),
        notifier=notifier(),
    )
    s.commit()
    return jsonify(batch.to_dict()), 201


@bp.post("/<int:distribution_id>/read")
@require_permission("distribution.view")
def distribution_read(distribution_id: int):
    s = db_session()
    dist = mark_read(s, distribution_id, actor=current_user())
    s.commit()
    return jsonify({"distribution": distribution_to_dict(dist)})


@bp.post("/<int:distribution_id>/acknowledge")
@require_permission("distribution.view")
def distribution_acknowledge(distribution_id: int):
    s = db_session()
    dist = acknowledge(
        s,
        distribution_id,
        actor=current_user(),
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    s.commit()
    return jsonify({"distribution": distribution_to_dict(dist)})


@bp.get("/documents/<int:doc_id>/compliance")
@require_permission("distribution.send")
def distribution_compliance(doc_id: int):
    s = db_session()
    entries = get_compliance_status(s, doc_id)
    return jsonify({"entries": [e.to_dict() for e in entries], "summary": compliance_summary(entries)})


@bp.get("/mine")
@require_permission("distribution.view")
def distribution_mine():
    s = db_session()
    u = current_user()
    pending_only = as_bool(request.args.get("pending"), False)
    rows = list_for_recipient(s, u.id, include_acknowledged=not pending_only)
    return jsonify({"distributions": [distribution_to_dict(x) for x in rows]})
