from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.hse.api import current_user, json_body, require_fields
from app.hse.db import db_session
from app.hse.rbac import require_permission

from .service import (
    change_request_to_dict,
    complete_change_request,
    create_change_request,
    list_change_requests,
    resolve,
)

bp = Blueprint("change_requests", __name__)


@bp.post("/documents/<int:doc_id>")
@require_permission("change_requests.create")
def change_request_create(doc_id: int):
    s = db_session()
    u = current_user()
    data = json_body()
    require_fields(data, "description")
    cr = create_change_request(
        s,
        doc_id,
        requester=u,
        description=data["description"],
        reason=data.get("reason"),
        request_type=data.get("request_type"),
        priority=data.get("priority"),
        proposed_changes=data.get("proposed_changes"),
        affected_sections=data.get("affected_sections"),
    )
    s.commit()
    return jsonify({"change_request": change_request_to_dict(cr)}), 201


@bp.get("/documents/<int:doc_id>")
@require_permission("docs.view")
def change_request_list(doc_id: int):
    s = db_session()
    rows = list_change_requests(s, doc_id, status=(request.args.get("status") or "").strip() or None)
    return jsonify({"change_requests": [change_request_to_dict(cr) for cr in rows]})


@bp.post("/<int:change_request_id>/resolve")
@require_permission("change_requests.resolve")
def change_request_resolve(change_request_id: int):
    s = db_session()
    u = current_user()
    data = json_body()
    require_fields(data, "decision")
    cr = resolve(s, change_request_id, data["decision"], resolver=u, comments=data.get("comments"))
    s.commit()
    return jsonify({"change_request": change_request_to_dict(cr)})


@bp.post("/<int:change_request_id>/complete")
@require_permission("change_requests.resolve")
def change_request_complete(change_request_id: int):
    s = db_session()
    cr = complete_change_request(s, change_request_id, user=current_user())
    s.commit()
    return jsonify({"change_request": change_request_to_dict(cr)})
