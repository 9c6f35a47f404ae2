from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.hse.api import as_bool, as_date, as_int, current_user, json_body, require_fields
from app.hse.db import db_session
from app.hse.rbac import require_permission

from .service import (
    external_document_to_dict,
    get_external_document,
    list_external_documents,
    mark_obsolete,
    record_review,
    register_external_document,
)

bp = Blueprint("external_documents", __name__)


@bp.get("/")
@require_permission("external_docs.view")
def external_documents_list():
    s = db_session()
    rows = list_external_documents(
        s,
        status=(request.args.get("status") or "").strip() or None,
        source=(request.args.get("source") or "").strip() or None,
        due_before=as_date(request.args.get("due_before"), "due_before"),
    )
    return jsonify({"external_documents": [external_document_to_dict(x) for x in rows]})


@bp.post("/")
@require_permission("external_docs.manage")
def external_documents_register():
    s = db_session()
    u = current_user()
    data = json_body()
    require_fields(data, "document_code", "title", "source", "file_url")
    supersedes = data.get("supersedes_id")
    ext = register_external_document(
        s,
        user=u,
        document_code=data["document_code"],
        title=data["title"],
        source=data["source"],
        file_url=data["file_url"],
        file_type=data.get("file_type") or "LINK",
        file_name=data.get("file_name"),
        issued_by=data.get("issued_by"),
        version_number=data.get("version_number"),
        issue_date=as_date(data.get("issue_date"), "issue_date"),
        next_review_date=as_date(data.get("next_review_date"), "next_review_date"),
        distribution_required=as_bool(data.get("distribution_required"), False),
        department=data.get("department"),
        notes=data.get("notes"),
        supersedes_id=as_int(supersedes, "supersedes_id") if supersedes not in (None, "") else None,
    )
    s.commit()
    return jsonify({"external_document": external_document_to_dict(ext)}), 201


@bp.get("/<int:external_id>")
@require_permission("external_docs.view")
def external_document_detail(external_id: int):
    s = db_session()
    return jsonify({"external_document": external_document_to_dict(get_external_document(s, external_id))})


@bp.post("/<int:external_id>/review")
@require_permission("external_docs.manage")
def external_document_review(external_id: int):
    s = db_session()
    u = current_user()
    data = json_body()
    require_fields(data, "next_review_date")
    ext = record_review(s, external_id, user=u, next_review_date=as_date(data["next_review_date"], "next_review_date"))
    s.commit()
    return jsonify({"external_document": external_document_to_dict(ext)})


@bp.post("/<int:external_id>/obsolete")
@require_permission("external_docs.manage")
def external_document_obsolete(external_id: int):
    s = db_session()
    u = current_user()
    data = json_body()
    ext = mark_obsolete(s, external_id, user=u, reason=data.get("reason") or "")
    s.commit()
    return jsonify({"external_document": external_document_to_dict(ext)})
