from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request, send_file

from app.hse import constants as C
from app.hse.api import as_bool, as_date, as_int, current_user, document_storage, json_body, require_fields
from app.hse.audit import event_to_dict, list_events
from app.hse.db import db_session
from app.hse.errors import ValidationError
from app.hse.rbac import require_permission
from app.hse.storage import StoredFileMissing

from .service import (
    FileRef,
    archive,
    create_document,
    create_draft_version,
    dispose,
    document_to_dict,
    export_log_to_dict,
    file_digest_and_bytes,
    get_document,
    get_version,
    list_documents,
    list_exports,
    normalize_document_code,
    publish,
    record_export,
    sanitize_upload_filename,
    storage_key_for,
    version_to_dict,
)

bp = Blueprint("doc_control", __name__)


def _file_ref(data: dict, *, document_code: str, version_number: int, revision_number: int) -> FileRef:
    """
    Multipart upload -> stored through the blob store; JSON -> an existing storage reference.
    """
    f = request.files.get("file")
    if f and f.filename:
        filename = sanitize_upload_filename(f.filename)
        content_type = (f.mimetype or "application/octet-stream").strip()
        raw = f.read()
        sha256, size_bytes = file_digest_and_bytes(raw)
        key = storage_key_for(document_code, version_number, revision_number, filename)
        document_storage().put_bytes(key, raw, content_type=content_type)
        return FileRef(file_name=filename, file_path=key, file_size=size_bytes, mime_type=content_type, sha256=sha256)

    require_fields(data, "file_name", "file_path")
    size = data.get("file_size")
    return FileRef(
        file_name=str(data["file_name"]).strip(),
        file_path=str(data["file_path"]).strip(),
        file_size=as_int(size, "file_size") if size not in (None, "") else None,
        mime_type=(data.get("mime_type") or "application/pdf").strip(),
        sha256=(data.get("sha256") or None),
    )


@bp.get("/")
@require_permission("docs.view")
def documents_list():
    s = db_session()
    docs = list_documents(
        s,
        status=(request.args.get("status") or "").strip().upper() or None,
        department=(request.args.get("department") or "").strip() or None,
        category=(request.args.get("category") or "").strip() or None,
        keyword=(request.args.get("keyword") or "").strip() or None,
        expiring_before=as_date(request.args.get("expiring_before"), "expiring_before"),
    )
    return jsonify({"documents": [document_to_dict(d) for d in docs]})


@bp.post("/")
@require_permission("docs.create")
def documents_create():
    s = db_session()
    u = current_user()
    data = json_body()
    require_fields(data, "document_code", "title", "category", "department")

    code = normalize_document_code(data["document_code"])
    file = _file_ref(data, document_code=code, version_number=1, revision_number=0)
    d = create_document(
        s,
        document_code=code,
        title=data["title"],
        category=data["category"],
        department=data["department"],
        file=file,
        user=u,
        control_type=data.get("control_type") or "CONTROLLED",
        sign_required=as_bool(data.get("sign_required"), True),
        description=data.get("description"),
        next_review_date=as_date(data.get("next_review_date"), "next_review_date"),
        expiry_date=as_date(data.get("expiry_date"), "expiry_date"),
        keywords=data.get("keywords"),
    )
    s.commit()
    return jsonify({"document": document_to_dict(d, include_versions=True)}), 201


@bp.get("/<int:doc_id>")
@require_permission("docs.view")
def document_detail(doc_id: int):
    s = db_session()
    d = get_document(s, doc_id)
    return jsonify({"document": document_to_dict(d, include_versions=True)})


@bp.get("/<int:doc_id>/audit")
@require_permission("docs.view")
def document_audit(doc_id: int):
    """Lifecycle trail of one document (create, transitions, new versions, disposal)."""
    s = db_session()
    get_document(s, doc_id)
    limit = as_int(request.args.get("limit") or 200, "limit")
    events = list_events(s, entity_type="Document", entity_id=str(doc_id), limit=limit)
    return jsonify({"events": [event_to_dict(ev) for ev in events]})


@bp.post("/<int:doc_id>/versions")
@require_permission("docs.edit")
def document_new_version(doc_id: int):
    s = db_session()
    u = current_user()
    data = json_body()
    d = get_document(s, doc_id, for_update=True)

    bump = (data.get("bump") or "revision").strip().lower()
    if bump not in ("revision", "version"):
        raise ValidationError("bump must be 'revision' or 'version'.", bump=bump)
    if bump == "version":
        nxt = (d.current_version + 1, 0)
    else:
        nxt = (d.current_version, d.current_revision + 1)
    file = _file_ref(data, document_code=d.document_code, version_number=nxt[0], revision_number=nxt[1])

    v = create_draft_version(s, d, file=file, user=u, bump=bump, changes_note=data.get("changes_note"))
    s.commit()
    return jsonify({"document": document_to_dict(d), "version": version_to_dict(v)}), 201


@bp.get("/versions/<int:version_id>/download")
@require_permission("docs.view")
def version_download(version_id: int):
    s = db_session()
    u = current_user()
    v = get_version(s, version_id)
    key = v.signed_file_path if as_bool(request.args.get("signed"), False) else v.file_path
    if not key:
        abort(404)
    log = record_export(
        s,
        v,
        user=u,
        action=C.EXPORT_DOWNLOAD,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    try:
        fh = document_storage().open(key)
    except StoredFileMissing:
        current_app.logger.warning("Version %s points at missing file %s", v.id, key)
        s.rollback()
        abort(404)
    watermark = log.watermark_text
    s.commit()
    resp = send_file(fh, mimetype=v.mime_type, as_attachment=True, download_name=v.file_name)
    resp.headers["X-Document-Watermark"] = watermark
    return resp


@bp.post("/versions/<int:version_id>/exports")
@require_permission("docs.view")
def version_export(version_id: int):
    """Log a print or on-screen view; downloads are logged by the download endpoint."""
    s = db_session()
    u = current_user()
    data = json_body()
    v = get_version(s, version_id)
    action = (data.get("action") or "").strip().upper()
    if action == C.EXPORT_DOWNLOAD:
        raise ValidationError("Downloads are logged by the download endpoint.", action=action)
    log = record_export(
        s,
        v,
        user=u,
        action=action,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    s.commit()
    return jsonify({"export": export_log_to_dict(log)}), 201


@bp.get("/<int:doc_id>/exports")
@require_permission("docs.exports")
def document_exports(doc_id: int):
    s = db_session()
    get_document(s, doc_id)
    return jsonify({"exports": [export_log_to_dict(x) for x in list_exports(s, doc_id)]})


@bp.post("/<int:doc_id>/publish")
@require_permission("docs.publish")
def document_publish(doc_id: int):
    s = db_session()
    u = current_user()
    data = json_body()
    d = get_document(s, doc_id, for_update=True)
    publish(s, d, user=u, effective_date=as_date(data.get("effective_date"), "effective_date"))
    s.commit()
    return jsonify({"document": document_to_dict(d, include_versions=True)})


@bp.post("/<int:doc_id>/archive")
@require_permission("docs.archive")
def document_archive(doc_id: int):
    s = db_session()
    u = current_user()
    data = json_body()
    d = get_document(s, doc_id, for_update=True)
    archive(s, d, user=u, reason=data.get("reason") or "")
    s.commit()
    return jsonify({"document": document_to_dict(d)})


@bp.post("/<int:doc_id>/dispose")
@require_permission("docs.dispose")
def document_dispose(doc_id: int):
    s = db_session()
    u = current_user()
    data = json_body()
    d = get_document(s, doc_id, for_update=True)
    rec = dispose(
        s,
        d,
        user=u,
        reason=data.get("reason") or "",
        method=data.get("method") or "ELECTRONIC_DELETION",
        notes=data.get("notes"),
    )
    s.commit()
    return jsonify(
        {
            "document": document_to_dict(d),
            "disposal_record": {
                "id": rec.id,
                "method": rec.method,
                "reason": rec.reason,
                "notes": rec.notes,
                "disposed_at": rec.disposed_at.isoformat() if rec.disposed_at else None,
            },
        }
    )
