from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request

from app.hse.api import as_int, current_user, json_body, require_fields
from app.hse.db import db_session
from app.hse.modules.document_control.service import document_to_dict, get_document
from app.hse.rbac import require_permission

from .provider import SigningProvider, provider_from_config, verify_callback_signature
from .service import handle_provider_callback, list_requests, request_signature, request_to_dict, retry

bp = Blueprint("esign", __name__)

SIGNATURE_HEADER = "X-Signature"


def signing_provider() -> SigningProvider:
    p = current_app.extensions.get("hse_signing_provider")
    if p is None:
        p = provider_from_config(current_app.config)
        current_app.extensions["hse_signing_provider"] = p
    return p


def _max_retries() -> int:
    return int(current_app.config.get("ESIGN_MAX_RETRIES", 3))


@bp.post("/documents/<int:doc_id>/request")
@require_permission("esign.request")
def signature_request(doc_id: int):
    s = db_session()
    u = current_user()
    data = json_body()
    require_fields(data, "signer_user_id")
    req = request_signature(
        s,
        doc_id,
        as_int(data["signer_user_id"], "signer_user_id"),
        user=u,
        provider=signing_provider(),
    )
    s.commit()
    return jsonify({"request": request_to_dict(req), "document": document_to_dict(get_document(s, doc_id))}), 201


@bp.post("/callback")
def provider_callback():
    """Inbound provider webhook. No session; authenticated by HMAC when a secret is configured."""
    raw = request.get_data(cache=True)
    secret = current_app.config.get("ESIGN_WEBHOOK_SECRET")
    if not verify_callback_signature(secret, raw, request.headers.get(SIGNATURE_HEADER)):
        current_app.logger.warning("Rejected e-sign callback with bad signature (remote=%s)", request.remote_addr)
        abort(401)

    s = db_session()
    data = json_body()
    require_fields(data, "external_request_id", "status")
    req = handle_provider_callback(
        s,
        str(data["external_request_id"]),
        str(data["status"]),
        signed_file_path=data.get("signed_file_path"),
        failed_reason=data.get("failed_reason"),
        max_retries=_max_retries(),
    )
    s.commit()
    return jsonify({"request": request_to_dict(req)})


@bp.post("/requests/<int:request_id>/retry")
@require_permission("esign.retry")
def signature_retry(request_id: int):
    s = db_session()
    u = current_user()
    req = retry(s, request_id, user=u, provider=signing_provider(), max_retries=_max_retries())
    s.commit()
    return jsonify({"request": request_to_dict(req)})


@bp.get("/documents/<int:doc_id>")
@require_permission("docs.view")
def signature_list(doc_id: int):
    s = db_session()
    return jsonify({"requests": [request_to_dict(r) for r in list_requests(s, doc_id)]})
