"""
E-Sign Coordinator.

APPROVED documents are sent out for electronic signature, one request per signer of the
current version. The document stays ESIGN_PENDING while any request is live
(PENDING or FAILED-but-retryable). When none is left it becomes SIGNED if every signer
signed, and falls back to APPROVED if any signer failed permanently without signing a
later request.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.hse import constants as C
from app.hse.audit import record_event
from app.hse.directory import get_people
from app.hse.errors import ConflictError, ExternalProviderError, InvalidStateError, NotFoundError, ValidationError
from app.hse.modules.approvals.models import ApprovalWorkflow
from app.hse.modules.document_control.models import Document, DocumentVersion
from app.hse.modules.document_control.service import (
    current_version,
    get_document,
    set_version_status,
    transition_lifecycle,
)

from .models import EsignRequest
from .provider import SignatureOrder, SigningProvider

if TYPE_CHECKING:
    from app.hse.models import User

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3


def get_request(s: Session, request_id: int, *, for_update: bool = False) -> EsignRequest:
    stmt = select(EsignRequest).where(EsignRequest.id == request_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    req = s.execute(stmt).scalar_one_or_none()
    if not req:
        raise NotFoundError(f"Signature request {request_id} not found.", request_id=request_id)
    return req


def _live_request_count(s: Session, version_id: int) -> int:
    return s.execute(
        select(func.count(EsignRequest.id)).where(
            EsignRequest.version_id == version_id,
            EsignRequest.status.in_(C.ESIGN_LIVE_STATUSES),
        )
    ).scalar_one()


def _order_for(d: Document, v: DocumentVersion, req: EsignRequest) -> SignatureOrder:
    return SignatureOrder(
        document_code=d.document_code,
        document_title=d.title,
        version_label=v.label,
        file_path=v.file_path,
        signer_user_id=req.signer_user_id,
        signer_name=req.signer_name,
        signer_position=req.signer_position,
        metadata={"esign_request_id": req.id, "document_id": d.id, "version_id": v.id},
    )


def _submit(provider: SigningProvider, d: Document, v: DocumentVersion, req: EsignRequest) -> None:
    """Hand the order to the provider; a failure is recorded on the request, not raised."""
    try:
        req.external_request_id = provider.create_signing_request(_order_for(d, v, req))
    except ExternalProviderError as e:
        req.status = C.ESIGN_FAILED
        req.failed_reason = e.message
        logger.warning(
            "Signing provider rejected request %s for %s %s (signer %s): %s",
            req.id,
            d.document_code,
            v.label,
            req.signer_user_id,
            e.message,
        )


def request_signature(
    s: Session,
    document_id: int,
    signer_user_id: int,
    *,
    user: User,
    provider: SigningProvider,
) -> EsignRequest:
    d = get_document(s, document_id, for_update=True)
    if d.lifecycle_status not in (C.APPROVED, C.ESIGN_PENDING):
        raise InvalidStateError(
            f"Signatures can only be requested for APPROVED documents; {d.document_code} is {d.lifecycle_status}.",
            document_id=d.id,
            current_status=d.lifecycle_status,
        )
    v = current_version(s, d)

    people = get_people(s, [signer_user_id])
    if not people:
        raise NotFoundError(f"Signer {signer_user_id} not found.", signer_user_id=signer_user_id)
    signer = people[0]

    live_id = s.execute(
        select(EsignRequest.id).where(
            EsignRequest.version_id == v.id,
            EsignRequest.signer_user_id == signer.id,
            EsignRequest.status.in_(C.ESIGN_LIVE_STATUSES),
        )
    ).scalar_one_or_none()
    if live_id is not None:
        raise ConflictError(
            f"{signer.name} already has an open signature request for {d.document_code} {v.label}.",
            request_id=live_id,
            version_id=v.id,
            signer_user_id=signer.id,
        )

    workflow_id = s.execute(
        select(ApprovalWorkflow.id)
        .where(ApprovalWorkflow.version_id == v.id, ApprovalWorkflow.status == C.WORKFLOW_APPROVED)
        .order_by(ApprovalWorkflow.completed_at.desc(), ApprovalWorkflow.id.desc())
        .limit(1)
    ).scalar_one_or_none()

    req = EsignRequest(
        document_id=d.id,
        version_id=v.id,
        workflow_id=workflow_id,
        provider=provider.name,
        status=C.ESIGN_PENDING_REQUEST,
        signer_user_id=signer.id,
        signer_name=signer.name,
        signer_position=signer.position,
        requested_at=datetime.utcnow(),
        retry_count=0,
        created_by_user_id=user.id,
    )
    s.add(req)
    s.flush()

    if d.lifecycle_status == C.APPROVED:
        transition_lifecycle(s, d, C.ESIGN_PENDING, user=user, metadata={"version": v.label})

    _submit(provider, d, v, req)
    s.flush()

    record_event(
        s,
        actor=user,
        action="esign.request",
        entity_type="EsignRequest",
        entity_id=str(req.id),
        metadata={
            "document_code": d.document_code,
            "version": v.label,
            "signer_user_id": signer.id,
            "provider": provider.name,
            "status": req.status,
            "external_request_id": req.external_request_id,
        },
    )
    return req


def _unsigned_signers(s: Session, version_id: int) -> list[int]:
    """Signers whose permanent failure was not followed by a signed request on the same version."""
    failed = s.execute(
        select(EsignRequest.id, EsignRequest.signer_user_id)
        .where(EsignRequest.version_id == version_id, EsignRequest.status == C.ESIGN_FAILED_PERMANENT)
        .order_by(EsignRequest.id)
    ).all()
    missing: list[int] = []
    for failed_id, signer_id in failed:
        signed_later = s.execute(
            select(EsignRequest.id)
            .where(
                EsignRequest.version_id == version_id,
                EsignRequest.signer_user_id == signer_id,
                EsignRequest.status == C.ESIGN_SIGNED,
                EsignRequest.id > failed_id,
            )
            .limit(1)
        ).scalar_one_or_none()
        if signed_later is None and signer_id not in missing:
            missing.append(signer_id)
    return missing


def _settle_version(s: Session, req: EsignRequest, *, user: User | None) -> None:
    """
    Runs after a request reaches SIGNED or FAILED_PERMANENT. Once nothing is live the
    document becomes SIGNED when every signer is covered, otherwise it returns to APPROVED,
    whatever order the callbacks arrived in.
    """
    if _live_request_count(s, req.version_id) > 0:
        return
    d = get_document(s, req.document_id, for_update=True)
    if d.lifecycle_status != C.ESIGN_PENDING:
        return
    missing = _unsigned_signers(s, req.version_id)
    if missing:
        transition_lifecycle(
            s,
            d,
            C.APPROVED,
            user=user,
            reason="Signature requests failed permanently.",
            metadata={"esign_request_id": req.id, "unsigned_signer_ids": missing},
        )
        return
    v = s.get(DocumentVersion, req.version_id)
    v.signed_at = datetime.utcnow()
    set_version_status(v, C.VERSION_SIGNED)
    transition_lifecycle(s, d, C.SIGNED, user=user, metadata={"esign_request_id": req.id, "version": v.label})


def handle_provider_callback(
    s: Session,
    external_request_id: str,
    status: str,
    *,
    signed_file_path: str | None = None,
    failed_reason: str | None = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> EsignRequest:
    """
    Apply a provider status update. Redelivered SIGNED callbacks are no-ops;
    a late FAILED for an already-settled request is ignored.
    """
    status = (status or "").strip().upper()
    if status not in (C.ESIGN_SIGNED, C.ESIGN_FAILED):
        raise ValidationError("status must be SIGNED or FAILED.", status=status)
    if not (external_request_id or "").strip():
        raise ValidationError("external_request_id is required.")

    req = s.execute(
        select(EsignRequest)
        .where(EsignRequest.external_request_id == external_request_id.strip())
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not req:
        raise NotFoundError(
            f"No signature request with external id {external_request_id}.", external_request_id=external_request_id
        )

    previous = req.status
    now = datetime.utcnow()

    if status == C.ESIGN_SIGNED:
        if previous == C.ESIGN_SIGNED:
            logger.info("Duplicate SIGNED callback for esign request %s ignored", req.id)
            return req
        if previous == C.ESIGN_FAILED_PERMANENT:
            raise InvalidStateError(
                f"Signature request {req.id} already failed permanently.", request_id=req.id, current_status=previous
            )
        req.status = C.ESIGN_SIGNED
        req.signed_at = now
        req.signed_file_path = (signed_file_path or "").strip() or None
        req.failed_reason = None
        if req.signed_file_path:
            s.get(DocumentVersion, req.version_id).signed_file_path = req.signed_file_path
        s.flush()
        _settle_version(s, req, user=None)
    else:
        if previous in (C.ESIGN_SIGNED, C.ESIGN_FAILED_PERMANENT):
            logger.warning("FAILED callback for settled esign request %s (%s) ignored", req.id, previous)
            return req
        req.failed_reason = (failed_reason or "").strip() or "Signing provider reported a failure."
        if req.retry_count >= max_retries:
            req.status = C.ESIGN_FAILED_PERMANENT
            s.flush()
            _settle_version(s, req, user=None)
        else:
            req.status = C.ESIGN_FAILED
        s.flush()

    record_event(
        s,
        actor=None,
        action="esign.callback",
        entity_type="EsignRequest",
        entity_id=str(req.id),
        reason=req.failed_reason if req.status != C.ESIGN_SIGNED else None,
        metadata={"external_request_id": req.external_request_id, "from": previous, "to": req.status},
    )
    logger.info("Esign request %s %s -> %s", req.id, previous, req.status)
    return req


def retry(
    s: Session,
    request_id: int,
    *,
    user: User,
    provider: SigningProvider,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> EsignRequest:
    """
    Resubmit a FAILED request. At the retry cap the request is moved to
    FAILED_PERMANENT and committed, then InvalidStateError is raised.
    """
    req = get_request(s, request_id, for_update=True)
    if req.status != C.ESIGN_FAILED:
        raise InvalidStateError(
            f"Only FAILED signature requests can be retried (request {req.id} is {req.status}).",
            request_id=req.id,
            current_status=req.status,
        )

    if req.retry_count >= max_retries:
        req.status = C.ESIGN_FAILED_PERMANENT
        s.flush()
        _settle_version(s, req, user=user)
        record_event(
            s,
            actor=user,
            action="esign.failed_permanent",
            entity_type="EsignRequest",
            entity_id=str(req.id),
            reason=req.failed_reason,
            metadata={"retry_count": req.retry_count, "max_retries": max_retries},
        )
        s.commit()
        raise InvalidStateError(
            f"Signature request {req.id} reached the retry limit ({max_retries}) and failed permanently.",
            request_id=req.id,
            retry_count=req.retry_count,
            current_status=req.status,
        )

    d = get_document(s, req.document_id, for_update=True)
    v = s.get(DocumentVersion, req.version_id)
    req.retry_count += 1
    req.last_retry_at = datetime.utcnow()
    req.status = C.ESIGN_PENDING_REQUEST
    req.failed_reason = None
    req.provider = provider.name
    _submit(provider, d, v, req)
    s.flush()

    record_event(
        s,
        actor=user,
        action="esign.retry",
        entity_type="EsignRequest",
        entity_id=str(req.id),
        metadata={"retry_count": req.retry_count, "status": req.status, "external_request_id": req.external_request_id},
    )
    return req


def list_requests(s: Session, document_id: int) -> list[EsignRequest]:
    get_document(s, document_id)
    return list(
        s.execute(
            select(EsignRequest)
            .where(EsignRequest.document_id == document_id)
            .order_by(EsignRequest.requested_at.desc(), EsignRequest.id.desc())
        )
        .scalars()
        .all()
    )


def request_to_dict(req: EsignRequest) -> dict[str, Any]:
    return {
        "id": req.id,
        "document_id": req.document_id,
        "version_id": req.version_id,
        "workflow_id": req.workflow_id,
        "provider": req.provider,
        "external_request_id": req.external_request_id,
        "status": req.status,
        "signer_user_id": req.signer_user_id,
        "signer_name": req.signer_name,
        "signer_position": req.signer_position,
        "requested_at": req.requested_at.isoformat() if req.requested_at else None,
        "signed_at": req.signed_at.isoformat() if req.signed_at else None,
        "signed_file_path": req.signed_file_path,
        "failed_reason": req.failed_reason,
        "retry_count": req.retry_count,
        "last_retry_at": req.last_retry_at.isoformat() if req.last_retry_at else None,
    }
