from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.hse import constants as C
from app.hse.audit import record_event
from app.hse.errors import InvalidStateError, NotFoundError, ValidationError
from app.hse.modules.document_control.models import Document, DocumentVersion
from app.hse.modules.document_control.service import (
    FileRef,
    create_draft_version,
    current_version,
    get_document,
)

from .models import ChangeRequest

if TYPE_CHECKING:
    from app.hse.models import User

logger = logging.getLogger(__name__)


def get_change_request(s: Session, change_request_id: int, *, for_update: bool = False) -> ChangeRequest:
    stmt = select(ChangeRequest).where(ChangeRequest.id == change_request_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    cr = s.execute(stmt).scalar_one_or_none()
    if not cr:
        raise NotFoundError(f"Change request {change_request_id} not found.", change_request_id=change_request_id)
    return cr


def _choice(value: str | None, allowed: tuple[str, ...], default: str, field_name: str) -> str:
    v = (value or default).strip().upper()
    if v not in allowed:
        raise ValidationError(f"Invalid {field_name}. Must be one of: {', '.join(allowed)}", **{field_name: v})
    return v


def create_change_request(
    s: Session,
    document_id: int,
    *,
    requester: User,
    description: str,
    reason: str | None = None,
    request_type: str | None = None,
    priority: str | None = None,
    proposed_changes: str | None = None,
    affected_sections: str | None = None,
) -> ChangeRequest:
    d = get_document(s, document_id)
    if d.lifecycle_status != C.PUBLISHED:
        raise InvalidStateError(
            f"Change requests can only be raised against PUBLISHED documents; {d.document_code} is {d.lifecycle_status}.",
            document_id=d.id,
            current_status=d.lifecycle_status,
        )
    if not (description or "").strip():
        raise ValidationError("description is required.")

    cr = ChangeRequest(
        document_id=d.id,
        request_type=_choice(request_type, C.CR_REQUEST_TYPES, "REVISION", "request_type"),
        priority=_choice(priority, C.CR_PRIORITIES, "NORMAL", "priority"),
        reason=(reason or "").strip() or None,
        description=description.strip(),
        proposed_changes=(proposed_changes or "").strip() or None,
        affected_sections=(affected_sections or "").strip() or None,
        status=C.CR_PENDING,
        requested_by_user_id=requester.id,
        requested_at=datetime.utcnow(),
    )
    s.add(cr)
    s.flush()
    record_event(
        s,
        actor=requester,
        action="change_request.create",
        entity_type="ChangeRequest",
        entity_id=str(cr.id),
        metadata={"document_code": d.document_code, "request_type": cr.request_type, "priority": cr.priority},
    )
    return cr


def _spawn_revision(s: Session, cr: ChangeRequest, d: Document, *, user: User) -> DocumentVersion:
    """New DRAFT revision seeded with the published file; the author uploads edits onto it."""
    if d.lifecycle_status != C.PUBLISHED:
        raise InvalidStateError(
            f"{d.document_code} is {d.lifecycle_status}; change requests apply to PUBLISHED documents only.",
            document_id=d.id,
            current_status=d.lifecycle_status,
            change_request_id=cr.id,
        )
    base = current_version(s, d)
    note = f"Change request #{cr.id}: {cr.description}"
    v = create_draft_version(
        s,
        d,
        file=FileRef(
            file_name=base.file_name,
            file_path=base.file_path,
            file_size=base.file_size,
            mime_type=base.mime_type,
            sha256=base.sha256,
        ),
        user=user,
        bump="revision",
        changes_note=note[:2000],
    )
    cr.status = C.CR_COMPLETED
    cr.completed_at = datetime.utcnow()
    cr.new_version_id = v.id
    s.flush()
    record_event(
        s,
        actor=user,
        action="change_request.complete",
        entity_type="ChangeRequest",
        entity_id=str(cr.id),
        metadata={"document_code": d.document_code, "new_version": v.label, "new_version_id": v.id},
    )
    return v


def resolve(
    s: Session,
    change_request_id: int,
    decision: str,
    *,
    resolver: User,
    comments: str | None = None,
) -> ChangeRequest:
    """
    PENDING -> REJECTED, or PENDING -> APPROVED -> COMPLETED with a fresh draft revision.
    If the document has left PUBLISHED meanwhile the request stays APPROVED.
    """
    decision = (decision or "").strip().upper()
    if decision not in (C.CR_APPROVED, C.CR_REJECTED):
        raise ValidationError("decision must be APPROVED or REJECTED.", decision=decision)

    cr = get_change_request(s, change_request_id, for_update=True)
    if cr.status != C.CR_PENDING:
        raise InvalidStateError(
            f"Change request {cr.id} is already {cr.status}.", change_request_id=cr.id, current_status=cr.status
        )

    cr.status = decision
    cr.reviewed_by_user_id = resolver.id
    cr.reviewed_at = datetime.utcnow()
    cr.review_comments = (comments or "").strip() or None
    s.flush()
    record_event(
        s,
        actor=resolver,
        action="change_request.resolve",
        entity_type="ChangeRequest",
        entity_id=str(cr.id),
        reason=cr.review_comments,
        metadata={"decision": decision, "document_id": cr.document_id},
    )

    if decision == C.CR_APPROVED:
        d = get_document(s, cr.document_id, for_update=True)
        try:
            _spawn_revision(s, cr, d, user=resolver)
        except InvalidStateError as e:
            logger.warning(
                "Change request %s approved but %s is %s; left APPROVED for later completion (%s)",
                cr.id,
                d.document_code,
                d.lifecycle_status,
                e.message,
            )
    return cr


def complete_change_request(s: Session, change_request_id: int, *, user: User) -> ChangeRequest:
    """Finish an APPROVED request whose draft could not be created at resolve time."""
    cr = get_change_request(s, change_request_id, for_update=True)
    if cr.status != C.CR_APPROVED:
        raise InvalidStateError(
            f"Only APPROVED change requests can be completed (request {cr.id} is {cr.status}).",
            change_request_id=cr.id,
            current_status=cr.status,
        )
    d = get_document(s, cr.document_id, for_update=True)
    _spawn_revision(s, cr, d, user=user)
    return cr


def list_change_requests(s: Session, document_id: int, *, status: str | None = None) -> list[ChangeRequest]:
    get_document(s, document_id)
    stmt = select(ChangeRequest).where(ChangeRequest.document_id == document_id)
    if status:
        stmt = stmt.where(ChangeRequest.status == status.strip().upper())
    stmt = stmt.order_by(ChangeRequest.requested_at.desc(), ChangeRequest.id.desc())
    return list(s.execute(stmt).scalars().all())


def change_request_to_dict(cr: ChangeRequest) -> dict[str, Any]:
    return {
        "id": cr.id,
        "document_id": cr.document_id,
        "request_type": cr.request_type,
        "priority": cr.priority,
        "reason": cr.reason,
        "description": cr.description,
        "proposed_changes": cr.proposed_changes,
        "affected_sections": cr.affected_sections,
        "status": cr.status,
        "requested_by_user_id": cr.requested_by_user_id,
        "requested_at": cr.requested_at.isoformat() if cr.requested_at else None,
        "reviewed_by_user_id": cr.reviewed_by_user_id,
        "reviewed_at": cr.reviewed_at.isoformat() if cr.reviewed_at else None,
        "review_comments": cr.review_comments,
        "completed_at": cr.completed_at.isoformat() if cr.completed_at else None,
        "new_version_id": cr.new_version_id,
    }
