from __future__ import annotations

import logging
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.hse import constants as C
from app.hse.audit import record_event
from app.hse.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.hse.modules.document_control.service import normalize_document_code

from .models import ExternalDocument

if TYPE_CHECKING:
    from app.hse.models import User

logger = logging.getLogger(__name__)


def get_external_document(s: Session, external_id: int, *, for_update: bool = False) -> ExternalDocument:
    stmt = select(ExternalDocument).where(ExternalDocument.id == external_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    ext = s.execute(stmt).scalar_one_or_none()
    if not ext:
        raise NotFoundError(f"External document {external_id} not found.", external_document_id=external_id)
    return ext


def _active_id_for_code(s: Session, code: str) -> int | None:
    return s.execute(
        select(ExternalDocument.id).where(
            ExternalDocument.document_code == code,
            ExternalDocument.status == C.EXT_ACTIVE,
        )
    ).scalar_one_or_none()


def register_external_document(
    s: Session,
    *,
    user: User,
    document_code: str,
    title: str,
    source: str,
    file_url: str,
    file_type: str = "LINK",
    file_name: str | None = None,
    issued_by: str | None = None,
    version_number: str | None = None,
    issue_date: date | None = None,
    next_review_date: date | None = None,
    distribution_required: bool = False,
    department: str | None = None,
    notes: str | None = None,
    supersedes_id: int | None = None,
) -> ExternalDocument:
    """
    Add an edition to the register. One ACTIVE edition per code: registering a new
    edition of a code in use requires ``supersedes_id``, which retires the old one.
    """
    code = normalize_document_code(document_code)
    missing = [k for k, v in (("document_code", code), ("title", title), ("source", source), ("file_url", file_url)) if not (v or "").strip()]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}.", fields=missing)
    file_type = (file_type or "LINK").strip().upper()
    if file_type not in C.EXT_FILE_TYPES:
        raise ValidationError(f"Invalid file_type. Must be one of: {', '.join(C.EXT_FILE_TYPES)}", file_type=file_type)
    file_url = file_url.strip()
    if file_type == "LINK" and not file_url.lower().startswith(("http://", "https://")):
        raise ValidationError("A LINK entry needs an http(s) URL.", file_url=file_url)
    if issue_date and next_review_date and next_review_date < issue_date:
        raise ValidationError(
            "next_review_date cannot be before issue_date.",
            issue_date=issue_date.isoformat(),
            next_review_date=next_review_date.isoformat(),
        )

    previous: ExternalDocument | None = None
    if supersedes_id is not None:
        previous = get_external_document(s, supersedes_id, for_update=True)
        if previous.status != C.EXT_ACTIVE:
            raise InvalidStateError(
                f"Only ACTIVE entries can be superseded; {previous.document_code} is {previous.status}.",
                external_document_id=previous.id,
                current_status=previous.status,
            )
        if previous.document_code != code:
            raise ValidationError(
                f"A new edition must keep the code {previous.document_code}.",
                document_code=code,
                supersedes_code=previous.document_code,
            )
    else:
        active_id = _active_id_for_code(s, code)
        if active_id is not None:
            raise ConflictError(
                f"{code} already has an ACTIVE entry; register the new edition as superseding it.",
                document_code=code,
                external_document_id=active_id,
            )

    now = datetime.utcnow()
    ext = ExternalDocument(
        document_code=code,
        title=title.strip(),
        source=source.strip(),
        issued_by=(issued_by or "").strip() or None,
        version_number=(version_number or "").strip() or None,
        issue_date=issue_date,
        next_review_date=next_review_date,
        file_type=file_type,
        file_url=file_url,
        file_name=(file_name or "").strip() or None,
        status=C.EXT_ACTIVE,
        distribution_required=bool(distribution_required),
        owner_user_id=user.id,
        department=(department or "").strip() or None,
        notes=(notes or "").strip() or None,
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(ext)
    s.flush()
    if previous is not None:
        previous.status = C.EXT_SUPERSEDED
        previous.superseded_by_id = ext.id
        previous.updated_at = now

    record_event(
        s,
        actor=user,
        action="extdoc.supersede" if previous is not None else "extdoc.register",
        entity_type="ExternalDocument",
        entity_id=str(ext.id),
        metadata={
            "document_code": code,
            "source": ext.source,
            "version_number": ext.version_number,
            "supersedes_id": previous.id if previous is not None else None,
        },
    )
    logger.info("External document %s registered (id=%s, source=%s)", code, ext.id, ext.source)
    return ext


def mark_obsolete(s: Session, external_id: int, *, user: User, reason: str) -> ExternalDocument:
    if not (reason or "").strip():
        raise ValidationError("A reason is required to mark an external document obsolete.")
    ext = get_external_document(s, external_id, for_update=True)
    if ext.status != C.EXT_ACTIVE:
        raise InvalidStateError(
            f"{ext.document_code} is {ext.status}; only ACTIVE entries can be made obsolete.",
            external_document_id=ext.id,
            current_status=ext.status,
        )
    ext.status = C.EXT_OBSOLETE
    ext.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="extdoc.obsolete",
        entity_type="ExternalDocument",
        entity_id=str(ext.id),
        reason=reason.strip(),
        metadata={"document_code": ext.document_code},
    )
    return ext


def record_review(
    s: Session,
    external_id: int,
    *,
    user: User,
    next_review_date: date,
    today: date | None = None,
) -> ExternalDocument:
    """The edition was checked and is still current; schedule the next check."""
    today = today or date.today()
    ext = get_external_document(s, external_id, for_update=True)
    if ext.status != C.EXT_ACTIVE:
        raise InvalidStateError(
            f"{ext.document_code} is {ext.status}; only ACTIVE entries are reviewed.",
            external_document_id=ext.id,
            current_status=ext.status,
        )
    if next_review_date <= today:
        raise ValidationError(
            "next_review_date must be in the future.",
            next_review_date=next_review_date.isoformat(),
            today=today.isoformat(),
        )
    previous = ext.next_review_date
    ext.next_review_date = next_review_date
    ext.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="extdoc.review",
        entity_type="ExternalDocument",
        entity_id=str(ext.id),
        metadata={"document_code": ext.document_code, "from": previous, "to": next_review_date},
    )
    return ext


def list_external_documents(
    s: Session,
    *,
    status: str | None = None,
    source: str | None = None,
    due_before: date | None = None,
) -> list[ExternalDocument]:
    """Register, most-recent-first. ``due_before`` narrows to ACTIVE entries due for review by that date."""
    stmt = select(ExternalDocument)
    if status:
        stmt = stmt.where(ExternalDocument.status == status.strip().upper())
    if source:
        stmt = stmt.where(ExternalDocument.source.ilike(source.strip()))
    if due_before:
        stmt = stmt.where(
            ExternalDocument.status == C.EXT_ACTIVE,
            ExternalDocument.next_review_date.is_not(None),
            ExternalDocument.next_review_date <= due_before,
        )
    stmt = stmt.order_by(ExternalDocument.created_at.desc(), ExternalDocument.id.desc())
    return list(s.execute(stmt).scalars().all())


def external_document_to_dict(ext: ExternalDocument) -> dict[str, Any]:
    return {
        "id": ext.id,
        "document_code": ext.document_code,
        "title": ext.title,
        "source": ext.source,
        "issued_by": ext.issued_by,
        "version_number": ext.version_number,
        "issue_date": ext.issue_date.isoformat() if ext.issue_date else None,
        "next_review_date": ext.next_review_date.isoformat() if ext.next_review_date else None,
        "file_type": ext.file_type,
        "file_url": ext.file_url,
        "file_name": ext.file_name,
        "status": ext.status,
        "distribution_required": ext.distribution_required,
        "owner_user_id": ext.owner_user_id,
        "department": ext.department,
        "notes": ext.notes,
        "superseded_by_id": ext.superseded_by_id,
        "created_at": ext.created_at.isoformat() if ext.created_at else None,
    }
