"""
Document Registry service layer.
Owns the masterlist, version pointers and the lifecycle state machine; the other
modules drive lifecycle changes through ``transition_lifecycle``.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from werkzeug.utils import secure_filename

from app.hse import constants as C
from app.hse.audit import record_event
from app.hse.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError

from .models import DisposalRecord, Document, DocumentExportLog, DocumentVersion

if TYPE_CHECKING:
    from app.hse.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileRef:
    """Opaque blob-store reference for one uploaded file."""

    file_name: str
    file_path: str
    file_size: int | None = None
    mime_type: str = "application/pdf"
    sha256: str | None = None


def normalize_document_code(code: str) -> str:
    return (code or "").strip().upper()


def parse_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD date string."""
    if not s:
        return None
    s = s.strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        raise ValidationError(f"Invalid date {s!r}; expected YYYY-MM-DD.", value=s)


def file_digest_and_bytes(file_bytes: bytes) -> tuple[str, int]:
    h = hashlib.sha256()
    h.update(file_bytes)
    return (h.hexdigest(), len(file_bytes))


def sanitize_upload_filename(filename: str) -> str:
    fn = secure_filename(filename or "")
    return fn or "document.pdf"


def storage_key_for(document_code: str, version_number: int, revision_number: int, filename: str) -> str:
    return f"documents/{document_code}/v{version_number}r{revision_number}/{filename}"



def normalize_keywords(value) -> list[str]:
    """Comma-separated string or list -> lowercase, de-duplicated keywords in input order."""
    if value is None:
        return []
    items = [value] if isinstance(value, str) else list(value)
    parts = [p for item in items for p in str(item or "").split(",")]
    out: list[str] = []
    for p in parts:
        k = p.strip().lower()[:64]
        if k and k not in out:
            out.append(k)
    return out


def get_document(s: Session, document_id: int, *, for_update: bool = False) -> Document:
    stmt = select(Document).where(Document.id == document_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    d = s.execute(stmt).scalar_one_or_none()
    if not d:
        raise NotFoundError(f"Document {document_id} not found.", document_id=document_id)
    return d


def get_version(s: Session, version_id: int) -> DocumentVersion:
    v = s.get(DocumentVersion, version_id)
    if not v:
        raise NotFoundError(f"Document version {version_id} not found.", version_id=version_id)
    return v


def current_version(s: Session, document: Document) -> DocumentVersion:
    v = s.execute(
        select(DocumentVersion).where(
            DocumentVersion.document_id == document.id,
            DocumentVersion.version_number == document.current_version,
            DocumentVersion.revision_number == document.current_revision,
        )
    ).scalar_one_or_none()
    if not v:
        # Pointer invariant broken; surface loudly rather than guessing.
        raise NotFoundError(
            f"Current version {document.version_label} of {document.document_code} is missing.",
            document_id=document.id,
            current_version=document.current_version,
            current_revision=document.current_revision,
        )
    return v


def version_in_force(s: Session, document: Document) -> DocumentVersion:
    """The ACTIVE (published) version; a document never published falls back to its current version."""
    v = s.execute(
        select(DocumentVersion)
        .where(DocumentVersion.document_id == document.id, DocumentVersion.status == C.VERSION_ACTIVE)
        .order_by(DocumentVersion.version_number.desc(), DocumentVersion.revision_number.desc())
        .limit(1)
    ).scalar_one_or_none()
    return v or current_version(s, document)


def list_documents(
    s: Session,
    *,
    status: str | None = None,
    department: str | None = None,
    category: str | None = None,
    keyword: str | None = None,
    expiring_before: date | None = None,
    limit: int = 200,
) -> list[Document]:
    """Masterlist, most-recent-first (created_at DESC, id DESC)."""
    stmt = select(Document)
    if status:
        stmt = stmt.where(Document.lifecycle_status == status)
    if department:
        stmt = stmt.where(Document.department == department)
    if category:
        stmt = stmt.where(Document.category == category)
    if keyword:
        # Comma-wrapped so a whole keyword matches, not a fragment.
        stmt = stmt.where(("," + Document.keywords + ",").contains(f",{keyword.strip().lower()},", autoescape=True))
    if expiring_before:
        stmt = stmt.where(Document.expiry_date.is_not(None), Document.expiry_date <= expiring_before)
    stmt = stmt.order_by(Document.created_at.desc(), Document.id.desc()).limit(limit)
    return list(s.execute(stmt).scalars().all())


def can_transition(current: str, new_status: str) -> bool:
    return new_status in C.LIFECYCLE_TRANSITIONS.get(current, frozenset())


def transition_lifecycle(
    s: Session,
    document: Document,
    new_status: str,
    *,
    user: User | None,
    reason: str | None = None,
    metadata: dict | None = None,
) -> Document:
    """Move a document along the lifecycle graph; anything off-graph is an InvalidStateError."""
    old = document.lifecycle_status
    if old == new_status:
        return document
    if not can_transition(old, new_status):
        raise InvalidStateError(
            f"Cannot move {document.document_code} from {old} to {new_status}.",
            document_id=document.id,
            document_code=document.document_code,
            current_status=old,
            requested_status=new_status,
        )
    document.lifecycle_status = new_status
    document.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="doc.lifecycle",
        entity_type="Document",
        entity_id=str(document.id),
        reason=reason,
        metadata={"document_code": document.document_code, "from": old, "to": new_status, **(metadata or {})},
    )
    logger.info("Document %s lifecycle %s -> %s", document.document_code, old, new_status)
    return document


def set_version_status(version: DocumentVersion, status: str) -> DocumentVersion:
    if status not in C.VERSION_STATUSES:
        raise ValidationError(f"Invalid version status: {status}", status=status)
    version.status = status
    return version


def validate_document_payload(payload: dict) -> list[str]:
    """Validate document creation payload. Returns list of errors."""
    errors = []
    for key in ("document_code", "title", "category", "department"):
        if not (payload.get(key) or "").strip():
            errors.append(f"{key} is required.")
    control_type = (payload.get("control_type") or "CONTROLLED").strip().upper()
    if control_type not in C.CONTROL_TYPES:
        errors.append(f"Invalid control_type. Must be one of: {', '.join(C.CONTROL_TYPES)}")
    return errors


def create_document(
    s: Session,
    *,
    document_code: str,
    title: str,
    category: str,
    department: str,
    file: FileRef,
    user: User,
    owner: User | None = None,
    control_type: str = "CONTROLLED",
    sign_required: bool = True,
    description: str | None = None,
    next_review_date: date | None = None,
    expiry_date: date | None = None,
    keywords=None,
) -> Document:
    """Create a masterlist entry in DRAFT with version 1 revision 0."""
    code = normalize_document_code(document_code)
    errors = validate_document_payload(
        {"document_code": code, "title": title, "category": category, "department": department, "control_type": control_type}
    )
    if errors:
        raise ValidationError(" ".join(errors))

    exists = s.execute(select(Document.id).where(Document.document_code == code)).scalar_one_or_none()
    if exists:
        raise ConflictError(f"Document code {code} already exists.", document_code=code, document_id=exists)

    owner = owner or user
    now = datetime.utcnow()
    d = Document(
        document_code=code,
        title=title.strip(),
        category=category.strip(),
        department=department.strip(),
        current_version=1,
        current_revision=0,
        owner_user_id=owner.id,
        lifecycle_status=C.DRAFT,
        control_type=control_type.strip().upper(),
        sign_required=bool(sign_required),
        description=(description or "").strip() or None,
        next_review_date=next_review_date,
        expiry_date=expiry_date,
        keywords=",".join(normalize_keywords(keywords)) or None,
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(d)
    try:
        s.flush()
    except IntegrityError:
        # Another request created the same code between our lookup and insert.
        s.rollback()
        raise ConflictError(f"Document code {code} already exists.", document_code=code)

    v = _add_version(s, d, version_number=1, revision_number=0, file=file, user=user, changes_note="Initial draft")

    record_event(
        s,
        actor=user,
        action="doc.create",
        entity_type="Document",
        entity_id=str(d.id),
        metadata={"document_code": d.document_code, "version": v.label, "file_path": v.file_path},
    )
    return d


def _add_version(
    s: Session,
    document: Document,
    *,
    version_number: int,
    revision_number: int,
    file: FileRef,
    user: User,
    changes_note: str | None,
) -> DocumentVersion:
    v = DocumentVersion(
        document_id=document.id,
        version_number=version_number,
        revision_number=revision_number,
        file_name=file.file_name,
        file_path=file.file_path,
        file_size=file.file_size,
        mime_type=file.mime_type or "application/pdf",
        sha256=file.sha256,
        status=C.VERSION_DRAFT,
        changes_note=(changes_note or "").strip() or None,
        uploaded_by_user_id=user.id,
    )
    s.add(v)
    s.flush()
    document.current_version = version_number
    document.current_revision = revision_number
    document.updated_at = datetime.utcnow()
    if v not in document.versions:
        document.versions.append(v)
    return v


def create_draft_version(
    s: Session,
    document: Document,
    *,
    file: FileRef,
    user: User,
    bump: str = "revision",
    changes_note: str | None = None,
) -> DocumentVersion:
    """
    Start a new DRAFT version.

    From DRAFT the current draft is replaced by a newer revision (allowed only while no
    workflow is open, i.e. the document is not IN_REVIEW). From PUBLISHED the document
    re-enters DRAFT; earlier versions and their workflows stay untouched.
    """
    if document.lifecycle_status not in (C.DRAFT, C.PUBLISHED):
        raise InvalidStateError(
            f"New versions can only be started from DRAFT or PUBLISHED (document is {document.lifecycle_status}).",
            document_id=document.id,
            current_status=document.lifecycle_status,
        )
    if bump not in ("revision", "version"):
        raise ValidationError("bump must be 'revision' or 'version'.", bump=bump)

    if bump == "version":
        version_number, revision_number = document.current_version + 1, 0
    else:
        version_number, revision_number = document.current_version, document.current_revision + 1

    from_label = document.version_label
    v = _add_version(
        s,
        document,
        version_number=version_number,
        revision_number=revision_number,
        file=file,
        user=user,
        changes_note=changes_note,
    )
    if document.lifecycle_status == C.PUBLISHED:
        transition_lifecycle(s, document, C.DRAFT, user=user, reason=changes_note, metadata={"new_version": v.label})

    record_event(
        s,
        actor=user,
        action="doc.revise",
        entity_type="Document",
        entity_id=str(document.id),
        metadata={"document_code": document.document_code, "from": from_label, "to": v.label},
    )
    return v


def publish(s: Session, document: Document, *, user: User, effective_date: date | None = None) -> Document:
    """SIGNED, or APPROVED when no signature is required -> PUBLISHED."""
    status = document.lifecycle_status
    if status == C.APPROVED and document.sign_required:
        raise InvalidStateError(
            f"{document.document_code} requires an electronic signature before publishing.",
            document_id=document.id,
            current_status=status,
        )
    if status not in (C.SIGNED, C.APPROVED):
        raise InvalidStateError(
            f"Only SIGNED (or APPROVED, sign-not-required) documents can be published; {document.document_code} is {status}.",
            document_id=document.id,
            current_status=status,
        )

    effective = effective_date or date.today()
    if document.expiry_date and document.expiry_date <= effective:
        raise ValidationError(
            f"{document.document_code} expires on {document.expiry_date.isoformat()}, before it would take effect.",
            document_id=document.id,
            expiry_date=document.expiry_date.isoformat(),
            effective_date=effective.isoformat(),
        )

    v = current_version(s, document)
    s.execute(
        update(DocumentVersion)
        .where(
            DocumentVersion.document_id == document.id,
            DocumentVersion.status == C.VERSION_ACTIVE,
            DocumentVersion.id != v.id,
        )
        .values(status=C.VERSION_SUPERSEDED)
        .execution_options(synchronize_session="fetch")
    )
    set_version_status(v, C.VERSION_ACTIVE)
    document.effective_date = effective
    transition_lifecycle(s, document, C.PUBLISHED, user=user, metadata={"version": v.label})
    record_event(
        s,
        actor=user,
        action="doc.publish",
        entity_type="DocumentVersion",
        entity_id=str(v.id),
        metadata={"document_code": document.document_code, "version": v.label, "effective_date": document.effective_date},
    )
    return document


def _ensure_not_in_flight(document: Document, action: str) -> None:
    if document.lifecycle_status in (C.IN_REVIEW, C.ESIGN_PENDING):
        raise InvalidStateError(
            f"Cannot {action} {document.document_code} while it is {document.lifecycle_status}.",
            document_id=document.id,
            current_status=document.lifecycle_status,
        )


def archive(s: Session, document: Document, *, user: User, reason: str) -> Document:
    if not (reason or "").strip():
        raise ValidationError("Archiving requires a reason.")
    _ensure_not_in_flight(document, "archive")
    return transition_lifecycle(s, document, C.ARCHIVED, user=user, reason=reason.strip())


def dispose(
    s: Session,
    document: Document,
    *,
    user: User,
    reason: str,
    method: str = "ELECTRONIC_DELETION",
    notes: str | None = None,
) -> DisposalRecord:
    """Retire a document for good and append a disposal record."""
    if not (reason or "").strip():
        raise ValidationError("Disposal requires a reason.")
    method = (method or "ELECTRONIC_DELETION").strip().upper()
    if method not in C.DISPOSAL_METHODS:
        raise ValidationError(f"Invalid disposal method. Must be one of: {', '.join(C.DISPOSAL_METHODS)}", method=method)
    _ensure_not_in_flight(document, "dispose")
    transition_lifecycle(s, document, C.DISPOSED, user=user, reason=reason.strip())

    rec = DisposalRecord(
        document_id=document.id,
        document_code=document.document_code,
        document_title=document.title,
        disposed_by_user_id=user.id,
        method=method,
        reason=reason.strip(),
        notes=(notes or "").strip() or None,
    )
    s.add(rec)
    s.flush()
    record_event(
        s,
        actor=user,
        action="doc.dispose",
        entity_type="Document",
        entity_id=str(document.id),
        reason=reason.strip(),
        metadata={"document_code": document.document_code, "method": method, "disposal_record_id": rec.id},
    )
    return rec


def document_to_dict(d: Document, *, include_versions: bool = False) -> dict:
    out = {
        "id": d.id,
        "document_code": d.document_code,
        "title": d.title,
        "category": d.category,
        "department": d.department,
        "current_version": d.current_version,
        "current_revision": d.current_revision,
        "lifecycle_status": d.lifecycle_status,
        "control_type": d.control_type,
        "sign_required": d.sign_required,
        "effective_date": d.effective_date.isoformat() if d.effective_date else None,
        "next_review_date": d.next_review_date.isoformat() if d.next_review_date else None,
        "expiry_date": d.expiry_date.isoformat() if d.expiry_date else None,
        "keywords": d.keyword_list,
        "description": d.description,
        "owner_user_id": d.owner_user_id,
        "created_at": d.created_at.isoformat() if d.created_at else None,
    }
    if include_versions:
        out["versions"] = [version_to_dict(v) for v in d.versions]
    return out


def version_to_dict(v: DocumentVersion) -> dict:
    return {
        "id": v.id,
        "version_number": v.version_number,
        "revision_number": v.revision_number,
        "label": v.label,
        "status": v.status,
        "file_name": v.file_name,
        "file_path": v.file_path,
        "file_size": v.file_size,
        "mime_type": v.mime_type,
        "signed_file_path": v.signed_file_path,
        "signed_at": v.signed_at.isoformat() if v.signed_at else None,
        "changes_note": v.changes_note,
        "created_at": v.created_at.isoformat() if v.created_at else None,
    }


def watermark_for(document: Document, version: DocumentVersion, user: User, at: datetime) -> str:
    return (
        f"UNCONTROLLED COPY | {document.document_code} {version.label} | "
        f"{user.display_name} | {at:%Y-%m-%d %H:%M} UTC"
    )


def record_export(
    s: Session,
    version: DocumentVersion,
    *,
    user: User,
    action: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> DocumentExportLog:
    """
    Log a copy leaving the register. Draft and retired versions can be exported
    too (reviewers need them); the log and watermark say which version it was.
    """
    action = (action or "").strip().upper()
    if action not in C.EXPORT_ACTIONS:
        raise ValidationError(f"action must be one of {', '.join(C.EXPORT_ACTIONS)}.", action=action)
    document = version.document
    if document.lifecycle_status == C.DISPOSED:
        raise InvalidStateError(
            f"{document.document_code} has been disposed; copies can no longer be issued.",
            document_id=document.id,
            current_status=document.lifecycle_status,
        )
    now = datetime.utcnow()
    log = DocumentExportLog(
        document_id=document.id,
        version_id=version.id,
        action=action,
        exported_by_user_id=user.id,
        exported_by_name=user.display_name,
        watermark_text=watermark_for(document, version, user, now),
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        created_at=now,
    )
    s.add(log)
    s.flush()
    record_event(
        s,
        actor=user,
        action="doc.export",
        entity_type="DocumentVersion",
        entity_id=str(version.id),
        metadata={"document_id": document.id, "version": version.label, "export_action": action, "export_id": log.id},
    )
    return log


def list_exports(s: Session, document_id: int, *, limit: int = 200) -> list[DocumentExportLog]:
    return list(
        s.execute(
            select(DocumentExportLog)
            .where(DocumentExportLog.document_id == document_id)
            .order_by(DocumentExportLog.created_at.desc(), DocumentExportLog.id.desc())
            .limit(max(1, min(limit, 1000)))
        )
        .scalars()
        .all()
    )


def export_log_to_dict(log: DocumentExportLog) -> dict:
    return {
        "id": log.id,
        "document_id": log.document_id,
        "version_id": log.version_id,
        "action": log.action,
        "exported_by_user_id": log.exported_by_user_id,
        "exported_by_name": log.exported_by_name,
        "watermark_text": log.watermark_text,
        "ip_address": log.ip_address,
        "user_agent": log.user_agent,
        "created_at": log.created_at.isoformat() if log.created_at else None,
    }
