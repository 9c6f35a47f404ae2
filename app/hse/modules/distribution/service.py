"""
Distribution & acknowledgment tracking ("read and understood").

Compliance state is derived from the row, never stored:
acknowledged_at set -> acknowledged, is_read -> read, otherwise pending.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.hse import constants as C
from app.hse.audit import record_event
from app.hse.directory import get_people
from app.hse.errors import AuthorizationError, ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.hse.modules.document_control.models import Document
from app.hse.modules.document_control.service import current_version, get_document, version_in_force
from app.hse.notifier import Notification, Notifier

from .models import Distribution

if TYPE_CHECKING:
    from app.hse.models import User

logger = logging.getLogger(__name__)


@dataclass
class DistributionBatch:
    created: list[Distribution] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)  # recipient user ids already holding a copy

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": [distribution_to_dict(x) for x in self.created],
            "skipped": list(self.skipped),
        }


@dataclass(frozen=True)
class ComplianceEntry:
    distribution_id: int
    recipient_user_id: int
    recipient_name: str
    recipient_department: str | None
    is_mandatory: bool
    deadline: date | None
    status: str
    read_at: datetime | None
    acknowledged_at: datetime | None
    overdue: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "distribution_id": self.distribution_id,
            "recipient_user_id": self.recipient_user_id,
            "recipient_name": self.recipient_name,
            "recipient_department": self.recipient_department,
            "is_mandatory": self.is_mandatory,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "status": self.status,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            "overdue": self.overdue,
        }


def compliance_status_of(dist: Distribution) -> str:
    if dist.acknowledged_at is not None:
        return C.COMPLIANCE_ACKNOWLEDGED
    if dist.is_read:
        return C.COMPLIANCE_READ
    return C.COMPLIANCE_PENDING


def is_overdue(dist: Distribution, today: date) -> bool:
    return bool(
        dist.is_mandatory
        and dist.deadline is not None
        and dist.deadline < today
        and dist.acknowledged_at is None
    )


def can_distribute(d: Document) -> bool:
    if d.lifecycle_status in (C.PUBLISHED, C.SIGNED):
        return True
    return d.lifecycle_status == C.APPROVED and not d.sign_required


def get_distribution(s: Session, distribution_id: int) -> Distribution:
    dist = s.get(Distribution, distribution_id)
    if not dist:
        raise NotFoundError(f"Distribution {distribution_id} not found.", distribution_id=distribution_id)
    return dist


def _ensure_recipient(dist: Distribution, actor: User | None) -> None:
    if actor is not None and actor.id != dist.recipient_user_id:
        raise AuthorizationError(
            "Only the recipient can update this distribution.",
            distribution_id=dist.id,
            recipient_user_id=dist.recipient_user_id,
        )


def distribute(
    s: Session,
    document_id: int,
    recipient_user_ids: list[int],
    *,
    user: User,
    is_mandatory: bool = True,
    deadline: date | None = None,
    notifier: Notifier | None = None,
) -> DistributionBatch:
    d = get_document(s, document_id)
    if not can_distribute(d):
        raise InvalidStateError(
            f"{d.document_code} cannot be distributed while {d.lifecycle_status}.",
            document_id=d.id,
            current_status=d.lifecycle_status,
            sign_required=d.sign_required,
        )
    if not recipient_user_ids:
        raise ValidationError("At least one recipient is required.", document_id=d.id)

    # Keep first occurrence order, drop repeats within the request.
    wanted = list(dict.fromkeys(int(x) for x in recipient_user_ids))
    people = get_people(s, wanted)
    missing = sorted(set(wanted) - {p.id for p in people})
    if missing:
        raise NotFoundError(f"Unknown recipient user id(s): {missing}", user_ids=missing)

    v = current_version(s, d)
    already = set(
        s.execute(select(Distribution.recipient_user_id).where(Distribution.version_id == v.id)).scalars().all()
    )

    batch = DistributionBatch()
    now = datetime.utcnow()
    for p in people:
        if p.id in already:
            batch.skipped.append(p.id)
            continue
        dist = Distribution(
            document_id=d.id,
            version_id=v.id,
            recipient_user_id=p.id,
            recipient_name=p.name,
            recipient_department=p.department,
            is_mandatory=bool(is_mandatory),
            deadline=deadline,
            is_read=False,
            distributed_by_user_id=user.id,
            distributed_at=now,
        )
        s.add(dist)
        batch.created.append(dist)
    try:
        s.flush()
    except IntegrityError:
        s.rollback()
        raise ConflictError(
            f"{d.document_code} {v.label} was distributed concurrently; reload and try again.",
            document_id=d.id,
            version_id=v.id,
        )

    record_event(
        s,
        actor=user,
        action="distribution.send",
        entity_type="DocumentVersion",
        entity_id=str(v.id),
        metadata={
            "document_code": d.document_code,
            "version": v.label,
            "created": [x.recipient_user_id for x in batch.created],
            "skipped": batch.skipped,
            "is_mandatory": bool(is_mandatory),
            "deadline": deadline,
        },
    )

    if notifier and batch.created:
        due = f" by {deadline.isoformat()}" if deadline else ""
        notifier.notify_many(
            [
                Notification(
                    user_id=x.recipient_user_id,
                    kind="distribution.new",
                    subject=f"Please read {d.document_code} {v.label}",
                    body=f"\"{d.title}\" has been distributed to you; please read and acknowledge{due}.",
                    data={"document_id": d.id, "distribution_id": x.id},
                )
                for x in batch.created
            ]
        )
    logger.info(
        "Distributed %s %s to %s recipient(s), %s skipped", d.document_code, v.label, len(batch.created), len(batch.skipped)
    )
    return batch


def mark_read(s: Session, distribution_id: int, *, actor: User | None = None) -> Distribution:
    dist = get_distribution(s, distribution_id)
    _ensure_recipient(dist, actor)
    if dist.is_read:
        return dist
    dist.is_read = True
    dist.read_at = datetime.utcnow()
    s.flush()
    record_event(
        s,
        actor=actor,
        action="distribution.read",
        entity_type="Distribution",
        entity_id=str(dist.id),
        metadata={"document_id": dist.document_id, "version_id": dist.version_id},
    )
    return dist


def acknowledge(
    s: Session,
    distribution_id: int,
    *,
    actor: User | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> Distribution:
    """Acknowledging implies reading. Repeats refresh acknowledged_at and keep read_at."""
    dist = get_distribution(s, distribution_id)
    _ensure_recipient(dist, actor)
    now = datetime.utcnow()
    if not dist.is_read:
        dist.is_read = True
        dist.read_at = now
    repeat = dist.acknowledged_at is not None
    dist.acknowledged_at = now
    if ip_address:
        dist.ip_address = ip_address[:64]
    if user_agent:
        dist.user_agent = user_agent
    s.flush()
    record_event(
        s,
        actor=actor,
        action="distribution.acknowledge",
        entity_type="Distribution",
        entity_id=str(dist.id),
        metadata={"document_id": dist.document_id, "version_id": dist.version_id, "repeat": repeat},
    )
    return dist


def get_compliance_status(s: Session, document_id: int, *, today: date | None = None) -> list[ComplianceEntry]:
    """Per-recipient status for the version in force (ACTIVE while a revision is drafted)."""
    d = get_document(s, document_id)
    v = version_in_force(s, d)
    today = today or date.today()
    rows = s.execute(
        select(Distribution)
        .where(Distribution.version_id == v.id)
        .order_by(Distribution.distributed_at.desc(), Distribution.id.desc())
    ).scalars().all()
    return [
        ComplianceEntry(
            distribution_id=x.id,
            recipient_user_id=x.recipient_user_id,
            recipient_name=x.recipient_name,
            recipient_department=x.recipient_department,
            is_mandatory=x.is_mandatory,
            deadline=x.deadline,
            status=compliance_status_of(x),
            read_at=x.read_at,
            acknowledged_at=x.acknowledged_at,
            overdue=is_overdue(x, today),
        )
        for x in rows
    ]


def compliance_summary(entries: list[ComplianceEntry]) -> dict[str, Any]:
    total = len(entries)
    counts = {C.COMPLIANCE_PENDING: 0, C.COMPLIANCE_READ: 0, C.COMPLIANCE_ACKNOWLEDGED: 0}
    for e in entries:
        counts[e.status] += 1
    mandatory = [e for e in entries if e.is_mandatory]
    mandatory_ack = sum(1 for e in mandatory if e.status == C.COMPLIANCE_ACKNOWLEDGED)
    return {
        "total": total,
        **counts,
        "overdue": sum(1 for e in entries if e.overdue),
        "mandatory": len(mandatory),
        "mandatory_acknowledged": mandatory_ack,
        "acknowledged_pct": round(100.0 * counts[C.COMPLIANCE_ACKNOWLEDGED] / total, 1) if total else 0.0,
    }


def list_for_recipient(s: Session, user_id: int, *, include_acknowledged: bool = True) -> list[Distribution]:
    stmt = select(Distribution).where(Distribution.recipient_user_id == user_id)
    if not include_acknowledged:
        stmt = stmt.where(Distribution.acknowledged_at.is_(None))
    stmt = stmt.order_by(Distribution.distributed_at.desc(), Distribution.id.desc())
    return list(s.execute(stmt).scalars().all())


def find_overdue(s: Session, *, today: date) -> list[Distribution]:
    """Mandatory, unacknowledged, past deadline and not yet reminded."""
    return list(
        s.execute(
            select(Distribution)
            .where(
                Distribution.is_mandatory.is_(True),
                Distribution.acknowledged_at.is_(None),
                Distribution.deadline.is_not(None),
                Distribution.deadline < today,
                Distribution.deadline_notified_at.is_(None),
            )
            .order_by(Distribution.deadline.asc(), Distribution.id.asc())
        )
        .scalars()
        .all()
    )


def sweep_overdue(s: Session, *, notifier: Notifier, today: date | None = None) -> int:
    """
    Remind each overdue recipient once. Rows whose notification could not be
    delivered stay unmarked and are picked up by the next sweep.
    """
    today = today or date.today()
    notified: list[int] = []
    for dist in find_overdue(s, today=today):
        doc = dist.document
        ok = notifier.notify(
            Notification(
                user_id=dist.recipient_user_id,
                kind="distribution.deadline",
                subject=f"Overdue: acknowledge {doc.document_code}",
                body=(
                    f"Hi {dist.recipient_name}, acknowledgment of \"{doc.title}\" was due on "
                    f"{dist.deadline.isoformat()}."
                ),
                data={"document_id": dist.document_id, "distribution_id": dist.id},
            )
        )
        if ok:
            dist.deadline_notified_at = datetime.utcnow()
            notified.append(dist.id)
    if notified:
        s.flush()
        record_event(
            s,
            actor=None,
            action="distribution.overdue_notified",
            entity_type="Distribution",
            metadata={"distribution_ids": notified, "today": today},
        )
    logger.info("Deadline sweep for %s: %s reminder(s) sent", today.isoformat(), len(notified))
    return len(notified)


def distribution_to_dict(dist: Distribution, *, today: date | None = None) -> dict[str, Any]:
    today = today or date.today()
    doc = dist.document
    ver = dist.version
    return {
        "id": dist.id,
        "document_id": dist.document_id,
        "document_code": doc.document_code if doc else None,
        "document_title": doc.title if doc else None,
        "version_id": dist.version_id,
        "version_label": ver.label if ver else None,
        "recipient_user_id": dist.recipient_user_id,
        "recipient_name": dist.recipient_name,
        "recipient_department": dist.recipient_department,
        "is_mandatory": dist.is_mandatory,
        "deadline": dist.deadline.isoformat() if dist.deadline else None,
        "is_read": dist.is_read,
        "read_at": dist.read_at.isoformat() if dist.read_at else None,
        "acknowledged_at": dist.acknowledged_at.isoformat() if dist.acknowledged_at else None,
        "status": compliance_status_of(dist),
        "overdue": is_overdue(dist, today),
        "distributed_at": dist.distributed_at.isoformat() if dist.distributed_at else None,
    }
