"""
Approval Workflow Engine service layer.

Lifecycle of one workflow:
- submit_for_approval: workflow + steps + assignees, step 1 IN_PROGRESS, document IN_REVIEW
- decide: write-once decision; a rejection vetoes the workflow, approvals complete a step
  once its quorum is met and either activate the next step or close the workflow APPROVED
- add_step_assignees: out-of-band staffing for steps whose directory lookup found nobody

``decide`` owns its transaction. Row locks (where the dialect has them) serialize decisions
on one step; every state move is additionally a compare-and-swap, and a lost swap re-runs
the whole decision from fresh reads (bounded, with backoff).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.hse import constants as C
from app.hse.audit import record_event
from app.hse.db import run_with_retry
from app.hse.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    OutOfTurnError,
    StepClosedError,
    TransitionRaceError,
    ValidationError,
)
from app.hse.modules.document_control.models import Document, DocumentVersion
from app.hse.modules.document_control.service import (
    get_document,
    get_version,
    set_version_status,
    transition_lifecycle,
)
from app.hse.notifier import Notification, Notifier

from .models import ApprovalStep, ApprovalWorkflow, StepAssignee
from .resolvers import ExplicitAssignees, StepSpec

if TYPE_CHECKING:
    from app.hse.directory import Person
    from app.hse.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecisionOutcome:
    assignee_id: int
    decision: str
    step_id: int
    step_number: int
    step_name: str | None
    step_status: str
    step_completed: bool
    workflow_id: int
    workflow_status: str
    current_step: int
    document_id: int
    document_status: str
    version_status: str

    @property
    def workflow_closed(self) -> bool:
        return self.workflow_status != C.WORKFLOW_PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "assignee_id": self.assignee_id,
            "decision": self.decision,
            "step_id": self.step_id,
            "step_number": self.step_number,
            "step_name": self.step_name,
            "step_status": self.step_status,
            "step_completed": self.step_completed,
            "workflow_id": self.workflow_id,
            "workflow_status": self.workflow_status,
            "workflow_closed": self.workflow_closed,
            "current_step": self.current_step,
            "document_id": self.document_id,
            "document_status": self.document_status,
            "version_status": self.version_status,
        }


@dataclass(frozen=True)
class PendingDecision:
    assignee_id: int
    step_id: int
    step_number: int
    step_name: str | None
    mode: str
    workflow_id: int
    workflow_name: str | None
    document_id: int
    document_code: str
    document_title: str
    department: str
    version_id: int
    version_label: str
    assigned_at: datetime
    deadline: datetime | None
    can_decide_now: bool

    def to_dict(self) -> dict[str, Any]:
        out = dict(self.__dict__)
        out["assigned_at"] = self.assigned_at.isoformat() if self.assigned_at else None
        out["deadline"] = self.deadline.isoformat() if self.deadline else None
        return out


@dataclass
class _DecisionResult:
    outcome: DecisionOutcome
    notify: list[Notification] = field(default_factory=list)


def _step_context(step: ApprovalStep, **extra: Any) -> dict[str, Any]:
    return {
        "step_id": step.id,
        "step_number": step.step_number,
        "step_name": step.step_name,
        "step_status": step.status,
        "workflow_id": step.workflow_id,
        **extra,
    }


def _compare_and_set(s: Session, model, row_id: int, *, expected: dict[str, Any], values: dict[str, Any], what: str) -> None:
    """UPDATE ... WHERE id = :id AND <expected>; anything but one row means we lost a race."""
    stmt = update(model).where(model.id == row_id)
    for col, val in expected.items():
        stmt = stmt.where(getattr(model, col) == val)
    res = s.execute(stmt.values(**values).execution_options(synchronize_session=False))
    if res.rowcount != 1:
        raise TransitionRaceError(
            f"Concurrent update detected while moving {what}.",
            entity=model.__name__,
            entity_id=row_id,
            expected={k: str(v) for k, v in expected.items()},
        )


def _inbox_notifications(step: ApprovalStep, people: list[tuple[int, str]], document: Document) -> list[Notification]:
    return [
        Notification(
            user_id=user_id,
            kind="approval.inbox",
            subject=f"Approval needed: {document.document_code} ({step.step_name or f'Step {step.step_number}'})",
            body=f"Hi {name}, {document.document_code} \"{document.title}\" is waiting for your decision.",
            data={"document_id": document.id, "step_id": step.id, "workflow_id": step.workflow_id},
        )
        for user_id, name in people
    ]


def _open_workflow_id(s: Session, document_id: int) -> int | None:
    return s.execute(
        select(ApprovalWorkflow.id).where(
            ApprovalWorkflow.document_id == document_id,
            ApprovalWorkflow.status == C.WORKFLOW_PENDING,
        )
    ).scalar_one_or_none()


def _validate_step_spec(step_def: StepSpec, idx: int) -> None:
    if step_def.mode not in C.STEP_MODES:
        raise ValidationError(
            f"Step {idx} mode must be one of {', '.join(C.STEP_MODES)}.", step_number=idx, step_name=step_def.name
        )
    if step_def.completion_policy not in C.COMPLETION_POLICIES:
        raise ValidationError(
            f"Step {idx} completion_policy must be one of {', '.join(C.COMPLETION_POLICIES)}.",
            step_number=idx,
            step_name=step_def.name,
        )
    if step_def.quorum_required < 1:
        raise ValidationError(f"Step {idx} quorum must be at least 1.", step_number=idx, step_name=step_def.name)


def submit_for_approval(
    s: Session,
    document_id: int,
    version_id: int,
    steps: list[StepSpec],
    *,
    initiator: User,
    workflow_name: str | None = None,
    deadline: datetime | None = None,
    notifier: Notifier | None = None,
) -> ApprovalWorkflow:
    """Open a workflow for the document's current DRAFT version. Caller commits."""
    d = get_document(s, document_id, for_update=True)
    v = get_version(s, version_id)
    if v.document_id != d.id:
        raise NotFoundError(
            f"Version {version_id} does not belong to document {d.document_code}.",
            document_id=d.id,
            version_id=version_id,
        )

    open_id = _open_workflow_id(s, d.id)
    if open_id is not None:
        raise ConflictError(
            f"{d.document_code} already has an open approval workflow.",
            document_id=d.id,
            workflow_id=open_id,
            current_status=d.lifecycle_status,
        )
    if d.lifecycle_status != C.DRAFT:
        raise InvalidStateError(
            f"Only DRAFT documents can be submitted; {d.document_code} is {d.lifecycle_status}.",
            document_id=d.id,
            current_status=d.lifecycle_status,
        )
    if (v.version_number, v.revision_number) != (d.current_version, d.current_revision) or v.status != C.VERSION_DRAFT:
        raise InvalidStateError(
            f"Version {v.label} is not the current draft of {d.document_code} ({d.version_label}).",
            document_id=d.id,
            version_id=v.id,
            version_status=v.status,
        )
    if not steps:
        raise ValidationError("At least one approval step is required.", document_id=d.id)

    resolved: list[tuple[StepSpec, list[Person], int]] = []
    for idx, step_def in enumerate(steps, start=1):
        _validate_step_spec(step_def, idx)
        people = step_def.resolver.resolve(s, d)
        if not people and not step_def.resolver.allows_empty:
            raise ValidationError(f"Step {idx} ({step_def.name}) needs at least one assignee.", step_number=idx, step_name=step_def.name)
        if not step_def.resolver.allows_empty and step_def.quorum_required > len(people):
            raise ValidationError(
                f"Step {idx} ({step_def.name}) quorum {step_def.quorum_required} exceeds its {len(people)} assignee(s).",
                step_number=idx,
                step_name=step_def.name,
                quorum_required=step_def.quorum_required,
                assignees=len(people),
            )
        if not people:
            logger.warning(
                "Approval step %s (%s) for %s resolved no assignees; it waits for manual assignment",
                idx,
                step_def.name,
                d.document_code,
            )
        resolved.append((step_def, people, min(step_def.quorum_required, len(people))))

    now = datetime.utcnow()
    wf = ApprovalWorkflow(
        document_id=d.id,
        version_id=v.id,
        workflow_name=(workflow_name or "").strip() or f"{d.document_code} {v.label} approval",
        total_steps=len(resolved),
        current_step=1,
        status=C.WORKFLOW_PENDING,
        initiated_by_user_id=initiator.id,
        initiated_at=now,
    )
    s.add(wf)
    try:
        s.flush()
    except IntegrityError:
        # Partial unique index: a concurrent submission opened a workflow first.
        s.rollback()
        raise ConflictError(f"{d.document_code} already has an open approval workflow.", document_id=document_id)

    first_step_people: list[tuple[int, str]] = []
    for idx, (step_def, people, quorum_required) in enumerate(resolved, start=1):
        st = ApprovalStep(
            workflow_id=wf.id,
            step_number=idx,
            step_name=step_def.name,
            mode=step_def.mode,
            completion_policy=step_def.completion_policy,
            quorum_target=step_def.quorum_required,
            quorum_required=quorum_required,
            quorum_achieved=0,
            status=C.STEP_IN_PROGRESS if idx == 1 else C.STEP_PENDING,
        )
        wf.steps.append(st)
        for seq, p in enumerate(people, start=1):
            st.assignees.append(
                StepAssignee(
                    assignee_user_id=p.id,
                    assignee_name=p.name,
                    assignee_position=p.position,
                    sequence=seq,
                    deadline=deadline,
                    notified_at=now if idx == 1 else None,
                )
            )
        if idx == 1:
            first_step_people = [(p.id, p.name) for p in people]
    s.flush()

    transition_lifecycle(s, d, C.IN_REVIEW, user=initiator, metadata={"workflow_id": wf.id, "version": v.label})
    set_version_status(v, C.VERSION_PENDING_APPROVAL)

    record_event(
        s,
        actor=initiator,
        action="approval.submit",
        entity_type="ApprovalWorkflow",
        entity_id=str(wf.id),
        metadata={
            "document_code": d.document_code,
            "version": v.label,
            "steps": [
                {"name": step_def.name, "mode": step_def.mode, "quorum": q, "assignees": [p.id for p in people], **step_def.resolver.describe()}
                for step_def, people, q in resolved
            ],
        },
    )
    s.flush()

    if notifier and first_step_people:
        notifier.notify_many(_inbox_notifications(wf.steps[0], first_step_people, d))
    logger.info("Workflow %s opened for %s %s with %s step(s)", wf.id, d.document_code, v.label, wf.total_steps)
    return wf


def add_step_assignees(
    s: Session,
    step_id: int,
    user_ids: list[int],
    *,
    user: User,
    notifier: Notifier | None = None,
) -> ApprovalStep:
    """Add approvers to an open step; quorum_required is recomputed as min(target, assignees)."""
    st = s.execute(
        select(ApprovalStep).where(ApprovalStep.id == step_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not st:
        raise NotFoundError(f"Approval step {step_id} not found.", step_id=step_id)
    wf = st.workflow
    if wf.status != C.WORKFLOW_PENDING or st.status not in (C.STEP_PENDING, C.STEP_IN_PROGRESS):
        raise StepClosedError(
            f"Step '{st.step_name}' is {st.status} (workflow {wf.status}); assignees can no longer be added.",
            **_step_context(st, workflow_status=wf.status),
        )
    if not user_ids:
        raise ValidationError("user_ids must not be empty.", step_id=step_id)

    people = ExplicitAssignees(user_ids=tuple(user_ids)).resolve(s, wf.document)
    existing = {a.assignee_user_id for a in st.assignees}
    new_people = [p for p in people if p.id not in existing]
    if not new_people:
        raise ConflictError(f"All requested users are already assigned to step '{st.step_name}'.", **_step_context(st))

    now = datetime.utcnow()
    next_seq = max((a.sequence for a in st.assignees), default=0) + 1
    is_active = st.status == C.STEP_IN_PROGRESS
    for offset, p in enumerate(new_people):
        st.assignees.append(
            StepAssignee(
                assignee_user_id=p.id,
                assignee_name=p.name,
                assignee_position=p.position,
                sequence=next_seq + offset,
                notified_at=now if is_active else None,
            )
        )
    st.quorum_required = min(st.quorum_target, len(st.assignees))
    s.flush()

    record_event(
        s,
        actor=user,
        action="approval.assign",
        entity_type="ApprovalStep",
        entity_id=str(st.id),
        metadata={"added": [p.id for p in new_people], "quorum_required": st.quorum_required},
    )
    if notifier and is_active:
        notifier.notify_many(_inbox_notifications(st, [(p.id, p.name) for p in new_people], wf.document))
    return st


def decide(
    s: Session,
    step_assignee_id: int,
    decision: str,
    *,
    comments: str | None = None,
    actor: User | None = None,
    notifier: Notifier | None = None,
    attempts: int = 3,
    backoff_seconds: float = 0.05,
) -> DecisionOutcome:
    """
    Record one assignee's decision and apply its consequences. Commits on success.

    Raises NotFoundError, ConflictError (already decided), StepClosedError (step or
    workflow no longer open), OutOfTurnError (APPROVED on a SERIAL step while an earlier
    assignee is pending), AuthorizationError (actor is not the named assignee).
    """
    decision = (decision or "").strip().upper()
    if decision not in C.DECISIONS:
        raise ValidationError(f"decision must be one of {', '.join(C.DECISIONS)}.", decision=decision)
    comments = (comments or "").strip() or None

    result = run_with_retry(
        s,
        lambda: _decide_once(s, step_assignee_id, decision, comments=comments, actor=actor),
        attempts=attempts,
        backoff_seconds=backoff_seconds,
        label=f"decision on assignee {step_assignee_id}",
    )
    # Only notify once the transition is durable.
    if notifier and result.notify:
        notifier.notify_many(result.notify)
    return result.outcome


def _decide_once(
    s: Session,
    step_assignee_id: int,
    decision: str,
    *,
    comments: str | None,
    actor: User | None,
) -> _DecisionResult:
    a = s.execute(
        select(StepAssignee).where(StepAssignee.id == step_assignee_id).execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not a:
        raise NotFoundError(f"Step assignee {step_assignee_id} not found.", assignee_id=step_assignee_id)

    st = s.execute(
        select(ApprovalStep).where(ApprovalStep.id == a.step_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not st:
        raise NotFoundError(f"Approval step {a.step_id} not found.", assignee_id=a.id, step_id=a.step_id)

    wf = s.execute(
        select(ApprovalWorkflow)
        .where(ApprovalWorkflow.id == st.workflow_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one()

    ctx = _step_context(st, assignee_id=a.id, workflow_status=wf.status)
    if actor is not None and actor.id != a.assignee_user_id:
        raise AuthorizationError(
            f"This decision belongs to {a.assignee_name}.", assignee_user_id=a.assignee_user_id, **ctx
        )
    if a.decision is not None:
        raise ConflictError(
            f"{a.assignee_name} already decided {a.decision} on step '{st.step_name}'.", current_decision=a.decision, **ctx
        )
    if wf.status != C.WORKFLOW_PENDING:
        raise StepClosedError(f"Workflow {wf.id} is already {wf.status}.", **ctx)
    if st.status != C.STEP_IN_PROGRESS:
        raise StepClosedError(f"Step '{st.step_name}' is {st.status}, not IN_PROGRESS.", **ctx)

    # A rejection is a veto and may be cast out of turn.
    if st.mode == C.MODE_SERIAL and decision != C.DECISION_REJECTED:
        next_seq = s.execute(
            select(func.min(StepAssignee.sequence)).where(
                StepAssignee.step_id == st.id,
                StepAssignee.decision.is_(None),
            )
        ).scalar_one()
        if next_seq is not None and a.sequence != next_seq:
            raise OutOfTurnError(
                f"Step '{st.step_name}' is serial; an earlier assignee has not decided yet.",
                assignee_sequence=a.sequence,
                next_sequence=next_seq,
                **ctx,
            )

    now = datetime.utcnow()
    # Write-once guard: only a NULL decision may be set.
    res = s.execute(
        update(StepAssignee)
        .where(StepAssignee.id == a.id, StepAssignee.decision.is_(None))
        .values(decision=decision, comments=comments, decided_at=now)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise ConflictError(f"{a.assignee_name} already decided on step '{st.step_name}'.", **ctx)

    d = get_document(s, wf.document_id, for_update=True)
    v = s.get(DocumentVersion, wf.version_id, populate_existing=True)

    notify: list[Notification] = []
    step_status = st.status
    step_completed = False
    wf_status = wf.status
    current_step = wf.current_step

    if decision == C.DECISION_REJECTED:
        _compare_and_set(
            s, ApprovalStep, st.id,
            expected={"status": C.STEP_IN_PROGRESS},
            values={"status": C.STEP_REJECTED, "completed_at": now},
            what=f"step '{st.step_name}' to REJECTED",
        )
        _compare_and_set(
            s, ApprovalWorkflow, wf.id,
            expected={"status": C.WORKFLOW_PENDING, "current_step": st.step_number},
            values={
                "status": C.WORKFLOW_REJECTED,
                "final_decision": C.DECISION_REJECTED,
                "final_notes": comments,
                "completed_at": now,
            },
            what=f"workflow {wf.id} to REJECTED",
        )
        transition_lifecycle(s, d, C.DRAFT, user=actor, reason=comments, metadata={"workflow_id": wf.id, "veto_by": a.assignee_user_id})
        set_version_status(v, C.VERSION_DRAFT)
        step_status, wf_status = C.STEP_REJECTED, C.WORKFLOW_REJECTED
    else:
        counts = dict(
            s.execute(
                select(StepAssignee.decision, func.count(StepAssignee.id))
                .where(StepAssignee.step_id == st.id)
                .group_by(StepAssignee.decision)
            ).all()
        )
        approved = counts.get(C.DECISION_APPROVED, 0)
        pending = counts.get(None, 0)
        s.execute(
            update(ApprovalStep)
            .where(ApprovalStep.id == st.id)
            .values(quorum_achieved=approved)
            .execution_options(synchronize_session=False)
        )
        threshold = max(1, st.quorum_required)
        complete = approved >= threshold and (st.completion_policy == C.POLICY_QUORUM or pending == 0)

        if complete:
            _compare_and_set(
                s, ApprovalStep, st.id,
                expected={"status": C.STEP_IN_PROGRESS},
                values={"status": C.STEP_COMPLETED, "completed_at": now},
                what=f"step '{st.step_name}' to COMPLETED",
            )
            step_status, step_completed = C.STEP_COMPLETED, True

            if st.step_number < wf.total_steps:
                nxt = s.execute(
                    select(ApprovalStep)
                    .where(ApprovalStep.workflow_id == wf.id, ApprovalStep.step_number == st.step_number + 1)
                    .execution_options(populate_existing=True)
                ).scalar_one()
                _compare_and_set(
                    s, ApprovalWorkflow, wf.id,
                    expected={"status": C.WORKFLOW_PENDING, "current_step": st.step_number},
                    values={"current_step": nxt.step_number},
                    what=f"workflow {wf.id} to step {nxt.step_number}",
                )
                _compare_and_set(
                    s, ApprovalStep, nxt.id,
                    expected={"status": C.STEP_PENDING},
                    values={"status": C.STEP_IN_PROGRESS},
                    what=f"step '{nxt.step_name}' to IN_PROGRESS",
                )
                s.execute(
                    update(StepAssignee)
                    .where(StepAssignee.step_id == nxt.id)
                    .values(notified_at=now)
                    .execution_options(synchronize_session=False)
                )
                current_step = nxt.step_number
                notify = _inbox_notifications(nxt, [(x.assignee_user_id, x.assignee_name) for x in nxt.assignees], d)
                if not nxt.assignees:
                    logger.warning("Workflow %s advanced to step %s which has no assignees", wf.id, nxt.step_number)
            else:
                _compare_and_set(
                    s, ApprovalWorkflow, wf.id,
                    expected={"status": C.WORKFLOW_PENDING, "current_step": st.step_number},
                    values={
                        "status": C.WORKFLOW_APPROVED,
                        "final_decision": C.DECISION_APPROVED,
                        "final_notes": comments,
                        "completed_at": now,
                    },
                    what=f"workflow {wf.id} to APPROVED",
                )
                transition_lifecycle(s, d, C.APPROVED, user=actor, metadata={"workflow_id": wf.id})
                set_version_status(v, C.VERSION_APPROVED)
                wf_status = C.WORKFLOW_APPROVED

    record_event(
        s,
        actor=actor,
        action="approval.decide",
        entity_type="StepAssignee",
        entity_id=str(a.id),
        reason=comments,
        metadata={
            "document_code": d.document_code,
            "workflow_id": wf.id,
            "step_number": st.step_number,
            "step_name": st.step_name,
            "decision": decision,
            "step_status": step_status,
            "workflow_status": wf_status,
        },
    )

    outcome = DecisionOutcome(
        assignee_id=a.id,
        decision=decision,
        step_id=st.id,
        step_number=st.step_number,
        step_name=st.step_name,
        step_status=step_status,
        step_completed=step_completed,
        workflow_id=wf.id,
        workflow_status=wf_status,
        current_step=current_step,
        document_id=d.id,
        document_status=d.lifecycle_status,
        version_status=v.status,
    )
    logger.info(
        "Decision %s by assignee %s on workflow %s step %s -> step %s, workflow %s",
        decision, outcome.assignee_id, outcome.workflow_id, outcome.step_number, step_status, wf_status,
    )
    # Core UPDATEs bypassed the identity map; reload on next access.
    for obj in (a, st, wf):
        s.expire(obj)
    return _DecisionResult(outcome=outcome, notify=notify)


def get_inbox(s: Session, user_id: int) -> list[PendingDecision]:
    """Undecided assignments on IN_PROGRESS steps of open workflows, most recently notified first."""
    rows = s.execute(
        select(StepAssignee, ApprovalStep, ApprovalWorkflow, Document, DocumentVersion)
        .join(ApprovalStep, StepAssignee.step_id == ApprovalStep.id)
        .join(ApprovalWorkflow, ApprovalStep.workflow_id == ApprovalWorkflow.id)
        .join(Document, ApprovalWorkflow.document_id == Document.id)
        .join(DocumentVersion, ApprovalWorkflow.version_id == DocumentVersion.id)
        .where(
            StepAssignee.assignee_user_id == user_id,
            StepAssignee.decision.is_(None),
            ApprovalStep.status == C.STEP_IN_PROGRESS,
            ApprovalWorkflow.status == C.WORKFLOW_PENDING,
        )
        .order_by(StepAssignee.notified_at.desc(), StepAssignee.id.desc())
    ).all()
    if not rows:
        return []

    step_ids = {st.id for _, st, _, _, _ in rows}
    next_in_line = dict(
        s.execute(
            select(StepAssignee.step_id, func.min(StepAssignee.sequence))
            .where(StepAssignee.step_id.in_(step_ids), StepAssignee.decision.is_(None))
            .group_by(StepAssignee.step_id)
        ).all()
    )

    out: list[PendingDecision] = []
    for a, st, wf, d, v in rows:
        can_decide = st.mode != C.MODE_SERIAL or next_in_line.get(st.id) == a.sequence
        out.append(
            PendingDecision(
                assignee_id=a.id,
                step_id=st.id,
                step_number=st.step_number,
                step_name=st.step_name,
                mode=st.mode,
                workflow_id=wf.id,
                workflow_name=wf.workflow_name,
                document_id=d.id,
                document_code=d.document_code,
                document_title=d.title,
                department=d.department,
                version_id=v.id,
                version_label=v.label,
                assigned_at=a.created_at,
                deadline=a.deadline,
                can_decide_now=can_decide,
            )
        )
    return out


def get_workflow_history(s: Session, document_id: int) -> list[ApprovalWorkflow]:
    """All workflows of a document with steps/assignees loaded, most-recent-first."""
    get_document(s, document_id)
    return list(
        s.execute(
            select(ApprovalWorkflow)
            .where(ApprovalWorkflow.document_id == document_id)
            .order_by(ApprovalWorkflow.initiated_at.desc(), ApprovalWorkflow.id.desc())
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )


def latest_workflow(s: Session, document_id: int) -> ApprovalWorkflow | None:
    history = get_workflow_history(s, document_id)
    return history[0] if history else None


def workflow_to_dict(wf: ApprovalWorkflow) -> dict[str, Any]:
    return {
        "id": wf.id,
        "document_id": wf.document_id,
        "version_id": wf.version_id,
        "workflow_name": wf.workflow_name,
        "total_steps": wf.total_steps,
        "current_step": wf.current_step,
        "status": wf.status,
        "final_decision": wf.final_decision,
        "final_notes": wf.final_notes,
        "initiated_by_user_id": wf.initiated_by_user_id,
        "initiated_at": wf.initiated_at.isoformat() if wf.initiated_at else None,
        "completed_at": wf.completed_at.isoformat() if wf.completed_at else None,
        "steps": [
            {
                "id": st.id,
                "step_number": st.step_number,
                "step_name": st.step_name,
                "mode": st.mode,
                "completion_policy": st.completion_policy,
                "quorum_target": st.quorum_target,
                "quorum_required": st.quorum_required,
                "quorum_achieved": st.quorum_achieved,
                "status": st.status,
                "completed_at": st.completed_at.isoformat() if st.completed_at else None,
                "assignees": [
                    {
                        "id": a.id,
                        "user_id": a.assignee_user_id,
                        "name": a.assignee_name,
                        "position": a.assignee_position,
                        "sequence": a.sequence,
                        "decision": a.decision,
                        "comments": a.comments,
                        "decided_at": a.decided_at.isoformat() if a.decided_at else None,
                    }
                    for a in st.assignees
                ],
            }
            for st in wf.steps
        ],
    }
