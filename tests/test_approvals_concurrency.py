import threading

import pytest
from sqlalchemy import func, select

from app.hse import constants as C
from app.hse.db import run_with_retry
from app.hse.errors import ConflictError, StepClosedError, TransitionRaceError
from app.hse.models import AuditEvent
from app.hse.modules.approvals.models import ApprovalStep, ApprovalWorkflow, StepAssignee
from app.hse.modules.approvals.resolvers import ExplicitAssignees, StepSpec
from app.hse.modules.approvals.service import _compare_and_set, decide, submit_for_approval
from app.hse.modules.document_control.models import Document
from app.hse.modules.document_control.service import current_version


def _open_panel(s, d, initiator, user_ids, quorum):
    wf = submit_for_approval(
        s,
        d.id,
        current_version(s, d).id,
        [
            StepSpec(
                name="Panel",
                resolver=ExplicitAssignees(user_ids=tuple(user_ids)),
                mode=C.MODE_PARALLEL,
                quorum_required=quorum,
            )
        ],
        initiator=initiator,
    )
    s.commit()
    return wf


def test_compare_and_set_detects_a_lost_race(s, make_document, user, users):
    d = make_document()
    wf = _open_panel(s, d, user("admin"), [users["andi"]], 1)
    step_id = wf.step(1).id

    with pytest.raises(TransitionRaceError) as exc:
        _compare_and_set(
            s,
            ApprovalStep,
            step_id,
            expected={"status": C.STEP_PENDING},
            values={"status": C.STEP_IN_PROGRESS},
            what="step to IN_PROGRESS",
        )
    assert exc.value.context["entity_id"] == step_id
    s.rollback()


def test_run_with_retry_reruns_unit_after_lost_race(s):
    calls = []

    def unit():
        calls.append(1)
        if len(calls) < 3:
            raise TransitionRaceError("lost", entity="ApprovalStep", entity_id=1)
        return "done"

    assert run_with_retry(s, unit, attempts=3, backoff_seconds=0) == "done"
    assert len(calls) == 3


def test_run_with_retry_gives_up_with_conflict(s):
    def unit():
        raise TransitionRaceError("lost", entity="ApprovalWorkflow", entity_id=7)

    with pytest.raises(ConflictError) as exc:
        run_with_retry(s, unit, attempts=2, backoff_seconds=0, label="decision")
    assert not isinstance(exc.value, TransitionRaceError)
    assert exc.value.context["attempts"] == 2
    assert exc.value.context["entity_id"] == 7


def test_stale_session_cannot_decide_on_step_closed_elsewhere(app, s, make_document, user, users):
    d = make_document()
    wf = _open_panel(s, d, user("admin"), [users["andi"], users["citra"]], 1)
    andi_id = wf.step(1).assignees[0].id
    citra_id = wf.step(1).assignees[1].id

    other = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        # The second session looks at the step while it is still open.
        stale_step = other.get(ApprovalStep, wf.step(1).id)
        assert stale_step.status == C.STEP_IN_PROGRESS

        out = decide(s, andi_id, "APPROVED")
        assert out.workflow_status == C.WORKFLOW_APPROVED

        assert stale_step.status == C.STEP_IN_PROGRESS
        with pytest.raises(StepClosedError):
            decide(other, citra_id, "APPROVED")
        assert other.get(StepAssignee, citra_id).decision is None
    finally:
        other.close()

    approvals = s.execute(
        select(func.count(AuditEvent.id)).where(AuditEvent.action == "approval.decide")
    ).scalar_one()
    assert approvals == 1


def test_concurrent_decisions_close_the_workflow_exactly_once(app, s, make_document, user, users):
    d = make_document()
    reviewers = [users["andi"], users["citra"], users["budi"]]
    wf = _open_panel(s, d, user("admin"), reviewers, 2)
    wf_id = wf.id
    assignee_ids = [a.id for a in wf.step(1).assignees]

    sm = app.extensions["sqlalchemy_sessionmaker"]
    barrier = threading.Barrier(len(assignee_ids))
    outcomes = []
    errors = []
    lock = threading.Lock()

    def worker(assignee_id):
        session = sm()
        try:
            barrier.wait(timeout=10)
            out = decide(session, assignee_id, "APPROVED", attempts=8, backoff_seconds=0.01)
            with lock:
                outcomes.append(out)
        except ConflictError as e:
            with lock:
                errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(aid,)) for aid in assignee_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert len(outcomes) + len(errors) == len(assignee_ids)
    assert len(outcomes) >= 2
    assert sum(1 for o in outcomes if o.workflow_closed and o.step_completed) == 1

    s.expire_all()
    wf = s.get(ApprovalWorkflow, wf_id)
    assert wf.status == C.WORKFLOW_APPROVED
    assert wf.step(1).status == C.STEP_COMPLETED
    assert s.get(Document, d.id).lifecycle_status == C.APPROVED

    decided = [a for a in wf.step(1).assignees if a.decision is not None]
    assert len(decided) == len(outcomes)

    to_approved = [
        e
        for e in s.execute(select(AuditEvent).where(AuditEvent.action == "doc.lifecycle")).scalars()
        if '"to": "APPROVED"' in (e.metadata_json or "")
    ]
    assert len(to_approved) == 1
