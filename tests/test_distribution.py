from datetime import date, timedelta

import pytest
from sqlalchemy import select

from app.hse import constants as C
from app.hse.errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from app.hse.models import AuditEvent
from app.hse.modules.change_requests.service import create_change_request, resolve
from app.hse.modules.distribution.models import Distribution
from app.hse.modules.distribution.service import (
    acknowledge,
    compliance_summary,
    distribute,
    find_overdue,
    get_compliance_status,
    list_for_recipient,
    mark_read,
    sweep_overdue,
)
from app.hse.modules.document_control.service import publish, transition_lifecycle
from app.hse.notifier import Notifier, RecordingNotifier


class _FlakyNotifier(Notifier):
    """Fails for one recipient, delivers to everyone else."""

    def __init__(self, fail_for: int) -> None:
        self.fail_for = fail_for
        self.delivered: list[int] = []

    def send(self, notification) -> None:
        if notification.user_id == self.fail_for:
            raise RuntimeError("gateway timeout")
        self.delivered.append(notification.user_id)


@pytest.fixture()
def published_document(s, make_document, user):
    admin = user("admin")
    d = make_document("HSE-WI-020", sign_required=False)
    transition_lifecycle(s, d, C.IN_REVIEW, user=admin)
    transition_lifecycle(s, d, C.APPROVED, user=admin)
    publish(s, d, user=admin)
    s.commit()
    return d


def test_distribute_skips_recipients_who_already_have_the_version(s, published_document, user, users, notifier):
    admin = user("admin")
    batch = distribute(
        s, published_document.id, [users["dewi"], users["citra"], users["dewi"]], user=admin, notifier=notifier
    )
    s.commit()
    assert [x.recipient_user_id for x in batch.created] == [users["dewi"], users["citra"]]
    assert batch.skipped == []
    assert {n.kind for n in notifier.sent} == {"distribution.new"}

    batch = distribute(s, published_document.id, [users["dewi"], users["budi"]], user=admin)
    s.commit()
    assert [x.recipient_user_id for x in batch.created] == [users["budi"]]
    assert batch.skipped == [users["dewi"]]
    assert s.query(Distribution).count() == 3


def test_distribute_rejects_unpublished_or_unknown(s, make_document, published_document, user, users):
    draft = make_document("HSE-WI-021")
    with pytest.raises(InvalidStateError):
        distribute(s, draft.id, [users["dewi"]], user=user("admin"))
    with pytest.raises(NotFoundError):
        distribute(s, published_document.id, [users["dewi"], 987654], user=user("admin"))
    with pytest.raises(ValidationError):
        distribute(s, published_document.id, [], user=user("admin"))


def test_approved_unsigned_document_can_be_distributed(s, make_document, user, users):
    admin = user("admin")
    d = make_document("HSE-WI-022", sign_required=False)
    transition_lifecycle(s, d, C.IN_REVIEW, user=admin)
    transition_lifecycle(s, d, C.APPROVED, user=admin)
    s.commit()
    batch = distribute(s, d.id, [users["dewi"]], user=admin)
    assert len(batch.created) == 1


def test_acknowledge_implies_read_and_is_idempotent(s, published_document, user, users):
    batch = distribute(s, published_document.id, [users["dewi"]], user=user("admin"))
    s.commit()
    dist_id = batch.created[0].id
    dewi = user("dewi")

    dist = acknowledge(s, dist_id, actor=dewi, ip_address="10.0.0.5", user_agent="pytest")
    s.commit()
    first_read_at, first_ack_at = dist.read_at, dist.acknowledged_at
    assert dist.is_read is True
    assert first_read_at is not None
    assert dist.ip_address == "10.0.0.5"

    dist = acknowledge(s, dist_id, actor=dewi)
    s.commit()
    assert dist.read_at == first_read_at
    assert dist.acknowledged_at >= first_ack_at

    # Reading after acknowledging changes nothing.
    assert mark_read(s, dist_id, actor=dewi).read_at == first_read_at

    repeats = [
        e.metadata_json
        for e in s.execute(
            select(AuditEvent).where(AuditEvent.action == "distribution.acknowledge").order_by(AuditEvent.id)
        ).scalars()
    ]
    assert len(repeats) == 2
    assert '"repeat": true' in repeats[1]


def test_only_recipient_can_acknowledge(s, published_document, user, users):
    batch = distribute(s, published_document.id, [users["dewi"]], user=user("admin"))
    s.commit()
    with pytest.raises(AuthorizationError):
        acknowledge(s, batch.created[0].id, actor=user("budi"))
    with pytest.raises(NotFoundError):
        mark_read(s, 424242)


def test_compliance_status_and_summary(s, published_document, user, users):
    today = date(2026, 3, 10)
    batch = distribute(
        s,
        published_document.id,
        [users["dewi"], users["citra"], users["budi"]],
        user=user("admin"),
        deadline=today - timedelta(days=1),
    )
    s.commit()
    by_user = {x.recipient_user_id: x.id for x in batch.created}
    mark_read(s, by_user[users["citra"]], actor=user("citra"))
    acknowledge(s, by_user[users["budi"]], actor=user("budi"))
    s.commit()

    entries = {e.recipient_user_id: e for e in get_compliance_status(s, published_document.id, today=today)}
    assert entries[users["dewi"]].status == C.COMPLIANCE_PENDING
    assert entries[users["dewi"]].overdue is True
    assert entries[users["citra"]].status == C.COMPLIANCE_READ
    assert entries[users["budi"]].status == C.COMPLIANCE_ACKNOWLEDGED
    assert entries[users["budi"]].overdue is False

    summary = compliance_summary(list(entries.values()))
    assert summary["total"] == 3
    assert summary[C.COMPLIANCE_ACKNOWLEDGED] == 1
    assert summary["overdue"] == 2
    assert summary["acknowledged_pct"] == 33.3


def test_list_for_recipient_pending_only(s, published_document, user, users):
    admin = user("admin")
    batch = distribute(s, published_document.id, [users["dewi"]], user=admin)
    s.commit()
    acknowledge(s, batch.created[0].id, actor=user("dewi"))
    s.commit()

    assert len(list_for_recipient(s, users["dewi"])) == 1
    assert list_for_recipient(s, users["dewi"], include_acknowledged=False) == []


def test_sweep_notifies_overdue_once_and_retries_failures(s, published_document, user, users):
    today = date(2026, 3, 10)
    admin = user("admin")
    distribute(s, published_document.id, [users["dewi"], users["citra"]], user=admin, deadline=date(2026, 3, 1))
    distribute(s, published_document.id, [users["budi"]], user=admin, deadline=date(2026, 3, 20))
    distribute(s, published_document.id, [users["andi"]], user=admin, deadline=date(2026, 3, 1), is_mandatory=False)
    s.commit()

    assert {x.recipient_user_id for x in find_overdue(s, today=today)} == {users["dewi"], users["citra"]}

    flaky = _FlakyNotifier(fail_for=users["citra"])
    assert sweep_overdue(s, notifier=flaky, today=today) == 1
    s.commit()
    assert flaky.delivered == [users["dewi"]]

    recorder = RecordingNotifier()
    assert sweep_overdue(s, notifier=recorder, today=today) == 1
    s.commit()
    assert [n.user_id for n in recorder.sent] == [users["citra"]]
    assert recorder.sent[0].kind == "distribution.deadline"

    assert sweep_overdue(s, notifier=RecordingNotifier(), today=today) == 0


def test_compliance_follows_the_active_version_while_a_revision_is_drafted(s, published_document, user, users):
    admin = user("admin")
    batch = distribute(s, published_document.id, [users["dewi"]], user=admin)
    s.commit()
    acknowledge(s, batch.created[0].id, actor=user("dewi"))
    s.commit()

    cr = create_change_request(s, published_document.id, requester=user("dewi"), description="Add muster point map")
    resolve(s, cr.id, "APPROVED", resolver=admin)
    s.commit()
    assert published_document.lifecycle_status == C.DRAFT

    entries = get_compliance_status(s, published_document.id)
    assert [e.recipient_user_id for e in entries] == [users["dewi"]]
    assert entries[0].status == C.COMPLIANCE_ACKNOWLEDGED
