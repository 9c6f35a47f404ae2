import pytest

from app.hse import constants as C
from app.hse.errors import InvalidStateError, ValidationError
from app.hse.modules.change_requests.service import (
    complete_change_request,
    create_change_request,
    list_change_requests,
    resolve,
)
from app.hse.modules.document_control.models import DocumentVersion
from app.hse.modules.document_control.service import current_version, publish, transition_lifecycle


@pytest.fixture()
def published_document(s, make_document, user):
    admin = user("admin")
    d = make_document("HSE-PRO-030", sign_required=False)
    transition_lifecycle(s, d, C.IN_REVIEW, user=admin)
    transition_lifecycle(s, d, C.APPROVED, user=admin)
    publish(s, d, user=admin)
    s.commit()
    return d


def test_change_request_only_for_published_documents(s, make_document, user):
    d = make_document("HSE-PRO-031")
    with pytest.raises(InvalidStateError):
        create_change_request(s, d.id, requester=user("dewi"), description="Update contact list")


def test_create_validates_choices(s, published_document, user):
    with pytest.raises(ValidationError):
        create_change_request(s, published_document.id, requester=user("dewi"), description="x", priority="ASAP")
    with pytest.raises(ValidationError):
        create_change_request(s, published_document.id, requester=user("dewi"), description="  ")


def test_approval_spawns_a_new_draft_revision(s, published_document, user):
    active = current_version(s, published_document)
    cr = create_change_request(
        s,
        published_document.id,
        requester=user("dewi"),
        description="Add confined-space gas test step",
        reason="Near miss 2026-02",
        priority="high",
        affected_sections="4.2",
    )
    s.commit()
    assert cr.status == C.CR_PENDING
    assert cr.priority == "HIGH"

    resolve(s, cr.id, "APPROVED", resolver=user("admin"), comments="Go ahead")
    s.commit()

    assert cr.status == C.CR_COMPLETED
    assert cr.reviewed_by_user_id == user("admin").id
    new_version = s.get(DocumentVersion, cr.new_version_id)
    assert new_version.label == "v1r1"
    assert new_version.status == C.VERSION_DRAFT
    assert new_version.file_path == active.file_path
    assert published_document.lifecycle_status == C.DRAFT
    assert s.get(DocumentVersion, active.id).status == C.VERSION_ACTIVE


def test_rejection_leaves_document_untouched(s, published_document, user):
    cr = create_change_request(s, published_document.id, requester=user("dewi"), description="Rename section")
    resolve(s, cr.id, "REJECTED", resolver=user("admin"), comments="Not needed")
    s.commit()

    assert cr.status == C.CR_REJECTED
    assert cr.new_version_id is None
    assert published_document.lifecycle_status == C.PUBLISHED
    with pytest.raises(InvalidStateError):
        resolve(s, cr.id, "APPROVED", resolver=user("admin"))


def test_approved_request_waits_when_document_left_published(s, published_document, user):
    admin = user("admin")
    first = create_change_request(s, published_document.id, requester=user("dewi"), description="First")
    second = create_change_request(s, published_document.id, requester=user("citra"), description="Second")
    s.commit()

    resolve(s, first.id, "APPROVED", resolver=admin)
    s.commit()
    assert published_document.lifecycle_status == C.DRAFT

    # The document is already being revised; the second request is approved but not yet applied.
    resolve(s, second.id, "APPROVED", resolver=admin)
    s.commit()
    assert second.status == C.CR_APPROVED
    assert second.new_version_id is None

    with pytest.raises(InvalidStateError):
        complete_change_request(s, second.id, user=admin)

    statuses = [cr.status for cr in list_change_requests(s, published_document.id)]
    assert statuses == [C.CR_APPROVED, C.CR_COMPLETED]
    assert [cr.id for cr in list_change_requests(s, published_document.id, status="approved")] == [second.id]
