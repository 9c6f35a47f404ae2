import pytest
from sqlalchemy import func, select

from app.hse import constants as C
from app.hse.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.hse.models import AuditEvent
from app.hse.modules.approvals.resolvers import ExplicitAssignees, StepSpec
from app.hse.modules.approvals.service import decide, submit_for_approval
from app.hse.modules.document_control.models import Document, DocumentVersion
from app.hse.modules.document_control.service import current_version
from app.hse.modules.esign.models import EsignRequest
from app.hse.modules.esign.provider import sign_payload, verify_callback_signature
from app.hse.modules.esign.service import handle_provider_callback, request_signature, retry


@pytest.fixture()
def approved_document(s, make_document, user, users):
    d = make_document("HSE-SOP-010")
    wf = submit_for_approval(
        s,
        d.id,
        current_version(s, d).id,
        [StepSpec(name="Review", resolver=ExplicitAssignees(user_ids=(users["andi"],)))],
        initiator=user("admin"),
    )
    s.commit()
    decide(s, wf.step(1).assignees[0].id, "APPROVED", actor=user("andi"))
    s.expire_all()
    d = s.get(Document, d.id)
    assert d.lifecycle_status == C.APPROVED
    return d


def _count(s, action):
    return s.execute(select(func.count(AuditEvent.id)).where(AuditEvent.action == action)).scalar_one()


def test_request_moves_document_to_esign_pending(s, approved_document, user, users, provider):
    req = request_signature(s, approved_document.id, users["budi"], user=user("admin"), provider=provider)
    s.commit()

    assert req.status == C.ESIGN_PENDING_REQUEST
    assert req.external_request_id.startswith("local-")
    assert req.workflow_id is not None
    assert req.signer_name == "Budi Santoso"
    assert approved_document.lifecycle_status == C.ESIGN_PENDING
    assert provider.sent[0].document_code == "HSE-SOP-010"
    assert provider.sent[0].version_label == "v1r0"


def test_request_requires_approved_document(s, make_document, user, users, provider):
    d = make_document()
    with pytest.raises(InvalidStateError):
        request_signature(s, d.id, users["budi"], user=user("admin"), provider=provider)


def test_one_live_request_per_signer(s, approved_document, user, users, provider):
    request_signature(s, approved_document.id, users["budi"], user=user("admin"), provider=provider)
    s.commit()
    with pytest.raises(ConflictError):
        request_signature(s, approved_document.id, users["budi"], user=user("admin"), provider=provider)
    with pytest.raises(NotFoundError):
        request_signature(s, approved_document.id, 999999, user=user("admin"), provider=provider)


def test_document_is_signed_when_last_signer_signs(s, approved_document, user, users, provider):
    admin = user("admin")
    r1 = request_signature(s, approved_document.id, users["budi"], user=admin, provider=provider)
    r2 = request_signature(s, approved_document.id, users["andi"], user=admin, provider=provider)
    s.commit()

    handle_provider_callback(s, r1.external_request_id, "SIGNED", signed_file_path="signed/sop-010-budi.pdf")
    s.commit()
    assert s.get(Document, approved_document.id).lifecycle_status == C.ESIGN_PENDING

    handle_provider_callback(s, r2.external_request_id, "signed", signed_file_path="signed/sop-010-final.pdf")
    s.commit()

    s.expire_all()
    d = s.get(Document, approved_document.id)
    v = s.get(DocumentVersion, r2.version_id)
    assert d.lifecycle_status == C.SIGNED
    assert v.status == C.VERSION_SIGNED
    assert v.signed_file_path == "signed/sop-010-final.pdf"
    assert v.signed_at is not None


def test_duplicate_signed_callback_is_a_no_op(s, approved_document, user, users, provider):
    req = request_signature(s, approved_document.id, users["budi"], user=user("admin"), provider=provider)
    s.commit()
    handle_provider_callback(s, req.external_request_id, "SIGNED")
    s.commit()
    signed_at = req.signed_at
    before = _count(s, "esign.callback")

    again = handle_provider_callback(s, req.external_request_id, "SIGNED")
    s.commit()
    assert again.status == C.ESIGN_SIGNED
    assert again.signed_at == signed_at
    assert _count(s, "esign.callback") == before

    # A late failure report for a settled request is ignored too.
    late = handle_provider_callback(s, req.external_request_id, "FAILED", failed_reason="timeout")
    assert late.status == C.ESIGN_SIGNED


def test_callback_validation(s):
    with pytest.raises(ValidationError):
        handle_provider_callback(s, "local-x", "EXPIRED")
    with pytest.raises(NotFoundError):
        handle_provider_callback(s, "local-does-not-exist", "SIGNED")


def test_failed_callback_then_retry_resubmits(s, approved_document, user, users, provider):
    req = request_signature(s, approved_document.id, users["budi"], user=user("admin"), provider=provider)
    s.commit()
    first_external_id = req.external_request_id

    handle_provider_callback(s, first_external_id, "FAILED", failed_reason="Signer certificate expired")
    s.commit()
    assert req.status == C.ESIGN_FAILED
    assert req.failed_reason == "Signer certificate expired"
    assert s.get(Document, approved_document.id).lifecycle_status == C.ESIGN_PENDING

    retry(s, req.id, user=user("admin"), provider=provider)
    s.commit()
    assert req.status == C.ESIGN_PENDING_REQUEST
    assert req.retry_count == 1
    assert req.last_retry_at is not None
    assert req.failed_reason is None
    assert req.external_request_id != first_external_id

    with pytest.raises(InvalidStateError):
        retry(s, req.id, user=user("admin"), provider=provider)


def test_provider_outage_is_recorded_on_the_request(s, approved_document, user, users, provider):
    provider.fail_next = 1
    req = request_signature(s, approved_document.id, users["budi"], user=user("admin"), provider=provider)
    s.commit()
    assert req.status == C.ESIGN_FAILED
    assert req.external_request_id is None
    assert "unavailable" in req.failed_reason
    assert approved_document.lifecycle_status == C.ESIGN_PENDING


def test_retry_cap_marks_request_failed_permanent(app, s, approved_document, user, users, provider):
    provider.fail_next = 100
    req = request_signature(s, approved_document.id, users["budi"], user=user("admin"), provider=provider)
    s.commit()
    req_id = req.id

    for expected in (1, 2, 3):
        retry(s, req_id, user=user("admin"), provider=provider, max_retries=3)
        s.commit()
        assert req.retry_count == expected
        assert req.status == C.ESIGN_FAILED

    with pytest.raises(InvalidStateError) as exc:
        retry(s, req_id, user=user("admin"), provider=provider, max_retries=3)
    assert exc.value.context["retry_count"] == 3

    # The permanent failure was committed before the error surfaced.
    fresh = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        assert fresh.get(EsignRequest, req_id).status == C.ESIGN_FAILED_PERMANENT
        assert fresh.get(Document, approved_document.id).lifecycle_status == C.APPROVED
    finally:
        fresh.close()
    assert _count(s, "esign.failed_permanent") == 1


def test_failed_callback_at_cap_settles_and_blocks_late_signature(s, approved_document, user, users, provider):
    req = request_signature(s, approved_document.id, users["budi"], user=user("admin"), provider=provider)
    s.commit()

    handle_provider_callback(s, req.external_request_id, "FAILED", max_retries=0)
    s.commit()
    assert req.status == C.ESIGN_FAILED_PERMANENT
    assert s.get(Document, approved_document.id).lifecycle_status == C.APPROVED

    with pytest.raises(InvalidStateError):
        handle_provider_callback(s, req.external_request_id, "SIGNED")


def test_callback_signature_verification():
    body = b'{"external_request_id": "local-1", "status": "SIGNED"}'
    sig = sign_payload("s3cret", body)

    assert verify_callback_signature("s3cret", body, sig) is True
    assert verify_callback_signature("s3cret", body, f"sha256={sig}") is True
    assert verify_callback_signature("s3cret", body, "deadbeef") is False
    assert verify_callback_signature("s3cret", body, None) is False
    assert verify_callback_signature("", body, None) is True


@pytest.mark.parametrize("budi_fails_first", [True, False])
def test_permanent_failure_blocks_signing_in_either_order(s, approved_document, user, users, provider, budi_fails_first):
    admin = user("admin")
    andi_req = request_signature(s, approved_document.id, users["andi"], user=admin, provider=provider)
    budi_req = request_signature(s, approved_document.id, users["budi"], user=admin, provider=provider)
    s.commit()

    callbacks = [
        lambda: handle_provider_callback(s, budi_req.external_request_id, "FAILED", max_retries=0),
        lambda: handle_provider_callback(s, andi_req.external_request_id, "SIGNED"),
    ]
    if not budi_fails_first:
        callbacks.reverse()
    for cb in callbacks:
        cb()
        s.commit()

    s.expire_all()
    assert s.get(Document, approved_document.id).lifecycle_status == C.APPROVED
    assert s.get(DocumentVersion, andi_req.version_id).status != C.VERSION_SIGNED

    # A fresh request for the missing signer completes the set.
    again = request_signature(s, approved_document.id, users["budi"], user=admin, provider=provider)
    s.commit()
    assert s.get(Document, approved_document.id).lifecycle_status == C.ESIGN_PENDING
    handle_provider_callback(s, again.external_request_id, "SIGNED")
    s.commit()

    s.expire_all()
    assert s.get(Document, approved_document.id).lifecycle_status == C.SIGNED
    assert s.get(DocumentVersion, andi_req.version_id).status == C.VERSION_SIGNED
