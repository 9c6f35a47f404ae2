from datetime import date, timedelta

import pytest
from sqlalchemy import select

from app.hse import constants as C
from app.hse.errors import ConflictError, InvalidStateError, ValidationError
from app.hse.models import AuditEvent
from app.hse.modules.document_control.models import DisposalRecord, DocumentVersion
from app.hse.modules.document_control.service import (
    FileRef,
    archive,
    create_document,
    create_draft_version,
    current_version,
    dispose,
    list_documents,
    list_exports,
    normalize_keywords,
    publish,
    record_export,
    transition_lifecycle,
)


def _fast_track_to_approved(s, d, u):
    transition_lifecycle(s, d, C.IN_REVIEW, user=u)
    transition_lifecycle(s, d, C.APPROVED, user=u)
    s.commit()


def test_create_document_starts_in_draft_with_v1r0(s, make_document):
    d = make_document("hse-sop-001")

    assert d.document_code == "HSE-SOP-001"
    assert d.lifecycle_status == C.DRAFT
    assert (d.current_version, d.current_revision) == (1, 0)
    v = current_version(s, d)
    assert v.status == C.VERSION_DRAFT
    assert v.label == "v1r0"

    actions = [e.action for e in s.execute(select(AuditEvent)).scalars()]
    assert "doc.create" in actions


def test_duplicate_document_code_is_a_conflict(s, make_document, user):
    make_document("HSE-SOP-001")
    with pytest.raises(ConflictError):
        create_document(
            s,
            document_code="hse-sop-001",
            title="Duplicate",
            category="SOP",
            department="HSE",
            file=FileRef(file_name="x.pdf", file_path="documents/x.pdf"),
            user=user("admin"),
        )


def test_missing_fields_are_rejected(s, user):
    with pytest.raises(ValidationError):
        create_document(
            s,
            document_code="",
            title="No code",
            category="SOP",
            department="HSE",
            file=FileRef(file_name="x.pdf", file_path="documents/x.pdf"),
            user=user("admin"),
        )


def test_off_graph_transition_is_rejected(s, make_document, user):
    d = make_document()
    with pytest.raises(InvalidStateError) as exc:
        transition_lifecycle(s, d, C.PUBLISHED, user=user("admin"))
    assert exc.value.context["current_status"] == C.DRAFT
    assert d.lifecycle_status == C.DRAFT


def test_new_revision_replaces_current_draft_pointer(s, make_document, user):
    d = make_document()
    v = create_draft_version(
        s, d, file=FileRef(file_name="r1.pdf", file_path="documents/r1.pdf"), user=user("admin"), changes_note="Typo fixes"
    )
    s.commit()

    assert v.label == "v1r1"
    assert (d.current_version, d.current_revision) == (1, 1)
    assert current_version(s, d).id == v.id
    assert len(d.versions) == 2


def test_new_version_not_allowed_while_in_review(s, make_document, user):
    d = make_document()
    transition_lifecycle(s, d, C.IN_REVIEW, user=user("admin"))
    with pytest.raises(InvalidStateError):
        create_draft_version(s, d, file=FileRef(file_name="r1.pdf", file_path="documents/r1.pdf"), user=user("admin"))


def test_publish_requires_signature_when_sign_required(s, make_document, user):
    d = make_document(sign_required=True)
    _fast_track_to_approved(s, d, user("admin"))
    with pytest.raises(InvalidStateError):
        publish(s, d, user=user("admin"))


def test_publish_unsigned_document_and_supersede_previous_version(s, make_document, user):
    admin = user("admin")
    d = make_document(sign_required=False)
    _fast_track_to_approved(s, d, admin)

    publish(s, d, user=admin)
    s.commit()
    first = current_version(s, d)
    assert d.lifecycle_status == C.PUBLISHED
    assert first.status == C.VERSION_ACTIVE
    assert d.effective_date is not None

    # Revising a published document re-enters DRAFT without touching the active copy.
    v2 = create_draft_version(
        s, d, file=FileRef(file_name="v2.pdf", file_path="documents/v2.pdf"), user=admin, bump="version"
    )
    s.commit()
    assert d.lifecycle_status == C.DRAFT
    assert v2.label == "v2r0"
    assert s.get(DocumentVersion, first.id).status == C.VERSION_ACTIVE

    _fast_track_to_approved(s, d, admin)
    publish(s, d, user=admin)
    s.commit()
    s.expire_all()
    assert s.get(DocumentVersion, first.id).status == C.VERSION_SUPERSEDED
    assert s.get(DocumentVersion, v2.id).status == C.VERSION_ACTIVE


def test_archive_requires_reason_and_not_in_flight(s, make_document, user):
    admin = user("admin")
    d = make_document()
    with pytest.raises(ValidationError):
        archive(s, d, user=admin, reason="  ")

    transition_lifecycle(s, d, C.IN_REVIEW, user=admin)
    with pytest.raises(InvalidStateError):
        archive(s, d, user=admin, reason="Superseded by new SOP")


def test_dispose_is_terminal_and_keeps_a_record(s, make_document, user):
    admin = user("admin")
    d = make_document()
    archive(s, d, user=admin, reason="Obsolete")
    rec = dispose(s, d, user=admin, reason="Retention period ended", method="shredding")
    s.commit()

    assert d.lifecycle_status == C.DISPOSED
    assert rec.method == "SHREDDING"
    assert s.execute(select(DisposalRecord).where(DisposalRecord.document_id == d.id)).scalar_one().id == rec.id
    for target in (C.DRAFT, C.ARCHIVED, C.PUBLISHED):
        with pytest.raises(InvalidStateError):
            transition_lifecycle(s, d, target, user=admin)


def test_list_documents_is_most_recent_first(s, make_document):
    for code in ("HSE-A", "HSE-B", "HSE-C"):
        make_document(code)
    codes = [d.document_code for d in list_documents(s)]
    assert codes == ["HSE-C", "HSE-B", "HSE-A"]
    assert [d.document_code for d in list_documents(s, status=C.PUBLISHED)] == []


def test_keywords_are_normalized_and_match_whole_words(s, make_document, user):
    assert normalize_keywords(" Scaffold, HEIGHT ,scaffold,,harness") == ["scaffold", "height", "harness"]
    assert normalize_keywords(["PPE", "ppe, Gloves"]) == ["ppe", "gloves"]

    d = create_document(
        s,
        document_code="HSE-SOP-010",
        title="Scaffold inspection",
        category="SOP",
        department="HSE",
        file=FileRef(file_name="x.pdf", file_path="documents/x.pdf"),
        user=user("admin"),
        keywords="Scaffold, Height",
    )
    make_document("HSE-SOP-011")
    s.commit()

    assert d.keyword_list == ["scaffold", "height"]
    assert [x.id for x in list_documents(s, keyword="HEIGHT")] == [d.id]
    assert list_documents(s, keyword="heig") == []


def test_expiring_before_filter_and_publish_guard(s, make_document, user):
    admin = user("admin")
    today = date.today()
    soon = create_document(
        s,
        document_code="HSE-PRM-001",
        title="Hot work permit template",
        category="FORM",
        department="HSE",
        file=FileRef(file_name="p.pdf", file_path="documents/p.pdf"),
        user=admin,
        sign_required=False,
        expiry_date=today + timedelta(days=10),
    )
    make_document("HSE-SOP-012")
    s.commit()

    assert [x.id for x in list_documents(s, expiring_before=today + timedelta(days=30))] == [soon.id]

    _fast_track_to_approved(s, soon, admin)
    with pytest.raises(ValidationError) as exc:
        publish(s, soon, user=admin, effective_date=today + timedelta(days=10))
    assert exc.value.context["expiry_date"] == (today + timedelta(days=10)).isoformat()
    assert soon.lifecycle_status == C.APPROVED

    publish(s, soon, user=admin, effective_date=today)
    assert soon.lifecycle_status == C.PUBLISHED


def test_record_export_stamps_an_uncontrolled_copy_watermark(s, make_document, user):
    dewi = user("dewi")
    d = make_document()
    v = current_version(s, d)

    log = record_export(s, v, user=dewi, action="print", ip_address="10.0.0.7", user_agent="pytest")
    s.commit()

    assert log.action == C.EXPORT_PRINT
    assert log.exported_by_name == "Dewi Anggraini"
    assert log.watermark_text.startswith("UNCONTROLLED COPY | HSE-SOP-001 v1r0 | Dewi Anggraini | ")
    assert log.watermark_text.endswith(f"{log.created_at:%Y-%m-%d %H:%M} UTC")
    assert [x.id for x in list_exports(s, d.id)] == [log.id]

    ev = s.execute(select(AuditEvent).where(AuditEvent.action == "doc.export")).scalar_one()
    assert ev.entity_id == str(v.id)

    with pytest.raises(ValidationError):
        record_export(s, v, user=dewi, action="EMAIL")


def test_disposed_document_cannot_be_exported(s, make_document, user):
    admin = user("admin")
    d = make_document()
    v = current_version(s, d)
    archive(s, d, user=admin, reason="Obsolete")
    dispose(s, d, user=admin, reason="Retention period ended")
    s.commit()

    with pytest.raises(InvalidStateError):
        record_export(s, v, user=admin, action=C.EXPORT_DOWNLOAD)
    assert list_exports(s, d.id) == []
