import io

import pytest

from app.hse.storage import LocalStorage, S3Storage, StorageError, StoredFileMissing, storage_from_config


def test_local_storage_round_trip(tmp_path):
    st = LocalStorage(root=tmp_path / "blobs")
    st.check()
    st.put_bytes("documents/HSE-SOP-001/v1r0/sop.pdf", b"%PDF-1.4 sop")

    assert st.exists("documents/HSE-SOP-001/v1r0/sop.pdf")
    assert not st.exists("documents/HSE-SOP-001/v1r1/sop.pdf")
    with st.open("/documents/HSE-SOP-001/v1r0/sop.pdf") as fh:
        assert fh.read() == b"%PDF-1.4 sop"
    with pytest.raises(StoredFileMissing):
        st.open("documents/HSE-SOP-001/v9r9/sop.pdf")


@pytest.mark.parametrize("key", ["../etc/passwd", "documents/../../x.pdf", ""])
def test_local_storage_rejects_bad_keys(tmp_path, key):
    with pytest.raises(StorageError):
        LocalStorage(root=tmp_path).put_bytes(key, b"x")


def test_storage_from_config(tmp_path):
    local = storage_from_config({"STORAGE_BACKEND": "local", "STORAGE_DIR": str(tmp_path / "docs")})
    assert isinstance(local, LocalStorage)
    assert local.root == (tmp_path / "docs").resolve()

    s3 = storage_from_config({"STORAGE_BACKEND": "S3", "S3_BUCKET": "hse", "S3_PREFIX": "/controlled/"})
    assert isinstance(s3, S3Storage)
    assert s3._object_key("documents/a.pdf") == "controlled/documents/a.pdf"
    assert S3Storage("", "", "hse", "", "")._object_key("/documents/a.pdf") == "documents/a.pdf"


def test_multipart_upload_and_download(app):
    c = app.test_client()
    token = c.post("/auth/login", json={"email": "admin@example.com", "password": "pw"}).json["csrf_token"]

    r = c.post(
        "/api/documents/",
        data={
            "document_code": "hse-ptw-001",
            "title": "Permit to Work",
            "category": "PROCEDURE",
            "department": "HSE",
            "sign_required": "false",
            "file": (io.BytesIO(b"%PDF-1.4 permit"), "Permit to Work.pdf"),
        },
        headers={"X-CSRF-Token": token},
        content_type="multipart/form-data",
    )
    assert r.status_code == 201, r.json
    doc = r.json["document"]
    assert doc["sign_required"] is False
    version = doc["versions"][0]
    assert version["file_path"] == "documents/HSE-PTW-001/v1r0/Permit_to_Work.pdf"
    assert version["file_size"] == len(b"%PDF-1.4 permit")

    r = c.get(f"/api/documents/versions/{version['id']}/download")
    assert r.status_code == 200
    assert r.data == b"%PDF-1.4 permit"

    # No signed copy exists for a draft.
    assert c.get(f"/api/documents/versions/{version['id']}/download?signed=1").status_code == 404
