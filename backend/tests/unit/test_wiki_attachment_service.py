from pathlib import Path

from app.core.config import Settings
from app.services.wiki_attachment_service import (
    UploadedAttachment,
    delete_attachments,
    storage_key_from_url,
    upload_attachments,
)


def _settings(tmp_path) -> Settings:
    return Settings(
        storage_backend="disk",
        storage_disk_root=str(tmp_path),
        storage_public_base_url="http://files.test/wiki",
    )


def test_upload_writes_under_wiki_prefix(tmp_path):
    settings = _settings(tmp_path)

    [attachment] = upload_attachments(
        [UploadedAttachment(file_name="../../etc/report.pdf", content=b"%PDF", mime_type="application/pdf")],
        settings,
    )

    assert attachment["fileName"] == "report.pdf"
    assert attachment["fileSize"] == 4
    assert attachment["mimeType"] == "application/pdf"
    key = storage_key_from_url(attachment["fileUrl"], settings)
    assert key.startswith("wiki/")
    assert key.endswith("/report.pdf")
    assert (Path(tmp_path) / key).read_bytes() == b"%PDF"


def test_delete_removes_files_and_skips_foreign_urls(tmp_path):
    settings = _settings(tmp_path)
    uploaded = upload_attachments([UploadedAttachment(file_name="a.txt", content=b"a")], settings)
    key = storage_key_from_url(uploaded[0]["fileUrl"], settings)

    removed = delete_attachments([*uploaded, {"fileName": "x", "fileUrl": "https://elsewhere/x"}], settings)

    assert removed == 1
    assert not (Path(tmp_path) / key).exists()
