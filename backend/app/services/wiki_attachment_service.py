from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path, PurePosixPath
from typing import Any
from uuid import uuid4

import structlog
from minio import Minio
from minio.error import S3Error

from app.core.config import Settings, get_settings

logger = structlog.get_logger(__name__)

KEY_PREFIX = "wiki"


@dataclass
class UploadedAttachment:
    file_name: str
    content: bytes
    mime_type: str | None = None


def _minio_client(settings: Settings) -> Minio:
    return Minio(
        endpoint=settings.minio_endpoint,
        access_key=settings.minio_access_key,
        secret_key=settings.minio_secret_key,
        secure=settings.minio_secure,
    )


def _safe_file_name(raw_name: str | None) -> str:
    name = PurePosixPath((raw_name or "").replace("\\", "/")).name.strip()
    return name or "file"


def storage_key_for(file_name: str) -> str:
    return f"{KEY_PREFIX}/{uuid4()}/{_safe_file_name(file_name)}"


def public_url(storage_key: str, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    return f"{settings.storage_public_base_url.rstrip('/')}/{storage_key}"


def storage_key_from_url(file_url: str, settings: Settings | None = None) -> str | None:
    settings = settings or get_settings()
    base = settings.storage_public_base_url.rstrip("/") + "/"
    if not file_url.startswith(base):
        return None
    return file_url[len(base) :]


def put_object(storage_key: str, content: bytes, mime_type: str, settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    if settings.storage_backend == "minio":
        client = _minio_client(settings)
        if not client.bucket_exists(settings.storage_bucket):
            client.make_bucket(settings.storage_bucket)
        client.put_object(
            bucket_name=settings.storage_bucket,
            object_name=storage_key,
            data=BytesIO(content),
            length=len(content),
            content_type=mime_type,
        )
        return

    target_path = Path(settings.storage_disk_root) / storage_key
    target_path.parent.mkdir(parents=True, exist_ok=True)
    target_path.write_bytes(content)


def delete_object(storage_key: str, settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    if settings.storage_backend == "minio":
        try:
            _minio_client(settings).remove_object(bucket_name=settings.storage_bucket, object_name=storage_key)
        except S3Error as exc:
            if exc.code in {"NoSuchKey", "NoSuchObject"}:
                return
            raise
        return

    (Path(settings.storage_disk_root) / storage_key).unlink(missing_ok=True)


def upload_attachments(files: list[UploadedAttachment], settings: Settings | None = None) -> list[dict[str, Any]]:
    settings = settings or get_settings()
    attachments: list[dict[str, Any]] = []
    for item in files:
        file_name = _safe_file_name(item.file_name)
        mime_type = item.mime_type or "application/octet-stream"
        storage_key = storage_key_for(file_name)
        put_object(storage_key, item.content, mime_type, settings)
        attachments.append(
            {
                "fileName": file_name,
                "fileUrl": public_url(storage_key, settings),
                "fileSize": len(item.content),
                "mimeType": mime_type,
            }
        )
        logger.info("wiki_attachment_uploaded", storage_key=storage_key, size=len(item.content))
    return attachments


def delete_attachments(attachments: list[dict[str, Any]] | None, settings: Settings | None = None) -> int:
    """Remove stored objects for the given attachments; failures are logged, not raised."""
    settings = settings or get_settings()
    removed = 0
    for attachment in attachments or []:
        file_url = str(attachment.get("fileUrl") or "")
        storage_key = storage_key_from_url(file_url, settings)
        if not storage_key:
            logger.warning("wiki_attachment_key_unknown", file_url=file_url)
            continue
        try:
            delete_object(storage_key, settings)
        except Exception as exc:  # noqa: BLE001
            logger.warning("wiki_attachment_delete_failed", storage_key=storage_key, error=str(exc))
            continue
        removed += 1
    return removed
