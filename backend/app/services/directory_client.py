from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog

from app.core.config import Settings, get_settings
from app.db.models import PermissionKind

logger = structlog.get_logger(__name__)

_KIND_PATHS = {
    PermissionKind.department: "/departments",
    PermissionKind.rank: "/ranks",
    PermissionKind.position: "/positions",
}


class DirectoryError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class DirectorySnapshot:
    """Currently valid ids per kind; ``None`` means the kind was not reported."""

    department_ids: frozenset[str] | None = None
    rank_ids: frozenset[str] | None = None
    position_ids: frozenset[str] | None = None

    def valid_ids(self, kind: PermissionKind) -> frozenset[str] | None:
        if kind == PermissionKind.department:
            return self.department_ids
        if kind == PermissionKind.rank:
            return self.rank_ids
        return self.position_ids


class DirectoryProvider(Protocol):
    def fetch_snapshot(self) -> DirectorySnapshot: ...


class StaticDirectoryProvider:
    def __init__(
        self,
        *,
        department_ids: list[str] | set[str] | None = None,
        rank_ids: list[str] | set[str] | None = None,
        position_ids: list[str] | set[str] | None = None,
    ) -> None:
        self.snapshot = DirectorySnapshot(
            department_ids=frozenset(department_ids) if department_ids is not None else None,
            rank_ids=frozenset(rank_ids) if rank_ids is not None else None,
            position_ids=frozenset(position_ids) if position_ids is not None else None,
        )

    def fetch_snapshot(self) -> DirectorySnapshot:
        return self.snapshot


def _extract_active_ids(payload: Any) -> frozenset[str]:
    items = payload.get("items", []) if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        raise DirectoryError("unexpected directory payload")

    ids: set[str] = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        raw_id = item.get("id")
        if raw_id is None or item.get("isActive", True) is False:
            continue
        ids.add(str(raw_id))
    return frozenset(ids)


class HttpDirectoryProvider:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.settings.directory_api_key:
            headers["Authorization"] = f"Bearer {self.settings.directory_api_key}"
        return headers

    def fetch_snapshot(self) -> DirectorySnapshot:
        result: dict[PermissionKind, frozenset[str]] = {}
        try:
            with httpx.Client(
                base_url=self.settings.directory_base_url.rstrip("/"),
                headers=self._headers(),
                timeout=self.settings.directory_timeout_seconds,
            ) as client:
                for kind, path in _KIND_PATHS.items():
                    response = client.get(path)
                    if response.status_code >= 400:
                        raise DirectoryError(
                            f"directory request failed ({response.status_code}) for {path}",
                            status_code=response.status_code,
                        )
                    result[kind] = _extract_active_ids(response.json())
        except httpx.HTTPError as exc:
            raise DirectoryError(f"directory unreachable: {exc}") from exc

        logger.info(
            "directory_snapshot_fetched",
            departments=len(result[PermissionKind.department]),
            ranks=len(result[PermissionKind.rank]),
            positions=len(result[PermissionKind.position]),
        )
        return DirectorySnapshot(
            department_ids=result[PermissionKind.department],
            rank_ids=result[PermissionKind.rank],
            position_ids=result[PermissionKind.position],
        )
