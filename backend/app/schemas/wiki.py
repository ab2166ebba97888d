from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from app.db.models import PermissionKind, WikiNodeType, WikiPermissionAction
from app.schemas.common import CamelModel
from app.services.wiki_permission import EffectivePermissionKind, PermissionState


class WikiAttachment(CamelModel):
    file_name: str
    file_url: str
    file_size: int | None = None
    mime_type: str | None = None


class WikiNodeResponse(CamelModel):
    id: UUID
    name: str
    type: WikiNodeType
    parent_id: UUID | None = None
    depth: int
    order: int
    title: str | None = None
    content: str | None = None
    attachments: list[WikiAttachment] | None = None
    is_public: bool
    permission_rank_ids: list[str] | None = None
    permission_position_ids: list[str] | None = None
    permission_department_ids: list[str] | None = None
    created_by: UUID | None = None
    updated_by: UUID | None = None
    created_at: datetime
    updated_at: datetime


class WikiTreeNodeResponse(WikiNodeResponse):
    children: list[WikiTreeNodeResponse] = Field(default_factory=list)


class WikiFolderWithChildrenResponse(WikiNodeResponse):
    children: list[WikiNodeResponse] = Field(default_factory=list)


class WikiBreadcrumbItem(CamelModel):
    id: UUID
    name: str
    type: WikiNodeType
    depth: int


class WikiSearchHitResponse(CamelModel):
    id: UUID
    name: str
    title: str | None = None
    parent_id: UUID | None = None
    path: str
    breadcrumb: list[WikiBreadcrumbItem]
    updated_at: datetime


class WikiDeleteResponse(CamelModel):
    success: bool = True
    deleted_ids: list[UUID]


class FolderCreateRequest(CamelModel):
    name: str = Field(min_length=1, max_length=500)
    parent_id: UUID | None = None
    is_public: bool | None = None
    permission_rank_ids: list[str] | None = None
    permission_position_ids: list[str] | None = None
    permission_department_ids: list[str] | None = None
    order: int | None = None


class FolderUpdateRequest(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=500)
    order: int | None = None


class NameUpdateRequest(CamelModel):
    name: str = Field(min_length=1, max_length=500)


class PathUpdateRequest(CamelModel):
    parent_id: UUID | None = None


class FolderPublicUpdateRequest(CamelModel):
    is_public: bool
    permission_rank_ids: list[str] | None = None
    permission_position_ids: list[str] | None = None
    permission_department_ids: list[str] | None = None

    def permission_updates(self) -> dict[str, list[str] | None]:
        """Only the lists the caller actually sent; omitted lists keep their stored value."""
        return {
            key: getattr(self, key)
            for key in ("permission_rank_ids", "permission_position_ids", "permission_department_ids")
            if key in self.model_fields_set
        }


class FilePublicUpdateRequest(CamelModel):
    is_public: bool


class EmptyFileCreateRequest(CamelModel):
    name: str = Field(min_length=1, max_length=500)
    parent_id: UUID | None = None
    is_public: bool | None = None
    order: int | None = None


class WikiFileForm(CamelModel):
    """Text fields of the multipart file create/update requests."""

    name: str = Field(min_length=1, max_length=500)
    parent_id: UUID | None = None
    title: str | None = Field(default=None, max_length=500)
    content: str | None = None
    is_public: bool | None = None
    order: int | None = None


class IdReplacement(CamelModel):
    old_id: str = Field(min_length=1)
    new_id: str = Field(min_length=1)


class ReplacePermissionsRequest(CamelModel):
    departments: list[IdReplacement] = Field(default_factory=list)
    ranks: list[IdReplacement] = Field(default_factory=list)
    positions: list[IdReplacement] = Field(default_factory=list)
    note: str | None = None


class ReplacePermissionsResponse(CamelModel):
    success: bool
    message: str
    replaced_departments: int = 0
    replaced_ranks: int = 0
    replaced_positions: int = 0


class PermissionLogResponse(CamelModel):
    id: UUID
    wiki_file_system_id: UUID
    action: WikiPermissionAction
    invalid_kind: PermissionKind | None = None
    invalid_id: str | None = None
    invalid_departments: list[str] | None = None
    invalid_rank_ids: list[str] | None = None
    invalid_position_ids: list[str] | None = None
    snapshot_permissions: dict[str, Any] | None = None
    replacements: dict[str, Any] | None = None
    note: str | None = None
    detected_at: datetime
    resolved_at: datetime | None = None
    resolved_by: UUID | None = None


class DismissLogsRequest(CamelModel):
    log_ids: list[UUID] = Field(min_length=1)


class DismissLogsResponse(CamelModel):
    success: bool
    message: str
    dismissed: int = 0
    already_dismissed: int = 0
    not_found: int = 0


class PermissionCheckResponse(CamelModel):
    status: str
    processed: int = 0
    detected: int = 0
    resolved: int = 0
    skipped: int = 0
    failed: int = 0
    started_at: datetime
    finished_at: datetime | None = None
    error: str | None = None


class EffectivePermissionResponse(CamelModel):
    node_id: UUID
    state: PermissionState
    kind: EffectivePermissionKind
    rank_ids: list[str] = Field(default_factory=list)
    position_ids: list[str] = Field(default_factory=list)
    department_ids: list[str] = Field(default_factory=list)
    source_node_id: UUID | None = None


class AccessCheckRequest(CamelModel):
    rank_id: str | None = None
    position_id: str | None = None
    department_ids: list[str] = Field(default_factory=list)


class AccessCheckResponse(CamelModel):
    allowed: bool
    permission: EffectivePermissionResponse
