from __future__ import annotations

from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from app.db.models import WikiNode, WikiPermissionLog
from app.schemas.wiki import (
    EffectivePermissionResponse,
    PermissionLogResponse,
    WikiBreadcrumbItem,
    WikiFileForm,
    WikiFolderWithChildrenResponse,
    WikiNodeResponse,
    WikiSearchHitResponse,
    WikiTreeNodeResponse,
)
from app.services.directory_client import DirectoryProvider, HttpDirectoryProvider
from app.services.wiki_permission import EffectivePermission, permission_state
from app.services.wiki_tree_service import WikiSearchHit, WikiTreeItem


def get_directory_provider() -> DirectoryProvider:
    return HttpDirectoryProvider()


def to_node_response(node: WikiNode) -> WikiNodeResponse:
    return WikiNodeResponse.model_validate(node)


def to_folder_with_children(folder: WikiNode, children: list[WikiNode]) -> WikiFolderWithChildrenResponse:
    payload = WikiNodeResponse.model_validate(folder).model_dump()
    return WikiFolderWithChildrenResponse(**payload, children=[to_node_response(child) for child in children])


def to_tree_response(items: list[WikiTreeItem]) -> list[WikiTreeNodeResponse]:
    result: list[WikiTreeNodeResponse] = []
    for item in items:
        payload = WikiNodeResponse.model_validate(item.node).model_dump()
        result.append(WikiTreeNodeResponse(**payload, children=to_tree_response(item.children)))
    return result


def to_breadcrumb(chain: list[WikiNode]) -> list[WikiBreadcrumbItem]:
    return [WikiBreadcrumbItem(id=node.id, name=node.name, type=node.type, depth=node.depth) for node in chain]


def to_search_hit(hit: WikiSearchHit) -> WikiSearchHitResponse:
    return WikiSearchHitResponse(
        id=hit.node.id,
        name=hit.node.name,
        title=hit.node.title,
        parent_id=hit.node.parent_id,
        path=hit.path_string,
        breadcrumb=to_breadcrumb(hit.path),
        updated_at=hit.node.updated_at,
    )


def to_log_response(log: WikiPermissionLog) -> PermissionLogResponse:
    return PermissionLogResponse.model_validate(log)


def to_effective_permission(node: WikiNode, permission: EffectivePermission) -> EffectivePermissionResponse:
    return EffectivePermissionResponse(
        node_id=node.id,
        state=permission_state(node),
        kind=permission.kind,
        rank_ids=list(permission.rank_ids),
        position_ids=list(permission.position_ids),
        department_ids=list(permission.department_ids),
        source_node_id=permission.source_node_id,
    )


def build_file_form(
    *,
    name: str | None,
    parent_id: str | None,
    title: str | None,
    content: str | None,
    is_public: str | None,
    order: str | None,
) -> WikiFileForm:
    """Validate the text parts of a multipart request; blank strings count as absent."""
    raw = {
        "name": name,
        "parentId": parent_id,
        "title": title,
        "content": content,
        "isPublic": is_public,
        "order": order,
    }
    cleaned = {key: value for key, value in raw.items() if value is not None and value != ""}
    try:
        return WikiFileForm.model_validate(cleaned)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False)) from exc
