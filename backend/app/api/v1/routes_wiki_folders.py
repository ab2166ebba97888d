from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.v1.wiki_serializers import to_folder_with_children, to_node_response, to_tree_response
from app.core.auth import CurrentUser, require_admin
from app.db.session import get_db
from app.schemas.wiki import (
    FolderCreateRequest,
    FolderPublicUpdateRequest,
    FolderUpdateRequest,
    NameUpdateRequest,
    PathUpdateRequest,
    WikiDeleteResponse,
    WikiFolderWithChildrenResponse,
    WikiNodeResponse,
    WikiTreeNodeResponse,
)
from app.services import wiki_tree_service as tree
from app.services.wiki_permission_sync_service import revalidate_if_unclassified

router = APIRouter()


@router.get("/admin/wiki/folders/structure", response_model=list[WikiTreeNodeResponse])
def get_folder_structure(
    background_tasks: BackgroundTasks,
    ancestor_id: UUID | None = Query(None, alias="ancestorId"),
    _: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[WikiTreeNodeResponse]:
    nodes = tree.get_structure(db, ancestor_id)
    revalidate_if_unclassified(nodes, background_tasks, reason="folder_structure")
    return to_tree_response(tree.build_tree(nodes))


@router.get("/admin/wiki/folders/by-path", response_model=WikiFolderWithChildrenResponse)
def get_folder_by_path(
    background_tasks: BackgroundTasks,
    path: str | None = Query(None),
    _: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiFolderWithChildrenResponse:
    folder = tree.get_folder_by_path(db, path)
    children = tree.list_children(db, folder.id)
    revalidate_if_unclassified([folder, *children], background_tasks, reason="folder_by_path")
    return to_folder_with_children(folder, children)


@router.get("/admin/wiki/folders/{folder_id}", response_model=WikiNodeResponse)
def get_folder(
    folder_id: UUID,
    _: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiNodeResponse:
    return to_node_response(tree.get_folder(db, folder_id))


@router.get("/admin/wiki/folders/{folder_id}/children", response_model=list[WikiNodeResponse])
def list_folder_children(
    folder_id: UUID,
    background_tasks: BackgroundTasks,
    _: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[WikiNodeResponse]:
    children = tree.list_children(db, folder_id)
    revalidate_if_unclassified(children, background_tasks, reason="folder_children")
    return [to_node_response(child) for child in children]


@router.post("/admin/wiki/folders", response_model=WikiNodeResponse, status_code=status.HTTP_201_CREATED)
def create_folder(
    req: FolderCreateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiNodeResponse:
    folder = tree.create_folder(
        db,
        name=req.name,
        parent_id=req.parent_id,
        is_public=req.is_public,
        permission_rank_ids=req.permission_rank_ids,
        permission_position_ids=req.permission_position_ids,
        permission_department_ids=req.permission_department_ids,
        order=req.order,
        created_by=current_user.id,
    )
    return to_node_response(folder)


@router.patch("/admin/wiki/folders/{folder_id}", response_model=WikiNodeResponse)
def update_folder(
    folder_id: UUID,
    req: FolderUpdateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiNodeResponse:
    folder = tree.update_folder(db, folder_id, name=req.name, order=req.order, updated_by=current_user.id)
    return to_node_response(folder)


@router.patch("/admin/wiki/folders/{folder_id}/name", response_model=WikiNodeResponse)
def rename_folder(
    folder_id: UUID,
    req: NameUpdateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiNodeResponse:
    tree.get_folder(db, folder_id)
    return to_node_response(tree.rename_node(db, folder_id, req.name, updated_by=current_user.id))


@router.patch("/admin/wiki/folders/{folder_id}/path", response_model=WikiNodeResponse)
def move_folder(
    folder_id: UUID,
    req: PathUpdateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiNodeResponse:
    tree.get_folder(db, folder_id)
    return to_node_response(tree.move_node(db, folder_id, req.parent_id, updated_by=current_user.id))


@router.patch("/admin/wiki/folders/{folder_id}/public", response_model=WikiNodeResponse)
def update_folder_public(
    folder_id: UUID,
    req: FolderPublicUpdateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiNodeResponse:
    folder = tree.update_folder_public(
        db,
        folder_id,
        is_public=req.is_public,
        permissions=req.permission_updates(),
        updated_by=current_user.id,
    )
    return to_node_response(folder)


@router.delete("/admin/wiki/folders/{folder_id}", response_model=WikiDeleteResponse)
def delete_folder(
    folder_id: UUID,
    _: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiDeleteResponse:
    tree.get_folder(db, folder_id)
    deleted = tree.delete_subtree(db, folder_id)
    return WikiDeleteResponse(deleted_ids=[node.id for node in deleted])


@router.delete("/admin/wiki/folders/{folder_id}/only", response_model=WikiDeleteResponse)
def delete_folder_only(
    folder_id: UUID,
    _: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiDeleteResponse:
    folder = tree.delete_folder_only(db, folder_id)
    return WikiDeleteResponse(deleted_ids=[folder.id])
