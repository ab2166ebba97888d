from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.v1.wiki_serializers import (
    get_directory_provider,
    to_breadcrumb,
    to_effective_permission,
    to_log_response,
)
from app.core.auth import CurrentUser, require_admin
from app.db.session import get_db
from app.schemas.wiki import (
    AccessCheckRequest,
    AccessCheckResponse,
    DismissLogsRequest,
    DismissLogsResponse,
    EffectivePermissionResponse,
    PermissionCheckResponse,
    PermissionLogResponse,
    ReplacePermissionsRequest,
    ReplacePermissionsResponse,
    WikiBreadcrumbItem,
)
from app.services import wiki_permission_log_service as log_service
from app.services import wiki_tree_service as tree
from app.services.directory_client import DirectoryProvider
from app.services.wiki_permission import Viewer, can_access, evaluate_permission
from app.services.wiki_permission_check_service import run_permission_check

router = APIRouter()


@router.get("/admin/wiki/permission-logs", response_model=list[PermissionLogResponse])
def list_permission_logs(
    resolved: bool | None = Query(None),
    _: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[PermissionLogResponse]:
    return [to_log_response(log) for log in log_service.list_permission_logs(db, resolved)]


@router.get("/admin/wiki/permission-logs/unread", response_model=list[PermissionLogResponse])
def list_unread_permission_logs(
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[PermissionLogResponse]:
    return [to_log_response(log) for log in log_service.list_unread_logs(db, current_user.id)]


@router.patch("/admin/wiki/permission-logs/dismiss", response_model=DismissLogsResponse)
def dismiss_permission_logs(
    req: DismissLogsRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> DismissLogsResponse:
    result = log_service.dismiss_logs(db, req.log_ids, current_user.id)
    return DismissLogsResponse.model_validate(result)


@router.post("/admin/wiki/permission-validation", response_model=PermissionCheckResponse)
def run_permission_validation(
    _: CurrentUser = Depends(require_admin),
    provider: DirectoryProvider = Depends(get_directory_provider),
    db: Session = Depends(get_db),
) -> PermissionCheckResponse:
    summary = run_permission_check(db, provider)
    return PermissionCheckResponse.model_validate(summary)


@router.patch("/admin/wiki/{node_id}/replace-permissions", response_model=ReplacePermissionsResponse)
def replace_permissions(
    node_id: UUID,
    req: ReplacePermissionsRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ReplacePermissionsResponse:
    result = log_service.replace_permissions(
        db,
        node_id,
        departments=[(item.old_id, item.new_id) for item in req.departments],
        ranks=[(item.old_id, item.new_id) for item in req.ranks],
        positions=[(item.old_id, item.new_id) for item in req.positions],
        note=req.note,
        actor_id=current_user.id,
    )
    return ReplacePermissionsResponse.model_validate(result)


@router.get("/admin/wiki/{node_id}/breadcrumb", response_model=list[WikiBreadcrumbItem])
def get_breadcrumb(
    node_id: UUID,
    _: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[WikiBreadcrumbItem]:
    return to_breadcrumb(tree.get_breadcrumb(db, node_id))


@router.get("/admin/wiki/{node_id}/effective-permission", response_model=EffectivePermissionResponse)
def get_effective_permission(
    node_id: UUID,
    _: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> EffectivePermissionResponse:
    node = tree.get_node(db, node_id)
    return to_effective_permission(node, evaluate_permission(db, node))


@router.post("/admin/wiki/{node_id}/access-check", response_model=AccessCheckResponse)
def check_access(
    node_id: UUID,
    req: AccessCheckRequest,
    _: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AccessCheckResponse:
    node = tree.get_node(db, node_id)
    viewer = Viewer(rank_id=req.rank_id, position_id=req.position_id, department_ids=req.department_ids)
    return AccessCheckResponse(
        allowed=can_access(db, node, viewer),
        permission=to_effective_permission(node, evaluate_permission(db, node)),
    )
