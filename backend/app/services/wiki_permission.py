"""Effective permission of wiki nodes.

A node's own record is one of three states:

* ``PUBLIC``: ``is_public`` is true. Files and folders in this state inherit
  from the nearest restricted ancestor, or are public when none exists.
* ``RESTRICTED``: a folder with ``is_public`` false and at least one id list
  set (an explicitly empty list counts as set).
* ``UNCLASSIFIED``: a folder with ``is_public`` false whose three lists were
  never set. Nobody but admins can read it and it is what read paths flag
  for a reconciliation pass.

A file with ``is_public`` false is admin-only regardless of its ancestors.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.orm import Session

from app.db.models import WikiNode, WikiNodeType
from app.services.wiki_tree_service import iter_ancestors


class PermissionState(str, enum.Enum):
    PUBLIC = "PUBLIC"
    RESTRICTED = "RESTRICTED"
    UNCLASSIFIED = "UNCLASSIFIED"


class EffectivePermissionKind(str, enum.Enum):
    PUBLIC = "PUBLIC"
    RESTRICTED = "RESTRICTED"
    ADMIN_ONLY = "ADMIN_ONLY"


@dataclass(frozen=True)
class EffectivePermission:
    kind: EffectivePermissionKind
    rank_ids: tuple[str, ...] = ()
    position_ids: tuple[str, ...] = ()
    department_ids: tuple[str, ...] = ()
    source_node_id: UUID | None = None


@dataclass
class Viewer:
    is_admin: bool = False
    rank_id: str | None = None
    position_id: str | None = None
    department_ids: list[str] = field(default_factory=list)


def permission_state(node: WikiNode) -> PermissionState:
    if node.is_public:
        return PermissionState.PUBLIC
    if node.type == WikiNodeType.file:
        return PermissionState.RESTRICTED
    if (
        node.permission_rank_ids is None
        and node.permission_position_ids is None
        and node.permission_department_ids is None
    ):
        return PermissionState.UNCLASSIFIED
    return PermissionState.RESTRICTED


def is_unclassified(node: WikiNode) -> bool:
    return node.type == WikiNodeType.folder and permission_state(node) == PermissionState.UNCLASSIFIED


def _own_restriction(node: WikiNode) -> EffectivePermission:
    ranks = tuple(node.permission_rank_ids or ())
    positions = tuple(node.permission_position_ids or ())
    departments = tuple(node.permission_department_ids or ())
    if not (ranks or positions or departments):
        return EffectivePermission(kind=EffectivePermissionKind.ADMIN_ONLY, source_node_id=node.id)
    return EffectivePermission(
        kind=EffectivePermissionKind.RESTRICTED,
        rank_ids=ranks,
        position_ids=positions,
        department_ids=departments,
        source_node_id=node.id,
    )


def evaluate_permission(db: Session, node: WikiNode) -> EffectivePermission:
    if node.type == WikiNodeType.file and not node.is_public:
        return EffectivePermission(kind=EffectivePermissionKind.ADMIN_ONLY, source_node_id=node.id)

    if not node.is_public:
        return _own_restriction(node)

    for ancestor in iter_ancestors(db, node):
        if not ancestor.is_public:
            return _own_restriction(ancestor)

    return EffectivePermission(kind=EffectivePermissionKind.PUBLIC)


def can_access(db: Session, node: WikiNode, viewer: Viewer) -> bool:
    if viewer.is_admin:
        return True

    permission = evaluate_permission(db, node)
    if permission.kind == EffectivePermissionKind.PUBLIC:
        return True
    if permission.kind == EffectivePermissionKind.ADMIN_ONLY:
        return False

    if viewer.rank_id and viewer.rank_id in permission.rank_ids:
        return True
    if viewer.position_id and viewer.position_id in permission.position_ids:
        return True
    return any(dept in permission.department_ids for dept in viewer.department_ids)
