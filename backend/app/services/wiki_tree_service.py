from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from app.db.models import WikiNode, WikiNodeType
from app.services.wiki_errors import WikiNotFoundError, WikiValidationError

logger = structlog.get_logger(__name__)

PERMISSION_FIELDS = ("permission_rank_ids", "permission_position_ids", "permission_department_ids")


@dataclass
class WikiTreeItem:
    node: WikiNode
    children: list["WikiTreeItem"] = field(default_factory=list)


@dataclass
class WikiSearchHit:
    node: WikiNode
    path: list[WikiNode]

    @property
    def path_string(self) -> str:
        return materialized_path(self.path)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _live(stmt):
    return stmt.where(WikiNode.deleted_at.is_(None))


def _sibling_order():
    folders_first = case((WikiNode.type == WikiNodeType.folder, 0), else_=1)
    return (folders_first.asc(), WikiNode.order.asc(), WikiNode.name.asc())


def normalize_name(raw_name: str | None) -> str:
    name = (raw_name or "").strip()
    if not name:
        raise WikiValidationError("name required")
    return name


def normalize_ids(values: list[str] | None) -> list[str] | None:
    if values is None:
        return None
    cleaned = (str(v).strip() for v in values)
    return list(dict.fromkeys(v for v in cleaned if v))


def materialized_path(chain: list[WikiNode]) -> str:
    return "/" + "/".join(node.name for node in chain)


def get_node(db: Session, node_id: UUID) -> WikiNode:
    node = db.execute(_live(select(WikiNode).where(WikiNode.id == node_id))).scalar_one_or_none()
    if not node:
        raise WikiNotFoundError(f"wiki not found: {node_id}")
    return node


def get_folder(db: Session, node_id: UUID) -> WikiNode:
    node = get_node(db, node_id)
    if node.type != WikiNodeType.folder:
        raise WikiValidationError("not a folder")
    return node


def get_file(db: Session, node_id: UUID) -> WikiNode:
    node = get_node(db, node_id)
    if node.type != WikiNodeType.file:
        raise WikiValidationError("not a file")
    return node


def _resolve_parent(db: Session, parent_id: UUID | None) -> WikiNode | None:
    if parent_id is None:
        return None
    parent = db.execute(_live(select(WikiNode).where(WikiNode.id == parent_id))).scalar_one_or_none()
    if not parent:
        raise WikiNotFoundError(f"parent folder not found: {parent_id}")
    if parent.type != WikiNodeType.folder:
        raise WikiValidationError("parent must be a folder")
    return parent


def iter_ancestors(db: Session, node: WikiNode) -> Iterator[WikiNode]:
    """Yield the live ancestors of ``node`` nearest first.

    The walk is bounded by the materialized depth so a corrupted parent chain
    can never loop.
    """
    current = node
    for _ in range(max(node.depth, 0) + 1):
        if current.parent_id is None:
            return
        parent = db.get(WikiNode, current.parent_id)
        if parent is None or parent.deleted_at is not None:
            return
        yield parent
        current = parent


def collect_descendants(db: Session, root_id: UUID) -> list[WikiNode]:
    """Breadth-first walk over the parent pointers, one query per level."""
    descendants: list[WikiNode] = []
    frontier = [root_id]
    seen = {root_id}
    while frontier:
        level = (
            db.execute(
                _live(select(WikiNode).where(WikiNode.parent_id.in_(frontier))).order_by(*_sibling_order())
            )
            .scalars()
            .all()
        )
        frontier = []
        for child in level:
            if child.id in seen:
                continue
            seen.add(child.id)
            descendants.append(child)
            frontier.append(child.id)
    return descendants


def create_folder(
    db: Session,
    *,
    name: str,
    parent_id: UUID | None = None,
    is_public: bool | None = None,
    permission_rank_ids: list[str] | None = None,
    permission_position_ids: list[str] | None = None,
    permission_department_ids: list[str] | None = None,
    order: int | None = None,
    created_by: UUID | None = None,
) -> WikiNode:
    folder_name = normalize_name(name)
    parent = _resolve_parent(db, parent_id)

    folder = WikiNode(
        name=folder_name,
        type=WikiNodeType.folder,
        parent_id=parent.id if parent else None,
        depth=parent.depth + 1 if parent else 0,
        is_public=True if is_public is None else is_public,
        permission_rank_ids=normalize_ids(permission_rank_ids),
        permission_position_ids=normalize_ids(permission_position_ids),
        permission_department_ids=normalize_ids(permission_department_ids),
        order=order or 0,
        created_by=created_by,
        updated_by=created_by,
    )
    db.add(folder)
    db.commit()
    db.refresh(folder)
    logger.info("wiki_folder_created", wiki_id=str(folder.id), parent_id=str(folder.parent_id), depth=folder.depth)
    return folder


def create_file(
    db: Session,
    *,
    name: str,
    parent_id: UUID | None = None,
    title: str | None = None,
    content: str | None = None,
    attachments: list[dict[str, Any]] | None = None,
    is_public: bool | None = None,
    order: int | None = None,
    created_by: UUID | None = None,
) -> WikiNode:
    file_name = normalize_name(name)
    parent = _resolve_parent(db, parent_id)

    # files never carry their own id lists; is_public=True means inherit
    node = WikiNode(
        name=file_name,
        type=WikiNodeType.file,
        parent_id=parent.id if parent else None,
        depth=parent.depth + 1 if parent else 0,
        title=title or None,
        content=content or None,
        attachments=attachments or None,
        is_public=True if is_public is None else is_public,
        order=order or 0,
        created_by=created_by,
        updated_by=created_by,
    )
    db.add(node)
    db.commit()
    db.refresh(node)
    logger.info("wiki_file_created", wiki_id=str(node.id), parent_id=str(node.parent_id), depth=node.depth)
    return node


def list_children(db: Session, parent_id: UUID | None) -> list[WikiNode]:
    if parent_id is not None:
        get_folder(db, parent_id)
        stmt = select(WikiNode).where(WikiNode.parent_id == parent_id)
    else:
        stmt = select(WikiNode).where(WikiNode.parent_id.is_(None))
    return list(db.execute(_live(stmt).order_by(*_sibling_order())).scalars().all())


def list_files(db: Session, parent_id: UUID | None = None) -> list[WikiNode]:
    stmt = select(WikiNode).where(WikiNode.type == WikiNodeType.file)
    if parent_id is not None:
        get_folder(db, parent_id)
        stmt = stmt.where(WikiNode.parent_id == parent_id)
        return list(db.execute(_live(stmt).order_by(*_sibling_order())).scalars().all())
    return list(db.execute(_live(stmt).order_by(WikiNode.updated_at.desc())).scalars().all())


def get_structure(db: Session, ancestor_id: UUID | None = None) -> list[WikiNode]:
    if ancestor_id is None:
        stmt = _live(select(WikiNode)).order_by(WikiNode.depth.asc(), *_sibling_order(), WikiNode.created_at.asc())
        return list(db.execute(stmt).scalars().all())

    root = get_folder(db, ancestor_id)
    descendants = collect_descendants(db, root.id)
    return [root, *sorted(descendants, key=lambda n: n.depth)]


def build_tree(nodes: list[WikiNode]) -> list[WikiTreeItem]:
    items = {node.id: WikiTreeItem(node=node) for node in nodes}
    roots: list[WikiTreeItem] = []
    for node in nodes:
        item = items[node.id]
        parent = items.get(node.parent_id) if node.parent_id else None
        if parent is None:
            roots.append(item)
        else:
            parent.children.append(item)
    return roots


def get_breadcrumb(db: Session, node_id: UUID) -> list[WikiNode]:
    node = get_node(db, node_id)
    chain = [node, *iter_ancestors(db, node)]
    chain.reverse()
    return chain


def get_folder_by_path(db: Session, path: str | None) -> WikiNode:
    if path is None:
        raise WikiValidationError("folder path required")

    segments = [segment.strip() for segment in path.strip().split("/") if segment.strip()]
    if not segments:
        raise WikiValidationError("folder path is empty")

    current: WikiNode | None = None
    for index, segment in enumerate(segments):
        parent_clause = WikiNode.parent_id == current.id if current else WikiNode.parent_id.is_(None)
        folder = (
            db.execute(
                _live(
                    select(WikiNode).where(
                        WikiNode.name == segment,
                        WikiNode.type == WikiNodeType.folder,
                        parent_clause,
                    )
                ).order_by(WikiNode.order.asc(), WikiNode.created_at.asc())
            )
            .scalars()
            .first()
        )
        if not folder:
            path_so_far = "/".join(segments[: index + 1])
            raise WikiNotFoundError(f"folder '{segment}' not found in path '{path_so_far}'")
        current = folder

    return current


def update_folder(
    db: Session,
    node_id: UUID,
    *,
    name: str | None = None,
    order: int | None = None,
    updated_by: UUID | None = None,
) -> WikiNode:
    folder = get_folder(db, node_id)
    if name is None and order is None:
        raise WikiValidationError("nothing to update")
    if name is not None:
        folder.name = normalize_name(name)
    if order is not None:
        folder.order = order
    folder.updated_by = updated_by
    db.commit()
    db.refresh(folder)
    return folder


def rename_node(db: Session, node_id: UUID, name: str, updated_by: UUID | None = None) -> WikiNode:
    node = get_node(db, node_id)
    node.name = normalize_name(name)
    node.updated_by = updated_by
    db.commit()
    db.refresh(node)
    logger.info("wiki_node_renamed", wiki_id=str(node.id))
    return node


def update_file_content(
    db: Session,
    node_id: UUID,
    *,
    name: str,
    title: str | None,
    content: str | None,
    attachments: list[dict[str, Any]] | None,
    updated_by: UUID | None = None,
) -> WikiNode:
    node = get_file(db, node_id)
    node.name = normalize_name(name)
    node.title = title or None
    node.content = content or None
    node.attachments = attachments or []
    node.updated_by = updated_by
    db.commit()
    db.refresh(node)
    return node


def update_folder_public(
    db: Session,
    node_id: UUID,
    *,
    is_public: bool,
    permissions: Mapping[str, list[str] | None] | None = None,
    updated_by: UUID | None = None,
) -> WikiNode:
    """Set a folder's visibility; only the permission lists present in ``permissions`` change."""
    folder = get_folder(db, node_id)
    folder.is_public = is_public
    for key, values in (permissions or {}).items():
        if key not in PERMISSION_FIELDS:
            raise WikiValidationError(f"unknown permission field: {key}")
        setattr(folder, key, normalize_ids(values))
    folder.updated_by = updated_by
    db.commit()
    db.refresh(folder)
    logger.info("wiki_folder_public_updated", wiki_id=str(folder.id), is_public=folder.is_public)
    return folder


def update_file_public(db: Session, node_id: UUID, *, is_public: bool, updated_by: UUID | None = None) -> WikiNode:
    node = get_file(db, node_id)
    node.is_public = is_public
    node.updated_by = updated_by
    db.commit()
    db.refresh(node)
    logger.info("wiki_file_public_updated", wiki_id=str(node.id), is_public=node.is_public)
    return node


def move_node(
    db: Session,
    node_id: UUID,
    parent_id: UUID | None,
    *,
    updated_by: UUID | None = None,
) -> WikiNode:
    node = get_node(db, node_id)
    if parent_id == node.id:
        raise WikiValidationError("cannot move a node into itself")

    parent = _resolve_parent(db, parent_id)
    if parent is not None:
        ancestor_ids = {parent.id, *(a.id for a in iter_ancestors(db, parent))}
        if node.id in ancestor_ids:
            raise WikiValidationError("cannot move to descendant folder")

    new_depth = parent.depth + 1 if parent else 0
    delta = new_depth - node.depth
    descendants = collect_descendants(db, node.id) if node.type == WikiNodeType.folder else []

    try:
        node.parent_id = parent.id if parent else None
        node.depth = new_depth
        node.updated_by = updated_by
        if delta:
            for descendant in descendants:
                descendant.depth += delta
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(node)
    logger.info(
        "wiki_node_moved",
        wiki_id=str(node.id),
        parent_id=str(node.parent_id),
        depth=node.depth,
        descendants=len(descendants),
    )
    return node


def delete_subtree(db: Session, node_id: UUID) -> list[WikiNode]:
    """Soft-delete a node and everything below it; returns the deleted rows."""
    node = get_node(db, node_id)
    targets = [node, *collect_descendants(db, node.id)]
    deleted_at = _now()
    try:
        for target in targets:
            target.deleted_at = deleted_at
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("wiki_subtree_deleted", wiki_id=str(node.id), deleted=len(targets))
    return targets


def delete_folder_only(db: Session, node_id: UUID) -> WikiNode:
    folder = get_folder(db, node_id)
    child_count = db.execute(
        _live(select(func.count(WikiNode.id)).where(WikiNode.parent_id == folder.id))
    ).scalar_one()
    if child_count:
        raise WikiValidationError("folder is not empty")

    folder.deleted_at = _now()
    db.commit()
    logger.info("wiki_folder_deleted", wiki_id=str(folder.id))
    return folder


def search_files(db: Session, query: str | None) -> list[WikiSearchHit]:
    keyword = (query or "").strip().lower()
    if not keyword:
        raise WikiValidationError("query required")

    stmt = _live(
        select(WikiNode).where(
            WikiNode.type == WikiNodeType.file,
            or_(
                func.lower(WikiNode.name).contains(keyword, autoescape=True),
                func.lower(func.coalesce(WikiNode.title, "")).contains(keyword, autoescape=True),
                func.lower(func.coalesce(WikiNode.content, "")).contains(keyword, autoescape=True),
            ),
        )
    ).order_by(WikiNode.updated_at.desc())
    files = db.execute(stmt).scalars().all()

    hits = [WikiSearchHit(node=node, path=list(reversed([node, *iter_ancestors(db, node)]))) for node in files]
    logger.info("wiki_files_searched", hits=len(hits))
    return hits
