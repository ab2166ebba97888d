from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models import (
    DismissedPermissionLog,
    DismissedPermissionLogType,
    PermissionKind,
    WikiPermissionAction,
    WikiPermissionLog,
)
from app.services.wiki_errors import WikiValidationError
from app.services.wiki_permission_check_service import KIND_FIELDS, snapshot_permissions
from app.services.wiki_tree_service import get_node

logger = structlog.get_logger(__name__)

IdMapping = tuple[str, str]


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass
class ReplacePermissionsResult:
    success: bool
    message: str
    replaced_departments: int = 0
    replaced_ranks: int = 0
    replaced_positions: int = 0


@dataclass
class DismissResult:
    success: bool
    message: str
    dismissed: int = 0
    already_dismissed: int = 0
    not_found: int = 0


def _substitute(stored: list[str] | None, mappings: Sequence[IdMapping]) -> tuple[list[str] | None, dict[str, str]]:
    if stored is None or not mappings:
        return stored, {}

    table = {old.strip(): new.strip() for old, new in mappings if old.strip() and new.strip()}
    applied: dict[str, str] = {}
    replaced: list[str] = []
    for value in stored:
        new_value = table.get(value)
        if new_value is not None and new_value != value:
            applied[value] = new_value
            replaced.append(new_value)
        else:
            replaced.append(value)
    return list(dict.fromkeys(replaced)), applied


def replace_permissions(
    db: Session,
    node_id: UUID,
    *,
    departments: Sequence[IdMapping] = (),
    ranks: Sequence[IdMapping] = (),
    positions: Sequence[IdMapping] = (),
    note: str | None = None,
    actor_id: UUID | None = None,
) -> ReplacePermissionsResult:
    """Swap stale directory ids on a node and record the resolution.

    The node update, the resolution of the open logs it settles and the new
    RESOLVED row are committed together or not at all.
    """
    node = get_node(db, node_id)
    before = snapshot_permissions(node)
    requested = {
        PermissionKind.department: departments,
        PermissionKind.rank: ranks,
        PermissionKind.position: positions,
    }

    applied: dict[PermissionKind, dict[str, str]] = {}
    now = _now()
    try:
        for kind, attr in KIND_FIELDS.items():
            updated, changes = _substitute(getattr(node, attr), requested[kind])
            if changes:
                setattr(node, attr, updated)
                applied[kind] = changes
        if applied:
            node.updated_by = actor_id

        open_logs = db.execute(
            select(WikiPermissionLog).where(
                WikiPermissionLog.wiki_file_system_id == node.id,
                WikiPermissionLog.action == WikiPermissionAction.DETECTED,
                WikiPermissionLog.resolved_at.is_(None),
            )
        ).scalars().all()
        settled = 0
        for log in open_logs:
            if log.invalid_kind is None or log.invalid_id is None:
                continue
            if log.invalid_id in (getattr(node, KIND_FIELDS[log.invalid_kind]) or []):
                continue
            log.action = WikiPermissionAction.RESOLVED
            log.resolved_at = now
            log.resolved_by = actor_id
            log.note = note or "replaced by admin"
            settled += 1

        db.add(
            WikiPermissionLog(
                wiki_file_system_id=node.id,
                action=WikiPermissionAction.RESOLVED,
                invalid_departments=list(applied.get(PermissionKind.department, {})) or None,
                invalid_rank_ids=list(applied.get(PermissionKind.rank, {})) or None,
                invalid_position_ids=list(applied.get(PermissionKind.position, {})) or None,
                snapshot_permissions=before,
                replacements={kind.value: changes for kind, changes in applied.items()},
                note=note,
                detected_at=now,
                resolved_at=now,
                resolved_by=actor_id,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    result = ReplacePermissionsResult(
        success=True,
        message="permissions replaced" if applied else "no matching permission ids",
        replaced_departments=len(applied.get(PermissionKind.department, {})),
        replaced_ranks=len(applied.get(PermissionKind.rank, {})),
        replaced_positions=len(applied.get(PermissionKind.position, {})),
    )
    logger.info(
        "wiki_permissions_replaced",
        wiki_id=str(node.id),
        actor_id=str(actor_id) if actor_id else None,
        replaced_departments=result.replaced_departments,
        replaced_ranks=result.replaced_ranks,
        replaced_positions=result.replaced_positions,
        settled_logs=settled,
    )
    return result


def list_permission_logs(db: Session, resolved: bool | None = None) -> list[WikiPermissionLog]:
    stmt = select(WikiPermissionLog)
    if resolved is True:
        stmt = stmt.where(WikiPermissionLog.resolved_at.is_not(None))
    elif resolved is False:
        stmt = stmt.where(WikiPermissionLog.resolved_at.is_(None))
    stmt = stmt.order_by(WikiPermissionLog.detected_at.desc(), WikiPermissionLog.created_at.desc())
    return list(db.execute(stmt).scalars().all())


def list_unread_logs(db: Session, admin_id: UUID) -> list[WikiPermissionLog]:
    dismissed = select(DismissedPermissionLog.permission_log_id).where(
        DismissedPermissionLog.log_type == DismissedPermissionLogType.wiki,
        DismissedPermissionLog.dismissed_by == admin_id,
    )
    stmt = (
        select(WikiPermissionLog)
        .where(
            WikiPermissionLog.action == WikiPermissionAction.DETECTED,
            WikiPermissionLog.resolved_at.is_(None),
            WikiPermissionLog.id.not_in(dismissed),
        )
        .order_by(WikiPermissionLog.detected_at.desc())
    )
    return list(db.execute(stmt).scalars().all())


def count_open_logs(db: Session) -> int:
    return db.execute(
        select(func.count(WikiPermissionLog.id)).where(
            WikiPermissionLog.action == WikiPermissionAction.DETECTED,
            WikiPermissionLog.resolved_at.is_(None),
        )
    ).scalar_one()


def dismiss_logs(db: Session, log_ids: Sequence[UUID], admin_id: UUID) -> DismissResult:
    if not log_ids:
        raise WikiValidationError("logIds must not be empty")

    result = DismissResult(success=True, message="")
    for log_id in dict.fromkeys(log_ids):
        if db.get(WikiPermissionLog, log_id) is None:
            result.not_found += 1
            continue

        exists = db.execute(
            select(DismissedPermissionLog.id).where(
                DismissedPermissionLog.log_type == DismissedPermissionLogType.wiki,
                DismissedPermissionLog.permission_log_id == log_id,
                DismissedPermissionLog.dismissed_by == admin_id,
            )
        ).scalar_one_or_none()
        if exists:
            result.already_dismissed += 1
            continue

        db.add(
            DismissedPermissionLog(
                log_type=DismissedPermissionLogType.wiki,
                permission_log_id=log_id,
                dismissed_by=admin_id,
            )
        )
        try:
            db.commit()
        except IntegrityError:
            # another request dismissed it first
            db.rollback()
            result.already_dismissed += 1
            continue
        result.dismissed += 1

    result.message = (
        f"dismissed {result.dismissed}, already dismissed {result.already_dismissed}, not found {result.not_found}"
    )
    logger.info(
        "wiki_permission_logs_dismissed",
        admin_id=str(admin_id),
        dismissed=result.dismissed,
        already_dismissed=result.already_dismissed,
        not_found=result.not_found,
    )
    return result
