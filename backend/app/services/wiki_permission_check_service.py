from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models import PermissionKind, WikiNode, WikiNodeType, WikiPermissionAction, WikiPermissionLog
from app.services.directory_client import DirectoryProvider, DirectorySnapshot, HttpDirectoryProvider

logger = structlog.get_logger(__name__)

KIND_FIELDS = {
    PermissionKind.department: "permission_department_ids",
    PermissionKind.rank: "permission_rank_ids",
    PermissionKind.position: "permission_position_ids",
}

NOTE_AUTO_RESOLVED = "id is active again in the directory; resolved automatically"
NOTE_NO_LONGER_ASSIGNED = "id is no longer assigned to this node; resolved automatically"
NOTE_RESTRICTION_REMOVED = "node is no longer restricted or was deleted; resolved automatically"


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass
class NodeCheckResult:
    node_id: UUID
    status: str
    detected: int = 0
    resolved: int = 0
    error: str | None = None


@dataclass
class PermissionCheckSummary:
    status: str = "ok"
    processed: int = 0
    detected: int = 0
    resolved: int = 0
    skipped: int = 0
    failed: int = 0
    started_at: datetime = field(default_factory=_now)
    finished_at: datetime | None = None
    error: str | None = None
    results: list[NodeCheckResult] = field(default_factory=list)

    def add(self, result: NodeCheckResult) -> None:
        self.results.append(result)
        self.processed += 1
        self.detected += result.detected
        self.resolved += result.resolved
        if result.status == "skipped":
            self.skipped += 1
        elif result.status == "error":
            self.failed += 1

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload.pop("results")
        payload["started_at"] = self.started_at.isoformat()
        payload["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return payload


def _stored_ids(node: WikiNode) -> dict[PermissionKind, list[str]]:
    return {kind: list(getattr(node, attr) or []) for kind, attr in KIND_FIELDS.items()}


def snapshot_permissions(node: WikiNode) -> dict[str, Any]:
    return {
        "isPublic": node.is_public,
        "permissionRankIds": node.permission_rank_ids,
        "permissionPositionIds": node.permission_position_ids,
        "permissionDepartmentIds": node.permission_department_ids,
    }


def _invalid_ids(node: WikiNode, snapshot: DirectorySnapshot) -> dict[PermissionKind, list[str]]:
    invalid: dict[PermissionKind, list[str]] = {}
    for kind, ids in _stored_ids(node).items():
        valid = snapshot.valid_ids(kind)
        if valid is None:
            continue
        invalid[kind] = [value for value in ids if value not in valid]
    return invalid


def _resolve_log(log: WikiPermissionLog, note: str, now: datetime) -> None:
    log.action = WikiPermissionAction.RESOLVED
    log.resolved_at = now
    log.resolved_by = None
    log.note = note


def restricted_folders(db: Session) -> list[WikiNode]:
    stmt = (
        select(WikiNode)
        .where(
            WikiNode.deleted_at.is_(None),
            WikiNode.type == WikiNodeType.folder,
            WikiNode.is_public.is_(False),
        )
        .order_by(WikiNode.depth.asc(), WikiNode.created_at.asc())
    )
    return list(db.execute(stmt).scalars().all())


def open_detected_logs(db: Session) -> dict[UUID, list[WikiPermissionLog]]:
    rows = db.execute(
        select(WikiPermissionLog).where(
            WikiPermissionLog.action == WikiPermissionAction.DETECTED,
            WikiPermissionLog.resolved_at.is_(None),
        )
    ).scalars()
    grouped: dict[UUID, list[WikiPermissionLog]] = defaultdict(list)
    for log in rows:
        grouped[log.wiki_file_system_id].append(log)
    return grouped


def check_node(
    db: Session,
    node: WikiNode,
    snapshot: DirectorySnapshot,
    open_logs: list[WikiPermissionLog],
) -> NodeCheckResult:
    now = _now()
    stored = _stored_ids(node)
    result = NodeCheckResult(node_id=node.id, status="ok")

    still_open: set[tuple[PermissionKind, str]] = set()
    for log in open_logs:
        if log.invalid_kind is None or log.invalid_id is None:
            continue
        valid = snapshot.valid_ids(log.invalid_kind)
        if log.invalid_id not in stored[log.invalid_kind]:
            _resolve_log(log, NOTE_NO_LONGER_ASSIGNED, now)
            result.resolved += 1
        elif valid is not None and log.invalid_id in valid:
            _resolve_log(log, NOTE_AUTO_RESOLVED, now)
            result.resolved += 1
        else:
            still_open.add((log.invalid_kind, log.invalid_id))

    invalid = _invalid_ids(node, snapshot)
    permission_snapshot = snapshot_permissions(node)
    for kind, ids in invalid.items():
        for invalid_id in ids:
            if (kind, invalid_id) in still_open:
                continue
            db.add(
                WikiPermissionLog(
                    wiki_file_system_id=node.id,
                    action=WikiPermissionAction.DETECTED,
                    invalid_kind=kind,
                    invalid_id=invalid_id,
                    invalid_departments=invalid.get(PermissionKind.department) or None,
                    invalid_rank_ids=invalid.get(PermissionKind.rank) or None,
                    invalid_position_ids=invalid.get(PermissionKind.position) or None,
                    snapshot_permissions=permission_snapshot,
                    note=f"{kind.value} id not found or inactive in directory: {invalid_id}",
                    detected_at=now,
                )
            )
            result.detected += 1
            logger.warning(
                "wiki_permission_invalid_id_detected",
                wiki_id=str(node.id),
                wiki_name=node.name,
                kind=kind.value,
                invalid_id=invalid_id,
            )

    db.commit()
    if result.detected:
        result.status = "detected"
    elif result.resolved:
        result.status = "resolved"
    return result


def _resolve_orphaned_logs(db: Session, node_id: UUID, logs: list[WikiPermissionLog]) -> NodeCheckResult:
    now = _now()
    for log in logs:
        _resolve_log(log, NOTE_RESTRICTION_REMOVED, now)
    db.commit()
    return NodeCheckResult(node_id=node_id, status="resolved", resolved=len(logs))


def _run_isolated(db: Session, node_id: UUID, fn, *args) -> NodeCheckResult:  # noqa: ANN001
    try:
        return fn(*args)
    except IntegrityError:
        # a concurrent run inserted the same open log first
        db.rollback()
        logger.info("wiki_permission_check_node_conflict", wiki_id=str(node_id))
        return NodeCheckResult(node_id=node_id, status="skipped")
    except Exception as exc:  # noqa: BLE001
        db.rollback()
        logger.exception("wiki_permission_check_node_failed", wiki_id=str(node_id), error=str(exc))
        return NodeCheckResult(node_id=node_id, status="error", error=str(exc))


def run_permission_check(db: Session, provider: DirectoryProvider | None = None) -> PermissionCheckSummary:
    """Reconcile stored permission ids against the directory.

    Best effort: a failure on one node is rolled back, logged and recorded in
    the summary, then the loop moves on. Nothing is raised to the caller.
    """
    summary = PermissionCheckSummary()
    logger.info("wiki_permission_check_started")

    try:
        snapshot = (provider or HttpDirectoryProvider()).fetch_snapshot()
    except Exception as exc:  # noqa: BLE001
        logger.warning("wiki_permission_check_directory_failed", error=str(exc))
        summary.status = "failed"
        summary.error = str(exc)
        summary.finished_at = _now()
        return summary

    try:
        folders = restricted_folders(db)
        open_logs = open_detected_logs(db)
    except Exception as exc:  # noqa: BLE001
        db.rollback()
        logger.exception("wiki_permission_check_load_failed", error=str(exc))
        summary.status = "failed"
        summary.error = str(exc)
        summary.finished_at = _now()
        return summary

    checked: set[UUID] = set()
    for folder in folders:
        folder_id = folder.id
        checked.add(folder_id)
        summary.add(_run_isolated(db, folder_id, check_node, db, folder, snapshot, open_logs.get(folder_id, [])))

    for node_id, logs in open_logs.items():
        if node_id in checked:
            continue
        summary.add(_run_isolated(db, node_id, _resolve_orphaned_logs, db, node_id, logs))

    summary.finished_at = _now()
    logger.info(
        "wiki_permission_check_finished",
        processed=summary.processed,
        detected=summary.detected,
        resolved=summary.resolved,
        skipped=summary.skipped,
        failed=summary.failed,
    )
    return summary
