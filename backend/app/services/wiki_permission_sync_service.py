from __future__ import annotations

from collections.abc import Iterable

import structlog
from fastapi import BackgroundTasks

from app.core.config import get_settings
from app.db.models import WikiNode
from app.services.wiki_permission import is_unclassified

logger = structlog.get_logger(__name__)


def enqueue_wiki_permission_check(reason: str) -> bool:
    try:
        from app.worker.tasks_wiki_permissions import check_wiki_permissions_task

        # publish once; no broker retries and no result backend subscription
        check_wiki_permissions_task.apply_async(kwargs={"reason": reason}, retry=False, ignore_result=True)
    except Exception as exc:  # noqa: BLE001
        logger.warning("enqueue_wiki_permission_check_failed", reason=reason, error=str(exc))
        return False
    logger.info("wiki_permission_check_enqueued", reason=reason)
    return True


def revalidate_if_unclassified(
    nodes: Iterable[WikiNode],
    background_tasks: BackgroundTasks,
    *,
    reason: str,
) -> bool:
    """Schedule a reconciliation pass when a read path returned an unclassified folder.

    The enqueue runs as a background task after the response is sent, so the
    read that triggered it never waits on the broker.
    """
    if not get_settings().wiki_permission_revalidate_on_read:
        return False
    flagged = [node for node in nodes if is_unclassified(node)]
    if not flagged:
        return False
    logger.info("wiki_unclassified_folders_seen", reason=reason, count=len(flagged))
    background_tasks.add_task(enqueue_wiki_permission_check, reason)
    return True
