from __future__ import annotations

import structlog

from app.db.session import SessionLocal
from app.services.directory_client import HttpDirectoryProvider
from app.services.wiki_permission_check_service import run_permission_check
from app.worker.celery_app import celery_app

logger = structlog.get_logger(__name__)


@celery_app.task(bind=True)
def check_wiki_permissions_task(self, reason: str = "manual"):  # noqa: ANN201
    logger.info("check_wiki_permissions_task_started", reason=reason, task_id=self.request.id)
    with SessionLocal() as db:
        summary = run_permission_check(db, HttpDirectoryProvider())
    return {"reason": reason, **summary.as_dict()}
