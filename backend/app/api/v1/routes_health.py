from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.db.session import get_db
from app.schemas.common import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health_check(db: Session = Depends(get_db)) -> HealthResponse:
    settings = get_settings()
    db_status = "ok"
    try:
        db.execute(text("select 1"))
    except Exception:  # noqa: BLE001
        db_status = "error"

    dependencies = {
        "database": db_status,
        "storage_backend": settings.storage_backend,
        "revalidate_on_read": "enabled" if settings.wiki_permission_revalidate_on_read else "disabled",
    }

    status = "degraded" if db_status == "error" else "ok"
    return HealthResponse(
        status=status,
        timestamp=datetime.now(tz=timezone.utc),
        dependencies=dependencies,
    )
