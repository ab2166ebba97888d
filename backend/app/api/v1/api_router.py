from fastapi import APIRouter

from app.api.v1.routes_auth import router as auth_router
from app.api.v1.routes_health import router as health_router
from app.api.v1.routes_wiki_files import router as wiki_files_router
from app.api.v1.routes_wiki_folders import router as wiki_folders_router
from app.api.v1.routes_wiki_permissions import router as wiki_permissions_router

api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(wiki_folders_router, tags=["wiki"])
api_router.include_router(wiki_files_router, tags=["wiki"])
api_router.include_router(wiki_permissions_router, tags=["wiki"])
api_router.include_router(health_router)
