from __future__ import annotations

from uuid import UUID

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from app.api.v1.wiki_serializers import build_file_form, to_node_response, to_search_hit
from app.core.auth import CurrentUser, require_admin
from app.db.session import get_db
from app.schemas.wiki import (
    EmptyFileCreateRequest,
    FilePublicUpdateRequest,
    PathUpdateRequest,
    WikiDeleteResponse,
    WikiFileForm,
    WikiNodeResponse,
    WikiSearchHitResponse,
)
from app.services import wiki_tree_service as tree
from app.services.wiki_attachment_service import UploadedAttachment, delete_attachments, upload_attachments
from app.services.wiki_permission_sync_service import revalidate_if_unclassified

router = APIRouter()
logger = structlog.get_logger(__name__)


def file_form(
    name: str | None = Form(None),
    parent_id: str | None = Form(None, alias="parentId"),
    title: str | None = Form(None),
    content: str | None = Form(None),
    is_public: str | None = Form(None, alias="isPublic"),
    order: str | None = Form(None),
) -> WikiFileForm:
    return build_file_form(
        name=name,
        parent_id=parent_id,
        title=title,
        content=content,
        is_public=is_public,
        order=order,
    )


def _read_uploads(files: list[UploadFile] | None) -> list[UploadedAttachment]:
    uploads: list[UploadedAttachment] = []
    for upload in files or []:
        if not upload.filename:
            continue
        uploads.append(
            UploadedAttachment(
                file_name=upload.filename,
                content=upload.file.read(),
                mime_type=upload.content_type,
            )
        )
    return uploads


@router.get("/admin/wiki/files", response_model=list[WikiNodeResponse])
def list_files(
    background_tasks: BackgroundTasks,
    parent_id: UUID | None = Query(None, alias="parentId"),
    _: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[WikiNodeResponse]:
    files = tree.list_files(db, parent_id)
    if parent_id is not None:
        revalidate_if_unclassified([tree.get_folder(db, parent_id)], background_tasks, reason="file_list")
    return [to_node_response(node) for node in files]


@router.get("/admin/wiki/files/search", response_model=list[WikiSearchHitResponse])
def search_files(
    background_tasks: BackgroundTasks,
    query: str | None = Query(None),
    _: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[WikiSearchHitResponse]:
    hits = tree.search_files(db, query)
    folders = {node.id: node for hit in hits for node in hit.path if node.is_folder}
    revalidate_if_unclassified(folders.values(), background_tasks, reason="file_search")
    return [to_search_hit(hit) for hit in hits]


@router.get("/admin/wiki/files/{file_id}", response_model=WikiNodeResponse)
def get_file(
    file_id: UUID,
    _: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiNodeResponse:
    return to_node_response(tree.get_file(db, file_id))


@router.post("/admin/wiki/files", response_model=WikiNodeResponse, status_code=status.HTTP_201_CREATED)
def create_file(
    form: WikiFileForm = Depends(file_form),
    files: list[UploadFile] | None = File(None),
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiNodeResponse:
    if form.parent_id is not None:
        tree.get_folder(db, form.parent_id)

    attachments = upload_attachments(_read_uploads(files))
    try:
        node = tree.create_file(
            db,
            name=form.name,
            parent_id=form.parent_id,
            title=form.title,
            content=form.content,
            attachments=attachments,
            is_public=form.is_public,
            order=form.order,
            created_by=current_user.id,
        )
    except Exception:
        delete_attachments(attachments)
        raise
    return to_node_response(node)


@router.post("/admin/wiki/files/empty", response_model=WikiNodeResponse, status_code=status.HTTP_201_CREATED)
def create_empty_file(
    req: EmptyFileCreateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiNodeResponse:
    node = tree.create_file(
        db,
        name=req.name,
        parent_id=req.parent_id,
        is_public=req.is_public,
        order=req.order,
        created_by=current_user.id,
    )
    return to_node_response(node)


@router.put("/admin/wiki/files/{file_id}", response_model=WikiNodeResponse)
def update_file(
    file_id: UUID,
    form: WikiFileForm = Depends(file_form),
    files: list[UploadFile] | None = File(None),
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiNodeResponse:
    previous = list(tree.get_file(db, file_id).attachments or [])

    attachments = upload_attachments(_read_uploads(files))
    try:
        node = tree.update_file_content(
            db,
            file_id,
            name=form.name,
            title=form.title,
            content=form.content,
            attachments=attachments,
            updated_by=current_user.id,
        )
    except Exception:
        delete_attachments(attachments)
        raise

    removed = delete_attachments(previous)
    logger.info("wiki_file_updated", wiki_id=str(node.id), attachments=len(attachments), removed=removed)
    return to_node_response(node)


@router.patch("/admin/wiki/files/{file_id}/path", response_model=WikiNodeResponse)
def move_file(
    file_id: UUID,
    req: PathUpdateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiNodeResponse:
    tree.get_file(db, file_id)
    return to_node_response(tree.move_node(db, file_id, req.parent_id, updated_by=current_user.id))


@router.patch("/admin/wiki/files/{file_id}/public", response_model=WikiNodeResponse)
def update_file_public(
    file_id: UUID,
    req: FilePublicUpdateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiNodeResponse:
    return to_node_response(tree.update_file_public(db, file_id, is_public=req.is_public, updated_by=current_user.id))


@router.delete("/admin/wiki/files/{file_id}", response_model=WikiDeleteResponse)
def delete_file(
    file_id: UUID,
    _: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WikiDeleteResponse:
    node = tree.get_file(db, file_id)
    delete_attachments(node.attachments)
    deleted = tree.delete_subtree(db, file_id)
    return WikiDeleteResponse(deleted_ids=[item.id for item in deleted])
