"""
backend/routes_projects.py

Project and comment endpoints.

Security guarantees:
- All endpoints require a bearer token (require_capability_context)
- Projects are always created under the viewer's own uid
- Edit/delete of a project: owner or admin
- Delete of a comment: author or admin (checked against the stored record)
- Acknowledge: admin only
- Listing another user's projects: admin only
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

try:
    from backend.access import PermissionDenied, can_edit_project, is_admin, require
    from backend.auth_context import RequestContext, require_capability_context
    from backend.comments import (
        acknowledge_comment,
        add_comment,
        comment_from_document,
        delete_comment,
        list_comments,
    )
    from backend.config import IS_DEV
    from backend.models import Comment, Project
    from backend.projects import (
        create_project,
        delete_project,
        draft_to_document,
        fetch_project,
        list_projects,
        project_from_document,
    )
    from backend.schemas_projects import (
        CommentCreateRequest,
        CommentListResponse,
        ProjectListResponse,
        ProjectWriteRequest,
    )
    from backend.store import (
        SERVER_TIMESTAMP,
        DocumentStore,
        RecordNotFound,
        StoreError,
        comment_path,
        get_store,
        project_path,
    )
except ModuleNotFoundError:
    from access import PermissionDenied, can_edit_project, is_admin, require
    from auth_context import RequestContext, require_capability_context
    from comments import (
        acknowledge_comment,
        add_comment,
        comment_from_document,
        delete_comment,
        list_comments,
    )
    from config import IS_DEV
    from models import Comment, Project
    from projects import (
        create_project,
        delete_project,
        draft_to_document,
        fetch_project,
        list_projects,
        project_from_document,
    )
    from schemas_projects import (
        CommentCreateRequest,
        CommentListResponse,
        ProjectListResponse,
        ProjectWriteRequest,
    )
    from store import (
        SERVER_TIMESTAMP,
        DocumentStore,
        RecordNotFound,
        StoreError,
        comment_path,
        get_store,
        project_path,
    )


router = APIRouter(
    prefix="/api/projects",
    tags=["projects"],
)


def _store_failure(action: str, e: Exception) -> HTTPException:
    # Log error but don't expose internal details
    print(f"[PROJECTS] Store error on {action}: {e}")
    return HTTPException(status_code=500, detail="Database error")


def _require_project(store: DocumentStore, owner_id: str, project_id: str) -> Project:
    try:
        return fetch_project(store, owner_id, project_id)
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    except StoreError as e:
        raise _store_failure("fetch", e)


# ========================================================================
# PROJECTS
# ========================================================================

@router.get("", response_model=ProjectListResponse)
def list_projects_route(
    owner_id: Optional[str] = Query(None, min_length=1, max_length=200, description="Admins only: another user's uid"),
    ctx: RequestContext = Depends(require_capability_context),
    store: DocumentStore = Depends(get_store),
) -> ProjectListResponse:
    """
    List projects, newest first.

    Raises:
        HTTPException(403): owner_id of another user without admin role
        HTTPException(500): Database error
    """
    target = owner_id or ctx.viewer.uid
    if target != ctx.viewer.uid and not is_admin(ctx.capability):
        raise HTTPException(status_code=403, detail="Not allowed to list other users' projects")

    try:
        items = list_projects(store, target)
    except StoreError as e:
        raise _store_failure("list", e)
    return ProjectListResponse(items=items, total=len(items))


@router.post("", response_model=Project, status_code=201)
def create_project_route(
    request: ProjectWriteRequest,
    ctx: RequestContext = Depends(require_capability_context),
    store: DocumentStore = Depends(get_store),
) -> Project:
    """
    Create a project owned by the authenticated viewer.

    Raises:
        HTTPException(400): Invalid effort text
        HTTPException(500): Database error
    """
    try:
        return create_project(store, ctx.viewer, request.to_draft())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise _store_failure("create", e)


@router.get("/{owner_id}/{project_id}", response_model=Project)
def get_project_route(
    owner_id: str,
    project_id: str,
    ctx: RequestContext = Depends(require_capability_context),
    store: DocumentStore = Depends(get_store),
) -> Project:
    return _require_project(store, owner_id, project_id)


@router.put("/{owner_id}/{project_id}", response_model=Project)
def save_project_route(
    owner_id: str,
    project_id: str,
    request: ProjectWriteRequest,
    ctx: RequestContext = Depends(require_capability_context),
    store: DocumentStore = Depends(get_store),
) -> Project:
    """
    Save an edit draft as the new canonical record (single atomic update).

    Raises:
        HTTPException(400): Invalid effort text
        HTTPException(403): Neither owner nor admin
        HTTPException(404): Project not found
        HTTPException(500): Database error
    """
    if not can_edit_project(ctx.viewer, owner_id, ctx.capability):
        print(f"[PROJECTS] Permission denied: uid={ctx.viewer.uid} cannot edit project_id={project_id}")
        raise HTTPException(status_code=403, detail="Not allowed to edit project")

    try:
        payload = draft_to_document(request.to_draft())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        stored = store.update_record(
            project_path(owner_id, project_id),
            {**payload, "updated_at": SERVER_TIMESTAMP},
        )
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    except StoreError as e:
        raise _store_failure("save", e)

    if IS_DEV:
        print(f"[PROJECTS] Saved project_id={project_id} by uid={ctx.viewer.uid}")
    return project_from_document(owner_id, project_id, stored)


@router.delete("/{owner_id}/{project_id}", status_code=204)
def delete_project_route(
    owner_id: str,
    project_id: str,
    ctx: RequestContext = Depends(require_capability_context),
    store: DocumentStore = Depends(get_store),
) -> Response:
    try:
        delete_project(store, ctx.viewer, ctx.capability, owner_id, project_id)
    except PermissionDenied as e:
        print(f"[PROJECTS] {e}: uid={ctx.viewer.uid} project_id={project_id}")
        raise HTTPException(status_code=403, detail=str(e))
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    except StoreError as e:
        raise _store_failure("delete", e)
    return Response(status_code=204)


# ========================================================================
# COMMENTS
# ========================================================================

@router.get("/{owner_id}/{project_id}/comments", response_model=CommentListResponse)
def list_comments_route(
    owner_id: str,
    project_id: str,
    ctx: RequestContext = Depends(require_capability_context),
    store: DocumentStore = Depends(get_store),
) -> CommentListResponse:
    _require_project(store, owner_id, project_id)
    try:
        items = list_comments(store, owner_id, project_id)
    except StoreError as e:
        raise _store_failure("list comments", e)
    return CommentListResponse(items=items, unread=sum(1 for c in items if not c.admin_check))


@router.post("/{owner_id}/{project_id}/comments", response_model=Comment, status_code=201)
def add_comment_route(
    owner_id: str,
    project_id: str,
    request: CommentCreateRequest,
    ctx: RequestContext = Depends(require_capability_context),
    store: DocumentStore = Depends(get_store),
) -> Comment:
    _require_project(store, owner_id, project_id)
    try:
        comment_id = add_comment(store, ctx.viewer, owner_id, project_id, request.content)
        stored = store.get_record(comment_path(owner_id, project_id, comment_id)) or {}
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except StoreError as e:
        raise _store_failure("add comment", e)
    return comment_from_document(owner_id, project_id, {"id": comment_id, **stored})


@router.delete("/{owner_id}/{project_id}/comments/{comment_id}", status_code=204)
def delete_comment_route(
    owner_id: str,
    project_id: str,
    comment_id: str,
    ctx: RequestContext = Depends(require_capability_context),
    store: DocumentStore = Depends(get_store),
) -> Response:
    """
    Raises:
        HTTPException(403): Neither author nor admin
        HTTPException(404): Comment not found
        HTTPException(500): Database error
    """
    try:
        delete_comment(store, ctx.viewer, ctx.capability, owner_id, project_id, comment_id)
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Comment not found")
    except PermissionDenied as e:
        print(f"[PROJECTS] {e}: uid={ctx.viewer.uid} comment_id={comment_id}")
        raise HTTPException(status_code=403, detail=str(e))
    except StoreError as e:
        raise _store_failure("delete comment", e)
    return Response(status_code=204)


@router.post("/{owner_id}/{project_id}/comments/{comment_id}/acknowledge", response_model=Comment)
def acknowledge_comment_route(
    owner_id: str,
    project_id: str,
    comment_id: str,
    ctx: RequestContext = Depends(require_capability_context),
    store: DocumentStore = Depends(get_store),
) -> Comment:
    """Admin-only; acknowledging twice is a no-op that returns the same comment."""
    try:
        require(is_admin(ctx.capability), "acknowledge comment")
        acknowledge_comment(store, ctx.capability, owner_id, project_id, comment_id)
        stored = store.get_record(comment_path(owner_id, project_id, comment_id))
    except PermissionDenied as e:
        raise HTTPException(status_code=403, detail=str(e))
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Comment not found")
    except StoreError as e:
        raise _store_failure("acknowledge", e)
    if stored is None:
        raise HTTPException(status_code=404, detail="Comment not found")
    return comment_from_document(owner_id, project_id, {"id": comment_id, **stored})
