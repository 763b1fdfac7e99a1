"""
backend/comments.py

Live comment feed for one project.

State model:
- Every snapshot from the live query REPLACES the local list (newest first);
  the last snapshot received is authoritative.
- Add is not applied locally; the next snapshot reflects it.
- Delete is applied locally right away (optimistic), after the remote delete.
- Acknowledge (admin-only) flips admin_check False -> True remotely and locally.
- After unsubscribe(), late snapshots are ignored.

All operations catch store errors at their boundary and report through
return values and last_error; nothing is raised to the caller.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

try:
    from backend.access import PermissionDenied, SessionCapability, Viewer, can_acknowledge, can_delete_comment, require
    from backend.config import IS_DEV
    from backend.models import Comment
    from backend.store import (
        SERVER_TIMESTAMP,
        DocumentStore,
        RecordNotFound,
        StoreError,
        Subscription,
        comment_path,
        comments_collection,
    )
except ModuleNotFoundError:
    from access import PermissionDenied, SessionCapability, Viewer, can_acknowledge, can_delete_comment, require
    from config import IS_DEV
    from models import Comment
    from store import (
        SERVER_TIMESTAMP,
        DocumentStore,
        RecordNotFound,
        StoreError,
        Subscription,
        comment_path,
        comments_collection,
    )


ConfirmFn = Callable[[], bool]


def comment_from_document(owner_id: str, project_id: str, data: Dict[str, Any]) -> Comment:
    return Comment(
        id=data["id"],
        content=data.get("content") or "",
        author_id=data.get("author_id") or "",
        author_email=data.get("author_email") or "",
        created_at=data.get("created_at"),
        admin_check=bool(data.get("admin_check", False)),
        project_owner_id=data.get("project_owner_id") or owner_id,
        project_id=data.get("project_id") or project_id,
    )


def validate_comment_content(content: Optional[str]) -> str:
    """
    Raises:
        ValueError: If content is empty or whitespace-only
    """
    if content is None or not content.strip():
        raise ValueError("comment must not be empty")
    return content


def new_comment_document(owner_id: str, project_id: str, viewer: Viewer, content: str) -> Dict[str, Any]:
    return {
        "content": validate_comment_content(content),
        "author_id": viewer.uid,
        "author_email": viewer.email,
        "created_at": SERVER_TIMESTAMP,
        "admin_check": False,
        "project_owner_id": owner_id,
        "project_id": project_id,
    }


def list_comments(store: DocumentStore, owner_id: str, project_id: str) -> List[Comment]:
    """One-shot read of a project's comments, newest first."""
    docs = store.query_ordered(comments_collection(owner_id, project_id), "created_at", "desc")
    return [comment_from_document(owner_id, project_id, d) for d in docs]


def add_comment(store: DocumentStore, viewer: Viewer, owner_id: str, project_id: str, content: str) -> str:
    """
    Raises:
        ValueError: Blank content
        StoreError: On write failure
    """
    doc = new_comment_document(owner_id, project_id, viewer, content)
    comment_id = store.add_record(comments_collection(owner_id, project_id), doc)
    if IS_DEV:
        print(f"[COMMENTS] Added comment_id={comment_id} by uid={viewer.uid}")
    return comment_id


def delete_comment(
    store: DocumentStore,
    viewer: Viewer,
    capability: Optional[SessionCapability],
    owner_id: str,
    project_id: str,
    comment_id: str,
) -> None:
    """
    Delete a comment after re-fetching it, so the author check uses current data.

    Raises:
        RecordNotFound: Comment does not exist
        PermissionDenied: Viewer is neither author nor admin
        StoreError: On read/write failure
    """
    path = comment_path(owner_id, project_id, comment_id)
    current = store.get_record(path)
    if current is None:
        raise RecordNotFound(path)
    require(can_delete_comment(viewer, current.get("author_id"), capability), "delete comment")
    store.delete_record(path)
    if IS_DEV:
        print(f"[COMMENTS] Deleted comment_id={comment_id} by uid={viewer.uid}")


def acknowledge_comment(
    store: DocumentStore,
    capability: Optional[SessionCapability],
    owner_id: str,
    project_id: str,
    comment_id: str,
) -> bool:
    """
    Admin-only, one-way admin_check False -> True.
    Returns True when a flip was written, False if already acknowledged.

    Raises:
        PermissionDenied: Not an admin
        RecordNotFound: Comment does not exist
        StoreError: On read/write failure
    """
    require(can_acknowledge(capability), "acknowledge comment")
    path = comment_path(owner_id, project_id, comment_id)
    current = store.get_record(path)
    if current is None:
        raise RecordNotFound(path)
    if current.get("admin_check"):
        return False
    store.update_record(path, {"admin_check": True})
    return True


class CommentStream:
    """
    Local mirror of a project's comment feed for one viewer session.

    The admin capability is passed in (computed once per session), never
    looked up here.
    """

    def __init__(
        self,
        store: DocumentStore,
        viewer: Viewer,
        owner_id: str,
        project_id: str,
        capability: Optional[SessionCapability] = None,
    ):
        self.store = store
        self.viewer = viewer
        self.owner_id = owner_id
        self.project_id = project_id
        self.capability = capability or SessionCapability()
        self.comments: Tuple[Comment, ...] = ()
        self.last_error: Optional[str] = None
        self._subscription: Optional[Subscription] = None
        self._generation = 0
        self._submit_lock = threading.Lock()
        self._state_lock = threading.Lock()

    # -- subscription lifecycle ---------------------------------------
    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    @property
    def submitting(self) -> bool:
        return self._submit_lock.locked()

    def subscribe(self) -> bool:
        """
        Open the live query once viewer and project are known.
        Returns False (and records the error) if the store is unavailable.
        """
        if self._subscription is not None:
            return True
        if not self.viewer or not self.viewer.uid or not self.project_id:
            return False

        with self._state_lock:
            self._generation += 1
            generation = self._generation

        def on_snapshot(docs: List[Dict[str, Any]]) -> None:
            self._apply_snapshot(generation, docs)

        try:
            sub = self.store.subscribe_ordered(
                comments_collection(self.owner_id, self.project_id),
                "created_at",
                "desc",
                on_snapshot,
            )
        except StoreError as e:
            print(f"[COMMENTS] Subscribe failed for project_id={self.project_id}: {e}")
            self.last_error = "Failed to load comments."
            return False

        self._subscription = sub
        if IS_DEV:
            print(f"[COMMENTS] Subscribed project_id={self.project_id}, count={len(self.comments)}")
        return True

    def unsubscribe(self) -> None:
        """Release the live query; later snapshots produce no local change."""
        with self._state_lock:
            self._generation += 1
            sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.unsubscribe()
            if IS_DEV:
                print(f"[COMMENTS] Unsubscribed project_id={self.project_id}")

    def _apply_snapshot(self, generation: int, docs: List[Dict[str, Any]]) -> None:
        snapshot = tuple(comment_from_document(self.owner_id, self.project_id, d) for d in docs)
        with self._state_lock:
            # Snapshots from a released subscription are stale
            if generation != self._generation:
                return
            self.comments = snapshot

    # -- derived views ------------------------------------------------
    def is_unread(self, comment: Comment) -> bool:
        """Unread = not yet acknowledged by an admin (only meaningful to admins)."""
        return not comment.admin_check

    @property
    def unread_count(self) -> int:
        return sum(1 for c in self.comments if self.is_unread(c))

    def get(self, comment_id: str) -> Optional[Comment]:
        for comment in self.comments:
            if comment.id == comment_id:
                return comment
        return None

    # -- mutations ----------------------------------------------------
    def add(self, content: str) -> bool:
        """
        Write a new comment. Blank content and submits made while another add
        is in flight are no-ops returning False. The local list is NOT updated
        here; the live query delivers the new comment.
        """
        if content is None or not content.strip():
            return False
        if not self._submit_lock.acquire(blocking=False):
            if IS_DEV:
                print("[COMMENTS] Add ignored: submit already in flight")
            return False
        try:
            add_comment(self.store, self.viewer, self.owner_id, self.project_id, content)
        except StoreError as e:
            print(f"[COMMENTS] Add failed for project_id={self.project_id}: {e}")
            self.last_error = "Failed to post comment. Please try again."
            return False
        finally:
            self._submit_lock.release()

        self.last_error = None
        return True

    def delete(self, comment_id: str, confirm: ConfirmFn) -> bool:
        """
        Delete a comment after interactive confirmation.
        Unauthorized or missing targets are no-ops returning False.
        """
        if not confirm():
            return False

        try:
            delete_comment(self.store, self.viewer, self.capability, self.owner_id, self.project_id, comment_id)
        except RecordNotFound:
            if IS_DEV:
                print(f"[COMMENTS] Delete skipped, comment_id={comment_id} not found")
            return False
        except PermissionDenied:
            print(f"[COMMENTS] Permission denied: uid={self.viewer.uid} cannot delete comment_id={comment_id}")
            return False
        except StoreError as e:
            print(f"[COMMENTS] Delete failed for comment_id={comment_id}: {e}")
            self.last_error = "Failed to delete comment. Please try again."
            return False

        # Optimistic local removal; the next snapshot agrees
        with self._state_lock:
            self.comments = tuple(c for c in self.comments if c.id != comment_id)
        self.last_error = None
        return True

    def acknowledge(self, comment_id: str) -> bool:
        """
        Admin-only, one-way: admin_check False -> True.
        Returns True only when a flip was written.
        """
        if not can_acknowledge(self.capability):
            return False

        local = self.get(comment_id)
        if local is not None and local.admin_check:
            return False

        try:
            flipped = acknowledge_comment(self.store, self.capability, self.owner_id, self.project_id, comment_id)
        except RecordNotFound:
            if IS_DEV:
                print(f"[COMMENTS] Acknowledge skipped, comment_id={comment_id} not found")
            return False
        except StoreError as e:
            print(f"[COMMENTS] Acknowledge failed for comment_id={comment_id}: {e}")
            self.last_error = "Failed to update comment."
            return False

        with self._state_lock:
            self.comments = tuple(
                c.model_copy(update={"admin_check": True}) if c.id == comment_id else c
                for c in self.comments
            )
        self.last_error = None
        return flipped
