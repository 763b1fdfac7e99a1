"""
backend/session.py

Project detail session: the controller behind the project detail view.

On open(), three independent loads start concurrently and may finish in any
order:
1. admin capability lookup (once per session)
2. project fetch (-> loading / error / not_found / loaded)
3. comment live subscription

View states: loading, error, not_found, loaded (view or edit mode).
close() (or identity change via rebind()) releases the comment subscription.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from typing import Callable, Dict, Mapping, Optional

try:
    from backend.access import (
        NO_CAPABILITY,
        PermissionDenied,
        SessionCapability,
        Viewer,
        can_acknowledge,
        can_delete_project,
        can_edit_project,
        load_session_capability,
    )
    from backend.comments import CommentStream
    from backend.config import IS_DEV, SESSION_LOAD_WORKERS
    from backend.edit_buffer import EditBuffer
    from backend.projects import delete_project, fetch_project
    from backend.store import DocumentStore, RecordNotFound, StoreError
except ModuleNotFoundError:
    from access import (
        NO_CAPABILITY,
        PermissionDenied,
        SessionCapability,
        Viewer,
        can_acknowledge,
        can_delete_project,
        can_edit_project,
        load_session_capability,
    )
    from comments import CommentStream
    from config import IS_DEV, SESSION_LOAD_WORKERS
    from edit_buffer import EditBuffer
    from projects import delete_project, fetch_project
    from store import DocumentStore, RecordNotFound, StoreError


SCROLL_PARAM = "scrollTo"
SCROLL_TO_COMMENTS = "comments"


class ViewState(str, Enum):
    loading = "loading"
    error = "error"
    not_found = "not_found"
    loaded = "loaded"


class ProjectDetailSession:
    """
    One viewer's session on one project.

    Usage:
        with ProjectDetailSession(store, viewer, owner_id, project_id, {"scrollTo": "comments"}) as s:
            if s.state == ViewState.loaded and s.consume_scroll_request():
                scroll_to_comments()
    """

    def __init__(
        self,
        store: DocumentStore,
        viewer: Viewer,
        owner_id: str,
        project_id: str,
        query_params: Optional[Mapping[str, str]] = None,
    ):
        self.store = store
        self.viewer = viewer
        self.owner_id = owner_id
        self.project_id = project_id
        self.capability: SessionCapability = NO_CAPABILITY
        self.state: ViewState = ViewState.loading
        self.error: Optional[str] = None
        self.alert: Optional[str] = None
        self.buffer: Optional[EditBuffer] = None
        self.comments = CommentStream(store, viewer, owner_id, project_id)
        self.closed = False
        self._capability_loaded = False
        self._scroll_pending = (query_params or {}).get(SCROLL_PARAM) == SCROLL_TO_COMMENTS

    def __enter__(self) -> "ProjectDetailSession":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- loading ----------------------------------------------------------
    def open(self) -> "ProjectDetailSession":
        """Start all loads concurrently and wait for them to settle."""
        tasks: Dict[str, Callable[[], None]] = {
            "project": self._load_project,
            "comments": self._subscribe_comments,
        }
        # The role lookup runs once per session; rebind() reuses the result
        if not self._capability_loaded:
            tasks["capability"] = self._load_capability

        with ThreadPoolExecutor(max_workers=SESSION_LOAD_WORKERS) as executor:
            futures = {executor.submit(fn): name for name, fn in tasks.items()}
            for future in as_completed(futures):
                # Each task handles its own errors; this only re-raises bugs
                future.result()

        if IS_DEV:
            print(f"[SESSION] Opened project_id={self.project_id}: state={self.state.value}, "
                  f"is_admin={self.capability.is_admin}, comments={len(self.comments.comments)}")
        return self

    def _load_capability(self) -> None:
        capability = load_session_capability(self.store, self.viewer)
        self.capability = capability
        self.comments.capability = capability
        self._capability_loaded = True

    def _load_project(self) -> None:
        try:
            project = fetch_project(self.store, self.owner_id, self.project_id)
        except RecordNotFound:
            self.state = ViewState.not_found
            return
        except StoreError as e:
            print(f"[SESSION] Project fetch failed for project_id={self.project_id}: {e}")
            self.error = "Failed to load project."
            self.state = ViewState.error
            return
        self.buffer = EditBuffer(project)
        self.state = ViewState.loaded

    def _subscribe_comments(self) -> None:
        self.comments.subscribe()

    def refresh(self) -> bool:
        """Re-fetch the canonical record; an in-progress draft is left alone."""
        if self.buffer is None:
            self._load_project()
            return self.state == ViewState.loaded
        try:
            project = fetch_project(self.store, self.owner_id, self.project_id)
        except RecordNotFound:
            self.state = ViewState.not_found
            return False
        except StoreError as e:
            print(f"[SESSION] Refresh failed for project_id={self.project_id}: {e}")
            return False
        self.buffer.apply_remote(project)
        return True

    # -- view helpers -----------------------------------------------------
    @property
    def is_editing(self) -> bool:
        return self.buffer is not None and self.buffer.is_editing

    @property
    def can_edit(self) -> bool:
        return can_edit_project(self.viewer, self.owner_id, self.capability)

    @property
    def can_delete(self) -> bool:
        return can_delete_project(self.viewer, self.owner_id, self.capability)

    @property
    def can_acknowledge(self) -> bool:
        return can_acknowledge(self.capability)

    def consume_scroll_request(self) -> bool:
        """True exactly once, on initial load, when scrollTo=comments was requested."""
        if self._scroll_pending and self.state == ViewState.loaded:
            self._scroll_pending = False
            return True
        return False

    # -- edit flow --------------------------------------------------------
    def begin_edit(self) -> bool:
        if self.buffer is None or not self.can_edit:
            return False
        self.buffer.begin_edit()
        return True

    def cancel_edit(self) -> None:
        if self.buffer is not None:
            self.buffer.cancel()
        self.alert = None

    def save(self) -> bool:
        """On failure the buffer keeps edit mode and the draft; alert carries the message."""
        if self.buffer is None:
            return False
        ok = self.buffer.save(self.store, self.viewer, self.capability)
        self.alert = None if ok else self.buffer.last_error
        return ok

    def delete_project(self, confirm: Callable[[], bool]) -> bool:
        if not confirm():
            return False
        try:
            delete_project(self.store, self.viewer, self.capability, self.owner_id, self.project_id)
        except PermissionDenied as e:
            print(f"[SESSION] {e}: uid={self.viewer.uid} project_id={self.project_id}")
            return False
        except RecordNotFound:
            self.state = ViewState.not_found
            return False
        except StoreError as e:
            print(f"[SESSION] Project delete failed for project_id={self.project_id}: {e}")
            self.alert = "Failed to delete project. Please try again."
            return False
        self.close()
        self.state = ViewState.not_found
        self.buffer = None
        return True

    # -- teardown ---------------------------------------------------------
    def rebind(self, owner_id: str, project_id: str) -> "ProjectDetailSession":
        """Switch to another project: drop the old subscription, reload everything else."""
        self.comments.unsubscribe()
        self.owner_id = owner_id
        self.project_id = project_id
        self.state = ViewState.loading
        self.error = None
        self.alert = None
        self.buffer = None
        self.comments = CommentStream(self.store, self.viewer, owner_id, project_id, self.capability)
        # scrollTo applies to the initial load only
        self._scroll_pending = False
        self.closed = False
        return self.open()

    def close(self) -> None:
        self.comments.unsubscribe()
        self.closed = True
