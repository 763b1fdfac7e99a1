"""
backend/edit_buffer.py

View/edit projection of a single project.

The canonical record (last synced from the store) and the draft being edited
are separate immutable values. Edits replace the draft with a patched copy,
so the canonical record can keep being shown or replaced by live updates
while an edit is in progress.

Save writes the whole draft plus a server timestamp in ONE update call.
A failed save keeps edit mode and the draft so no input is lost.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

try:
    from backend.access import SessionCapability, Viewer, can_edit_project
    from backend.config import IS_DEV
    from backend.models import Project
    from backend.projects import (
        ProjectDraft,
        draft_from_project,
        draft_to_document,
        project_from_document,
    )
    from backend.store import SERVER_TIMESTAMP, DocumentStore, RecordNotFound, StoreError, project_path
except ModuleNotFoundError:
    from access import SessionCapability, Viewer, can_edit_project
    from config import IS_DEV
    from models import Project
    from projects import (
        ProjectDraft,
        draft_from_project,
        draft_to_document,
        project_from_document,
    )
    from store import SERVER_TIMESTAMP, DocumentStore, RecordNotFound, StoreError, project_path


class EditMode(str, Enum):
    view = "view"
    edit = "edit"


class NotEditing(Exception):
    """Raised when a draft mutation is attempted outside edit mode."""
    pass


class EditBuffer:
    """
    Holds the canonical project and, in edit mode, an independent draft.

    Usage:
        buf = EditBuffer(project)
        buf.begin_edit()
        buf.set_discipline("planning", effort="2.5")
        if not buf.save(store):
            show_alert(buf.last_error)   # still in edit mode, draft intact
    """

    def __init__(self, canonical: Project):
        self.canonical: Project = canonical
        self.draft: ProjectDraft = draft_from_project(canonical)
        self.mode: EditMode = EditMode.view
        self.saving: bool = False
        self.last_error: Optional[str] = None

    @property
    def is_editing(self) -> bool:
        return self.mode == EditMode.edit

    @property
    def total_effort(self) -> Optional[float]:
        """Live total while editing, canonical total otherwise."""
        if self.is_editing:
            return self.draft.total_effort
        return self.canonical.total_effort

    # -- mode transitions -------------------------------------------------
    def begin_edit(self) -> ProjectDraft:
        """Enter edit mode with a fresh copy of the canonical record."""
        self.draft = draft_from_project(self.canonical)
        self.mode = EditMode.edit
        self.last_error = None
        return self.draft

    def cancel(self) -> None:
        """
        Discard the draft. The replacement draft is copied from the CURRENT
        canonical record, which may have changed since editing began.
        """
        self.draft = draft_from_project(self.canonical)
        self.mode = EditMode.view
        self.last_error = None

    def apply_remote(self, project: Project) -> None:
        """Replace the canonical record from a live/remote update; the draft is untouched."""
        self.canonical = project
        if not self.is_editing:
            self.draft = draft_from_project(project)

    # -- field patches ----------------------------------------------------
    def _patch(self, draft: ProjectDraft) -> ProjectDraft:
        self.draft = draft
        return draft

    def _require_edit(self) -> None:
        if not self.is_editing:
            raise NotEditing("Call begin_edit() before changing fields")

    def set_field(self, field: str, value: Any) -> ProjectDraft:
        self._require_edit()
        return self._patch(self.draft.with_field(field, value))

    def set_date(self, field: str, value: Any) -> ProjectDraft:
        self._require_edit()
        return self._patch(self.draft.with_date(field, value))

    def set_progress(self, value: Any) -> ProjectDraft:
        """Progress clamps to [0, 100] immediately."""
        self._require_edit()
        return self._patch(self.draft.with_progress(value))

    def set_discipline(self, discipline: str, name: Optional[str] = None, effort: Optional[str] = None) -> ProjectDraft:
        self._require_edit()
        return self._patch(self.draft.with_discipline(discipline, name=name, effort=effort))

    def set_link(self, field: str, value: Optional[str]) -> ProjectDraft:
        self._require_edit()
        return self._patch(self.draft.with_link(field, value))

    # -- save -------------------------------------------------------------
    def save(
        self,
        store: DocumentStore,
        viewer: Optional[Viewer] = None,
        capability: Optional[SessionCapability] = None,
    ) -> bool:
        """
        Write the draft as the new canonical record.

        When viewer is given the owner/admin policy is checked first.
        Returns True on success (edit mode exits). On failure returns False,
        sets last_error, and leaves edit mode and the draft as they were.
        """
        if not self.is_editing or self.saving:
            return False

        owner_id = self.canonical.owner_id
        project_id = self.canonical.id

        if viewer is not None and not can_edit_project(viewer, owner_id, capability):
            print(f"[EDIT] Permission denied: uid={viewer.uid} project_id={project_id}")
            self.last_error = "You do not have permission to edit this project."
            return False

        draft = self.draft
        try:
            payload = draft_to_document(draft)
        except ValueError as e:
            self.last_error = str(e)
            return False

        self.saving = True
        try:
            stored = store.update_record(
                project_path(owner_id, project_id),
                {**payload, "updated_at": SERVER_TIMESTAMP},
            )
        except RecordNotFound:
            print(f"[EDIT] Save failed, project missing: project_id={project_id}")
            self.last_error = "This project no longer exists."
            return False
        except StoreError as e:
            print(f"[EDIT] Save failed: project_id={project_id}: {e}")
            self.last_error = "Failed to save project. Please try again."
            return False
        finally:
            self.saving = False

        # Canonical becomes the draft's contents (plus server-assigned timestamps)
        self.canonical = project_from_document(owner_id, project_id, {
            **payload,
            "created_at": stored.get("created_at", self.canonical.created_at),
            "updated_at": stored.get("updated_at"),
        })
        self.draft = draft_from_project(self.canonical)
        self.mode = EditMode.view
        self.last_error = None
        if IS_DEV:
            print(f"[EDIT] Saved project_id={project_id}, total_effort={self.canonical.total_effort}")
        return True
