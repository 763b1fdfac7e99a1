"""
backend/test_edit_buffer.py

Tests for the view/edit projection of a project.

Tests:
1. Draft isolation from the canonical record
2. Cancel restores from the CURRENT canonical record
3. Save writes once, exits edit mode, refreshes canonical
4. Failed save keeps edit mode and draft
5. Permission check on save

Run:
    pytest backend/test_edit_buffer.py -v
"""

from unittest.mock import patch

import pytest

from backend.access import SessionCapability, Viewer
from backend.edit_buffer import EditBuffer, EditMode, NotEditing
from backend.models import ProjectStatus
from backend.projects import create_project, fetch_project, new_project_draft
from backend.store import DocumentStore, StoreError, project_path

OWNER = Viewer("owner", "owner@example.com")
OTHER = Viewer("other", "other@example.com")
MEMBER = SessionCapability(is_admin=False, role="member")
ADMIN = SessionCapability(is_admin=True, role="admin")


@pytest.fixture
def store():
    return DocumentStore("sqlite://")


@pytest.fixture
def project(store):
    draft = (
        new_project_draft()
        .with_field("title", "Campaign page")
        .with_discipline("planning", name="Kim", effort="1")
        .with_discipline("design", name="Park", effort="2")
    )
    return create_project(store, OWNER, draft)


class TestEditMode:
    def test_starts_in_view_mode(self, project):
        buf = EditBuffer(project)
        assert buf.mode == EditMode.view
        assert not buf.is_editing

    def test_mutations_require_edit_mode(self, project):
        buf = EditBuffer(project)
        with pytest.raises(NotEditing):
            buf.set_field("title", "x")

    def test_draft_is_isolated_from_canonical(self, project):
        buf = EditBuffer(project)
        buf.begin_edit()
        buf.set_field("title", "Changed")
        buf.set_discipline("planning", effort="5")

        assert buf.canonical.title == "Campaign page"
        assert buf.canonical.planning.effort == 1.0
        assert buf.draft.title == "Changed"
        assert buf.total_effort == 7.0

    def test_cancel_leaves_canonical_unchanged(self, project):
        buf = EditBuffer(project)
        buf.begin_edit()
        buf.set_field("title", "Changed")
        buf.cancel()

        assert buf.mode == EditMode.view
        assert buf.canonical == project
        assert buf.draft.title == "Campaign page"

    def test_cancel_is_idempotent(self, project):
        buf = EditBuffer(project)
        buf.begin_edit()
        buf.cancel()
        first = buf.draft
        buf.cancel()
        assert buf.draft == first
        assert buf.mode == EditMode.view

    def test_cancel_uses_current_canonical(self, store, project):
        buf = EditBuffer(project)
        buf.begin_edit()
        buf.set_field("title", "Local edit")

        store.update_record(project_path("owner", project.id), {"title": "Remote edit"})
        buf.apply_remote(fetch_project(store, "owner", project.id))
        assert buf.draft.title == "Local edit"

        buf.cancel()
        assert buf.draft.title == "Remote edit"

    def test_progress_clamps_immediately(self, project):
        buf = EditBuffer(project)
        buf.begin_edit()
        assert buf.set_progress("140").progress == 100
        assert buf.set_progress("-3").progress == 0
        assert buf.set_progress("1e999").progress == 100


class TestSave:
    def test_save_writes_draft(self, store, project):
        buf = EditBuffer(project)
        buf.begin_edit()
        buf.set_field("status", ProjectStatus.closed)
        buf.set_discipline("publishing", effort="0.5")

        assert buf.save(store, OWNER, MEMBER) is True
        assert buf.mode == EditMode.view
        assert buf.canonical.status == ProjectStatus.closed
        assert buf.canonical.total_effort == 3.5
        assert buf.canonical.updated_at is not None

        stored = fetch_project(store, "owner", project.id)
        assert stored.status == ProjectStatus.closed
        assert stored.total_effort == 3.5
        assert stored.created_at == project.created_at

    def test_save_is_single_update_call(self, store, project):
        buf = EditBuffer(project)
        buf.begin_edit()
        buf.set_field("title", "New")
        with patch.object(store, "update_record", wraps=store.update_record) as spy:
            assert buf.save(store)
        assert spy.call_count == 1
        payload = spy.call_args[0][1]
        assert "updated_at" in payload
        assert payload["title"] == "New"

    def test_failed_save_keeps_edit_mode_and_draft(self, store, project):
        buf = EditBuffer(project)
        buf.begin_edit()
        buf.set_field("title", "Unsaved work")

        with patch.object(store, "update_record", side_effect=StoreError("down")):
            assert buf.save(store) is False

        assert buf.mode == EditMode.edit
        assert buf.draft.title == "Unsaved work"
        assert buf.canonical == project
        assert buf.last_error
        assert buf.saving is False

    def test_invalid_effort_keeps_edit_mode(self, store, project):
        buf = EditBuffer(project)
        buf.begin_edit()
        buf.set_discipline("design", effort="abc")
        assert buf.total_effort is None

        assert buf.save(store) is False
        assert buf.is_editing
        assert "design" in buf.last_error

    def test_non_owner_cannot_save(self, store, project):
        buf = EditBuffer(project)
        buf.begin_edit()
        buf.set_field("title", "Hijack")
        assert buf.save(store, OTHER, MEMBER) is False
        assert fetch_project(store, "owner", project.id).title == "Campaign page"

    def test_admin_can_save(self, store, project):
        buf = EditBuffer(project)
        buf.begin_edit()
        buf.set_field("title", "Admin fix")
        assert buf.save(store, OTHER, ADMIN) is True
        assert fetch_project(store, "owner", project.id).title == "Admin fix"

    def test_save_deleted_project(self, store, project):
        buf = EditBuffer(project)
        buf.begin_edit()
        store.delete_record(project_path("owner", project.id))
        assert buf.save(store) is False
        assert buf.is_editing
