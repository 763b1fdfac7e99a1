"""
backend/test_session.py

Tests for the project detail session (concurrent loads, view states,
scroll request, edit/delete flow, subscription teardown).

Run:
    pytest backend/test_session.py -v
"""

from unittest.mock import patch

import pytest

from backend import session as session_module
from backend.access import Viewer
from backend.projects import create_project, fetch_project, new_project_draft
from backend.session import ProjectDetailSession, ViewState
from backend.store import DocumentStore, RecordNotFound, StoreError, comments_collection

OWNER = Viewer("owner", "owner@example.com")
ADMIN = Viewer("boss", "boss@example.com")
STRANGER = Viewer("stranger", "stranger@example.com")


@pytest.fixture
def store():
    s = DocumentStore("sqlite://")
    s.set_record("users/boss", {"role": "admin", "email": "boss@example.com"})
    s.set_record("users/owner", {"role": "member", "email": "owner@example.com"})
    return s


@pytest.fixture
def project(store):
    return create_project(store, OWNER, new_project_draft().with_field("title", "Landing page"))


class TestOpen:
    def test_loaded_with_comments_and_capability(self, store, project):
        store.add_record(comments_collection("owner", project.id), {"content": "hi", "author_id": "owner"})

        with ProjectDetailSession(store, ADMIN, "owner", project.id) as s:
            assert s.state == ViewState.loaded
            assert s.buffer.canonical.title == "Landing page"
            assert s.capability.is_admin
            assert s.comments.capability.is_admin
            assert [c.content for c in s.comments.comments] == ["hi"]
            assert s.comments.is_subscribed

        assert s.closed
        assert not s.comments.is_subscribed

    def test_not_found(self, store):
        s = ProjectDetailSession(store, OWNER, "owner", "missing").open()
        assert s.state == ViewState.not_found
        assert s.buffer is None
        s.close()

    def test_fetch_error_state(self, store, project):
        with patch.object(session_module, "fetch_project", side_effect=StoreError("down")):
            s = ProjectDetailSession(store, OWNER, "owner", project.id).open()
        assert s.state == ViewState.error
        assert s.error
        # Other loads are independent of the project fetch
        assert s.comments.is_subscribed
        s.close()

    def test_role_lookup_failure_means_not_admin(self, store, project):
        with patch.object(session_module, "load_session_capability",
                          wraps=session_module.load_session_capability) as spy:
            with patch.object(store, "get_record", side_effect=StoreError("down")):
                s = ProjectDetailSession(store, ADMIN, "owner", project.id).open()
        assert spy.call_count == 1
        assert not s.capability.is_admin
        s.close()


class TestScrollRequest:
    def test_scroll_consumed_once(self, store, project):
        with ProjectDetailSession(store, OWNER, "owner", project.id, {"scrollTo": "comments"}) as s:
            assert s.consume_scroll_request() is True
            assert s.consume_scroll_request() is False
            s.refresh()
            assert s.consume_scroll_request() is False

    def test_no_scroll_without_param(self, store, project):
        with ProjectDetailSession(store, OWNER, "owner", project.id, {"scrollTo": "top"}) as s:
            assert s.consume_scroll_request() is False

    def test_no_scroll_when_not_loaded(self, store):
        with ProjectDetailSession(store, OWNER, "owner", "missing", {"scrollTo": "comments"}) as s:
            assert s.consume_scroll_request() is False


class TestEditFlow:
    def test_owner_edits_and_saves(self, store, project):
        with ProjectDetailSession(store, OWNER, "owner", project.id) as s:
            assert s.begin_edit()
            s.buffer.set_field("title", "Landing page v2")
            assert s.save() is True
            assert not s.is_editing
            assert s.alert is None
        assert fetch_project(store, "owner", project.id).title == "Landing page v2"

    def test_stranger_cannot_edit(self, store, project):
        with ProjectDetailSession(store, STRANGER, "owner", project.id) as s:
            assert not s.can_edit
            assert not s.can_delete
            assert s.begin_edit() is False
            assert not s.is_editing

    def test_admin_can_edit_and_acknowledge(self, store, project):
        with ProjectDetailSession(store, ADMIN, "owner", project.id) as s:
            assert s.can_edit
            assert s.can_acknowledge
            assert s.begin_edit()

    def test_failed_save_sets_alert(self, store, project):
        with ProjectDetailSession(store, OWNER, "owner", project.id) as s:
            s.begin_edit()
            s.buffer.set_field("title", "Draft")
            with patch.object(store, "update_record", side_effect=StoreError("down")):
                assert s.save() is False
            assert s.alert
            assert s.is_editing
            assert s.buffer.draft.title == "Draft"

    def test_cancel_edit(self, store, project):
        with ProjectDetailSession(store, OWNER, "owner", project.id) as s:
            s.begin_edit()
            s.buffer.set_field("title", "Draft")
            s.cancel_edit()
            assert not s.is_editing
            assert s.buffer.canonical.title == "Landing page"

    def test_refresh_keeps_draft(self, store, project):
        with ProjectDetailSession(store, OWNER, "owner", project.id) as s:
            s.begin_edit()
            s.buffer.set_field("title", "Draft")
            store.update_record(f"projects/owner/userProjects/{project.id}", {"title": "Remote"})
            assert s.refresh()
            assert s.buffer.canonical.title == "Remote"
            assert s.buffer.draft.title == "Draft"


class TestDelete:
    def test_owner_deletes(self, store, project):
        s = ProjectDetailSession(store, OWNER, "owner", project.id).open()
        assert s.delete_project(lambda: True) is True
        assert s.closed
        assert s.state == ViewState.not_found
        with pytest.raises(RecordNotFound):
            fetch_project(store, "owner", project.id)

    def test_declined(self, store, project):
        with ProjectDetailSession(store, OWNER, "owner", project.id) as s:
            assert s.delete_project(lambda: False) is False
        fetch_project(store, "owner", project.id)

    def test_stranger_delete_is_noop(self, store, project):
        with ProjectDetailSession(store, STRANGER, "owner", project.id) as s:
            assert s.delete_project(lambda: True) is False
            assert s.state == ViewState.loaded
        fetch_project(store, "owner", project.id)


class TestRebind:
    def test_rebind_moves_subscription(self, store, project):
        other = create_project(store, OWNER, new_project_draft().with_field("title", "Other"))
        old_coll = comments_collection("owner", project.id)
        new_coll = comments_collection("owner", other.id)

        with patch.object(session_module, "load_session_capability",
                          wraps=session_module.load_session_capability) as spy:
            s = ProjectDetailSession(store, ADMIN, "owner", project.id).open()
            assert store.subscriber_count(old_coll) == 1

            s.rebind("owner", other.id)
            assert store.subscriber_count(old_coll) == 0
            assert store.subscriber_count(new_coll) == 1
            assert s.buffer.canonical.title == "Other"
            assert s.comments.capability.is_admin
            s.close()

        assert spy.call_count == 1
        assert store.subscriber_count(new_coll) == 0

    def test_unconsumed_scroll_request_does_not_carry_over(self, store, project):
        s = ProjectDetailSession(store, OWNER, "owner", "missing", {"scrollTo": "comments"}).open()
        assert s.state == ViewState.not_found

        s.rebind("owner", project.id)
        assert s.state == ViewState.loaded
        assert s.consume_scroll_request() is False
        s.close()
