"""
backend/access.py

Access policy for project and comment mutations.

Two independent predicates gate every mutating affordance:
- is_owner_or_author: viewer identity matches the entity's owner/author id
- is_admin: session capability, looked up ONCE per session from users/{uid}.role

The capability is an immutable value passed explicitly to the components
that need it; nothing here mutates state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

try:
    from backend.config import ADMIN_ROLE, IS_DEV
    from backend.store import DocumentStore, StoreError, user_path
except ModuleNotFoundError:
    from config import ADMIN_ROLE, IS_DEV
    from store import DocumentStore, StoreError, user_path


class PermissionDenied(Exception):
    """Raised when the viewer is neither owner/author nor admin for an action."""
    pass


@dataclass(frozen=True)
class Viewer:
    """Authenticated viewer identity. uid is the stable identifier; email is display only."""
    uid: str
    email: str = ""


@dataclass(frozen=True)
class SessionCapability:
    """Admin capability computed once at session start."""
    is_admin: bool = False
    role: Optional[str] = None


NO_CAPABILITY = SessionCapability()


def load_session_capability(store: DocumentStore, viewer: Optional[Viewer]) -> SessionCapability:
    """
    Single lookup of the viewer's role attribute.

    A missing user record, a non-admin role, or a failed lookup all yield a
    non-admin capability (the failure is logged, never raised).
    """
    if viewer is None or not viewer.uid:
        return NO_CAPABILITY

    try:
        record = store.get_record(user_path(viewer.uid))
    except StoreError as e:
        print(f"[ACCESS] Role lookup failed for uid={viewer.uid}: {e}")
        return NO_CAPABILITY

    role = (record or {}).get("role")
    capability = SessionCapability(is_admin=(role == ADMIN_ROLE), role=role)
    if IS_DEV:
        print(f"[ACCESS] Session capability: uid={viewer.uid}, role={role}, is_admin={capability.is_admin}")
    return capability


def is_owner_or_author(viewer: Optional[Viewer], subject_id: Optional[str]) -> bool:
    """Identity comparison by stable id (never by email/display name)."""
    if viewer is None or not viewer.uid or not subject_id:
        return False
    return str(viewer.uid) == str(subject_id)


def is_admin(capability: Optional[SessionCapability]) -> bool:
    return bool(capability is not None and capability.is_admin)


def can_edit_project(viewer: Optional[Viewer], owner_id: str, capability: Optional[SessionCapability]) -> bool:
    return is_owner_or_author(viewer, owner_id) or is_admin(capability)


def can_delete_project(viewer: Optional[Viewer], owner_id: str, capability: Optional[SessionCapability]) -> bool:
    return is_owner_or_author(viewer, owner_id) or is_admin(capability)


def can_delete_comment(viewer: Optional[Viewer], author_id: str, capability: Optional[SessionCapability]) -> bool:
    # Dual capability: the author or any admin, independently
    return is_owner_or_author(viewer, author_id) or is_admin(capability)


def can_acknowledge(capability: Optional[SessionCapability]) -> bool:
    return is_admin(capability)


def require(allowed: bool, action: str) -> None:
    """Raise PermissionDenied unless allowed."""
    if not allowed:
        raise PermissionDenied(f"Not allowed to {action}")
