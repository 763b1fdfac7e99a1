"""
backend/projects.py

Project records: document <-> model conversion, the editable draft value,
and create / fetch / list / delete operations against the document store.

Drafts keep effort text exactly as typed ("", "0", "2.5") so the form can
distinguish "never entered" from zero. Text is coerced to numbers only when
a draft is turned into a document for writing.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

try:
    from backend.access import SessionCapability, Viewer, can_delete_project, require
    from backend.config import IS_DEV
    from backend.effort import compute_total_effort, parse_effort, total_effort_of
    from backend.models import (
        CONTRIBUTING_DISCIPLINES,
        DATE_FIELDS,
        DISCIPLINES,
        OPTION_FIELDS,
        Category,
        Channel,
        Classification,
        DeploymentType,
        Discipline,
        Project,
        ProjectLinks,
        ProjectStatus,
        Service,
    )
    from backend.store import (
        SERVER_TIMESTAMP,
        DocumentStore,
        RecordNotFound,
        project_path,
        projects_collection,
    )
except ModuleNotFoundError:
    from access import SessionCapability, Viewer, can_delete_project, require
    from config import IS_DEV
    from effort import compute_total_effort, parse_effort, total_effort_of
    from models import (
        CONTRIBUTING_DISCIPLINES,
        DATE_FIELDS,
        DISCIPLINES,
        OPTION_FIELDS,
        Category,
        Channel,
        Classification,
        DeploymentType,
        Discipline,
        Project,
        ProjectLinks,
        ProjectStatus,
        Service,
    )
    from store import (
        SERVER_TIMESTAMP,
        DocumentStore,
        RecordNotFound,
        project_path,
        projects_collection,
    )


TEXT_FIELDS = ("title", "description")
LINK_FIELDS = ("plan_link", "design_link")


# ---------------------------------------------------------
# Value coercion helpers
# ---------------------------------------------------------
def coerce_status(value: Any) -> ProjectStatus:
    """Unknown or missing status falls back to Waiting."""
    if isinstance(value, ProjectStatus):
        return value
    try:
        return ProjectStatus(value)
    except ValueError:
        return ProjectStatus.waiting


def coerce_option(field: str, value: Any):
    """Map "" / None to None; otherwise the enum member for field."""
    if value is None or value == "":
        return None
    enum_cls = OPTION_FIELDS[field]
    if isinstance(value, enum_cls):
        return value
    return enum_cls(value)


def coerce_date(value: Any) -> Optional[date]:
    """Accept a date, an ISO date/datetime string, or empty."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if "T" in text:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    return date.fromisoformat(text)


def clamp_progress(value: Any) -> int:
    """
    Progress as an integer in [0, 100]. Empty input means 0; out-of-range
    values (infinity included) clamp to the nearest bound.

    Raises:
        ValueError: If value is not numeric
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return 0
    number = float(str(value).strip())
    if math.isnan(number):
        raise ValueError(f"Invalid progress value: {value!r}")
    return int(max(0.0, min(100.0, number)))


def _effort_text(effort: Optional[float]) -> str:
    if effort is None:
        return ""
    if float(effort).is_integer():
        return str(int(effort))
    return str(effort)


# ---------------------------------------------------------
# Document -> canonical model
# ---------------------------------------------------------
def _discipline_from_document(raw: Any) -> Discipline:
    raw = raw if isinstance(raw, dict) else {}
    try:
        parsed = parse_effort(raw.get("effort"))
    except ValueError:
        parsed = None
    return Discipline(
        name=raw.get("name") or "",
        effort=float(parsed) if parsed is not None else None,
    )


def project_from_document(owner_id: str, project_id: str, data: Dict[str, Any]) -> Project:
    """
    Normalize a stored document into a Project.

    Missing fields get defaults, unknown option values become None, and
    total_effort is ALWAYS recomputed from the disciplines (never trusted).
    """
    disciplines = {name: _discipline_from_document(data.get(name)) for name in DISCIPLINES}

    options = {}
    for field in OPTION_FIELDS:
        try:
            options[field] = coerce_option(field, data.get(field))
        except ValueError:
            options[field] = None

    dates = {}
    for field in DATE_FIELDS:
        try:
            dates[field] = coerce_date(data.get(field))
        except ValueError:
            dates[field] = None

    try:
        progress = clamp_progress(data.get("progress"))
    except ValueError:
        progress = 0

    links_raw = data.get("links") if isinstance(data.get("links"), dict) else {}

    return Project(
        id=project_id,
        owner_id=owner_id,
        title=data.get("title") or "",
        status=coerce_status(data.get("status")),
        description=data.get("description") or "",
        progress=progress,
        total_effort=compute_total_effort(*(disciplines[n].effort for n in CONTRIBUTING_DISCIPLINES)),
        links=ProjectLinks(
            plan_link=links_raw.get("plan_link") or None,
            design_link=links_raw.get("design_link") or None,
        ),
        created_at=data.get("created_at"),
        updated_at=data.get("updated_at"),
        **options,
        **dates,
        **disciplines,
    )


# ---------------------------------------------------------
# Editable draft
# ---------------------------------------------------------
class DraftDiscipline(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    effort: str = ""  # raw text as typed


class ProjectDraft(BaseModel):
    """
    Immutable editable projection of a project. Every with_* method returns a
    NEW draft; the receiver is never modified.
    """
    model_config = ConfigDict(frozen=True)

    title: str = ""
    status: ProjectStatus = ProjectStatus.waiting
    classification: Optional[Classification] = None
    channel: Optional[Channel] = None
    service: Optional[Service] = None
    category: Optional[Category] = None
    deployment_type: Optional[DeploymentType] = None
    description: str = ""
    request_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    completion_date: Optional[date] = None
    progress: int = 0
    planning: DraftDiscipline = Field(default_factory=DraftDiscipline)
    design: DraftDiscipline = Field(default_factory=DraftDiscipline)
    publishing: DraftDiscipline = Field(default_factory=DraftDiscipline)
    development: DraftDiscipline = Field(default_factory=DraftDiscipline)
    total_effort: Optional[float] = None
    links: ProjectLinks = Field(default_factory=ProjectLinks)

    def with_field(self, field: str, value: Any) -> "ProjectDraft":
        """Replace a top-level scalar field (title, description, status, options)."""
        if field in TEXT_FIELDS:
            return self.model_copy(update={field: "" if value is None else str(value)})
        if field == "status":
            return self.model_copy(update={"status": ProjectStatus(value)})
        if field in OPTION_FIELDS:
            return self.model_copy(update={field: coerce_option(field, value)})
        if field in DATE_FIELDS:
            return self.with_date(field, value)
        if field == "progress":
            return self.with_progress(value)
        raise KeyError(f"Unknown project field: {field}")

    def with_date(self, field: str, value: Any) -> "ProjectDraft":
        if field not in DATE_FIELDS:
            raise KeyError(f"Unknown date field: {field}")
        return self.model_copy(update={field: coerce_date(value)})

    def with_progress(self, value: Any) -> "ProjectDraft":
        return self.model_copy(update={"progress": clamp_progress(value)})

    def with_discipline(
        self,
        discipline: str,
        name: Optional[str] = None,
        effort: Optional[str] = None,
    ) -> "ProjectDraft":
        """
        Replace the name and/or raw effort text of one discipline, keeping its
        other leaf. Total effort is recomputed on every effort change.
        """
        if discipline not in DISCIPLINES:
            raise KeyError(f"Unknown discipline: {discipline}")
        current: DraftDiscipline = getattr(self, discipline)
        leaf_update = {}
        if name is not None:
            leaf_update["name"] = name
        if effort is not None:
            leaf_update["effort"] = str(effort)
        updated = self.model_copy(update={discipline: current.model_copy(update=leaf_update)})
        if effort is not None:
            updated = updated.model_copy(update={"total_effort": draft_total_effort(updated)})
        return updated

    def with_link(self, field: str, value: Optional[str]) -> "ProjectDraft":
        if field not in LINK_FIELDS:
            raise KeyError(f"Unknown link field: {field}")
        return self.model_copy(
            update={"links": self.links.model_copy(update={field: (value or None)})}
        )


def draft_total_effort(draft: ProjectDraft) -> Optional[float]:
    return total_effort_of(draft)


def new_project_draft() -> ProjectDraft:
    """Blank creation form; new projects start In Progress."""
    return ProjectDraft(status=ProjectStatus.in_progress)


def draft_from_project(project: Project) -> ProjectDraft:
    """Structural copy of a canonical record into an editable draft."""
    return ProjectDraft(
        title=project.title,
        status=project.status,
        description=project.description,
        progress=project.progress,
        total_effort=project.total_effort,
        links=ProjectLinks(plan_link=project.links.plan_link, design_link=project.links.design_link),
        **{field: getattr(project, field) for field in OPTION_FIELDS},
        **{field: getattr(project, field) for field in DATE_FIELDS},
        **{
            name: DraftDiscipline(
                name=getattr(project, name).name,
                effort=_effort_text(getattr(project, name).effort),
            )
            for name in DISCIPLINES
        },
    )


def draft_to_document(draft: ProjectDraft) -> Dict[str, Any]:
    """
    Coerce a draft into a storable document: effort text -> float or None,
    options -> enum values, dates -> ISO strings, total effort recomputed.

    Raises:
        ValueError: If any effort text is not a number
    """
    doc: Dict[str, Any] = {
        "title": draft.title,
        "status": draft.status.value,
        "description": draft.description,
        "progress": clamp_progress(draft.progress),
    }
    for field in OPTION_FIELDS:
        value = getattr(draft, field)
        doc[field] = value.value if value is not None else None
    for field in DATE_FIELDS:
        value = getattr(draft, field)
        doc[field] = value.isoformat() if value is not None else None
    for name in DISCIPLINES:
        leaf: DraftDiscipline = getattr(draft, name)
        try:
            parsed = parse_effort(leaf.effort)
        except ValueError:
            raise ValueError(f"Invalid {name} effort: {leaf.effort!r}")
        doc[name] = {"name": leaf.name, "effort": float(parsed) if parsed is not None else None}
    doc["total_effort"] = draft_total_effort(draft)
    doc["links"] = {
        "plan_link": draft.links.plan_link,
        "design_link": draft.links.design_link,
    }
    return doc


# ---------------------------------------------------------
# Store operations
# ---------------------------------------------------------
def create_project(store: DocumentStore, viewer: Viewer, draft: ProjectDraft) -> Project:
    """
    Create a project owned by the viewer.

    Raises:
        ValueError: Blank title or invalid effort text
        StoreError: On write failure
    """
    if not draft.title.strip():
        raise ValueError("title must not be empty")

    data = draft_to_document(draft)
    data["created_at"] = SERVER_TIMESTAMP
    data["updated_at"] = SERVER_TIMESTAMP

    project_id = store.add_record(projects_collection(viewer.uid), data)
    stored = store.get_record(project_path(viewer.uid, project_id)) or {}
    if IS_DEV:
        print(f"[PROJECTS] Created project_id={project_id}, owner_id={viewer.uid}")
    return project_from_document(viewer.uid, project_id, stored)


def fetch_project(store: DocumentStore, owner_id: str, project_id: str) -> Project:
    """
    Raises:
        RecordNotFound: If the project does not exist
        StoreError: On read failure
    """
    data = store.get_record(project_path(owner_id, project_id))
    if data is None:
        raise RecordNotFound(project_path(owner_id, project_id))
    return project_from_document(owner_id, project_id, data)


def list_projects(store: DocumentStore, owner_id: str) -> List[Project]:
    """Owner's projects, newest first."""
    docs = store.query_ordered(projects_collection(owner_id), "created_at", "desc")
    return [project_from_document(owner_id, doc["id"], doc) for doc in docs]


def delete_project(
    store: DocumentStore,
    viewer: Viewer,
    capability: SessionCapability,
    owner_id: str,
    project_id: str,
) -> None:
    """
    Delete a project and its comments (owner or admin only).

    Raises:
        PermissionDenied: Viewer is neither owner nor admin
        RecordNotFound: Project does not exist
        StoreError: On write failure
    """
    require(can_delete_project(viewer, owner_id, capability), "delete project")
    existed = store.delete_record(project_path(owner_id, project_id), recursive=True)
    if not existed:
        raise RecordNotFound(project_path(owner_id, project_id))
    if IS_DEV:
        print(f"[PROJECTS] Deleted project_id={project_id}, owner_id={owner_id}, by uid={viewer.uid}")


__all__ = [
    "DraftDiscipline",
    "ProjectDraft",
    "clamp_progress",
    "create_project",
    "delete_project",
    "draft_from_project",
    "draft_to_document",
    "draft_total_effort",
    "fetch_project",
    "list_projects",
    "new_project_draft",
    "project_from_document",
]
