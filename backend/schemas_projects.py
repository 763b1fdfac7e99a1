"""
backend/schemas_projects.py

Pydantic request/response schemas for the project and comment endpoints.
Effort values arrive as raw text (or numbers) exactly like the edit form
holds them; they are coerced when the draft is converted to a document.
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator

try:
    from backend.models import (
        Category,
        Channel,
        Classification,
        Comment,
        DeploymentType,
        Project,
        ProjectStatus,
        Service,
    )
    from backend.projects import DraftDiscipline, ProjectDraft, clamp_progress, draft_total_effort
except ModuleNotFoundError:
    from models import (
        Category,
        Channel,
        Classification,
        Comment,
        DeploymentType,
        Project,
        ProjectStatus,
        Service,
    )
    from projects import DraftDiscipline, ProjectDraft, clamp_progress, draft_total_effort


# ========================================================================
# PROJECT SCHEMAS
# ========================================================================

class DisciplineInput(BaseModel):
    name: str = Field("", max_length=100, description="Assignee name")
    effort: Optional[Union[str, float]] = Field(None, description="Effort as typed; empty/null = not estimated")

    def to_draft(self) -> DraftDiscipline:
        return DraftDiscipline(name=self.name, effort="" if self.effort is None else str(self.effort))


class LinksInput(BaseModel):
    plan_link: Optional[str] = Field(None, max_length=2000)
    design_link: Optional[str] = Field(None, max_length=2000)


class ProjectWriteRequest(BaseModel):
    """Request schema for creating a project or saving an edit draft.

    - title is required and trimmed
    - option fields accept "" as unset
    - progress is clamped to [0, 100]
    """
    title: str = Field(..., min_length=1, max_length=200)
    status: ProjectStatus = ProjectStatus.in_progress
    classification: Optional[Classification] = None
    channel: Optional[Channel] = None
    service: Optional[Service] = None
    category: Optional[Category] = None
    deployment_type: Optional[DeploymentType] = None
    description: str = Field("", max_length=20000)
    request_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    completion_date: Optional[date] = None
    progress: int = 0
    planning: DisciplineInput = Field(default_factory=DisciplineInput)
    design: DisciplineInput = Field(default_factory=DisciplineInput)
    publishing: DisciplineInput = Field(default_factory=DisciplineInput)
    development: DisciplineInput = Field(default_factory=DisciplineInput)
    links: LinksInput = Field(default_factory=LinksInput)

    @field_validator("title", mode="before")
    @classmethod
    def trim_title(cls, v):
        """Trim whitespace from title."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator(
        "classification", "channel", "service", "category", "deployment_type",
        "request_date", "start_date", "end_date", "completion_date",
        mode="before",
    )
    @classmethod
    def empty_is_unset(cls, v):
        if v == "":
            return None
        return v

    @field_validator("progress", mode="before")
    @classmethod
    def clamp(cls, v):
        return clamp_progress(v)

    def to_draft(self) -> ProjectDraft:
        draft = ProjectDraft(
            title=self.title,
            status=self.status,
            classification=self.classification,
            channel=self.channel,
            service=self.service,
            category=self.category,
            deployment_type=self.deployment_type,
            description=self.description,
            request_date=self.request_date,
            start_date=self.start_date,
            end_date=self.end_date,
            completion_date=self.completion_date,
            progress=self.progress,
            planning=self.planning.to_draft(),
            design=self.design.to_draft(),
            publishing=self.publishing.to_draft(),
            development=self.development.to_draft(),
        )
        draft = draft.with_link("plan_link", self.links.plan_link)
        draft = draft.with_link("design_link", self.links.design_link)
        return draft.model_copy(update={"total_effort": draft_total_effort(draft)})


class ProjectListResponse(BaseModel):
    items: List[Project] = Field(default_factory=list)
    total: int = 0


# ========================================================================
# COMMENT SCHEMAS
# ========================================================================

class CommentCreateRequest(BaseModel):
    content: str = Field(..., max_length=5000)

    @field_validator("content")
    @classmethod
    def validate_content_non_blank(cls, v):
        """Whitespace-only comments are rejected."""
        if not v or not v.strip():
            raise ValueError("content must not be empty")
        return v


class CommentListResponse(BaseModel):
    items: List[Comment] = Field(default_factory=list)
    unread: int = Field(0, description="Comments not yet acknowledged by an admin")
