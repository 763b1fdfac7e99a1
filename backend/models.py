from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import date
from enum import Enum

# Enums
class ProjectStatus(str, Enum):
    waiting = "Waiting"
    in_progress = "InProgress"
    closed = "Closed"

class Classification(str, Enum):
    web_mw = "WEB+MW"

class Channel(str, Enum):
    tf_team = "TF Team"
    tf_team_dev = "TF Team Dev"

class Service(str, Enum):
    customer_support = "Customer Support"
    main_page = "Main Page"
    industry = "Industry"
    products_services = "Products/Services"
    insights = "Insights"

class Category(str, Enum):
    content_registration = "Content Registration"
    content_update = "Content Update"

class DeploymentType(str, Enum):
    cms_registration = "CMS Registration"
    scheduled_release = "Scheduled Release"

class UserRole(str, Enum):
    admin = "admin"
    member = "member"

# Disciplines in display order; development is tracked but not aggregated
DISCIPLINES = ("planning", "design", "publishing", "development")
CONTRIBUTING_DISCIPLINES = ("planning", "design", "publishing")

# Optional select fields and the enumeration each one draws from
OPTION_FIELDS = {
    "classification": Classification,
    "channel": Channel,
    "service": Service,
    "category": Category,
    "deployment_type": DeploymentType,
}

DATE_FIELDS = ("request_date", "start_date", "end_date", "completion_date")

# Models
class Discipline(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    effort: Optional[float] = None  # None = not estimated

class ProjectLinks(BaseModel):
    model_config = ConfigDict(frozen=True)

    plan_link: Optional[str] = None
    design_link: Optional[str] = None

class Project(BaseModel):
    """Canonical, store-backed project record."""
    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
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
    progress: int = Field(0, ge=0, le=100)
    planning: Discipline = Field(default_factory=Discipline)
    design: Discipline = Field(default_factory=Discipline)
    publishing: Discipline = Field(default_factory=Discipline)
    development: Discipline = Field(default_factory=Discipline)
    total_effort: Optional[float] = None
    links: ProjectLinks = Field(default_factory=ProjectLinks)
    created_at: Optional[str] = None  # server timestamp
    updated_at: Optional[str] = None  # server timestamp

class Comment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    author_id: str
    author_email: str = ""
    created_at: Optional[str] = None  # None until the server timestamp resolves
    admin_check: bool = False  # True once an admin has seen it
    project_owner_id: str = ""
    project_id: str = ""
