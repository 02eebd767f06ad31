"""Pydantic schemas for request/response validation."""
import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from .models import (
    UserRole,
    TeamRole,
    ProjectStatus,
    WorkItemType,
    WorkItemStatus,
    WorkItemPriority,
)

PROJECT_KEY_PATTERN = re.compile(r"^[A-Z][A-Z0-9]{1,9}$")


def _normalize_project_key(value: str) -> str:
    value = value.strip().upper()
    if not PROJECT_KEY_PATTERN.match(value):
        raise ValueError("key must be 2-10 uppercase letters or digits, starting with a letter")
    return value


# User Schemas

class UserCreate(BaseModel):
    """Schema for creating a user."""

    username: str = Field(..., min_length=1, max_length=50)
    email: str = Field(..., min_length=3, max_length=100, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    full_name: str = Field(..., min_length=1, max_length=100)
    avatar_url: Optional[str] = Field(None, max_length=255)
    role: UserRole = UserRole.USER
    is_active: bool = True


class UserResponse(BaseModel):
    """Schema for user response."""

    id: int
    username: str
    email: str
    full_name: str
    avatar_url: Optional[str] = None
    role: UserRole
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Team Schemas

class TeamCreate(BaseModel):
    """Schema for creating a team."""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class TeamResponse(BaseModel):
    """Schema for team response."""

    id: int
    name: str
    description: Optional[str] = None
    created_by: Optional[int] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TeamMemberCreate(BaseModel):
    """Schema for adding a member to a team."""

    user_id: int
    role: TeamRole = TeamRole.MEMBER


class TeamMemberResponse(BaseModel):
    """Schema for team member response."""

    id: int
    team_id: int
    user_id: int
    role: TeamRole
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Project Schemas

class ProjectCreate(BaseModel):
    """Schema for creating a project.

    The key is 2-10 uppercase letters or digits starting with a letter
    (e.g. "PROJ", "WEB2"). Lowercase input is normalized.
    """

    key: str = Field(..., min_length=2, max_length=10)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    team_id: Optional[int] = None
    start_date: Optional[datetime] = None
    target_date: Optional[datetime] = None

    @field_validator("key")
    @classmethod
    def validate_key(cls, value: str) -> str:
        return _normalize_project_key(value)


class ProjectUpdate(BaseModel):
    """Schema for updating a project. Absent fields are left unchanged."""

    key: Optional[str] = Field(None, min_length=2, max_length=10)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    team_id: Optional[int] = None
    start_date: Optional[datetime] = None
    target_date: Optional[datetime] = None

    @field_validator("key")
    @classmethod
    def validate_key(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _normalize_project_key(value)


class ProjectResponse(BaseModel):
    """Schema for project response."""

    id: int
    key: str
    name: str
    description: Optional[str] = None
    status: ProjectStatus
    created_by: Optional[int] = None
    team_id: Optional[int] = None
    start_date: Optional[datetime] = None
    target_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProjectListResponse(BaseModel):
    """Schema for paginated project list."""

    items: list[ProjectResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# Work Item Schemas

class WorkItemCreate(BaseModel):
    """Schema for creating a work item.

    external_id is optional: when omitted the next ``{project key}-{n}``
    identifier is allocated. reporter_id defaults to the acting user.
    """

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    type: WorkItemType
    status: WorkItemStatus = WorkItemStatus.TODO
    priority: WorkItemPriority = WorkItemPriority.MEDIUM
    project_id: int
    parent_id: Optional[int] = None
    assignee_id: Optional[int] = None
    reporter_id: Optional[int] = None
    estimate: Optional[float] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    external_id: Optional[str] = Field(None, min_length=1, max_length=20)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value


class WorkItemUpdate(BaseModel):
    """Schema for updating a work item.

    Partial document: fields that are absent stay unchanged, fields sent as
    null are cleared. title, type, status and priority cannot be cleared.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    type: Optional[WorkItemType] = None
    status: Optional[WorkItemStatus] = None
    priority: Optional[WorkItemPriority] = None
    parent_id: Optional[int] = None
    assignee_id: Optional[int] = None
    reporter_id: Optional[int] = None
    estimate: Optional[float] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @model_validator(mode="after")
    def required_fields_not_cleared(self):
        for name in ("title", "type", "status", "priority"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self


class WorkItemMove(BaseModel):
    """Schema for re-parenting a work item. A null parent_id makes it a root."""

    parent_id: Optional[int] = None


class WorkItemResponse(BaseModel):
    """Schema for work item response."""

    id: int
    external_id: str
    title: str
    description: Optional[str] = None
    type: WorkItemType
    status: WorkItemStatus
    priority: WorkItemPriority
    project_id: int
    parent_id: Optional[int] = None
    assignee_id: Optional[int] = None
    reporter_id: Optional[int] = None
    estimate: Optional[float] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WorkItemListResponse(BaseModel):
    """Schema for paginated work item list."""

    items: list[WorkItemResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class WorkItemHistoryResponse(BaseModel):
    """Schema for work item history entries."""

    id: int
    work_item_id: int
    user_id: int
    field: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Comment & Attachment Schemas

class CommentCreate(BaseModel):
    """Schema for adding a comment."""

    content: str = Field(..., min_length=1)


class CommentResponse(BaseModel):
    """Schema for comment response."""

    id: int
    work_item_id: int
    user_id: int
    content: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AttachmentCreate(BaseModel):
    """Schema for attachment metadata. The file itself lives in external storage."""

    file_name: str = Field(..., min_length=1, max_length=255)
    file_size: int = Field(..., ge=0)
    file_type: str = Field(..., min_length=1, max_length=100)
    file_path: str = Field(..., min_length=1, max_length=255)


class AttachmentResponse(BaseModel):
    """Schema for attachment response."""

    id: int
    work_item_id: int
    user_id: int
    file_name: str
    file_size: int
    file_type: str
    file_path: str
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WorkItemDetailResponse(WorkItemResponse):
    """Work item with optional expansions. Unrequested expansions are null."""

    children: Optional[list[WorkItemResponse]] = None
    history: Optional[list[WorkItemHistoryResponse]] = None
    comments: Optional[list[CommentResponse]] = None
    attachments: Optional[list[AttachmentResponse]] = None
