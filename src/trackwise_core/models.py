"""SQLAlchemy database models."""
from datetime import datetime
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Numeric,
    DateTime,
    Boolean,
    ForeignKey,
    Enum,
    CheckConstraint,
    UniqueConstraint,
    Index,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()


def _enum_column(enum_class):
    """Enum column storing the enum's values rather than member names."""
    return Enum(enum_class, values_callable=lambda x: [e.value for e in x])


class UserRole(str, enum.Enum):
    """System-wide user role."""

    ADMIN = "ADMIN"
    SCRUM_MASTER = "SCRUM_MASTER"
    USER = "USER"


class TeamRole(str, enum.Enum):
    """Team member role."""

    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


class ProjectStatus(str, enum.Enum):
    """Project status enum."""

    PLANNING = "PLANNING"
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"
    COMPLETED = "COMPLETED"


# =============================================================================
# Work Item Enums
# =============================================================================


class WorkItemType(str, enum.Enum):
    """Work Item type enum.

    Decomposition: EPIC -> FEATURE -> STORY -> TASK | BUG
    """

    EPIC = "EPIC"
    FEATURE = "FEATURE"
    STORY = "STORY"
    TASK = "TASK"
    BUG = "BUG"


class WorkItemStatus(str, enum.Enum):
    """Work Item status enum."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class WorkItemPriority(str, enum.Enum):
    """Work Item priority enum."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class User(Base):
    """
    User model.

    Users are referenced (never owned) by teams, projects and work items.
    Authentication credentials are held by an upstream identity service.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(100), unique=True, nullable=False, index=True)
    full_name = Column(String(100), nullable=False)
    avatar_url = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    role = Column(_enum_column(UserRole), nullable=False, default=UserRole.USER)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<User {self.username}>"


class Team(Base):
    """Team model."""

    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    creator = relationship("User")
    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Team {self.name}>"


class TeamMember(Base):
    """Team membership (junction between teams and users)."""

    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(_enum_column(TeamRole), nullable=False, default=TeamRole.MEMBER)
    joined_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    team = relationship("Team", back_populates="members")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="unique_team_user"),
    )

    def __repr__(self) -> str:
        return f"<TeamMember team={self.team_id} user={self.user_id} role={self.role.value}>"


class Project(Base):
    """
    Project model.

    The project key (e.g. PROJ) is globally unique and namespaces the
    external identifiers of every work item in the project.
    """

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(10), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    status = Column(_enum_column(ProjectStatus), nullable=False, default=ProjectStatus.ACTIVE, index=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True)
    start_date = Column(DateTime, nullable=True)
    target_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    creator = relationship("User")
    team = relationship("Team")
    sequence = relationship("ProjectSequence", uselist=False, cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Project {self.key}: {self.name}>"


class ProjectSequence(Base):
    """
    Tracks the next external identifier number for a project.

    Advanced with a single atomic UPDATE ... RETURNING so that concurrent
    work item creation in the same project never draws the same number.
    """

    __tablename__ = "project_sequences"

    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True)
    next_number = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("next_number > 0", name="chk_next_number_positive"),
    )

    def __repr__(self) -> str:
        return f"<ProjectSequence project_id={self.project_id} next={self.next_number}>"


class WorkItem(Base):
    """
    Work Item model for Epics, Features, Stories, Tasks and Bugs.

    Parent/child links are plain id references within the same project.
    Deleting a parent detaches its children (parent_id set to NULL);
    deleting the project removes every work item in it.
    """

    __tablename__ = "work_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(20), nullable=False)  # e.g. PROJ-1, PROJ-42

    # Core fields
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(_enum_column(WorkItemType), nullable=False)
    status = Column(_enum_column(WorkItemStatus), nullable=False, default=WorkItemStatus.TODO)
    priority = Column(_enum_column(WorkItemPriority), nullable=False, default=WorkItemPriority.MEDIUM)

    # Scope and hierarchy
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    parent_id = Column(Integer, ForeignKey("work_items.id", ondelete="SET NULL"), nullable=True)

    # People
    assignee_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reporter_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Planning (estimate is hours or story points by convention)
    estimate = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    project = relationship("Project")
    parent = relationship("WorkItem", remote_side=[id], back_populates="children")
    children = relationship("WorkItem", back_populates="parent", order_by="WorkItem.id")
    assignee = relationship("User", foreign_keys=[assignee_id])
    reporter = relationship("User", foreign_keys=[reporter_id])
    history = relationship(
        "WorkItemHistory",
        back_populates="work_item",
        cascade="all, delete-orphan",
        order_by=lambda: [WorkItemHistory.changed_at, WorkItemHistory.id],
    )
    comments = relationship(
        "Comment",
        back_populates="work_item",
        cascade="all, delete-orphan",
        order_by=lambda: [Comment.created_at, Comment.id],
    )
    attachments = relationship(
        "Attachment",
        back_populates="work_item",
        cascade="all, delete-orphan",
        order_by=lambda: [Attachment.uploaded_at, Attachment.id],
    )

    __table_args__ = (
        Index("work_item_external_id_idx", func.lower(external_id), unique=True),
        Index("work_item_project_idx", "project_id"),
        Index("work_item_parent_idx", "parent_id"),
        Index("work_item_type_status_idx", "type", "status"),
        Index("work_item_assignee_idx", "assignee_id"),
        Index("work_item_reporter_idx", "reporter_id"),
        CheckConstraint("parent_id IS NULL OR parent_id != id", name="no_self_parent"),
        CheckConstraint(
            "(status = 'DONE' AND completed_at IS NOT NULL) OR (status != 'DONE' AND completed_at IS NULL)",
            name="chk_completed_at_matches_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<WorkItem {self.external_id}: {self.type.value} - {self.title[:30]}>"


class WorkItemHistory(Base):
    """
    Work Item change history for audit trail.

    One row per changed field. Rows are append-only and disappear only when
    the owning work item (or the acting user) is deleted.
    """

    __tablename__ = "work_item_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    work_item_id = Column(Integer, ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Change details
    field = Column(String(50), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    changed_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Relationships
    work_item = relationship("WorkItem", back_populates="history")
    user = relationship("User")

    def __repr__(self) -> str:
        return f"<WorkItemHistory {self.work_item_id}: {self.field} at {self.changed_at}>"


class Comment(Base):
    """Comment on a work item."""

    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    work_item_id = Column(Integer, ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    work_item = relationship("WorkItem", back_populates="comments")
    user = relationship("User")

    def __repr__(self) -> str:
        return f"<Comment {self.id} on work_item_id={self.work_item_id}>"


class Attachment(Base):
    """File attachment metadata for a work item. File bytes live in external storage."""

    __tablename__ = "attachments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    work_item_id = Column(Integer, ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    file_type = Column(String(100), nullable=False)
    file_path = Column(String(255), nullable=False)
    uploaded_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    work_item = relationship("WorkItem", back_populates="attachments")
    user = relationship("User")

    __table_args__ = (
        CheckConstraint("file_size >= 0", name="chk_file_size_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Attachment {self.file_name} on work_item_id={self.work_item_id}>"
