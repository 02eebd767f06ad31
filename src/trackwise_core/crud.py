"""CRUD operations for users, teams, projects, work items, comments and attachments.

The work item functions are the only writers of work item history. Each
mutating function runs as one unit of work: writes and history rows are
committed together, and any failure rolls the session back before the typed
error propagates to the caller.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Sequence, Union

import pydantic
from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import DataError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from . import models, schemas
from .exceptions import (
    ConcurrencyConflictError,
    DuplicateIdentifierError,
    NotFoundError,
    TrackwiseError,
    ValidationError,
)
from .hierarchy_validation import validate_child_types, validate_hierarchy
from .history import get_history, record_change, record_changes
from .id_allocation import allocate_external_id, reserve_external_id
from .work_item_state_machine import (
    WORK_ITEM_STATUS_SORT_ORDER,
    completed_at_for_transition,
    validate_work_item_transition,
)

logger = logging.getLogger("trackwise-core.crud")

# Fields a work item patch may change, in the order history rows are written
WORK_ITEM_UPDATABLE_FIELDS = (
    "title",
    "description",
    "type",
    "status",
    "priority",
    "parent_id",
    "assignee_id",
    "reporter_id",
    "estimate",
    "start_date",
    "end_date",
)

WORK_ITEM_EXPANSIONS = ("children", "history", "comments", "attachments")

# PostgreSQL serialization_failure, deadlock_detected, lock_not_available
CONCURRENCY_SQLSTATES = {"40001", "40P01", "55P03"}


# =============================================================================
# Helpers
# =============================================================================


def _coerce(schema_class: type[pydantic.BaseModel], data: Union[pydantic.BaseModel, dict]) -> Any:
    """Validate raw input against an input schema, raising ValidationError on failure."""
    if isinstance(data, schema_class):
        return data
    try:
        return schema_class.model_validate(data)
    except pydantic.ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'input'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid {schema_class.__name__}: {details}") from e


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _is_concurrency_failure(error: OperationalError) -> bool:
    sqlstate = getattr(error.orig, "pgcode", None) or getattr(error.orig, "sqlstate", None)
    if sqlstate in CONCURRENCY_SQLSTATES:
        return True
    message = str(error.orig).lower()
    return "locked" in message or "deadlock" in message or "could not serialize" in message


@contextmanager
def _unit_of_work(db: Session, action: str) -> Iterator[None]:
    """
    Commit the enclosed writes atomically, translating storage failures.

    Lock waits that fail, deadlocks and serialization failures surface as
    ConcurrencyConflictError, which the caller may retry. So does losing the
    race to create a project's id sequence row. The session is rolled back
    on every failure, including ones that are not translated.
    """
    try:
        yield
        db.commit()
    except TrackwiseError as e:
        db.rollback()
        logger.warning(f"Rejected attempt to {action}: {e.message}")
        raise
    except IntegrityError as e:
        db.rollback()
        message = str(e.orig).lower()
        logger.warning(f"Integrity error while trying to {action}: {e.orig}")
        if "project_sequences" in message and ("unique" in message or "duplicate" in message):
            raise ConcurrencyConflictError(f"Could not {action}: id sequence created concurrently; retry") from e
        if "external_id" in message:
            raise DuplicateIdentifierError(f"Could not {action}: external id already in use") from e
        if "unique" in message or "duplicate" in message:
            raise DuplicateIdentifierError(f"Could not {action}: conflicts with an existing record") from e
        raise ValidationError(f"Could not {action}: a referenced record is missing or invalid") from e
    except OperationalError as e:
        db.rollback()
        if not _is_concurrency_failure(e):
            logger.error(f"Database error while trying to {action}: {e.orig}")
            raise
        logger.warning(f"Concurrency conflict while trying to {action}: {e.orig}")
        raise ConcurrencyConflictError(f"Could not {action} due to a concurrent change; retry") from e
    except DataError as e:
        db.rollback()
        logger.warning(f"Rejected value while trying to {action}: {e.orig}")
        raise ValidationError(f"Could not {action}: a value is out of range or too long") from e
    except Exception:
        db.rollback()
        logger.exception(f"Unexpected error while trying to {action}")
        raise


def _require_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def _require_team(db: Session, team_id: int) -> models.Team:
    team = db.get(models.Team, team_id)
    if team is None:
        raise NotFoundError("Team", team_id)
    return team


def _require_project(db: Session, project_id: int, lock: bool = False) -> models.Project:
    query = db.query(models.Project).filter(models.Project.id == project_id)
    if lock:
        query = query.with_for_update().populate_existing()
    project = query.first()
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


def _require_work_item(db: Session, work_item_id: int, lock: bool = False) -> models.WorkItem:
    query = db.query(models.WorkItem).filter(models.WorkItem.id == work_item_id)
    if lock:
        query = query.with_for_update().populate_existing()
    work_item = query.first()
    if work_item is None:
        raise NotFoundError("Work item", work_item_id)
    return work_item


# =============================================================================
# Users
# =============================================================================


def create_user(db: Session, user_data: Union[schemas.UserCreate, dict]) -> models.User:
    """
    Create a user.

    Raises:
        DuplicateIdentifierError: If the username or email is taken
    """
    user_data = _coerce(schemas.UserCreate, user_data)

    with _unit_of_work(db, "create user"):
        existing = db.query(models.User).filter(
            or_(
                func.lower(models.User.username) == user_data.username.lower(),
                func.lower(models.User.email) == user_data.email.lower(),
            )
        ).first()
        if existing:
            raise DuplicateIdentifierError(
                f"A user with username '{user_data.username}' or email '{user_data.email}' already exists"
            )

        user = models.User(
            username=user_data.username,
            email=user_data.email,
            full_name=user_data.full_name,
            avatar_url=user_data.avatar_url,
            role=user_data.role,
            is_active=user_data.is_active,
        )
        db.add(user)

    db.refresh(user)
    logger.info(f"Created user {user.username} (ID: {user.id})")
    return user


def get_user(db: Session, user_id: int) -> Optional[models.User]:
    """Get a user by ID."""
    return db.get(models.User, user_id)


def list_users(db: Session, skip: int = 0, limit: int = 100, active_only: bool = False) -> tuple[list[models.User], int]:
    """List users ordered by username."""
    query = db.query(models.User)
    if active_only:
        query = query.filter(models.User.is_active.is_(True))
    total = query.count()
    users = query.order_by(models.User.username).offset(skip).limit(limit).all()
    return users, total


def delete_user(db: Session, user_id: int) -> None:
    """
    Delete a user.

    Weak references (assignee, reporter, project and team creator) are set to
    null. The user's own comments, attachments, history rows and team
    memberships are deleted with them.

    Raises:
        NotFoundError: If the user does not exist
    """
    with _unit_of_work(db, "delete user"):
        user = _require_user(db, user_id)

        db.query(models.WorkItem).filter(models.WorkItem.assignee_id == user_id).update(
            {models.WorkItem.assignee_id: None}, synchronize_session=False
        )
        db.query(models.WorkItem).filter(models.WorkItem.reporter_id == user_id).update(
            {models.WorkItem.reporter_id: None}, synchronize_session=False
        )
        db.query(models.Project).filter(models.Project.created_by == user_id).update(
            {models.Project.created_by: None}, synchronize_session=False
        )
        db.query(models.Team).filter(models.Team.created_by == user_id).update(
            {models.Team.created_by: None}, synchronize_session=False
        )

        for model in (models.WorkItemHistory, models.Comment, models.Attachment, models.TeamMember):
            db.query(model).filter(model.user_id == user_id).delete(synchronize_session=False)

        db.delete(user)

    logger.info(f"Deleted user {user_id}")


# =============================================================================
# Teams
# =============================================================================


def create_team(db: Session, team_data: Union[schemas.TeamCreate, dict], user_id: int) -> models.Team:
    """Create a team; the creating user becomes its first ADMIN member."""
    team_data = _coerce(schemas.TeamCreate, team_data)

    with _unit_of_work(db, "create team"):
        _require_user(db, user_id)
        team = models.Team(name=team_data.name, description=team_data.description, created_by=user_id)
        db.add(team)
        db.flush()
        db.add(models.TeamMember(team_id=team.id, user_id=user_id, role=models.TeamRole.ADMIN))

    db.refresh(team)
    logger.info(f"Created team '{team.name}' (ID: {team.id})")
    return team


def get_team(db: Session, team_id: int) -> Optional[models.Team]:
    """Get a team by ID."""
    return db.get(models.Team, team_id)


def list_teams(db: Session, skip: int = 0, limit: int = 100) -> tuple[list[models.Team], int]:
    """List teams ordered by name."""
    query = db.query(models.Team)
    total = query.count()
    return query.order_by(models.Team.name).offset(skip).limit(limit).all(), total


def add_team_member(
    db: Session,
    team_id: int,
    member_data: Union[schemas.TeamMemberCreate, dict],
) -> models.TeamMember:
    """
    Add a user to a team.

    Raises:
        NotFoundError: If the team or user does not exist
        DuplicateIdentifierError: If the user is already a member
    """
    member_data = _coerce(schemas.TeamMemberCreate, member_data)

    with _unit_of_work(db, "add team member"):
        _require_team(db, team_id)
        _require_user(db, member_data.user_id)

        existing = db.query(models.TeamMember).filter(
            models.TeamMember.team_id == team_id,
            models.TeamMember.user_id == member_data.user_id,
        ).first()
        if existing:
            raise DuplicateIdentifierError(f"User {member_data.user_id} is already a member of team {team_id}")

        member = models.TeamMember(team_id=team_id, user_id=member_data.user_id, role=member_data.role)
        db.add(member)

    db.refresh(member)
    logger.info(f"Added user {member.user_id} to team {team_id} as {member.role.value}")
    return member


def remove_team_member(db: Session, team_id: int, user_id: int) -> None:
    """
    Remove a user from a team.

    Raises:
        NotFoundError: If the membership does not exist
    """
    with _unit_of_work(db, "remove team member"):
        member = db.query(models.TeamMember).filter(
            models.TeamMember.team_id == team_id,
            models.TeamMember.user_id == user_id,
        ).first()
        if member is None:
            raise NotFoundError("Team member", f"team={team_id} user={user_id}")
        db.delete(member)

    logger.info(f"Removed user {user_id} from team {team_id}")


def list_team_members(db: Session, team_id: int) -> list[models.TeamMember]:
    """List the members of a team in join order."""
    _require_team(db, team_id)
    return db.query(models.TeamMember).filter(
        models.TeamMember.team_id == team_id
    ).order_by(models.TeamMember.joined_at, models.TeamMember.id).all()


# =============================================================================
# Projects
# =============================================================================


def create_project(db: Session, project_data: Union[schemas.ProjectCreate, dict], user_id: int) -> models.Project:
    """
    Create a project together with its external id sequence.

    Raises:
        DuplicateIdentifierError: If the project key is taken
        NotFoundError: If the creating user or the team does not exist
    """
    project_data = _coerce(schemas.ProjectCreate, project_data)

    with _unit_of_work(db, "create project"):
        _require_user(db, user_id)
        if project_data.team_id is not None:
            _require_team(db, project_data.team_id)

        if get_project_by_key(db, project_data.key) is not None:
            raise DuplicateIdentifierError(f"Project with key '{project_data.key}' already exists")

        project = models.Project(
            key=project_data.key,
            name=project_data.name,
            description=project_data.description,
            status=project_data.status,
            team_id=project_data.team_id,
            created_by=user_id,
            start_date=_naive_utc(project_data.start_date),
            target_date=_naive_utc(project_data.target_date),
        )
        project.sequence = models.ProjectSequence(next_number=1)
        db.add(project)

    db.refresh(project)
    logger.info(f"Created project '{project.name}' ({project.key}) (ID: {project.id})")
    return project


def get_project(db: Session, project_id: int) -> Optional[models.Project]:
    """Get a project by ID."""
    return db.get(models.Project, project_id)


def get_project_by_key(db: Session, key: str) -> Optional[models.Project]:
    """Get a project by its key (case-insensitive)."""
    return db.query(models.Project).filter(
        func.upper(models.Project.key) == key.strip().upper()
    ).first()


def list_projects(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    status_filter: Optional[models.ProjectStatus] = None,
    team_id: Optional[int] = None,
    search: Optional[str] = None,
) -> tuple[list[models.Project], int]:
    """List projects with optional filtering, ordered by key."""
    query = db.query(models.Project)
    if status_filter is not None:
        query = query.filter(models.Project.status == status_filter)
    if team_id is not None:
        query = query.filter(models.Project.team_id == team_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(models.Project.name.ilike(pattern), models.Project.description.ilike(pattern)))

    total = query.count()
    projects = query.order_by(models.Project.key).offset(skip).limit(limit).all()
    return projects, total


def update_project(
    db: Session,
    project_id: int,
    project_update: Union[schemas.ProjectUpdate, dict],
) -> models.Project:
    """
    Update a project.

    The key namespaces existing external ids, so it may only change while the
    project has no work items.

    Raises:
        NotFoundError: If the project or team does not exist
        ValidationError: If the key changes on a project that has work items
        DuplicateIdentifierError: If the new key is taken
    """
    project_update = _coerce(schemas.ProjectUpdate, project_update)
    data = project_update.model_dump(exclude_unset=True)

    with _unit_of_work(db, "update project"):
        project = _require_project(db, project_id, lock=True)

        for required in ("key", "name", "status"):
            if required in data and data[required] is None:
                raise ValidationError(f"{required} cannot be cleared")

        new_key = data.pop("key", None)
        if new_key is not None and new_key != project.key:
            has_items = db.query(models.WorkItem.id).filter(
                models.WorkItem.project_id == project.id
            ).first() is not None
            if has_items:
                raise ValidationError(
                    f"Project key '{project.key}' is referenced by work items and cannot be changed"
                )
            if get_project_by_key(db, new_key) is not None:
                raise DuplicateIdentifierError(f"Project with key '{new_key}' already exists")
            project.key = new_key

        if data.get("team_id") is not None:
            _require_team(db, data["team_id"])

        for field in ("start_date", "target_date"):
            if field in data:
                data[field] = _naive_utc(data[field])

        for field, value in data.items():
            setattr(project, field, value)

    db.refresh(project)
    logger.info(f"Updated project {project.key} (ID: {project.id})")
    return project


def delete_project(db: Session, project_id: int) -> None:
    """
    Delete a project and everything in it.

    Parent links inside the project are cleared first so the work items can
    be removed in any order; comments, attachments and history go with them.

    Raises:
        NotFoundError: If the project does not exist
    """
    with _unit_of_work(db, "delete project"):
        project = _require_project(db, project_id, lock=True)

        item_ids = select(models.WorkItem.id).where(models.WorkItem.project_id == project_id)
        for model in (models.WorkItemHistory, models.Comment, models.Attachment):
            db.query(model).filter(model.work_item_id.in_(item_ids)).delete(synchronize_session=False)

        db.query(models.WorkItem).filter(models.WorkItem.project_id == project_id).update(
            {models.WorkItem.parent_id: None}, synchronize_session=False
        )
        deleted = db.query(models.WorkItem).filter(
            models.WorkItem.project_id == project_id
        ).delete(synchronize_session=False)

        db.delete(project)

    logger.info(f"Deleted project {project_id} with {deleted} work item(s)")


# =============================================================================
# Work Items
# =============================================================================


def create_work_item(
    db: Session,
    work_item_data: Union[schemas.WorkItemCreate, dict],
    user_id: int,
) -> models.WorkItem:
    """
    Create a work item.

    Validates the hierarchy placement, then allocates the next external id
    for the project (or reserves the one supplied). completed_at is set to
    the creation time only when the item is created as DONE.

    Args:
        db: Database session
        work_item_data: Work item draft
        user_id: Acting user (default reporter)

    Returns:
        The persisted work item

    Raises:
        ValidationError: If required fields are missing or malformed
        NotFoundError: If the project, parent or a referenced user does not exist
        InvalidHierarchyError: On a disallowed parent type or cross-project parent
        DuplicateIdentifierError: If the supplied external id is taken
        ConcurrencyConflictError: On a serialization failure (retry)
    """
    data = _coerce(schemas.WorkItemCreate, work_item_data)

    with _unit_of_work(db, "create work item"):
        _require_user(db, user_id)
        project = _require_project(db, data.project_id)

        reporter_id = data.reporter_id if data.reporter_id is not None else user_id
        for referenced in (data.assignee_id, reporter_id):
            if referenced is not None:
                _require_user(db, referenced)

        validate_hierarchy(db, project.id, data.type, data.parent_id, lock=True)

        if data.external_id:
            external_id = reserve_external_id(db, project, data.external_id)
        else:
            external_id = allocate_external_id(db, project)

        now = datetime.utcnow()
        work_item = models.WorkItem(
            external_id=external_id,
            title=data.title,
            description=data.description,
            type=data.type,
            status=data.status,
            priority=data.priority,
            project_id=project.id,
            parent_id=data.parent_id,
            assignee_id=data.assignee_id,
            reporter_id=reporter_id,
            estimate=data.estimate,
            start_date=_naive_utc(data.start_date),
            end_date=_naive_utc(data.end_date),
            completed_at=completed_at_for_transition(None, data.status, None, now),
            created_at=now,
            updated_at=now,
        )
        db.add(work_item)

    db.refresh(work_item)
    logger.info(f"Created work item {work_item.external_id}: {work_item.type.value} '{work_item.title}'")
    return work_item


def update_work_item(
    db: Session,
    work_item_id: int,
    work_item_update: Union[schemas.WorkItemUpdate, dict],
    user_id: int,
) -> models.WorkItem:
    """
    Update a work item, recording one history row per changed field.

    The item row is locked for the duration of the update. A parent or type
    change re-runs hierarchy validation including cycle detection. Entering
    DONE stamps completed_at; leaving DONE clears it.

    Args:
        db: Database session
        work_item_id: Work item to update
        work_item_update: Partial patch (absent fields are unchanged)
        user_id: Acting user, recorded on every history row

    Returns:
        The updated work item

    Raises:
        ValidationError: If the patch is malformed
        NotFoundError: If the work item, new parent or a referenced user does not exist
        InvalidHierarchyError: On a disallowed placement
        CycleDetectedError: If the item would become its own ancestor
        ConcurrencyConflictError: On a serialization failure (retry)
    """
    patch = _coerce(schemas.WorkItemUpdate, work_item_update)
    requested = patch.model_dump(exclude_unset=True)

    with _unit_of_work(db, "update work item"):
        _require_user(db, user_id)
        work_item = _require_work_item(db, work_item_id, lock=True)

        for field in ("assignee_id", "reporter_id"):
            if requested.get(field) is not None:
                _require_user(db, requested[field])

        for field in ("start_date", "end_date"):
            if field in requested:
                requested[field] = _naive_utc(requested[field])

        new_type = requested.get("type", work_item.type)
        new_parent_id = requested.get("parent_id", work_item.parent_id)
        type_changed = new_type != work_item.type
        parent_changed = new_parent_id != work_item.parent_id

        if type_changed or parent_changed:
            validate_hierarchy(
                db,
                work_item.project_id,
                new_type,
                new_parent_id,
                work_item_id=work_item.id,
                lock=True,
            )
        if type_changed:
            child_types = [
                row[0] for row in db.query(models.WorkItem.type).filter(
                    models.WorkItem.parent_id == work_item.id
                ).all()
            ]
            validate_child_types(new_type, child_types)

        old_status = work_item.status
        new_status = requested.get("status", old_status)
        validate_work_item_transition(old_status, new_status)

        changes = []
        for field in WORK_ITEM_UPDATABLE_FIELDS:
            if field not in requested:
                continue
            old_value = getattr(work_item, field)
            new_value = requested[field]
            if old_value == new_value:
                continue
            changes.append((field, old_value, new_value))
            setattr(work_item, field, new_value)

        if changes:
            now = datetime.utcnow()
            work_item.completed_at = completed_at_for_transition(
                old_status, new_status, work_item.completed_at, now
            )
            work_item.updated_at = now
            record_changes(db, work_item.id, user_id, changes, changed_at=now)

    db.refresh(work_item)
    if changes:
        logger.info(
            f"Updated work item {work_item.external_id}: {', '.join(field for field, _, _ in changes)}"
        )
    else:
        logger.debug(f"No changes for work item {work_item.external_id}")
    return work_item


def move_work_item(db: Session, work_item_id: int, new_parent_id: Optional[int], user_id: int) -> models.WorkItem:
    """
    Re-parent a work item (``None`` makes it a root).

    Same semantics as ``update_work_item`` restricted to parent_id.
    """
    return update_work_item(db, work_item_id, {"parent_id": new_parent_id}, user_id)


def delete_work_item(db: Session, work_item_id: int, user_id: int) -> None:
    """
    Delete a work item.

    Direct children are detached (parent_id cleared, with a history row on
    each child) rather than deleted. The item's comments, attachments and
    history are deleted with it.

    Raises:
        NotFoundError: If the work item or acting user does not exist
        ConcurrencyConflictError: On a serialization failure (retry)
    """
    with _unit_of_work(db, "delete work item"):
        _require_user(db, user_id)
        work_item = _require_work_item(db, work_item_id, lock=True)
        external_id = work_item.external_id

        children = db.query(models.WorkItem).filter(
            models.WorkItem.parent_id == work_item.id
        ).with_for_update().all()

        now = datetime.utcnow()
        for child in children:
            child.parent_id = None
            child.updated_at = now
            record_change(db, child.id, user_id, "parent_id", work_item.id, None, changed_at=now)
        db.flush()
        db.expire(work_item, ["children"])

        db.delete(work_item)

    logger.info(f"Deleted work item {external_id}, detached {len(children)} child item(s)")


def get_work_item(db: Session, work_item_id: int) -> Optional[models.WorkItem]:
    """Get a work item by internal ID."""
    return db.get(models.WorkItem, work_item_id)


def get_work_item_by_external_id(db: Session, external_id: str) -> Optional[models.WorkItem]:
    """Get a work item by external ID (case-insensitive, e.g. 'proj-3')."""
    return db.query(models.WorkItem).filter(
        func.lower(models.WorkItem.external_id) == external_id.strip().lower()
    ).first()


def resolve_work_item(db: Session, identifier: Union[int, str]) -> Optional[models.WorkItem]:
    """Resolve a work item from its internal ID or its external ID."""
    if isinstance(identifier, int):
        return get_work_item(db, identifier)

    identifier = identifier.strip()
    if identifier.isdigit():
        work_item = get_work_item(db, int(identifier))
        if work_item:
            return work_item

    return get_work_item_by_external_id(db, identifier)


def fetch_work_item(
    db: Session,
    identifier: Union[int, str],
    expand: Sequence[str] = (),
) -> tuple[models.WorkItem, dict[str, list]]:
    """
    Fetch a work item with optional expansions.

    Args:
        db: Database session
        identifier: Internal or external ID
        expand: Any of "children", "history", "comments", "attachments"

    Returns:
        The work item and a dict of the requested expansions

    Raises:
        ValidationError: On an unknown expansion
        NotFoundError: If the work item does not exist
    """
    unknown = [name for name in expand if name not in WORK_ITEM_EXPANSIONS]
    if unknown:
        raise ValidationError(
            f"Unknown expansion(s): {', '.join(unknown)}. Valid: {', '.join(WORK_ITEM_EXPANSIONS)}"
        )

    work_item = resolve_work_item(db, identifier)
    if work_item is None:
        raise NotFoundError("Work item", identifier)

    expansions: dict[str, list] = {}
    if "children" in expand:
        expansions["children"] = get_children(db, work_item.id)
    if "history" in expand:
        expansions["history"] = get_history(db, work_item.id)
    if "comments" in expand:
        expansions["comments"] = list_comments(db, work_item.id)
    if "attachments" in expand:
        expansions["attachments"] = list_attachments(db, work_item.id)

    return work_item, expansions


def get_children(db: Session, work_item_id: int) -> list[models.WorkItem]:
    """
    Get the direct children of a work item.

    Raises:
        NotFoundError: If the work item does not exist
    """
    _require_work_item(db, work_item_id)
    return db.query(models.WorkItem).filter(
        models.WorkItem.parent_id == work_item_id
    ).order_by(models.WorkItem.id).all()


def list_work_items(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    project_id: Optional[int] = None,
    type_filter: Optional[models.WorkItemType] = None,
    status_filter: Optional[models.WorkItemStatus] = None,
    priority_filter: Optional[models.WorkItemPriority] = None,
    assignee_id: Optional[int] = None,
    parent_id: Optional[int] = None,
    root_only: bool = False,
    sort: str = "created",
) -> tuple[list[models.WorkItem], int]:
    """
    List work items with optional filtering and pagination.

    Sort "created" lists newest first; sort "status" lists active work first,
    then backlog, then done.
    """
    query = db.query(models.WorkItem)

    if project_id is not None:
        query = query.filter(models.WorkItem.project_id == project_id)
    if type_filter is not None:
        query = query.filter(models.WorkItem.type == type_filter)
    if status_filter is not None:
        query = query.filter(models.WorkItem.status == status_filter)
    if priority_filter is not None:
        query = query.filter(models.WorkItem.priority == priority_filter)
    if assignee_id is not None:
        query = query.filter(models.WorkItem.assignee_id == assignee_id)
    if parent_id is not None:
        query = query.filter(models.WorkItem.parent_id == parent_id)
    if root_only:
        query = query.filter(models.WorkItem.parent_id.is_(None))

    total = query.count()

    if sort == "status":
        status_order = case(
            *[(models.WorkItem.status == status, order)
              for status, order in WORK_ITEM_STATUS_SORT_ORDER.items()],
            else_=99,
        )
        query = query.order_by(status_order, models.WorkItem.created_at.desc(), models.WorkItem.id.desc())
    elif sort == "created":
        query = query.order_by(models.WorkItem.created_at.desc(), models.WorkItem.id.desc())
    else:
        raise ValidationError(f"Unknown sort '{sort}'. Valid: created, status")

    return query.offset(skip).limit(limit).all(), total


# =============================================================================
# Comments & Attachments
# =============================================================================


def add_comment(db: Session, work_item_id: int, user_id: int, content: str) -> models.Comment:
    """
    Append a comment to a work item.

    Raises:
        ValidationError: If the content is blank
        NotFoundError: If the work item or user does not exist
    """
    content = _coerce(schemas.CommentCreate, {"content": content}).content
    if not content.strip():
        raise ValidationError("Comment content must not be blank")

    with _unit_of_work(db, "add comment"):
        _require_work_item(db, work_item_id)
        _require_user(db, user_id)
        comment = models.Comment(work_item_id=work_item_id, user_id=user_id, content=content)
        db.add(comment)

    db.refresh(comment)
    logger.info(f"Added comment {comment.id} to work item {work_item_id}")
    return comment


def list_comments(db: Session, work_item_id: int) -> list[models.Comment]:
    """List a work item's comments, oldest first."""
    _require_work_item(db, work_item_id)
    return db.query(models.Comment).filter(
        models.Comment.work_item_id == work_item_id
    ).order_by(models.Comment.created_at, models.Comment.id).all()


def delete_comment(db: Session, comment_id: int) -> None:
    """Hard-delete a comment."""
    with _unit_of_work(db, "delete comment"):
        comment = db.get(models.Comment, comment_id)
        if comment is None:
            raise NotFoundError("Comment", comment_id)
        db.delete(comment)

    logger.info(f"Deleted comment {comment_id}")


def add_attachment(
    db: Session,
    work_item_id: int,
    user_id: int,
    file_meta: Union[schemas.AttachmentCreate, dict],
) -> models.Attachment:
    """
    Record an attachment's metadata on a work item.

    Raises:
        ValidationError: If the file metadata is malformed
        NotFoundError: If the work item or user does not exist
    """
    file_meta = _coerce(schemas.AttachmentCreate, file_meta)
    for field in ("file_name", "file_type", "file_path"):
        if not getattr(file_meta, field).strip():
            raise ValidationError(f"{field} must not be blank")

    with _unit_of_work(db, "add attachment"):
        _require_work_item(db, work_item_id)
        _require_user(db, user_id)
        attachment = models.Attachment(
            work_item_id=work_item_id,
            user_id=user_id,
            file_name=file_meta.file_name,
            file_size=file_meta.file_size,
            file_type=file_meta.file_type,
            file_path=file_meta.file_path,
        )
        db.add(attachment)

    db.refresh(attachment)
    logger.info(f"Added attachment '{attachment.file_name}' to work item {work_item_id}")
    return attachment


def list_attachments(db: Session, work_item_id: int) -> list[models.Attachment]:
    """List a work item's attachments, oldest first."""
    _require_work_item(db, work_item_id)
    return db.query(models.Attachment).filter(
        models.Attachment.work_item_id == work_item_id
    ).order_by(models.Attachment.uploaded_at, models.Attachment.id).all()


def delete_attachment(db: Session, attachment_id: int) -> None:
    """Hard-delete an attachment record."""
    with _unit_of_work(db, "delete attachment"):
        attachment = db.get(models.Attachment, attachment_id)
        if attachment is None:
            raise NotFoundError("Attachment", attachment_id)
        db.delete(attachment)

    logger.info(f"Deleted attachment {attachment_id}")
