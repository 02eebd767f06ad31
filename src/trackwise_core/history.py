"""Audit trail for work item field changes.

Each observed field change becomes one immutable ``WorkItemHistory`` row.
Old and new values are stored as text whatever their source type. Rows are
appended in the caller's transaction so they commit (or roll back) together
with the mutation they describe.
"""
import enum
import logging
from datetime import date, datetime
from typing import Any, Iterable, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

from . import models
from .exceptions import ValidationError

logger = logging.getLogger("trackwise-core.history")


@event.listens_for(Session, "before_flush")
def _reject_history_updates(session, flush_context, instances):
    """History rows are append-only: refuse to flush an UPDATE of one."""
    for obj in session.dirty:
        if isinstance(obj, models.WorkItemHistory) and session.is_modified(obj, include_collections=False):
            raise ValidationError(f"Work item history entry {obj.id} is immutable")


def to_history_text(value: Any) -> Optional[str]:
    """
    Serialize a field value for storage in the audit trail.

    None stays None (the field was empty); enums store their value; dates
    use ISO 8601; whole-number floats drop the trailing ``.0``.
    """
    if value is None:
        return None
    if isinstance(value, enum.Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def record_change(
    db: Session,
    work_item_id: int,
    user_id: int,
    field: str,
    old_value: Any,
    new_value: Any,
    changed_at: Optional[datetime] = None,
) -> models.WorkItemHistory:
    """
    Append one history row for a field change.

    Args:
        db: Database session (the caller commits)
        work_item_id: Work item that changed
        user_id: Acting user
        field: Name of the changed field
        old_value: Value before the change
        new_value: Value after the change
        changed_at: Change time (defaults to now)

    Returns:
        The pending WorkItemHistory row
    """
    entry = models.WorkItemHistory(
        work_item_id=work_item_id,
        user_id=user_id,
        field=field,
        old_value=to_history_text(old_value),
        new_value=to_history_text(new_value),
        changed_at=changed_at or datetime.utcnow(),
    )
    db.add(entry)
    logger.debug(f"History: work item {work_item_id} {field}: {entry.old_value!r} -> {entry.new_value!r}")
    return entry


def record_changes(
    db: Session,
    work_item_id: int,
    user_id: int,
    changes: Iterable[tuple[str, Any, Any]],
    changed_at: Optional[datetime] = None,
) -> list[models.WorkItemHistory]:
    """Append one history row per ``(field, old_value, new_value)`` tuple, in order."""
    changed_at = changed_at or datetime.utcnow()
    return [
        record_change(db, work_item_id, user_id, field, old, new, changed_at=changed_at)
        for field, old, new in changes
    ]


def get_history(
    db: Session,
    work_item_id: int,
    field: Optional[str] = None,
    limit: Optional[int] = None,
) -> list[models.WorkItemHistory]:
    """
    Get the audit trail of a work item, oldest first.

    Rows sharing a timestamp are returned in insertion order.
    """
    query = db.query(models.WorkItemHistory).filter(
        models.WorkItemHistory.work_item_id == work_item_id
    )
    if field is not None:
        query = query.filter(models.WorkItemHistory.field == field)

    query = query.order_by(models.WorkItemHistory.changed_at.asc(), models.WorkItemHistory.id.asc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()
