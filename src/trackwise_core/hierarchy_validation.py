"""Hierarchy validation for work item parent/child relationships.

Allowed decomposition:

    EPIC -> FEATURE -> STORY -> TASK | BUG

EPICs are always roots. A parent must live in the same project as its child,
and no work item may become its own ancestor. The same rules apply when a
work item is created and when it is re-parented.
"""
import logging
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models
from .exceptions import CycleDetectedError, InvalidHierarchyError, NotFoundError
from .models import WorkItemType

logger = logging.getLogger("trackwise-core.hierarchy_validation")


# Maps child type -> parent types it may be placed under
ALLOWED_PARENT_TYPES: dict[WorkItemType, frozenset[WorkItemType]] = {
    WorkItemType.EPIC: frozenset(),
    WorkItemType.FEATURE: frozenset({WorkItemType.EPIC}),
    WorkItemType.STORY: frozenset({WorkItemType.FEATURE}),
    WorkItemType.TASK: frozenset({WorkItemType.STORY}),
    WorkItemType.BUG: frozenset({WorkItemType.STORY}),
}


def is_parent_type_allowed(child_type: WorkItemType, parent_type: WorkItemType) -> bool:
    """Check whether ``child_type`` may be placed under ``parent_type``."""
    return parent_type in ALLOWED_PARENT_TYPES.get(child_type, frozenset())


def validate_parent_type(child_type: WorkItemType, parent_type: Optional[WorkItemType]) -> None:
    """
    Validate a (child type, parent type) pairing.

    Args:
        child_type: Type of the work item being placed
        parent_type: Type of the proposed parent, or None for a root item

    Raises:
        InvalidHierarchyError: If the pairing is not in the allowed table
    """
    if parent_type is None:
        return

    if not is_parent_type_allowed(child_type, parent_type):
        allowed = sorted(t.value for t in ALLOWED_PARENT_TYPES.get(child_type, frozenset()))
        if allowed:
            hint = f"A {child_type.value} may only be placed under: {', '.join(allowed)}."
        else:
            hint = f"A {child_type.value} must be a root work item."
        raise InvalidHierarchyError(
            f"Invalid hierarchy: {child_type.value} cannot be a child of {parent_type.value}. {hint}"
        )


def validate_child_types(parent_type: WorkItemType, child_types: Iterable[WorkItemType]) -> None:
    """
    Validate that existing children remain legal under a parent whose type changes.

    Raises:
        InvalidHierarchyError: If any child type is not allowed under ``parent_type``
    """
    for child_type in child_types:
        if not is_parent_type_allowed(child_type, parent_type):
            raise InvalidHierarchyError(
                f"Invalid hierarchy: changing type to {parent_type.value} would orphan "
                f"an existing {child_type.value} child."
            )


def _load_work_item(db: Session, work_item_id: int, lock: bool) -> Optional[models.WorkItem]:
    query = db.query(models.WorkItem).filter(models.WorkItem.id == work_item_id)
    if lock:
        query = query.with_for_update().populate_existing()
    return query.first()


def find_ancestor_cycle(
    db: Session,
    work_item_id: int,
    new_parent: models.WorkItem,
    max_depth: int,
    lock: bool = False,
) -> Optional[list[int]]:
    """
    Walk ancestor links upward from ``new_parent`` looking for ``work_item_id``.

    The walk is bounded by ``max_depth`` (the project's item count), so a
    corrupt pre-existing loop is reported rather than followed forever.

    Args:
        db: Database session
        work_item_id: Item being re-parented
        new_parent: Proposed parent
        max_depth: Upper bound on the number of ancestors to visit
        lock: Lock each visited ancestor row (SELECT ... FOR UPDATE)

    Returns:
        The ancestor path (ids, starting at the new parent) that closes the
        cycle, or None if the move is acyclic
    """
    path: list[int] = []
    current = new_parent
    while current is not None:
        path.append(current.id)
        if current.id == work_item_id:
            return path
        if len(path) > max_depth:
            logger.warning(f"Ancestor walk exceeded {max_depth} steps from work item {new_parent.id}")
            return path
        if current.parent_id is None:
            return None
        current = _load_work_item(db, current.parent_id, lock)
    return None


def validate_hierarchy(
    db: Session,
    project_id: int,
    work_item_type: WorkItemType,
    parent_id: Optional[int],
    work_item_id: Optional[int] = None,
    lock: bool = False,
) -> Optional[models.WorkItem]:
    """
    Validate a proposed (type, parent) placement for a work item.

    Cycle detection only runs when ``work_item_id`` is given: a newly created
    item has no descendants, so it cannot close a cycle.

    Args:
        db: Database session
        project_id: Project the work item belongs to
        work_item_type: Type of the work item
        parent_id: Proposed parent id, or None for a root item
        work_item_id: Id of an existing item being re-parented or retyped
        lock: Lock the parent and its ancestors for the rest of the transaction

    Returns:
        The parent WorkItem, or None for a root item

    Raises:
        NotFoundError: If the parent does not exist
        InvalidHierarchyError: On a cross-project parent or disallowed type pairing
        CycleDetectedError: If the item would become its own ancestor
    """
    if parent_id is None:
        return None

    if work_item_id is not None and parent_id == work_item_id:
        raise CycleDetectedError(
            f"Work item {work_item_id} cannot be its own parent",
            path=[work_item_id, work_item_id],
        )

    parent = _load_work_item(db, parent_id, lock)
    if parent is None:
        raise NotFoundError("Parent work item", parent_id)

    # Cycles are reported ahead of type mismatches: moving an item under its
    # own descendant is a CycleDetected failure whatever the types involved.
    if work_item_id is not None:
        item_count = db.query(func.count(models.WorkItem.id)).filter(
            models.WorkItem.project_id == parent.project_id
        ).scalar() or 0
        cycle = find_ancestor_cycle(db, work_item_id, parent, max_depth=item_count, lock=lock)
        if cycle is not None:
            logger.warning(f"Blocked re-parent of work item {work_item_id} under {parent.external_id}: cycle {cycle}")
            raise CycleDetectedError(
                f"Moving work item {work_item_id} under {parent.external_id} would create a cycle",
                path=[work_item_id] + cycle,
            )

    if parent.project_id != project_id:
        raise InvalidHierarchyError(
            f"Invalid hierarchy: parent {parent.external_id} belongs to a different project"
        )

    validate_parent_type(work_item_type, parent.type)

    return parent
