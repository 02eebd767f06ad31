"""Work Items API router.

Work items form a per-project hierarchy:

    EPIC -> FEATURE -> STORY -> TASK | BUG

Every work item is addressable by internal id or by its external id
(e.g. ``PROJ-3``). Field changes made through PATCH are recorded in the
item's history.
"""
import logging
from math import ceil
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ... import crud
from ...config import get_settings
from ...database import get_db
from ...exceptions import NotFoundError
from ...history import get_history
from ...models import WorkItem, WorkItemPriority, WorkItemStatus, WorkItemType
from ...schemas import (
    AttachmentCreate,
    AttachmentResponse,
    CommentCreate,
    CommentResponse,
    WorkItemCreate,
    WorkItemDetailResponse,
    WorkItemHistoryResponse,
    WorkItemListResponse,
    WorkItemMove,
    WorkItemResponse,
    WorkItemUpdate,
)
from ...work_item_state_machine import get_allowed_work_item_transitions
from ..dependencies import get_current_user_id

logger = logging.getLogger("trackwise-core.work_items")

router = APIRouter(tags=["work-items"])

settings = get_settings()


def resolve_work_item_or_404(db: Session, identifier: str) -> WorkItem:
    """Resolve an internal or external id, raising NotFoundError if unknown."""
    work_item = crud.resolve_work_item(db, identifier)
    if work_item is None:
        raise NotFoundError("Work item", identifier)
    return work_item


# =============================================================================
# CRUD Endpoints
# =============================================================================


@router.post("/", response_model=WorkItemResponse, status_code=201)
def create_work_item(
    work_item: WorkItemCreate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    """
    Create a new Work Item.

    - **title**: Short summary
    - **type**: EPIC, FEATURE, STORY, TASK or BUG
    - **project_id**: Owning project
    - **parent_id**: Optional parent (must be an allowed type in the same project)
    - **external_id**: Optional explicit id; otherwise ``{project key}-{n}`` is allocated
    - **reporter_id**: Defaults to the acting user
    """
    return crud.create_work_item(db, work_item, current_user_id)


@router.get("/", response_model=WorkItemListResponse)
def list_work_items(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=settings.max_page_size, description="Items per page"),
    project_id: Optional[int] = Query(None, description="Filter by project"),
    type: Optional[WorkItemType] = Query(None, description="Filter by type"),
    status: Optional[WorkItemStatus] = Query(None, description="Filter by status"),
    priority: Optional[WorkItemPriority] = Query(None, description="Filter by priority"),
    assignee_id: Optional[int] = Query(None, description="Filter by assignee"),
    parent_id: Optional[int] = Query(None, description="Filter by parent"),
    root_only: bool = Query(False, description="Only list items without a parent"),
    sort: str = Query("created", description="created (newest first) or status"),
    db: Session = Depends(get_db),
):
    """List Work Items with optional filtering and pagination."""
    items, total = crud.list_work_items(
        db=db,
        skip=(page - 1) * page_size,
        limit=page_size,
        project_id=project_id,
        type_filter=type,
        status_filter=status,
        priority_filter=priority,
        assignee_id=assignee_id,
        parent_id=parent_id,
        root_only=root_only,
        sort=sort,
    )

    return WorkItemListResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{identifier}", response_model=WorkItemDetailResponse)
def get_work_item(
    identifier: str,
    expand: Optional[str] = Query(
        None, description="Comma-separated: children, history, comments, attachments"
    ),
    db: Session = Depends(get_db),
):
    """Get a Work Item by internal id or external id (e.g. PROJ-3)."""
    requested = [name.strip() for name in expand.split(",") if name.strip()] if expand else []
    work_item, expansions = crud.fetch_work_item(db, identifier, expand=requested)

    detail = WorkItemDetailResponse(**WorkItemResponse.model_validate(work_item).model_dump())
    if "children" in expansions:
        detail.children = [WorkItemResponse.model_validate(c) for c in expansions["children"]]
    if "history" in expansions:
        detail.history = [WorkItemHistoryResponse.model_validate(h) for h in expansions["history"]]
    if "comments" in expansions:
        detail.comments = [CommentResponse.model_validate(c) for c in expansions["comments"]]
    if "attachments" in expansions:
        detail.attachments = [AttachmentResponse.model_validate(a) for a in expansions["attachments"]]
    return detail


@router.patch("/{identifier}", response_model=WorkItemResponse)
def update_work_item(
    identifier: str,
    work_item_update: WorkItemUpdate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    """
    Update a Work Item. Only provided fields are changed; null clears a field.

    Each changed field is recorded in the item's history.
    """
    work_item = resolve_work_item_or_404(db, identifier)
    return crud.update_work_item(db, work_item.id, work_item_update, current_user_id)


@router.delete("/{identifier}", status_code=204)
def delete_work_item(
    identifier: str,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    """Delete a Work Item. Its children are detached and become roots."""
    work_item = resolve_work_item_or_404(db, identifier)
    crud.delete_work_item(db, work_item.id, current_user_id)
    return None


# =============================================================================
# Hierarchy Endpoints
# =============================================================================


@router.post("/{identifier}/move", response_model=WorkItemResponse)
def move_work_item(
    identifier: str,
    move: WorkItemMove,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    """Re-parent a Work Item. A null parent_id makes it a root."""
    work_item = resolve_work_item_or_404(db, identifier)
    return crud.move_work_item(db, work_item.id, move.parent_id, current_user_id)


@router.get("/{identifier}/children", response_model=list[WorkItemResponse])
def get_children(
    identifier: str,
    db: Session = Depends(get_db),
):
    """List the direct children of a Work Item."""
    work_item = resolve_work_item_or_404(db, identifier)
    return crud.get_children(db, work_item.id)


# =============================================================================
# History & Status Endpoints
# =============================================================================


@router.get("/{identifier}/history", response_model=list[WorkItemHistoryResponse])
def get_work_item_history(
    identifier: str,
    field: Optional[str] = Query(None, description="Only changes to this field"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Maximum entries"),
    db: Session = Depends(get_db),
):
    """Get the change history of a Work Item, oldest first."""
    work_item = resolve_work_item_or_404(db, identifier)
    return get_history(db, work_item.id, field=field, limit=limit)


@router.get("/{identifier}/transitions")
def get_allowed_transitions(
    identifier: str,
    db: Session = Depends(get_db),
):
    """Get the statuses a Work Item can move to from its current status."""
    work_item = resolve_work_item_or_404(db, identifier)
    allowed = get_allowed_work_item_transitions(work_item.status)
    return {
        "current_status": work_item.status.value,
        "allowed_transitions": [s.value for s in allowed],
    }


# =============================================================================
# Comment Endpoints
# =============================================================================


@router.get("/{identifier}/comments", response_model=list[CommentResponse])
def list_comments(
    identifier: str,
    db: Session = Depends(get_db),
):
    """List the comments on a Work Item, oldest first."""
    work_item = resolve_work_item_or_404(db, identifier)
    return crud.list_comments(db, work_item.id)


@router.post("/{identifier}/comments", response_model=CommentResponse, status_code=201)
def add_comment(
    identifier: str,
    comment: CommentCreate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    """Add a comment to a Work Item."""
    work_item = resolve_work_item_or_404(db, identifier)
    return crud.add_comment(db, work_item.id, current_user_id, comment.content)


@router.delete("/comments/{comment_id}", status_code=204)
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    """Delete a comment."""
    crud.delete_comment(db, comment_id)
    return None


# =============================================================================
# Attachment Endpoints
# =============================================================================


@router.get("/{identifier}/attachments", response_model=list[AttachmentResponse])
def list_attachments(
    identifier: str,
    db: Session = Depends(get_db),
):
    """List the attachments on a Work Item, oldest first."""
    work_item = resolve_work_item_or_404(db, identifier)
    return crud.list_attachments(db, work_item.id)


@router.post("/{identifier}/attachments", response_model=AttachmentResponse, status_code=201)
def add_attachment(
    identifier: str,
    attachment: AttachmentCreate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    """Record attachment metadata on a Work Item. File storage happens elsewhere."""
    work_item = resolve_work_item_or_404(db, identifier)
    return crud.add_attachment(db, work_item.id, current_user_id, attachment)


@router.delete("/attachments/{attachment_id}", status_code=204)
def delete_attachment(
    attachment_id: int,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    """Delete an attachment record."""
    crud.delete_attachment(db, attachment_id)
    return None
