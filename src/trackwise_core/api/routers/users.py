"""Users API endpoints."""
import logging
from math import ceil

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session
from trackwise_core import crud, schemas

from ...config import get_settings
from ...database import get_db

logger = logging.getLogger("trackwise-core.users")

router = APIRouter(tags=["users"])

settings = get_settings()


class UserListResponse(BaseModel):
    """Schema for paginated user list."""

    items: list[schemas.UserResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


@router.post("/", response_model=schemas.UserResponse, status_code=201)
def create_user(
    user: schemas.UserCreate,
    db: Session = Depends(get_db),
):
    """
    Create a user.

    - **username**: Unique login name
    - **email**: Unique email address
    - **full_name**: Display name
    - **role**: ADMIN, SCRUM_MASTER or USER (default: USER)
    """
    return crud.create_user(db, user)


@router.get("/", response_model=UserListResponse)
def list_users(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=settings.max_page_size, description="Items per page"),
    active_only: bool = Query(False, description="Only list active users"),
    db: Session = Depends(get_db),
):
    """List users ordered by username."""
    users, total = crud.list_users(db, skip=(page - 1) * page_size, limit=page_size, active_only=active_only)
    return UserListResponse(
        items=users,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{user_id}", response_model=schemas.UserResponse)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
):
    """Get a specific user by ID."""
    user = crud.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.delete("/{user_id}", status_code=204)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
):
    """
    Delete a user.

    Work items assigned to or reported by the user keep existing with the
    reference cleared. The user's comments, attachments and history entries
    are removed.
    """
    crud.delete_user(db, user_id)
    return None
