"""Teams API endpoints."""
import logging
from math import ceil

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session
from trackwise_core import crud, schemas

from ...config import get_settings
from ...database import get_db
from ..dependencies import get_current_user_id

logger = logging.getLogger("trackwise-core.teams")

router = APIRouter(tags=["teams"])

settings = get_settings()


class TeamListResponse(BaseModel):
    """Schema for paginated team list."""

    items: list[schemas.TeamResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


@router.post("/", response_model=schemas.TeamResponse, status_code=201)
def create_team(
    team: schemas.TeamCreate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    """Create a team. The acting user joins it as ADMIN."""
    return crud.create_team(db, team, current_user_id)


@router.get("/", response_model=TeamListResponse)
def list_teams(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=settings.max_page_size, description="Items per page"),
    db: Session = Depends(get_db),
):
    """List teams ordered by name."""
    teams, total = crud.list_teams(db, skip=(page - 1) * page_size, limit=page_size)
    return TeamListResponse(
        items=teams,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{team_id}", response_model=schemas.TeamResponse)
def get_team(
    team_id: int,
    db: Session = Depends(get_db),
):
    """Get a specific team by ID."""
    team = crud.get_team(db, team_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return team


@router.get("/{team_id}/members", response_model=list[schemas.TeamMemberResponse])
def list_team_members(
    team_id: int,
    db: Session = Depends(get_db),
):
    """List the members of a team."""
    return crud.list_team_members(db, team_id)


@router.post("/{team_id}/members", response_model=schemas.TeamMemberResponse, status_code=201)
def add_team_member(
    team_id: int,
    member: schemas.TeamMemberCreate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    """Add a user to a team (role ADMIN, MEMBER or VIEWER)."""
    return crud.add_team_member(db, team_id, member)


@router.delete("/{team_id}/members/{user_id}", status_code=204)
def remove_team_member(
    team_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    """Remove a user from a team."""
    crud.remove_team_member(db, team_id, user_id)
    return None
