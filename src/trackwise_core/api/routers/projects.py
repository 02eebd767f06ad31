"""Projects API endpoints."""
import logging
from math import ceil
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from trackwise_core import crud, schemas, models

from ...config import get_settings
from ...database import get_db
from ..dependencies import get_current_user_id

logger = logging.getLogger("trackwise-core.projects")

router = APIRouter(tags=["projects"])

settings = get_settings()


@router.post("/", response_model=schemas.ProjectResponse, status_code=201)
def create_project(
    project: schemas.ProjectCreate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    """
    Create a new project.

    - **key**: 2-10 uppercase letters or digits (e.g., "PROJ", "WEB2"); prefixes work item ids
    - **name**: Project name
    - **description**: Optional description
    - **status**: Project status (default: ACTIVE)
    - **team_id**: Optional owning team
    """
    return crud.create_project(db, project, current_user_id)


@router.get("/", response_model=schemas.ProjectListResponse)
def list_projects(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=settings.max_page_size, description="Items per page"),
    status: Optional[models.ProjectStatus] = Query(None, description="Filter by status"),
    team_id: Optional[int] = Query(None, description="Filter by team"),
    search: Optional[str] = Query(None, description="Search in name and description"),
    db: Session = Depends(get_db),
):
    """
    List projects with optional filtering and pagination.

    - **page**: Page number (starts at 1)
    - **page_size**: Number of items per page (1-100)
    - **status**: Filter by project status
    - **team_id**: Filter by owning team
    - **search**: Search text in name and description
    """
    skip = (page - 1) * page_size

    projects, total = crud.list_projects(
        db=db,
        skip=skip,
        limit=page_size,
        status_filter=status,
        team_id=team_id,
        search=search,
    )

    return schemas.ProjectListResponse(
        items=projects,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/by-key/{key}", response_model=schemas.ProjectResponse)
def get_project_by_key(
    key: str,
    db: Session = Depends(get_db),
):
    """Get a project by its key (case-insensitive)."""
    project = crud.get_project_by_key(db, key)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.get("/{project_id}", response_model=schemas.ProjectResponse)
def get_project(
    project_id: int,
    db: Session = Depends(get_db),
):
    """
    Get a specific project by ID.
    """
    project = crud.get_project(db, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")

    return project


@router.patch("/{project_id}", response_model=schemas.ProjectResponse)
def update_project(
    project_id: int,
    project_update: schemas.ProjectUpdate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    """
    Update a project. Only provided fields are changed.

    The key can only change while the project has no work items.
    """
    return crud.update_project(db, project_id, project_update)


@router.delete("/{project_id}", status_code=204)
def delete_project(
    project_id: int,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    """
    Delete a project with all of its work items, comments, attachments and history.
    """
    crud.delete_project(db, project_id)
    return None
