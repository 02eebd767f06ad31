"""Request dependencies shared by the API routers."""
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .. import crud
from ..database import get_db

logger = logging.getLogger("trackwise-core.api.dependencies")


def get_current_user_id(
    x_user_id: Optional[str] = Header(None, description="ID of the acting user"),
    db: Session = Depends(get_db),
) -> int:
    """
    Identify the acting user from the ``X-User-Id`` header.

    Authentication happens upstream; this only checks that the header names
    an existing, active user.

    Raises:
        HTTPException: 401 if the header is missing, malformed or unknown
    """
    if x_user_id is None or not x_user_id.strip().isdigit():
        raise HTTPException(status_code=401, detail="X-User-Id header with a numeric user id is required")

    user = crud.get_user(db, int(x_user_id))
    if user is None or not user.is_active:
        logger.warning(f"Rejected request for unknown or inactive user {x_user_id}")
        raise HTTPException(status_code=401, detail=f"Unknown or inactive user: {x_user_id}")

    return user.id
