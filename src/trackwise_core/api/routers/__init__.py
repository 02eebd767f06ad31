"""API routers for Trackwise Core."""

from . import projects, teams, users, work_items

__all__ = ["projects", "teams", "users", "work_items"]
