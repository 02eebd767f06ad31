"""Shared fixtures: an in-memory SQLite database with seeded users and a project."""
import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from trackwise_core import crud
from trackwise_core.database import build_engine
from trackwise_core.models import Base


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def user(db):
    return crud.create_user(db, {
        "username": "alice",
        "email": "alice@example.com",
        "full_name": "Alice Example",
    })


@pytest.fixture
def other_user(db):
    return crud.create_user(db, {
        "username": "bob",
        "email": "bob@example.com",
        "full_name": "Bob Example",
    })


@pytest.fixture
def project(db, user):
    return crud.create_project(db, {"key": "PROJ", "name": "Main Project"}, user.id)


@pytest.fixture
def other_project(db, user):
    return crud.create_project(db, {"key": "OPS", "name": "Operations"}, user.id)


@pytest.fixture
def make_item(db, project, user):
    """Factory creating work items in ``project`` as ``user``."""

    def _make(type_, title=None, parent=None, **fields):
        data = {
            "title": title or f"{type_} item",
            "type": type_,
            "project_id": fields.pop("project_id", project.id),
            "parent_id": parent.id if parent is not None else None,
        }
        data.update(fields)
        return crud.create_work_item(db, data, user.id)

    return _make


@pytest.fixture
def hierarchy(make_item):
    """EPIC > FEATURE > STORY > TASK chain."""
    epic = make_item("EPIC", "Checkout")
    feature = make_item("FEATURE", "Payments", parent=epic)
    story = make_item("STORY", "Pay by card", parent=feature)
    task = make_item("TASK", "Wire card form", parent=story)
    return epic, feature, story, task
