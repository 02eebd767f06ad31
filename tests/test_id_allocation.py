"""Tests for per-project external id allocation."""
import threading
import time

import pytest
from sqlalchemy import insert
from sqlalchemy.orm import sessionmaker
from trackwise_core import crud, id_allocation, models
from trackwise_core.database import build_engine
from trackwise_core.exceptions import (
    ConcurrencyConflictError,
    DuplicateIdentifierError,
    InvalidHierarchyError,
    ValidationError,
)
from trackwise_core.id_allocation import (
    allocate_external_id,
    ensure_sequence,
    format_external_id,
    parse_sequence_number,
)


class TestExternalIdFormat:
    """Test formatting and parsing of external ids."""

    def test_format(self):
        assert format_external_id("PROJ", 7) == "PROJ-7"

    def test_parse_own_namespace(self):
        assert parse_sequence_number("PROJ", "PROJ-12") == 12
        assert parse_sequence_number("PROJ", "proj-3") == 3
        assert parse_sequence_number("PROJ", "PROJ-007") == 7

    def test_parse_foreign_or_free_form(self):
        assert parse_sequence_number("PROJ", "OPS-4") is None
        assert parse_sequence_number("PROJ", "PROJ-X") is None
        assert parse_sequence_number("PROJ", "PROJECT-4") is None


class TestAllocation:
    """Test sequential allocation through the work item store."""

    def test_sequential_ids(self, make_item):
        items = [make_item("EPIC", f"Epic {n}") for n in range(3)]
        assert [item.external_id for item in items] == ["PROJ-1", "PROJ-2", "PROJ-3"]

    def test_projects_have_independent_sequences(self, make_item, other_project):
        assert make_item("EPIC").external_id == "PROJ-1"
        assert make_item("EPIC", project_id=other_project.id).external_id == "OPS-1"
        assert make_item("EPIC").external_id == "PROJ-2"

    def test_explicit_id_in_namespace_advances_counter(self, make_item):
        assert make_item("EPIC", external_id="PROJ-5").external_id == "PROJ-5"
        assert make_item("EPIC").external_id == "PROJ-6"

    def test_explicit_id_below_counter_leaves_it(self, make_item):
        make_item("EPIC")
        make_item("EPIC")
        make_item("EPIC", external_id="LEGACY-1")
        assert make_item("EPIC").external_id == "PROJ-3"

    def test_duplicate_explicit_id_rejected(self, db, make_item):
        make_item("EPIC", external_id="PROJ-9")
        with pytest.raises(DuplicateIdentifierError):
            make_item("EPIC", external_id="proj-9")
        assert db.query(models.WorkItem).count() == 1

    def test_explicit_id_with_whitespace_rejected(self, make_item):
        with pytest.raises(ValidationError):
            make_item("EPIC", external_id="PROJ 1")

    def test_allocation_skips_ids_in_use(self, db, project, make_item):
        # Simulate an id taken outside the counter (e.g. imported data)
        make_item("EPIC", external_id="LEGACY-1")
        db.query(models.WorkItem).update({models.WorkItem.external_id: "PROJ-1"})
        db.commit()

        assert make_item("EPIC").external_id == "PROJ-2"

    def test_missing_sequence_is_seeded_from_existing_ids(self, db, project, make_item):
        make_item("EPIC")
        make_item("EPIC")
        db.delete(db.get(models.ProjectSequence, project.id))
        db.commit()

        sequence = ensure_sequence(db, project)
        assert sequence.next_number == 3
        assert allocate_external_id(db, project) == "PROJ-3"
        db.rollback()

    def test_failed_create_does_not_consume_a_number(self, make_item):
        story = make_item("STORY")
        with pytest.raises(InvalidHierarchyError):
            make_item("EPIC", parent=story)
        assert make_item("TASK", parent=story).external_id == "PROJ-2"

    def test_case_variant_rejected_by_index(self, db, monkeypatch, make_item):
        make_item("EPIC", external_id="PROJ-9")
        # A concurrent create that passed the lookup before this row committed
        monkeypatch.setattr(id_allocation, "external_id_exists", lambda db, external_id: False)
        with pytest.raises(DuplicateIdentifierError):
            make_item("EPIC", external_id="proj-9")
        assert db.query(models.WorkItem).count() == 1

    def test_lost_sequence_race_is_retryable(self, db, project):
        with pytest.raises(ConcurrencyConflictError):
            with crud._unit_of_work(db, "create id sequence"):
                db.execute(insert(models.ProjectSequence).values(project_id=project.id, next_number=1))
        assert not db.in_transaction()


class TestExternalIdLength:
    """Test that no allocated id can outgrow the external id column."""

    @pytest.fixture
    def wide_project(self, db, user):
        return crud.create_project(db, {"key": "ABCDEFGHIJ", "name": "Wide key"}, user.id)

    def test_explicit_id_leaving_no_room_rejected(self, db, make_item, wide_project):
        with pytest.raises(ValidationError):
            make_item("EPIC", external_id="ABCDEFGHIJ-999999999", project_id=wide_project.id)
        assert db.get(models.ProjectSequence, wide_project.id).next_number == 1
        assert make_item("EPIC", project_id=wide_project.id).external_id == "ABCDEFGHIJ-1"

    def test_allocation_stops_at_longest_id(self, db, make_item, wide_project):
        make_item("EPIC", external_id="ABCDEFGHIJ-999999998", project_id=wide_project.id)
        last = make_item("EPIC", project_id=wide_project.id)
        assert last.external_id == "ABCDEFGHIJ-999999999"

        with pytest.raises(ValidationError):
            make_item("EPIC", project_id=wide_project.id)
        assert db.query(models.WorkItem).filter_by(project_id=wide_project.id).count() == 2
        assert all(len(item.external_id) <= 20 for item in db.query(models.WorkItem))


def test_concurrent_creates_allocate_distinct_ids(tmp_path):
    """Parallel creates in one project never share an external id."""
    engine = build_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    models.Base.metadata.create_all(engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = Session()
    user = crud.create_user(setup, {"username": "carol", "email": "carol@example.com", "full_name": "Carol"})
    project = crud.create_project(setup, {"key": "RACE", "name": "Race"}, user.id)
    user_id, project_id = user.id, project.id
    setup.close()

    threads_count, per_thread = 4, 5
    created: list[str] = []
    errors: list[Exception] = []
    lock = threading.Lock()

    def worker(n):
        session = Session()
        try:
            for i in range(per_thread):
                for attempt in range(100):
                    try:
                        item = crud.create_work_item(
                            session,
                            {"title": f"Item {n}-{i}", "type": "EPIC", "project_id": project_id},
                            user_id,
                        )
                        break
                    except ConcurrencyConflictError:
                        time.sleep(0.01 * (attempt % 5 + 1))
                else:
                    raise RuntimeError("gave up after repeated conflicts")
                with lock:
                    created.append(item.external_id)
        except Exception as e:
            with lock:
                errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(threads_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    engine.dispose()

    assert errors == []
    assert len(created) == threads_count * per_thread
    assert set(created) == {f"RACE-{n}" for n in range(1, threads_count * per_thread + 1)}
