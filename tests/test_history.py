"""Tests for the work item audit trail."""
from datetime import date, datetime

import pytest
from trackwise_core import crud, models
from trackwise_core.exceptions import ValidationError
from trackwise_core.history import get_history, record_change, to_history_text
from trackwise_core.models import WorkItemStatus


class TestHistoryText:
    """Test serialization of field values into history text."""

    def test_none_stays_none(self):
        assert to_history_text(None) is None

    def test_enum_uses_value(self):
        assert to_history_text(WorkItemStatus.IN_PROGRESS) == "IN_PROGRESS"

    def test_datetimes_are_iso(self):
        assert to_history_text(datetime(2026, 5, 4, 3, 2, 1)) == "2026-05-04T03:02:01"
        assert to_history_text(date(2026, 5, 4)) == "2026-05-04"

    def test_numbers(self):
        assert to_history_text(8.0) == "8"
        assert to_history_text(2.25) == "2.25"
        assert to_history_text(17) == "17"

    def test_strings_unchanged(self):
        assert to_history_text("Fix login") == "Fix login"


class TestHistoryLog:
    """Test appending and reading history rows."""

    def test_rows_returned_oldest_first(self, db, user, make_item):
        item = make_item("EPIC", "v1")
        for title in ("v2", "v3", "v4"):
            crud.update_work_item(db, item.id, {"title": title}, user.id)

        rows = get_history(db, item.id)
        assert [r.new_value for r in rows] == ["v2", "v3", "v4"]
        assert [r.old_value for r in rows] == ["v1", "v2", "v3"]

    def test_filter_by_field_and_limit(self, db, user, make_item):
        item = make_item("EPIC")
        crud.update_work_item(db, item.id, {"title": "A", "priority": "LOW"}, user.id)
        crud.update_work_item(db, item.id, {"title": "B"}, user.id)

        assert [r.new_value for r in get_history(db, item.id, field="title")] == ["A", "B"]
        assert [r.field for r in get_history(db, item.id, limit=1)] == ["title"]

    def test_rows_are_immutable(self, db, user, make_item):
        item = make_item("EPIC")
        crud.update_work_item(db, item.id, {"title": "Edited"}, user.id)
        [row] = get_history(db, item.id)

        row.new_value = "Tampered"
        with pytest.raises(ValidationError):
            db.commit()
        db.rollback()

        [row] = get_history(db, item.id)
        assert row.new_value == "Edited"

    def test_record_change_joins_caller_transaction(self, db, user, make_item):
        item = make_item("EPIC")
        record_change(db, item.id, user.id, "title", "a", "b")
        db.rollback()
        assert get_history(db, item.id) == []

    def test_history_removed_with_acting_user(self, db, user, other_user, make_item):
        item = make_item("EPIC")
        crud.update_work_item(db, item.id, {"title": "By Bob"}, other_user.id)
        crud.update_work_item(db, item.id, {"title": "By Alice"}, user.id)

        crud.delete_user(db, other_user.id)

        rows = get_history(db, item.id)
        assert [r.user_id for r in rows] == [user.id]
        assert db.query(models.WorkItemHistory).count() == 1
