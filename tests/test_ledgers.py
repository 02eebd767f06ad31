"""Tests for work item comments and attachments."""
import pytest
from trackwise_core import crud
from trackwise_core.exceptions import NotFoundError, ValidationError

PDF = {"file_name": "design.pdf", "file_size": 2048, "file_type": "application/pdf", "file_path": "/files/design.pdf"}


class TestComments:
    """Test the comment ledger."""

    def test_add_and_list(self, db, user, other_user, make_item):
        item = make_item("STORY")
        first = crud.add_comment(db, item.id, user.id, "Needs a design review")
        second = crud.add_comment(db, item.id, other_user.id, "Reviewed")

        comments = crud.list_comments(db, item.id)
        assert [c.id for c in comments] == [first.id, second.id]
        assert comments[0].user_id == user.id
        assert comments[1].content == "Reviewed"

    def test_blank_content_rejected(self, db, user, make_item):
        item = make_item("STORY")
        with pytest.raises(ValidationError):
            crud.add_comment(db, item.id, user.id, "")
        with pytest.raises(ValidationError):
            crud.add_comment(db, item.id, user.id, "   ")

    def test_unknown_work_item_or_user(self, db, user, make_item):
        item = make_item("STORY")
        with pytest.raises(NotFoundError):
            crud.add_comment(db, 999, user.id, "Hello")
        with pytest.raises(NotFoundError):
            crud.add_comment(db, item.id, 999, "Hello")

    def test_delete(self, db, user, make_item):
        item = make_item("STORY")
        comment = crud.add_comment(db, item.id, user.id, "Remove me")
        crud.delete_comment(db, comment.id)
        assert crud.list_comments(db, item.id) == []
        with pytest.raises(NotFoundError):
            crud.delete_comment(db, comment.id)

    def test_comments_do_not_touch_history(self, db, user, make_item):
        item = make_item("STORY")
        crud.add_comment(db, item.id, user.id, "FYI")
        _, expansions = crud.fetch_work_item(db, item.id, expand=["history"])
        assert expansions["history"] == []


class TestAttachments:
    """Test the attachment ledger."""

    def test_add_and_list(self, db, user, make_item):
        item = make_item("BUG", parent=make_item("STORY"))
        attachment = crud.add_attachment(db, item.id, user.id, PDF)

        assert attachment.file_name == "design.pdf"
        assert attachment.file_size == 2048
        assert attachment.uploaded_at is not None
        assert [a.id for a in crud.list_attachments(db, item.id)] == [attachment.id]

    def test_negative_size_rejected(self, db, user, make_item):
        item = make_item("STORY")
        with pytest.raises(ValidationError):
            crud.add_attachment(db, item.id, user.id, {**PDF, "file_size": -1})

    def test_blank_name_rejected(self, db, user, make_item):
        item = make_item("STORY")
        with pytest.raises(ValidationError):
            crud.add_attachment(db, item.id, user.id, {**PDF, "file_name": "  "})

    def test_delete(self, db, user, make_item):
        item = make_item("STORY")
        attachment = crud.add_attachment(db, item.id, user.id, PDF)
        crud.delete_attachment(db, attachment.id)
        assert crud.list_attachments(db, item.id) == []
        with pytest.raises(NotFoundError):
            crud.delete_attachment(db, attachment.id)

    def test_removed_with_uploader(self, db, user, other_user, make_item):
        item = make_item("STORY")
        crud.add_attachment(db, item.id, other_user.id, PDF)
        crud.add_comment(db, item.id, other_user.id, "Attached")

        crud.delete_user(db, other_user.id)

        assert crud.list_attachments(db, item.id) == []
        assert crud.list_comments(db, item.id) == []
