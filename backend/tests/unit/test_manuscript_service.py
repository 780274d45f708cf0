import pytest
from fastapi import HTTPException

from app.models.manuscript import CopyEditingStage, ManuscriptStatus
from app.services.manuscript_service import ManuscriptService

AUTHOR = "author-1"
EDITOR = "editor-1"
COPY_EDITOR = "ce-1"


@pytest.fixture
def service(db, notifications) -> ManuscriptService:
    db.seed("manuscripts", {"id": "ms-1", "title": "Paper", "author_id": AUTHOR, "status": "accepted"})
    return ManuscriptService(client=db, notifications=notifications)


def _advance(service, stage, actor=EDITOR, roles=("editor",), comment=None):
    return service.advance_copy_editing_stage(
        "ms-1", stage, actor_id=actor, actor_roles=set(roles), comment=comment
    )


def test_status_normalization_accepts_underscores():
    assert ManuscriptStatus.normalize("in_copy_editing") == "in-copy-editing"
    with pytest.raises(ValueError):
        ManuscriptStatus.normalize("teleported")


def test_update_status_records_timeline_and_notifies(service, db, notifications):
    updated = service.update_status("ms-1", "payment_required", actor_id=EDITOR, comment="APC due")
    assert updated["status"] == "payment-required"
    assert updated["timeline"][-1]["description"] == "Status changed from accepted to payment-required: APC due"
    assert notifications.types() == ["manuscript_status"]


def test_update_status_rejects_unknown_and_direct_publish(service):
    with pytest.raises(HTTPException) as exc:
        service.update_status("ms-1", "bogus", actor_id=EDITOR)
    assert exc.value.status_code == 400
    with pytest.raises(HTTPException) as exc:
        service.update_status("ms-1", "published", actor_id=EDITOR)
    assert exc.value.status_code == 400


def test_published_manuscripts_are_protected(service, db):
    db.get("manuscripts", "ms-1")["status"] = "published"
    with pytest.raises(HTTPException) as exc:
        service.update_status("ms-1", "accepted", actor_id=EDITOR)
    assert exc.value.detail == "Published manuscripts cannot change status"


def test_missing_manuscript_is_404(service):
    with pytest.raises(HTTPException) as exc:
        service.get("missing")
    assert exc.value.status_code == 404


def test_full_copy_editing_flow(service, db, notifications):
    service.assign_copy_editor("ms-1", COPY_EDITOR, actor_id=EDITOR)
    row = db.get("manuscripts", "ms-1")
    assert row["copy_editing_stage"] == "copy-editing"
    assert row["status"] == "in-copy-editing"
    assert notifications.sent[-1]["user_id"] == COPY_EDITOR

    _advance(service, CopyEditingStage.AUTHOR_REVIEW, actor=COPY_EDITOR, roles=("copy_editor",))
    assert notifications.sent[-1]["type"] == "draft_ready"

    # 作者退回修改
    _advance(service, CopyEditingStage.COPY_EDITING, actor=AUTHOR, roles=("author",), comment="Fix figure 2")
    assert notifications.sent[-1]["user_id"] == COPY_EDITOR
    assert notifications.sent[-1]["message"] == "Fix figure 2"

    _advance(service, CopyEditingStage.AUTHOR_REVIEW, actor=COPY_EDITOR, roles=("copy_editor",))
    _advance(service, CopyEditingStage.AUTHOR_APPROVED, actor=AUTHOR, roles=("author",))
    assert db.get("manuscripts", "ms-1")["status"] == "copy-editing-complete"

    _advance(service, CopyEditingStage.READY_FOR_PRODUCTION)
    row = db.get("manuscripts", "ms-1")
    assert row["copy_editing_stage"] == "ready-for-production"
    assert row["status"] == "ready-for-publication"
    assert [e["event"] for e in row["timeline"]][-2:] == ["copy_edit_author-approved", "copy_edit_ready-for-production"]


def test_invalid_transition_is_400(service):
    with pytest.raises(HTTPException) as exc:
        _advance(service, CopyEditingStage.AUTHOR_APPROVED)
    assert exc.value.status_code == 400
    assert exc.value.detail == "Invalid copy-editing transition: none -> author-approved"


def test_only_author_answers_author_review(service, db):
    db.get("manuscripts", "ms-1")["copy_editing_stage"] = "author-review"
    with pytest.raises(HTTPException) as exc:
        _advance(service, CopyEditingStage.AUTHOR_APPROVED, actor=COPY_EDITOR, roles=("copy_editor",))
    assert exc.value.status_code == 403


def test_author_cannot_drive_editorial_stages(service, db):
    db.get("manuscripts", "ms-1")["copy_editing_stage"] = "copy-editing"
    with pytest.raises(HTTPException) as exc:
        _advance(service, CopyEditingStage.AUTHOR_REVIEW, actor=AUTHOR, roles=("author",))
    assert exc.value.status_code == 403


def test_copy_editor_cannot_be_reassigned_after_author_review(service, db):
    db.get("manuscripts", "ms-1")["copy_editing_stage"] = "author-approved"
    with pytest.raises(HTTPException):
        service.assign_copy_editor("ms-1", "ce-2", actor_id=EDITOR)
