import pytest
from fastapi import HTTPException

from app.core.config import JournalConfig
from app.models.correction import CorrectionCreate, CorrectionType
from app.services.correction_service import CorrectionService
from app.services.doi_service import DOIService


@pytest.fixture
def service(db) -> CorrectionService:
    config = JournalConfig(doi_prefix="10.1578", journal_code="gjadt", journal_title="T", reservation_max_attempts=5)
    db.seed("manuscripts", {"id": "pub", "status": "published"}, {"id": "draft", "status": "accepted"})
    return CorrectionService(client=db, doi_service=DOIService(config, client=db))


def _payload(manuscript_id: str = "pub") -> CorrectionCreate:
    return CorrectionCreate(
        manuscript_id=manuscript_id,
        type=CorrectionType.ERRATUM,
        title="Erratum: Table 2",
        description="Units were wrong",
        reason="Typo",
    )


def test_corrections_only_for_published_manuscripts(service):
    with pytest.raises(HTTPException) as exc:
        service.create(_payload("draft"), user_id="author-1")
    assert exc.value.status_code == 400


def test_review_and_publish_assigns_correction_doi(service, db):
    correction = service.create(_payload(), user_id="author-1")
    assert correction["status"] == "pending"

    with pytest.raises(HTTPException):
        service.publish(correction["id"], actor_id="ed-1", year=2025)

    service.review(correction["id"], decision="approve", reviewer_id="ed-1", notes=None)
    published = service.publish(correction["id"], actor_id="ed-1", year=2025)
    assert published["status"] == "published"
    assert published["doi"] == "10.1578/gjadt202500001"
    assert published["is_public"] is True

    second = service.create(_payload(), user_id="author-1")
    service.review(second["id"], decision="approve", reviewer_id="ed-1", notes="ok")
    assert service.publish(second["id"], actor_id="ed-1", year=2025)["doi"] == "10.1578/gjadt202500002"

    assert len(service.list_corrections(public_only=True)) == 2


def test_rejected_correction_cannot_be_reviewed_again(service):
    correction = service.create(_payload(), user_id="author-1")
    rejected = service.review(correction["id"], decision="reject", reviewer_id="ed-1", notes="Not an error")
    assert rejected["status"] == "rejected"
    with pytest.raises(HTTPException):
        service.review(correction["id"], decision="approve", reviewer_id="ed-1", notes=None)
