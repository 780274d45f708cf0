import pytest

from fake_supabase import FakeSupabase

from app.core.auth_utils import get_current_user
from app.core.config import JournalConfig, StripeConfig
from app.core.roles import get_current_profile
from app.models.fee_config import default_fee_config
from app.services.doi_service import DOIService, get_doi_service
from app.services.fee_config_service import FeeConfigService, get_fee_config_service
from app.services.payment_service import PaymentService, get_payment_service
from app.services.publishing_service import PublishingService, get_publishing_service
from app.services.user_service import UserService, get_user_service
from app.services.volume_service import VolumeService
from main import app

CONFIG = JournalConfig(doi_prefix="10.1578", journal_code="gjadt", journal_title="T", reservation_max_attempts=5)


def _as(profile: dict) -> None:
    async def _profile() -> dict:
        return profile

    app.dependency_overrides[get_current_profile] = _profile


AUTHOR = {"id": "author-1", "email": "a@example.com", "roles": ["author"], "active_role": "author"}
EDITOR = {"id": "editor-1", "email": "e@example.com", "roles": ["editor", "author"], "active_role": "editor"}


@pytest.fixture
def db() -> FakeSupabase:
    db = FakeSupabase()
    app.dependency_overrides[get_doi_service] = lambda: DOIService(CONFIG, client=db)
    app.dependency_overrides[get_fee_config_service] = lambda: FeeConfigService(client=db)
    return db


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["message"] == "JournalFlow API is running"
    assert "x-process-time" in response.headers


@pytest.mark.asyncio
async def test_validate_and_parse_doi(client, db):
    response = await client.post("/api/v1/doi/validate", json={"doi": "10.1578/gjadt20250101001"})
    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is True
    assert body["parsed"]["type"] == "manuscript"
    assert body["url"] == "https://doi.org/10.1578/gjadt20250101001"

    response = await client.get("/api/v1/doi/parse/10.1578/gjadt202500007")
    assert response.status_code == 200
    assert response.json() == {"type": "correction", "year": 2025, "volume": None, "issue": None, "sequence": 7}

    response = await client.get("/api/v1/doi/parse/10.1578/other20250101001")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_reserve_doi_requires_editor(client, db):
    _as(AUTHOR)
    response = await client.post("/api/v1/doi/reserve/manuscript", json={"year": 2025, "volume": 1, "issue": 1})
    assert response.status_code == 403

    _as(EDITOR)
    response = await client.post("/api/v1/doi/reserve/manuscript", json={"year": 2025, "volume": 1, "issue": 1})
    assert response.status_code == 201
    assert response.json()["doi"] == "10.1578/gjadt20250101001"

    response = await client.post("/api/v1/doi/reserve/correction", json={"year": 2025})
    assert response.json()["doi"] == "10.1578/gjadt202500001"

    response = await client.get("/api/v1/doi/unique", params={"doi": "10.1578/gjadt20250101001"})
    assert response.json()["unique"] is False


@pytest.mark.asyncio
async def test_public_fees_and_calculation(client, db):
    response = await client.get("/api/v1/fee-config/public")
    assert response.status_code == 404

    db.seed("fee_configs", default_fee_config().model_dump(mode="json"))
    response = await client.get("/api/v1/fee-config/public")
    assert response.status_code == 200
    assert response.json()["data"]["base_fee"] == 2000

    app.dependency_overrides[get_current_user] = lambda: {"id": "author-1", "email": "a@example.com"}
    response = await client.post("/api/v1/fee-config/calculate", json={"article_type": "research", "country": "IN"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["final_fee"] == 1000
    assert data["discount_amount"] == 1000


@pytest.mark.asyncio
async def test_fee_config_admin_only(client, db):
    _as(EDITOR)
    response = await client.get("/api/v1/fee-config")
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_calculate_requires_token(client, db):
    response = await client.post("/api/v1/fee-config/calculate", json={"article_type": "research"})
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_me_and_active_role_switch(client, db):
    db.seed("user_profiles", dict(EDITOR))
    app.dependency_overrides[get_user_service] = lambda: UserService(client=db, notifications=None)
    _as(dict(EDITOR))

    response = await client.get("/api/v1/users/me")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["roles"] == ["editor", "author"]
    assert "doi:reserve" in data["allowed_actions"]

    response = await client.post("/api/v1/users/me/active-role", json={"role": "author"})
    assert response.status_code == 200
    assert response.json()["data"]["active_role"] == "author"

    response = await client.post("/api/v1/users/me/active-role", json={"role": "admin"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_without_stripe_config_is_503(client, db, monkeypatch):
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
    app.dependency_overrides[get_payment_service] = lambda: PaymentService(client=db)

    response = await client.post("/api/v1/payments/webhook", content=b"{}")
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_webhook_without_signature_is_400(client, db):
    stripe_cfg = StripeConfig(secret_key="sk_test_x", webhook_secret="whsec_x", currency="usd")
    app.dependency_overrides[get_payment_service] = lambda: PaymentService(client=db, config=stripe_cfg)

    response = await client.post("/api/v1/payments/webhook", content=b"{}")
    assert response.status_code == 400
    assert response.json()["detail"] == "No signature"


@pytest.mark.asyncio
async def test_publish_issue_rejects_unapproved_manuscripts(client, db):
    db.seed(
        "volumes",
        {
            "id": "vol-1",
            "number": 1,
            "year": 2025,
            "status": "draft",
            "issues": [{"id": "iss-1", "number": 1, "is_published": False, "manuscripts": ["ms-1"]}],
        },
    )
    db.seed("manuscripts", {"id": "ms-1", "author_id": "author-1", "status": "ready-for-publication", "copy_editing_stage": "copy-editing"})
    app.dependency_overrides[get_publishing_service] = lambda: PublishingService(
        client=db,
        doi_service=DOIService(CONFIG, client=db),
        volume_service=VolumeService(client=db),
        notifications=None,
    )

    _as(AUTHOR)
    response = await client.post("/api/v1/issues/iss-1/publish")
    assert response.status_code == 403

    _as(EDITOR)
    response = await client.post("/api/v1/issues/iss-1/publish")
    assert response.status_code == 400
    assert "author-approved" in response.json()["detail"]
    assert db.get("manuscripts", "ms-1")["status"] == "ready-for-publication"
