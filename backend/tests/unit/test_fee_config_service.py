import pytest

from app.models.fee_config import FeeConfig
from app.services.fee_config_service import FEE_CONFIG_TABLE, FeeConfigMissing, FeeConfigService


def test_missing_config_raises(db):
    with pytest.raises(FeeConfigMissing):
        FeeConfigService(client=db).get_active_config()


def test_inactive_config_is_not_used(db):
    db.seed(FEE_CONFIG_TABLE, {"name": "default", "base_fee": 10, "is_active": False})
    with pytest.raises(FeeConfigMissing):
        FeeConfigService(client=db).calculate("research", "US")


def test_missing_table_is_treated_as_missing_config(db):
    db.errors[(FEE_CONFIG_TABLE, "select")] = RuntimeError('relation "public.fee_configs" does not exist')
    with pytest.raises(FeeConfigMissing):
        FeeConfigService(client=db).get_active_config()


def test_calculate_uses_stored_config(seeded_fee_config):
    result = FeeConfigService(client=seeded_fee_config).calculate("review", "CN")
    assert result.base_fee == 1500
    assert result.final_fee == 1050


def test_save_config_upserts_single_default_document(db):
    service = FeeConfigService(client=db)
    service.save_config(FeeConfig(base_fee=100), user_id="admin-1")
    saved = service.save_config(FeeConfig(base_fee=250, currency="EUR"), user_id="admin-2")

    rows = db.rows(FEE_CONFIG_TABLE)
    assert len(rows) == 1
    assert rows[0]["last_modified_by"] == "admin-2"
    assert saved.base_fee == 250
    assert service.calculate("research").currency == "EUR"


def test_reset_to_default_restores_builtin_table(db):
    service = FeeConfigService(client=db)
    service.save_config(FeeConfig(base_fee=1), user_id="admin-1")
    restored = service.reset_to_default(user_id="admin-1")
    assert restored.base_fee == 2000
    assert {c.country for c in restored.country_discounts} == {"AF", "BD", "ET", "IN", "CN", "BR"}
    assert service.calculate("research", "NP").is_waiver is True


def test_public_summary_hides_institution_deals(seeded_fee_config):
    summary = FeeConfigService(client=seeded_fee_config).public_summary()
    assert summary["base_fee"] == 2000
    assert "institution_discounts" not in summary
    assert {"article_type": "letter", "fee": 500} in summary["article_type_fees"]
