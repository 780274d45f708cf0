from __future__ import annotations

import logging
from typing import Any, Optional

from app.core.fee_calculator import calculate_fee
from app.lib.api_client import supabase_admin
from app.models.fee_config import FeeCalculation, FeeConfig, default_fee_config
from app.services.service_common import first_row, looks_like_missing_schema, now_iso

logger = logging.getLogger("journalflow.fees")

FEE_CONFIG_TABLE = "fee_configs"
DEFAULT_CONFIG_NAME = "default"


class FeeConfigMissing(LookupError):
    """没有生效中的收费配置；上游应转换为 404，而不是进入计算。"""


class FeeConfigService:
    """
    收费配置存取 + APC 计算入口。

    中文注释:
    - 配置为单文档（name='default'），折扣表等以 jsonb 数组存储。
    - 计算本身是纯函数（app.core.fee_calculator），这里只负责“先确认配置存在”。
    """

    def __init__(self, client: Any | None = None):
        self.client = client or supabase_admin

    def _load_row(self, name: str = DEFAULT_CONFIG_NAME) -> Optional[dict[str, Any]]:
        try:
            resp = (
                self.client.table(FEE_CONFIG_TABLE)
                .select("*")
                .eq("name", name)
                .eq("is_active", True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            if looks_like_missing_schema(str(e)):
                logger.warning("fee_configs table missing: %s", e)
                return None
            raise
        return first_row(resp)

    def get_active_config(self) -> FeeConfig:
        row = self._load_row()
        if not row:
            raise FeeConfigMissing("Fee configuration not available. Please contact administrator.")
        return FeeConfig.model_validate(row)

    def calculate(
        self,
        article_type: str,
        country: Optional[str] = None,
        institution: Optional[str] = None,
    ) -> FeeCalculation:
        config = self.get_active_config()
        result = calculate_fee(config, article_type, country, institution)
        logger.info(
            "Fee calculated: type=%s country=%s base=%s final=%s waiver=%s",
            article_type,
            country,
            result.base_fee,
            result.final_fee,
            result.is_waiver,
        )
        return result

    def save_config(self, config: FeeConfig, *, user_id: str) -> FeeConfig:
        payload = config.model_dump(mode="json")
        payload["name"] = DEFAULT_CONFIG_NAME
        payload["last_modified_by"] = user_id
        payload["updated_at"] = now_iso()
        resp = self.client.table(FEE_CONFIG_TABLE).upsert(payload, on_conflict="name").execute()
        row = first_row(resp) or payload
        return FeeConfig.model_validate(row)

    def reset_to_default(self, *, user_id: str) -> FeeConfig:
        logger.info("Fee configuration reset to defaults by %s", user_id)
        return self.save_config(default_fee_config(), user_id=user_id)

    def public_summary(self) -> dict[str, Any]:
        config = self.get_active_config()
        return {
            "currency": config.currency,
            "base_fee": config.base_fee,
            "article_type_fees": [row.model_dump() for row in config.article_type_fees],
            "automatic_waiver_countries": list(config.automatic_waiver_countries),
            "country_discounts": [
                {
                    "country": row.country,
                    "discount_type": row.discount_type.value,
                    "discount_value": row.discount_value,
                    "description": row.description,
                }
                for row in config.country_discounts
            ],
            "payment_deadline_days": config.payment_deadline_days,
            "allow_waiver_requests": config.allow_waiver_requests,
            "supported_payment_methods": list(config.supported_payment_methods),
        }


def get_fee_config_service() -> FeeConfigService:
    return FeeConfigService()
