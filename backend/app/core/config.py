import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    return lowered in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, default: int) -> int:
    raw = (os.environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class AppConfig:
    """
    Application Environment Config
    """
    env: str  # 'development', 'staging', 'production'
    is_staging: bool
    supabase_url: str
    supabase_key: str

    @staticmethod
    def from_env() -> "AppConfig":
        env = (os.environ.get("APP_ENV") or "development").strip().lower()
        is_staging = env == "staging"

        # Staging 与 production 在平台层切换 SUPABASE_URL，这里只读统一变量名。
        supabase_url = (os.environ.get("SUPABASE_URL") or "").strip()
        supabase_key = (os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()

        return AppConfig(
            env=env,
            is_staging=is_staging,
            supabase_url=supabase_url,
            supabase_key=supabase_key,
        )


# Global Config Instance
app_config = AppConfig.from_env()


@dataclass(frozen=True)
class JournalConfig:
    """
    期刊 DOI 配置

    中文注释:
    1) DOI 形如 `10.1578/gjadt{year}{volume2}{issue2}{seq3}`，前缀与期刊代码可配置。
    2) reservation_max_attempts 控制并发冲突时的重试上限（唯一约束 + 重试）。
    """

    doi_prefix: str
    journal_code: str
    journal_title: str
    reservation_max_attempts: int

    @staticmethod
    def from_env() -> "JournalConfig":
        doi_prefix = (os.environ.get("JOURNAL_DOI_PREFIX") or "10.1578").strip()
        journal_code = (os.environ.get("JOURNAL_CODE") or "gjadt").strip().lower()
        journal_title = (
            os.environ.get("JOURNAL_TITLE") or "Global Journal of Advanced Dental Technology"
        ).strip()
        attempts = _env_int("DOI_RESERVATION_MAX_ATTEMPTS", 5)

        return JournalConfig(
            doi_prefix=doi_prefix,
            journal_code=journal_code,
            journal_title=journal_title,
            reservation_max_attempts=max(1, attempts),
        )


@dataclass(frozen=True)
class StripeConfig:
    """
    Stripe 支付网关配置（APC 收费）

    中文注释:
    - secret_key 缺省时支付意图接口返回 503，其余流程（减免/银行转账）不受影响。
    """

    secret_key: str
    webhook_secret: str
    currency: str

    @staticmethod
    def from_env() -> Optional["StripeConfig"]:
        secret_key = (os.environ.get("STRIPE_SECRET_KEY") or "").strip()
        if not secret_key:
            return None

        webhook_secret = (os.environ.get("STRIPE_WEBHOOK_SECRET") or "").strip()
        currency = (os.environ.get("STRIPE_CURRENCY") or "usd").strip().lower()

        return StripeConfig(
            secret_key=secret_key,
            webhook_secret=webhook_secret,
            currency=currency,
        )


@dataclass(frozen=True)
class SentryConfig:
    enabled: bool
    dsn: str
    environment: str
    traces_sample_rate: float

    @staticmethod
    def from_env() -> "SentryConfig":
        dsn = (os.environ.get("SENTRY_DSN") or "").strip()
        enabled = _env_bool("SENTRY_ENABLED", bool(dsn))
        environment = (
            os.environ.get("SENTRY_ENVIRONMENT") or os.environ.get("APP_ENV") or "development"
        ).strip()

        rate_raw = (os.environ.get("SENTRY_TRACES_SAMPLE_RATE") or "0").strip()
        try:
            traces_sample_rate = float(rate_raw)
        except ValueError:
            traces_sample_rate = 0.0

        return SentryConfig(
            enabled=enabled,
            dsn=dsn,
            environment=environment,
            traces_sample_rate=traces_sample_rate,
        )
