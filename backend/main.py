import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# 在应用启动前加载环境变量
load_dotenv()

logger = logging.getLogger("journalflow.startup")

_SENTRY_ENABLED = False
try:
    from app.core.sentry_init import init_sentry

    _SENTRY_ENABLED = init_sentry()
    if _SENTRY_ENABLED:
        logger.info("[sentry] enabled")
except Exception as e:
    # 中文注释: 零崩溃原则，Sentry 任何异常不得阻塞启动
    logger.warning("[sentry] init failed (ignored): %s", e)

from app.api.v1 import (
    corrections,
    doi,
    fee_config,
    manuscripts,
    notifications,
    payments,
    users,
    volumes,
)
from app.core.config import JournalConfig, StripeConfig
from app.core.middleware import ExceptionHandlerMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    journal = JournalConfig.from_env()
    logger.info(
        "JournalFlow starting: journal=%s doi_prefix=%s code=%s",
        journal.journal_title,
        journal.doi_prefix,
        journal.journal_code,
    )
    if StripeConfig.from_env() is None:
        # 中文注释: 未配置 Stripe 时在线支付接口返回 503，其余流程不受影响
        logger.warning("STRIPE_SECRET_KEY not set, online card payments are disabled")
    yield


app = FastAPI(
    title="JournalFlow API",
    description="Journal publishing backend: APC fees, DOI registration and publication workflow",
    version="1.0.0",
    lifespan=lifespan,
)

if _SENTRY_ENABLED:
    try:
        from sentry_sdk.integrations.asgi import SentryAsgiMiddleware

        app.add_middleware(SentryAsgiMiddleware)
    except Exception as e:
        logger.warning("[sentry] middleware attach failed (ignored): %s", e)


def _parse_frontend_origins() -> list[str]:
    """
    解析允许跨域的前端 Origins。

    中文注释:
    - 本地默认: http://localhost:3000
    - 生产/预发: 通过 FRONTEND_ORIGIN 或 FRONTEND_ORIGINS 注入（逗号分隔）
    """
    origins: list[str] = []

    single = (os.environ.get("FRONTEND_ORIGIN") or "").strip()
    if single:
        origins.append(single.rstrip("/"))

    many = (os.environ.get("FRONTEND_ORIGINS") or "").strip()
    for part in many.split(","):
        o = part.strip().rstrip("/")
        if o:
            origins.append(o)

    if not origins:
        origins = ["http://localhost:3000"]

    # 去重保持顺序
    return list(dict.fromkeys(origins))


# === 中间件配置 ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=_parse_frontend_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ExceptionHandlerMiddleware)

# === 路由注册 ===
app.include_router(users.router, prefix="/api/v1")
app.include_router(fee_config.router, prefix="/api/v1")
app.include_router(payments.router, prefix="/api/v1")
app.include_router(manuscripts.router, prefix="/api/v1")
app.include_router(volumes.router, prefix="/api/v1")
app.include_router(corrections.router, prefix="/api/v1")
app.include_router(doi.router, prefix="/api/v1")
app.include_router(notifications.router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"message": "JournalFlow API is running", "docs": "/docs"}
