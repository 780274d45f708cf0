import time
import logging
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

# === 结构化日志配置 ===
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("journalflow")


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """
    统一异常捕获中间件

    中文注释:
    - 每个请求记录 method/path/status/耗时。
    - 未捕获异常统一转换为 500 + {"detail", "type"}，堆栈只进日志（以及 Sentry）。
    """
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.info(
                "Method: %s Path: %s Status: %s Time: %.4fs",
                request.method,
                request.url.path,
                response.status_code,
                process_time,
            )
            response.headers["X-Process-Time"] = f"{process_time:.4f}"
            return response
        except HTTPException as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.detail, "type": "http_exception"},
            )
        except Exception as e:
            logger.error("Unhandled Exception: %s", e, exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error, please contact the editorial office", "type": "server_error"},
            )
