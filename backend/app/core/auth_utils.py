import logging
import os

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.lib.api_client import supabase

logger = logging.getLogger("journalflow.auth")

# === Auth 核心配置 ===
# 中文注释:
# 1. 密钥来源于 Supabase Project Settings 中的 JWT Secret。
# 2. 非 HS256 token（JWT Signing Keys）走 Auth API 校验。
SUPABASE_JWT_SECRET = os.environ.get("SUPABASE_JWT_SECRET", "mock-secret-replace-later")
ALGORITHM = "HS256"

security = HTTPBearer()


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """
    解码并验证 Supabase JWT Token，返回 {"id", "email"}。
    """
    token = credentials.credentials
    try:
        header = jwt.get_unverified_header(token)
        if header.get("alg") == ALGORITHM and SUPABASE_JWT_SECRET:
            payload = jwt.decode(token, SUPABASE_JWT_SECRET, algorithms=[ALGORITHM], audience="authenticated")
            user_id = payload.get("sub")
            if user_id is None:
                raise HTTPException(status_code=401, detail="Invalid token payload")
            return {"id": user_id, "email": payload.get("email")}

        try:
            response = supabase.auth.get_user(token)
            user = response.user if response else None
        except Exception as e:
            # Supabase 配置缺失/网络异常统一视为鉴权失败，不泄露 500
            logger.warning("JWT fallback verification failed: %s", e)
            raise HTTPException(status_code=401, detail="Token invalid or expired")

        if not user:
            raise HTTPException(status_code=401, detail="Invalid token payload")
        return {"id": user.id, "email": user.email}
    except JWTError as e:
        logger.info("JWT verification failed: %s", e)
        raise HTTPException(status_code=401, detail="Token invalid or expired")

