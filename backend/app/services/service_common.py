from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import HTTPException


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def looks_like_single_no_rows(error_text: str) -> bool:
    lowered = (error_text or "").lower()
    return (
        "pgrst116" in lowered
        or "cannot coerce the result to a single json object" in lowered
        or "0 rows" in lowered
    )


def looks_like_missing_schema(error_text: str) -> bool:
    lowered = (error_text or "").lower()
    return (
        "pgrst205" in lowered
        or "schema cache" in lowered
        or "does not exist" in lowered
        or "undefinedtable" in lowered
    )


def is_unique_violation(error: BaseException) -> bool:
    """
    PostgREST 唯一约束冲突（Postgres 23505）。

    中文注释: postgrest APIError 在不同版本里字段不完全一致，code 缺失时从字符串兜底。
    """
    code = str(getattr(error, "code", "") or "").lower()
    if code == "23505":
        return True
    text = str(error).lower()
    return "23505" in text or "duplicate key" in text


def rows_of(resp: Any) -> list[dict[str, Any]]:
    data = getattr(resp, "data", None)
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)


def first_row(resp: Any) -> Optional[dict[str, Any]]:
    rows = rows_of(resp)
    return rows[0] if rows else None


def load_one(client: Any, table: str, row_id: str, *, columns: str = "*") -> Optional[dict[str, Any]]:
    """
    按 id 读取单行；不存在返回 None，表未迁移转 500。
    """
    try:
        resp = client.table(table).select(columns).eq("id", row_id).limit(1).execute()
        return first_row(resp)
    except Exception as e:
        if looks_like_single_no_rows(str(e)):
            return None
        if looks_like_missing_schema(str(e)):
            raise HTTPException(status_code=500, detail=f"DB not migrated: {table} table missing") from e
        raise


def require_one(client: Any, table: str, row_id: str, *, label: str, columns: str = "*") -> dict[str, Any]:
    row = load_one(client, table, row_id, columns=columns)
    if not row:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return row


def update_one(client: Any, table: str, row_id: str, updates: dict[str, Any], *, label: str) -> dict[str, Any]:
    payload = dict(updates)
    payload.setdefault("updated_at", now_iso())
    resp = client.table(table).update(payload).eq("id", row_id).execute()
    row = first_row(resp)
    if not row:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return row


def timeline_event(event: str, description: str, performed_by: Optional[str]) -> dict[str, Any]:
    return {
        "event": event,
        "description": description,
        "performed_by": performed_by,
        "date": now_iso(),
    }
