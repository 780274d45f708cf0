from __future__ import annotations

import logging
from typing import Any, Optional

from app.core.config import JournalConfig
from app.core.doi_generator import (
    MAX_SEQUENCE,
    correction_scope,
    doi_url,
    format_doi,
    manuscript_scope,
    parse_doi,
    validate_journal_doi,
)
from app.lib.api_client import supabase_admin
from app.models.doi import DOIReservation, DOIType, DOIValidationResult, ParsedDOI
from app.services.service_common import is_unique_violation, now_iso, rows_of

logger = logging.getLogger("journalflow.doi")

RESERVATIONS_TABLE = "doi_reservations"


class DOISequenceExhausted(RuntimeError):
    """作用域内 3 位序号已用尽（> 999）。"""


class DOIReservationConflict(RuntimeError):
    """并发冲突重试次数耗尽。"""


class DOIService:
    """
    期刊 DOI 服务：生成、校验、解析、唯一性检查。

    中文注释:
    - 旧逻辑“count 已发布稿件 + 1”在并发发布时会产生重复 DOI（先读后写竞争）。
    - 这里改为在 `doi_reservations` 表上做“唯一约束 + 冲突重试”的预留：
      1) 读取作用域内最大序号，候选 = max + 1；
      2) 若候选 DOI 已被稿件/勘误占用（人工改过 DOI），直接跳过；
      3) 插入预留行，doi 列唯一；遇 23505 说明并发方抢先，重新读取 max 再 +1；
      4) 重试上限由 JournalConfig.reservation_max_attempts 控制。
    """

    def __init__(self, config: Optional[JournalConfig] = None, *, client: Any | None = None):
        self.config = config or JournalConfig.from_env()
        self.client = client or supabase_admin

    # --- 纯格式操作 ---

    def validate(self, doi: Optional[str]) -> bool:
        return validate_journal_doi(doi, prefix=self.config.doi_prefix, journal_code=self.config.journal_code)

    def parse(self, doi: Optional[str]) -> Optional[ParsedDOI]:
        return parse_doi(doi, prefix=self.config.doi_prefix, journal_code=self.config.journal_code)

    def describe(self, doi: str) -> DOIValidationResult:
        parsed = self.parse(doi)
        return DOIValidationResult(
            doi=doi,
            valid=parsed is not None,
            parsed=parsed,
            url=doi_url(doi) if parsed is not None else None,
        )

    # --- 数据读取 ---

    def _last_sequence(self, scope: str) -> int:
        resp = (
            self.client.table(RESERVATIONS_TABLE)
            .select("sequence")
            .eq("scope", scope)
            .order("sequence", desc=True)
            .limit(1)
            .execute()
        )
        rows = rows_of(resp)
        if not rows:
            return 0
        try:
            return int(rows[0].get("sequence") or 0)
        except (TypeError, ValueError):
            return 0

    def is_doi_unique(self, doi: str, exclude_id: Optional[str] = None) -> bool:
        """
        DOI 在 manuscripts 与 corrections 两个集合中都不存在（可排除一个文档 id）。
        """
        for table in ("manuscripts", "corrections"):
            query = self.client.table(table).select("id").eq("doi", doi)
            if exclude_id:
                query = query.neq("id", str(exclude_id))
            rows = rows_of(query.limit(1).execute())
            if rows:
                return False
        return True

    # --- 预留 ---

    def _reserve(self, scope: str, kind: DOIType, owner_id: Optional[str]) -> DOIReservation:
        sequence = self._last_sequence(scope) + 1
        max_attempts = self.config.reservation_max_attempts

        for attempt in range(1, max_attempts + 1):
            if sequence > MAX_SEQUENCE:
                raise DOISequenceExhausted(f"DOI sequence exhausted for scope {scope}")

            doi = format_doi(
                scope,
                sequence,
                prefix=self.config.doi_prefix,
                journal_code=self.config.journal_code,
            )

            if not self.is_doi_unique(doi, exclude_id=owner_id):
                logger.info("DOI %s already assigned outside reservations, skipping", doi)
                sequence += 1
                continue

            row = {
                "doi": doi,
                "scope": scope,
                "sequence": sequence,
                "kind": kind.value,
                "owner_id": owner_id,
                "reserved_at": now_iso(),
            }
            try:
                self.client.table(RESERVATIONS_TABLE).insert(row).execute()
            except Exception as e:
                if not is_unique_violation(e):
                    raise
                logger.info("DOI %s taken concurrently (attempt %s/%s), retrying", doi, attempt, max_attempts)
                sequence = max(sequence, self._last_sequence(scope)) + 1
                continue

            return DOIReservation(doi=doi, scope=scope, sequence=sequence, kind=kind, attempts=attempt)

        raise DOIReservationConflict(f"Could not reserve a DOI in scope {scope} after {max_attempts} attempts")

    def reserve_manuscript_doi(
        self, year: int, volume: int, issue: int = 1, *, owner_id: Optional[str] = None
    ) -> DOIReservation:
        return self._reserve(manuscript_scope(year, volume, issue), DOIType.MANUSCRIPT, owner_id)

    def reserve_correction_doi(self, year: int, *, owner_id: Optional[str] = None) -> DOIReservation:
        return self._reserve(correction_scope(year), DOIType.CORRECTION, owner_id)

    def generate_manuscript_doi(
        self, year: int, volume: int, issue: int = 1, *, owner_id: Optional[str] = None
    ) -> str:
        return self.reserve_manuscript_doi(year, volume, issue, owner_id=owner_id).doi

    def generate_correction_doi(self, year: int, *, owner_id: Optional[str] = None) -> str:
        return self.reserve_correction_doi(year, owner_id=owner_id).doi


def get_doi_service() -> DOIService:
    return DOIService()
