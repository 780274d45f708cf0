from __future__ import annotations

import re
from typing import Optional

from app.models.doi import DOIType, ParsedDOI

DEFAULT_PREFIX = "10.1578"
DEFAULT_JOURNAL_CODE = "gjadt"
CORRECTION_MARKER = "00"
MAX_SEQUENCE = 999


class DOIFormatError(ValueError):
    """year/volume/issue/sequence 超出固定位宽时抛出。"""


def _check_width(name: str, value: int, low: int, high: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise DOIFormatError(f"{name} must be an integer") from e
    if number < low or number > high:
        raise DOIFormatError(f"{name} must be between {low} and {high}, got {number}")
    return number


def journal_stem(prefix: str = DEFAULT_PREFIX, journal_code: str = DEFAULT_JOURNAL_CODE) -> str:
    return f"{prefix}/{journal_code}"


def manuscript_scope(year: int, volume: int, issue: int = 1) -> str:
    """
    序号作用域 `YYYYVVII`（同一年/卷/期内序号连续）。
    """
    y = _check_width("year", year, 1000, 9999)
    v = _check_width("volume", volume, 1, 99)
    i = _check_width("issue", issue, 1, 99)
    return f"{y:04d}{v:02d}{i:02d}"


def correction_scope(year: int) -> str:
    y = _check_width("year", year, 1000, 9999)
    return f"{y:04d}{CORRECTION_MARKER}"


def format_doi(
    scope: str,
    sequence: int,
    *,
    prefix: str = DEFAULT_PREFIX,
    journal_code: str = DEFAULT_JOURNAL_CODE,
) -> str:
    seq = _check_width("sequence", sequence, 1, MAX_SEQUENCE)
    return f"{journal_stem(prefix, journal_code)}{scope}{seq:03d}"


def _patterns(prefix: str, journal_code: str) -> tuple[re.Pattern[str], re.Pattern[str]]:
    stem = re.escape(journal_stem(prefix, journal_code))
    manuscript = re.compile(rf"{stem}(\d{{4}})(\d{{2}})(\d{{2}})(\d{{3}})")
    correction = re.compile(rf"{stem}(\d{{4}}){CORRECTION_MARKER}(\d{{3}})")
    return manuscript, correction


def validate_journal_doi(
    doi: Optional[str],
    *,
    prefix: str = DEFAULT_PREFIX,
    journal_code: str = DEFAULT_JOURNAL_CODE,
) -> bool:
    if not isinstance(doi, str):
        return False
    manuscript, correction = _patterns(prefix, journal_code)
    # re 的 \d 会匹配全角等 Unicode 数字，这里限定 ASCII
    if not doi.isascii():
        return False
    return bool(manuscript.fullmatch(doi) or correction.fullmatch(doi))


def parse_doi(
    doi: Optional[str],
    *,
    prefix: str = DEFAULT_PREFIX,
    journal_code: str = DEFAULT_JOURNAL_CODE,
) -> Optional[ParsedDOI]:
    """
    解析期刊 DOI；格式不合法时返回 None（不抛异常）。

    中文注释:
    - 严格按位置切分：YYYY + VV + II + SSS（稿件）或 YYYY + 00 + SSS（勘误）。
    - 勘误 DOI 共 9 位数字，稿件 DOI 共 11 位数字，两者长度不同不会混淆。
    """
    if not validate_journal_doi(doi, prefix=prefix, journal_code=journal_code):
        return None

    manuscript, correction = _patterns(prefix, journal_code)
    matched = correction.fullmatch(doi)
    if matched:
        return ParsedDOI(
            type=DOIType.CORRECTION,
            year=int(matched.group(1)),
            sequence=int(matched.group(2)),
        )

    matched = manuscript.fullmatch(doi)
    return ParsedDOI(
        type=DOIType.MANUSCRIPT,
        year=int(matched.group(1)),
        volume=int(matched.group(2)),
        issue=int(matched.group(3)),
        sequence=int(matched.group(4)),
    )


def doi_url(doi: str) -> str:
    return f"https://doi.org/{doi}"
