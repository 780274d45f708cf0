from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from app.models.fee_config import DiscountType, FeeCalculation, FeeConfig

_CENT = Decimal("0.01")
_ZERO = Decimal("0")


def _money(value: float | int | Decimal) -> Decimal:
    # 中文注释: 所有金额统一 round-half-up 到 2 位小数，保证测试输出可复现。
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def _apply_discount(fee: Decimal, discount_type: str, value: float) -> Decimal:
    if discount_type == DiscountType.PERCENTAGE.value:
        pct = Decimal(str(value))
        discounted = fee * (Decimal("1") - pct / Decimal("100"))
    elif discount_type == DiscountType.FIXED_AMOUNT.value:
        discounted = fee - Decimal(str(value))
    else:
        discounted = fee
    return max(_ZERO, _money(discounted))


def _result(
    base: Decimal,
    final: Decimal,
    *,
    reason: str,
    is_waiver: bool,
    currency: str,
) -> FeeCalculation:
    return FeeCalculation(
        base_fee=float(base),
        final_fee=float(final),
        discount_amount=float(base - final),
        discount_reason=reason,
        is_waiver=is_waiver,
        currency=currency,
    )


def lookup_base_fee(config: FeeConfig, article_type: Optional[str]) -> Decimal:
    key = (article_type or "").strip().lower()
    for row in config.article_type_fees:
        if row.article_type.strip().lower() == key:
            return _money(row.fee)
    return _money(config.base_fee)


def calculate_fee(
    config: FeeConfig,
    article_type: Optional[str],
    country: Optional[str] = None,
    institution: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> FeeCalculation:
    """
    APC 计算（纯函数，不抛异常）。

    优先级（先命中者生效）:
    1. country ∈ automatic_waiver_countries -> 全额减免
    2. country 命中 country_discounts -> waiver / percentage / fixed_amount
    3. institution 命中未过期的 institution_discounts -> percentage / fixed_amount
    4. 无折扣

    中文注释:
    - 未知 article_type 回退到 base_fee；未知 country 视为无折扣（fail open）。
    - 只有走 waiver 分支才 is_waiver=True；100% 折扣得到 0 元但不算 waiver。
    """
    base = lookup_base_fee(config, article_type)
    currency = config.currency
    code = (country or "").strip().upper()

    if code and code in config.automatic_waiver_countries:
        return _result(base, _ZERO, reason="Automatic waiver for low-income country", is_waiver=True, currency=currency)

    if code:
        for rule in config.country_discounts:
            if rule.country != code:
                continue
            if rule.discount_type == DiscountType.WAIVER:
                return _result(base, _ZERO, reason=rule.description or "Country-based waiver", is_waiver=True, currency=currency)
            final = _apply_discount(base, rule.discount_type.value, rule.discount_value)
            if rule.discount_type == DiscountType.PERCENTAGE:
                fallback = f"{rule.discount_value:g}% country-based discount"
            else:
                fallback = f"{rule.discount_value:g} {currency} country-based discount"
            return _result(base, final, reason=rule.description or fallback, is_waiver=False, currency=currency)

    name = (institution or "").strip().lower()
    if name:
        moment = now or datetime.now(timezone.utc)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        for rule in config.institution_discounts:
            if rule.institution_name.strip().lower() != name:
                continue
            if rule.valid_until is not None:
                valid_until = rule.valid_until
                if valid_until.tzinfo is None:
                    valid_until = valid_until.replace(tzinfo=timezone.utc)
                if valid_until <= moment:
                    continue
            final = _apply_discount(base, rule.discount_type, rule.discount_value)
            if rule.discount_type == "percentage":
                fallback = f"{rule.discount_value:g}% institutional discount"
            else:
                fallback = f"{rule.discount_value:g} {currency} institutional discount"
            return _result(base, final, reason=rule.description or fallback, is_waiver=False, currency=currency)

    return _result(base, base, reason="", is_waiver=False, currency=currency)
