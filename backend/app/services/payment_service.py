from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import stripe
from fastapi import HTTPException

from app.core.config import StripeConfig
from app.core.fee_calculator import calculate_fee
from app.lib.api_client import supabase_admin
from app.models.fee_config import FeeCalculation
from app.models.manuscript import ManuscriptStatus
from app.models.payment import PaymentCreate, PaymentMethod, PaymentStatus
from app.services.fee_config_service import FeeConfigMissing, FeeConfigService
from app.services.notification_service import NotificationService
from app.services.service_common import (
    first_row,
    is_unique_violation,
    load_one,
    now_iso,
    require_one,
    rows_of,
    update_one,
)

logger = logging.getLogger("journalflow.payments")

PAYMENTS_TABLE = "payments"
INVOICE_MAX_ATTEMPTS = 5

# 稿件处于这些状态时不再允许发起 APC
_CLOSED_MANUSCRIPT_STATUSES = {ManuscriptStatus.REJECTED.value, ManuscriptStatus.PUBLISHED.value}
_OPEN_PAYMENT_STATUSES = {
    PaymentStatus.PENDING.value,
    PaymentStatus.PROCESSING.value,
    PaymentStatus.COMPLETED.value,
    PaymentStatus.WAIVED.value,
}


def to_minor_units(amount: float) -> int:
    """金额转为分（Stripe 使用最小货币单位），round-half-up。"""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_invoice_number(year: int, sequence: int) -> str:
    return f"INV-{year}-{sequence:04d}"


class PaymentService:
    """
    APC 支付：创建账单、Stripe PaymentIntent、Webhook 回调、人工确认 / 减免。

    中文注释:
    1. 金额由 FeeConfigService 计算（国家减免 / 折扣 / 机构折扣），账单快照保存 base/discount/final。
    2. 发票号 INV-YYYY-NNNN 依赖 payments.invoice_number 唯一约束，冲突时顺延重试。
    3. Stripe 未配置时只影响在线支付接口（503），减免与银行转账流程照常可用。
    """

    def __init__(
        self,
        *,
        client: Any | None = None,
        config: Optional[StripeConfig] = None,
        fee_service: FeeConfigService | None = None,
        notifications: NotificationService | None = None,
    ):
        self.client = client or supabase_admin
        self.config = config if config is not None else StripeConfig.from_env()
        self.fees = fee_service or FeeConfigService(client=self.client)
        self.notifications = notifications or NotificationService(client=self.client)

    def _require_stripe(self) -> StripeConfig:
        if not self.config:
            raise HTTPException(status_code=503, detail="Online payments are not configured")
        stripe.api_key = self.config.secret_key
        return self.config

    # --- 账单 ---

    def _count_invoices_for_year(self, year: int) -> int:
        resp = (
            self.client.table(PAYMENTS_TABLE)
            .select("id", count="exact")
            .like("invoice_number", f"INV-{year}-%")
            .limit(1)
            .execute()
        )
        count = getattr(resp, "count", None)
        if isinstance(count, int):
            return count
        return len(rows_of(resp))

    def _insert_with_invoice_number(self, row: dict[str, Any]) -> dict[str, Any]:
        year = datetime.now(timezone.utc).year
        sequence = self._count_invoices_for_year(year) + 1
        for attempt in range(1, INVOICE_MAX_ATTEMPTS + 1):
            payload = {**row, "invoice_number": format_invoice_number(year, sequence), "invoice_date": now_iso()}
            try:
                resp = self.client.table(PAYMENTS_TABLE).insert(payload).execute()
            except Exception as e:
                if not is_unique_violation(e):
                    raise
                logger.info("Invoice number %s taken (attempt %s), retrying", payload["invoice_number"], attempt)
                sequence += 1
                continue
            return first_row(resp) or payload
        raise HTTPException(status_code=409, detail="Could not allocate an invoice number, please retry")

    def _existing_open_payment(self, manuscript_id: str) -> Optional[dict[str, Any]]:
        resp = (
            self.client.table(PAYMENTS_TABLE)
            .select("*")
            .eq("manuscript_id", manuscript_id)
            .in_("status", sorted(_OPEN_PAYMENT_STATUSES))
            .limit(1)
            .execute()
        )
        return first_row(resp)

    def create_for_manuscript(self, payload: PaymentCreate, *, user_id: str) -> dict[str, Any]:
        manuscript = require_one(self.client, "manuscripts", payload.manuscript_id, label="Manuscript")
        if str(manuscript.get("author_id") or "") != str(user_id):
            raise HTTPException(status_code=403, detail="Only the submitting author can create this payment")
        if manuscript.get("status") in _CLOSED_MANUSCRIPT_STATUSES:
            raise HTTPException(status_code=400, detail=f"Manuscript is {manuscript.get('status')}, no payment required")
        if self._existing_open_payment(payload.manuscript_id):
            raise HTTPException(status_code=409, detail="A payment already exists for this manuscript")

        billing = payload.billing_address
        try:
            config = self.fees.get_active_config()
        except FeeConfigMissing as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

        calc: FeeCalculation = calculate_fee(
            config,
            manuscript.get("article_type"),
            billing.country,
            billing.institution,
        )

        if calc.final_fee <= 0:
            status = PaymentStatus.WAIVED if calc.is_waiver else PaymentStatus.COMPLETED
            method = PaymentMethod.WAIVER if calc.is_waiver else payload.payment_method
        else:
            status = PaymentStatus.PENDING
            method = payload.payment_method

        due = datetime.now(timezone.utc) + timedelta(days=config.payment_deadline_days)
        row = {
            "manuscript_id": payload.manuscript_id,
            "user_id": user_id,
            "amount": calc.final_fee,
            "currency": calc.currency,
            "status": status.value,
            "payment_method": method.value,
            "base_fee": calc.base_fee,
            "discount_amount": calc.discount_amount,
            "discount_reason": calc.discount_reason,
            "waiver_reason": calc.discount_reason if calc.is_waiver else "",
            "due_date": due.isoformat(),
            "billing_address": billing.model_dump(),
            "created_at": now_iso(),
        }
        if status != PaymentStatus.PENDING:
            row["payment_date"] = now_iso()

        payment = self._insert_with_invoice_number(row)
        self._sync_manuscript(manuscript, status)

        if status == PaymentStatus.PENDING:
            self.notifications.create_notification(
                user_id=user_id,
                manuscript_id=payload.manuscript_id,
                payment_id=str(payment.get("id") or ""),
                type="payment_required",
                title="Article processing charge due",
                message=f"An APC of {calc.final_fee:.2f} {calc.currency} is due by {due.date().isoformat()}.",
                priority="high",
            )
        logger.info(
            "Payment created for manuscript %s: amount=%s status=%s",
            payload.manuscript_id,
            calc.final_fee,
            status.value,
        )
        return payment

    def _sync_manuscript(self, manuscript: dict[str, Any], status: PaymentStatus) -> None:
        """
        同步稿件上的 payment_status；只有“等待付款”中的稿件才推进顶层 status。
        """
        updates: dict[str, Any] = {"payment_status": status.value}
        current = manuscript.get("status")
        if status in (PaymentStatus.COMPLETED, PaymentStatus.WAIVED):
            if current in (ManuscriptStatus.PAYMENT_REQUIRED.value, ManuscriptStatus.PAYMENT_SUBMITTED.value):
                updates["status"] = ManuscriptStatus.IN_PRODUCTION.value
        elif status == PaymentStatus.PENDING and current == ManuscriptStatus.ACCEPTED.value:
            updates["status"] = ManuscriptStatus.PAYMENT_REQUIRED.value
        update_one(self.client, "manuscripts", str(manuscript["id"]), updates, label="Manuscript")

    def _sync_payment_manuscript(self, payment: dict[str, Any], status: PaymentStatus) -> None:
        manuscript_id = str(payment.get("manuscript_id") or "")
        manuscript = load_one(self.client, "manuscripts", manuscript_id) if manuscript_id else None
        if not manuscript:
            logger.warning("Manuscript %s not found while syncing payment %s", manuscript_id, payment.get("id"))
            return
        self._sync_manuscript(manuscript, status)

    def get_payment(self, payment_id: str, *, user_id: str, roles: set[str]) -> dict[str, Any]:
        payment = require_one(self.client, PAYMENTS_TABLE, payment_id, label="Payment")
        if str(payment.get("user_id")) != str(user_id) and not roles.intersection({"admin", "editor"}):
            raise HTTPException(status_code=403, detail="Forbidden")
        return payment

    def list_for_user(self, *, user_id: str) -> list[dict[str, Any]]:
        resp = (
            self.client.table(PAYMENTS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
        return rows_of(resp)

    # --- Stripe ---

    def create_payment_intent(self, payment_id: str, *, user_id: str) -> dict[str, Any]:
        payment = require_one(self.client, PAYMENTS_TABLE, payment_id, label="Payment")
        if str(payment.get("user_id")) != str(user_id):
            raise HTTPException(status_code=403, detail="Forbidden")
        if payment.get("status") not in (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value):
            raise HTTPException(status_code=400, detail="Payment is not awaiting payment")
        amount = float(payment.get("amount") or 0)
        if amount <= 0:
            raise HTTPException(status_code=400, detail="Invalid payment amount")

        cfg = self._require_stripe()
        minor = to_minor_units(amount)
        currency = str(payment.get("currency") or cfg.currency).lower()

        intent = None
        existing_id = payment.get("payment_intent_id")
        if existing_id:
            try:
                intent = stripe.PaymentIntent.retrieve(existing_id)
                if intent.status == "succeeded":
                    return {
                        "client_secret": intent.client_secret,
                        "payment_intent_id": intent.id,
                        "amount": amount,
                        "currency": currency.upper(),
                        "status": "succeeded",
                    }
                if intent.amount != minor:
                    intent = stripe.PaymentIntent.modify(existing_id, amount=minor)
            except stripe.StripeError as e:
                # 旧 intent 已失效（被取消/删除）时重新创建
                logger.warning("Could not reuse payment intent %s: %s", existing_id, e)
                intent = None

        if intent is None:
            try:
                intent = stripe.PaymentIntent.create(
                    amount=minor,
                    currency=currency,
                    metadata={
                        "payment_id": str(payment["id"]),
                        "manuscript_id": str(payment.get("manuscript_id") or ""),
                        "invoice_number": str(payment.get("invoice_number") or ""),
                    },
                    description=f"Article Processing Charge {payment.get('invoice_number') or ''}".strip(),
                    automatic_payment_methods={"enabled": True},
                )
            except stripe.StripeError as e:
                logger.error("Stripe intent creation failed for payment %s: %s", payment_id, e)
                raise HTTPException(status_code=502, detail="Payment gateway error, please retry later") from e

            update_one(
                self.client,
                PAYMENTS_TABLE,
                payment_id,
                {"payment_intent_id": intent.id, "status": PaymentStatus.PROCESSING.value},
                label="Payment",
            )
            self._sync_payment_manuscript(payment, PaymentStatus.PROCESSING)

        return {
            "client_secret": intent.client_secret,
            "payment_intent_id": intent.id,
            "amount": amount,
            "currency": currency.upper(),
            "status": intent.status,
        }

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> dict[str, Any]:
        cfg = self._require_stripe()
        if not signature:
            raise HTTPException(status_code=400, detail="No signature")
        try:
            event = stripe.Webhook.construct_event(payload, signature, cfg.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("Stripe webhook verification failed: %s", e)
            raise HTTPException(status_code=400, detail="Invalid signature") from e

        event_type = event["type"]
        intent = event["data"]["object"]
        logger.info("Received Stripe webhook event: %s", event_type)

        if event_type == "payment_intent.succeeded":
            self._on_intent_succeeded(intent)
        elif event_type == "payment_intent.payment_failed":
            self._on_intent_status(intent, PaymentStatus.FAILED)
        elif event_type == "payment_intent.canceled":
            self._on_intent_status(intent, PaymentStatus.PENDING)
        else:
            logger.info("Unhandled Stripe event type: %s", event_type)
        return {"received": True}

    def _payment_for_intent(self, intent_id: str) -> Optional[dict[str, Any]]:
        resp = self.client.table(PAYMENTS_TABLE).select("*").eq("payment_intent_id", intent_id).limit(1).execute()
        return first_row(resp)

    def _on_intent_succeeded(self, intent: Any) -> None:
        payment = self._payment_for_intent(intent["id"])
        if not payment:
            logger.error("Payment not found for PaymentIntent %s", intent["id"])
            return
        if payment.get("status") == PaymentStatus.COMPLETED.value:
            return
        self._complete(payment, transaction_id=intent["id"])

    def _on_intent_status(self, intent: Any, status: PaymentStatus) -> None:
        payment = self._payment_for_intent(intent["id"])
        if not payment:
            logger.error("Payment not found for PaymentIntent %s", intent["id"])
            return
        updates: dict[str, Any] = {"status": status.value}
        if status == PaymentStatus.PENDING:
            updates["payment_intent_id"] = None
        update_one(self.client, PAYMENTS_TABLE, str(payment["id"]), updates, label="Payment")
        self._sync_payment_manuscript(payment, status)

    def _complete(self, payment: dict[str, Any], *, transaction_id: Optional[str], notes: Optional[str] = None) -> dict[str, Any]:
        updates: dict[str, Any] = {
            "status": PaymentStatus.COMPLETED.value,
            "payment_date": now_iso(),
            "transaction_id": transaction_id,
        }
        if notes:
            updates["notes"] = notes
        updated = update_one(self.client, PAYMENTS_TABLE, str(payment["id"]), updates, label="Payment")

        manuscript_id = str(payment.get("manuscript_id") or "")
        manuscript = require_one(self.client, "manuscripts", manuscript_id, label="Manuscript")
        self._sync_manuscript(manuscript, PaymentStatus.COMPLETED)

        self.notifications.create_notification(
            user_id=str(payment.get("user_id")),
            manuscript_id=manuscript_id,
            payment_id=str(payment["id"]),
            type="payment_confirmed",
            title="Payment received",
            message=f"We received your payment for invoice {payment.get('invoice_number') or ''}.".replace("  ", " "),
        )
        logger.info("Payment %s completed", payment["id"])
        return updated

    # --- 人工操作 ---

    def confirm_manual_payment(
        self,
        payment_id: str,
        *,
        admin_id: str,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> dict[str, Any]:
        payment = require_one(self.client, PAYMENTS_TABLE, payment_id, label="Payment")
        if payment.get("status") not in (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value, PaymentStatus.FAILED.value):
            raise HTTPException(status_code=400, detail=f"Payment in status {payment.get('status')} cannot be confirmed")
        logger.info("Payment %s confirmed manually by %s", payment_id, admin_id)
        return self._complete(payment, transaction_id=transaction_id, notes=notes)

    def waive_payment(self, payment_id: str, *, admin_id: str, reason: str) -> dict[str, Any]:
        payment = require_one(self.client, PAYMENTS_TABLE, payment_id, label="Payment")
        if payment.get("status") in (PaymentStatus.COMPLETED.value, PaymentStatus.WAIVED.value, PaymentStatus.REFUNDED.value):
            raise HTTPException(status_code=400, detail=f"Payment in status {payment.get('status')} cannot be waived")

        updated = update_one(
            self.client,
            PAYMENTS_TABLE,
            payment_id,
            {
                "status": PaymentStatus.WAIVED.value,
                "payment_method": PaymentMethod.WAIVER.value,
                "discount_amount": float(payment.get("base_fee") or payment.get("amount") or 0),
                "amount": 0,
                "waiver_reason": reason,
                "waiver_approved_by": admin_id,
                "waiver_approved_date": now_iso(),
            },
            label="Payment",
        )
        manuscript = require_one(self.client, "manuscripts", str(payment.get("manuscript_id")), label="Manuscript")
        self._sync_manuscript(manuscript, PaymentStatus.WAIVED)
        self.notifications.create_notification(
            user_id=str(payment.get("user_id")),
            manuscript_id=str(payment.get("manuscript_id")),
            payment_id=payment_id,
            type="payment_confirmed",
            title="Article processing charge waived",
            message=f"Your APC has been waived: {reason}",
        )
        return updated


def get_payment_service() -> PaymentService:
    return PaymentService()
