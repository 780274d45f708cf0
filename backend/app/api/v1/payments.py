from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from app.core.roles import get_current_profile, require_action
from app.models.payment import (
    PaymentConfirmRequest,
    PaymentCreate,
    PaymentIntentResponse,
    PaymentWaiveRequest,
)
from app.services.payment_service import PaymentService, get_payment_service

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", status_code=201)
async def create_payment(
    payload: PaymentCreate,
    profile: dict = Depends(require_action("payment:create")),
    service: PaymentService = Depends(get_payment_service),
):
    """
    为已录用稿件生成 APC 账单（金额按当前费用配置计算）
    """
    return {"success": True, "data": service.create_for_manuscript(payload, user_id=profile["id"])}


@router.get("/mine")
async def list_my_payments(
    profile: dict = Depends(get_current_profile),
    service: PaymentService = Depends(get_payment_service),
):
    return {"success": True, "data": service.list_for_user(user_id=profile["id"])}


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Stripe 回调（无需登录，签名校验）

    中文注释: 必须使用原始 body 校验签名，不能先做 JSON 解析。
    """
    payload = await request.body()
    return service.handle_webhook(payload, stripe_signature)


@router.get("/{payment_id}")
async def get_payment(
    payment_id: str,
    profile: dict = Depends(get_current_profile),
    service: PaymentService = Depends(get_payment_service),
):
    payment = service.get_payment(payment_id, user_id=profile["id"], roles=set(profile.get("roles") or []))
    return {"success": True, "data": payment}


@router.post("/{payment_id}/intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    payment_id: str,
    profile: dict = Depends(require_action("payment:pay")),
    service: PaymentService = Depends(get_payment_service),
):
    return service.create_payment_intent(payment_id, user_id=profile["id"])


@router.post("/{payment_id}/confirm")
async def confirm_payment(
    payment_id: str,
    payload: PaymentConfirmRequest,
    profile: dict = Depends(require_action("payment:confirm")),
    service: PaymentService = Depends(get_payment_service),
):
    """
    人工确认线下付款（银行转账）
    """
    updated = service.confirm_manual_payment(
        payment_id,
        admin_id=profile["id"],
        transaction_id=payload.transaction_id,
        notes=payload.notes,
    )
    return {"success": True, "data": updated}


@router.post("/{payment_id}/waive")
async def waive_payment(
    payment_id: str,
    payload: PaymentWaiveRequest,
    profile: dict = Depends(require_action("payment:waive")),
    service: PaymentService = Depends(get_payment_service),
):
    return {"success": True, "data": service.waive_payment(payment_id, admin_id=profile["id"], reason=payload.reason)}
