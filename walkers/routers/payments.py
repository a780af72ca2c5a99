# walkers/routers/payments.py
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, Request

from ..dependencies import get_payment_service
from ..middleware.rate_limit import apply_rate_limit
from ..schemas.payment import PaymentIntentCreate, RefundRequest
from ..security import get_current_user, require_admin
from ..services.payments import PaymentService
from ..utils import envelope, to_id

router = APIRouter()

@router.post("/create-payment-intent")
async def create_payment_intent(
    request: Request,
    payload: PaymentIntentCreate,
    svc: PaymentService = Depends(get_payment_service),
    current=Depends(get_current_user),
):
    # Rate limiting: máximo 10 intents por minuto por IP
    apply_rate_limit(request, "10/minute")
    return envelope(await svc.create_or_reuse_intent(current, payload.booking_id))

@router.get("/status/{booking_id}")
async def get_payment_status(
    booking_id: str,
    svc: PaymentService = Depends(get_payment_service),
    current=Depends(get_current_user),
):
    return envelope(to_id(await svc.get_status(current, booking_id)))

@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    svc: PaymentService = Depends(get_payment_service),
):
    """
    Público, pero solo se acepta con firma válida. Se lee el cuerpo crudo:
    la firma se calcula sobre los bytes exactos que envió el proveedor.
    """
    payload = await request.body()
    return envelope(**await svc.handle_webhook(payload, stripe_signature))

@router.post("/refund/{booking_id}")
async def refund_payment(
    booking_id: str,
    payload: Optional[RefundRequest] = Body(None),
    svc: PaymentService = Depends(get_payment_service),
    current=Depends(require_admin),
):
    result = await svc.refund(current, booking_id, payload.amount if payload else None)
    return envelope(
        {"refund": result["refund"], "booking": to_id(result["booking"])},
        message="Refund processed successfully",
    )
