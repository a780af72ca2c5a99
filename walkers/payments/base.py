"""
Interfaz mínima con el proveedor de pagos.

El resto de la app solo habla con un `PaymentProvider`: crear, recuperar y
cancelar intents, emitir reembolsos y verificar webhooks. Los importes van
siempre en unidades menores (céntimos).
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import stripe

from ..errors import WebhookVerificationError

logger = logging.getLogger(__name__)

# Estados remotos en los que el cliente todavía puede completar el pago
REUSABLE_INTENT_STATUSES = frozenset({
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
})

# Estados en los que el dinero ya está (o va a estar) cobrado
SETTLING_INTENT_STATUSES = frozenset({"processing", "requires_capture", "succeeded"})


@dataclass
class Intent:
    id: str
    client_secret: Optional[str]
    status: str
    amount: int
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class Refund:
    id: str
    amount: int
    status: str


class PaymentProvider(Protocol):

    def create_intent(
        self, amount: int, currency: str, metadata: Dict[str, str], description: str
    ) -> Intent:  # pragma: no cover - interface
        ...

    def retrieve_intent(self, intent_id: str) -> Intent:  # pragma: no cover - interface
        ...

    def cancel_intent(self, intent_id: str) -> Intent:  # pragma: no cover - interface
        ...

    def create_refund(
        self, charge_id: str, amount: int, metadata: Dict[str, str]
    ) -> Refund:  # pragma: no cover - interface
        ...

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:  # pragma: no cover - interface
        ...


def verify_webhook(payload: bytes, signature: Optional[str], secret: str) -> Dict[str, Any]:
    """
    Verifica la cabecera Stripe-Signature contra el cuerpo crudo y solo
    entonces lo parsea. Cualquier fallo es WebhookVerificationError.
    """
    if not secret:
        logger.error("Webhook secret not configured")
        raise WebhookVerificationError()
    if not signature:
        logger.warning("Webhook received without signature")
        raise WebhookVerificationError("No signature")

    try:
        body = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
    except UnicodeDecodeError:
        logger.error("Webhook payload is not valid UTF-8")
        raise WebhookVerificationError("Invalid webhook payload")
    try:
        stripe.WebhookSignature.verify_header(
            body, signature, secret, stripe.Webhook.DEFAULT_TOLERANCE
        )
    except stripe.SignatureVerificationError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise WebhookVerificationError()

    try:
        event = json.loads(body)
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {e}")
        raise WebhookVerificationError("Invalid webhook payload")
    if not isinstance(event, dict) or "type" not in event:
        raise WebhookVerificationError("Invalid webhook payload")
    return event
