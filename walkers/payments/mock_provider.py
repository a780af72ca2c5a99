"""
Proveedor de pagos en memoria para desarrollo y demos (BILLING_PROVIDER=mock).

No cobra nada. Los webhooks se verifican igual que con Stripe, así que para
simular un pago hay que firmar el evento con STRIPE_WEBHOOK_SECRET.
"""
import logging
import threading
import uuid
from typing import Any, Dict, List, Optional

from ..errors import PaymentProviderError
from .base import Intent, Refund, verify_webhook

logger = logging.getLogger(__name__)


class MockPaymentProvider:

    def __init__(self, webhook_secret: str = ""):
        self.webhook_secret = webhook_secret
        self.intents: Dict[str, Intent] = {}
        self.charges: Dict[str, str] = {}  # intent_id -> charge_id
        self.refunds: List[Refund] = []
        self._lock = threading.Lock()

    def create_intent(self, amount: int, currency: str, metadata: Dict[str, str], description: str) -> Intent:
        intent_id = f"pi_mock_{uuid.uuid4().hex[:16]}"
        intent = Intent(
            id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:12]}",
            status="requires_payment_method",
            amount=amount,
            metadata=dict(metadata),
        )
        with self._lock:
            self.intents[intent_id] = intent
        logger.info(f"[mock] intent {intent_id} creado por {amount} {currency}: {description}")
        return intent

    def retrieve_intent(self, intent_id: str) -> Intent:
        intent = self.intents.get(intent_id)
        if intent is None:
            raise PaymentProviderError(f"No such payment_intent: {intent_id}")
        return intent

    def cancel_intent(self, intent_id: str) -> Intent:
        intent = self.retrieve_intent(intent_id)
        if intent.status == "succeeded":
            raise PaymentProviderError("Cannot cancel a succeeded payment intent")
        intent.status = "canceled"
        return intent

    def set_status(self, intent_id: str, status: str) -> Intent:
        """Mueve el intent a otro estado remoto; si es succeeded le asigna un cargo."""
        intent = self.retrieve_intent(intent_id)
        intent.status = status
        if status == "succeeded":
            self.charges.setdefault(intent_id, f"ch_mock_{uuid.uuid4().hex[:16]}")
        return intent

    def charge_for(self, intent_id: str) -> Optional[str]:
        return self.charges.get(intent_id)

    def create_refund(self, charge_id: str, amount: int, metadata: Dict[str, str]) -> Refund:
        if charge_id not in self.charges.values():
            raise PaymentProviderError(f"No such charge: {charge_id}")
        refund = Refund(id=f"re_mock_{uuid.uuid4().hex[:16]}", amount=amount, status="succeeded")
        with self._lock:
            self.refunds.append(refund)
        return refund

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        return verify_webhook(payload, signature, self.webhook_secret)
