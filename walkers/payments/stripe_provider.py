import logging
from typing import Any, Dict, Optional

import stripe

from ..errors import PaymentProviderError
from .base import Intent, Refund, verify_webhook

logger = logging.getLogger(__name__)


def _intent(obj: Any) -> Intent:
    return Intent(
        id=obj.id,
        client_secret=getattr(obj, "client_secret", None),
        status=obj.status,
        amount=int(obj.amount),
        metadata=dict(getattr(obj, "metadata", None) or {}),
    )


class StripePaymentProvider:
    """Adaptador sobre un StripeClient propio (sin stripe.api_key global)."""

    def __init__(self, api_key: str, webhook_secret: str, client: Optional[stripe.StripeClient] = None):
        self.client = client or stripe.StripeClient(api_key)
        self.webhook_secret = webhook_secret

    def create_intent(self, amount: int, currency: str, metadata: Dict[str, str], description: str) -> Intent:
        try:
            pi = self.client.payment_intents.create(params={
                "amount": amount,
                "currency": currency,
                "metadata": metadata,
                "description": description,
                "automatic_payment_methods": {"enabled": True},
            })
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment intent: {e}")
            raise PaymentProviderError()
        return _intent(pi)

    def retrieve_intent(self, intent_id: str) -> Intent:
        try:
            pi = self.client.payment_intents.retrieve(intent_id)
        except stripe.StripeError as e:
            logger.warning(f"Stripe error retrieving payment intent {intent_id}: {e}")
            raise PaymentProviderError()
        return _intent(pi)

    def cancel_intent(self, intent_id: str) -> Intent:
        try:
            pi = self.client.payment_intents.cancel(intent_id)
        except stripe.StripeError as e:
            logger.warning(f"Stripe error canceling payment intent {intent_id}: {e}")
            raise PaymentProviderError()
        return _intent(pi)

    def create_refund(self, charge_id: str, amount: int, metadata: Dict[str, str]) -> Refund:
        try:
            refund = self.client.refunds.create(params={
                "charge": charge_id,
                "amount": amount,
                "reason": "requested_by_customer",
                "metadata": metadata,
            })
        except stripe.StripeError as e:
            logger.error(f"Stripe error refunding charge {charge_id}: {e}")
            raise PaymentProviderError("Failed to process refund")
        return Refund(id=refund.id, amount=int(refund.amount), status=refund.status)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        return verify_webhook(payload, signature, self.webhook_secret)
