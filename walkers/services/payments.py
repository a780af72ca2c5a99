"""
Orquestación de pagos: une el estado de cada reserva con el del proveedor.

- Los intents se crean o reutilizan por reserva (un solo intent vivo).
- Los webhooks llegan asíncronos, repetidos y desordenados: cada escritura es
  un update condicionado al estado de origen permitido, así que reaplicar un
  evento deja la reserva igual y un evento viejo no la hace retroceder.
- El proveedor y la base de datos se inyectan en el constructor.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..errors import Conflict, Forbidden, PaymentProviderError, ValidationFailed
from ..payments.base import REUSABLE_INTENT_STATUSES, SETTLING_INTENT_STATUSES, PaymentProvider
from ..pricing import to_minor_units
from ..schemas.booking import BookingStatus
from ..schemas.payment import PaymentStatus
from ..security import is_admin
from ..utils import utcnow
from .bookings import ensure_access, find_booking

logger = logging.getLogger(__name__)

PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.pending: {PaymentStatus.processing, PaymentStatus.succeeded, PaymentStatus.failed},
    PaymentStatus.processing: {PaymentStatus.processing, PaymentStatus.succeeded, PaymentStatus.failed},
    PaymentStatus.failed: {PaymentStatus.processing, PaymentStatus.succeeded, PaymentStatus.failed},
    PaymentStatus.succeeded: {PaymentStatus.refunded},
    # refunded -> refunded solo para reaplicar el mismo reembolso
    PaymentStatus.refunded: {PaymentStatus.refunded},
}


def sources_of(target: PaymentStatus) -> list[str]:
    """Estados desde los que se puede llegar a `target`."""
    return [s.value for s, nxt in PAYMENT_TRANSITIONS.items() if target in nxt]


def _charge_id(intent: dict) -> Optional[str]:
    charge = intent.get("latest_charge")
    if isinstance(charge, dict):
        charge = charge.get("id")
    if not charge:
        # API antigua: charges.data[0]
        data = (intent.get("charges") or {}).get("data") or []
        charge = data[0].get("id") if data else None
    return charge


class PaymentService:

    def __init__(self, db: AsyncIOMotorDatabase, provider: PaymentProvider, currency: str = "usd"):
        self.db = db
        self.provider = provider
        self.currency = currency
        self._handlers: Dict[str, Callable[[dict], Awaitable[None]]] = {
            "payment_intent.succeeded": self._on_payment_succeeded,
            "payment_intent.payment_failed": self._on_payment_failed,
            "payment_intent.canceled": self._on_payment_failed,
            "charge.refunded": self._on_charge_refunded,
        }

    async def _call(self, fn, *args):
        # el SDK del proveedor es síncrono
        return await asyncio.to_thread(fn, *args)

    # ---------- Intents ----------

    async def create_or_reuse_intent(self, user: dict, booking_id: str) -> Dict[str, str]:
        doc = await find_booking(self.db, booking_id)
        if str(doc.get("user_id")) != user["id"]:
            raise Forbidden("Not authorized to access this booking")

        payment_status = doc.get("payment_status")
        if payment_status == PaymentStatus.succeeded.value:
            raise Conflict("This booking has already been paid")
        if payment_status == PaymentStatus.refunded.value:
            raise Conflict("This booking has already been refunded")
        if doc.get("status") == BookingStatus.cancelled.value:
            raise Conflict("Cannot process payment for a cancelled booking")

        amount = to_minor_units(float(doc.get("price") or 0))
        if amount <= 0:
            raise Conflict("This booking has no price to pay yet")

        previous_id = doc.get("provider_intent_id")
        previous_live = False
        if previous_id:
            try:
                existing = await self._call(self.provider.retrieve_intent, previous_id)
            except PaymentProviderError:
                logger.warning(f"Failed to retrieve existing payment intent {previous_id}; creating a new one")
                existing = None
            if existing is not None and existing.status in SETTLING_INTENT_STATUSES:
                # el cobro ya está en marcha: el webhook de ese intent cerrará la reserva
                logger.info(f"Payment intent {existing.id} for booking {booking_id} is {existing.status}; not replacing it")
                raise Conflict("A payment for this booking is already in progress")
            if existing is not None and existing.status in REUSABLE_INTENT_STATUSES:
                if existing.amount == amount:
                    await self.db.bookings.update_one(
                        {"_id": doc["_id"], "payment_status": {"$in": [PaymentStatus.pending.value, PaymentStatus.failed.value]}},
                        {"$set": {"payment_status": PaymentStatus.processing.value, "updated_at": utcnow()}},
                    )
                    logger.info(f"Reusing existing payment intent {existing.id} for booking {booking_id}")
                    return {"client_secret": existing.client_secret, "payment_intent_id": existing.id}
                # el precio cambió: ese intent ya no vale
                previous_live = True

        metadata = {
            "booking_id": str(doc["_id"]),
            "user_id": user["id"],
            "service": str(doc.get("service", "")),
            "dog_name": str(doc.get("dog_name", "")),
            "date": doc["date"].isoformat() if hasattr(doc.get("date"), "isoformat") else str(doc.get("date", "")),
        }
        description = f"{doc.get('service')} for {doc.get('dog_name')}"
        intent = await self._call(self.provider.create_intent, amount, self.currency, metadata, description)

        # solo escribe si nadie guardó otro intent mientras tanto
        res = await self.db.bookings.update_one(
            {
                "_id": doc["_id"],
                "provider_intent_id": previous_id,
                "payment_status": {"$in": sources_of(PaymentStatus.processing)},
            },
            {"$set": {
                "provider_intent_id": intent.id,
                "payment_status": PaymentStatus.processing.value,
                "updated_at": utcnow(),
            }},
        )
        if res.matched_count == 0:
            logger.warning(f"Concurrent payment intent creation for booking {booking_id}; discarding {intent.id}")
            await self._discard_intent(intent.id)
            current = await self.db.bookings.find_one({"_id": doc["_id"]})
            winner_id = (current or {}).get("provider_intent_id")
            if (
                current
                and winner_id
                and winner_id != previous_id
                and current.get("payment_status") == PaymentStatus.processing.value
            ):
                winner = await self._call(self.provider.retrieve_intent, winner_id)
                return {"client_secret": winner.client_secret, "payment_intent_id": winner.id}
            raise Conflict("Booking payment state changed, please retry")

        if previous_live:
            await self._discard_intent(previous_id)

        logger.info(f"Payment intent created: {intent.id} for booking {booking_id}")
        return {"client_secret": intent.client_secret, "payment_intent_id": intent.id}

    async def _discard_intent(self, intent_id: str) -> None:
        try:
            await self._call(self.provider.cancel_intent, intent_id)
        except PaymentProviderError:
            logger.warning(f"Could not cancel orphaned payment intent {intent_id}")

    # ---------- Webhooks ----------

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verifica la firma antes de leer nada. Una vez verificado, el evento se
        confirma siempre al proveedor (aunque no encontremos la reserva) para
        que no lo reenvíe en bucle; los fallos quedan en el log.
        """
        event = self.provider.construct_event(payload, signature)
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info(f"Unhandled event type: {event_type}")
        else:
            try:
                await handler(obj)
            except Exception:
                logger.exception(f"Webhook handler error for {event_type} ({event.get('id')})")
        return {"received": True, "type": event_type}

    async def _on_payment_succeeded(self, intent: dict) -> None:
        intent_id = intent.get("id")
        logger.info(f"Processing successful payment: {intent_id}")
        doc = await self.db.bookings.find_one({"provider_intent_id": intent_id})
        if not doc:
            logger.error(f"Booking not found for payment intent: {intent_id}")
            return

        if doc.get("payment_status") == PaymentStatus.succeeded.value:
            # reentrega: el pago ya consta, como mucho falta confirmar la reserva
            await self._confirm(doc["_id"], intent_id)
            return
        allowed = sources_of(PaymentStatus.succeeded)
        if doc.get("payment_status") not in allowed:
            logger.info(f"Booking {doc['_id']} already {doc.get('payment_status')}; ignoring success for {intent_id}")
            return

        expected = to_minor_units(float(doc.get("price") or 0))
        charged = intent.get("amount")
        if charged is not None and int(charged) != expected:
            logger.error(
                f"Payment intent {intent_id} charged {charged} but booking {doc['_id']} costs {expected}; "
                f"left for manual review"
            )
            return

        charge_id = _charge_id(intent)
        if not charge_id:
            logger.warning(f"Payment intent {intent_id} succeeded without a charge id")
        methods = intent.get("payment_method_types") or []
        res = await self.db.bookings.update_one(
            {"_id": doc["_id"], "provider_intent_id": intent_id, "payment_status": {"$in": allowed}},
            {"$set": {
                "payment_status": PaymentStatus.succeeded.value,
                "provider_charge_id": charge_id,
                "payment_method": methods[0] if methods else "unknown",
                "paid_at": doc.get("paid_at") or utcnow(),
                "updated_at": utcnow(),
            }},
        )
        if res.matched_count:
            await self._confirm(doc["_id"], intent_id)

    async def _confirm(self, booking_oid, intent_id: str) -> None:
        # solo pending avanza; confirmed/completed se quedan como están
        res = await self.db.bookings.update_one(
            {
                "_id": booking_oid,
                "provider_intent_id": intent_id,
                "payment_status": PaymentStatus.succeeded.value,
                "status": BookingStatus.pending.value,
            },
            {"$set": {"status": BookingStatus.confirmed.value, "updated_at": utcnow()}},
        )
        if res.modified_count:
            logger.info(f"Booking {booking_oid} confirmed with payment {intent_id}")

    async def _on_payment_failed(self, intent: dict) -> None:
        intent_id = intent.get("id")
        doc = await self.db.bookings.find_one({"provider_intent_id": intent_id})
        if not doc:
            logger.error(f"Booking not found for payment intent: {intent_id}")
            return
        res = await self.db.bookings.update_one(
            {"_id": doc["_id"], "payment_status": {"$in": sources_of(PaymentStatus.failed)}},
            {"$set": {"payment_status": PaymentStatus.failed.value, "updated_at": utcnow()}},
        )
        if res.matched_count:
            logger.warning(f"Payment failed for booking {doc['_id']} ({intent.get('status')})")
        else:
            logger.info(f"Ignoring failure for {intent_id}: booking {doc['_id']} is {doc.get('payment_status')}")

    async def _on_charge_refunded(self, charge: dict) -> None:
        charge_id = charge.get("id")
        logger.info(f"Processing refund for charge: {charge_id}")
        doc = await self.db.bookings.find_one({"provider_charge_id": charge_id})
        if not doc and charge.get("payment_intent"):
            doc = await self.db.bookings.find_one({"provider_intent_id": charge["payment_intent"]})
        if not doc:
            logger.error(f"Booking not found for charge: {charge_id}")
            return
        if doc.get("payment_status") not in sources_of(PaymentStatus.refunded):
            logger.warning(f"Refund for charge {charge_id} but booking {doc['_id']} is {doc.get('payment_status')}")
            return
        await self._mark_refunded(doc, int(charge.get("amount_refunded") or 0) / 100)
        logger.info(f"Refund processed for booking {doc['_id']}")

    async def _mark_refunded(self, doc: dict, amount: float) -> None:
        price = float(doc.get("price") or 0)
        if amount > price:
            logger.warning(f"Refund {amount} exceeds price {price} for booking {doc['_id']}; capping")
            amount = price
        await self.db.bookings.update_one(
            {"_id": doc["_id"], "payment_status": {"$in": sources_of(PaymentStatus.refunded)}},
            {"$set": {
                "payment_status": PaymentStatus.refunded.value,
                "status": BookingStatus.cancelled.value,
                "refund_amount": round(amount, 2),
                "refunded_at": doc.get("refunded_at") or utcnow(),
                "updated_at": utcnow(),
            }},
        )

    # ---------- Admin / lectura ----------

    async def refund(self, admin: dict, booking_id: str, amount: Optional[float] = None) -> Dict[str, Any]:
        if not is_admin(admin):
            raise Forbidden("Only administrators can issue refunds")
        doc = await find_booking(self.db, booking_id)

        if doc.get("payment_status") == PaymentStatus.refunded.value:
            raise Conflict("This booking has already been refunded")
        if doc.get("payment_status") != PaymentStatus.succeeded.value:
            raise Conflict("Cannot refund a booking that has not been paid")
        charge_id = doc.get("provider_charge_id")
        if not charge_id:
            raise Conflict("No payment charge found for this booking")

        price = float(doc.get("price") or 0)
        refund_amount = price if amount is None else amount
        if refund_amount <= 0 or refund_amount > price:
            raise ValidationFailed([{
                "field": "amount",
                "message": f"Refund amount must be greater than 0 and at most {price:.2f}",
            }])

        refund = await self._call(
            self.provider.create_refund,
            charge_id,
            to_minor_units(refund_amount),
            {"booking_id": str(doc["_id"]), "admin_id": admin["id"]},
        )
        # el webhook charge.refunded llegará después y reescribirá lo mismo
        await self._mark_refunded(doc, refund.amount / 100)
        logger.info(f"Refund {refund.id} issued for booking {doc['_id']} by admin {admin['id']}")

        updated = await self.db.bookings.find_one({"_id": doc["_id"]})
        return {
            "refund": {"id": refund.id, "amount": refund.amount / 100, "status": refund.status},
            "booking": updated,
        }

    async def get_status(self, requester: dict, booking_id: str) -> Dict[str, Any]:
        doc = await find_booking(self.db, booking_id)
        ensure_access(requester, doc)
        return {
            "booking_id": str(doc["_id"]),
            "status": doc.get("status"),
            "payment_status": doc.get("payment_status"),
            "amount": doc.get("price"),
            "paid_at": doc.get("paid_at"),
            "payment_method": doc.get("payment_method"),
            "refund_amount": doc.get("refund_amount"),
            "refunded_at": doc.get("refunded_at"),
        }
