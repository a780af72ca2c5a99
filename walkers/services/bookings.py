"""
Ciclo de vida de las reservas: alta, lectura, edición y borrado con las
reglas de propiedad y de permisos por campo.

Los métodos devuelven documentos de Mongo tal cual; la serialización
(`to_id`) la hacen los routers.
"""
import logging
from datetime import datetime, time as dtime, timezone
from typing import Any, Dict, List

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..errors import Conflict, Forbidden, NotFound
from ..pricing import price_for
from ..schemas.booking import DESCRIPTIVE_FIELDS, BookingCreate, BookingStatus, BookingUpdate
from ..schemas.payment import PaymentStatus
from ..security import is_admin
from ..utils import to_object_id, utcnow

logger = logging.getLogger(__name__)

# Campos obligatorios en el alta: un PUT con null no puede vaciarlos
REQUIRED_FIELDS = ("service", "dog_name", "date", "time", "duration")
NON_NULLABLE_FIELDS = REQUIRED_FIELDS + ("status", "price")
# mientras haya un intent sin cobrar el importe ya está fijado en el proveedor
PRICE_LOCKED_PAYMENT_STATUSES = (PaymentStatus.processing.value, PaymentStatus.failed.value)
NEWEST_FIRST = [("created_at", -1), ("_id", -1)]


async def find_booking(db: AsyncIOMotorDatabase, booking_id: str) -> Dict[str, Any]:
    doc = await db.bookings.find_one({"_id": to_object_id(booking_id, "booking_id")})
    if not doc:
        raise NotFound("Booking not found")
    return doc


def ensure_access(requester: dict, booking: dict, action: str = "access") -> None:
    """Solo el dueño de la reserva o un admin."""
    if str(booking.get("user_id")) != requester["id"] and not is_admin(requester):
        raise Forbidden(f"Not authorized to {action} this booking")


def _as_datetime(d) -> datetime:
    return datetime.combine(d, dtime.min, tzinfo=timezone.utc)


class BookingService:

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def create(self, user_id: str, payload: BookingCreate) -> Dict[str, Any]:
        now = utcnow()
        doc = payload.model_dump()
        doc.update({
            "user_id": user_id,
            "service": payload.service.value,
            "date": _as_datetime(payload.date),
            # el precio sale siempre de la tabla, nunca del cliente
            "price": price_for(payload.service),
            "status": BookingStatus.pending.value,
            "payment_status": PaymentStatus.pending.value,
            "created_at": now,
            "updated_at": now,
        })
        res = await self.db.bookings.insert_one(doc)
        logger.info(f"Booking {res.inserted_id} created by user {user_id} ({doc['service']}, ${doc['price']})")
        return await self.db.bookings.find_one({"_id": res.inserted_id})

    async def get(self, requester: dict, booking_id: str) -> Dict[str, Any]:
        doc = await find_booking(self.db, booking_id)
        ensure_access(requester, doc)
        return doc

    async def list_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        return await self.db.bookings.find({"user_id": user_id}).sort(NEWEST_FIRST).to_list(1000)

    async def list_all(self, requester: dict) -> List[Dict[str, Any]]:
        if not is_admin(requester):
            raise Forbidden("Only administrators can list all bookings")
        docs = await self.db.bookings.find().sort(NEWEST_FIRST).to_list(5000)

        owner_ids = {d["user_id"] for d in docs if ObjectId.is_valid(str(d.get("user_id")))}
        owners = {}
        if owner_ids:
            users = await self.db.users.find(
                {"_id": {"$in": [ObjectId(u) for u in owner_ids]}},
                {"name": 1, "email": 1, "phone": 1},
            ).to_list(len(owner_ids))
            for u in users:
                owners[str(u["_id"])] = {
                    "id": str(u["_id"]),
                    "name": u.get("name"),
                    "email": u.get("email"),
                    "phone": u.get("phone"),
                }
        for d in docs:
            d["user"] = owners.get(str(d.get("user_id")))
        return docs

    async def update(self, requester: dict, booking_id: str, patch: BookingUpdate) -> Dict[str, Any]:
        doc = await find_booking(self.db, booking_id)
        ensure_access(requester, doc, "update")

        changes = patch.model_dump(exclude_unset=True)
        for k in NON_NULLABLE_FIELDS:
            if k in changes and changes[k] is None:
                changes.pop(k)

        if not is_admin(requester):
            dropped = [k for k in changes if k not in DESCRIPTIVE_FIELDS]
            for k in dropped:
                changes.pop(k)
            if dropped:
                logger.warning(f"User {requester['id']} tried to set {dropped} on booking {booking_id}; ignored")
            if changes and (
                doc.get("status") != BookingStatus.pending.value
                or doc.get("payment_status") in (PaymentStatus.succeeded.value, PaymentStatus.refunded.value)
            ):
                raise Conflict("Only pending, unpaid bookings can be modified")

        if not changes:
            return doc

        if "service" in changes:
            changes["service"] = changes["service"].value
            if "price" not in changes:
                changes["price"] = price_for(changes["service"])
        if (
            "price" in changes
            and float(changes["price"]) != float(doc.get("price") or 0)
            and doc.get("provider_intent_id")
            and doc.get("payment_status") in PRICE_LOCKED_PAYMENT_STATUSES
        ):
            raise Conflict("Cannot change the price while a payment is in progress")
        if "status" in changes:
            changes["status"] = changes["status"].value
        if "date" in changes:
            changes["date"] = _as_datetime(changes["date"])
        for k in ("dog_name", "dog_breed", "notes", "special_instructions"):
            if isinstance(changes.get(k), str):
                changes[k] = changes[k].strip()

        changes["updated_at"] = utcnow()
        await self.db.bookings.update_one({"_id": doc["_id"]}, {"$set": changes})
        return await self.db.bookings.find_one({"_id": doc["_id"]})

    async def delete(self, requester: dict, booking_id: str) -> None:
        doc = await find_booking(self.db, booking_id)
        ensure_access(requester, doc, "delete")
        # un pago cobrado no puede quedar huérfano
        if doc.get("payment_status") == PaymentStatus.succeeded.value:
            raise Conflict("Refund the payment before deleting this booking")
        await self.db.bookings.delete_one({"_id": doc["_id"]})
        logger.info(f"Booking {booking_id} deleted by {requester['id']}")
