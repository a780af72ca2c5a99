# walkers/routers/bookings.py
from fastapi import APIRouter, Depends, Request, status

from ..dependencies import get_booking_service
from ..middleware.rate_limit import apply_rate_limit
from ..schemas.booking import BookingCreate, BookingUpdate
from ..security import get_current_user, require_admin
from ..services.bookings import BookingService
from ..utils import envelope, to_id

router = APIRouter()

def _to_out(doc: dict) -> dict:
    return to_id(doc)

# ---------- Endpoints ----------

@router.get("")
async def list_my_bookings(
    svc: BookingService = Depends(get_booking_service),
    current=Depends(get_current_user),
):
    docs = await svc.list_for_user(current["id"])
    return envelope([_to_out(d) for d in docs], count=len(docs))

# antes de /{booking_id} para que "admin" no se tome como id
@router.get("/admin/all")
async def list_all_bookings(
    svc: BookingService = Depends(get_booking_service),
    current=Depends(require_admin),
):
    docs = await svc.list_all(current)
    return envelope([_to_out(d) for d in docs], count=len(docs))

@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    svc: BookingService = Depends(get_booking_service),
    current=Depends(get_current_user),
):
    return envelope(_to_out(await svc.get(current, booking_id)))

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: Request,
    payload: BookingCreate,
    svc: BookingService = Depends(get_booking_service),
    current=Depends(get_current_user),
):
    # Rate limiting: máximo 15 reservas por minuto por IP
    apply_rate_limit(request, "15/minute")
    return envelope(_to_out(await svc.create(current["id"], payload)))

@router.put("/{booking_id}")
async def update_booking(
    booking_id: str,
    payload: BookingUpdate,
    svc: BookingService = Depends(get_booking_service),
    current=Depends(get_current_user),
):
    return envelope(_to_out(await svc.update(current, booking_id, payload)))

@router.delete("/{booking_id}")
async def delete_booking(
    booking_id: str,
    svc: BookingService = Depends(get_booking_service),
    current=Depends(get_current_user),
):
    await svc.delete(current, booking_id)
    return envelope({})
