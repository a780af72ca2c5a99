from enum import Enum


class ServiceName(str, Enum):
    walk_30 = "Daily Walk (30 min)"
    walk_60 = "Daily Walk (60 min)"
    pet_sitting = "Pet Sitting"
    emergency_visit = "Emergency Visit"
    other = "Other"


# Precios en dólares. "Other" se presupuesta aparte.
SERVICE_PRICING: dict[str, float] = {
    ServiceName.walk_30.value: 25,
    ServiceName.walk_60.value: 35,
    ServiceName.pet_sitting.value: 40,
    ServiceName.emergency_visit.value: 50,
    ServiceName.other.value: 0,
}


def price_for(service) -> float:
    """Precio de un servicio; uno desconocido vale 0, no es un error."""
    if isinstance(service, ServiceName):
        service = service.value
    return float(SERVICE_PRICING.get(service, 0))


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))
