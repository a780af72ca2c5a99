# walkers/utils.py
from typing import Any, Dict, Optional
from bson import ObjectId
from datetime import datetime, timezone

from .errors import ValidationFailed

def _plain(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return to_id(value)
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def to_id(doc: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Documento de Mongo -> dict serializable: `_id` pasa a `id` (str),
    ObjectIds a str y fechas a ISO 8601, también en subdocumentos.
    None devuelve {}.
    """
    if doc is None:
        return {}
    d = {k: _plain(v) for k, v in doc.items() if k != "_id"}
    if "_id" in doc:
        d["id"] = str(doc["_id"])
    return d


def to_object_id(value: str, field_name: str = "id") -> ObjectId:
    """
    Convierte un string a ObjectId con validación.
    Un id mal formado es un error de validación del campo, no un 404.
    """
    if not value or not ObjectId.is_valid(value):
        raise ValidationFailed(
            [{"field": field_name, "message": f"Invalid {field_name} format"}],
            message=f"Invalid {field_name} format",
        )
    return ObjectId(value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def envelope(data: Any = None, message: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    """Respuesta uniforme {success, data|message}."""
    out: Dict[str, Any] = {"success": True}
    if message is not None:
        out["message"] = message
    if data is not None:
        out["data"] = data
    out.update(extra)
    return out
