"""
Errores de dominio y su traducción al sobre JSON {success: false, error: ...}.

Los servicios lanzan estas excepciones; los routers no las capturan, las
convierte en respuesta `register_error_handlers`.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(ServiceError):
    status_code = 400
    default_message = "Validation failed"

    def __init__(self, errors: List[Dict[str, str]], message: Optional[str] = None):
        self.errors = errors
        super().__init__(message)


class Unauthorized(ServiceError):
    status_code = 401
    default_message = "Not authorized"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Not authorized to access this booking"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Booking not found"


class Conflict(ServiceError):
    status_code = 400
    default_message = "Operation not allowed in the current state"


class PaymentProviderError(ServiceError):
    """Fallo del proveedor de pagos. El detalle queda en el log, nunca en la respuesta."""
    status_code = 500
    default_message = "Failed to process payment"


class WebhookVerificationError(ServiceError):
    status_code = 400
    default_message = "Webhook signature verification failed"


def _error_body(message: str, errors: Optional[Any] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "error": message}
    if errors is not None:
        body["errors"] = errors
    return body


def _field_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    out = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        out.append({
            "field": loc[-1] if loc else "body",
            "message": str(err.get("msg", "Invalid value")).removeprefix("Value error, "),
        })
    return out


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.message, getattr(exc, "errors", None)),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=_error_body("Validation failed", _field_errors(exc)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )
