"""
Middleware para aplicar rate limiting a endpoints específicos usando slowapi
"""
from functools import lru_cache

from fastapi import Request, HTTPException
from limits import parse
from slowapi.util import get_remote_address


@lru_cache
def _parse(limit: str):
    return parse(limit)


def apply_rate_limit(request: Request, limit: str):
    """
    Aplica rate limiting a un endpoint específico.
    Uso: apply_rate_limit(request, "5/minute")

    Si el limiter no está configurado (por ejemplo, en tests), la función no hace nada.
    """
    limiter = getattr(request.app.state, "limiter", None)
    if limiter is None:
        return

    # contador por ruta e IP sobre el storage del propio Limiter de slowapi.
    # `_limiter` es el RateLimiter de `limits` que slowapi 0.1.x guarda ahí;
    # la versión queda acotada en pyproject.toml
    key = f"{request.url.path}:{get_remote_address(request)}"
    if not limiter._limiter.hit(_parse(limit), key):
        raise HTTPException(
            status_code=429,
            detail=f"Too many requests. Limit: {limit}. Please try again later."
        )
