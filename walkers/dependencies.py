"""
Dependencias FastAPI que construyen los servicios con su base de datos y
su proveedor de pagos. En tests se sustituyen con `app.dependency_overrides`.
"""
import logging
from functools import lru_cache

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from .config import get_settings
from .db import get_db
from .payments.base import PaymentProvider
from .payments.mock_provider import MockPaymentProvider
from .payments.stripe_provider import StripePaymentProvider
from .services.bookings import BookingService
from .services.payments import PaymentService

logger = logging.getLogger(__name__)


@lru_cache
def get_payment_provider() -> PaymentProvider:
    settings = get_settings()
    if settings.billing_provider == "stripe":
        if not settings.stripe_secret_key:
            logger.error("BILLING_PROVIDER=stripe but STRIPE_SECRET_KEY is empty")
        return StripePaymentProvider(settings.stripe_secret_key, settings.stripe_webhook_secret)
    logger.info("Using mock payment provider")
    return MockPaymentProvider(settings.stripe_webhook_secret)


def get_booking_service(db: AsyncIOMotorDatabase = Depends(get_db)) -> BookingService:
    return BookingService(db)


def get_payment_service(
    db: AsyncIOMotorDatabase = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
) -> PaymentService:
    return PaymentService(db, provider, get_settings().currency)
