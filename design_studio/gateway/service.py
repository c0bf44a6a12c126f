from __future__ import annotations

import logging

from design_studio.core.config import IS_PROD, STRIPE_SECRET_KEY
from design_studio.gateway.base import PaymentGateway
from design_studio.gateway.mock_provider import MockPaymentGateway
from design_studio.gateway.stripe_provider import StripeGateway

logger = logging.getLogger(__name__)

_mock_gateway = MockPaymentGateway()


def select_gateway(secret_key: str = STRIPE_SECRET_KEY) -> PaymentGateway:
    if secret_key:
        return StripeGateway(secret_key)
    if IS_PROD:
        raise RuntimeError("STRIPE_SECRET_KEY is required in production")
    logger.warning("[PAYMENT] STRIPE_SECRET_KEY missing, using mock gateway")
    return _mock_gateway


def get_payment_gateway() -> PaymentGateway:
    return select_gateway()
