from __future__ import annotations

import uuid

from design_studio.gateway.base import GatewayError, PaymentGateway, PaymentIntent


class MockPaymentGateway(PaymentGateway):
    """In-memory gateway for local runs; intents succeed unless told otherwise."""

    def __init__(self, default_status: str = "succeeded") -> None:
        self.default_status = default_status
        self.intents: dict[str, PaymentIntent] = {}

    def create_intent(
        self,
        *,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
        description: str | None = None,
        receipt_email: str | None = None,
    ) -> PaymentIntent:
        intent_id = f"pi_mock_{uuid.uuid4().hex[:16]}"
        intent = PaymentIntent(
            id=intent_id,
            status=self.default_status,
            amount=amount_cents,
            currency=currency,
            client_secret=f"{intent_id}_secret_mock",
            metadata=dict(metadata),
            charge_id=f"ch_mock_{uuid.uuid4().hex[:12]}",
            payment_method="card",
        )
        self.intents[intent_id] = intent
        return intent

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        intent = self.intents.get(intent_id)
        if intent is None:
            raise GatewayError(f"No such payment_intent: {intent_id}")
        return intent

    def set_status(self, intent_id: str, status: str) -> None:
        self.retrieve_intent(intent_id).status = status
