from __future__ import annotations

import logging
from typing import Any

import httpx

from design_studio.core.config import HTTP_TIMEOUT_SECONDS, STRIPE_API_BASE
from design_studio.gateway.base import GatewayError, PaymentGateway, PaymentIntent

logger = logging.getLogger(__name__)


def _encode_form(metadata: dict[str, str]) -> dict[str, str]:
    return {f"metadata[{key}]": value for key, value in metadata.items()}


def _charge_id(payload: dict[str, Any]) -> str | None:
    latest_charge = payload.get("latest_charge")
    if isinstance(latest_charge, dict):
        return latest_charge.get("id")
    return latest_charge


def _payment_method(payload: dict[str, Any]) -> str | None:
    method_types = payload.get("payment_method_types") or []
    return method_types[0] if method_types else None


def _to_intent(payload: dict[str, Any]) -> PaymentIntent:
    return PaymentIntent(
        id=payload["id"],
        status=payload.get("status") or "",
        amount=int(payload.get("amount") or 0),
        currency=(payload.get("currency") or "usd").lower(),
        client_secret=payload.get("client_secret"),
        metadata=dict(payload.get("metadata") or {}),
        charge_id=_charge_id(payload),
        payment_method=_payment_method(payload),
    )


class StripeGateway(PaymentGateway):
    def __init__(self, secret_key: str, *, api_base: str = STRIPE_API_BASE, timeout: float = HTTP_TIMEOUT_SECONDS) -> None:
        self._secret_key = secret_key
        self._api_base = api_base
        self._timeout = timeout

    def create_intent(
        self,
        *,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
        description: str | None = None,
        receipt_email: str | None = None,
    ) -> PaymentIntent:
        form = {
            "amount": str(amount_cents),
            "currency": currency,
            "automatic_payment_methods[enabled]": "true",
            **_encode_form(metadata),
        }
        if description:
            form["description"] = description
        if receipt_email:
            form["receipt_email"] = receipt_email
        payload = self._request("POST", "/payment_intents", data=form)
        logger.info("[STRIPE] intent created id=%s amount=%s", payload.get("id"), amount_cents)
        return _to_intent(payload)

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        return _to_intent(self._request("GET", f"/payment_intents/{intent_id}"))

    def _request(self, method: str, path: str, data: dict[str, str] | None = None) -> dict[str, Any]:
        url = f"{self._api_base}{path}"
        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.request(method, url, data=data, auth=(self._secret_key, ""))
        except httpx.HTTPError as exc:
            logger.error("[STRIPE] request failed method=%s path=%s error=%s", method, path, exc)
            raise GatewayError(f"Payment gateway unreachable: {exc}") from exc

        if response.status_code >= 400:
            try:
                message = (response.json().get("error") or {}).get("message")
            except ValueError:
                message = None
            logger.error("[STRIPE] error status=%s path=%s message=%s", response.status_code, path, message)
            raise GatewayError(message or f"Payment gateway error ({response.status_code})")
        return response.json()
