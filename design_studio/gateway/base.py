from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Protocol


class GatewayError(RuntimeError):
    pass


@dataclass
class PaymentIntent:
    id: str
    status: str
    amount: int
    currency: str
    client_secret: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    charge_id: str | None = None
    payment_method: str | None = None


class PaymentGateway(Protocol):
    def create_intent(
        self,
        *,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
        description: str | None = None,
        receipt_email: str | None = None,
    ) -> PaymentIntent:
        ...

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        ...


# Stripe rejects metadata with more than 50 keys, keys over 40 characters or values over 500.
METADATA_MAX_KEYS = 50
METADATA_KEY_LIMIT = 40
METADATA_VALUE_LIMIT = 500


class MetadataTooLarge(ValueError):
    pass


def stringify_metadata(metadata: dict[str, Any]) -> dict[str, str]:
    """Gateway metadata only holds flat strings within the gateway's size limits."""
    flat: dict[str, str] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (dict, list)):
            text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        elif isinstance(value, bool):
            text = "true" if value else "false"
        else:
            text = str(value)
        if len(key) > METADATA_KEY_LIMIT:
            raise MetadataTooLarge(f"Metadata key {key!r} exceeds {METADATA_KEY_LIMIT} characters")
        if len(text) > METADATA_VALUE_LIMIT:
            raise MetadataTooLarge(f"Metadata value for {key!r} exceeds {METADATA_VALUE_LIMIT} characters")
        flat[key] = text
    if len(flat) > METADATA_MAX_KEYS:
        raise MetadataTooLarge(f"Metadata holds more than {METADATA_MAX_KEYS} keys")
    return flat
