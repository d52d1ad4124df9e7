"""Webhook signature checks and payload extraction per provider."""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from donatehub.config import get_settings
from donatehub.errors import InvalidWebhookSignature, UnsupportedMethod
from donatehub.models import PaymentMethod

logger = logging.getLogger(__name__)

# Events after which the referenced donation is worth reconciling.
COMPLETION_EVENTS = {
    PaymentMethod.PAYSTACK.value: {"charge.success"},
    PaymentMethod.FLUTTERWAVE.value: {"charge.completed"},
}


@dataclass
class WebhookEvent:
    provider: str
    event_type: str
    reference: Optional[str]
    transaction_id: Optional[str]
    payload: Dict[str, Any]

    @property
    def is_completion(self) -> bool:
        return self.event_type in COMPLETION_EVENTS.get(self.provider, set())


def normalize_provider(provider: str) -> str:
    name = (provider or "").strip().upper()
    if name not in {m.value for m in PaymentMethod}:
        raise UnsupportedMethod()
    return name


def verify_signature(provider: str, raw_body: bytes, headers: Mapping[str, str]) -> None:
    """Raise InvalidWebhookSignature unless the request came from the provider."""
    settings = get_settings()
    if not settings.WEBHOOK_VERIFY_SIGNATURES:
        logger.warning("Webhook signature verification disabled; accepting %s payload unchecked", provider)
        return

    if provider == PaymentMethod.PAYSTACK.value:
        signature = headers.get("x-paystack-signature") or ""
        secret = settings.PAYSTACK_SECRET_KEY
        expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest() if secret else ""
    elif provider == PaymentMethod.FLUTTERWAVE.value:
        signature = headers.get("verif-hash") or ""
        expected = settings.FLUTTERWAVE_WEBHOOK_HASH
    else:
        raise UnsupportedMethod()

    # header values may carry any latin-1 text; compare as bytes
    if not expected or not signature or not hmac.compare_digest(
        expected.encode("utf-8"), signature.encode("utf-8", "surrogateescape")
    ):
        logger.warning("Rejected %s webhook with invalid signature", provider)
        raise InvalidWebhookSignature()


def parse_event(provider: str, payload: Dict[str, Any]) -> WebhookEvent:
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    if provider == PaymentMethod.PAYSTACK.value:
        reference = data.get("reference")
    else:
        reference = data.get("tx_ref")
    tx_id = data.get("id")
    return WebhookEvent(
        provider=provider,
        event_type=str(payload.get("event") or ""),
        reference=str(reference) if reference else None,
        transaction_id=str(tx_id) if tx_id is not None else None,
        payload=payload,
    )
