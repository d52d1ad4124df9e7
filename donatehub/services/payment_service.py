"""Payment gateway adapters (Flutterwave, Paystack) behind one provider interface.

Amount units are converted inside each adapter: Paystack works in minor
currency units, Flutterwave in decimal major units. Callers always deal in
major units.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import httpx

from donatehub.config import get_settings
from donatehub.errors import GatewayError, UnsupportedMethod
from donatehub.models import PaymentMethod

logger = logging.getLogger(__name__)


@dataclass
class InitializeRequest:
    reference: str
    amount: Decimal
    email: str
    name: str
    cause_title: str
    callback_url: str
    currency: str


@dataclass
class PaymentIntent:
    provider: str
    reference: str
    redirect_url: str
    provider_reference: Optional[str] = None


@dataclass
class VerificationResult:
    provider: str
    reference: Optional[str]
    status: str
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    transaction_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


class PaymentProvider:
    name = "base"
    success_status = "success"

    def __init__(
        self,
        secret_key: str,
        base_url: str,
        timeout: float = 15.0,
        verify_retries: int = 2,
        retry_backoff: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verify_retries = max(0, verify_retries)
        self.retry_backoff = retry_backoff
        self.transport = transport

    def is_successful(self, status: Optional[str]) -> bool:
        return (status or "").lower() == self.success_status

    async def initialize(self, request: InitializeRequest) -> PaymentIntent:
        raise NotImplementedError

    async def verify(self, reference: str, transaction_id: Optional[str] = None) -> VerificationResult:
        raise NotImplementedError

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={
                "Authorization": f"Bearer {self.secret_key}",
                "Content-Type": "application/json",
            },
        )

    async def _send(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Single gateway call; every failure comes back as GatewayError."""
        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("%s %s %s timed out: %s", self.name, method, path, exc)
            raise GatewayError("Payment gateway timed out", provider=self.name) from exc
        except httpx.HTTPError as exc:
            logger.warning("%s %s %s transport error: %s", self.name, method, path, exc)
            raise GatewayError("Payment gateway unreachable", provider=self.name) from exc
        return self._parse(resp, method, path)

    async def _send_with_retries(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Retry only transport-level failures (timeouts, connection errors)."""
        attempts = self.verify_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                async with self._client() as client:
                    resp = await client.request(method, path, **kwargs)
                break
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                if attempt < attempts:
                    wait = self.retry_backoff * (2 ** (attempt - 1))
                    logger.info(
                        "%s verify attempt %s/%s failed (%s), retrying in %ss",
                        self.name, attempt, attempts, exc, wait,
                    )
                    await asyncio.sleep(wait)
                    continue
                logger.warning("%s verify failed after %s attempts: %s", self.name, attempts, exc)
                raise GatewayError("Payment gateway unreachable", provider=self.name) from exc
        return self._parse(resp, method, path)

    def _parse(self, resp: httpx.Response, method: str, path: str) -> Dict[str, Any]:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if resp.status_code >= 400:
            reason = body.get("message") or f"Payment gateway returned HTTP {resp.status_code}"
            logger.warning("%s %s %s rejected (%s): %s", self.name, method, path, resp.status_code, reason)
            raise GatewayError(reason, provider=self.name)
        # Paystack envelopes carry status=true, Flutterwave status="success"
        envelope = body.get("status")
        if envelope is False or (isinstance(envelope, str) and envelope.lower() != "success"):
            raise GatewayError(body.get("message") or "Payment gateway rejected the request", provider=self.name)
        if not isinstance(body.get("data"), dict):
            raise GatewayError(body.get("message") or "Malformed gateway response", provider=self.name)
        return body


class FlutterwaveProvider(PaymentProvider):
    name = PaymentMethod.FLUTTERWAVE.value
    success_status = "successful"

    async def initialize(self, request: InitializeRequest) -> PaymentIntent:
        payload = {
            "tx_ref": request.reference,
            "amount": str(request.amount),
            "currency": request.currency,
            "redirect_url": request.callback_url,
            "customer": {"email": request.email, "name": request.name},
            "customizations": {
                "title": "Donation Payment",
                "description": f"Donation to {request.cause_title}",
            },
        }
        body = await self._send("POST", "/payments", json=payload)
        link = body["data"].get("link")
        if not link:
            raise GatewayError("Gateway did not return a payment link", provider=self.name)
        return PaymentIntent(provider=self.name, reference=request.reference, redirect_url=link)

    async def verify(self, reference: str, transaction_id: Optional[str] = None) -> VerificationResult:
        if transaction_id:
            body = await self._send_with_retries("GET", f"/transactions/{transaction_id}/verify")
        else:
            body = await self._send_with_retries(
                "GET", "/transactions/verify_by_reference", params={"tx_ref": reference}
            )
        data = body["data"]
        return VerificationResult(
            provider=self.name,
            reference=data.get("tx_ref"),
            status=str(data.get("status") or ""),
            amount=_to_decimal(data.get("amount")),
            currency=data.get("currency"),
            transaction_id=str(data["id"]) if data.get("id") is not None else None,
            raw=body,
        )


class PaystackProvider(PaymentProvider):
    name = PaymentMethod.PAYSTACK.value
    success_status = "success"

    async def initialize(self, request: InitializeRequest) -> PaymentIntent:
        payload = {
            "reference": request.reference,
            "amount": to_minor_units(request.amount),
            "currency": request.currency,
            "email": request.email,
            "callback_url": request.callback_url,
            "metadata": {
                "custom_fields": [
                    {"display_name": "Cause", "variable_name": "cause", "value": request.cause_title},
                ],
            },
        }
        body = await self._send("POST", "/transaction/initialize", json=payload)
        data = body["data"]
        url = data.get("authorization_url")
        if not url:
            raise GatewayError("Gateway did not return an authorization URL", provider=self.name)
        return PaymentIntent(
            provider=self.name,
            reference=request.reference,
            redirect_url=url,
            provider_reference=data.get("access_code"),
        )

    async def verify(self, reference: str, transaction_id: Optional[str] = None) -> VerificationResult:
        body = await self._send_with_retries("GET", f"/transaction/verify/{reference}")
        data = body["data"]
        minor = _to_decimal(data.get("amount"))
        return VerificationResult(
            provider=self.name,
            reference=data.get("reference"),
            status=str(data.get("status") or ""),
            amount=(minor / 100) if minor is not None else None,
            currency=data.get("currency"),
            transaction_id=str(data["id"]) if data.get("id") is not None else None,
            raw=body,
        )


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value())


def get_payment_provider(method: str) -> PaymentProvider:
    settings = get_settings()
    common = {
        "timeout": settings.GATEWAY_TIMEOUT_SECONDS,
        "verify_retries": settings.GATEWAY_VERIFY_RETRIES,
        "retry_backoff": settings.GATEWAY_RETRY_BACKOFF,
    }
    if method == PaymentMethod.FLUTTERWAVE.value:
        return FlutterwaveProvider(settings.FLUTTERWAVE_SECRET_KEY, settings.FLUTTERWAVE_BASE_URL, **common)
    if method == PaymentMethod.PAYSTACK.value:
        return PaystackProvider(settings.PAYSTACK_SECRET_KEY, settings.PAYSTACK_BASE_URL, **common)
    raise UnsupportedMethod()
