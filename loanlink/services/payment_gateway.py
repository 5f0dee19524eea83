from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping
from uuid import UUID

import httpx

from loanlink.core.exceptions import GatewayUnavailable, InvalidSignal
from loanlink.core.settings import settings

logger = logging.getLogger(__name__)

COMPLETION_EVENTS = frozenset(
    {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
)
SETTLED_PAYMENT_STATUSES = frozenset({"paid", "no_payment_required"})


@dataclass(frozen=True)
class GatewaySession:
    url: str
    session_id: str


@dataclass(frozen=True)
class PaymentSignal:
    """A verified notification from the processor."""

    event_type: str
    application_id: str | None
    external_reference: str | None
    amount: int | None = None
    completed: bool = False


class PaymentGateway(ABC):
    provider: str = "abstract"

    @abstractmethod
    async def create_session(
        self,
        application_id: UUID,
        amount: int,
        metadata: Mapping[str, str],
        *,
        description: str | None = None,
    ) -> GatewaySession:
        """Open a checkout session; raises GatewayUnavailable on timeout or processor error."""

    @abstractmethod
    def verify_signal(self, raw_payload: bytes, signature_header: str | None) -> PaymentSignal:
        """Authenticate a completion notification; raises InvalidSignal."""

    async def aclose(self) -> None:
        return None


def sign_payload(secret: str, timestamp: int, raw_payload: bytes) -> str:
    """HMAC-SHA256 over ``"<timestamp>.<payload>"``, hex encoded."""
    message = f"{timestamp}.".encode("utf-8") + raw_payload
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _parse_signature_header(header: str) -> tuple[int, list[str]]:
    timestamp: int | None = None
    signatures: list[str] = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError as exc:
                raise InvalidSignal() from exc
        elif key == "v1":
            signatures.append(value)
    if timestamp is None or not signatures:
        raise InvalidSignal()
    return timestamp, signatures


def _flatten_form(data: Mapping[str, Any], prefix: str = "") -> dict[str, str]:
    """Encode nested dicts/lists the way the Stripe form API expects (a[b][0][c]=v)."""
    flat: dict[str, str] = {}
    for key, value in data.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(_flatten_form(value, name))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                item_name = f"{name}[{index}]"
                if isinstance(item, Mapping):
                    flat.update(_flatten_form(item, item_name))
                else:
                    flat[item_name] = str(item)
        elif value is not None:
            flat[name] = str(value)
    return flat


class StripeCheckoutGateway(PaymentGateway):
    provider = "stripe"

    def __init__(
        self,
        *,
        secret_key: str,
        webhook_secret: str,
        api_base: str = "https://api.stripe.com",
        client_origin: str = "http://localhost:5173",
        currency: str = "usd",
        timeout_seconds: float = 10.0,
        tolerance_seconds: int = 300,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.client_origin = client_origin.rstrip("/")
        self.currency = currency
        self.timeout_seconds = timeout_seconds
        self.tolerance_seconds = tolerance_seconds
        self._client = client or httpx.AsyncClient(
            base_url=api_base,
            timeout=httpx.Timeout(timeout_seconds),
        )

    @classmethod
    def from_settings(cls) -> "StripeCheckoutGateway":
        return cls(
            secret_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            api_base=settings.stripe_api_base,
            client_origin=settings.client_origin,
            currency=settings.application_fee_currency,
            timeout_seconds=settings.payment_gateway_timeout_seconds,
            tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
        )

    def _checkout_form(
        self,
        application_id: UUID,
        amount: int,
        metadata: Mapping[str, str],
        description: str | None,
    ) -> dict[str, str]:
        product_data: dict[str, str] = {"name": "Loan Application Fee"}
        if description:
            product_data["description"] = description
        return _flatten_form(
            {
                "mode": "payment",
                "payment_method_types": ["card"],
                "client_reference_id": str(application_id),
                "metadata": dict(metadata),
                "payment_intent_data": {"metadata": dict(metadata)},
                "line_items": [
                    {
                        "quantity": 1,
                        "price_data": {
                            "currency": self.currency,
                            "unit_amount": amount,
                            "product_data": product_data,
                        },
                    }
                ],
                "success_url": f"{self.client_origin}/payment-success/{application_id}",
                "cancel_url": f"{self.client_origin}/payment/cancel",
            }
        )

    async def create_session(
        self,
        application_id: UUID,
        amount: int,
        metadata: Mapping[str, str],
        *,
        description: str | None = None,
    ) -> GatewaySession:
        form = self._checkout_form(application_id, amount, metadata, description)
        try:
            response = await asyncio.wait_for(
                self._client.post(
                    "/v1/checkout/sessions",
                    data=form,
                    auth=(self.secret_key, ""),
                ),
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            body = response.json()
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.warning("Checkout session creation timed out for application %s", application_id)
            raise GatewayUnavailable(details={"reason": "timeout"}) from exc
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Payment processor rejected checkout session for application %s: status=%s",
                application_id,
                exc.response.status_code,
            )
            raise GatewayUnavailable(details={"reason": "processor_error"}) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "Checkout session creation failed for application %s: %s",
                application_id,
                exc.__class__.__name__,
            )
            raise GatewayUnavailable(details={"reason": "transport_error"}) from exc

        url = body.get("url")
        session_id = body.get("id")
        if not url or not session_id:
            raise GatewayUnavailable(details={"reason": "malformed_response"})
        return GatewaySession(url=url, session_id=session_id)

    def verify_signal(self, raw_payload: bytes, signature_header: str | None) -> PaymentSignal:
        if not self.webhook_secret:
            logger.error("Webhook secret not configured; rejecting payment notification")
            raise InvalidSignal()
        if not signature_header:
            raise InvalidSignal()

        timestamp, signatures = _parse_signature_header(signature_header)
        if abs(time.time() - timestamp) > self.tolerance_seconds:
            raise InvalidSignal()
        expected = sign_payload(self.webhook_secret, timestamp, raw_payload)
        if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
            raise InvalidSignal()

        try:
            event = json.loads(raw_payload)
            event_type = str(event["type"])
            obj = event["data"]["object"]
            if not isinstance(obj, Mapping):
                raise TypeError("event data.object is not a mapping")
            metadata = obj.get("metadata") or {}
            if not isinstance(metadata, Mapping):
                raise TypeError("event metadata is not a mapping")
        except (ValueError, KeyError, TypeError) as exc:
            raise InvalidSignal("Payment notification is malformed") from exc

        application_id = metadata.get("application_id") or obj.get("client_reference_id")
        external_reference = obj.get("payment_intent") or obj.get("id")
        completed = (
            event_type in COMPLETION_EVENTS
            and obj.get("payment_status") in SETTLED_PAYMENT_STATUSES
        )
        return PaymentSignal(
            event_type=event_type,
            application_id=application_id,
            external_reference=external_reference,
            amount=obj.get("amount_total"),
            completed=completed,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
