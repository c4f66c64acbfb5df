"""
Paystack transactions adapter over the REST API (httpx).

- POST /transaction/initialize opens a hosted checkout session.
- GET /transaction/verify/{reference} returns the authoritative status.
- Webhooks are signed with HMAC-SHA512 of the raw body using the secret key,
  delivered in the ``x-paystack-signature`` header.

Paystack amounts are integers in the currency's subunit (kobo for NGN).
``Money`` already carries minor units, so no conversion happens here.
"""
from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime
from typing import Any, Optional

import httpx

from application.dtos.payments import (
    OpenSession,
    GatewaySession,
    GatewayTransaction,
    WebhookEvent,
)
from core.settings import payment_settings
from domain.common.money import Money
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentSignatureError,
)


SIGNATURE_HEADER = "x-paystack-signature"


def _parse_paid_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class PaystackClient(BasePaymentClient):
    provider = "paystack"

    def __init__(
        self,
        *,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
            transport=transport,
        )
        self._secret_key = secret_key or payment_settings.paystack.secret_key
        if not self._secret_key:
            raise RuntimeError("PAYSTACK__SECRET_KEY not configured")
        self.base_url = (base_url or payment_settings.paystack.base_url).rstrip("/")

    def _default_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._secret_key}",
            "Content-Type": "application/json",
        }

    def _ensure_ok(self, resp: httpx.Response, body: dict[str, Any], op: str) -> dict[str, Any]:
        if resp.status_code >= 400 or not body.get("status"):
            raise PaymentProviderError(
                str(body.get("message") or f"Paystack {op} failed"),
                provider=self.provider,
                provider_code=body.get("code"),
                http_status=resp.status_code,
                details={"op": op},
            )
        data = body.get("data")
        if not isinstance(data, dict):
            raise PaymentProviderError(f"Paystack {op} returned no data", provider=self.provider)
        return data

    async def open_session(self, req: OpenSession) -> GatewaySession:  # type: ignore[override]
        payload: dict[str, Any] = {
            "email": req.buyer_email,
            "amount": req.amount.amount,
            "currency": req.amount.currency,
            "metadata": req.metadata,
        }
        callback = req.callback_url or payment_settings.paystack.callback_url
        if callback:
            payload["callback_url"] = callback
        resp = await self._request("POST", "/transaction/initialize", json=payload)
        data = self._ensure_ok(resp, self._json(resp), "initialize")
        self._log("payment_session_opened", reference=data.get("reference"), amount=req.amount.amount)
        return GatewaySession(
            reference=str(data["reference"]),
            redirect_url=str(data["authorization_url"]),
            access_code=data.get("access_code"),
            provider=self.provider,
        )

    async def get_status(self, reference: str) -> GatewayTransaction:  # type: ignore[override]
        resp = await self._request("GET", f"/transaction/verify/{reference}")
        data = self._ensure_ok(resp, self._json(resp), "verify")
        provider_status = str(data.get("status") or "")
        customer = data.get("customer") or {}
        tx = GatewayTransaction(
            reference=str(data.get("reference") or reference),
            status=self._map_status(provider_status),
            amount=Money(int(data.get("amount") or 0), str(data.get("currency") or "NGN")),
            paid_at=_parse_paid_at(data.get("paid_at") or data.get("paidAt")),
            provider=self.provider,
            provider_status=provider_status,
            customer_email=customer.get("email") if isinstance(customer, dict) else None,
        )
        self._log("payment_status_fetched", reference=reference, status=tx.status.value, provider_status=provider_status)
        return tx

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        if not signature:
            return False
        expected = hmac.new(self._secret_key.encode("utf-8"), body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        lowered = {str(k).lower(): v for k, v in headers.items()}
        signature = lowered.get(SIGNATURE_HEADER)
        if not signature:
            raise PaymentSignatureError("Missing x-paystack-signature header", provider=self.provider)
        if not self.verify_signature(body, signature):
            raise PaymentSignatureError("Invalid webhook signature", provider=self.provider)
        try:
            event = json.loads(body)
        except ValueError as exc:
            raise PaymentSignatureError("Malformed webhook body", provider=self.provider) from exc
        data = event.get("data") or {}
        event_type = str(event.get("event") or "")
        event_id = f"{event_type}:{data.get('id') or data.get('reference') or ''}"
        return WebhookEvent(
            id=event_id,
            type=event_type,
            provider=self.provider,
            data=data,
            raw_headers=headers,
            raw_body=body,
        )
