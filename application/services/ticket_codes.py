"""
Signed QR payloads for tickets.

The payload is a compact JSON document binding ticket id and ticket number,
signed with HMAC-SHA256 so a forged or edited code fails verification.
Rendering the payload into an image is left to the client.
"""
from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Optional

from domain.ticket.entity import Ticket


class TicketCodec:
    def __init__(self, secret: str, verification_base_url: str) -> None:
        self._secret = secret.encode("utf-8")
        self._base_url = verification_base_url.rstrip("/")

    def verification_url(self, ticket_number: str) -> str:
        return f"{self._base_url}/api/v1/tickets/verify/{ticket_number}"

    def _sign(self, body: dict) -> str:
        canonical = json.dumps(body, sort_keys=True, separators=(",", ":"))
        return hmac.new(self._secret, canonical.encode("utf-8"), hashlib.sha256).hexdigest()

    def encode(self, ticket: Ticket, now: Optional[datetime] = None) -> str:
        body = {
            "ticketId": ticket.id,
            "ticketNumber": ticket.ticket_number,
            "verificationUrl": self.verification_url(ticket.ticket_number),
            "timestamp": (now or datetime.now(timezone.utc)).isoformat(),
        }
        return json.dumps({**body, "sig": self._sign(body)}, separators=(",", ":"))

    def decode(self, payload: str) -> Optional[dict]:
        """返回已验签的载荷；格式错误或签名不符返回 None"""
        try:
            data = json.loads(payload)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        sig = data.pop("sig", None)
        if not isinstance(sig, str) or not hmac.compare_digest(sig, self._sign(data)):
            return None
        if not data.get("ticketId") or not data.get("ticketNumber"):
            return None
        return data
