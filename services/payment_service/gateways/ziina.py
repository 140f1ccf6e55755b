import hashlib
import hmac
import json
from decimal import ROUND_HALF_UP, Decimal

import httpx

from shared.config import settings
from shared.errors import Unauthorized, ValidationError
from shared.money import to_money

from .base import (
    GatewayCapture,
    GatewayEvent,
    GatewayIntent,
    IntentRequest,
    Outcome,
    PaymentGateway,
    Settlement,
)

SUCCESS_STATUSES = {"completed", "succeeded"}
FAILURE_STATUSES = {"failed", "canceled", "cancelled"}

SIGNATURE_HEADER = "X-Hmac-Signature"


def aed_to_fils(amount) -> int:
    """100 AED -> 10000 fils."""
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def fils_to_aed(fils) -> Decimal:
    return to_money(Decimal(int(fils or 0)) / 100)


def outcome_for_status(status: str | None) -> Outcome:
    status = (status or "").lower()
    if status in SUCCESS_STATUSES:
        return Outcome.SUCCEEDED
    if status in FAILURE_STATUSES:
        return Outcome.FAILED
    return Outcome.PENDING


class ZiinaGateway(PaymentGateway):
    name = "ziina"
    settlement = Settlement.POST_PAID

    def __init__(
        self,
        api_key: str = settings.ZIINA_API_KEY,
        base_url: str = settings.ZIINA_BASE_URL,
        test_mode: bool = settings.ZIINA_TEST_MODE,
        webhook_secret: str = settings.ZIINA_WEBHOOK_SECRET,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(base_url, transport=transport)
        self.api_key = api_key
        self.test_mode = test_mode
        self.webhook_secret = webhook_secret

    def _client(self, **kwargs) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        return super()._client(headers=headers, **kwargs)

    async def create_intent(self, request: IntentRequest) -> GatewayIntent:
        payload = {
            "amount": aed_to_fils(request.amount),
            "currency_code": "AED",
            "message": request.description,
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "failure_url": request.failure_url or request.cancel_url,
            "test": self.test_mode,
            "allow_tips": False,
        }
        async with self._client() as client:
            data = await self._request(client, "POST", "/payment_intent", json=payload)
        return GatewayIntent(
            external_id=data["id"],
            redirect_url=data.get("redirect_url"),
            status=data.get("status", "requires_payment_instrument"),
            raw=data,
        )

    async def capture(self, external_id: str) -> GatewayCapture:
        async with self._client() as client:
            data = await self._request(client, "GET", f"/payment_intent/{external_id}")
        status = data.get("status", "")
        return GatewayCapture(
            external_id=data.get("id", external_id),
            status=status,
            outcome=outcome_for_status(status),
            amount=fils_to_aed(data["amount"]) if data.get("amount") is not None else None,
            raw=data,
        )

    def verify_signature(self, body: bytes, headers) -> None:
        if not self.webhook_secret:
            return
        provided = headers.get(SIGNATURE_HEADER) or ""
        expected = hmac.new(self.webhook_secret.encode(), body, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(provided, expected):
            raise Unauthorized("Invalid webhook signature")

    async def parse_webhook(self, body: bytes, headers) -> GatewayEvent:
        self.verify_signature(body, headers)
        try:
            payload = json.loads(body or b"{}")
        except ValueError as exc:
            raise ValidationError("Webhook body is not valid JSON") from exc

        event_type = payload.get("event") or ""
        data = payload.get("data") or {}
        status = data.get("status")

        if event_type in ("payment_intent.completed", "payment_intent.succeeded"):
            outcome = Outcome.SUCCEEDED
        elif event_type == "payment_intent.failed":
            outcome = Outcome.FAILED
        elif event_type == "payment_intent.status.updated":
            outcome = outcome_for_status(status)
        else:
            outcome = Outcome.IGNORED

        external_id = data.get("id")
        event_id = payload.get("id") or f"{external_id}:{status or event_type}"
        return GatewayEvent(
            event_id=str(event_id),
            external_id=external_id,
            event_type=event_type,
            outcome=outcome,
            raw=payload,
        )
