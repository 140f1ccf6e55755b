import json
from decimal import Decimal

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

CAPTURE_SUCCEEDED_EVENTS = {"PAYMENT.CAPTURE.COMPLETED", "CHECKOUT.ORDER.COMPLETED"}
CAPTURE_FAILED_EVENTS = {"PAYMENT.CAPTURE.DENIED", "PAYMENT.CAPTURE.DECLINED"}

VERIFY_HEADERS = {
    "auth_algo": "PAYPAL-AUTH-ALGO",
    "cert_url": "PAYPAL-CERT-URL",
    "transmission_id": "PAYPAL-TRANSMISSION-ID",
    "transmission_sig": "PAYPAL-TRANSMISSION-SIG",
    "transmission_time": "PAYPAL-TRANSMISSION-TIME",
}


class PayPalGateway(PaymentGateway):
    """PayPal Orders v2 over REST. Amounts are converted from AED at a fixed rate."""

    name = "paypal"
    settlement = Settlement.PRE_PAID

    def __init__(
        self,
        client_id: str = settings.PAYPAL_CLIENT_ID,
        client_secret: str = settings.PAYPAL_CLIENT_SECRET,
        base_url: str = settings.PAYPAL_BASE_URL,
        currency: str = settings.PAYPAL_CURRENCY,
        aed_per_unit: Decimal = settings.PAYPAL_AED_PER_UNIT,
        webhook_id: str = settings.PAYPAL_WEBHOOK_ID,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(base_url, transport=transport)
        self.client_id = client_id
        self.client_secret = client_secret
        self.currency = currency
        self.aed_per_unit = aed_per_unit
        self.webhook_id = webhook_id

    def convert(self, amount_aed) -> Decimal:
        if self.currency == "AED":
            return to_money(amount_aed)
        return to_money(to_money(amount_aed) / self.aed_per_unit)

    async def _authorize(self, client: httpx.AsyncClient) -> None:
        data = await self._request(
            client,
            "POST",
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
        )
        client.headers["Authorization"] = f"Bearer {data['access_token']}"

    async def create_intent(self, request: IntentRequest) -> GatewayIntent:
        purchase_unit = {
            "reference_id": request.reference,
            "description": request.description[:127],
            "amount": {"currency_code": self.currency, "value": str(self.convert(request.amount))},
        }
        address = request.shipping_address or {}
        if address.get("address_line1"):
            purchase_unit["shipping"] = {
                "name": {"full_name": address.get("full_name") or ""},
                "address": {
                    "address_line_1": address.get("address_line1"),
                    "address_line_2": address.get("address_line2") or "",
                    "admin_area_2": address.get("city") or "",
                    "admin_area_1": address.get("state") or "",
                    "postal_code": address.get("postal_code") or "",
                    "country_code": address.get("country") or "AE",
                },
            }
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [purchase_unit],
            "application_context": {
                "brand_name": settings.STORE_NAME,
                "user_action": "PAY_NOW",
                "return_url": request.success_url,
                "cancel_url": request.cancel_url,
                "shipping_preference": "SET_PROVIDED_ADDRESS" if "shipping" in purchase_unit else "NO_SHIPPING",
            },
        }
        async with self._client() as client:
            await self._authorize(client)
            data = await self._request(client, "POST", "/v2/checkout/orders", json=payload)

        approve = next(
            (link["href"] for link in data.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        return GatewayIntent(external_id=data["id"], redirect_url=approve, status=data.get("status", ""), raw=data)

    async def capture(self, external_id: str) -> GatewayCapture:
        async with self._client() as client:
            await self._authorize(client)
            data = await self._request(
                client,
                "POST",
                f"/v2/checkout/orders/{external_id}/capture",
                json={},
                headers={"Prefer": "return=representation"},
            )

        status = data.get("status", "")
        capture = {}
        for unit in data.get("purchase_units", []):
            captures = (unit.get("payments") or {}).get("captures") or []
            if captures:
                capture = captures[0]
                break
        amount = (capture.get("amount") or {}).get("value")

        if status == "COMPLETED":
            outcome = Outcome.SUCCEEDED
        elif status in ("VOIDED", "DECLINED"):
            outcome = Outcome.FAILED
        else:
            outcome = Outcome.PENDING
        return GatewayCapture(
            external_id=data.get("id", external_id),
            status=status,
            outcome=outcome,
            amount=Decimal(amount) if amount is not None else None,
            capture_id=capture.get("id"),
            raw=data,
        )

    async def _verify_signature(self, payload: dict, headers) -> None:
        if not self.webhook_id:
            return
        verification = {key: headers.get(header) for key, header in VERIFY_HEADERS.items()}
        verification.update({"webhook_id": self.webhook_id, "webhook_event": payload})
        async with self._client() as client:
            await self._authorize(client)
            data = await self._request(client, "POST", "/v1/notifications/verify-webhook-signature", json=verification)
        if data.get("verification_status") != "SUCCESS":
            raise Unauthorized("Invalid webhook signature")

    async def parse_webhook(self, body: bytes, headers) -> GatewayEvent:
        try:
            payload = json.loads(body or b"{}")
        except ValueError as exc:
            raise ValidationError("Webhook body is not valid JSON") from exc
        await self._verify_signature(payload, headers)

        event_type = payload.get("event_type") or ""
        resource = payload.get("resource") or {}
        related = (resource.get("supplementary_data") or {}).get("related_ids") or {}

        if event_type in CAPTURE_SUCCEEDED_EVENTS:
            outcome = Outcome.SUCCEEDED
        elif event_type in CAPTURE_FAILED_EVENTS:
            outcome = Outcome.FAILED
        else:
            outcome = Outcome.IGNORED

        external_id = related.get("order_id") or resource.get("id")
        return GatewayEvent(
            event_id=str(payload.get("id") or f"{external_id}:{event_type}"),
            external_id=external_id,
            event_type=event_type,
            outcome=outcome,
            raw=payload,
        )
