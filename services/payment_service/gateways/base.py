"""
Common interface for payment providers.

A gateway either settles before the order exists (``PRE_PAID``: the order is
written only after a successful capture) or after (``POST_PAID``: the order
is written first in ``pending_payment`` and settled by polling or webhook).
The order coordinator never talks to a gateway directly.
"""
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal

import httpx

from shared.config import settings
from shared.errors import GatewayError
from shared.money import to_money


class Settlement(str, enum.Enum):
    PRE_PAID = "pre_paid"
    POST_PAID = "post_paid"


class Outcome(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"
    IGNORED = "ignored"


@dataclass
class IntentRequest:
    reference: str
    amount: Decimal  # AED
    description: str
    success_url: str
    cancel_url: str
    failure_url: str | None = None
    shipping_address: dict | None = None


@dataclass
class GatewayIntent:
    external_id: str
    redirect_url: str | None
    status: str
    raw: dict = field(default_factory=dict, repr=False)


@dataclass
class GatewayCapture:
    external_id: str
    status: str
    outcome: Outcome
    amount: Decimal | None = None
    capture_id: str | None = None
    raw: dict = field(default_factory=dict, repr=False)


@dataclass
class GatewayEvent:
    event_id: str
    external_id: str | None
    event_type: str
    outcome: Outcome
    raw: dict = field(default_factory=dict, repr=False)


class PaymentGateway(ABC):
    name: str
    settlement: Settlement
    currency = "AED"

    def __init__(self, base_url: str, timeout: float = settings.GATEWAY_TIMEOUT_SECONDS, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport, **kwargs)

    async def _request(self, client: httpx.AsyncClient, method: str, url: str, **kwargs) -> dict:
        """Send a request and return the JSON body; provider failures become ``GatewayError``."""
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise GatewayError(
                f"{self.name} request failed",
                provider_message=self._provider_message(exc.response),
                provider_status=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise GatewayError(f"{self.name} is unreachable", provider_message=str(exc)) from exc
        return response.json() if response.content else {}

    @staticmethod
    def _provider_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, dict):
            return body.get("message") or body.get("error_description") or body.get("name") or response.reason_phrase
        return response.reason_phrase

    def convert(self, amount_aed) -> Decimal:
        """Amount the provider charges, in ``currency``, for an AED total."""
        return to_money(amount_aed)

    @abstractmethod
    async def create_intent(self, request: IntentRequest) -> GatewayIntent:
        ...

    @abstractmethod
    async def capture(self, external_id: str) -> GatewayCapture:
        """Capture (pre-paid) or fetch the settled state (post-paid) of a payment."""

    @abstractmethod
    async def parse_webhook(self, body: bytes, headers) -> GatewayEvent:
        ...
