from .base import (
    GatewayCapture,
    GatewayEvent,
    GatewayIntent,
    IntentRequest,
    Outcome,
    PaymentGateway,
    Settlement,
)
from .paypal import PayPalGateway
from .ziina import ZiinaGateway, aed_to_fils, fils_to_aed


def get_paypal_gateway() -> PaymentGateway:
    return PayPalGateway()


def get_ziina_gateway() -> PaymentGateway:
    return ZiinaGateway()
