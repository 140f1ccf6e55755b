from .setup import setup_observability
from .metrics import (
    marketplace_checkout_total,
    marketplace_checkout_duration_seconds,
    marketplace_stock_compensation_total,
    marketplace_webhook_events_total,
    marketplace_post_capture_failures_total,
)
