from prometheus_client import Counter, Histogram

# Business Metrics
marketplace_checkout_total = Counter(
    "marketplace_checkout_total",
    "Total checkouts processed",
    ["status", "payment_method"]  # status: 'success', 'rejected', 'failed'
)

marketplace_checkout_duration_seconds = Histogram(
    "marketplace_checkout_duration_seconds",
    "Checkout duration in seconds"
)

marketplace_stock_compensation_total = Counter(
    "marketplace_stock_compensation_total",
    "Total compensating restocks triggered",
    ["reason"]  # Labels: 'cancelled', 'payment_failed', 'payment_timeout', 'seller_edit'
)

marketplace_webhook_events_total = Counter(
    "marketplace_webhook_events_total",
    "Payment webhook events received",
    ["gateway", "result"]  # result: 'applied', 'noop', 'duplicate', 'ignored', 'rejected', 'error'
)

marketplace_post_capture_failures_total = Counter(
    "marketplace_post_capture_failures_total",
    "Captured payments whose order could not be created (manual refund required)",
    ["gateway"]
)
