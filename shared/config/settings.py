import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
SERVICE_NAME = os.getenv("SERVICE_NAME", "marketplace")

# --- Database ---
DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost")  # In Docker, this will be 'postgres'
DB_PORT = os.getenv("POSTGRES_PORT", "5432")
DB_NAME = os.getenv("POSTGRES_DB", "marketplace")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
DB_ECHO = _flag("DB_ECHO", "false")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))

# --- Observability ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
TRACING_ENABLED = _flag("TRACING_ENABLED", "true")
OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT", "http://localhost:4317")

# --- Security ---
INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY", "")
CHECKOUT_RATE_LIMIT = os.getenv("CHECKOUT_RATE_LIMIT", "20/minute")

# --- Storefront ---
STORE_NAME = os.getenv("STORE_NAME", "Marketplace")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# --- PayPal ---
PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID", "")
PAYPAL_CLIENT_SECRET = os.getenv("PAYPAL_SECRET", "")
PAYPAL_BASE_URL = os.getenv(
    "PAYPAL_BASE_URL",
    "https://api-m.paypal.com" if ENVIRONMENT == "production" else "https://api-m.sandbox.paypal.com",
)
PAYPAL_CURRENCY = os.getenv("PAYPAL_CURRENCY", "USD")
PAYPAL_WEBHOOK_ID = os.getenv("PAYPAL_WEBHOOK_ID", "")  # empty disables signature verification
# AED is pegged to the USD; amounts are divided by this rate before going to PayPal
PAYPAL_AED_PER_UNIT = Decimal(os.getenv("PAYPAL_AED_PER_UNIT", "3.6725"))

# --- Ziina ---
ZIINA_API_KEY = os.getenv("ZIINA_API_KEY", "")
ZIINA_BASE_URL = os.getenv("ZIINA_BASE_URL", "https://api-v2.ziina.com/api")
ZIINA_TEST_MODE = _flag("ZIINA_TEST_MODE", "false")
ZIINA_WEBHOOK_SECRET = os.getenv("ZIINA_WEBHOOK_SECRET", "")
ZIINA_MIN_AMOUNT = Decimal(os.getenv("ZIINA_MIN_AMOUNT", "2"))

# --- Gateways (shared) ---
GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "15"))

# --- Pending payment reconciliation ---
RECONCILER_ENABLED = _flag("RECONCILER_ENABLED", "true")
RECONCILER_INTERVAL_SECONDS = int(os.getenv("RECONCILER_INTERVAL_SECONDS", "300"))
PENDING_PAYMENT_TIMEOUT_MINUTES = int(os.getenv("PENDING_PAYMENT_TIMEOUT_MINUTES", "60"))
