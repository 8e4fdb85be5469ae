"""Application configuration."""

import os
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


# Base directories
BASE_DIR = Path(__file__).resolve().parent
PUBLIC_DIR = BASE_DIR / "public"
GENERATED_DIR = Path(os.getenv("GENERATED_DIR", str(PUBLIC_DIR / "generated")))
DATABASE_PATH = Path(os.getenv("DATABASE_PATH", str(BASE_DIR / "database.db")))

# URL prefix under which GENERATED_DIR is served
PUBLIC_PREFIX = "/generated"

# Server settings
HOST = "0.0.0.0"
PORT = int(os.getenv("PORT", "8000"))
BASE_URL = os.getenv("BASE_URL", "http://localhost:3000").rstrip("/")
CORS_ORIGINS = _env_list("CORS_ORIGINS", ["http://localhost:3000", "http://127.0.0.1:3000"])

# Generation provider
ZHIPUAI_API_KEY = os.getenv("ZHIPUAI_API_KEY", "")
MEDIA_API_BASE = os.getenv("MEDIA_API_BASE", "https://open.bigmodel.cn/api/paas/v4")
IMAGE_MODEL = "cogview-3-flash"
VIDEO_MODEL = "cogvideox-flash"
DEFAULT_IMAGE_SIZE = "1024x1024"
REQUEST_TIMEOUT = 60  # seconds
DOWNLOAD_TIMEOUT = 120  # videos can be large

# PayPal
PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID", "")
PAYPAL_CLIENT_SECRET = os.getenv("PAYPAL_CLIENT_SECRET", "")
PAYPAL_MODE = os.getenv("PAYPAL_MODE", "sandbox")  # sandbox | live
PAYPAL_API_BASE = (
    "https://api-m.paypal.com" if PAYPAL_MODE == "live" else "https://api-m.sandbox.paypal.com"
)
VIDEO_PRICE = "0.80"
VIDEO_CURRENCY = "USD"

# Payment bypass for local testing (off unless explicitly enabled)
PAYMENT_BYPASS_ENABLED = _env_bool("PAYMENT_BYPASS_ENABLED", False)
PAYMENT_BYPASS_IPS = _env_list("PAYMENT_BYPASS_IPS", [])

# Upload limits
MAX_UPLOAD_BYTES = 5 * 1024 * 1024

# Poll settings
POLL_INTERVAL = float(os.getenv("POLL_INTERVAL", "5"))  # seconds between status checks
POLL_MAX_ATTEMPTS = int(os.getenv("POLL_MAX_ATTEMPTS", "120"))  # ~10 minutes at 5s

# Worker settings
WORKER_ENABLED = _env_bool("WORKER_ENABLED", True)
WORKER_IDLE_INTERVAL = 2  # seconds between checks for newly submitted jobs
