import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def env_string(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return trimmed string-valued env vars, normalizing empty strings to the default."""
    raw = os.getenv(name)
    if raw is None:
        return default
    clean = raw.strip()
    return clean if clean else default


def env_int(name: str, default: int) -> int:
    raw = env_string(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def mongodb_uri() -> Optional[str]:
    return env_string("MONGODB_URI")


def db_name() -> str:
    return env_string("MONGODB_DB_NAME", "swiftsale")


def log_level() -> str:
    return (env_string("SWIFTSALE_LOG_LEVEL", "INFO") or "INFO").upper()


def session_hours() -> int:
    return max(1, env_int("SWIFTSALE_SESSION_HOURS", 72))


# Seeded into every new shop at signup.
DEFAULT_SETTINGS = {
    "shop_name": "My SwiftSale Shop",
    "shop_address": "123 Main Street",
    "shop_phone": "555-123-4567",
    "shop_gstin": "YOUR_GSTIN_HERE",
    "default_tax": 5.0,
    "shop_logo_url": "",
    "shop_signature_url": "",
}

PAYMENT_MODES = ("Cash", "Card", "UPI")
