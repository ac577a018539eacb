import os
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)

SUPPORTED_CURRENCIES = ("NGN", "USD", "GHS", "ZAR", "KES")
DEFAULT_CURRENCY = "NGN"

# Published Paystack webhook egress addresses
DEFAULT_TRUSTED_IPS = "52.31.139.75,52.49.173.169,52.214.14.220"


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _csv(name: str, default: str = "") -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


def database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set. Check your .env file.")
    return url


def jwt_secret() -> str | None:
    return os.getenv("JWT_SECRET")


def app_url() -> str:
    return os.getenv("APP_URL", "http://localhost:8000").rstrip("/")


def paystack_secret_key() -> str:
    return os.getenv("PAYSTACK_SECRET_KEY", "")


def paystack_webhook_secret() -> str:
    # Paystack signs webhooks with the account secret key unless told otherwise
    return os.getenv("PAYSTACK_WEBHOOK_SECRET") or paystack_secret_key()


def paystack_base_url() -> str:
    return os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co").rstrip("/")


def paystack_timeout() -> float:
    return float(os.getenv("PAYSTACK_TIMEOUT", "10"))


def paystack_trusted_ips() -> list[str]:
    return _csv("PAYSTACK_TRUSTED_IPS", DEFAULT_TRUSTED_IPS)


def webhook_ip_check_enabled() -> bool:
    return _flag("PAYSTACK_WEBHOOK_IP_CHECK")


def webhook_ip_header() -> str | None:
    # Set when a reverse proxy terminates connections, e.g. X-Forwarded-For
    return os.getenv("PAYSTACK_WEBHOOK_IP_HEADER") or None


def rabbitmq_url() -> str | None:
    return os.getenv("RABBITMQ_URL") or None


def events_exchange() -> str:
    return os.getenv("PAYMENT_EVENTS_EXCHANGE", "payment_exchange")


def event_publish_timeout() -> float:
    return float(os.getenv("EVENT_PUBLISH_TIMEOUT", "5"))


def log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


def log_json() -> bool:
    return _flag("LOG_JSON")
