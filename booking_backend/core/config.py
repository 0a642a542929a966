import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid integer for {name}: {raw!r}") from None


def _get_optional(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

APP_HOST = os.getenv("APP_HOST", "127.0.0.1")
APP_PORT = _get_int("APP_PORT", 8000)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

SLOT_DURATION_MINUTES = _get_int("SLOT_DURATION_MINUTES", 15)
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "Asia/Jerusalem")
MAX_ADVANCE_BOOKING_DAYS = _get_int("MAX_ADVANCE_BOOKING_DAYS", 60)
MIN_NOTICE_MINUTES = _get_int("MIN_NOTICE_MINUTES", 0)

# Optional global ceiling applied on top of the resolved windows.
BUSINESS_HOURS_START = _get_optional("BUSINESS_HOURS_START")
BUSINESS_HOURS_END = _get_optional("BUSINESS_HOURS_END")

TEMPLATE_GUARD_LOOKAHEAD_DAYS = _get_int("TEMPLATE_GUARD_LOOKAHEAD_DAYS", 365)
MAX_DATE_RANGE_DAYS = _get_int("MAX_DATE_RANGE_DAYS", 90)

OTP_TTL_MINUTES = _get_int("OTP_TTL_MINUTES", 5)
OTP_MAX_ATTEMPTS = _get_int("OTP_MAX_ATTEMPTS", 3)
OTP_CODE_LENGTH = _get_int("OTP_CODE_LENGTH", 4)

PHONE_PATTERN = os.getenv("PHONE_PATTERN", r"^05[0-9]-?[0-9]{7}$")
CLIENT_NAME_MIN_LENGTH = 2
CLIENT_NAME_MAX_LENGTH = 100


def validate_runtime_config() -> None:
    if SLOT_DURATION_MINUTES < 1 or 1440 % SLOT_DURATION_MINUTES != 0:
        raise RuntimeError("SLOT_DURATION_MINUTES must be a positive divisor of 1440.")
    if MAX_ADVANCE_BOOKING_DAYS < 1:
        raise RuntimeError("MAX_ADVANCE_BOOKING_DAYS must be >= 1.")
    if MIN_NOTICE_MINUTES < 0:
        raise RuntimeError("MIN_NOTICE_MINUTES must be >= 0.")
    if (BUSINESS_HOURS_START is None) != (BUSINESS_HOURS_END is None):
        raise RuntimeError("BUSINESS_HOURS_START and BUSINESS_HOURS_END must be set together.")
    if OTP_MAX_ATTEMPTS < 1:
        raise RuntimeError("OTP_MAX_ATTEMPTS must be >= 1.")
    if not 0 < APP_PORT < 65536:
        raise RuntimeError("APP_PORT must be between 1 and 65535.")
    if APP_ENV.lower() == "production" and DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must point to a server database in production.")
