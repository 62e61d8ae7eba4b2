import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./salonbook.db")

# Booking defaults, used when a specialist has no booking settings row yet
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")
DEFAULT_SLOT_INTERVAL_MINUTES = int(os.getenv("DEFAULT_SLOT_INTERVAL_MINUTES", "30"))
DEFAULT_MIN_NOTICE_HOURS = int(os.getenv("DEFAULT_MIN_NOTICE_HOURS", "0"))
DEFAULT_MAX_DAYS_AHEAD = int(os.getenv("DEFAULT_MAX_DAYS_AHEAD", "60"))
# ISO 4217 code; prices are stored in minor units (cents)
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "EUR")
# Public bookings land as "confirmed" when true, "pending" otherwise
DEFAULT_AUTO_CONFIRM = os.getenv("DEFAULT_AUTO_CONFIRM", "false").lower() == "true"

# CORS
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")
