# runtime configuration, read once from the environment (and .env if present)
import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off", "")


DB_PATH = os.getenv("DASHBOARD_DB_PATH", "data/db.sqlite")
EXPORT_DIR = os.getenv("DASHBOARD_EXPORT_DIR", "exports")
LOG_FILE = os.getenv("DASHBOARD_LOG_FILE", "")

REFRESH_INTERVAL = float(os.getenv("DASHBOARD_REFRESH_SECONDS", "60"))
CURRENCY = os.getenv("DASHBOARD_CURRENCY", "OMR")
BRAND = os.getenv("DASHBOARD_BRAND", "RESTA")
SEED_DEMO = _flag("DASHBOARD_SEED_DEMO", False)
DEBUG = _flag("DEBUG", False)

# money is always shown with this many decimals
PRICE_DECIMALS = 3
# subscriptions ending within this many days are "expiring soon"
EXPIRING_SOON_DAYS = 7
