import os
from dotenv import load_dotenv

load_dotenv()

BASE_URL = os.getenv("BASE_URL", "http://127.0.0.1:8000").rstrip("/")
API_TOKEN = os.getenv("API_TOKEN", "")
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")

# Ledger + catalog. DATABASE_URL wins; otherwise a SQLite file at DB_PATH
DB_PATH = os.getenv("DB_PATH", "./photostock.db")
DATABASE_URL = os.getenv("DATABASE_URL") or f"sqlite:///{DB_PATH}"
DB_ECHO = os.getenv("DB_ECHO", "").lower() in ("1", "true", "yes")

# Local assets are resolved relative to this directory
ASSET_ROOT = os.getenv("ASSET_ROOT", "./assets")

# Signed download links: secret is mandatory, lifetime in seconds
DOWNLOAD_SECRET = os.getenv("DOWNLOAD_SECRET", "")
DOWNLOAD_LINK_TTL = int(os.getenv("DOWNLOAD_LINK_TTL", "900"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def require_download_secret() -> str:
    if not DOWNLOAD_SECRET:
        raise RuntimeError("DOWNLOAD_SECRET is not configured; refusing to sign or verify download links")
    return DOWNLOAD_SECRET
