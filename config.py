import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# --- Database ---
# Ensure these match your docker-compose.yml or local setup.
# For local testing without Docker, an aiosqlite URL works too:
# DATABASE_URL=sqlite+aiosqlite:///./webshop.db
DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+asyncpg://shop_user:shop_pass@db/shop_db")
SQL_ECHO = _flag("SQL_ECHO")

# --- Authentication ---
# HS256 needs a key of at least 32 bytes; override this in every real deployment.
JWT_SECRET = os.getenv("JWT_SECRET", "mySecretKey12345mySecretKey12345mySecretKey12345")
JWT_EXPIRATION_MS = int(os.getenv("JWT_EXPIRATION_MS", "86400000"))  # 24 hours

# --- HTTP ---
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001").split(",")
    if origin.strip()
]

# --- Misc ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SEED_DEMO_DATA = _flag("SEED_DEMO_DATA")
