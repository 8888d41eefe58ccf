import os
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

def _get_env(key: str, default: str | None = None) -> str:
    val = os.getenv(key, default)
    if val is None:
        raise RuntimeError(f"Missing required env var: {key}")
    return val

APP_ENV = _get_env("APP_ENV", "local")
LOG_LEVEL = _get_env("LOG_LEVEL", "DEBUG")
LOG_FILE = _get_env("LOG_FILE", "logs/app.log")

# Durable store: JSON file unless a SQLAlchemy URL is given
USERS_FILE = _get_env("USERS_FILE", "users.json")
STORE_URL = _get_env("STORE_URL", "")

# Per-observer queue depth before a stalled feed is dropped
FEED_QUEUE_SIZE = int(_get_env("FEED_QUEUE_SIZE", "100"))

HOST = _get_env("HOST", "0.0.0.0")
PORT = int(_get_env("PORT", "8080"))

TIME_FORMAT = _get_env("TIME_FORMAT", "%Y-%m-%d %H:%M:%S")

logger.debug(
    f"Config loaded: APP_ENV={APP_ENV}, USERS_FILE={USERS_FILE}, "
    f"STORE_URL={STORE_URL or '-'}, LOG_LEVEL={LOG_LEVEL}"
)
