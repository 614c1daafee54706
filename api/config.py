import os
from functools import lru_cache

from pydantic import BaseModel


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql+asyncpg://fragranza:fragranza@db:5432/fragranza",
    )
    CREATE_TABLES: bool = _env_bool("CREATE_TABLES")

    # Route cache is off unless a Redis URL is configured
    REDIS_URL: str | None = os.getenv("REDIS_URL")
    ROUTE_CACHE_TTL: int = int(os.getenv("ROUTE_CACHE_TTL", str(2 * 3600)))

    # Road-routing service: GET {ROUTING_URL}/route?from=lat,lng&to=lat,lng
    ROUTING_URL: str | None = os.getenv("ROUTING_URL")
    ROUTING_TIMEOUT_S: float = float(os.getenv("ROUTING_TIMEOUT_S", "2.5"))

    NOTIFY_WEBHOOK_URL: str | None = os.getenv("NOTIFY_WEBHOOK_URL")
    NOTIFY_TIMEOUT_S: float = float(os.getenv("NOTIFY_TIMEOUT_S", "5.0"))

    AUTO_COMPLETE_DAYS: int = int(os.getenv("AUTO_COMPLETE_DAYS", "7"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
