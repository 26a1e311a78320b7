# meetroom/core/config.py
import os
from typing import List, Literal
from dotenv import load_dotenv


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Setup environment variables.
        - JWT_SECRET / JWT_ALGORITHM the shared secret and algorithm used to verify bearer tokens
        - STORE_BACKEND the meeting/chat store to use: "memory" or "redis"
        - STORE_TIMEOUT_SECONDS / VERIFY_TIMEOUT_SECONDS bound every store and verifier call
        - CORS_ORIGINS comma separated list of allowed origins
        - LOG_LEVEL root logger level name, e.g. DEBUG

    Any attribute can be overridden with keyword arguments, which is how the
    tests build isolated configurations.
    """

    # Load environment variables from the .env file
    load_dotenv()

    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-me")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_EXPIRES_IN_SECONDS: int = int(os.getenv("JWT_EXPIRES_IN_SECONDS", str(7 * 24 * 3600)))

    STORE_BACKEND: Literal["memory", "redis"] = os.getenv("STORE_BACKEND", "memory")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
    REDIS_SSL: bool = _as_bool(os.getenv("REDIS_SSL", "false"))

    STORE_TIMEOUT_SECONDS: float = float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))
    VERIFY_TIMEOUT_SECONDS: float = float(os.getenv("VERIFY_TIMEOUT_SECONDS", "2"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    CORS_ORIGINS: List[str] = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
        if origin.strip()
    ]

    def __init__(self, **overrides) -> None:
        for name, value in overrides.items():
            if not hasattr(type(self), name):
                raise AttributeError(f"Unknown setting: {name}")
            setattr(self, name, value)

    @property
    def redis_url(self) -> str:
        scheme = "rediss" if self.REDIS_SSL else "redis"
        auth = f":{self.REDIS_ACCESS_KEY}@" if self.REDIS_ACCESS_KEY else ""
        return f"{scheme}://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}"


settings = Settings()
