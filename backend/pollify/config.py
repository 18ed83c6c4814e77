import logging
import sys
from typing import List, Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017"
    DB_NAME: str = "pollify"
    STORE_BACKEND: Literal["mongo", "memory"] = "mongo"
    LOG_LEVEL: str = "INFO"
    SESSION_LIMIT: int = 10000  # in-flight fill sessions kept in memory
    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"


settings = Settings()


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once for the whole service."""
    root = logging.getLogger()
    if getattr(root, "_pollify_configured", False):
        root.setLevel(level)
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s"))
    root.addHandler(handler)
    root.setLevel(level)
    root._pollify_configured = True
