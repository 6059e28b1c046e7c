from __future__ import annotations

import os
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

load_dotenv()


class Settings(BaseModel):
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    STORE_BACKEND: Literal["redis", "memory"] = Field(default="redis")
    KEY_PREFIX: str = Field(default="TOKEN_BUCKET_REDIS", min_length=1)
    LOG_LEVEL: str = Field(default="INFO")
    API_TOKEN: str = Field(default="dev_token")  # bearer for bucket endpoints
    API_KEYS: str = Field(default="", description="comma-separated API keys")
    CORS_ALLOW_ORIGINS: str = Field(default="*")
    RATE_LIMIT_ENABLED: bool = Field(default=False)
    RATE_LIMIT_CAPACITY: float = Field(default=20.0, gt=0)
    RATE_LIMIT_REFILL_PER_MINUTE: float = Field(default=300.0, gt=0)


def _load_settings(existing: Settings | None = None) -> Settings:
    values: dict[str, Any] = {}
    for name, field in Settings.model_fields.items():
        env_value = os.getenv(name)
        if env_value is None:
            if existing is not None and hasattr(existing, name):
                values[name] = getattr(existing, name)
                continue
            if field.is_required():
                continue
            values[name] = field.get_default(call_default_factory=True)
        else:
            values[name] = env_value

    try:
        return Settings(**values)
    except ValidationError as exc:
        missing = [
            str(error["loc"][0])
            for error in exc.errors()
            if error.get("type") == "missing" and error.get("loc")
        ]
        if missing:
            joined = ", ".join(sorted(set(missing)))
            raise RuntimeError(
                f"Missing required environment variables: {joined}"
            ) from exc
        raise


settings = _load_settings()


def reload_settings() -> Settings:
    global settings
    fresh = _load_settings(settings)
    settings.__dict__.update(fresh.__dict__)
    return settings
