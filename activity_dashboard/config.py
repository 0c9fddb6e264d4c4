from pydantic import BaseModel, Field
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple
import os

from dotenv import load_dotenv

load_dotenv()


def _csv(name: str, default: str) -> Tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "")
    return float(raw) if raw else None


class Settings(BaseModel):
    data_dir: Path = Field(default_factory=lambda: Path(os.getenv("DASHBOARD_DATA_DIR", "data")))
    interaction_limit_default: int = Field(default_factory=lambda: int(os.getenv("INTERACTION_LIMIT_DEFAULT", "20")))
    lookup_batch_size: int = Field(default_factory=lambda: int(os.getenv("LOOKUP_BATCH_SIZE", "10")))
    category_cache_ttl_ms: int = Field(default_factory=lambda: int(os.getenv("CATEGORY_CACHE_TTL_MS", "3600000")))
    category_cache_key: str = Field(default_factory=lambda: os.getenv("CATEGORY_CACHE_KEY", "videoCategoryCache"))
    category_cache_file: str = Field(default_factory=lambda: os.getenv("CATEGORY_CACHE_FILE", ""))
    recommendation_api_url: str = Field(default_factory=lambda: os.getenv("RECOMMENDATION_API_URL", ""))
    recommendation_limit_default: int = Field(default_factory=lambda: int(os.getenv("RECOMMENDATION_LIMIT_DEFAULT", "10")))
    recommendation_timeout: Optional[float] = Field(default_factory=lambda: _optional_float("RECOMMENDATION_TIMEOUT"))
    display_name_fields: Tuple[str, ...] = Field(default_factory=lambda: _csv("DISPLAY_NAME_FIELDS", "email,displayName"))
    json_content_activities: Tuple[str, ...] = Field(default_factory=lambda: _csv("JSON_CONTENT_ACTIVITIES", "view"))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    @property
    def cache_path(self) -> Path:
        if self.category_cache_file:
            return Path(self.category_cache_file)
        return self.data_dir / "cache.json"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
