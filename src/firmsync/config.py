from typing import Dict, List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./firmsync.db"

    # Sync pipeline
    sync_max_retries: int = 3
    sync_backoff_ms: int = 500
    sync_pull_timeout_seconds: float = 30.0
    rate_limit_max_requests: int = 10
    rate_limit_window_seconds: int = 60

    # Health checks
    health_cache_ttl_seconds: int = 300
    health_check_hour: int = 4

    # JSON in env, e.g. PROVIDERS='{"quickbooks": {"base_url": "...", ...}}'
    providers: Dict[str, Dict[str, str]] = {}
    # JSON in env, e.g. SYNC_SCHEDULES='[{"tenant_id": "firm-42", "provider": "quickbooks", "cron": "*/15 * * * *"}]'
    sync_schedules: List[Dict[str, str]] = []

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
