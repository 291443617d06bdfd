from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./erpsync.db"
    erp_base_url: str = "http://localhost:8180/mge"
    erp_token: str = ""
    erp_timeout_seconds: float = 30.0
    erp_page_size: int = 300
    store_batch_size: int = 200
    sync_all_concurrency: int = 4
    partner_sync_interval: int = 30  # minutes
    trade_type_sync_interval: int = 60  # minutes
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
