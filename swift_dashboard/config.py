from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the SWIFT dashboard analytics service."""

    model_config = SettingsConfigDict(env_prefix="SWIFT_DASHBOARD_", env_file=".env", extra="ignore")

    backend: str = "memory"  # options: memory, opensearch, moesif
    cache_ttl_seconds: float = 300.0
    dashboard_timezone: str = "UTC"
    source_timeout_seconds: float = 30.0
    log_level: str = "INFO"
    api_prefix: str = "/api/swift_dashboard"

    opensearch_url: str = "http://localhost:9200"
    opensearch_index: str = "translated_messages"
    opensearch_log_index: str = "ballerina_log"
    opensearch_username: Optional[str] = None
    opensearch_password: Optional[str] = None
    opensearch_verify_tls: bool = True

    moesif_base_url: str = "https://api.moesif.com"
    moesif_api_key: str = ""
    moesif_search_path: str = "/v1/search/~/search/events"
    moesif_message_action: str = "translation_action"
    moesif_log_action: str = "log_action"
    moesif_window: str = "-52w"
    moesif_max_retries: int = 3
    moesif_retry_delay_seconds: float = 1.0

    memory_seed_messages: int = 200
    memory_seed_logs: int = 100


settings = Settings()
