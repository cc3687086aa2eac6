from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "dev"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    runtime_data_dir: str = "data/system"
    storage_quota_bytes: int = 5 * 1024 * 1024
    history_limit: int = 50
    session_timeout_hours: int = 24

    question_data_dir: str = ""  # Empty means the pools bundled with the package
    question_cache_ttl_seconds: int = 3600
    question_cache_max_entries: int = 64
    default_session_size: int = 20

    autosave_interval_seconds: float = 30.0
    timer_tick_seconds: float = 1.0
    completion_threshold_fallback: int = 20

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
