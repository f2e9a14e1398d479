from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "docflow"
    db_username: str = "docflow"
    db_password: str = "secret"
    db_pool_max_size: int = 10

    job_poll_interval_seconds: int = 5
    max_stage_attempts: int = 5
    stage_retry_backoff_seconds: int = 10
    stage_timeout_seconds: int = 3600
    chain_metadata_ttl_hours: int = 4

    working_dir: str = "/tmp/docflow"
    stale_file_max_age_seconds: int = 3600

    storage_driver: str = "s3"
    storage_local_root: str = "/app/storage"
    s3_bucket: str = ""
    s3_region: str = "eu-north-1"
    s3_endpoint_url: str | None = None
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""

    ai_provider: str = "gemini"
    provider_upload_timeout_seconds: int = 120
    provider_request_timeout_seconds: int = 300
    classification_threshold: float = 0.7

    gemini_api_key: str = ""
    gemini_model_name: str = "gemini-2.0-flash"
    gemini_temperature: float = 0.2

    openai_api_key: str = ""
    openai_model_name: str = "gpt-4o-mini"
    openai_base_url: str | None = None
    openai_temperature: float = 0.2

    notification_driver: str = "log"
    notification_webhook_url: str = ""
    notification_webhook_timeout_seconds: int = 10
