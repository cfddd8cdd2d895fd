from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "scholarship-gateway-api"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None
    storage_bucket: str = "images"
    storage_timeout_seconds: float = 15.0
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_starttls: bool = True
    smtp_timeout_seconds: float = 30.0
    mail_from_name: str = "Scholarship Gateway"
    frontend_url: str | None = None
    newsletter_batch_size: int = 10
    newsletter_batch_delay_seconds: float = 1.0
    excerpt_length: int = 200
    shutdown_drain_seconds: float = 10.0
    otel_enabled: bool = True
    otel_service_name: str = "scholarship-gateway-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_exporter_otlp_metrics_endpoint: str | None = None
    otel_metric_export_interval_ms: int = 60000
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="SG_", extra="ignore")

    @property
    def resolved_frontend_url(self) -> str:
        if self.frontend_url:
            return self.frontend_url.rstrip("/")
        if self.environment == "production":
            return "https://scholarshipgateway.com"
        return "http://localhost:3000"


@lru_cache
def get_settings() -> Settings:
    return Settings()
