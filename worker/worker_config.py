from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    celery_broker_url: str = "redis://redis:6379/0"
    celery_result_backend: str = "redis://redis:6379/1"

    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_pass: str | None = None
    smtp_from: str | None = None
    smtp_secure: bool = False  # implicit TLS (port 465)
    smtp_starttls: bool = True
    smtp_timeout: float = 15.0

    pushgateway_url: str = "http://pushgateway:9091"


settings = Settings()
