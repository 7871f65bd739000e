from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    project_name: str = "helpdesk"
    database_url: str = "sqlite:///./helpdesk.db"

    # Session cookie carries only the sid; the session itself lives in the db.
    session_secret: str = "dev-session-secret-change-me"
    session_cookie_name: str = "helpdesk_session"
    session_cookie_secure: bool = False
    session_max_age_seconds: int = 24 * 60 * 60

    # Accept plaintext passwords stored in the directory (legacy imports only).
    auth_plaintext_fallback: bool = False

    celery_broker_url: str = "redis://redis:6379/0"
    celery_result_backend: str = "redis://redis:6379/1"

    smtp_host: str | None = None
    smtp_from: str | None = None
    smtp_user: str | None = None

    frontend_url: str = "http://localhost:5173"
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    upload_dir: str = "./uploads"
    upload_max_bytes: int = 50 * 1024 * 1024

    chat_encryption_key: str = "helpdesk-secret-key"

    meet_provider: str = "jitsi"  # jitsi/google/zoom/teams
    meet_room_prefix: str = "Helpdesk"

    google_client_id: str | None = None
    google_client_secret: str | None = None
    google_refresh_token: str | None = None
    google_calendar_timezone: str = "Asia/Kolkata"

    log_level: str = "INFO"
    log_json: bool = True

    @property
    def mail_enabled(self) -> bool:
        return bool(self.smtp_host and (self.smtp_from or self.smtp_user))

    @property
    def google_meet_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret and self.google_refresh_token)


settings = Settings()
