from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    environment: str = "production"
    host: str = "0.0.0.0"
    port: int = 3000

    database_url: str = "sqlite:///./tanggap.db"

    # Dashboard authentication
    jwt_secret: str = "change-me"
    token_ttl_hours: int = 24 * 7
    admin_password: str = ""

    # WhatsApp Business Cloud API settings
    whatsapp_mode: str = "meta"  # meta | web | hybrid
    whatsapp_phone_number_id: str = ""
    whatsapp_access_token: str = ""
    whatsapp_verify_token: str = ""
    whatsapp_app_secret: str = ""
    whatsapp_api_version: str = "v18.0"

    # WhatsApp Web gateway (used in "web" and "hybrid" modes)
    whatsapp_web_url: str = ""
    whatsapp_web_session: str = "default"
    whatsapp_web_api_key: str = ""

    telegram_bot_token: str = ""
    telegram_admin_chat_id: str = ""

    ollama_base_url: str = "http://ollama:11434"
    ollama_model: str = "qwen2.5:7b"
    ollama_timeout: float = 30.0  # seconds
    ollama_fallback_enabled: bool = True

    # Report intake policy
    default_user_role: str = "PUBLIC"
    auto_verify_trust_level: int = 3
    auto_assign_critical_to: str = ""
    chat_state_ttl_minutes: int = 60
    timezone: str = "Asia/Jakarta"

    rate_limit_per_minute: int = 100
    # Reverse proxies in front of the app; 0 ignores X-Forwarded-For
    trusted_proxy_count: int = 0
    cors_origins: str = "*"
    dashboard_dir: str = ""

    media_path: str = "./uploads"
    max_image_size_mb: int = 16
    max_video_size_mb: int = 64
    max_audio_size_mb: int = 16
    max_document_size_mb: int = 100

    # Sentry error tracking
    sentry_dsn: str = ""
    sentry_environment: str = "production"

    log_level: str = "INFO"

    @property
    def has_whatsapp(self) -> bool:
        return bool(self.whatsapp_phone_number_id and self.whatsapp_access_token)

    @property
    def has_whatsapp_web(self) -> bool:
        return bool(self.whatsapp_web_url)

    @property
    def has_telegram(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_admin_chat_id)

    @property
    def has_ollama(self) -> bool:
        return bool(self.ollama_base_url) and "disabled" not in self.ollama_base_url

    @property
    def has_sentry(self) -> bool:
        return bool(self.sentry_dsn)

    @property
    def has_auto_assign(self) -> bool:
        return bool(self.auto_assign_critical_to)

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


settings = Settings()
