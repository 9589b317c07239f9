from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    PORT: int = 3000
    DB_PATH: str = "/data/launchpad.db"
    LOG_LEVEL: str = "info"
    VERSION: str = "1.0.0"

    JWT_SECRET: str = "change-me"
    PARTNER_TOKEN_TTL_SECONDS: int = 3600
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    INSTANCE_NAME: str = "LaunchPadder"
    ADMIN_EMAIL: str = "admin@launchpadder.com"
    SUPPORT_URL: str = "https://launchpadder.com/support"
    API_DOCS_URL: str = "https://launchpadder.com/api/docs"

    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-3.5-turbo"
    AI_REWRITE_ENABLED: bool = True
    AI_MAX_RETRIES: int = 3
    AI_RETRY_DELAY: float = 1.0

    METADATA_TIMEOUT: float = 10.0
    METADATA_MAX_RETRIES: int = 3
    METADATA_RETRY_DELAY: float = 1.0
    METADATA_CACHE_ENABLED: bool = False
    METADATA_CACHE_MAX_AGE: int = 3600
    ALLOW_PRIVATE_URLS: bool = False

    FEDERATION_TIMEOUT: float = 30.0
    FEDERATION_CONCURRENCY: int = 4

    HEALTH_CHECK_TIMEOUT: float = 5.0

    @property
    def ai_enabled(self) -> bool:
        return self.AI_REWRITE_ENABLED and bool(self.OPENAI_API_KEY)


settings = Settings()
