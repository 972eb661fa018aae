from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = Field(default="Club Bonus Admin API", alias="APP_NAME")
    app_env: str = Field(default="local", alias="APP_ENV")
    debug: bool = Field(default=True, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    platform_base_url: str = Field(default="http://localhost:8080", alias="PLATFORM_BASE_URL")
    platform_api_key: str | None = Field(default=None, alias="PLATFORM_API_KEY")
    platform_timeout: float = Field(default=10.0, alias="PLATFORM_TIMEOUT")
    platform_mock_mode: bool = Field(default=True, alias="PLATFORM_MOCK_MODE")
    directory_users_path: str = Field(default="/users", alias="DIRECTORY_USERS_PATH")
    bonus_codes_path: str = Field(default="/bonus-codes", alias="BONUS_CODES_PATH")
    email_send_path: str = Field(default="/emails/send", alias="EMAIL_SEND_PATH")
    telegram_send_path: str = Field(default="/telegram/send", alias="TELEGRAM_SEND_PATH")

    bulk_max_concurrency: int = Field(default=8, alias="BULK_MAX_CONCURRENCY")
    bulk_deadline_seconds: float | None = Field(default=None, alias="BULK_DEADLINE_SECONDS")
    code_generation_max_attempts: int = Field(default=10, alias="CODE_GENERATION_MAX_ATTEMPTS")
    email_max_concurrency: int = Field(default=4, alias="EMAIL_MAX_CONCURRENCY")
    email_max_per_second: float | None = Field(default=5.0, alias="EMAIL_MAX_PER_SECOND")
    telegram_max_concurrency: int = Field(default=4, alias="TELEGRAM_MAX_CONCURRENCY")
    telegram_max_per_second: float | None = Field(default=25.0, alias="TELEGRAM_MAX_PER_SECOND")

    jwt_secret_key: str = Field(default="club-bonus-admin-secret", alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_audience: str | None = Field(default="authenticated", alias="JWT_AUDIENCE")

    model_config = SettingsConfigDict(
        env_file=(".env", ),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def platform_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.platform_api_key:
            headers["Authorization"] = f"Bearer {self.platform_api_key}"
        return headers


settings = Settings()
