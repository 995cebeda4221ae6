from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://todo:todo@db:5432/todo"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Lookahead used by GET /periodic/upcoming when `days` is omitted.
    UPCOMING_DEFAULT_DAYS: int = 7

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://todo.example.com,https://api.todo.example.com"
    CORS_ORIGINS: str = "*"

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
