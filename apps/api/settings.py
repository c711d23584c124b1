from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class ApiSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # API
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Document store
    mongodb_uri: str = Field(
        default="mongodb://localhost:27017/dialysis_system",
        description="MongoDB connection string"
    )
    mongodb_database: str = Field(
        default="dialysis_system",
        description="Database used when the connection string names none"
    )
    mongodb_timeout_ms: int = Field(default=5000, ge=100)

    # Static dashboard
    static_dir: str = Field(default="static")
    dashboard_file: str = Field(default="modern-dashboard.html")

    # CORS - comma-separated origins
    cors_origins: str = Field(
        default="*",
        description="Allowed CORS origins"
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


api_settings = ApiSettings()
