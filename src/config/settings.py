from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "local"
    log_level: str = "INFO"

    # source drivers (SQLAlchemy "backend+dbapi" names)
    allowed_source_drivers: list[str] = [
        "postgresql+asyncpg",
        "mysql+aiomysql",
        "mysql+asyncmy",
        "sqlite+aiosqlite",
    ]
    denied_source_drivers: list[str] = []
    extract_fetch_size: int = 1000

    # destination warehouse
    dw_host: str = "localhost"
    dw_port: int = 5432
    dw_name: str = "warehouse"
    dw_user: str = "loader"
    dw_password: str = "loader_password"
    dw_url: str | None = None

    elasticsearch_url: str = "http://elasticsearch:9200"
    elasticsearch_user: str | None = None
    elasticsearch_password: str | None = None
    elasticsearch_timeout: int = 10

    # staging
    staging_max_concurrency: int = 4
    minio_endpoint: str = "localhost:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_secure: bool = False

    # key management
    kms_region: str | None = None
    kms_endpoint_url: str | None = None

    @property
    def warehouse_url(self) -> str:
        if self.dw_url:
            return self.dw_url
        # asyncpg + SQLAlchemy 2.x
        return (
            f"postgresql+asyncpg://{self.dw_user}:{self.dw_password}"
            f"@{self.dw_host}:{self.dw_port}/{self.dw_name}"
        )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
