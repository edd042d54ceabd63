"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Content store (TiDB / MySQL-protocol) ──────────────────────────────
    database_url: str = "mysql+aiomysql://root:@tidb:4000/feeds"
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # ── Page sizes ─────────────────────────────────────────────────────────
    feed_default_page_size: int = 30     # ranked feeds (keyset)
    feed_max_page_size: int = 50
    offset_default_page_size: int = 100  # fixed lists (offset)
    offset_max_page_size: int = 500
    random_default_page_size: int = 3
    # RAND() on MySQL/TiDB, random() on SQLite/PostgreSQL
    random_function: str = "rand"

    # ── Feed composition ──────────────────────────────────────────────────
    default_post_types: list[str] = ["article"]
    feed_source_types: list[str] = ["machine", "squad"]
    # Default community: hidden from configured feeds unless the user opted in
    watercooler_id: str = "fd062672-63b7-4a10-87bd-96dcd10e9613"
    community_picks_source: str = "community"
    # First page below this share of `first` is logged as thin
    partial_first_page_ratio: float = 0.5

    # ── Observability ──────────────────────────────────────────────────────
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "feed-composer"
    environment: str = "development"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
