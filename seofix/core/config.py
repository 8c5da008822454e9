"""
Config Maker
"""

# pyright: basic

__all__ = ("settings",)

from pydantic_settings import BaseSettings

from seofix import __project__, __version__


class Settings(BaseSettings):
    PROJECT_NAME: str = __project__
    PROJECT_VERSION: str = __version__
    DEBUG: bool = False
    LOG_MESSAGE_MAX_LEN: int = 2000

    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB_BROKER: int = 0
    REDIS_DB_RESULTS: int = 1
    REDIS_DB_ISSUES: int = 2
    REDIS_PASSWORD: str | None = None
    ACTIVITY_LOG_MAX_ENTRIES: int = 1000

    STORAGE_DIR: str = "./data"

    # Convergence loop defaults
    TARGET_SCORE: float = 85.0
    MAX_ITERATIONS: int = 5
    MIN_IMPROVEMENT_THRESHOLD: float = 2.0
    MAX_CHANGES_PER_ITERATION: int = 20
    SETTLE_DELAY_SECONDS: float = 5.0
    SINGLE_PASS_SETTLE_DELAY_SECONDS: float = 10.0

    # Timeouts & retries
    ANALYZER_MAX_RETRIES: int = 2
    ANALYZER_RETRY_BASE_DELAY: float = 1.0
    FIXER_TIMEOUT_SECONDS: float = 300.0

    # Worker wiring: "package.module:callable" returning a RemediationEngine
    ENGINE_FACTORY: str | None = None

    class Config:
        env_file = ".env"
        env_prefix = "SEOFIX_"
        env_file_encoding = "utf-8"
        extra = "ignore"
        case_sensitive = True


settings = Settings()  # type: ignore[call-arg]
