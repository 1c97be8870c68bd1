from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # 数据库配置
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "123456"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "orders"
    # 直接指定完整连接串时优先使用（例如 sqlite:///./orders.db）
    DATABASE_URL: Optional[str] = None
    # 单条语句与行锁等待上限（毫秒）
    DB_STATEMENT_TIMEOUT_MS: int = 10000
    DB_LOCK_TIMEOUT_MS: int = 5000

    # Redis 配置
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_HOSTS: Optional[str] = None  # 逗号分隔，多实例 Redlock

    # Celery 使用的 Redis 库
    CELERY_BROKER_DB: int = 1
    CELERY_BACKEND_DB: int = 2

    # 下单流程
    ORDER_PLACEMENT_TIMEOUT_SECONDS: float = 30.0
    STALE_ORDER_MINUTES: int = 15
    SWEEP_INTERVAL_SECONDS: int = 300

    # 缓存与幂等
    STOCK_CACHE_TTL_SECONDS: int = 300
    IDEMPOTENCY_KEY_TTL_HOURS: int = 24

    LOG_LEVEL: str = "INFO"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://"
            f"{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/"
            f"{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    def celery_url(self, db: int) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{db}"

settings = Settings()
