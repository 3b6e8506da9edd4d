from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "OrderBridge"
    APP_PORT: int = 9202
    DEBUG: bool = False

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "orderbridge"
    POSTGRES_PORT: int = 5432
    DATABASE_URL_OVERRIDE: Optional[str] = None

    # Paths
    LOGS_PATH: str = "/tmp/orderbridge_logs"

    # Adapter calls
    ADAPTER_TIMEOUT_SECONDS: float = 15.0
    ADAPTER_HTTP_RETRIES: int = 2
    SYNC_MAX_CONCURRENCY: int = 4

    # Reconciliation
    DEFAULT_CONFLICT_POLICY: str = "marketplace_wins"
    SCHEDULER_ENABLED: bool = True

    # Marketplace order import
    IMPORT_PAGE_SIZE: int = 50
    IMPORT_MAX_ORDERS: int = 500

    # Shipment policy for marketplace "ship" action
    ALLOW_SYNTHETIC_TRACKING: bool = True
    SYNTHETIC_TRACKING_PREFIX: str = "TRK"
    DEFAULT_CARRIER: str = "Default Carrier"
    TRACKING_URL_TEMPLATE: str = "https://tracking.example.com/{tracking_number}"

    # Workflow automation
    DEFAULT_WORKFLOW_ID: str = "order-status-update-workflow"

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
