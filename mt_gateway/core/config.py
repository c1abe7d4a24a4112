from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    PROJECT_NAME: str = "MT Gateway"
    VERSION: str = "0.1.0"
    API_PREFIX: str = "/api"

    HOST: str = "0.0.0.0"
    PORT: int = 5000

    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    LOG_LEVEL: str = "INFO"

    # MetaApi cloud
    METAAPI_TOKEN: str = ""
    METAAPI_DOMAIN: str = "agiliumtrade.agiliumtrade.ai"
    METAAPI_CLIENT_DOMAIN: str = "agiliumtrade.ai"
    METAAPI_REGION: str = "new-york"
    METAAPI_PLATFORM: str = "mt5"
    METAAPI_REQUEST_TIMEOUT_S: float = 30.0

    # Bounds on upstream calls
    CONNECT_TIMEOUT_S: float = 120.0
    CONNECT_POLL_INTERVAL_S: float = 2.0
    OPERATION_TIMEOUT_S: float = 60.0
    SHUTDOWN_TIMEOUT_S: float = 30.0

    DEAL_HISTORY_DAYS: int = 30

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
