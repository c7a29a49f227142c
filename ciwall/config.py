from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "CI Wall"
    APP_VERSION: str = "1.0.0"
    ENV: str = "dev"  # Environment: "dev", "staging", "prod"

    # Hudson / Jenkins
    HUDSON_URL: Optional[str] = None
    HUDSON_LOGIN: Optional[str] = None
    HUDSON_PASSWORD: Optional[str] = None

    # TeamCity
    TEAMCITY_URL: Optional[str] = None
    TEAMCITY_LOGIN: Optional[str] = None
    TEAMCITY_PASSWORD: Optional[str] = None

    # Bamboo
    BAMBOO_URL: Optional[str] = None
    BAMBOO_LOGIN: Optional[str] = None
    BAMBOO_PASSWORD: Optional[str] = None

    # Credentials used when a connection is opened without a login
    ANONYMOUS_LOGIN: str = "guest"

    # HTTP transport
    HTTP_TIMEOUT_SECONDS: float = 30.0
    HTTP_RETRIES: int = 3

    # Wall polling
    WALL_MAX_WORKERS: int = 8
    WALL_VIEWS: List[str] = []  # Empty: show every project on the server

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
