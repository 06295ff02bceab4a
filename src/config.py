from typing import List, Optional
from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "ContractOS Backend"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/v1"
    LOG_LEVEL: str = "INFO"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Primary (relational) store
    DATABASE_URL: Optional[str] = None
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "contractos"
    POSTGRES_PORT: int = 5432

    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # "relational" | "document" | "mirrored"; unset = decided by FIREBASE_SERVICE_ACCOUNT
    STORAGE_MODE: Optional[str] = None

    # Firebase client (public)
    FIREBASE_API_KEY: str = ""
    FIREBASE_AUTH_DOMAIN: str = ""
    FIREBASE_PROJECT_ID: str = ""
    FIREBASE_STORAGE_BUCKET: str = ""
    FIREBASE_MESSAGING_SENDER_ID: str = ""
    FIREBASE_APP_ID: str = ""

    # Firebase admin (server): raw service-account JSON
    FIREBASE_SERVICE_ACCOUNT: Optional[str] = None

    # Single acting identity until real authentication is wired in
    DEFAULT_ACTOR_EMAIL: str = "admin@example.com"
    DEFAULT_ACTOR_NAME: str = "Admin User"

    UPLOAD_DIR: str = "public/uploads"
    ENV_FILE_PATH: str = ".env.local"
    VIEW_CACHE_TTL_SECONDS: int = 30

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=(".env", ".env.local"),
        extra="ignore",
    )

settings = Settings()
