"""Application configuration using Pydantic Settings"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # App Configuration
    APP_NAME: str = "DeplAI Scan Service"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    # Public base URL of this service, used to build the worker callback address
    APP_URL: str = "http://localhost:8000"

    # Database Configuration
    DATABASE_URL: str = "sqlite+aiosqlite:///./deplai.db"

    # Security Configuration
    SECRET_KEY: str = "change-this-to-a-random-secret-key-in-production"
    REGISTRATION_API_KEY: str = "change-this-registration-key"
    # 32 bytes, hex encoded (64 chars); AES-256-CBC key for cached installation tokens
    TOKEN_ENCRYPTION_KEY: str = ""
    REQUIRE_CALLBACK_TOKEN: bool = False

    # GitHub App Configuration
    GITHUB_APP_ID: str = ""
    # PEM string (literal "\n" allowed) or path to a PEM file
    GITHUB_APP_PRIVATE_KEY: str = ""
    GITHUB_WEBHOOK_SECRET: str = ""
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_CLONE_HOST: str = "github.com"
    # OAuth app credentials, used to verify which GitHub account a user owns
    GITHUB_CLIENT_ID: str = ""
    GITHUB_CLIENT_SECRET: str = ""
    GITHUB_OAUTH_URL: str = "https://github.com"

    # Working copies and worker configuration
    WORKSPACE_DIR: str = "./tmp"
    WORKER_WORKSPACE_DIR: str = "/app/tmp"
    SCANNER_DOCKER_IMAGE: str = "deplai-worker"
    SCANNER_NETWORK: str = "bridge"
    OPENROUTER_API_KEY: str = ""
    GIT_TIMEOUT_SECONDS: int = 300

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


# Global settings instance
settings = Settings()
