"""Application configuration"""

import logging

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_prefix="SSO_SERVICE__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Environment
    environment: str = "development"
    port: int = 8080

    # Database
    db_url: str = "sqlite:///data/sso.db"
    db_timeout: float = 30.0  # seconds a store call may wait on a lock
    db_echo: bool = False

    # Redis
    redis_url: str = "redis://localhost:6379/1"

    # JWT Settings
    jwt_issuer: str = "sso-service"
    jwt_audience: str = "sso-api"
    access_token_lifetime: int = 3600  # 1 hour
    refresh_token_lifetime: int = 604800  # 7 days
    authorization_code_lifetime: int = 600  # 10 minutes

    # RSA Keys
    private_key_path: str = "keys/private_key.pem"
    public_key_path: str = "keys/public_key.pem"
    key_id: str = "sso-key-1"

    # Password / secret hashing
    bcrypt_rounds: int = 12

    # Brute-force protection
    lockout_threshold: int = 5  # failed attempts
    lockout_window: int = 900  # 15 minutes in seconds
    lockout_duration: int = 900  # 15 minutes in seconds

    # Two-factor authentication
    totp_issuer: str = "SSO Service"
    totp_valid_window: int = 1  # accepted clock skew in 30s steps
    backup_code_count: int = 8
    backup_code_length: int = 8

    # Login
    default_login_scopes: list[str] = ["openid", "profile", "email"]
    login_url: str = "/login"

    # Administrative endpoints (X-Internal-Auth)
    internal_api_key: str = ""

    # Rate limiting
    enable_rate_limiting: bool = False
    rate_limit_per_ip: int = 60  # requests per window
    rate_limit_credentials_per_ip: int = 10  # login/register/token requests per window
    rate_limit_window: int = 60  # seconds

    # Logging
    log_level: str = "INFO"

    # Version
    version: str = "0.1.0"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.environment.lower() == "development"


# Create settings instance
settings = Settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger("sso-service")
