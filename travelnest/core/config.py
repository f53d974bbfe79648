from pydantic_settings import BaseSettings
from typing import Optional, List


def _parse_allowed_origins(v: str) -> List[str]:
    """Parse comma-separated origins string; strip whitespace; keep non-empty."""
    if not v or not v.strip():
        return []
    return [o.strip() for o in v.split(",") if o.strip()]


_DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:3001",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:3001",
]


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql://postgres:postgres@db:5432/travelnest"

    # CORS: comma-separated extra origins for production (e.g. https://app.travelnest.app)
    # Default localhost origins are always included.
    ALLOWED_ORIGINS_EXTRA: str = ""

    def get_allowed_origins(self) -> List[str]:
        """Return CORS allowed origins: default localhost + ALLOWED_ORIGINS_EXTRA."""
        return _DEFAULT_CORS_ORIGINS + _parse_allowed_origins(self.ALLOWED_ORIGINS_EXTRA)

    # Auth (tokens are issued by the identity provider, we only verify them)
    JWT_SECRET: str = "supersecret_jwt_key_change_in_production"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None  # e.g. "authenticated"; aud is only checked when set

    # Frontend base URL used to build invitation links
    APP_URL: str = "http://localhost:3000"

    # Invitations
    INVITATION_EXPIRES_DAYS: int = 7
    INVITE_RESEND_COOLDOWN_MINUTES: int = 0  # 0 = re-invites allowed immediately

    # Brevo (transactional invitation emails)
    BREVO_API_KEY: Optional[str] = None
    MAIL_SENDER_EMAIL: str = "noreply@travelnest.local"
    MAIL_SENDER_NAME: str = "TravelNest"

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        # Pydantic will read from environment variables first,
        # then fall back to .env file if not found in environment


settings = Settings()
