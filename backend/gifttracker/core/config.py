import json
import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "GiftTracker Wishlists API"
    frontend_url: str = "http://localhost:3000"
    environment: str = "local"
    backend_cors_origins_raw: str = ""  # Comma-separated or JSON array

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "allow",
    }

    @property
    def backend_cors_origins(self) -> list[str]:
        """Parse CORS origins from raw string."""
        raw = os.getenv("BACKEND_CORS_ORIGINS", self.backend_cors_origins_raw).strip()
        if not raw:
            return ["http://localhost:3000", "http://127.0.0.1:3000"]
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed if str(item).strip()]
            except ValueError:
                pass
        return [item.strip() for item in raw.split(",") if item.strip()]

    # Database: sqlite+aiosqlite:///./gifttracker.db (dev) | postgresql+asyncpg://... (prod)
    database_dsn: str = "sqlite+aiosqlite:///./gifttracker.db"

    # Tokens are issued by the identity provider; we only verify them.
    access_token_expire_minutes: int = 60 * 24
    jwt_secret_key: str = "CHANGE_ME"
    jwt_algorithm: str = "HS256"

    invitation_ttl_days: int = 7
    share_code_bytes: int = 9
    share_code_max_attempts: int = 5

    activity_default_limit: int = 50
    activity_max_limit: int = 200
    stats_recent_activity: int = 10

    rate_limit_enabled: bool = True
    rate_limit_share_requests: int = 20
    rate_limit_window_seconds: int = 60

    log_level: str = "INFO"
    log_file: str = ""

    def share_url(self, share_code: str) -> str:
        return f"{self.frontend_url.rstrip('/')}/wishlist/{share_code}"


settings = Settings()
