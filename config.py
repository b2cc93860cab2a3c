import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class ConfigError(RuntimeError):
    pass


class Settings(BaseModel):
    """Process-wide configuration, built once at startup and handed to the app."""

    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 7
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "shop"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    supabase_bucket: str = "products"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    environment: str = "development"
    port: int = 5000

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        secret = os.getenv("JWT_SECRET")
        if not secret:
            raise ConfigError("JWT_SECRET must be set")
        origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
        return cls(
            jwt_secret=secret,
            jwt_expire_days=int(os.getenv("JWT_EXPIRE_DAYS", "7")),
            database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=os.getenv("DATABASE_NAME", "shop"),
            supabase_url=os.getenv("SUPABASE_URL") or None,
            supabase_key=os.getenv("SUPABASE_ANON_KEY") or None,
            supabase_bucket=os.getenv("SUPABASE_BUCKET", "products"),
            cors_origins=origins or ["*"],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            environment=os.getenv("ENVIRONMENT", "development"),
            port=int(os.getenv("PORT", "5000")),
        )
