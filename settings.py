"""
Application Settings

Environment-driven configuration. Values are read once at import time,
after loading a local .env file if one exists.
"""

import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in {"0", "false", "no", "off"}


class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "")
    database_name: str = os.getenv("DATABASE_NAME", "")

    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    jwt_alg: str = os.getenv("JWT_ALG", "HS256")
    # 7 days / 30 days
    jwt_expire_minutes: int = int(os.getenv("JWT_EXPIRE_MIN", "10080"))
    jwt_refresh_expire_minutes: int = int(os.getenv("JWT_REFRESH_EXPIRE_MIN", "43200"))

    cors_origins: List[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    tax_rate: float = float(os.getenv("TAX_RATE", "0.08"))
    delivery_fee: float = float(os.getenv("DELIVERY_FEE", "5.00"))
    trust_client_prices: bool = _env_bool("TRUST_CLIENT_PRICES", "1")

    upload_dir: str = os.getenv("UPLOAD_DIR", "uploads")
    seed_on_startup: bool = _env_bool("SEED_ON_STARTUP", "0")

    admin_username: str = os.getenv("ADMIN_USERNAME", "admin")
    admin_email: str = os.getenv("ADMIN_EMAIL", "admin@havrebakery.com")
    admin_password: str = os.getenv("ADMIN_PASSWORD", "admin123")

    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    port: int = int(os.getenv("PORT", "8080"))


settings = Settings()
