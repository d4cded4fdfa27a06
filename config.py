import os
import logging
from typing import Optional

from pydantic import BaseModel, Field

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseModel):
    """Process configuration, read from the environment."""
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    mongo_max_pool_size: int = Field(20, ge=1)
    mongo_connect_timeout_ms: int = Field(2000, ge=1)
    mongo_idle_timeout_ms: int = Field(30000, ge=1)

    # 64 hex characters (AES-256). Generated per process when absent.
    encryption_key: Optional[str] = None
    jwt_secret: str = "your-secret-key-change-in-production"

    payment_gateway_url: str = "https://api.razorpay.com"
    payment_gateway_timeout: float = Field(10.0, gt=0)
    default_currency: str = "INR"

    # Used for order id dates and as the fallback when a schedule's timezone is unknown
    store_timezone: str = "Asia/Kolkata"
    store_utc_offset_minutes: int = 330

    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        env = {
            "database_url": os.getenv("DATABASE_URL"),
            "database_name": os.getenv("DATABASE_NAME"),
            "mongo_max_pool_size": os.getenv("MONGO_MAX_POOL_SIZE"),
            "mongo_connect_timeout_ms": os.getenv("MONGO_CONNECT_TIMEOUT_MS"),
            "mongo_idle_timeout_ms": os.getenv("MONGO_IDLE_TIMEOUT_MS"),
            "encryption_key": os.getenv("ENCRYPTION_KEY"),
            "jwt_secret": os.getenv("JWT_SECRET"),
            "payment_gateway_url": os.getenv("PAYMENT_GATEWAY_URL"),
            "payment_gateway_timeout": os.getenv("PAYMENT_GATEWAY_TIMEOUT"),
            "default_currency": os.getenv("DEFAULT_CURRENCY"),
            "store_timezone": os.getenv("STORE_TIMEZONE"),
            "store_utc_offset_minutes": os.getenv("STORE_UTC_OFFSET_MINUTES"),
            "log_level": os.getenv("LOG_LEVEL"),
            "port": os.getenv("PORT"),
        }
        # Unset variables keep the model defaults
        return cls(**{k: v for k, v in env.items() if v not in (None, "")})


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
