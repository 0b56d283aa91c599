from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Return Desk"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Return policy
    RETURN_WINDOW_DAYS: int = 30
    MIN_RETURN_WEIGHT_KG: float = 0.5  # Floor applied to computed parcel weight

    # EasyParcel (return-leg carrier)
    EASYPARCEL_API_KEY: str = ""
    EASYPARCEL_API_URL: str = "http://connect.easyparcel.sg"
    EASYPARCEL_DEMO_API_URL: str = "http://demo.connect.easyparcel.sg"
    EASYPARCEL_USE_DEMO: bool = False
    EASYPARCEL_MOCK_PAYMENT: bool = False  # Simulated AWB issuance, no carrier call
    EASYPARCEL_COUNTRY: str = "SG"
    EASYPARCEL_STATE: str = "Singapore"
    EASYPARCEL_TRACKING_URL: str = "https://track.easyparcel.sg/?awb="

    # Warehouse (receiver of return shipments)
    WAREHOUSE_NAME: str = ""
    WAREHOUSE_PHONE: str = ""
    WAREHOUSE_ADDRESS: str = ""
    WAREHOUSE_UNIT: str = "-"
    WAREHOUSE_POSTCODE: str = ""
    WAREHOUSE_COUNTRY: str = "SG"

    # Razorpay Payment Gateway
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    REFUND_PAYMENT_PROVIDER_ID: str = "pp_razorpay_razorpay"  # Only captured payments from this provider are refunded
    CURRENCY: str = "SGD"

    # External collaborators
    ORDER_SERVICE_URL: str = "http://localhost:9000/internal"
    CATALOG_SERVICE_URL: str = "http://localhost:9000/internal"
    POINTS_SERVICE_URL: str = "http://localhost:9000/internal"
    INTERNAL_API_TOKEN: Optional[str] = None
    UPSTREAM_TIMEOUT_SECONDS: float = 30.0

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def easyparcel_base_url(self) -> str:
        return self.EASYPARCEL_DEMO_API_URL if self.EASYPARCEL_USE_DEMO else self.EASYPARCEL_API_URL

    @property
    def easyparcel_environment(self) -> str:
        return "demo" if self.EASYPARCEL_USE_DEMO else "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
