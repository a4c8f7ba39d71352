import os
import logging
from typing import List, Optional

from pydantic import BaseModel


# =====================================================
# SETTINGS (ENV ONLY)
# =====================================================

def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings(BaseModel):
    database_url: str = "sqlite:///./hasta.db"
    secret_key: str = ""
    access_token_expire_days: int = 7
    cookie_secure: bool = True

    admin_email: Optional[str] = None
    admin_password: Optional[str] = None

    mailgun_api_key: Optional[str] = None
    mailgun_domain: Optional[str] = None
    email_from_name: str = "Purbanchal Hasta Udyog"
    email_from_address: Optional[str] = None
    store_admin_email: Optional[str] = None
    frontend_url: str = "http://localhost:3000"

    cors_origins: List[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    # Storefront policy
    return_window_days: int = 3
    free_shipping_threshold: float = 1000
    shipping_fee: float = 79
    advance_payment_threshold: float = 40000
    home_state: str = "assam"
    default_gst_percent: float = 5

    writer_workers: int = 4

    @classmethod
    def from_env(cls) -> "Settings":
        database_url = os.getenv("DATABASE_URL", cls.model_fields["database_url"].default)
        # Heroku/Render style URLs
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)

        secret_key = os.getenv("SECRET_KEY")
        if not secret_key:
            raise RuntimeError("SECRET_KEY must be set in environment variables")

        mailgun_domain = os.getenv("MAILGUN_DOMAIN")
        origins = os.getenv("CORS_ORIGINS")

        return cls(
            database_url=database_url,
            secret_key=secret_key,
            access_token_expire_days=int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "7")),
            cookie_secure=_env_bool("COOKIE_SECURE", "true"),
            admin_email=os.getenv("ADMIN_EMAIL"),
            admin_password=os.getenv("ADMIN_PASSWORD"),
            mailgun_api_key=os.getenv("MAILGUN_API_KEY"),
            mailgun_domain=mailgun_domain,
            email_from_name=os.getenv("EMAIL_FROM_NAME", "Purbanchal Hasta Udyog"),
            email_from_address=os.getenv(
                "EMAIL_FROM_ADDRESS",
                f"postmaster@{mailgun_domain}" if mailgun_domain else None,
            ),
            store_admin_email=os.getenv("STORE_ADMIN_EMAIL"),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000"),
            cors_origins=(
                [o.strip() for o in origins.split(",") if o.strip()]
                if origins else ["http://localhost:3000"]
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            return_window_days=int(os.getenv("RETURN_WINDOW_DAYS", "3")),
            free_shipping_threshold=float(os.getenv("FREE_SHIPPING_THRESHOLD", "1000")),
            shipping_fee=float(os.getenv("SHIPPING_FEE", "79")),
            advance_payment_threshold=float(os.getenv("ADVANCE_PAYMENT_THRESHOLD", "40000")),
            home_state=os.getenv("HOME_STATE", "assam").lower(),
        )


# =====================================================
# LOGGING
# =====================================================

def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s | %(message)s",
    )
