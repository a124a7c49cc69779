"""
Centralized application configuration
"""
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings, read from the environment or a .env file"""

    # API Settings
    API_TITLE: str = "StockBridge API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Inventory backend for warehouse, WooCommerce and Mercado Libre stock"

    # Database / Supabase
    DATABASE_URL: str = ""
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""
    SUPABASE_JWT_SECRET: str = ""

    # Mercado Libre OAuth application
    ML_CLIENT_ID: str = ""
    ML_CLIENT_SECRET: str = ""
    ML_REDIRECT_URI: str = ""
    ML_ACCOUNT_ID: str = "default"
    ML_SITE_ID: str = "MLC"
    ML_API_BASE: str = "https://api.mercadolibre.com"
    ML_AUTH_BASE: str = "https://auth.mercadolibre.com"

    # Where the dashboard lands after the OAuth callback
    APP_REDIRECT_SUCCESS: str = "http://localhost:5173/admin?ml=connected"
    APP_REDIRECT_ERROR: str = "http://localhost:5173/admin?ml=error"

    # Relay targets (Supabase edge functions)
    WEBHOOK_FORWARD_URL: str = ""
    CALLBACK_FORWARD_URL: str = ""

    # WooCommerce sync edge functions
    WOO_SYNC_URL: str = ""
    WOO_B2B_SYNC_URL: str = ""

    HTTP_TIMEOUT_SECONDS: float = 30.0

    @property
    def ml_token_url(self) -> str:
        return f"{self.ML_API_BASE.rstrip('/')}/oauth/token"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """FastAPI dependency returning the cached settings instance"""
    return Settings()


settings = get_settings()
