from __future__ import annotations
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "fifty_five"

    ADMIN_SECRET: str = "change-me"

    RAZORPAY_KEY_ID: Optional[str] = None
    RAZORPAY_KEY_SECRET: Optional[str] = None
    RAZORPAY_API_URL: str = "https://api.razorpay.com/v1"

    STYLIST_API_KEY: Optional[str] = None
    STYLIST_API_URL: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    STYLIST_CHAT_MODEL: str = "google/gemini-2.5-flash"
    STYLIST_IMAGE_MODEL: str = "google/gemini-2.5-flash-image-preview"

    HTTP_TIMEOUT: float = 30
    CURRENCY: str = "INR"
    LOG_LEVEL: str = "INFO"


settings = Settings()
