from dotenv import load_dotenv
load_dotenv()

from pydantic import BaseModel
from typing import Optional, List
import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings(BaseModel):
    ENV: str = os.getenv("ENV", "dev")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///data/app.db")
    CORS_ORIGINS: List[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    # sessions
    SESSION_SECRET: str = os.getenv("SESSION_SECRET", "fallback-secret-key")
    SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "sid")
    SESSION_COOKIE_SECURE: bool = _flag("SESSION_COOKIE_SECURE", "false")
    SESSION_TTL_SECONDS: int = int(os.getenv("SESSION_TTL_SECONDS", str(24 * 60 * 60)))
    SESSION_ROLLING: bool = _flag("SESSION_ROLLING", "true")

    # text-to-speech
    TTS_PROVIDER: Optional[str] = os.getenv("TTS_PROVIDER")
    ELEVENLABS_API_KEY: Optional[str] = os.getenv("ELEVENLABS_API_KEY")
    ELEVENLABS_BASE_URL: str = os.getenv("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io")
    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com")
    OPENAI_TTS_MODEL: str = os.getenv("OPENAI_TTS_MODEL", "tts-1")
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "60"))

    # stripe
    STRIPE_SECRET_KEY: Optional[str] = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET: Optional[str] = os.getenv("STRIPE_WEBHOOK_SECRET")
    PRO_PRICE_CENTS: int = int(os.getenv("PRO_PRICE_CENTS", "999"))
    PREMIUM_PRICE_CENTS: int = int(os.getenv("PREMIUM_PRICE_CENTS", "1999"))

    # oauth
    GITHUB_CLIENT_ID: Optional[str] = os.getenv("GITHUB_CLIENT_ID")
    GITHUB_CLIENT_SECRET: Optional[str] = os.getenv("GITHUB_CLIENT_SECRET")
    GOOGLE_CLIENT_ID: Optional[str] = os.getenv("GOOGLE_CLIENT_ID")
    GOOGLE_CLIENT_SECRET: Optional[str] = os.getenv("GOOGLE_CLIENT_SECRET")
    OAUTH_SUCCESS_REDIRECT: str = os.getenv("OAUTH_SUCCESS_REDIRECT", "/")

    # payment notifications
    TWILIO_ACCOUNT_SID: Optional[str] = os.getenv("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN: Optional[str] = os.getenv("TWILIO_AUTH_TOKEN")
    TWILIO_PHONE_NUMBER: Optional[str] = os.getenv("TWILIO_PHONE_NUMBER")
    NOTIFY_PHONE_NUMBER: Optional[str] = os.getenv("NOTIFY_PHONE_NUMBER")

    @property
    def tts_provider_name(self) -> Optional[str]:
        if self.TTS_PROVIDER:
            return self.TTS_PROVIDER.lower()
        if self.ELEVENLABS_API_KEY:
            return "elevenlabs"
        if self.OPENAI_API_KEY:
            return "openai"
        return None


settings = Settings()
