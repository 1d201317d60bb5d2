from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session
from functools import lru_cache
from typing import Optional
import httpx
import stripe

from .config import Settings, settings as _settings
from .db import get_db
from .errors import AuthRequired
from .identity import IdentityStore, SessionStore
from .models import User
from .notify import PaymentNotifier


def get_settings() -> Settings:
    return _settings


@lru_cache
def _http_client(timeout: float) -> httpx.Client:
    return httpx.Client(timeout=timeout)


def get_http_client(settings: Settings = Depends(get_settings)) -> httpx.Client:
    return _http_client(settings.HTTP_TIMEOUT_SECONDS)


@lru_cache
def _stripe_client(secret_key: str) -> stripe.StripeClient:
    return stripe.StripeClient(secret_key)


def get_stripe_client(settings: Settings = Depends(get_settings)) -> Optional[stripe.StripeClient]:
    if not settings.STRIPE_SECRET_KEY:
        return None
    return _stripe_client(settings.STRIPE_SECRET_KEY)


def get_session_store(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)) -> SessionStore:
    return SessionStore(db, ttl_seconds=settings.SESSION_TTL_SECONDS, rolling=settings.SESSION_ROLLING)


def get_identity_store(db: Session = Depends(get_db), sessions: SessionStore = Depends(get_session_store)) -> IdentityStore:
    return IdentityStore(db, sessions)


def get_session_token(request: Request, settings: Settings = Depends(get_settings)) -> Optional[str]:
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def set_session_cookie(response: Response, token: str, settings: Settings):
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.SESSION_TTL_SECONDS,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def get_current_user(
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    identity: IdentityStore = Depends(get_identity_store),
    settings: Settings = Depends(get_settings),
) -> User:
    if not token:
        raise AuthRequired()
    user = identity.current_user(token)
    # cookie lifetime follows the renewed session expiry
    if settings.SESSION_ROLLING:
        set_session_cookie(response, token, settings)
    return user


def get_notifier(settings: Settings = Depends(get_settings), http: httpx.Client = Depends(get_http_client)) -> PaymentNotifier:
    return PaymentNotifier(
        http,
        account_sid=settings.TWILIO_ACCOUNT_SID,
        auth_token=settings.TWILIO_AUTH_TOKEN,
        from_number=settings.TWILIO_PHONE_NUMBER,
        to_number=settings.NOTIFY_PHONE_NUMBER,
    )
