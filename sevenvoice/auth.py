from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, EmailStr
from typing import Optional
import datetime as dt
import httpx

from .config import Settings
from .deps import get_current_user, get_http_client, get_identity_store, get_session_token, get_settings, set_session_cookie
from .errors import NotConfigured, NotFound
from .identity import IdentityStore
from .models import User
from .oauth import STATE_TTL, build_state, configured_providers, new_nonce, parse_state

router = APIRouter(prefix="/api/auth", tags=["auth"])

KNOWN_PROVIDERS = ("github", "google")
STATE_COOKIE = "oauth_state"


class LoginIn(BaseModel):
    email: str
    password: str


class SignupIn(BaseModel):
    email: EmailStr
    password: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    subscription_plan: str
    subscription_status: str
    created_at: dt.datetime


@router.post("/login")
def login(payload: LoginIn, response: Response, identity: IdentityStore = Depends(get_identity_store), settings: Settings = Depends(get_settings)):
    user, token = identity.login(payload.email, payload.password)
    set_session_cookie(response, token, settings)
    return {"user": UserOut.model_validate(user), "message": "Logged in successfully"}


@router.post("/signup")
def signup(payload: SignupIn, response: Response, identity: IdentityStore = Depends(get_identity_store), settings: Settings = Depends(get_settings)):
    user, token = identity.signup(payload.email, payload.password)
    set_session_cookie(response, token, settings)
    return {"user": UserOut.model_validate(user), "message": "Account created successfully"}


@router.post("/logout")
def logout(response: Response, token: Optional[str] = Depends(get_session_token), identity: IdentityStore = Depends(get_identity_store), settings: Settings = Depends(get_settings)):
    identity.logout(token)
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return {"message": "Logged out successfully"}


@router.get("/user")
def current_user(user: User = Depends(get_current_user)):
    return UserOut.model_validate(user)


def _provider(name: str, settings: Settings, http: httpx.Client):
    if name not in KNOWN_PROVIDERS:
        raise NotFound(f"Unknown identity provider: {name}")
    provider = configured_providers(settings, http).get(name)
    if provider is None:
        raise NotConfigured(f"{name} login not configured")
    return provider


def _callback_url(request: Request, name: str) -> str:
    proto = request.headers.get("X-Forwarded-Proto", request.url.scheme)
    host = request.headers.get("Host", request.url.netloc)
    return f"{proto}://{host}/api/auth/{name}/callback"


@router.get("/{name}")
def oauth_start(name: str, request: Request, settings: Settings = Depends(get_settings), http: httpx.Client = Depends(get_http_client)):
    provider = _provider(name, settings, http)
    nonce = new_nonce()
    state = build_state(name, settings.SESSION_SECRET, nonce)
    redirect = RedirectResponse(provider.authorize_url(_callback_url(request, name), state), status_code=302)
    redirect.set_cookie(
        STATE_COOKIE,
        nonce,
        max_age=int(STATE_TTL.total_seconds()),
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/api/auth",
    )
    return redirect


@router.get("/{name}/callback")
def oauth_callback(
    name: str,
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    identity: IdentityStore = Depends(get_identity_store),
    settings: Settings = Depends(get_settings),
    http: httpx.Client = Depends(get_http_client),
):
    provider = _provider(name, settings, http)
    parse_state(state, name, settings.SESSION_SECRET, request.cookies.get(STATE_COOKIE))
    if not code:
        redirect = RedirectResponse("/?error=oauth_cancelled", status_code=302)
        redirect.delete_cookie(STATE_COOKIE, path="/api/auth")
        return redirect
    profile = provider.fetch_profile(code, _callback_url(request, name))
    user, token = identity.login_with_oauth(name, profile.provider_id, profile)
    redirect = RedirectResponse(settings.OAUTH_SUCCESS_REDIRECT, status_code=302)
    redirect.delete_cookie(STATE_COOKIE, path="/api/auth")
    set_session_cookie(redirect, token, settings)
    return redirect
