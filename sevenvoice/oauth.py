"""GitHub and Google sign-in.

Each provider turns an authorization code into an ``OAuthProfile``; the
identity store decides whether that maps to an existing user.
"""
from typing import Dict, Optional
from urllib.parse import urlencode
import datetime as dt
import logging
import secrets

import httpx
import jwt

from .errors import ProviderUnavailable, ValidationError
from .identity import OAuthProfile

logger = logging.getLogger(__name__)

STATE_TTL = dt.timedelta(minutes=10)


def new_nonce() -> str:
    return secrets.token_urlsafe(16)


def build_state(provider: str, secret: str, nonce: str) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    payload = {"provider": provider, "nonce": nonce, "iat": now, "exp": now + STATE_TTL}
    return jwt.encode(payload, secret, algorithm="HS256")


def parse_state(state: Optional[str], provider: str, secret: str, nonce: Optional[str]) -> dict:
    """Verify a callback state and bind it to the nonce cookie set at redirect time."""
    if not state or not nonce:
        raise ValidationError("Invalid state")
    try:
        payload = jwt.decode(state, secret, algorithms=["HS256"])
    except jwt.PyJWTError as e:
        raise ValidationError("Invalid state") from e
    if payload.get("provider") != provider:
        raise ValidationError("Invalid state")
    if not secrets.compare_digest(str(payload.get("nonce", "")), nonce):
        raise ValidationError("Invalid state")
    return payload


class IdentityProvider:
    name = ""
    authorize_endpoint = ""
    token_endpoint = ""
    scope = ""

    def __init__(self, http: httpx.Client, client_id: str, client_secret: str):
        self.http = http
        self.client_id = client_id
        self.client_secret = client_secret

    def authorize_url(self, redirect_uri: str, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": self.scope,
            "state": state,
            **self.extra_authorize_params(),
        }
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    def extra_authorize_params(self) -> dict:
        return {}

    def _call(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("%s request to %s failed: %s", self.name, url, e)
            raise ProviderUnavailable(f"{self.name} sign-in is unavailable, try again later") from e
        if resp.status_code != 200:
            logger.warning("%s responded %s from %s: %s", self.name, resp.status_code, url, resp.text)
            raise ProviderUnavailable(f"{self.name} sign-in failed", provider_error=resp.text)
        return resp

    def exchange_code(self, code: str, redirect_uri: str) -> str:
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
            **self.extra_token_params(),
        }
        resp = self._call("POST", self.token_endpoint, data=data, headers={"Accept": "application/json"})
        token = resp.json().get("access_token")
        if not token:
            raise ProviderUnavailable(f"{self.name} sign-in failed", provider_error="missing access_token")
        return token

    def extra_token_params(self) -> dict:
        return {}

    def fetch_profile(self, code: str, redirect_uri: str) -> OAuthProfile:
        raise NotImplementedError


class GitHubProvider(IdentityProvider):
    name = "github"
    authorize_endpoint = "https://github.com/login/oauth/authorize"
    token_endpoint = "https://github.com/login/oauth/access_token"
    api = "https://api.github.com"
    scope = "user:email"

    def fetch_profile(self, code: str, redirect_uri: str) -> OAuthProfile:
        token = self.exchange_code(code, redirect_uri)
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/vnd.github+json"}
        info = self._call("GET", f"{self.api}/user", headers=headers).json()
        email = info.get("email")
        if not email:
            emails = self._call("GET", f"{self.api}/user/emails", headers=headers).json()
            primary = [e for e in emails if e.get("primary") and e.get("verified")]
            email = primary[0]["email"] if primary else None
        return OAuthProfile(
            provider_id=str(info["id"]),
            username=info.get("login"),
            display_name=info.get("name") or info.get("login"),
            email=email,
            avatar_url=info.get("avatar_url"),
        )


class GoogleProvider(IdentityProvider):
    name = "google"
    authorize_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    token_endpoint = "https://oauth2.googleapis.com/token"
    userinfo_endpoint = "https://openidconnect.googleapis.com/v1/userinfo"
    scope = "openid email profile"

    def extra_authorize_params(self) -> dict:
        return {"response_type": "code", "access_type": "online"}

    def extra_token_params(self) -> dict:
        return {"grant_type": "authorization_code"}

    def fetch_profile(self, code: str, redirect_uri: str) -> OAuthProfile:
        token = self.exchange_code(code, redirect_uri)
        info = self._call("GET", self.userinfo_endpoint, headers={"Authorization": f"Bearer {token}"}).json()
        email = info.get("email") if info.get("email_verified", True) else None
        return OAuthProfile(
            provider_id=str(info["sub"]),
            username=(email or "").split("@")[0] or info.get("name"),
            display_name=info.get("name"),
            email=email,
            avatar_url=info.get("picture"),
        )


def configured_providers(settings, http: httpx.Client) -> Dict[str, IdentityProvider]:
    providers: Dict[str, IdentityProvider] = {}
    if settings.GITHUB_CLIENT_ID and settings.GITHUB_CLIENT_SECRET:
        providers["github"] = GitHubProvider(http, settings.GITHUB_CLIENT_ID, settings.GITHUB_CLIENT_SECRET)
    if settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET:
        providers["google"] = GoogleProvider(http, settings.GOOGLE_CLIENT_ID, settings.GOOGLE_CLIENT_SECRET)
    return providers
