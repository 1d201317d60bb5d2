"""Session and identity store.

Sessions are server-held rows keyed by an opaque token (the cookie value).
Expiry is checked when a token is read; nothing sweeps expired rows in the
background.
"""
from dataclasses import dataclass, field
from typing import Optional, Tuple
import datetime as dt
import json
import logging
import secrets

from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .errors import AuthRequired, Conflict, InvalidCredentials, ValidationError
from .models import LoginSession, User, PLAN_FREE, STATUS_INACTIVE, utcnow

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256","bcrypt_sha256","bcrypt"], default="pbkdf2_sha256", deprecated="auto")

MIN_PASSWORD_LENGTH = 6
OAUTH_COLUMNS = {"github": "github_id", "google": "google_id"}


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass
class SessionData:
    token: str
    user_id: str
    expires_at: dt.datetime
    meta: dict = field(default_factory=dict)


class SessionStore:
    def __init__(self, db: Session, ttl_seconds: int = 86400, rolling: bool = True):
        self.db = db
        self.ttl = dt.timedelta(seconds=ttl_seconds)
        self.rolling = rolling

    def create(self, user_id: str, **meta) -> str:
        now = utcnow()
        token = secrets.token_urlsafe(32)
        blob = {"userId": user_id, "lastActivity": now.isoformat(), **meta}
        self.db.add(LoginSession(token=token, user_id=user_id, data=json.dumps(blob), expires_at=now + self.ttl))
        self.db.commit()
        return token

    def read(self, token: Optional[str]) -> Optional[SessionData]:
        if not token:
            return None
        row = self.db.get(LoginSession, token)
        if row is None:
            return None
        now = utcnow()
        if row.expires_at <= now:
            logger.info("Session expired for user %s", row.user_id)
            self.db.delete(row)
            self.db.commit()
            return None
        meta = json.loads(row.data or "{}")
        if self.rolling:
            meta["lastActivity"] = now.isoformat()
            row.data = json.dumps(meta)
            row.expires_at = now + self.ttl
            self.db.commit()
        return SessionData(token=row.token, user_id=row.user_id, expires_at=row.expires_at, meta=meta)

    def destroy(self, token: Optional[str]) -> None:
        if not token:
            return
        row = self.db.get(LoginSession, token)
        if row is not None:
            self.db.delete(row)
            self.db.commit()


@dataclass
class OAuthProfile:
    provider_id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None


class IdentityStore:
    def __init__(self, db: Session, sessions: SessionStore):
        self.db = db
        self.sessions = sessions

    def _by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def _start_session(self, user: User, event: str) -> str:
        return self.sessions.create(user.id, **{event: utcnow().isoformat()})

    def login(self, email: str, password: str) -> Tuple[User, str]:
        user = self._by_email(normalize_email(email))
        if user is None or not user.password_hash:
            pwd_context.dummy_verify()
            raise InvalidCredentials()
        if not pwd_context.verify(password[:72], user.password_hash):
            raise InvalidCredentials()
        return user, self._start_session(user, "loginTime")

    def signup(self, email: str, password: str) -> Tuple[User, str]:
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("Email and password are required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        if self._by_email(email):
            raise Conflict()
        local = email.split("@")[0]
        user = User(
            email=email,
            password_hash=pwd_context.hash(password[:72]),
            username=local,
            display_name=local,
            subscription_plan=PLAN_FREE,
            subscription_status=STATUS_INACTIVE,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info("Created account %s", user.id)
        return user, self._start_session(user, "loginTime")

    def login_with_oauth(self, provider: str, provider_id: str, profile: OAuthProfile) -> Tuple[User, str]:
        column = OAUTH_COLUMNS.get(provider)
        if column is None:
            raise ValidationError(f"Unsupported identity provider: {provider}")
        provider_id = str(provider_id)
        user = self.db.query(User).filter(getattr(User, column) == provider_id).first()
        if user is None:
            email = normalize_email(profile.email) or None
            if email and self._by_email(email):
                # never merge into an existing account; keep email unique
                logger.warning("%s login for %s: email already registered, creating account without email", provider, provider_id)
                email = None
            user = User(
                username=profile.username or profile.display_name,
                display_name=profile.display_name,
                email=email,
                avatar_url=profile.avatar_url,
                subscription_plan=PLAN_FREE,
                subscription_status=STATUS_INACTIVE,
            )
            setattr(user, column, provider_id)
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
            logger.info("Created %s account %s", provider, user.id)
        return user, self._start_session(user, "loginTime")

    def current_user(self, token: Optional[str]) -> User:
        session = self.sessions.read(token)
        if session is None:
            raise AuthRequired()
        user = self.db.get(User, session.user_id)
        if user is None:
            raise AuthRequired()
        return user

    def logout(self, token: Optional[str]) -> None:
        self.sessions.destroy(token)
