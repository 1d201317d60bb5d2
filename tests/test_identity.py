import datetime as dt

import pytest

from sevenvoice.errors import AuthRequired, Conflict, InvalidCredentials, ValidationError
from sevenvoice.identity import IdentityStore, OAuthProfile, SessionStore
from sevenvoice.models import LoginSession, User, utcnow


@pytest.fixture
def sessions(db):
    return SessionStore(db, ttl_seconds=3600, rolling=False)


@pytest.fixture
def identity(db, sessions):
    return IdentityStore(db, sessions)


def test_signup_then_login(identity):
    user, token = identity.signup("Grace@Example.com ", "hopper1")
    assert user.email == "grace@example.com"
    assert user.username == "grace"
    assert user.subscription_plan == "free"
    assert user.subscription_status == "inactive"
    assert user.password_hash and user.password_hash != "hopper1"
    assert identity.current_user(token).id == user.id

    again, token2 = identity.login("grace@example.com", "hopper1")
    assert again.id == user.id
    assert token2 != token


def test_wrong_password_and_unknown_email_look_the_same(identity):
    identity.signup("grace@example.com", "hopper1")
    with pytest.raises(InvalidCredentials) as wrong:
        identity.login("grace@example.com", "nope")
    with pytest.raises(InvalidCredentials) as missing:
        identity.login("nobody@example.com", "hopper1")
    assert wrong.value.message == missing.value.message == "Invalid email or password"


def test_short_password_creates_nothing(identity, db):
    with pytest.raises(ValidationError):
        identity.signup("short@example.com", "12345")
    assert db.query(User).count() == 0


def test_duplicate_signup_conflicts(identity):
    identity.signup("grace@example.com", "hopper1")
    with pytest.raises(Conflict):
        identity.signup("GRACE@example.com", "another1")


def test_logout_invalidates_token(identity):
    _, token = identity.signup("grace@example.com", "hopper1")
    identity.logout(token)
    with pytest.raises(AuthRequired):
        identity.current_user(token)


def test_logout_is_idempotent(identity):
    identity.logout(None)
    identity.logout("never-issued")
    _, token = identity.signup("grace@example.com", "hopper1")
    identity.logout(token)
    identity.logout(token)


def test_current_user_requires_token(identity):
    with pytest.raises(AuthRequired):
        identity.current_user(None)
    with pytest.raises(AuthRequired):
        identity.current_user("bogus")


def test_expired_session_is_removed_on_read(identity, db):
    _, token = identity.signup("grace@example.com", "hopper1")
    row = db.get(LoginSession, token)
    row.expires_at = utcnow() - dt.timedelta(seconds=1)
    db.commit()
    with pytest.raises(AuthRequired):
        identity.current_user(token)
    assert db.get(LoginSession, token) is None


def test_deleted_user_fails_auth(identity, db):
    user, token = identity.signup("grace@example.com", "hopper1")
    db.delete(user)
    db.commit()
    with pytest.raises(AuthRequired):
        identity.current_user(token)


def test_rolling_session_extends_expiry(db):
    store = SessionStore(db, ttl_seconds=60, rolling=True)
    user = User(email="r@example.com")
    db.add(user)
    db.commit()
    token = store.create(user.id, loginTime="then")
    row = db.get(LoginSession, token)
    row.expires_at = utcnow() + dt.timedelta(seconds=5)
    db.commit()
    data = store.read(token)
    assert data.user_id == user.id
    assert data.meta["loginTime"] == "then"
    assert data.expires_at > utcnow() + dt.timedelta(seconds=30)


def test_fixed_session_does_not_extend(db, sessions):
    user = User(email="f@example.com")
    db.add(user)
    db.commit()
    token = sessions.create(user.id)
    before = db.get(LoginSession, token).expires_at
    assert sessions.read(token).expires_at == before


def test_oauth_creates_then_reuses_user(identity, db):
    profile = OAuthProfile(provider_id="42", username="octo", display_name="Octo Cat", email="octo@example.com", avatar_url="https://a/1.png")
    user, token = identity.login_with_oauth("github", "42", profile)
    assert user.github_id == "42"
    assert user.google_id is None
    assert user.password_hash is None
    assert user.subscription_plan == "free"
    again, _ = identity.login_with_oauth("github", "42", profile)
    assert again.id == user.id
    assert db.query(User).count() == 1
    assert identity.current_user(token).id == user.id


def test_oauth_never_takes_over_existing_email(identity, db):
    owner, _ = identity.signup("octo@example.com", "hopper1")
    user, _ = identity.login_with_oauth("google", "g-1", OAuthProfile(provider_id="g-1", email="octo@example.com"))
    assert user.id != owner.id
    assert user.email is None
    assert user.google_id == "g-1"


def test_oauth_account_cannot_password_login(identity):
    identity.login_with_oauth("github", "7", OAuthProfile(provider_id="7", email="gh@example.com"))
    with pytest.raises(InvalidCredentials):
        identity.login("gh@example.com", "anything")


def test_signup_session_matches_login_session(identity, sessions):
    _, signup_token = identity.signup("grace@example.com", "hopper1")
    _, login_token = identity.login("grace@example.com", "hopper1")
    signup_meta = sessions.read(signup_token).meta
    login_meta = sessions.read(login_token).meta
    assert "loginTime" in signup_meta
    assert set(signup_meta) == set(login_meta)
