from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, String, Text, DateTime, ForeignKey
import datetime as dt
import uuid

Base = declarative_base()

PLAN_FREE, PLAN_PRO, PLAN_PREMIUM = "free", "pro", "premium"
PAID_PLANS = (PLAN_PRO, PLAN_PREMIUM)

STATUS_INACTIVE, STATUS_ACTIVE, STATUS_CANCELLED, STATUS_PAST_DUE = "inactive", "active", "cancelled", "past_due"


def utcnow() -> dt.datetime:
    # naive UTC; sqlite drops tzinfo anyway
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True, default=new_id)
    username = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    email = Column(String, unique=True, nullable=True, index=True)
    password_hash = Column(String, nullable=True)
    github_id = Column(String, unique=True, nullable=True, index=True)
    google_id = Column(String, unique=True, nullable=True, index=True)
    avatar_url = Column(String, nullable=True)
    subscription_plan = Column(String, default=PLAN_FREE, nullable=False)
    subscription_status = Column(String, default=STATUS_INACTIVE, nullable=False)
    stripe_customer_id = Column(String, nullable=True)
    stripe_subscription_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class LoginSession(Base):
    __tablename__ = "sessions"
    token = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    data = Column(Text, nullable=False, default="{}")
    expires_at = Column(DateTime, nullable=False, index=True)
