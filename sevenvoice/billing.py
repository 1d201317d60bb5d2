"""Stripe subscriptions mirrored onto the user record.

Stripe is the source of truth; ``User.subscription_*`` columns hold the last
status seen either from ``create_subscription`` or from a webhook delivery.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from contextlib import contextmanager
from functools import partial
from typing import Callable, Optional
import logging
import stripe

from .config import Settings
from .db import get_db
from .deps import get_current_user, get_notifier, get_settings, get_stripe_client
from .errors import (AlreadySubscribed, InternalError, InvalidSignature, NotConfigured, NotFound,
                     ProviderUnavailable, ValidationError)
from .models import (User, PAID_PLANS, PLAN_FREE, PLAN_PRO, PLAN_PREMIUM,
                     STATUS_ACTIVE, STATUS_CANCELLED, STATUS_INACTIVE, STATUS_PAST_DUE)
from .notify import PaymentNotifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stripe", tags=["billing"])
subscription_router = APIRouter(prefix="/api/subscription", tags=["billing"])

STATUS_MAP = {
    "active": STATUS_ACTIVE,
    "trialing": STATUS_ACTIVE,
    "past_due": STATUS_PAST_DUE,
    "unpaid": STATUS_PAST_DUE,
    "canceled": STATUS_CANCELLED,
    "incomplete_expired": STATUS_CANCELLED,
}


def _dig(obj, *path):
    for key in path:
        if obj is None:
            return None
        if isinstance(key, int):
            try:
                obj = obj[key]
            except (IndexError, KeyError, TypeError):
                return None
        elif hasattr(obj, "get"):
            obj = obj.get(key)
        else:
            return None
    return obj


def cached_status(stripe_status: Optional[str]) -> str:
    return STATUS_MAP.get(stripe_status or "", STATUS_INACTIVE)


def derive_plan(price, pro_amount: int) -> str:
    plan = _dig(price, "metadata", "plan")
    if plan in PAID_PLANS:
        return plan
    # prices created before plan metadata existed
    return PLAN_PRO if _dig(price, "unit_amount") == pro_amount else PLAN_PREMIUM


@contextmanager
def stripe_call(action: str):
    """Translate Stripe client exceptions into API errors."""
    try:
        yield
    except (stripe.RateLimitError, stripe.AuthenticationError, stripe.APIConnectionError) as e:
        logger.warning("Stripe unavailable while %s: %s", action, e)
        raise ProviderUnavailable("Payment provider unavailable, please try again later", provider_error=str(e)) from e
    except stripe.StripeError as e:
        logger.error("Stripe error while %s: %s", action, e)
        raise InternalError(f"Error {action}: {e}") from e


class SubscriptionManager:
    def __init__(self, db: Session, client, webhook_secret: Optional[str] = None,
                 pro_amount: int = 999, premium_amount: int = 1999):
        self.db = db
        self.client = client
        self.webhook_secret = webhook_secret
        self.amounts = {PLAN_PRO: pro_amount, PLAN_PREMIUM: premium_amount}
        self._handlers = {
            "customer.subscription.created": self._on_subscription_changed,
            "customer.subscription.updated": self._on_subscription_changed,
            "invoice.payment_succeeded": self._on_invoice_paid,
            "customer.subscription.deleted": self._on_subscription_deleted,
        }

    def _stripe(self):
        if self.client is None:
            raise NotConfigured("Stripe not configured")
        return self.client

    def _user(self, user_id: str) -> User:
        user = self.db.get(User, user_id) if user_id else None
        if user is None:
            raise NotFound("User not found")
        return user

    def create_subscription(self, user_id: str, plan: str) -> dict:
        # NOTE: check-then-create is not atomic; two concurrent calls can both create a subscription
        client = self._stripe()
        if plan not in PAID_PLANS:
            raise ValidationError("Plan must be one of: " + ", ".join(PAID_PLANS))
        user = self._user(user_id)
        if user.stripe_subscription_id and user.subscription_status == STATUS_ACTIVE:
            raise AlreadySubscribed()

        amount = self.amounts[plan]
        with stripe_call("creating subscription"):
            customer_id = user.stripe_customer_id
            if not customer_id:
                params = {"metadata": {"userId": user.id}}
                if user.email:
                    params["email"] = user.email
                customer = client.customers.create(params=params)
                customer_id = customer["id"]
                user.stripe_customer_id = customer_id
                self.db.commit()

            price = client.prices.create(params={
                "unit_amount": amount,
                "currency": "usd",
                "recurring": {"interval": "month"},
                "product_data": {"name": f"7Voice {plan.title()} Plan", "metadata": {"plan": plan}},
                "metadata": {"plan": plan},
            })
            subscription = client.subscriptions.create(params={
                "customer": customer_id,
                "items": [{"price": price["id"]}],
                "payment_behavior": "default_incomplete",
                "expand": ["latest_invoice.payment_intent"],
                "metadata": {"userId": user.id, "plan": plan},
            })

        user.stripe_subscription_id = subscription["id"]
        user.subscription_status = cached_status(subscription.get("status"))
        user.subscription_plan = plan
        self.db.commit()
        logger.info("Created subscription %s for user %s (%s)", subscription["id"], user.id, plan)

        client_secret = _dig(subscription, "latest_invoice", "payment_intent", "client_secret")
        if not client_secret:
            raise InternalError("Unable to create payment intent for subscription")
        return {"subscriptionId": subscription["id"], "clientSecret": client_secret, "plan": plan, "amount": amount / 100}

    def get_subscription_status(self, user_id: str) -> dict:
        client = self._stripe()
        user = self._user(user_id)
        if not user.stripe_subscription_id:
            return {"active": False, "status": "none", "plan": PLAN_FREE, "currentPeriodEnd": None, "cancelAtPeriodEnd": False}
        with stripe_call("fetching subscription status"):
            sub = client.subscriptions.retrieve(user.stripe_subscription_id)
        return {
            "active": sub.get("status") == "active",
            "status": sub.get("status"),
            "plan": user.subscription_plan or PLAN_FREE,
            "currentPeriodEnd": sub.get("current_period_end") or _dig(sub, "items", "data", 0, "current_period_end"),
            "cancelAtPeriodEnd": bool(sub.get("cancel_at_period_end")),
        }

    def create_payment_intent(self, amount: float, plan: str = PLAN_PRO) -> dict:
        client = self._stripe()
        with stripe_call("creating payment intent"):
            intent = client.payment_intents.create(params={
                "amount": int(round(amount * 100)),
                "currency": "usd",
                "metadata": {"plan": plan or PLAN_PRO},
            })
        return {"clientSecret": intent["client_secret"]}

    # webhooks

    def handle_webhook_event(self, payload: bytes, signature: Optional[str], notify: Optional[Callable] = None) -> dict:
        """Verify and apply one Stripe event.

        Bad signatures raise ``InvalidSignature``. Anything that goes wrong after
        verification is logged and the event is still acknowledged, so Stripe
        does not keep redelivering it.
        """
        if not self.webhook_secret:
            raise NotConfigured("Stripe webhook secret not configured")
        self._stripe()
        try:
            event = stripe.Webhook.construct_event(payload, signature or "", self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("Webhook signature verification failed: %s", e)
            raise InvalidSignature(f"Webhook Error: {e}") from e

        kind = event["type"]
        handler = self._handlers.get(kind)
        if handler is None:
            logger.info("Unhandled event type %s", kind)
            return {"received": True}
        obj = event["data"]["object"]
        logger.info("Stripe event %s for %s", kind, obj.get("id"))
        try:
            handler(obj, notify)
        except Exception:
            logger.exception("Error handling %s event %s", kind, event.get("id"))
            self.db.rollback()
        return {"received": True}

    def _customer_user(self, customer_id: Optional[str]):
        if not customer_id:
            return None, None
        customer = self.client.customers.retrieve(customer_id)
        user_id = _dig(customer, "metadata", "userId")
        if not user_id:
            logger.warning("Stripe customer %s has no userId metadata", customer_id)
            return customer, None
        user = self.db.get(User, user_id)
        if user is None:
            logger.warning("Stripe customer %s points at unknown user %s", customer_id, user_id)
        return customer, user

    def _on_subscription_changed(self, sub, notify=None):
        _, user = self._customer_user(sub.get("customer"))
        if user is None:
            return
        plan = derive_plan(_dig(sub, "items", "data", 0, "price"), self.amounts[PLAN_PRO])
        user.stripe_subscription_id = sub["id"]
        user.subscription_status = cached_status(sub.get("status"))
        user.subscription_plan = plan
        self.db.commit()
        logger.info("Updated user %s subscription to %s (%s)", user.id, plan, sub.get("status"))

    def _on_invoice_paid(self, invoice, notify=None):
        sub_id = invoice.get("subscription") or _dig(invoice, "parent", "subscription_details", "subscription")
        if not invoice.get("customer") or not sub_id:
            logger.info("Invoice %s is not a subscription payment", invoice.get("id"))
            return
        customer, user = self._customer_user(invoice["customer"])
        subscription = self.client.subscriptions.retrieve(sub_id)
        plan = derive_plan(_dig(subscription, "items", "data", 0, "price"), self.amounts[PLAN_PRO])
        if user is not None:
            user.subscription_status = STATUS_ACTIVE
            user.subscription_plan = plan
            self.db.commit()
            logger.info("Payment received, user %s active on %s", user.id, plan)
        if notify is not None:
            email = _dig(customer, "email") or "Unknown"
            notify(email, f"{plan.title()} Plan", (invoice.get("amount_paid") or 0) / 100)

    def _on_subscription_deleted(self, sub, notify=None):
        _, user = self._customer_user(sub.get("customer"))
        if user is None:
            return
        user.subscription_plan = PLAN_FREE
        user.subscription_status = STATUS_CANCELLED
        self.db.commit()
        logger.info("Subscription %s cancelled, user %s moved to free", sub.get("id"), user.id)


def get_subscription_manager(db: Session = Depends(get_db), client=Depends(get_stripe_client), settings: Settings = Depends(get_settings)) -> SubscriptionManager:
    return SubscriptionManager(
        db,
        client,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        pro_amount=settings.PRO_PRICE_CENTS,
        premium_amount=settings.PREMIUM_PRICE_CENTS,
    )


class SubscriptionIn(BaseModel):
    plan: str


class PaymentIntentIn(BaseModel):
    amount: float = Field(gt=0)
    plan: str = PLAN_PRO


@router.post("/create-subscription")
def create_subscription(payload: SubscriptionIn, user: User = Depends(get_current_user), manager: SubscriptionManager = Depends(get_subscription_manager)):
    return manager.create_subscription(user.id, payload.plan)


@router.get("/subscription-status")
def subscription_status(user: User = Depends(get_current_user), manager: SubscriptionManager = Depends(get_subscription_manager)):
    return manager.get_subscription_status(user.id)


@router.post("/create-payment-intent")
def create_payment_intent(payload: PaymentIntentIn, manager: SubscriptionManager = Depends(get_subscription_manager)):
    return manager.create_payment_intent(payload.amount, payload.plan)


@router.post("/webhook")
async def webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    manager: SubscriptionManager = Depends(get_subscription_manager),
    notifier: PaymentNotifier = Depends(get_notifier),
):
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    notify = partial(background_tasks.add_task, notifier.send)
    return await run_in_threadpool(manager.handle_webhook_event, payload, signature, notify)


@subscription_router.get("/status")
def cached_subscription_status(user: User = Depends(get_current_user)):
    return {
        "subscriptionPlan": user.subscription_plan or PLAN_FREE,
        "subscriptionStatus": user.subscription_status or STATUS_INACTIVE,
        "hasActiveSubscription": user.subscription_status == STATUS_ACTIVE and user.subscription_plan != PLAN_FREE,
    }
