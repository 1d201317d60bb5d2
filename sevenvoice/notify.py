import logging
from typing import Optional
import httpx

logger = logging.getLogger(__name__)

TWILIO_API = "https://api.twilio.com/2010-04-01"


class PaymentNotifier:
    """Sends an SMS through Twilio when a payment lands. Never raises."""

    def __init__(self, http: httpx.Client, account_sid: Optional[str] = None, auth_token: Optional[str] = None,
                 from_number: Optional[str] = None, to_number: Optional[str] = None):
        self.http = http
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.to_number = to_number

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number and self.to_number)

    def send(self, email: str, plan: str, amount: float) -> None:
        if not self.configured:
            logger.info("Twilio not configured, skipping SMS notification")
            return
        body = f"New 7Voice payment!\n\nUser: {email}\nPlan: {plan}\nAmount: ${amount:.2f}\n\nPayment completed successfully."
        try:
            resp = self.http.post(
                f"{TWILIO_API}/Accounts/{self.account_sid}/Messages.json",
                data={"Body": body, "From": self.from_number, "To": self.to_number},
                auth=(self.account_sid, self.auth_token),
            )
            if resp.status_code < 400:
                logger.info("Payment notification sent for %s", email)
            else:
                logger.warning("Twilio responded with %s: %s", resp.status_code, resp.text)
        except Exception as e:
            logger.error("Failed to send SMS notification: %s", e)
