import asyncio
import base64
from datetime import datetime
from typing import Optional
import logging
import re

import httpx

from wifi_portal.config import settings
from wifi_portal.core.errors import InvalidPhoneNumberError

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 9

MPESA_URLS = {
    "sandbox": "https://sandbox.safaricom.co.ke",
    "production": "https://api.safaricom.co.ke",
}


def normalize_phone_number(phone_number: str) -> str:
    """Strip everything but digits; at least 9 digits must remain."""
    digits = re.sub(r"\D", "", phone_number or "")
    if len(digits) < MIN_PHONE_DIGITS:
        raise InvalidPhoneNumberError("Please enter a valid phone number")
    return digits


def format_msisdn(phone_number: str) -> str:
    """07XX XXX XXX / 7XX XXX XXX -> 2547XXXXXXXX"""
    digits = normalize_phone_number(phone_number)
    if digits.startswith("254"):
        return digits
    if digits.startswith("0"):
        return "254" + digits[1:]
    return "254" + digits


class PaymentOutcome:
    def __init__(self, success: bool, message: str = "", receipt: Optional[str] = None):
        self.success = success
        self.message = message
        self.receipt = receipt


class PaymentGateway:
    name = "base"

    async def initiate(self, phone_number: str, amount: float, reference: str) -> PaymentOutcome:
        raise NotImplementedError


class SimulatedGateway(PaymentGateway):
    """Stand-in gateway: waits, then approves (or declines) every request."""
    name = "simulated"

    def __init__(self, delay_seconds: float = 3.0, succeed: bool = True):
        self.delay_seconds = delay_seconds
        self.succeed = succeed

    async def initiate(self, phone_number: str, amount: float, reference: str) -> PaymentOutcome:
        logger.info(f"[SIMULATED] Payment request {reference}: {amount} from {phone_number}")
        await asyncio.sleep(self.delay_seconds)
        if not self.succeed:
            return PaymentOutcome(False, "Payment declined")
        return PaymentOutcome(True, "Payment successful", receipt=f"SIM{reference[-8:]}")


class MpesaGateway(PaymentGateway):
    """Daraja STK push. A success here only means the prompt was sent."""
    name = "mpesa"

    def __init__(self, consumer_key: str, consumer_secret: str, shortcode: str, passkey: str,
                 callback_url: str, environment: str = "sandbox", timeout: float = 20):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = shortcode
        self.passkey = passkey
        self.callback_url = callback_url
        self.base_url = MPESA_URLS.get(environment, MPESA_URLS["sandbox"])
        self.timeout = timeout

    async def get_access_token(self, client: httpx.AsyncClient) -> str:
        credentials = base64.b64encode(f"{self.consumer_key}:{self.consumer_secret}".encode()).decode()
        response = await client.get(
            f"{self.base_url}/oauth/v1/generate?grant_type=client_credentials",
            headers={"Authorization": f"Basic {credentials}"}
        )
        response.raise_for_status()
        return response.json()["access_token"]

    async def initiate(self, phone_number: str, amount: float, reference: str) -> PaymentOutcome:
        msisdn = format_msisdn(phone_number)
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        password = base64.b64encode(f"{self.shortcode}{self.passkey}{timestamp}".encode()).decode()
        payload = {
            "BusinessShortCode": self.shortcode,
            "Password": password,
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": int(amount),
            "PartyA": msisdn,
            "PartyB": self.shortcode,
            "PhoneNumber": msisdn,
            "CallBackURL": self.callback_url,
            "AccountReference": reference,
            "TransactionDesc": "WiFi package"
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                access_token = await self.get_access_token(client)
                response = await client.post(
                    f"{self.base_url}/mpesa/stkpush/v1/processrequest",
                    json=payload,
                    headers={"Authorization": f"Bearer {access_token}"}
                )
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPError as e:
            logger.error(f"STK Push initiation failed for {reference}: {str(e)}")
            return PaymentOutcome(False, f"STK Push initiation failed: {str(e)}")
        logger.info(f"STK Push initiated: {result}")
        if str(result.get("ResponseCode", "1")) != "0":
            return PaymentOutcome(False, result.get("ResponseDescription", "STK Push rejected"))
        return PaymentOutcome(True, result.get("CustomerMessage", ""), receipt=result.get("CheckoutRequestID"))


def build_gateway() -> PaymentGateway:
    if settings.PAYMENT_GATEWAY.lower() == "mpesa":
        return MpesaGateway(
            consumer_key=settings.MPESA_CONSUMER_KEY,
            consumer_secret=settings.MPESA_CONSUMER_SECRET,
            shortcode=settings.MPESA_SHORTCODE,
            passkey=settings.MPESA_PASSKEY,
            callback_url=settings.MPESA_CALLBACK_URL,
            environment=settings.MPESA_ENVIRONMENT,
        )
    return SimulatedGateway(delay_seconds=settings.PAYMENT_SIMULATED_DELAY_SECONDS)
