import base64
import enum
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import requests

from canteen.config import Settings
from canteen.errors import GatewayRejected, GatewayUnavailable, MissingSessionToken

logger = logging.getLogger(__name__)

CURRENCY = "INR"
WEBHOOK_TOLERANCE_SECONDS = 300


class OrderStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAID = "PAID"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    SUCCESS = "SUCCESS"     # success alias reported by some gateway events
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value) -> "OrderStatus":
        if not isinstance(value, str):
            return cls.UNKNOWN
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_paid(self) -> bool:
        return self in PAID_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.PAID, OrderStatus.SUCCESS,
                        OrderStatus.EXPIRED, OrderStatus.CANCELLED)


PAID_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.SUCCESS})


@dataclass(frozen=True)
class Customer:
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    def as_payload(self) -> dict:
        return {
            "customer_id": self.id,
            "customer_name": self.name or "Guest",
            "customer_email": self.email or "noemail@example.com",
            "customer_phone": self.phone or "9999999999",
        }


@dataclass(frozen=True)
class GatewayOrder:
    session_token: str
    gateway_order_id: Optional[str]


def _is_fresh(timestamp: str, now: float) -> bool:
    try:
        sent = int(timestamp)
    except ValueError:
        return False
    # Cashfree sends epoch milliseconds
    if sent > 10 ** 11:
        sent = sent // 1000
    return abs(now - sent) <= WEBHOOK_TOLERANCE_SECONDS


def _error_payload(resp: requests.Response):
    try:
        return resp.json()
    except ValueError:
        return {"message": resp.text, "status": resp.status_code}


class CashfreeClient:
    """Stateless wrapper over the Cashfree PG orders API."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.base_url = settings.gateway_base_url
        self.timeout = settings.cashfree_timeout
        self._client_id = settings.cashfree_client_id
        self._client_secret = settings.cashfree_client_secret
        self._api_version = settings.cashfree_api_version
        self._http = session or requests

    def _headers(self) -> dict:
        return {
            "x-client-id": self._client_id,
            "x-client-secret": self._client_secret,
            "x-api-version": self._api_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            resp = self._http.request(method, url, headers=self._headers(),
                                      timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error("cashfree.%s %s transport error: %s", method.lower(), path, e)
            raise GatewayUnavailable(f"Payment gateway unavailable: {type(e).__name__}") from e

        if not 200 <= resp.status_code < 300:
            payload = _error_payload(resp)
            logger.warning("cashfree.%s %s rejected status=%s payload=%s",
                           method.lower(), path, resp.status_code, payload)
            raise GatewayRejected(payload, status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError:
            data = None
        return data if isinstance(data, dict) else {}

    def create_order(self, order_id: str, amount: Decimal, currency: str, customer: Customer,
                     return_url_template: str, notify_url: str) -> GatewayOrder:
        payload = {
            "order_id": order_id,
            "order_amount": float(amount),
            "order_currency": currency,
            "customer_details": customer.as_payload(),
            "order_note": "College canteen order",
            "order_meta": {
                "return_url": return_url_template,
                "notify_url": notify_url,
            },
        }
        data = self._request("POST", "/orders", json=payload)

        session_token = data.get("payment_session_id")
        if not session_token:
            raise MissingSessionToken(data)

        return GatewayOrder(session_token=session_token,
                            gateway_order_id=data.get("cf_order_id"))

    def fetch_order_status(self, order_id: str) -> OrderStatus:
        data = self._request("GET", f"/orders/{order_id}")
        return OrderStatus.parse(data.get("order_status"))

    def verify_webhook_signature(self, raw_body: bytes, timestamp: Optional[str],
                                 signature: Optional[str], now: Optional[float] = None) -> bool:
        if not timestamp or not signature or not self._client_secret:
            return False
        if not _is_fresh(timestamp, time.time() if now is None else now):
            return False
        digest = hmac.new(
            self._client_secret.encode("utf-8"),
            timestamp.encode("utf-8") + raw_body,
            hashlib.sha256,
        ).digest()
        expected = base64.b64encode(digest).decode("ascii")
        return hmac.compare_digest(expected, signature)
