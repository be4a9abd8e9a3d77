"""Client-side checkout flow: create -> hosted checkout -> verify -> persist.

The hosted checkout is any callable ``open_checkout(session_token, display_mode)``
that returns once the customer completes or abandons payment. Nothing it
returns is trusted; the order is always re-verified with the backend.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests

from canteen.cashfree_service import OrderStatus
from canteen.errors import PersistenceError

logger = logging.getLogger(__name__)

DISPLAY_MODE = "_modal"


class ApiError(Exception):
    def __init__(self, message):
        super().__init__(message)
        self.message = message


class OrderApiClient:
    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = session or requests

    def _post(self, path: str, body: dict, failure: str) -> dict:
        try:
            resp = self._http.post(f"{self.base_url}{path}", json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise ApiError(failure) from e
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not 200 <= resp.status_code < 300:
            raise ApiError((data or {}).get("error") or failure)
        return data

    def create_order(self, cart: List[dict], user: dict) -> dict:
        return self._post("/api/create-order", {"cart": cart, "user": user}, "Create order failed")

    def verify_order(self, order_id: str) -> str:
        return self._post("/api/verify-order", {"orderId": order_id}, "Verify failed").get("status", "UNKNOWN")


@dataclass
class CheckoutResult:
    placed: bool
    message: str
    order_id: Optional[str] = None
    status: Optional[str] = None


def _line(item: dict) -> dict:
    return {k: item.get(k) for k in ("id", "name", "price", "quantity")}


class CheckoutOrchestrator:
    def __init__(self, api: OrderApiClient, open_checkout: Callable[[str, str], object], store,
                 notify: Optional[Callable[[str], None]] = None):
        self.api = api
        self.open_checkout = open_checkout
        self.store = store
        self.notify = notify or (lambda message: None)

    def place_order(self, user: Optional[dict], cart: List[dict]) -> CheckoutResult:
        if not user or not user.get("uid"):
            return CheckoutResult(False, "Please login first")
        if not cart:
            return CheckoutResult(False, "Cart is empty")

        items = [_line(i) for i in cart]
        order_id = None
        try:
            self.notify("Creating order...")
            created = self.api.create_order(items, {
                "uid": user["uid"],
                "email": user.get("email"),
                "displayName": user.get("displayName"),
                "phoneNumber": user.get("phoneNumber"),
            })
            order_id = created["orderId"]

            self.notify("Opening payment...")
            self.open_checkout(created["paymentSessionId"], DISPLAY_MODE)

            self.notify("Verifying payment...")
            status = self.api.verify_order(order_id)
            if not OrderStatus.parse(status).is_paid:
                return CheckoutResult(False, f"Payment status: {status}. Order not placed.",
                                      order_id=order_id, status=status)

            try:
                # same server-priced record the webhook writes
                if self.store.mark_checkout_paid(order_id) is None:
                    raise PersistenceError(f"No checkout recorded for order {order_id}")
            except PersistenceError:
                logger.exception("checkout.persist failed order_id=%s", order_id)
                return CheckoutResult(
                    False,
                    f"Payment received but your order could not be saved. "
                    f"Please quote order id {order_id} at the counter.",
                    order_id=order_id, status=status,
                )
        except ApiError as e:
            return CheckoutResult(False, e.message, order_id=order_id)
        except Exception:
            logger.exception("checkout failed order_id=%s", order_id)
            return CheckoutResult(False, "Something went wrong", order_id=order_id)

        cart.clear()
        return CheckoutResult(True, "Order placed! Thank you.", order_id=order_id, status=status)
