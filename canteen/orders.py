import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional, Sequence

from canteen.cashfree_service import CURRENCY, CashfreeClient, Customer, OrderStatus
from canteen.config import Settings
from canteen.errors import (
    EmptyCart, InvalidAmount, InvalidWebhookSignature, MissingOrderId, MissingUser,
)
from canteen.pricing import CartItem, compute_amount, make_order_id, price_from_catalog
from canteen.store import OrderStore

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-webhook-signature"
TIMESTAMP_HEADER = "x-webhook-timestamp"


def _section(obj, key) -> dict:
    value = obj.get(key) if isinstance(obj, dict) else None
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class CreatedOrder:
    order_id: str
    gateway_order_id: Optional[str]
    session_token: str
    amount: Decimal
    currency: str

    def as_response(self) -> dict:
        return {
            "orderId": self.order_id,
            "cfOrderId": self.gateway_order_id,
            "paymentSessionId": self.session_token,
            "amount": float(self.amount),
            "currency": self.currency,
        }


class OrderService:
    def __init__(self, settings: Settings, gateway: CashfreeClient, store: OrderStore):
        self.settings = settings
        self.gateway = gateway
        self.store = store

    def create_order(self, cart: Optional[Sequence[CartItem]], customer: Optional[Customer]) -> CreatedOrder:
        if customer is None or not customer.id:
            raise MissingUser()
        if not cart:
            raise EmptyCart()

        # rejects negative submitted values before anything else happens
        compute_amount(cart)
        priced = price_from_catalog(cart, self.store.menu_prices())
        amount = compute_amount(priced)
        if amount <= 0:
            raise InvalidAmount()

        order_id = make_order_id()
        logger.info("orders.create order_id=%s user_id=%s amount=%s", order_id, customer.id, amount)

        # no retry: a repeated create could charge the customer twice
        gateway_order = self.gateway.create_order(
            order_id,
            amount,
            CURRENCY,
            customer,
            return_url_template=self.settings.return_url_template,
            notify_url=self.settings.notify_url,
        )
        self.store.save_checkout(order_id, customer.id, priced, amount, CURRENCY,
                                 gateway_order.gateway_order_id)

        return CreatedOrder(
            order_id=order_id,
            gateway_order_id=gateway_order.gateway_order_id,
            session_token=gateway_order.session_token,
            amount=amount,
            currency=CURRENCY,
        )

    def verify_order(self, order_id: Optional[str]) -> OrderStatus:
        if not order_id:
            raise MissingOrderId()
        status = self.gateway.fetch_order_status(order_id)
        logger.info("orders.verify order_id=%s status=%s paid=%s", order_id, status.value, status.is_paid)
        return status

    def handle_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> Optional[dict]:
        """Apply a gateway event. Returns the paid order when one was recorded."""
        if self.settings.verify_webhook:
            ok = self.gateway.verify_webhook_signature(
                raw_body, headers.get(TIMESTAMP_HEADER), headers.get(SIGNATURE_HEADER)
            )
            if not ok:
                logger.warning("orders.webhook rejected: bad signature")
                raise InvalidWebhookSignature()

        try:
            event = json.loads(raw_body or b"{}")
        except ValueError:
            logger.warning("orders.webhook ignored: body is not JSON")
            return None

        data = _section(event, "data")
        order_id = _section(data, "order").get("order_id")
        payment_status = OrderStatus.parse(_section(data, "payment").get("payment_status"))

        if not order_id or not payment_status.is_paid:
            logger.info("orders.webhook ignored order_id=%s status=%s", order_id, payment_status.value)
            return None

        result = self.store.mark_checkout_paid(order_id)
        if result is None:
            logger.warning("orders.webhook unknown order_id=%s", order_id)
            return None

        order, created = result
        logger.info("orders.webhook paid order_id=%s created=%s", order_id, created)
        return order
