import secrets
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Mapping, Sequence

from canteen.errors import InvalidAmount, UnknownMenuItem

ORDER_ID_PREFIX = "order_"
ORDER_ID_BYTES = 12  # 96 bits
CENTS = Decimal("0.01")


@dataclass(frozen=True)
class CartItem:
    id: str
    name: str
    price: Decimal
    quantity: int

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": float(self.price),
            "quantity": self.quantity,
        }


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        raise InvalidAmount("Missing price/qty")
    if isinstance(value, bool):
        raise InvalidAmount("Invalid price/qty")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmount("Invalid price/qty")


def compute_amount(items: Sequence[Any]) -> Decimal:
    """Sum price * quantity over the cart, rounded half-up to two decimals.

    Items may be CartItem objects or {"price", "quantity"} mappings. Raises
    InvalidAmount for a non-list input, a missing or non-numeric field, or any
    negative price/quantity.
    An empty cart totals zero; callers reject non-positive totals themselves.
    """
    if not isinstance(items, (list, tuple)):
        raise InvalidAmount("Cart must be a list")

    total = Decimal(0)
    for item in items:
        price = _to_decimal(_field(item, "price"))
        quantity = _to_decimal(_field(item, "quantity"))
        if not price.is_finite() or not quantity.is_finite():
            raise InvalidAmount("Invalid price/qty")
        if price < 0 or quantity < 0:
            raise InvalidAmount("Invalid price/qty")
        total += price * quantity

    return total.quantize(CENTS, rounding=ROUND_HALF_UP)


def price_from_catalog(items: Sequence[CartItem], menu: Mapping[str, Decimal]):
    """Replace submitted prices with catalog prices, keyed on item id."""
    priced = []
    for item in items:
        key = str(item.id)
        if key not in menu:
            raise UnknownMenuItem(f"Unknown menu item: {key}")
        priced.append(replace(item, id=key, price=Decimal(menu[key])))
    return priced


def make_order_id() -> str:
    return ORDER_ID_PREFIX + secrets.token_hex(ORDER_ID_BYTES)
