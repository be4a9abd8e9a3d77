import logging
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from canteen.errors import PersistenceError
from canteen.models import Checkout, MenuItem, Order
from canteen.pricing import CartItem

logger = logging.getLogger(__name__)

PAID = "paid"


class OrderStore:
    """Menu catalog, pending checkouts and paid order history."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def list_menu(self) -> List[dict]:
        db = self.session_factory()
        try:
            rows = db.query(MenuItem).order_by(MenuItem.name).all()
            return [{"id": m.id, "name": m.name, "price": float(m.price)} for m in rows]
        finally:
            db.close()

    def menu_prices(self) -> Dict[str, Decimal]:
        db = self.session_factory()
        try:
            return {m.id: Decimal(m.price) for m in db.query(MenuItem).all()}
        finally:
            db.close()

    def save_checkout(self, order_id: str, user_id: str, items: Sequence[CartItem],
                      amount: Decimal, currency: str, cf_order_id: Optional[str]) -> None:
        db = self.session_factory()
        try:
            db.add(Checkout(
                order_id=order_id,
                user_id=user_id,
                items=[i.as_dict() for i in items],
                amount=amount,
                currency=currency,
                cf_order_id=None if cf_order_id is None else str(cf_order_id),
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Could not record checkout {order_id}") from e
        finally:
            db.close()

    def mark_paid(self, order_id: str, user_id: str, items: Sequence[dict],
                  amount: Decimal, currency: str) -> Tuple[dict, bool]:
        """Insert the paid record for order_id unless it already exists.

        Returns (order, created). Safe to call from the webhook and from the
        client flow for the same order.
        """
        db = self.session_factory()
        try:
            existing = db.query(Order).filter_by(order_id=order_id).first()
            if existing:
                return existing.as_dict(), False

            order = Order(
                user_id=user_id,
                order_id=order_id,
                items=list(items),
                amount=amount,
                currency=currency,
                status=PAID,
            )
            db.add(order)
            try:
                db.commit()
            except IntegrityError:
                # concurrent writer got there first
                db.rollback()
                existing = db.query(Order).filter_by(order_id=order_id).one()
                return existing.as_dict(), False

            db.refresh(order)
            logger.info("store.mark_paid order_id=%s user_id=%s", order_id, user_id)
            return order.as_dict(), True
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Could not save order {order_id}") from e
        finally:
            db.close()

    def mark_checkout_paid(self, order_id: str) -> Optional[Tuple[dict, bool]]:
        """Promote a pending checkout to a paid order. None if the order is unknown."""
        db = self.session_factory()
        try:
            checkout = db.get(Checkout, order_id)
            if checkout is None:
                return None
            args = (checkout.order_id, checkout.user_id, checkout.items,
                    Decimal(checkout.amount), checkout.currency)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read checkout {order_id}") from e
        finally:
            db.close()

        return self.mark_paid(*args)

    def list_for_user(self, user_id: str) -> List[dict]:
        db = self.session_factory()
        try:
            rows = (
                db.query(Order)
                .filter_by(user_id=user_id)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .all()
            )
            return [o.as_dict() for o in rows]
        finally:
            db.close()
