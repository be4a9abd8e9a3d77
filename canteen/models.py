from sqlalchemy import Column, String, Integer, Numeric, DateTime, JSON, func
from canteen.database import Base


class MenuItem(Base):
    __tablename__ = "menu"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)


class Checkout(Base):
    """Order created at the gateway and not yet known to be paid."""
    __tablename__ = "checkouts"

    order_id = Column(String, primary_key=True)          # our order_xxx id
    user_id = Column(String, index=True, nullable=False)
    items = Column(JSON, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String, nullable=False)
    cf_order_id = Column(String)                         # Cashfree's own id
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    order_id = Column(String, unique=True, index=True, nullable=False)
    items = Column(JSON, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String, nullable=False)
    status = Column(String, nullable=False)              # paid
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "orderId": self.order_id,
            "items": self.items,
            "amount": float(self.amount),
            "currency": self.currency,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
