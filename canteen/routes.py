import logging
from decimal import Decimal
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from pydantic import BaseModel

from canteen.auth import verify_token
from canteen.cashfree_service import Customer
from canteen.errors import InvalidWebhookSignature
from canteen.orders import OrderService
from canteen.pricing import CartItem

logger = logging.getLogger(__name__)
router = APIRouter()


class CartItemIn(BaseModel):
    id: Union[str, int]
    name: str = ""
    price: Decimal = Decimal(0)
    quantity: int = 0

    def to_cart_item(self) -> CartItem:
        return CartItem(id=str(self.id), name=self.name, price=self.price, quantity=self.quantity)


class UserIn(BaseModel):
    uid: Optional[str] = None
    email: Optional[str] = None
    displayName: Optional[str] = None
    phoneNumber: Optional[str] = None

    def to_customer(self) -> Optional[Customer]:
        if not self.uid:
            return None
        return Customer(id=self.uid, name=self.displayName, email=self.email, phone=self.phoneNumber)


class CreateOrderRequest(BaseModel):
    cart: Optional[List[CartItemIn]] = None
    user: Optional[UserIn] = None


class VerifyOrderRequest(BaseModel):
    orderId: Optional[str] = None


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/api/menu")
def menu(service: OrderService = Depends(get_order_service)):
    return service.store.list_menu()


@router.post("/api/create-order")
def create_order(body: CreateOrderRequest, service: OrderService = Depends(get_order_service)):
    customer = body.user.to_customer() if body.user else None
    cart = [item.to_cart_item() for item in body.cart or []]
    return service.create_order(cart, customer).as_response()


@router.post("/api/verify-order")
def verify_order(body: VerifyOrderRequest, service: OrderService = Depends(get_order_service)):
    status = service.verify_order(body.orderId)
    return {"status": status.value}


@router.post("/api/cashfree/webhook")
async def cashfree_webhook(request: Request, service: OrderService = Depends(get_order_service)):
    raw = await request.body()
    try:
        service.handle_webhook(raw, request.headers)
    except InvalidWebhookSignature:
        raise
    except Exception:
        # non-2xx makes Cashfree retry the event
        logger.exception("webhook processing failed")
        return Response(status_code=500)
    return Response(status_code=200)


@router.get("/api/orders")
def my_orders(user_id: str = Depends(verify_token), service: OrderService = Depends(get_order_service)):
    return service.store.list_for_user(user_id)
