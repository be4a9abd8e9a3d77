import json
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from canteen.cashfree_service import CashfreeClient
from canteen.checkout import CheckoutOrchestrator, OrderApiClient
from canteen.config import Settings
from canteen.database import Base
from canteen.main import create_app
from canteen.models import MenuItem, Order
from canteen.store import OrderStore

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_integration.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)

SETTINGS = Settings(
    cashfree_client_id="cf_id",
    cashfree_client_secret="cf_secret",
    verify_webhook=False,
    public_base_url="http://testserver",
    jwt_secret="integration-secret",
)


class FakeCashfree:
    """Stands in for the Cashfree orders API behind requests.request."""

    def __init__(self, mocker):
        self.mocker = mocker
        self.orders = {}
        self.calls = []

    def _response(self, status_code, payload):
        resp = self.mocker.Mock(status_code=status_code)
        resp.json.return_value = payload
        return resp

    def __call__(self, method, url, headers=None, timeout=None, json=None):
        self.calls.append((method, url))
        assert headers["x-client-id"] == "cf_id"
        if method == "POST":
            self.orders[json["order_id"]] = dict(json, order_status="ACTIVE")
            return self._response(200, {
                "cf_order_id": "cf_" + json["order_id"],
                "payment_session_id": "session_" + json["order_id"],
                "order_status": "ACTIVE",
            })
        order_id = url.rsplit("/", 1)[-1]
        if order_id not in self.orders:
            return self._response(404, {"message": "order not found", "code": "order_not_found"})
        return self._response(200, {"order_id": order_id,
                                    "order_status": self.orders[order_id]["order_status"]})

    def pay(self, session_token):
        order_id = session_token[len("session_"):]
        self.orders[order_id]["order_status"] = "PAID"


@pytest.fixture(autouse=True)
def setup_db():
    # Setup: Create the tables and the menu
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    db.add(MenuItem(id="1", name="Tea", price=Decimal("10.00")))
    db.commit()
    db.close()
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def cashfree(mocker):
    fake = FakeCashfree(mocker)
    mocker.patch("canteen.cashfree_service.requests.request", side_effect=fake)
    return fake


@pytest.fixture
def client(cashfree):
    fastapi_app = create_app(SETTINGS, gateway=CashfreeClient(SETTINGS),
                             session_factory=TestingSessionLocal)
    with TestClient(fastapi_app) as c:
        yield c


def test_full_order_lifecycle(client, cashfree):
    """
    1. Create order (API -> Cashfree fake), amount computed server-side
    2. Verify before payment -> ACTIVE
    3. Hosted checkout pays, verify -> PAID, client persists exactly one order
    4. Late webhook for the same order does not add a second record
    """
    cart = [{"id": 1, "name": "Tea", "price": 10, "quantity": 2}]
    user = {"uid": "u1"}

    created = client.post("/api/create-order", json={"cart": cart, "user": user})
    assert created.status_code == 200
    order = created.json()
    assert order["amount"] == 20
    order_id = order["orderId"]

    before = client.post("/api/verify-order", json={"orderId": order_id})
    assert before.json() == {"status": "ACTIVE"}

    # the same flow again, driven by the client orchestrator
    store = OrderStore(TestingSessionLocal)
    api = OrderApiClient("http://testserver", session=client)
    checkout_cart = list(cart)
    result = CheckoutOrchestrator(api, lambda token, mode: cashfree.pay(token), store).place_order(user, checkout_cart)

    assert result.placed
    assert result.status == "PAID"
    assert checkout_cart == []

    db = TestingSessionLocal()
    saved = db.query(Order).filter_by(order_id=result.order_id).all()
    assert len(saved) == 1
    assert saved[0].amount == Decimal("20.00")
    assert saved[0].status == "paid"
    assert saved[0].user_id == "u1"
    db.close()

    event = {"data": {"order": {"order_id": result.order_id},
                      "payment": {"payment_status": "SUCCESS"}}}
    hook = client.post("/api/cashfree/webhook", content=json.dumps(event))
    assert hook.status_code == 200

    db = TestingSessionLocal()
    assert db.query(Order).filter_by(order_id=result.order_id).count() == 1
    # the first order was never paid
    assert db.query(Order).filter_by(order_id=order_id).count() == 0
    db.close()

    token = jwt.encode({"sub": "u1"}, "integration-secret", algorithm="HS256")
    history = client.get("/api/orders", headers={"Authorization": f"Bearer {token}"})
    assert [o["orderId"] for o in history.json()] == [result.order_id]


def test_webhook_before_client_persist(client, cashfree):
    created = client.post("/api/create-order", json={
        "cart": [{"id": "1", "name": "Tea", "price": 10, "quantity": 3}],
        "user": {"uid": "u2"},
    }).json()
    cashfree.pay(created["paymentSessionId"])

    event = {"data": {"order": {"order_id": created["orderId"]},
                      "payment": {"payment_status": "SUCCESS"}}}
    assert client.post("/api/cashfree/webhook", content=json.dumps(event)).status_code == 200

    order, was_created = OrderStore(TestingSessionLocal).mark_paid(
        created["orderId"], "u2", [], Decimal("30.00"), "INR")

    assert not was_created
    assert order["amount"] == 30.0
    assert order["items"] == [{"id": "1", "name": "Tea", "price": 10.0, "quantity": 3}]


def test_empty_cart_makes_no_gateway_call(client, cashfree):
    response = client.post("/api/create-order", json={"cart": [], "user": {"uid": "u1"}})

    assert response.status_code == 400
    assert response.json() == {"error": "Cart is empty"}
    assert cashfree.calls == []


def test_verify_unknown_order_reports_gateway_details(client, cashfree):
    response = client.post("/api/verify-order", json={"orderId": "order_missing"})

    assert response.status_code == 500
    assert response.json()["error"] == "Verify failed"
    assert response.json()["details"]["code"] == "order_not_found"
