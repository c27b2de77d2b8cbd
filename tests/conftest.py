import json
from typing import Any, Callable, Dict, List, Optional, Tuple
import httpx
import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from storefront.clients.collaborator import StorefrontApiClient
from storefront.db.dependencies import get_session
from storefront.main import create_app
from storefront.schema import checkout_submission  # noqa: F401  registers the table
from storefront.session.checkout_session import CheckoutSession
from storefront.session.store import InMemorySessionStore
from storefront.shipping.constants import shipping_circuit

url_prefix = "/api/v1"
API_BASE = "http://storefront.test/api"
USER_ID = 42
HEADERS = {"X-User-Id": str(USER_ID)}

SAVED_ADDRESSES = [
    {
        "id": 11, "recipientName": "Asha Rao", "addressLine1": "12 MG Road", "city": "Bengaluru",
        "state": "Karnataka", "pincode": "560001", "country": "India", "phoneNumber": "9876543210",
        "isDefault": True,
    },
    {
        # snake_case record, as some storefront endpoints still return them
        "id": 12, "recipient_name": "Vikram Shah", "address_line1": "4 Marine Drive", "city": "Mumbai",
        "state": "Maharashtra", "pincode": "400002", "country": "India", "phone_number": "9123456780",
        "saturday_delivery": True, "delivery_instructions": "Leave with the guard",
    },
]


class FakeStorefront:
    """
    Stand-in for the storefront REST api behind httpx.MockTransport.

    Responses are registered per (method, path); every request is recorded in `calls`.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.calls: List[Dict[str, Any]] = []
        self.on("GET", "/delivery-addresses", body=SAVED_ADDRESSES)
        self.on("GET", "/gift-milestones", body=[])
        self.on("GET", "/pincode/validate", body={"status": "success", "pincode_valid": True})
        self.on("GET", "/check-pincode", body={"available": True})
        self.on("GET", "/shiprocket/serviceability", body={"data": {"available_courier_companies": [
            {"courier_name": "Delhivery", "rate": 75, "etd": "3"},
            {"courier_name": "Xpressbees", "rate": 60, "etd": "4"},
        ]}})
        self.on("GET", "/wallet", body={"cashbackBalance": 500})
        self.on("GET", "/affiliate/wallet", body={"commissionBalance": 200})

    def on(self, method: str, path: str, status: int = 200, body: Any = None,
           handler: Optional[Callable[[httpx.Request], httpx.Response]] = None):
        self.routes[(method, path)] = handler or (status, body)

    def calls_to(self, method: str, path: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["method"] == method and c["path"] == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api")
        payload = json.loads(request.content) if request.content else None
        self.calls.append({"method": request.method, "path": path,
                           "params": dict(request.url.params), "json": payload})
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(route):
            return route(request)
        status, body = route
        return httpx.Response(status, json=body)


@pytest.fixture(autouse=True)
def reset_shipping_circuit():
    shipping_circuit.reset()
    yield
    shipping_circuit.reset()


@pytest.fixture
def fake_storefront():
    return FakeStorefront()


@pytest.fixture
async def storefront_client(fake_storefront):
    client = StorefrontApiClient(base_url=API_BASE, transport=httpx.MockTransport(fake_storefront))
    yield client
    await client.aclose()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def checkout_session(store):
    return CheckoutSession(store, USER_ID)


@pytest.fixture
async def db_engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool,
                                 connect_args={"check_same_thread": False})
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def db_sessionmaker(db_engine):
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(db_sessionmaker):
    async with db_sessionmaker() as session:
        yield session


@pytest.fixture
async def app(storefront_client, store, db_sessionmaker):
    app = create_app()
    app.state.storefront_client = storefront_client
    app.state.session_store = store

    async def override_get_session():
        async with db_sessionmaker() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    async with LifespanManager(app):
        yield app


@pytest.fixture
async def ac_client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
