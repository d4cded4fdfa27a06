from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import jwt
import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import ALGORITHM
from config import Settings
from database import Database
from encryption import SecretBox
from main import create_app
from schemas import PaymentIntent
from services import Services
from store_settings import SettingsPatch

OWNER = "owner-1"
OTHER_OWNER = "owner-2"
GATEWAY_KEY_ID = "rzp_test_key"
GATEWAY_SECRET = "rzp_test_secret"
FIXED_NOW = datetime(2025, 11, 18, 6, 30, tzinfo=timezone.utc)  # 12:00 in Asia/Kolkata


def create_token(secret, expires_in=timedelta(days=7), **claims):
    payload = {**claims, "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


class InMemoryDatabase(Database):
    """mongomock has no sessions, so a transaction snapshots every collection
    and restores the snapshot when the block raises."""

    def __init__(self):
        super().__init__(mongomock.MongoClient(tz_aware=True), "storefront_test")

    @contextmanager
    def transaction(self):
        snapshot = {name: list(self.db[name].find()) for name in self.db.list_collection_names()}
        try:
            yield None
        except BaseException:
            for name in set(self.db.list_collection_names()) | set(snapshot):
                self.db[name].delete_many({})
                if snapshot.get(name):
                    self.db[name].insert_many(snapshot[name])
            raise


class FakeGateway:
    def __init__(self):
        self.calls = []

    def create_order(self, key_id, key_secret, amount, currency, receipt, notes=None):
        self.calls.append({"key_id": key_id, "key_secret": key_secret, "amount": amount,
                           "currency": currency, "receipt": receipt, "notes": notes})
        return PaymentIntent(id=f"order_test{len(self.calls)}", amount=amount, currency=currency, receipt=receipt)

    def close(self):
        pass


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", encryption_key="11" * 32)


@pytest.fixture
def database():
    return InMemoryDatabase()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def services(settings, database, gateway):
    return Services.build(settings, database, gateway=gateway, clock=lambda: FIXED_NOW)


@pytest.fixture
def add_product(services):
    def _add(product_id, price=50, quantity=5, owner_id=OWNER, name=None):
        return services.catalog.create_product(
            owner_id, name or f"Product {product_id}", price, quantity, product_id=product_id
        )
    return _add


@pytest.fixture
def open_store(services):
    """A live store named Fresh Mart (slug ``fresh-mart``) for OWNER."""
    def _open(owner_id=OWNER, store_name="Fresh Mart", **fields):
        fields = {"contact_number_1": "9999999999", "address": "1 Market Road", "is_live": True, **fields}
        patch = SettingsPatch(store_name=store_name, **fields)
        return services.settings_store.upsert(owner_id, patch)
    return _open


@pytest.fixture
def online_store(services, open_store):
    return open_store(
        online_payment_enabled=True,
        gateway_key_id=GATEWAY_KEY_ID,
        gateway_key_secret=services.secret_box.encrypt(GATEWAY_SECRET),
    )


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


@pytest.fixture
def owner_headers(settings):
    return {"Authorization": f"Bearer {create_token(settings.jwt_secret, userId=OWNER)}"}


@pytest.fixture
def customer_headers(settings):
    return {"Authorization": f"Bearer {create_token(settings.jwt_secret, customerId='cust-1')}"}


@pytest.fixture
def secret_box(services):
    return services.secret_box


@pytest.fixture
def fresh_box():
    return SecretBox.from_hex("22" * 32)
