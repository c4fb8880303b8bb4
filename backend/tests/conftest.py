"""Shared fixtures: in-memory database, fake storefront client, API test client."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Settings are read at import time; pin them before any app module loads.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["VAPI_WEBHOOK_SECRET"] = "test-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.database import Base, get_db
from app.services.storefront_client import get_storefront_client

WEBHOOK_SECRET = "test-secret"


def product_node(i: int, currency: str = "USD") -> dict:
    return {
        "id": f"gid://shopify/Product/{i}",
        "title": f"Product {i}",
        "handle": f"product-{i}",
        "description": f"Description of product {i}",
        "availableForSale": True,
        "priceRangeV2": {"minVariantPrice": {"amount": f"{10 + i}.00", "currencyCode": currency}},
        "variants": {
            "edges": [
                {"node": {"id": f"gid://shopify/ProductVariant/{i}", "title": "Default Title",
                          "availableForSale": True, "price": f"{10 + i}.00"}},
            ]
        },
    }


def products_page(count: int) -> dict:
    return {"products": {"edges": [{"node": product_node(i)} for i in range(1, count + 1)]}}


class FakeStorefrontClient:
    """Records every query; answers with canned data or raises a canned error.

    Without canned data, product queries return as many products as requested.
    """

    def __init__(self, data=None, error=None):
        self.data = data
        self.error = error
        self.calls = []

    async def query(self, shop, access_token, query, variables=None):
        self.calls.append({
            "shop": shop,
            "access_token": access_token,
            "query": query,
            "variables": variables or {},
        })
        if self.error is not None:
            raise self.error
        if self.data is not None:
            return self.data
        return products_page((variables or {}).get("first", 5))


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def storefront():
    return FakeStorefrontClient()


@pytest.fixture
def api_app(db, storefront):
    from app.main import app

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_storefront_client] = lambda: storefront
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(api_app):
    return TestClient(api_app)


@pytest.fixture
def auth_headers():
    return {"x-api-key": WEBHOOK_SECRET}
