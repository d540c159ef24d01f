import os
import tempfile
from datetime import datetime, timedelta
from decimal import Decimal

# settings are read once at import time
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MEDIA_ROOT"] = tempfile.mkdtemp(prefix="hustly-media-")
os.environ["PUBLIC_BASE_URL"] = "https://img.example.com"
os.environ["EBAY_CLIENT_ID"] = "test-client-id"
os.environ["EBAY_CLIENT_SECRET"] = "test-client-secret"
os.environ["EBAY_REDIRECT_URI"] = "Test_Seller-RuName"
os.environ["EBAY_ENVIRONMENT"] = "production"
os.environ["EBAY_RETRY_BACKOFF_SECONDS"] = "0"

import httpx
import pytest
from fastapi.testclient import TestClient

from hustly.core.database import Base, SessionLocal, engine
from hustly.core.security import create_access_token, get_password_hash
from hustly.models import (
    Listing,
    ListingImage,
    MarketplaceAccount,
    User,
    UserProfile,
)
from hustly.services import ebay_client


class FakeEbay:
    """
    Canned eBay answers keyed by (method, path).

    Each route holds a queue of (status, body) pairs or callables taking the
    request; the last entry keeps answering once the queue is drained.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, method, path, *answers):
        self.routes.setdefault((method, path), []).extend(answers)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"errors": [{"message": f"no route {request.method} {request.url.path}"}]})

        answer = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(answer):
            return answer(request)
        status_code, body = answer
        if body is None:
            return httpx.Response(status_code)
        if isinstance(body, str):
            return httpx.Response(status_code, text=body)
        return httpx.Response(status_code, json=body)

    def requests_to(self, method, path):
        return [r for r in self.calls if r.method == method and r.url.path == path]


@pytest.fixture(autouse=True)
def _tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_ebay(monkeypatch):
    fake = FakeEbay()
    monkeypatch.setattr(
        ebay_client,
        "_http_client",
        lambda: httpx.AsyncClient(transport=httpx.MockTransport(fake.handler)),
    )
    return fake


@pytest.fixture
def user(db):
    u = User(email="seller@example.com", hashed_password=get_password_hash("password123"))
    u.profile = UserProfile(
        business_name="Thrift Shop",
        ebay_account_type="individual",
        shipping_address_line1="1 Market St",
        shipping_city="Portland",
        shipping_state="OR",
        shipping_postal_code="97201",
        shipping_country="US",
    )
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def profile(db, user):
    return db.query(UserProfile).filter(UserProfile.user_id == user.id).one()


@pytest.fixture
def auth_headers(user):
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def ebay_account(db, user):
    account = MarketplaceAccount(
        user_id=user.id,
        marketplace="ebay",
        username="thriftshop",
        access_token="v^1.1#valid-access-token",
        refresh_token="v^1.1#refresh-token",
        token_expires_at=datetime.utcnow() + timedelta(hours=2),
        is_connected=True,
        is_active=True,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


@pytest.fixture
def make_listing(db, user):
    def _make(with_image=True, **fields):
        values = {
            "title": "Vintage Levi's 501 Jeans",
            "description": "Classic straight fit, light wash.",
            "price": Decimal("45.00"),
            "condition": "good",
            "brand": "Levi's",
            "color": "Blue",
            "size": "32x32",
        }
        values.update(fields)
        listing = Listing(owner_id=user.id, **values)
        db.add(listing)
        db.commit()
        if with_image:
            db.add(ListingImage(listing_id=listing.id, file_path=f"listings/{listing.id}/000.jpg", sort_order=0))
            db.commit()
        db.refresh(listing)
        return listing

    return _make


@pytest.fixture
def client():
    from hustly.main import app

    with TestClient(app) as c:
        yield c
