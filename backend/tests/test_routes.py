from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from hustly.core.config import get_settings
from hustly.core.security import create_access_token, get_password_hash
from hustly.models import ListingMarketplace, MarketplaceAccount, OAuthState, User

settings = get_settings()


@pytest.fixture
def other_headers(db):
    other = User(email="other@example.com", hashed_password=get_password_hash("password123"))
    db.add(other)
    db.commit()
    return {"Authorization": f"Bearer {create_access_token({'sub': str(other.id)})}"}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


# --------------------------------------
# auth / profile
# --------------------------------------
def test_signup_login_me(client):
    resp = client.post("/auth/signup", json={
        "email": "New.Seller@Example.com",
        "password": "correct-horse",
        "business_name": "Closet Finds",
    })
    assert resp.status_code == 201
    assert resp.json()["email"] == "new.seller@example.com"

    resp = client.post("/auth/login", json={"email": "new.seller@example.com", "password": "correct-horse"})
    assert resp.status_code == 200
    token = resp.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["email"] == "new.seller@example.com"

    profile = client.get("/profile/", headers={"Authorization": f"Bearer {token}"})
    assert profile.json()["business_name"] == "Closet Finds"


def test_duplicate_signup(client, user):
    resp = client.post("/auth/signup", json={"email": "seller@example.com", "password": "password123"})
    assert resp.status_code == 400


def test_bad_login(client, user):
    resp = client.post("/auth/login", json={"email": "seller@example.com", "password": "wrong-password"})
    assert resp.status_code == 401


def test_requires_token(client):
    assert client.get("/listings/").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_update_profile(client, auth_headers):
    resp = client.put("/profile/", headers=auth_headers, json={
        "ebay_account_type": "business",
        "shipping_cost_domestic": "6.50",
        "return_shipping_paid_by": "seller",
    })

    assert resp.status_code == 200
    body = resp.json()
    assert body["ebay_account_type"] == "business"
    assert Decimal(str(body["shipping_cost_domestic"])) == Decimal("6.50")
    assert body["return_shipping_paid_by"] == "seller"
    assert body["business_name"] == "Thrift Shop"


def test_profile_rejects_unknown_account_type(client, auth_headers):
    resp = client.put("/profile/", headers=auth_headers, json={"ebay_account_type": "enterprise"})
    assert resp.status_code == 422


# --------------------------------------
# listings
# --------------------------------------
def test_listing_crud(client, auth_headers):
    resp = client.post("/listings/", headers=auth_headers, json={
        "title": "Patagonia fleece jacket",
        "price": "60.00",
        "condition": "excellent",
        "brand": "Patagonia",
    })
    assert resp.status_code == 201
    listing = resp.json()
    assert listing["status"] == "draft"
    assert listing["marketplace_links"] == []

    resp = client.put(f"/listings/{listing['id']}", headers=auth_headers, json={"price": "55.00"})
    assert Decimal(str(resp.json()["price"])) == Decimal("55.00")
    assert resp.json()["title"] == "Patagonia fleece jacket"

    assert len(client.get("/listings/", headers=auth_headers).json()) == 1

    assert client.delete(f"/listings/{listing['id']}", headers=auth_headers).status_code == 204
    assert client.get(f"/listings/{listing['id']}", headers=auth_headers).status_code == 404


def test_create_listing_linked_to_marketplace(client, auth_headers):
    resp = client.post("/listings/", headers=auth_headers, json={
        "title": "Coach crossbody bag",
        "price": "80",
        "sku": "COACH-1",
        "import_from_marketplace": "poshmark",
        "import_external_id": "65ab12",
        "import_url": "https://poshmark.com/listing/65ab12",
    })

    link = resp.json()["marketplace_links"][0]
    assert link["marketplace"] == "poshmark"
    assert link["status"] == "active"
    assert link["sku"] == "COACH-1"


def test_listings_are_private(client, make_listing, other_headers):
    listing = make_listing()

    assert client.get(f"/listings/{listing.id}", headers=other_headers).status_code == 404
    assert client.get("/listings/", headers=other_headers).json() == []


def test_upload_and_delete_images(client, auth_headers, make_listing):
    listing = make_listing(with_image=False)

    resp = client.post(
        f"/listings/{listing.id}/images",
        headers=auth_headers,
        files=[("files", ("front.JPG", b"\xff\xd8fake", "image/jpeg")), ("files", ("back.png", b"png", "image/png"))],
    )
    assert resp.status_code == 201
    uploaded = resp.json()["uploaded"]
    assert [u["file_path"] for u in uploaded] == [
        f"listings/{listing.id}/000.jpg",
        f"listings/{listing.id}/001.png",
    ]
    assert (settings.media_root / uploaded[0]["file_path"]).read_bytes() == b"\xff\xd8fake"

    detail = client.get(f"/listings/{listing.id}", headers=auth_headers).json()
    assert detail["thumbnail_url"] == f"/media/listings/{listing.id}/000.jpg"

    resp = client.delete(f"/listings/{listing.id}/images/{uploaded[0]['id']}", headers=auth_headers)
    assert resp.status_code == 204
    assert not (settings.media_root / uploaded[0]["file_path"]).exists()


def test_upload_rejects_other_file_types(client, auth_headers, make_listing):
    listing = make_listing(with_image=False)

    resp = client.post(
        f"/listings/{listing.id}/images",
        headers=auth_headers,
        files=[("files", ("notes.txt", b"hello", "text/plain"))],
    )
    assert resp.status_code == 400


# --------------------------------------
# marketplaces / eBay
# --------------------------------------
def test_marketplace_status(client, auth_headers, ebay_account):
    statuses = {s["marketplace"]: s for s in client.get("/marketplaces/status", headers=auth_headers).json()}

    assert set(statuses) == {"ebay", "mercari", "poshmark", "depop", "facebook", "whatnot"}
    assert statuses["ebay"]["connected"] is True
    assert statuses["ebay"]["username"] == "thriftshop"
    assert statuses["poshmark"]["supports_api_publish"] is False


def test_ebay_oauth_flow(client, db, user, auth_headers, fake_ebay):
    fake_ebay.add("POST", "/identity/v1/oauth2/token", (200, {
        "access_token": "user-access-token",
        "expires_in": 7200,
        "refresh_token": "user-refresh-token",
        "refresh_token_expires_in": 47304000,
    }))

    auth_url = client.get("/marketplaces/ebay/connect", headers=auth_headers).json()["auth_url"]
    query = parse_qs(urlparse(auth_url).query)
    assert auth_url.startswith("https://auth.ebay.com/oauth2/authorize?")
    assert query["client_id"] == ["test-client-id"]
    state = query["state"][0]

    resp = client.get("/marketplaces/ebay/oauth/callback", params={"code": "auth-code", "state": state})
    assert resp.status_code == 200
    assert "eBay Connected!" in resp.text

    db.expire_all()
    account = db.query(MarketplaceAccount).filter(MarketplaceAccount.user_id == user.id).one()
    assert account.access_token == "user-access-token"
    assert account.refresh_token == "user-refresh-token"
    assert account.is_connected is True
    assert db.query(OAuthState).count() == 0

    # state is single use
    resp = client.get("/marketplaces/ebay/oauth/callback", params={"code": "auth-code", "state": state})
    assert resp.status_code == 400

    status = client.get("/marketplaces/ebay/status", headers=auth_headers).json()
    assert status["connected"] is True
    assert status["token_valid"] is True


def test_oauth_callback_with_unknown_state(client):
    resp = client.get("/marketplaces/ebay/oauth/callback", params={"code": "c", "state": "forged"})
    assert resp.status_code == 400


def test_disconnect(client, auth_headers, ebay_account):
    assert client.delete("/marketplaces/ebay/disconnect", headers=auth_headers).status_code == 200
    assert client.get("/marketplaces/ebay/status", headers=auth_headers).json()["connected"] is False


def test_refresh_tokens_route(client, auth_headers, ebay_account, fake_ebay):
    resp = client.post("/marketplaces/ebay/tokens/refresh", headers=auth_headers)

    assert resp.status_code == 200
    assert resp.json()["summary"]["not_needed"] == 1


def test_refresh_tokens_without_accounts(client, auth_headers, fake_ebay):
    resp = client.post("/marketplaces/ebay/tokens/refresh", headers=auth_headers, json={"force_refresh": True})
    assert resp.status_code == 404


def test_refresh_tokens_when_ebay_is_unreachable(client, auth_headers, ebay_account, fake_ebay):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    fake_ebay.add("POST", "/identity/v1/oauth2/token", refuse)

    resp = client.post("/marketplaces/ebay/tokens/refresh", headers=auth_headers, json={"force_refresh": True})

    assert resp.status_code == 200
    assert resp.json()["results"][0]["status"] == "failed"
    assert resp.json()["summary"]["failed"] == 1


def test_policies_for_individual_seller(client, auth_headers, fake_ebay):
    resp = client.post("/marketplaces/ebay/policies", headers=auth_headers)

    assert resp.status_code == 200
    assert resp.json()["status"] == "individual"
    assert resp.json()["policies"]["payment_policy_id"] == "INDIVIDUAL_DEFAULT_PAYMENT"


def test_policy_errors_are_explained(client, db, profile, auth_headers, fake_ebay):
    profile.ebay_account_type = "business"
    db.commit()

    resp = client.post("/marketplaces/ebay/policies", headers=auth_headers)

    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["error"].startswith("eBay account not connected")
    assert "No active eBay account" in detail["details"]


def test_individual_validation_route(client, auth_headers):
    resp = client.get("/marketplaces/ebay/policies/individual-validation", headers=auth_headers)

    assert resp.status_code == 200
    assert resp.json()["account_type"] == "individual"


def test_location_route(client, auth_headers, ebay_account, fake_ebay):
    fake_ebay.add("GET", "/sell/inventory/v1/location", (200, {"locations": [{"merchantLocationKey": "garage"}]}))

    resp = client.post("/marketplaces/ebay/locations", headers=auth_headers, json={"action": "list"})

    assert resp.status_code == 200
    assert resp.json()["locations"][0]["merchantLocationKey"] == "garage"
    assert client.post("/marketplaces/ebay/locations", headers=auth_headers, json={"action": "nope"}).status_code == 422


def test_sync_dry_run_route(client, auth_headers, make_listing, fake_ebay):
    listing = make_listing()

    resp = client.post(f"/marketplaces/ebay/listings/{listing.id}/sync", headers=auth_headers, json={"dry_run": True})

    assert resp.status_code == 200
    assert resp.json()["status"] == "dry_run_success"
    assert resp.json()["payload"]["offer"]["format"] == "FIXED_PRICE"


def test_sync_route_reports_validation_errors(client, auth_headers, make_listing, fake_ebay):
    listing = make_listing(with_image=False)

    resp = client.post(f"/marketplaces/ebay/listings/{listing.id}/sync", headers=auth_headers)

    assert resp.status_code == 400
    assert resp.json()["detail"]["errors"] == ["At least one photo is required to sync this listing to eBay"]


def test_sync_route_maps_ebay_errors(client, auth_headers, ebay_account, make_listing, fake_ebay):
    listing = make_listing(sku="BAD-1")
    fake_ebay.add("GET", "/sell/inventory/v1/location", (200, {"locations": [{"merchantLocationKey": "garage"}]}))
    fake_ebay.add("PUT", "/sell/inventory/v1/inventory_item/BAD-1", (400, {"errors": [{"errorId": 25709}]}))

    resp = client.post(f"/marketplaces/ebay/listings/{listing.id}/sync", headers=auth_headers)

    assert resp.status_code == 502
    assert resp.json()["detail"]["ebay_status"] == 400
    assert resp.json()["detail"]["ebay_resp"]["errors"][0]["errorId"] == 25709


def test_sync_route_unknown_listing(client, auth_headers, fake_ebay):
    assert client.post("/marketplaces/ebay/listings/424242/sync", headers=auth_headers).status_code == 404


def test_end_listing_route(client, db, auth_headers, ebay_account, make_listing, fake_ebay):
    listing = make_listing()
    db.add(ListingMarketplace(listing_id=listing.id, marketplace="ebay", status="active", offer_id="OFFER-3"))
    db.commit()
    fake_ebay.add("POST", "/sell/inventory/v1/offer/OFFER-3/withdraw", (200, {}))

    resp = client.post(f"/marketplaces/ebay/listings/{listing.id}/end", headers=auth_headers)

    assert resp.status_code == 200
    assert resp.json()["status"] == "ended"


def test_bulk_sync_job(client, auth_headers, other_headers, fake_ebay):
    resp = client.post(
        "/marketplaces/ebay/listings/bulk-sync",
        headers=auth_headers,
        json={"listing_ids": [424242, 424242]},
    )
    assert resp.status_code == 202
    started = resp.json()
    assert started["total"] == 1

    # TestClient runs background tasks before returning
    job = client.get(f"/marketplaces/ebay/jobs/{started['job_id']}", headers=auth_headers).json()
    assert job["status"] == "completed"
    assert job["result"]["failed"] == 1
    assert job["messages"]

    assert client.get(f"/marketplaces/ebay/jobs/{started['job_id']}", headers=other_headers).status_code == 404


def test_bulk_sync_needs_ids(client, auth_headers):
    resp = client.post("/marketplaces/ebay/listings/bulk-sync", headers=auth_headers, json={"listing_ids": []})
    assert resp.status_code == 422


def test_import_route(client, auth_headers, ebay_account, make_listing, fake_ebay):
    make_listing(sku="ABC-1")
    fake_ebay.add("GET", "/sell/inventory/v1/inventory_item", (200, {"total": 1, "inventoryItems": [{"sku": "ABC-1"}]}))

    resp = client.post("/marketplaces/ebay/inventory/import", headers=auth_headers)

    assert resp.json()["linked"] == 1


@pytest.mark.parametrize("platform", ["poshmark", "mercari", "depop", "facebook", "whatnot"])
def test_stub_marketplaces_cannot_publish(client, auth_headers, make_listing, platform):
    listing = make_listing()

    resp = client.post(f"/marketplaces/{platform}/{listing.id}/publish", headers=auth_headers)

    assert resp.status_code == 501


def test_publish_to_unknown_marketplace(client, auth_headers, make_listing):
    listing = make_listing()

    assert client.post(f"/marketplaces/etsy/{listing.id}/publish", headers=auth_headers).status_code == 404


def test_publish_to_ebay_runs_sync(client, db, auth_headers, make_listing, fake_ebay):
    listing = make_listing()
    db.add(ListingMarketplace(listing_id=listing.id, marketplace="ebay", status="active", offer_id="O-1"))
    db.commit()

    resp = client.post(f"/marketplaces/ebay/{listing.id}/publish", headers=auth_headers)

    assert resp.status_code == 200
    assert resp.json()["status"] == "already_synced"
