import asyncio
import json

import pytest

from hustly.core.constants import EBAY_DEFAULT_POLICIES, INDIVIDUAL_DEFAULT_POLICIES
from hustly.models.user_profile import UserProfile
from hustly.services.ebay_client import EbayAuthError
from hustly.services.ebay_policies import (
    PolicyError,
    build_fulfillment_policy,
    build_return_policy,
    describe_policy_error,
    ensure_business_policies,
    has_placeholder_policies,
    is_individual_account,
    pick_policy_id,
    validate_individual_account,
)

PROGRAMS_PATH = "/sell/account/v1/program/get_opted_in_programs"
OPT_IN_PATH = "/sell/account/v1/program/opt_in"
PAYMENT_PATH = "/sell/account/v1/payment_policy"
RETURN_PATH = "/sell/account/v1/return_policy"
FULFILLMENT_PATH = "/sell/account/v1/fulfillment_policy"

REAL_IDS = {
    "ebay_payment_policy_id": "243552423019",
    "ebay_return_policy_id": "243552468019",
    "ebay_fulfillment_policy_id": "243552496019",
}
# long enough to count as real
LONG_IDS = {
    "ebay_payment_policy_id": "6204811000000001",
    "ebay_return_policy_id": "6204811000000002",
    "ebay_fulfillment_policy_id": "6204811000000003",
}


@pytest.fixture
def business_profile(db, profile):
    profile.ebay_account_type = "business"
    db.commit()
    return profile


def _opted_in(fake_ebay):
    fake_ebay.add("GET", PROGRAMS_PATH, (200, {"programs": [{"programType": "SELLING_POLICY_MANAGEMENT"}]}))


def test_placeholder_detection():
    assert has_placeholder_policies(UserProfile())
    assert has_placeholder_policies(UserProfile(**{**LONG_IDS, "ebay_return_policy_id": "EBAY_DEFAULT_RETURN"}))
    assert not has_placeholder_policies(UserProfile(**LONG_IDS))


def test_short_or_fake_ids_mean_individual_account():
    assert is_individual_account(UserProfile(**REAL_IDS))
    assert is_individual_account(UserProfile(**{**LONG_IDS, "ebay_payment_policy_id": "DEFAULT_PAYMENT_POLICY"}))
    assert not is_individual_account(UserProfile(**LONG_IDS))


def test_pick_policy_id_prefers_default_names():
    policies = [
        {"name": "Heavy items", "paymentPolicyId": "1"},
        {"name": "Standard payments", "paymentPolicyId": "2"},
    ]
    assert pick_policy_id(policies, "paymentPolicyId") == "2"
    assert pick_policy_id(policies[:1], "paymentPolicyId") == "1"
    assert pick_policy_id([], "paymentPolicyId") is None


def test_individual_account_gets_placeholder_ids(db, user, profile, fake_ebay):
    result = asyncio.run(ensure_business_policies(db, user))

    assert result.status == "individual"
    assert result.is_personal_account is True
    db.refresh(profile)
    assert profile.ebay_payment_policy_id == INDIVIDUAL_DEFAULT_POLICIES["payment"]
    assert profile.ebay_policies_created_at is not None
    assert fake_ebay.calls == []


def test_account_type_on_marketplace_account_wins(db, user, business_profile, ebay_account, fake_ebay):
    ebay_account.ebay_account_type = "individual"
    db.commit()

    result = asyncio.run(ensure_business_policies(db, user))

    assert result.status == "individual"


def test_real_ids_are_kept(db, user, business_profile, fake_ebay):
    for field, value in LONG_IDS.items():
        setattr(business_profile, field, value)
    db.commit()

    result = asyncio.run(ensure_business_policies(db, user))

    assert result.status == "exists"
    assert result.policies.payment_policy_id == LONG_IDS["ebay_payment_policy_id"]
    assert fake_ebay.calls == []


def test_business_without_account_fails(db, user, business_profile, fake_ebay):
    with pytest.raises(EbayAuthError, match="No active eBay account"):
        asyncio.run(ensure_business_policies(db, user))


def test_disconnected_account_must_reconnect(db, user, business_profile, ebay_account, fake_ebay):
    ebay_account.is_connected = False
    db.commit()

    with pytest.raises(EbayAuthError, match="expired"):
        asyncio.run(ensure_business_policies(db, user))


def test_not_eligible_uses_ebay_defaults(db, user, business_profile, ebay_account, fake_ebay):
    fake_ebay.add("GET", PROGRAMS_PATH, (200, {"programs": []}))
    fake_ebay.add("POST", OPT_IN_PATH, (403, {"errors": [{"message": "Not eligible"}]}))

    result = asyncio.run(ensure_business_policies(db, user))

    assert result.status == "ebay_default"
    db.refresh(business_profile)
    assert business_profile.ebay_fulfillment_policy_id == EBAY_DEFAULT_POLICIES["fulfillment"]


def test_existing_policies_are_reused_and_missing_ones_created(db, user, business_profile, ebay_account, fake_ebay):
    _opted_in(fake_ebay)
    fake_ebay.add("GET", PAYMENT_PATH, (200, {"paymentPolicies": [{"name": "Default payment", "paymentPolicyId": "6204811000000001"}]}))
    fake_ebay.add("GET", RETURN_PATH, (200, {"returnPolicies": []}))
    fake_ebay.add("GET", FULFILLMENT_PATH, (404, None))
    fake_ebay.add("POST", RETURN_PATH, (201, {"returnPolicyId": "6204811000000002"}))
    fake_ebay.add("POST", FULFILLMENT_PATH, (201, {"fulfillmentPolicyId": "6204811000000003"}))

    result = asyncio.run(ensure_business_policies(db, user))

    assert result.status == "created"
    assert result.policies.payment_policy_id == "6204811000000001"
    assert result.policies.return_policy_id == "6204811000000002"
    assert result.policies.fulfillment_policy_id == "6204811000000003"
    assert fake_ebay.requests_to("POST", PAYMENT_PATH) == []

    fulfillment_body = json.loads(fake_ebay.requests_to("POST", FULFILLMENT_PATH)[0].content)
    service = fulfillment_body["shippingOptions"][0]["shippingServices"][0]
    assert service["shippingCarrierCode"] == "USPS"
    assert service["shippingServiceCode"] == "USPSPriority"

    db.refresh(business_profile)
    assert business_profile.ebay_return_policy_id == "6204811000000002"


def test_all_existing_policies_found(db, user, business_profile, ebay_account, fake_ebay):
    _opted_in(fake_ebay)
    fake_ebay.add("GET", PAYMENT_PATH, (200, {"paymentPolicies": [{"name": "p", "paymentPolicyId": "6204811000000001"}]}))
    fake_ebay.add("GET", RETURN_PATH, (200, {"returnPolicies": [{"name": "r", "returnPolicyId": "6204811000000002"}]}))
    fake_ebay.add("GET", FULFILLMENT_PATH, (200, {"fulfillmentPolicies": [{"name": "f", "fulfillmentPolicyId": "6204811000000003"}]}))

    result = asyncio.run(ensure_business_policies(db, user))

    assert result.status == "exists"
    assert result.message == "Using existing business policies"


def test_refused_creation_falls_back_to_individual(db, user, business_profile, ebay_account, fake_ebay):
    _opted_in(fake_ebay)
    for path in (PAYMENT_PATH, RETURN_PATH, FULFILLMENT_PATH):
        fake_ebay.add("GET", path, (200, {}))
    fake_ebay.add("POST", PAYMENT_PATH, (403, {"errors": [{"message": "Seller is not authorized"}]}))

    result = asyncio.run(ensure_business_policies(db, user))

    assert result.status == "individual"
    db.refresh(business_profile)
    assert business_profile.ebay_return_policy_id == INDIVIDUAL_DEFAULT_POLICIES["return"]


def test_fetch_failure_raises_policy_error(db, user, business_profile, ebay_account, fake_ebay):
    _opted_in(fake_ebay)
    fake_ebay.add("GET", PAYMENT_PATH, (400, {"errors": [{"message": "bad marketplace"}]}))

    with pytest.raises(PolicyError, match="^Failed to fetch existing eBay policies"):
        asyncio.run(ensure_business_policies(db, user))


def test_creation_failure_is_wrapped(db, user, business_profile, ebay_account, fake_ebay):
    _opted_in(fake_ebay)
    for path in (PAYMENT_PATH, RETURN_PATH, FULFILLMENT_PATH):
        fake_ebay.add("GET", path, (200, {}))
    fake_ebay.add("POST", PAYMENT_PATH, (400, {"errors": [{"message": "Invalid categoryTypes"}]}))

    with pytest.raises(PolicyError, match="^Failed to configure eBay policies"):
        asyncio.run(ensure_business_policies(db, user))


def test_return_policy_without_returns():
    payload = build_return_policy(UserProfile(business_name="Shop", accepts_returns=False))

    assert payload["returnsAccepted"] is False
    assert "returnPeriod" not in payload


def test_fulfillment_policy_with_international_shipping():
    payload = build_fulfillment_policy(UserProfile(
        business_name="Shop",
        shipping_cost_domestic=10,
        shipping_cost_additional=2,
        international_shipping_enabled=True,
    ))

    intl = payload["shippingOptions"][1]
    assert intl["optionType"] == "INTERNATIONAL"
    assert intl["shippingServices"][0]["shippingCost"]["value"] == "25.00"
    assert intl["shippingServices"][0]["additionalShippingCost"]["value"] == "3.00"
    regions = [r["regionName"] for r in payload["shipToLocations"]["regionIncluded"]]
    assert regions == ["United States", "Canada", "Europe"]


@pytest.mark.parametrize(
    "message, status_code, reconnect",
    [
        ("No active eBay account found. Please connect your eBay account first.", 400, False),
        ("Your eBay connection has expired. Please reconnect your eBay account", 401, True),
        ("Failed to create payment policy: 400 Missing field brands", 400, False),
        ("User profile not found", 400, False),
        ("Failed to fetch existing eBay policies: boom", 400, False),
        ("something odd", 500, False),
    ],
)
def test_describe_policy_error(message, status_code, reconnect):
    friendly, code, needs_reconnection = describe_policy_error(message)

    assert code == status_code
    assert needs_reconnection is reconnect
    assert friendly


def test_validate_individual_account():
    configured = UserProfile(
        ebay_account_type="individual",
        preferred_shipping_service="usps_priority",
        ebay_payment_policy_id=INDIVIDUAL_DEFAULT_POLICIES["payment"],
    )
    report = validate_individual_account(configured)
    assert report.configured is True
    assert report.is_individual is True
    assert report.recommendations == []

    report = validate_individual_account(UserProfile(ebay_account_type="business", preferred_shipping_service="other"))
    assert report.configured is False
    assert len(report.recommendations) == 3
