from decimal import Decimal

import pytest

from hustly.models.user_profile import UserProfile
from hustly.services.ebay_shipping import (
    FALLBACK_SERVICE,
    available_services,
    create_fallback_fulfillment_details,
    create_fulfillment_details,
    map_preference_to_service,
    policy_service_for,
    validate_fulfillment_details,
)


def _profile(**fields):
    values = {
        "preferred_shipping_service": "usps_priority",
        "shipping_cost_domestic": Decimal("7.50"),
        "shipping_cost_additional": Decimal("1.00"),
        "handling_time_days": 2,
    }
    values.update(fields)
    return UserProfile(**values)


@pytest.mark.parametrize(
    "preference, expected",
    [
        ("usps_priority", "US_PriorityMail"),
        ("usps_ground", "US_GroundAdvantage"),
        ("ups_ground", "US_UPSGround"),
        ("express", "US_ExpressMail"),
        ("carrier_pigeon", "US_PriorityMail"),
        (None, "US_PriorityMail"),
    ],
)
def test_map_preference_to_service(preference, expected):
    assert map_preference_to_service(preference) == expected


def test_fulfillment_details_use_profile_settings():
    details = create_fulfillment_details(_profile(preferred_shipping_service="usps_first_class"))

    assert details["handlingTime"] == {"value": 2, "unit": "DAY"}
    service = details["shippingOptions"][0]["shippingServices"][0]
    assert service["serviceCode"] == "US_FirstClassMail"
    assert service["shippingCost"] == {"value": "7.50", "currency": "USD"}
    assert service["additionalShippingCost"] == {"value": "1.00", "currency": "USD"}


def test_listing_cost_overrides_profile_cost():
    details = create_fulfillment_details(_profile(), domestic_cost=Decimal("12"))

    service = details["shippingOptions"][0]["shippingServices"][0]
    assert service["shippingCost"]["value"] == "12.00"


def test_defaults_when_profile_is_empty():
    details = create_fulfillment_details(UserProfile())

    assert details["handlingTime"]["value"] == 1
    service = details["shippingOptions"][0]["shippingServices"][0]
    assert service["serviceCode"] == "US_PriorityMail"
    assert service["shippingCost"]["value"] == "9.95"


def test_fallback_details_pin_the_fallback_service():
    details = create_fallback_fulfillment_details(_profile(preferred_shipping_service="ups_ground"))

    assert details["shippingOptions"][0]["shippingServices"][0]["serviceCode"] == FALLBACK_SERVICE


def test_generated_details_validate():
    ok, errors = validate_fulfillment_details(create_fulfillment_details(_profile()))

    assert ok
    assert errors == []


def test_validation_reports_problems():
    details = {
        "handlingTime": {"value": 0, "unit": "DAY"},
        "shippingOptions": [
            {"optionType": "DOMESTIC", "shippingServices": [{"serviceCode": "USPSPriority", "shippingCost": {}}]},
            {"optionType": "DOMESTIC", "shippingServices": []},
        ],
    }

    ok, errors = validate_fulfillment_details(details)

    assert not ok
    assert "Handling time must be at least 1 day" in errors
    assert "Invalid shipping service code: USPSPriority" in errors
    assert "Shipping service 1 in option 1 missing cost" in errors
    assert "Shipping option 2 must have at least one shipping service" in errors


def test_validation_requires_an_option():
    ok, errors = validate_fulfillment_details({"handlingTime": {"value": 1}})

    assert not ok
    assert errors == ["At least one shipping option is required"]


def test_policy_service_codes():
    assert policy_service_for("usps_priority") == ("USPS", "USPSPriority")
    assert policy_service_for("ups_ground") == ("UPS", "UPSGround")


def test_available_services_lists_every_validated_code():
    codes = {s["service_code"] for s in available_services()}

    assert "US_PriorityMail" in codes
    assert len(codes) == 5
