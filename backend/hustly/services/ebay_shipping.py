# hustly/services/ebay_shipping.py
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from hustly.models.user_profile import UserProfile

logger = logging.getLogger("hustly.ebay.shipping")

# Inventory API service codes (not the Trading API ones)
VALIDATED_EBAY_SERVICES: Dict[str, Dict[str, Any]] = {
    "US_PriorityMail": {"display_name": "USPS Priority Mail", "min_days": 1, "max_days": 3},
    "US_FirstClassMail": {"display_name": "USPS First Class Mail", "min_days": 1, "max_days": 3},
    "US_GroundAdvantage": {"display_name": "USPS Ground Advantage", "min_days": 2, "max_days": 8},
    "US_ExpressMail": {"display_name": "USPS Priority Mail Express", "min_days": 1, "max_days": 2},
    "US_UPSGround": {"display_name": "UPS Ground", "min_days": 3, "max_days": 5},
}

PREFERENCE_TO_EBAY_SERVICE = {
    "usps_priority": "US_PriorityMail",
    "usps_first_class": "US_FirstClassMail",
    "usps_ground": "US_GroundAdvantage",
    "ups_ground": "US_UPSGround",
    "standard": "US_PriorityMail",
    "expedited": "US_PriorityMail",
    "overnight": "US_ExpressMail",
    "express": "US_ExpressMail",
}

DEFAULT_SERVICE = "US_PriorityMail"
FALLBACK_SERVICE = "US_PriorityMail"

DEFAULT_DOMESTIC_COST = Decimal("9.95")
DEFAULT_ADDITIONAL_COST = Decimal("2.00")


def _money(value) -> Dict[str, str]:
    return {"value": f"{Decimal(str(value)):.2f}", "currency": "USD"}


def is_valid_service(service_code: Optional[str]) -> bool:
    return service_code in VALIDATED_EBAY_SERVICES


def map_preference_to_service(preference: Optional[str]) -> str:
    service = PREFERENCE_TO_EBAY_SERVICE.get(preference or "standard", DEFAULT_SERVICE)
    if not is_valid_service(service):
        logger.warning("mapped service %s is not valid, using %s", service, FALLBACK_SERVICE)
        return FALLBACK_SERVICE
    return service


def available_services() -> List[Dict[str, Any]]:
    return [{"service_code": code, **config} for code, config in VALIDATED_EBAY_SERVICES.items()]


def _build_details(service_code: str, domestic_cost, additional_cost, handling_time: int) -> Dict[str, Any]:
    return {
        "handlingTime": {"value": handling_time, "unit": "DAY"},
        "shippingOptions": [{
            "optionType": "DOMESTIC",
            "costType": "FLAT_RATE",
            "shippingServices": [{
                "serviceCode": service_code,
                "shippingCost": _money(domestic_cost),
                "additionalShippingCost": _money(additional_cost),
            }],
        }],
        "shipToLocations": {
            "regionIncluded": [{"regionName": "United States", "regionType": "COUNTRY"}],
        },
    }


def create_fulfillment_details(
    profile: UserProfile,
    domestic_cost=None,
    handling_time_days: Optional[int] = None,
) -> Dict[str, Any]:
    """Inline fulfillment details for offers that cannot reference a fulfillment policy."""
    domestic_cost = domestic_cost or profile.shipping_cost_domestic or DEFAULT_DOMESTIC_COST
    handling_time = handling_time_days or profile.handling_time_days or 1
    service_code = map_preference_to_service(profile.preferred_shipping_service)

    logger.info(
        "fulfillment details: preference=%s service=%s cost=%s handling=%s",
        profile.preferred_shipping_service, service_code, domestic_cost, handling_time,
    )
    return _build_details(
        service_code,
        domestic_cost,
        profile.shipping_cost_additional or DEFAULT_ADDITIONAL_COST,
        handling_time,
    )


def create_fallback_fulfillment_details(profile: UserProfile) -> Dict[str, Any]:
    """Same as create_fulfillment_details but pinned to the fallback service."""
    return _build_details(
        FALLBACK_SERVICE,
        profile.shipping_cost_domestic or DEFAULT_DOMESTIC_COST,
        profile.shipping_cost_additional or DEFAULT_ADDITIONAL_COST,
        profile.handling_time_days or 1,
    )


def validate_fulfillment_details(details: Dict[str, Any]) -> Tuple[bool, List[str]]:
    errors = []

    handling = details.get("handlingTime") or {}
    if (handling.get("value") or 0) < 1:
        errors.append("Handling time must be at least 1 day")

    options = details.get("shippingOptions") or []
    if not options:
        errors.append("At least one shipping option is required")

    for i, option in enumerate(options, start=1):
        services = option.get("shippingServices") or []
        if not services:
            errors.append(f"Shipping option {i} must have at least one shipping service")
            continue
        for j, service in enumerate(services, start=1):
            code = service.get("serviceCode")
            if not code:
                errors.append(f"Shipping service {j} in option {i} missing service code")
            elif option.get("optionType") == "DOMESTIC" and not is_valid_service(code):
                errors.append(f"Invalid shipping service code: {code}")
            if not (service.get("shippingCost") or {}).get("value"):
                errors.append(f"Shipping service {j} in option {i} missing cost")

    return (not errors, errors)


# Account API (fulfillment policies) names services by carrier + service code
POLICY_SERVICE_CODES = {
    "US_PriorityMail": ("USPS", "USPSPriority"),
    "US_FirstClassMail": ("USPS", "USPSFirstClass"),
    "US_GroundAdvantage": ("USPS", "USPSGroundAdvantage"),
    "US_ExpressMail": ("USPS", "USPSPriorityMailExpress"),
    "US_UPSGround": ("UPS", "UPSGround"),
}
INTERNATIONAL_POLICY_SERVICE = ("USPS", "USPSPriorityMailInternational")


def policy_service_for(preference: Optional[str]) -> Tuple[str, str]:
    return POLICY_SERVICE_CODES[map_preference_to_service(preference)]
