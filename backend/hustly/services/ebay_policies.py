"""
eBay business-policy manager.

Makes sure the seller profile holds usable payment / return / fulfillment
policy IDs. Business sellers get real policies (existing ones are reused,
missing ones created); individual sellers, or sellers eBay won't let create
policies, get placeholder IDs and the listing pipeline sends inline shipping
and return terms instead.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import httpx
from sqlalchemy.orm import Session

from hustly.core.config import get_settings
from hustly.core.constants import (
    EBAY_DEFAULT_POLICIES,
    FAKE_INDIVIDUAL_POLICY_IDS,
    INDIVIDUAL_DEFAULT_POLICIES,
    MIN_REAL_POLICY_ID_LENGTH,
    PLACEHOLDER_POLICY_IDS,
)
from hustly.models.marketplace_account import MarketplaceAccount
from hustly.models.user import User
from hustly.models.user_profile import UserProfile
from hustly.schemas.ebay import IndividualAccountValidation, PolicyIds, PolicyResult
from hustly.services.ebay_client import (
    EbayAuthError,
    ebay_get,
    ebay_post,
    get_active_ebay_account,
    get_valid_ebay_access_token,
)
from hustly.services.ebay_shipping import (
    DEFAULT_ADDITIONAL_COST,
    DEFAULT_DOMESTIC_COST,
    INTERNATIONAL_POLICY_SERVICE,
    policy_service_for,
)

settings = get_settings()
logger = logging.getLogger("hustly.ebay.policies")

POLICY_KINDS = ("payment", "return", "fulfillment")

# kind -> (endpoint, list key in GET response, id key)
_POLICY_API = {
    "payment": ("/sell/account/v1/payment_policy", "paymentPolicies", "paymentPolicyId"),
    "return": ("/sell/account/v1/return_policy", "returnPolicies", "returnPolicyId"),
    "fulfillment": ("/sell/account/v1/fulfillment_policy", "fulfillmentPolicies", "fulfillmentPolicyId"),
}

_CATEGORY_TYPES = [{"name": "ALL_EXCLUDING_MOTORS_VEHICLES"}]


class PolicyError(Exception):
    pass


class IndividualAccountError(Exception):
    """eBay refused to create business policies for this seller."""


def _profile_ids(profile: UserProfile) -> Dict[str, Optional[str]]:
    return {
        "payment": profile.ebay_payment_policy_id,
        "return": profile.ebay_return_policy_id,
        "fulfillment": profile.ebay_fulfillment_policy_id,
    }


def _store_ids(profile: UserProfile, ids: Dict[str, str]) -> None:
    profile.ebay_payment_policy_id = ids["payment"]
    profile.ebay_return_policy_id = ids["return"]
    profile.ebay_fulfillment_policy_id = ids["fulfillment"]
    profile.ebay_policies_created_at = datetime.utcnow()


def _to_policy_ids(ids: Dict[str, Optional[str]]) -> PolicyIds:
    return PolicyIds(
        payment_policy_id=ids.get("payment"),
        return_policy_id=ids.get("return"),
        fulfillment_policy_id=ids.get("fulfillment"),
    )


def has_placeholder_policies(profile: UserProfile) -> bool:
    return any(not pid or pid in PLACEHOLDER_POLICY_IDS for pid in _profile_ids(profile).values())


def is_individual_account(profile: UserProfile) -> bool:
    for pid in _profile_ids(profile).values():
        if not pid or len(pid) < MIN_REAL_POLICY_ID_LENGTH or pid in FAKE_INDIVIDUAL_POLICY_IDS:
            return True
    return False


def get_profile(db: Session, user: User) -> UserProfile:
    profile = db.query(UserProfile).filter(UserProfile.user_id == user.id).first()
    if not profile:
        raise PolicyError("User profile not found")
    return profile


def resolve_account_type(db: Session, user: User, profile: UserProfile) -> str:
    account = (
        db.query(MarketplaceAccount)
        .filter(
            MarketplaceAccount.user_id == user.id,
            MarketplaceAccount.marketplace == "ebay",
        )
        .first()
    )
    if account and account.ebay_account_type:
        return account.ebay_account_type
    return profile.ebay_account_type or "individual"


# ---------------------------------------------------------
# eBay Account API helpers
# ---------------------------------------------------------
async def check_business_policy_eligibility(db: Session, user: User) -> bool:
    """Opted into SELLING_POLICY_MANAGEMENT, opting in when it is not yet."""
    try:
        programs_resp = await ebay_get(db=db, user=user, path="/sell/account/v1/program/get_opted_in_programs")
        if programs_resp.status_code != 200:
            logger.info("opted-in programs lookup failed: %s %s", programs_resp.status_code, programs_resp.text[:500])
            return False

        for program in programs_resp.json().get("programs", []):
            if program.get("programType") == "SELLING_POLICY_MANAGEMENT":
                return True

        opt_in_resp = await ebay_post(
            db=db,
            user=user,
            path="/sell/account/v1/program/opt_in",
            json={"programType": "SELLING_POLICY_MANAGEMENT"},
        )
        logger.info("opt-in to SELLING_POLICY_MANAGEMENT -> %s", opt_in_resp.status_code)
        return opt_in_resp.status_code in (200, 201, 204)
    except httpx.HTTPError as e:
        logger.warning("error checking business policy eligibility: %s", e)
        return False


async def fetch_existing_policies(db: Session, user: User) -> Dict[str, List[dict]]:
    existing = {}
    for kind in POLICY_KINDS:
        path, list_key, _ = _POLICY_API[kind]
        try:
            resp = await ebay_get(db=db, user=user, path=path, params={"marketplace_id": settings.ebay_marketplace_id})
        except httpx.HTTPError as e:
            raise PolicyError(f"Failed to fetch existing eBay policies: {e}") from e

        if resp.status_code == 200:
            existing[kind] = resp.json().get(list_key, [])
        elif resp.status_code in (403, 404):
            existing[kind] = []
        else:
            raise PolicyError(
                f"Failed to fetch existing eBay policies: {kind} policy fetch failed: {resp.status_code} {resp.text}"
            )
    return existing


def pick_policy_id(policies: List[dict], key: str) -> Optional[str]:
    if not policies:
        return None
    for p in policies:
        name = (p.get("name") or "").lower()
        if "default" in name or "standard" in name:
            return p.get(key)
    return policies[0].get(key)


# ---------------------------------------------------------
# Policy payloads
# ---------------------------------------------------------
def _store_name(profile: UserProfile) -> str:
    return profile.business_name or "Store"


def build_payment_policy(profile: UserProfile) -> dict:
    return {
        "name": f"{_store_name(profile)} Payment Policy",
        "description": "Automated payment policy for listings",
        "marketplaceId": settings.ebay_marketplace_id,
        "categoryTypes": _CATEGORY_TYPES,
        "immediatePay": True,
    }


def build_return_policy(profile: UserProfile) -> dict:
    payload = {
        "name": f"{_store_name(profile)} Return Policy",
        "description": "Automated return policy for listings",
        "marketplaceId": settings.ebay_marketplace_id,
        "categoryTypes": _CATEGORY_TYPES,
        "returnsAccepted": bool(profile.accepts_returns),
    }
    if profile.accepts_returns:
        payload["returnPeriod"] = {"value": profile.return_period_days or 30, "unit": "DAY"}
        payload["refundMethod"] = "MONEY_BACK"
        payload["returnShippingCostPayer"] = (profile.return_shipping_paid_by or "buyer").upper()
    return payload


def build_fulfillment_policy(profile: UserProfile) -> dict:
    domestic_cost = Decimal(str(profile.shipping_cost_domestic or DEFAULT_DOMESTIC_COST))
    additional_cost = Decimal(str(profile.shipping_cost_additional or DEFAULT_ADDITIONAL_COST))
    carrier, service = policy_service_for(profile.preferred_shipping_service)

    payload = {
        "name": f"{_store_name(profile)} Fulfillment Policy",
        "description": "Automated fulfillment policy for listings",
        "marketplaceId": settings.ebay_marketplace_id,
        "categoryTypes": _CATEGORY_TYPES,
        "handlingTime": {"value": profile.handling_time_days or 1, "unit": "DAY"},
        "shippingOptions": [{
            "optionType": "DOMESTIC",
            "costType": "FLAT_RATE",
            "shippingServices": [{
                "shippingCarrierCode": carrier,
                "shippingServiceCode": service,
                "freeShipping": False,
                "shippingCost": {"value": f"{domestic_cost:.2f}", "currency": "USD"},
                "additionalShippingCost": {"value": f"{additional_cost:.2f}", "currency": "USD"},
            }],
        }],
        "shipToLocations": {
            "regionIncluded": [{"regionName": "United States", "regionType": "COUNTRY"}],
        },
    }

    if profile.international_shipping_enabled:
        intl_carrier, intl_service = INTERNATIONAL_POLICY_SERVICE
        payload["shippingOptions"].append({
            "optionType": "INTERNATIONAL",
            "costType": "FLAT_RATE",
            "shippingServices": [{
                "shippingCarrierCode": intl_carrier,
                "shippingServiceCode": intl_service,
                "shippingCost": {"value": f"{domestic_cost * Decimal('2.5'):.2f}", "currency": "USD"},
                "additionalShippingCost": {"value": f"{additional_cost * Decimal('1.5'):.2f}", "currency": "USD"},
            }],
        })
        payload["shipToLocations"]["regionIncluded"].extend([
            {"regionName": "Canada", "regionType": "COUNTRY"},
            {"regionName": "Europe", "regionType": "REGION"},
        ])
    return payload


_PAYLOAD_BUILDERS = {
    "payment": build_payment_policy,
    "return": build_return_policy,
    "fulfillment": build_fulfillment_policy,
}


def _is_individual_refusal(status_code: int, text: str) -> bool:
    return (
        status_code == 403
        or "not authorized" in text
        or "business account" in text
        or "Missing field brands" in text
    )


async def create_policy(db: Session, user: User, kind: str, profile: UserProfile) -> str:
    path, list_key, id_key = _POLICY_API[kind]
    resp = await ebay_post(db=db, user=user, path=path, json=_PAYLOAD_BUILDERS[kind](profile))

    if resp.status_code in (200, 201):
        policy_id = resp.json().get(id_key)
        logger.info("created %s policy %s for user %s", kind, policy_id, user.id)
        return policy_id

    text = resp.text
    if _is_individual_refusal(resp.status_code, text):
        raise IndividualAccountError(f"Failed to create {kind} policy: {resp.status_code} {text}")

    if "already exists" in text.lower():
        existing = await ebay_get(db=db, user=user, path=path, params={"marketplace_id": settings.ebay_marketplace_id})
        if existing.status_code == 200:
            policy_id = pick_policy_id(existing.json().get(list_key, []), id_key)
            if policy_id:
                return policy_id

    raise PolicyError(f"Failed to create {kind} policy: {resp.status_code} {text}")


# ---------------------------------------------------------
# Orchestration
# ---------------------------------------------------------
def _configured_overrides() -> Dict[str, Optional[str]]:
    return {
        "payment": settings.ebay_payment_policy_id,
        "return": settings.ebay_return_policy_id,
        "fulfillment": settings.ebay_fulfillment_policy_id,
    }


async def _resolve_business_policy_ids(db: Session, user: User, profile: UserProfile) -> Tuple[Dict[str, str], bool]:
    """Returns (ids, created_any)."""
    ids = {kind: pid for kind, pid in _configured_overrides().items() if pid}
    if len(ids) < len(POLICY_KINDS):
        existing = await fetch_existing_policies(db, user)
        for kind in POLICY_KINDS:
            if kind not in ids:
                picked = pick_policy_id(existing[kind], _POLICY_API[kind][2])
                if picked:
                    ids[kind] = picked

    created_any = False
    for kind in POLICY_KINDS:
        if kind not in ids:
            ids[kind] = await create_policy(db, user, kind, profile)
            created_any = True
    return ids, created_any


async def ensure_business_policies(db: Session, user: User) -> PolicyResult:
    profile = get_profile(db, user)
    account_type = resolve_account_type(db, user, profile)
    logger.info("ensuring eBay policies for user %s (account type %s)", user.id, account_type)

    if account_type == "individual":
        _store_ids(profile, INDIVIDUAL_DEFAULT_POLICIES)
        db.commit()
        return PolicyResult(
            status="individual",
            message="Individual account policies configured",
            policies=_to_policy_ids(INDIVIDUAL_DEFAULT_POLICIES),
            is_personal_account=True,
            account_type="individual",
        )

    if not has_placeholder_policies(profile) and not is_individual_account(profile):
        return PolicyResult(
            status="exists",
            message="Valid policies already exist",
            policies=_to_policy_ids(_profile_ids(profile)),
            account_type=account_type,
        )

    account = get_active_ebay_account(db, user)
    if not account.is_connected:
        raise EbayAuthError("Your eBay connection has expired. Please reconnect your eBay account")
    await get_valid_ebay_access_token(db, user)

    if not await check_business_policy_eligibility(db, user):
        logger.info("user %s not eligible for business policies, using eBay defaults", user.id)
        _store_ids(profile, EBAY_DEFAULT_POLICIES)
        db.commit()
        return PolicyResult(
            status="ebay_default",
            message="Seller is not eligible for business policies, using eBay default policies",
            policies=_to_policy_ids(EBAY_DEFAULT_POLICIES),
            is_personal_account=True,
            account_type=account_type,
        )

    try:
        ids, created_any = await _resolve_business_policy_ids(db, user, profile)
    except IndividualAccountError as e:
        logger.warning("policy creation refused for user %s, falling back to individual defaults: %s", user.id, e)
        _store_ids(profile, INDIVIDUAL_DEFAULT_POLICIES)
        db.commit()
        return PolicyResult(
            status="individual",
            message="Unable to create business policies, using individual account defaults",
            policies=_to_policy_ids(INDIVIDUAL_DEFAULT_POLICIES),
            is_personal_account=True,
            account_type="individual",
        )
    except PolicyError as e:
        if str(e).startswith("Failed to fetch existing eBay policies"):
            raise
        raise PolicyError(f"Failed to configure eBay policies: {e}") from e

    _store_ids(profile, ids)
    db.commit()
    return PolicyResult(
        status="created" if created_any else "exists",
        message="Business policies created" if created_any else "Using existing business policies",
        policies=_to_policy_ids(ids),
        account_type=account_type,
    )


def describe_policy_error(message: str) -> Tuple[str, int, bool]:
    """Map a policy-manager failure to (user-facing message, HTTP status, needs_reconnection)."""
    if "No active eBay account" in message:
        friendly, status_code = "eBay account not connected. Please connect your eBay account in Settings.", 400
    elif "expired" in message:
        friendly, status_code = "eBay connection has expired. Please reconnect your eBay account in Settings.", 401
    elif "Missing field brands" in message or "not authorized" in message:
        friendly, status_code = "Unable to create custom business policies. Using eBay default policies instead.", 400
    elif "Authentication" in message:
        friendly, status_code = "Authentication failed. Please log in again.", 401
    elif "User profile not found" in message:
        friendly, status_code = "User profile not found. Please complete your profile setup.", 400
    elif "Failed to fetch existing eBay policies" in message:
        friendly, status_code = "Unable to fetch eBay policies. Please check your eBay connection and try again.", 400
    else:
        friendly, status_code = message, 500

    needs_reconnection = "token" in message or "expired" in message or "not connected" in message
    return friendly, status_code, needs_reconnection


def validate_individual_account(profile: UserProfile) -> IndividualAccountValidation:
    configured = (
        profile.ebay_account_type == "individual"
        and profile.preferred_shipping_service != "other"
        and profile.ebay_payment_policy_id == INDIVIDUAL_DEFAULT_POLICIES["payment"]
    )
    recommendations = [] if configured else [
        "Set account type to individual",
        'Change preferred shipping service from "other" to "usps_priority"',
        "Ensure eBay policy IDs are set to INDIVIDUAL_DEFAULT_*",
    ]
    return IndividualAccountValidation(
        is_individual=is_individual_account(profile),
        configured=configured,
        account_type=profile.ebay_account_type or "unknown",
        recommendations=recommendations,
    )
