# hustly/services/ebay_location.py
import logging
import re
from typing import List

import httpx
from sqlalchemy.orm import Session

from hustly.core.constants import FALLBACK_LOCATION_KEY
from hustly.models.user import User
from hustly.models.user_profile import UserProfile
from hustly.schemas.ebay import LocationResult
from hustly.services.ebay_client import EbayApiError, EbayAuthError, ebay_get, ebay_post

logger = logging.getLogger("hustly.ebay.location")


def location_key_for(profile: UserProfile) -> str:
    store = profile.business_name or "main"
    return re.sub(r"[^a-z0-9_]", "_", f"{store}_warehouse".lower())


def build_location_payload(profile: UserProfile) -> dict:
    # inventory address first, then shipping address, then placeholders
    address = {
        "addressLine1": profile.inventory_address_line1 or profile.shipping_address_line1 or "123 Main St",
        "city": profile.inventory_city or profile.shipping_city or "Anytown",
        "stateOrProvince": profile.inventory_state or profile.shipping_state or "CA",
        "postalCode": profile.inventory_postal_code or profile.shipping_postal_code or "12345",
        "country": profile.inventory_country or profile.shipping_country or "US",
    }
    line2 = profile.inventory_address_line2 or profile.shipping_address_line2
    if line2:
        address["addressLine2"] = line2

    return {
        "location": {"address": address},
        "locationInstructions": "Primary inventory location for online sales",
        "name": profile.inventory_location_name or f"{profile.business_name or 'Main'} Warehouse",
        "merchantLocationStatus": "ENABLED",
        "locationTypes": ["WAREHOUSE"],
    }


async def list_inventory_locations(db: Session, user: User) -> List[dict]:
    resp = await ebay_get(db=db, user=user, path="/sell/inventory/v1/location")
    if resp.status_code != 200:
        raise EbayApiError.from_response("Failed to fetch inventory locations", resp)
    return resp.json().get("locations", [])


async def create_inventory_location(db: Session, user: User, profile: UserProfile) -> str:
    location_key = location_key_for(profile)
    resp = await ebay_post(
        db=db,
        user=user,
        path=f"/sell/inventory/v1/location/{location_key}",
        json=build_location_payload(profile),
    )
    if resp.status_code in (200, 201, 204):
        logger.info("created inventory location %s for user %s", location_key, user.id)
        return location_key
    if resp.status_code == 409 or "already exists" in resp.text.lower():
        return location_key
    raise EbayApiError.from_response("Failed to create inventory location", resp)


async def _pick_or_create_location(db: Session, user: User, profile: UserProfile) -> str:
    locations = await list_inventory_locations(db, user)
    if locations:
        primary = next(
            (
                loc for loc in locations
                if loc.get("merchantLocationStatus") == "ENABLED"
                and "WAREHOUSE" in (loc.get("locationTypes") or [])
            ),
            locations[0],
        )
        return primary["merchantLocationKey"]
    return await create_inventory_location(db, user, profile)


def _remember_key(db: Session, profile: UserProfile, location_key: str) -> None:
    if profile.ebay_location_key != location_key:
        profile.ebay_location_key = location_key
        db.commit()


async def ensure_default_location(db: Session, user: User, profile: UserProfile) -> str:
    try:
        location_key = await _pick_or_create_location(db, user, profile)
    except (EbayApiError, EbayAuthError, httpx.HTTPError) as e:
        logger.warning("could not ensure inventory location for user %s, using %s: %s", user.id, FALLBACK_LOCATION_KEY, e)
        location_key = FALLBACK_LOCATION_KEY

    _remember_key(db, profile, location_key)
    return location_key


async def run_location_action(db: Session, user: User, profile: UserProfile, action: str) -> LocationResult:
    if action == "list":
        locations = await list_inventory_locations(db, user)
        return LocationResult(action=action, locations=locations, message=f"{len(locations)} location(s) found")

    if action == "create":
        location_key = await create_inventory_location(db, user, profile)
        _remember_key(db, profile, location_key)
        return LocationResult(
            action=action,
            location_key=location_key,
            created=True,
            message="Inventory location created successfully",
        )

    if action == "ensure_default":
        location_key = await ensure_default_location(db, user, profile)
        return LocationResult(action=action, location_key=location_key, message="Default inventory location ensured")

    raise ValueError(f"Unknown action: {action}")
