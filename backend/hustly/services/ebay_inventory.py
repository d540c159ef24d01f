"""
Listing -> eBay pipeline: inventory item, offer, publish.

Also holds the smaller Inventory API flows built on the same helpers:
bulk sync (background job), ending a listing and importing existing eBay
inventory.
"""
import logging
import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from sqlalchemy.orm import Session

from hustly.core.config import get_settings
from hustly.core.constants import (
    DEFAULT_EBAY_CATEGORY_ID,
    FALLBACK_LOCATION_KEY,
    MAX_EBAY_IMAGES,
    PLACEHOLDER_IMAGE_URL,
)
from hustly.core.database import SessionLocal
from hustly.core.progress_tracker import progress_tracker
from hustly.models.listing import Listing
from hustly.models.listing_marketplace import ListingMarketplace
from hustly.models.sync_log import SyncLog
from hustly.models.user import User
from hustly.models.user_profile import UserProfile
from hustly.schemas.ebay import EndListingResult, ImportResult, SyncResult
from hustly.services.ebay_client import (
    EbayApiError,
    ebay_delete,
    ebay_get,
    ebay_post,
    ebay_put,
    ebay_web_base,
)
from hustly.services.ebay_location import ensure_default_location
from hustly.services.ebay_policies import get_profile, has_placeholder_policies, is_individual_account
from hustly.services.ebay_shipping import (
    create_fallback_fulfillment_details,
    create_fulfillment_details,
    validate_fulfillment_details,
)

settings = get_settings()
logger = logging.getLogger("hustly.ebay.sync")

CONDITION_MAP = {
    "new_with_tags": "NEW_WITH_TAGS",
    "new_without_tags": "NEW_WITHOUT_TAGS",
    "new": "NEW_WITHOUT_TAGS",
    "excellent": "USED_EXCELLENT",
    "very_good": "USED_VERY_GOOD",
    "good": "USED_GOOD",
    "fair": "USED_ACCEPTABLE",
    "poor": "FOR_PARTS_OR_NOT_WORKING",
}

INLINE_PAYMENT_METHODS = [
    {"paymentMethodType": "CREDIT_CARD", "brands": ["VISA", "MASTERCARD", "AMERICAN_EXPRESS", "DISCOVER"]},
    {"paymentMethodType": "PAYPAL"},
]

IMPORT_PAGE_SIZE = 100


class ListingNotFoundError(Exception):
    pass


class ListingValidationError(Exception):
    def __init__(self, errors: List[str]):
        super().__init__(f"Validation failed: {', '.join(errors)}")
        self.errors = errors


# ---------------------------------------------------------
# Payload builders
# ---------------------------------------------------------
def sanitize_sku(raw_sku: str) -> str:
    sanitized = re.sub(r"[^a-zA-Z0-9_/-]", "-", raw_sku)
    sanitized = re.sub(r"-+", "-", sanitized)
    sanitized = sanitized.strip("-").strip("_")
    if not sanitized:
        sanitized = "SKU"
    return sanitized


def build_sku(listing: Listing, user: User) -> str:
    raw_sku = listing.sku if (listing.sku and listing.sku.strip()) else f"USER{user.id}-LISTING{listing.id}"
    return sanitize_sku(raw_sku.strip())


def map_condition(condition: Optional[str]) -> str:
    if not condition:
        return "USED_GOOD"
    c = condition.strip().lower()
    if c in CONDITION_MAP:
        return CONDITION_MAP[c]

    # free-text conditions
    if "part" in c or "not working" in c:
        return "FOR_PARTS_OR_NOT_WORKING"
    if "new" in c and "tag" in c and "without" not in c:
        return "NEW_WITH_TAGS"
    if "like new" in c or "excellent" in c:
        return "USED_EXCELLENT"
    if "new" in c:
        return "NEW_WITHOUT_TAGS"
    if "very good" in c:
        return "USED_VERY_GOOD"
    if "fair" in c or "acceptable" in c:
        return "USED_ACCEPTABLE"
    return "USED_GOOD"


def build_item_aspects(listing: Listing) -> Dict[str, List[str]]:
    aspects = {}
    if listing.color:
        aspects["Color"] = [listing.color]
    if listing.size:
        aspects["Size"] = [listing.size]
    if listing.material:
        aspects["Material"] = [listing.material]
    if listing.brand:
        aspects["Brand"] = [listing.brand]
    if listing.gender:
        aspects["Department"] = [listing.gender]
    if listing.pattern:
        aspects["Pattern"] = [listing.pattern]
    return aspects


def listing_image_urls(listing: Listing, base_url: Optional[str] = None) -> List[str]:
    """Public image URLs for eBay. eBay has to fetch them, so local hosts are dropped."""
    base = (settings.public_base_url or base_url or "").rstrip("/")
    image_urls = []
    for img in listing.images:
        full_url = f"{base}{settings.media_url}/{img.file_path}"
        if full_url.startswith("http") and "127.0.0.1" not in full_url and "localhost" not in full_url:
            image_urls.append(full_url)
    if not image_urls:
        return [PLACEHOLDER_IMAGE_URL]
    return image_urls[:MAX_EBAY_IMAGES]


def build_inventory_item(listing: Listing, sku: str, base_url: Optional[str] = None) -> Dict[str, Any]:
    product = {
        "title": listing.title or "Untitled Item",
        "description": listing.description or "No description provided",
        "imageUrls": listing_image_urls(listing, base_url),
    }
    aspects = build_item_aspects(listing)
    if aspects:
        product["aspects"] = aspects
    if listing.brand:
        product["brand"] = listing.brand

    return {
        "sku": sku,
        "locale": "en_US",
        "product": product,
        "condition": map_condition(listing.condition),
        "availability": {"shipToLocationAvailability": {"quantity": 1}},
    }


def uses_business_policies(profile: UserProfile) -> bool:
    return not is_individual_account(profile) and not has_placeholder_policies(profile)


def validate_listing(listing: Listing, profile: UserProfile) -> List[str]:
    errors = []
    if not listing.title or len(listing.title) < 10:
        errors.append("Title must be at least 10 characters")
    if not listing.price or listing.price <= 0:
        errors.append("Price must be greater than $0")
    if not listing.condition:
        errors.append("Condition is required")
    if not listing.images:
        errors.append("At least one photo is required to sync this listing to eBay")

    if not is_individual_account(profile):
        if not (profile.ebay_payment_policy_id and profile.ebay_return_policy_id and profile.ebay_fulfillment_policy_id):
            errors.append("eBay policies not configured. Please refresh your eBay policies.")
    else:
        if not profile.shipping_cost_domestic:
            errors.append("Shipping cost is required for individual accounts")
        if not profile.handling_time_days:
            errors.append("Handling time is required for individual accounts")
    return errors


def build_offer(listing: Listing, sku: str, profile: UserProfile, location_key: str) -> Dict[str, Any]:
    price = Decimal(str(listing.price or 0))
    offer = {
        "sku": sku,
        "marketplaceId": settings.ebay_marketplace_id,
        "format": "FIXED_PRICE",
        "availableQuantity": 1,
        "categoryId": str(listing.ebay_category_id or DEFAULT_EBAY_CATEGORY_ID),
        "listingDescription": listing.description or listing.title,
        "merchantLocationKey": location_key,
        "listingDuration": "GTC",
        "pricingSummary": {"price": {"currency": listing.currency or "USD", "value": f"{price:.2f}"}},
    }

    if uses_business_policies(profile):
        offer["listingPolicies"] = {
            "fulfillmentPolicyId": profile.ebay_fulfillment_policy_id,
            "paymentPolicyId": profile.ebay_payment_policy_id,
            "returnPolicyId": profile.ebay_return_policy_id,
        }
        return offer

    # no usable business policies: send shipping, payment and returns inline
    offer["fulfillmentDetails"] = create_fulfillment_details(profile, domestic_cost=listing.shipping_cost)
    offer["paymentMethods"] = INLINE_PAYMENT_METHODS
    offer["returnTerms"] = inline_return_terms(profile)
    return offer


def inline_return_terms(profile: UserProfile) -> Dict[str, Any]:
    return {
        "returnsAccepted": profile.accepts_returns is not False,
        "returnPeriod": {"value": profile.return_period_days or 30, "unit": "DAY"},
        "returnMethod": "MONEY_BACK",
        "returnShippingCostPayer": "SELLER" if profile.return_shipping_paid_by == "seller" else "BUYER",
        "restockingFeePercentage": "0",
    }


# ---------------------------------------------------------
# Inventory API calls
# ---------------------------------------------------------
async def put_inventory_item(db: Session, user: User, sku: str, payload: dict) -> None:
    resp = await ebay_put(db=db, user=user, path=f"/sell/inventory/v1/inventory_item/{quote(sku)}", json=payload)
    if resp.status_code not in (200, 201, 204):
        raise EbayApiError.from_response("Failed to create inventory item", resp)


async def get_existing_offers(db: Session, user: User, sku: str) -> List[dict]:
    resp = await ebay_get(db=db, user=user, path="/sell/inventory/v1/offer", params={"sku": sku})
    if resp.status_code == 404:
        return []
    if resp.status_code != 200:
        raise EbayApiError.from_response("Failed to fetch existing offers", resp)
    return resp.json().get("offers", [])


async def delete_offer(db: Session, user: User, offer_id: str) -> bool:
    resp = await ebay_delete(db=db, user=user, path=f"/sell/inventory/v1/offer/{offer_id}")
    return resp.status_code in (200, 204)


async def handle_existing_offers(db: Session, user: User, sku: str) -> Optional[Dict[str, str]]:
    """
    Reconcile offers eBay already holds for `sku`.
    Returns {"offerId", "listingId"} of a published offer, or None once stale
    unpublished offers are gone and a fresh one should be created.
    """
    offers = await get_existing_offers(db, user, sku)
    if not offers:
        return None

    for offer in offers:
        if offer.get("status") == "PUBLISHED":
            listing_id = (offer.get("listing") or {}).get("listingId")
            logger.info("sku %s already has published offer %s", sku, offer.get("offerId"))
            return {"offerId": offer.get("offerId"), "listingId": listing_id}

    for offer in offers:
        if offer.get("status") != "UNPUBLISHED":
            continue
        try:
            deleted = await delete_offer(db, user, offer["offerId"])
        except httpx.HTTPError as e:
            deleted = False
            logger.warning("deleting offer %s failed: %s", offer["offerId"], e)
        if deleted:
            logger.info("deleted unpublished offer %s for sku %s", offer["offerId"], sku)
        else:
            logger.warning("could not delete unpublished offer %s, creating a new one anyway", offer["offerId"])
    return None


async def create_offer(db: Session, user: User, offer_payload: dict) -> str:
    resp = await ebay_post(db=db, user=user, path="/sell/inventory/v1/offer", json=offer_payload)
    if resp.status_code in (200, 201):
        return resp.json().get("offerId")

    offer_id = None
    try:
        body = resp.json()
    except ValueError:
        body = {}
    for err in body.get("errors", []):
        if "offer entity already exists" in (err.get("message") or "").lower():
            if err.get("parameters"):
                offer_id = err["parameters"][0]["value"]
            break

    if not offer_id:
        raise EbayApiError.from_response("Offer creation failed", resp)

    update_resp = await ebay_put(db=db, user=user, path=f"/sell/inventory/v1/offer/{offer_id}", json=offer_payload)
    if update_resp.status_code not in (200, 204):
        raise EbayApiError.from_response("Offer update failed", update_resp)
    return offer_id


async def publish_offer(db: Session, user: User, offer_id: str) -> str:
    resp = await ebay_post(db=db, user=user, path=f"/sell/inventory/v1/offer/{offer_id}/publish")
    if resp.status_code not in (200, 201):
        raise EbayApiError.from_response("Publish failed", resp)
    return resp.json().get("listingId")


def _is_shipping_service_error(error: EbayApiError) -> bool:
    text = str(error)
    return "25007" in text or "shipping service" in text.lower()


# ---------------------------------------------------------
# Sync pipeline
# ---------------------------------------------------------
def get_owned_listing(db: Session, user: User, listing_id: int) -> Listing:
    listing = (
        db.query(Listing)
        .filter(Listing.id == listing_id, Listing.owner_id == user.id)
        .first()
    )
    if not listing:
        raise ListingNotFoundError("Listing not found")
    return listing


def _get_platform_listing(db: Session, listing_id: int) -> Optional[ListingMarketplace]:
    return (
        db.query(ListingMarketplace)
        .filter(ListingMarketplace.listing_id == listing_id, ListingMarketplace.marketplace == "ebay")
        .first()
    )


def _get_or_create_platform_listing(db: Session, listing_id: int) -> ListingMarketplace:
    lm = _get_platform_listing(db, listing_id)
    if not lm:
        lm = ListingMarketplace(listing_id=listing_id, marketplace="ebay")
        db.add(lm)
    return lm


def record_sync_failure(db: Session, user_id: int, listing_id: Optional[int], message: str, mark_failed: bool = True) -> None:
    db.rollback()
    db.add(SyncLog(
        user_id=user_id,
        listing_id=listing_id,
        marketplace="ebay",
        queue_status="error",
        error_message=message,
        result_data={"error": message, "timestamp": datetime.utcnow().isoformat()},
    ))
    if mark_failed and listing_id is not None:
        lm = _get_or_create_platform_listing(db, listing_id)
        if lm.status != "active":
            lm.status = "failed"
            lm.error_message = message
    db.commit()


async def _publish_with_fallback(
    db: Session, user: User, offer_payload: dict, offer_id: str, profile: UserProfile
) -> tuple:
    try:
        return offer_id, await publish_offer(db, user, offer_id), False
    except EbayApiError as e:
        if not _is_shipping_service_error(e):
            raise
        logger.warning("publish of offer %s hit a shipping service error, retrying with fallback: %s", offer_id, e)

    # inline fulfillment cannot be combined with a fulfillment policy
    fallback_payload = {k: v for k, v in offer_payload.items() if k != "listingPolicies"}
    fallback_payload["fulfillmentDetails"] = create_fallback_fulfillment_details(profile)
    fallback_payload.setdefault("paymentMethods", INLINE_PAYMENT_METHODS)
    fallback_payload.setdefault("returnTerms", inline_return_terms(profile))
    await delete_offer(db, user, offer_id)
    fallback_offer_id = await create_offer(db, user, fallback_payload)
    return fallback_offer_id, await publish_offer(db, user, fallback_offer_id), True


async def sync_listing_to_ebay(
    db: Session,
    user: User,
    listing_id: int,
    dry_run: bool = False,
    base_url: Optional[str] = None,
) -> SyncResult:
    listing = get_owned_listing(db, user, listing_id)
    try:
        return await _sync_listing(db, user, listing, dry_run, base_url)
    except Exception as e:
        logger.error("sync of listing %s for user %s failed: %s", listing_id, user.id, e)
        record_sync_failure(db, user.id, listing_id, str(e), mark_failed=not dry_run)
        raise


async def _sync_listing(db: Session, user: User, listing: Listing, dry_run: bool, base_url: Optional[str]) -> SyncResult:
    profile = get_profile(db, user)

    errors = validate_listing(listing, profile)
    if errors:
        raise ListingValidationError(errors)

    existing = _get_platform_listing(db, listing.id)
    if existing and existing.status == "active":
        return SyncResult(
            listing_id=listing.id,
            status="already_synced",
            message="Listing already synced to eBay",
            sku=existing.sku,
            offer_id=existing.offer_id,
            listing_id_external=existing.external_item_id,
            external_url=existing.external_url,
        )

    sku = build_sku(listing, user)

    if dry_run:
        location_key = profile.ebay_location_key or FALLBACK_LOCATION_KEY
        return SyncResult(
            listing_id=listing.id,
            status="dry_run_success",
            message="Listing is ready to sync",
            sku=sku,
            payload={
                "inventory_item": build_inventory_item(listing, sku, base_url),
                "offer": build_offer(listing, sku, profile, location_key),
            },
        )

    if listing.sku != sku:
        listing.sku = sku
        db.commit()

    location_key = await ensure_default_location(db, user, profile)
    await put_inventory_item(db, user, sku, build_inventory_item(listing, sku, base_url))
    logger.info("inventory item %s saved", sku)

    used_fallback = False
    published = await handle_existing_offers(db, user, sku)
    if published:
        offer_id, ebay_listing_id = published["offerId"], published["listingId"]
    else:
        offer_payload = build_offer(listing, sku, profile, location_key)
        if "fulfillmentDetails" in offer_payload:
            ok, fulfillment_errors = validate_fulfillment_details(offer_payload["fulfillmentDetails"])
            if not ok:
                raise ListingValidationError(fulfillment_errors)
        offer_id = await create_offer(db, user, offer_payload)
        offer_id, ebay_listing_id, used_fallback = await _publish_with_fallback(
            db, user, offer_payload, offer_id, profile
        )

    lm = _get_or_create_platform_listing(db, listing.id)
    lm.status = "active"
    lm.external_item_id = ebay_listing_id
    lm.external_url = f"{ebay_web_base()}/{ebay_listing_id}" if ebay_listing_id else None
    lm.offer_id = offer_id
    lm.sku = sku
    lm.error_message = None
    lm.last_synced_at = datetime.utcnow()
    db.commit()

    logger.info("listing %s published to eBay as %s", listing.id, ebay_listing_id)
    return SyncResult(
        listing_id=listing.id,
        status="published",
        message="Listing published to eBay",
        sku=sku,
        offer_id=offer_id,
        listing_id_external=ebay_listing_id,
        external_url=lm.external_url,
        used_fallback_shipping=used_fallback,
    )


async def bulk_sync_listings(user_id: int, listing_ids: List[int], job_id: str, base_url: Optional[str] = None):
    """Background job: sync listings one by one, reporting through progress_tracker."""
    db = SessionLocal()
    succeeded, failed = [], []
    try:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            progress_tracker.set_status(job_id, "failed", "User not found", level="error")
            return

        total = len(listing_ids)
        progress_tracker.set_status(job_id, "running", f"Syncing {total} listing(s) to eBay...")
        for index, listing_id in enumerate(listing_ids, start=1):
            progress_tracker.add_message(job_id, f"[{index}/{total}] Syncing listing {listing_id}...")
            try:
                result = await sync_listing_to_ebay(db, user, listing_id, base_url=base_url)
            except Exception as e:
                failed.append({"listing_id": listing_id, "error": str(e)})
                progress_tracker.add_message(job_id, f"[{index}/{total}] Listing {listing_id} failed: {e}", "error")
                continue
            succeeded.append(result.model_dump())
            progress_tracker.add_message(job_id, f"[{index}/{total}] Listing {listing_id}: {result.message}", "success")

        summary = {"total": total, "succeeded": len(succeeded), "failed": len(failed), "results": succeeded, "errors": failed}
        level = "success" if not failed else "warning"
        progress_tracker.set_status(
            job_id,
            "completed",
            f"Bulk sync finished: {len(succeeded)} succeeded, {len(failed)} failed",
            level=level,
            result=summary,
        )
    finally:
        db.close()


async def end_ebay_listing(db: Session, user: User, listing_id: int) -> EndListingResult:
    listing = get_owned_listing(db, user, listing_id)
    lm = _get_platform_listing(db, listing.id)
    if not lm or not lm.offer_id:
        raise ListingNotFoundError("Listing is not published on eBay")

    resp = await ebay_post(db=db, user=user, path=f"/sell/inventory/v1/offer/{lm.offer_id}/withdraw")
    if resp.status_code not in (200, 204):
        raise EbayApiError.from_response("Failed to end eBay listing", resp)

    lm.status = "ended"
    lm.last_synced_at = datetime.utcnow()
    db.commit()
    logger.info("ended eBay listing %s (offer %s)", lm.external_item_id, lm.offer_id)
    return EndListingResult(listing_id=listing.id, status="ended", message="eBay listing ended")


async def list_ebay_inventory(db: Session, user: User, limit: int = 100, offset: int = 0) -> dict:
    resp = await ebay_get(
        db=db,
        user=user,
        path="/sell/inventory/v1/inventory_item",
        params={"limit": str(limit), "offset": str(offset)},
    )
    if resp.status_code != 200:
        raise EbayApiError.from_response("Failed to fetch eBay inventory", resp)
    return resp.json()


async def import_ebay_inventory(db: Session, user: User) -> ImportResult:
    """Link eBay inventory items to local listings with the same SKU."""
    items = []
    offset = 0
    while True:
        page = await list_ebay_inventory(db, user, limit=IMPORT_PAGE_SIZE, offset=offset)
        page_items = page.get("inventoryItems", [])
        items.extend(page_items)
        offset += len(page_items)
        if not page_items or offset >= int(page.get("total", 0)):
            break

    linked_ids = []
    for item in items:
        sku = item.get("sku")
        if not sku:
            continue
        listing = db.query(Listing).filter(Listing.owner_id == user.id, Listing.sku == sku).first()
        if not listing:
            continue
        lm = _get_or_create_platform_listing(db, listing.id)
        if lm.status != "active":
            lm.status = "offer_created"
        lm.sku = sku
        lm.last_synced_at = datetime.utcnow()
        linked_ids.append(listing.id)
    db.commit()

    logger.info("imported eBay inventory for user %s: %d items, %d linked", user.id, len(items), len(linked_ids))
    return ImportResult(
        total_items=len(items),
        linked=len(linked_ids),
        skipped=len(items) - len(linked_ids),
        linked_listing_ids=linked_ids,
    )
