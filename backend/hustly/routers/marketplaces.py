# hustly/routers/marketplaces.py
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import List, Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from hustly.core.config import get_settings
from hustly.core.constants import EBAY_SCOPES
from hustly.core.database import get_db
from hustly.core.progress_tracker import progress_tracker
from hustly.core.security import get_current_user
from hustly.models.marketplace_account import MarketplaceAccount
from hustly.models.oauth_state import OAuthState
from hustly.models.user import User
from hustly.schemas.ebay import (
    BulkSyncRequest,
    BulkSyncStarted,
    ConnectionStatus,
    ConnectResponse,
    EndListingResult,
    ImportResult,
    IndividualAccountValidation,
    JobProgress,
    LocationRequest,
    LocationResult,
    MarketplaceStatus,
    PolicyErrorResponse,
    PolicyResult,
    SyncRequest,
    SyncResult,
    TokenRefreshReport,
    TokenRefreshRequest,
)
from hustly.services import ebay_inventory
from hustly.services.ebay_client import (
    EbayApiError,
    EbayAuthError,
    apply_token_response,
    ebay_auth_base,
    exchange_code_for_token,
)
from hustly.services.ebay_inventory import ListingNotFoundError, ListingValidationError
from hustly.services.ebay_location import run_location_action
from hustly.services.ebay_policies import (
    PolicyError,
    describe_policy_error,
    ensure_business_policies,
    get_profile,
    validate_individual_account,
)
from hustly.services.ebay_tokens import connection_status, refresh_ebay_tokens
from hustly.services.marketplaces import (
    MarketplaceNotSupportedError,
    get_marketplace,
    marketplace_statuses,
    publish_to_stub_marketplace,
)

router = APIRouter(
    prefix="/marketplaces",
    tags=["marketplaces"],
)

settings = get_settings()
logger = logging.getLogger("hustly.marketplaces")

OAUTH_STATE_TTL_MINUTES = 15

EBAY_ERRORS = (
    EbayAuthError,
    EbayApiError,
    PolicyError,
    ListingNotFoundError,
    ListingValidationError,
    httpx.HTTPError,
)


def _to_http_error(e: Exception) -> HTTPException:
    if isinstance(e, ListingNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ListingValidationError):
        return HTTPException(status_code=400, detail={"message": "Validation failed", "errors": e.errors})
    if isinstance(e, EbayAuthError):
        code = 401 if "expired" in str(e).lower() else 400
        return HTTPException(status_code=code, detail=str(e))
    if isinstance(e, PolicyError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, EbayApiError):
        return HTTPException(
            status_code=502,
            detail={"message": str(e), "ebay_status": e.status_code, "ebay_resp": e.body},
        )
    return HTTPException(status_code=502, detail=f"eBay request failed: {e}")


def _get_ebay_account(db: Session, user: User) -> Optional[MarketplaceAccount]:
    return (
        db.query(MarketplaceAccount)
        .filter(MarketplaceAccount.user_id == user.id, MarketplaceAccount.marketplace == "ebay")
        .first()
    )


# --------------------------------------
# All marketplaces
# --------------------------------------
@router.get("/status", response_model=List[MarketplaceStatus])
def all_marketplace_status(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return marketplace_statuses(db, current_user)


# --------------------------------------
# eBay connection
# --------------------------------------
@router.get("/ebay/connect", response_model=ConnectResponse)
def ebay_connect(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    if not settings.ebay_client_id or not settings.ebay_redirect_uri:
        raise HTTPException(status_code=400, detail="eBay credentials not configured")

    state = OAuthState(
        token=secrets.token_urlsafe(32),
        user_id=current_user.id,
        marketplace="ebay",
        expires_at=datetime.utcnow() + timedelta(minutes=OAUTH_STATE_TTL_MINUTES),
    )
    db.add(state)
    db.commit()

    params = {
        "client_id": settings.ebay_client_id,
        "redirect_uri": settings.ebay_redirect_uri,
        "response_type": "code",
        "scope": " ".join(EBAY_SCOPES),
        "state": state.token,
    }
    return ConnectResponse(auth_url=f"{ebay_auth_base()}?{urlencode(params)}")


@router.get("/ebay/oauth/callback")
async def ebay_oauth_callback(request: Request, db: Session = Depends(get_db)):
    code = request.query_params.get("code")
    state_token = request.query_params.get("state")
    if not code or not state_token:
        raise HTTPException(status_code=400, detail="Missing code/state")

    state = (
        db.query(OAuthState)
        .filter(
            OAuthState.token == state_token,
            OAuthState.marketplace == "ebay",
            OAuthState.expires_at > datetime.utcnow(),
        )
        .first()
    )
    if not state:
        raise HTTPException(status_code=400, detail="Invalid or expired state")

    user_id = state.user_id
    # single use
    db.delete(state)
    db.commit()

    try:
        token = await exchange_code_for_token(code)
    except EbayAuthError as e:
        logger.warning("eBay code exchange failed for user %s: %s", user_id, e)
        raise HTTPException(status_code=400, detail=str(e))

    account = db.query(MarketplaceAccount).filter(
        MarketplaceAccount.user_id == user_id, MarketplaceAccount.marketplace == "ebay"
    ).first()
    if not account:
        account = MarketplaceAccount(user_id=user_id, marketplace="ebay")
        db.add(account)
    apply_token_response(account, token)
    account.is_active = True
    db.commit()

    logger.info("eBay connected for user %s", user_id)
    return HTMLResponse(content="<html><body><p>eBay Connected! Close this window.</p><script>window.close();</script></body></html>")


@router.get("/ebay/status", response_model=ConnectionStatus)
def ebay_status(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return connection_status(_get_ebay_account(db, current_user))


@router.delete("/ebay/disconnect")
def ebay_disconnect(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    account = _get_ebay_account(db, current_user)
    if account:
        db.delete(account)
        db.commit()
    return {"message": "Disconnected"}


@router.post("/ebay/tokens/refresh", response_model=TokenRefreshReport)
async def ebay_refresh_tokens(
    body: Optional[TokenRefreshRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    body = body or TokenRefreshRequest()
    report = await refresh_ebay_tokens(
        db, current_user, force_refresh=body.force_refresh, account_id=body.account_id
    )
    if report.status == "no_accounts":
        raise HTTPException(status_code=404, detail=report.message)
    return report


# --------------------------------------
# eBay business policies / locations
# --------------------------------------
@router.post("/ebay/policies", response_model=PolicyResult)
async def ebay_ensure_policies(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        return await ensure_business_policies(db, current_user)
    except (EbayAuthError, EbayApiError, PolicyError, httpx.HTTPError) as e:
        message = str(e)
        friendly, status_code, needs_reconnection = describe_policy_error(message)
        logger.warning("eBay policy setup failed for user %s: %s", current_user.id, message)
        raise HTTPException(
            status_code=status_code,
            detail=PolicyErrorResponse(
                error=friendly,
                details=message,
                needs_reconnection=needs_reconnection,
            ).model_dump(),
        )


@router.get("/ebay/policies/individual-validation", response_model=IndividualAccountValidation)
def ebay_validate_individual_account(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        profile = get_profile(db, current_user)
    except PolicyError as e:
        raise _to_http_error(e)
    return validate_individual_account(profile)


@router.post("/ebay/locations", response_model=LocationResult)
async def ebay_locations(
    body: Optional[LocationRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    body = body or LocationRequest()
    try:
        profile = get_profile(db, current_user)
        return await run_location_action(db, current_user, profile, body.action)
    except EBAY_ERRORS as e:
        raise _to_http_error(e)


# --------------------------------------
# eBay listings
# --------------------------------------
@router.post("/ebay/listings/bulk-sync", response_model=BulkSyncStarted, status_code=status.HTTP_202_ACCEPTED)
def ebay_bulk_sync(
    body: BulkSyncRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
):
    job_id = str(uuid.uuid4())
    listing_ids = list(dict.fromkeys(body.listing_ids))
    progress_tracker.start(job_id, current_user.id, f"Queued {len(listing_ids)} listing(s) for eBay sync")
    background_tasks.add_task(
        ebay_inventory.bulk_sync_listings,
        current_user.id,
        listing_ids,
        job_id,
        str(request.base_url),
    )
    return BulkSyncStarted(job_id=job_id, total=len(listing_ids))


@router.get("/ebay/jobs/{job_id}", response_model=JobProgress)
def ebay_job_progress(job_id: str, current_user: User = Depends(get_current_user)):
    status_info = progress_tracker.get_status(job_id)
    if not status_info or progress_tracker.owner_of(job_id) != current_user.id:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobProgress(
        job_id=job_id,
        status=status_info["status"],
        latest_message=status_info["latest_message"],
        level=status_info["level"],
        result=status_info["result"],
        messages=progress_tracker.get_progress(job_id),
    )


@router.post("/ebay/listings/{listing_id}/sync", response_model=SyncResult)
async def ebay_sync_listing(
    listing_id: int,
    request: Request,
    body: Optional[SyncRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    body = body or SyncRequest()
    try:
        return await ebay_inventory.sync_listing_to_ebay(
            db, current_user, listing_id, dry_run=body.dry_run, base_url=str(request.base_url)
        )
    except EBAY_ERRORS as e:
        raise _to_http_error(e)


@router.post("/ebay/listings/{listing_id}/end", response_model=EndListingResult)
async def ebay_end_listing(listing_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        return await ebay_inventory.end_ebay_listing(db, current_user, listing_id)
    except EBAY_ERRORS as e:
        raise _to_http_error(e)


@router.get("/ebay/inventory")
async def ebay_inventory_items(
    limit: int = 100,
    offset: int = 0,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await ebay_inventory.list_ebay_inventory(db, current_user, limit=limit, offset=offset)
    except EBAY_ERRORS as e:
        raise _to_http_error(e)


@router.post("/ebay/inventory/import", response_model=ImportResult)
async def ebay_import_inventory(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        return await ebay_inventory.import_ebay_inventory(db, current_user)
    except EBAY_ERRORS as e:
        raise _to_http_error(e)


# --------------------------------------
# Other marketplaces
# --------------------------------------
@router.post("/{platform}/{listing_id}/publish")
async def publish_to_marketplace(
    platform: str,
    listing_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        get_marketplace(platform)
    except MarketplaceNotSupportedError as e:
        raise HTTPException(status_code=404, detail=str(e))

    try:
        ebay_inventory.get_owned_listing(db, current_user, listing_id)
    except ListingNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if platform == "ebay":
        try:
            return await ebay_inventory.sync_listing_to_ebay(
                db, current_user, listing_id, base_url=str(request.base_url)
            )
        except EBAY_ERRORS as e:
            raise _to_http_error(e)

    try:
        publish_to_stub_marketplace(platform, listing_id)
    except MarketplaceNotSupportedError as e:
        raise HTTPException(status_code=status.HTTP_501_NOT_IMPLEMENTED, detail=str(e))
