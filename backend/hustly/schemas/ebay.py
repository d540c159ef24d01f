"""
Typed request/response models for the eBay integration layer.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# --- OAuth ---

class TokenResponse(BaseModel):
    """Body of /identity/v1/oauth2/token"""

    access_token: str
    expires_in: int = 7200
    refresh_token: Optional[str] = None
    refresh_token_expires_in: Optional[int] = None
    token_type: str = "User Access Token"


class ConnectResponse(BaseModel):
    auth_url: str


class ConnectionStatus(BaseModel):
    marketplace: str = "ebay"
    connected: bool
    username: Optional[str] = None
    token_valid: bool = False
    expires_at: Optional[datetime] = None
    seconds_until_expiry: Optional[int] = None
    expiring_soon: bool = False
    needs_refresh: bool = False
    account_type: Optional[str] = None


class TokenRefreshRequest(BaseModel):
    force_refresh: bool = False
    account_id: Optional[int] = None


class TokenRefreshResult(BaseModel):
    account_id: int
    username: Optional[str] = None
    status: Literal["no_refresh_token", "not_needed", "success", "failed"]
    message: str
    expires_at: Optional[datetime] = None
    requires_reauth: bool = False


class TokenRefreshSummary(BaseModel):
    total: int = 0
    success: int = 0
    failed: int = 0
    not_needed: int = 0


class TokenRefreshReport(BaseModel):
    status: Literal["no_accounts", "completed"]
    message: str
    results: List[TokenRefreshResult] = []
    summary: TokenRefreshSummary = Field(default_factory=TokenRefreshSummary)


# --- Business policies ---

class PolicyIds(BaseModel):
    payment_policy_id: Optional[str] = None
    return_policy_id: Optional[str] = None
    fulfillment_policy_id: Optional[str] = None


class PolicyResult(BaseModel):
    status: Literal["created", "exists", "individual", "ebay_default"]
    message: str
    policies: PolicyIds
    is_personal_account: bool = False
    account_type: str = "business"


class PolicyErrorResponse(BaseModel):
    error: str
    details: str
    needs_reconnection: bool = False


class IndividualAccountValidation(BaseModel):
    is_individual: bool
    configured: bool
    account_type: str
    recommendations: List[str] = []


# --- Inventory locations ---

class LocationRequest(BaseModel):
    action: Literal["list", "create", "ensure_default"] = "ensure_default"


class LocationResult(BaseModel):
    action: str
    success: bool = True
    location_key: Optional[str] = None
    created: bool = False
    locations: List[Dict[str, Any]] = []
    message: Optional[str] = None


# --- Listing sync ---

class SyncRequest(BaseModel):
    dry_run: bool = False


class SyncResult(BaseModel):
    listing_id: int
    status: Literal["published", "already_synced", "dry_run_success"]
    message: str
    sku: Optional[str] = None
    offer_id: Optional[str] = None
    listing_id_external: Optional[str] = None
    external_url: Optional[str] = None
    used_fallback_shipping: bool = False
    payload: Optional[Dict[str, Any]] = None  # dry run preview


class BulkSyncRequest(BaseModel):
    listing_ids: List[int] = Field(min_length=1)


class BulkSyncStarted(BaseModel):
    job_id: str
    status: str = "pending"
    total: int


class JobProgress(BaseModel):
    job_id: str
    status: str
    latest_message: Optional[str] = None
    level: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    messages: List[Dict[str, Any]] = []


class EndListingResult(BaseModel):
    listing_id: int
    status: str
    message: str


class ImportResult(BaseModel):
    total_items: int
    linked: int
    skipped: int
    linked_listing_ids: List[int] = []


class MarketplaceStatus(BaseModel):
    marketplace: str
    display_name: str
    supports_api_publish: bool
    connected: bool
    username: Optional[str] = None
