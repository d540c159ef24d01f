# hustly/services/ebay_client.py
import asyncio
import base64
import logging
from datetime import datetime, timedelta
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from hustly.core.config import get_settings
from hustly.core.constants import EBAY_LOCALE, EBAY_REFRESH_SCOPES, RETRYABLE_STATUS_CODES
from hustly.models.marketplace_account import MarketplaceAccount
from hustly.models.user import User
from hustly.schemas.ebay import TokenResponse

settings = get_settings()
logger = logging.getLogger("hustly.ebay.client")


class EbayAuthError(Exception):
    pass


class EbayApiError(Exception):
    """Non-success answer from an eBay REST endpoint."""

    def __init__(self, message: str, status_code: int, body=None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @classmethod
    def from_response(cls, message: str, resp: httpx.Response) -> "EbayApiError":
        try:
            body = resp.json()
        except ValueError:
            body = resp.text
        return cls(f"{message}: {resp.status_code} {resp.text}", resp.status_code, body)


def ebay_api_base() -> str:
    return (
        "https://api.sandbox.ebay.com"
        if settings.ebay_environment == "sandbox"
        else "https://api.ebay.com"
    )


def ebay_auth_base() -> str:
    return (
        "https://auth.sandbox.ebay.com/oauth2/authorize"
        if settings.ebay_environment == "sandbox"
        else "https://auth.ebay.com/oauth2/authorize"
    )


def ebay_web_base() -> str:
    return (
        "https://sandbox.ebay.com/itm"
        if settings.ebay_environment == "sandbox"
        else "https://www.ebay.com/itm"
    )


def mask_token(token: Optional[str]) -> str:
    if not token:
        return "<none>"
    return f"{token[:8]}..."


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.ebay_timeout_seconds)


# ---------------------------------------------------------
# OAuth token helpers
# ---------------------------------------------------------
def token_needs_refresh(
    expires_at: Optional[datetime],
    now: Optional[datetime] = None,
    buffer_minutes: Optional[int] = None,
) -> bool:
    if expires_at is None:
        return True
    if buffer_minutes is None:
        buffer_minutes = settings.ebay_token_refresh_buffer_minutes
    now = now or datetime.utcnow()
    return expires_at - now <= timedelta(minutes=buffer_minutes)


def requires_reauth(message: str) -> bool:
    text = (message or "").lower()
    return "invalid_grant" in text or "refresh_token" in text


def _basic_auth_header() -> dict:
    if not settings.ebay_client_id or not settings.ebay_client_secret:
        raise EbayAuthError("eBay credentials not configured")
    raw = f"{settings.ebay_client_id}:{settings.ebay_client_secret}"
    basic = base64.b64encode(raw.encode("utf-8")).decode("utf-8")
    return {
        "Content-Type": "application/x-www-form-urlencoded",
        "Authorization": f"Basic {basic}",
    }


async def _request_token(data: dict) -> TokenResponse:
    headers = _basic_auth_header()
    token_url = ebay_api_base() + "/identity/v1/oauth2/token"

    async with _http_client() as client:
        resp = await client.post(token_url, data=data, headers=headers)

    if resp.status_code != 200:
        raise EbayAuthError(f"eBay token request failed: {resp.status_code} {resp.text}")

    token_json = resp.json()
    if not token_json.get("access_token"):
        raise EbayAuthError("No access_token in eBay token response")
    return TokenResponse(**token_json)


async def refresh_access_token(refresh_token: str) -> TokenResponse:
    return await _request_token({
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "scope": " ".join(EBAY_REFRESH_SCOPES),
    })


async def exchange_code_for_token(code: str) -> TokenResponse:
    return await _request_token({
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": settings.ebay_redirect_uri,
    })


def apply_token_response(account: MarketplaceAccount, token: TokenResponse) -> None:
    now = datetime.utcnow()
    account.access_token = token.access_token
    account.token_expires_at = now + timedelta(seconds=int(token.expires_in))
    if token.refresh_token:
        account.refresh_token = token.refresh_token
    account.last_sync_at = now
    account.is_connected = True


def mark_requires_reauth(account: MarketplaceAccount) -> None:
    account.is_connected = False
    account.token_expires_at = None


def get_active_ebay_account(db: Session, user: User) -> MarketplaceAccount:
    account = (
        db.query(MarketplaceAccount)
        .filter(
            MarketplaceAccount.user_id == user.id,
            MarketplaceAccount.marketplace == "ebay",
            MarketplaceAccount.is_active.is_(True),
        )
        .first()
    )
    if not account:
        raise EbayAuthError("No active eBay account found. Please connect your eBay account first.")
    return account


async def get_valid_ebay_access_token(db: Session, user: User) -> str:
    """
    Return an access token that stays valid for at least the refresh buffer.

    Refreshes with the stored refresh token (and persists the result) when the
    current token is missing or about to expire.
    """
    account = get_active_ebay_account(db, user)

    if account.access_token and not token_needs_refresh(account.token_expires_at):
        return account.access_token

    if not account.refresh_token:
        raise EbayAuthError("eBay token expired and no refresh token is stored. Please reconnect your eBay account.")

    logger.info("refreshing eBay token for user %s (account %s)", user.id, account.id)
    try:
        token = await refresh_access_token(account.refresh_token)
    except EbayAuthError as e:
        if requires_reauth(str(e)):
            mark_requires_reauth(account)
            db.commit()
            logger.warning("eBay refresh token rejected for account %s, re-authentication required", account.id)
        raise

    apply_token_response(account, token)
    db.commit()
    db.refresh(account)
    logger.info("eBay token refreshed for account %s: %s", account.id, mask_token(account.access_token))
    return account.access_token


# ---------------------------------------------------------
# REST wrapper with retry/backoff
# ---------------------------------------------------------
def _retry_delay(resp: Optional[httpx.Response], attempt: int) -> float:
    if resp is not None:
        retry_after = resp.headers.get("Retry-After")
        if retry_after and retry_after.strip().isdigit():
            return min(float(retry_after), settings.ebay_retry_max_delay_seconds)
    return min(
        settings.ebay_retry_backoff_seconds * (2 ** attempt),
        settings.ebay_retry_max_delay_seconds,
    )


async def ebay_request(
    db: Session,
    user: User,
    method: str,
    path: str,
    params: dict | None = None,
    json: dict | list | None = None,
    headers: dict | None = None,
) -> httpx.Response:
    """
    Call an eBay REST endpoint on behalf of `user`.
    - path example: "/sell/account/v1/fulfillment_policy"
    - 429/5xx answers and transport errors are retried with exponential backoff
    - the last response is returned as-is; callers inspect status_code
    """
    access_token = await get_valid_ebay_access_token(db, user)

    request_headers = {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/json",
        "Content-Type": "application/json",
        "Content-Language": EBAY_LOCALE,
        "Accept-Language": EBAY_LOCALE,
    }
    if headers:
        request_headers.update(headers)

    url = ebay_api_base() + path
    max_retries = settings.ebay_max_retries

    async with _http_client() as client:
        for attempt in range(max_retries + 1):
            try:
                resp = await client.request(
                    method, url, headers=request_headers, params=params, json=json
                )
            except httpx.TransportError as e:
                if attempt >= max_retries:
                    logger.error("%s %s failed after %d attempts: %s", method, path, attempt + 1, e)
                    raise
                delay = _retry_delay(None, attempt)
                logger.warning("%s %s transport error (%s), retrying in %.1fs", method, path, e, delay)
                await asyncio.sleep(delay)
                continue

            if resp.status_code not in RETRYABLE_STATUS_CODES or attempt >= max_retries:
                if resp.status_code >= 400:
                    logger.debug("%s %s -> %s %s", method, path, resp.status_code, resp.text[:500])
                return resp

            delay = _retry_delay(resp, attempt)
            logger.warning(
                "%s %s -> %s, retry %d/%d in %.1fs",
                method, path, resp.status_code, attempt + 1, max_retries, delay,
            )
            await asyncio.sleep(delay)


async def ebay_get(db: Session, user: User, path: str, params: dict | None = None):
    return await ebay_request(db, user, "GET", path, params=params)


async def ebay_post(db: Session, user: User, path: str, json: dict | None = None, params: dict | None = None):
    return await ebay_request(db, user, "POST", path, params=params, json=json)


async def ebay_put(db: Session, user: User, path: str, json: dict | None = None):
    return await ebay_request(db, user, "PUT", path, json=json)


async def ebay_delete(db: Session, user: User, path: str):
    return await ebay_request(db, user, "DELETE", path)
