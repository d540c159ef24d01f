"""
eBay token refresh manager.

Walks the user's active eBay accounts, refreshes the ones whose access token
is inside the refresh buffer (or all of them when forced) and writes the new
tokens back to the account rows.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from hustly.core.constants import TOKEN_EXPIRY_WARNING_DAYS
from hustly.models.marketplace_account import MarketplaceAccount
from hustly.models.user import User
from hustly.schemas.ebay import (
    ConnectionStatus,
    TokenRefreshReport,
    TokenRefreshResult,
    TokenRefreshSummary,
)
from hustly.services.ebay_client import (
    EbayAuthError,
    apply_token_response,
    mark_requires_reauth,
    refresh_access_token,
    requires_reauth,
    token_needs_refresh,
)

logger = logging.getLogger("hustly.ebay.tokens")


async def _refresh_account(db: Session, account: MarketplaceAccount, force_refresh: bool) -> TokenRefreshResult:
    if not account.refresh_token:
        return TokenRefreshResult(
            account_id=account.id,
            username=account.username,
            status="no_refresh_token",
            message="No refresh token available - re-authentication required",
            requires_reauth=True,
        )

    if not force_refresh and not token_needs_refresh(account.token_expires_at):
        return TokenRefreshResult(
            account_id=account.id,
            username=account.username,
            status="not_needed",
            message="Token is still valid",
            expires_at=account.token_expires_at,
        )

    try:
        token = await refresh_access_token(account.refresh_token)
    except (EbayAuthError, httpx.HTTPError, ValueError) as e:
        reauth = requires_reauth(str(e))
        if reauth:
            mark_requires_reauth(account)
            db.commit()
        logger.warning("token refresh failed for account %s: %s", account.id, e)
        return TokenRefreshResult(
            account_id=account.id,
            username=account.username,
            status="failed",
            message=str(e),
            requires_reauth=reauth,
        )

    apply_token_response(account, token)
    db.commit()
    db.refresh(account)
    logger.info("token refreshed for account %s, expires at %s", account.id, account.token_expires_at)
    return TokenRefreshResult(
        account_id=account.id,
        username=account.username,
        status="success",
        message="Token refreshed successfully",
        expires_at=account.token_expires_at,
    )


async def refresh_ebay_tokens(
    db: Session,
    user: User,
    force_refresh: bool = False,
    account_id: Optional[int] = None,
) -> TokenRefreshReport:
    query = db.query(MarketplaceAccount).filter(
        MarketplaceAccount.user_id == user.id,
        MarketplaceAccount.marketplace == "ebay",
        MarketplaceAccount.is_active.is_(True),
    )
    if account_id is not None:
        query = query.filter(MarketplaceAccount.id == account_id)
    accounts = query.all()

    if not accounts:
        return TokenRefreshReport(status="no_accounts", message="No active eBay accounts found")

    results = []
    for account in accounts:
        results.append(await _refresh_account(db, account, force_refresh))

    summary = TokenRefreshSummary(
        total=len(results),
        success=sum(1 for r in results if r.status == "success"),
        failed=sum(1 for r in results if r.status == "failed"),
        not_needed=sum(1 for r in results if r.status == "not_needed"),
    )
    logger.info("token refresh for user %s: %s", user.id, summary.model_dump())
    return TokenRefreshReport(
        status="completed",
        message=f"Processed {summary.total} eBay account(s)",
        results=results,
        summary=summary,
    )


def connection_status(account: Optional[MarketplaceAccount], now: Optional[datetime] = None) -> ConnectionStatus:
    if account is None or not account.access_token:
        return ConnectionStatus(connected=False)

    now = now or datetime.utcnow()
    expires_at = account.token_expires_at
    seconds_left = int((expires_at - now).total_seconds()) if expires_at else None
    token_valid = seconds_left is not None and seconds_left > 0

    return ConnectionStatus(
        connected=bool(account.is_connected),
        username=account.username,
        token_valid=token_valid,
        expires_at=expires_at,
        seconds_until_expiry=seconds_left,
        expiring_soon=token_valid and expires_at - now <= timedelta(days=TOKEN_EXPIRY_WARNING_DAYS),
        needs_refresh=token_needs_refresh(expires_at, now=now),
        account_type=account.ebay_account_type,
    )
