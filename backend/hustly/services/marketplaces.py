# hustly/services/marketplaces.py
from typing import List

from sqlalchemy.orm import Session

from hustly.core.constants import MARKETPLACES
from hustly.models.marketplace_account import MarketplaceAccount
from hustly.models.user import User
from hustly.schemas.ebay import MarketplaceStatus


class MarketplaceNotSupportedError(Exception):
    pass


def get_marketplace(name: str) -> dict:
    try:
        return MARKETPLACES[name]
    except KeyError:
        raise MarketplaceNotSupportedError(f"Unknown marketplace: {name}") from None


def publish_to_stub_marketplace(name: str, listing_id: int) -> None:
    """Marketplaces without a publishing API. Always raises."""
    info = get_marketplace(name)
    if info["supports_api_publish"]:
        raise MarketplaceNotSupportedError(f"{info['display_name']} publishes through its own endpoints")
    raise MarketplaceNotSupportedError(
        f"Publishing to {info['display_name']} is not supported yet (listing {listing_id})"
    )


def marketplace_statuses(db: Session, user: User) -> List[MarketplaceStatus]:
    accounts = {
        a.marketplace: a
        for a in db.query(MarketplaceAccount).filter(MarketplaceAccount.user_id == user.id).all()
    }
    statuses = []
    for name, info in MARKETPLACES.items():
        account = accounts.get(name)
        statuses.append(MarketplaceStatus(
            marketplace=name,
            display_name=info["display_name"],
            supports_api_publish=info["supports_api_publish"],
            connected=bool(account and account.is_connected and account.access_token),
            username=account.username if account else None,
        ))
    return statuses
