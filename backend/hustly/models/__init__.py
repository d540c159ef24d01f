from hustly.models.user import User
from hustly.models.user_profile import UserProfile
from hustly.models.marketplace_account import MarketplaceAccount
from hustly.models.listing import Listing
from hustly.models.listing_image import ListingImage
from hustly.models.listing_marketplace import ListingMarketplace
from hustly.models.oauth_state import OAuthState
from hustly.models.sync_log import SyncLog

__all__ = [
    "User",
    "UserProfile",
    "MarketplaceAccount",
    "Listing",
    "ListingImage",
    "ListingMarketplace",
    "OAuthState",
    "SyncLog",
]
