"""
Application-wide constants
"""

# eBay OAuth scopes required for API access
EBAY_SCOPES = [
    "https://api.ebay.com/oauth/api_scope",
    "https://api.ebay.com/oauth/api_scope/sell.account.readonly",
    "https://api.ebay.com/oauth/api_scope/sell.account",
    "https://api.ebay.com/oauth/api_scope/sell.inventory",
    "https://api.ebay.com/oauth/api_scope/sell.fulfillment",
]

# Scopes requested when refreshing (must be a subset of the consented ones)
EBAY_REFRESH_SCOPES = [
    "https://api.ebay.com/oauth/api_scope/sell.inventory",
    "https://api.ebay.com/oauth/api_scope/sell.account",
]

EBAY_LOCALE = "en-US"

# Status codes worth another attempt against the eBay REST APIs
RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)

# --- Business policies ---
INDIVIDUAL_DEFAULT_POLICIES = {
    "payment": "INDIVIDUAL_DEFAULT_PAYMENT",
    "return": "INDIVIDUAL_DEFAULT_RETURN",
    "fulfillment": "INDIVIDUAL_DEFAULT_FULFILLMENT",
}

EBAY_DEFAULT_POLICIES = {
    "payment": "EBAY_DEFAULT_PAYMENT",
    "return": "EBAY_DEFAULT_RETURN",
    "fulfillment": "EBAY_DEFAULT_FULFILLMENT",
}

PLACEHOLDER_POLICY_IDS = frozenset([
    "DEFAULT_PAYMENT_POLICY", "DEFAULT_RETURN_POLICY", "DEFAULT_FULFILLMENT_POLICY",
    "INDIVIDUAL_PAYMENT_POLICY", "INDIVIDUAL_RETURN_POLICY", "INDIVIDUAL_FULFILLMENT_POLICY",
    "INDIVIDUAL_DEFAULT_PAYMENT", "INDIVIDUAL_DEFAULT_RETURN", "INDIVIDUAL_DEFAULT_FULFILLMENT",
    "MANUAL_ENTRY_REQUIRED_PAYMENT", "MANUAL_ENTRY_REQUIRED_RETURN", "MANUAL_ENTRY_REQUIRED_FULFILLMENT",
    "EBAY_DEFAULT_PAYMENT", "EBAY_DEFAULT_RETURN", "EBAY_DEFAULT_FULFILLMENT",
])

# IDs that only ever mean "this seller has no real business policies"
FAKE_INDIVIDUAL_POLICY_IDS = frozenset([
    "INDIVIDUAL_DEFAULT_PAYMENT",
    "INDIVIDUAL_DEFAULT_RETURN",
    "INDIVIDUAL_DEFAULT_FULFILLMENT",
    "DEFAULT_PAYMENT_POLICY",
    "DEFAULT_RETURN_POLICY",
    "DEFAULT_FULFILLMENT_POLICY",
])

# Real eBay policy IDs are long numeric strings
MIN_REAL_POLICY_ID_LENGTH = 15

# --- Listings ---
DEFAULT_EBAY_CATEGORY_ID = "11450"
MAX_EBAY_IMAGES = 12
PLACEHOLDER_IMAGE_URL = "https://via.placeholder.com/400x400/CCCCCC/666666?text=No+Image"
FALLBACK_LOCATION_KEY = "main_warehouse"

# Seller is warned once the user token gets this close to expiry
TOKEN_EXPIRY_WARNING_DAYS = 7

# --- Marketplaces ---
# name -> display name, whether we can publish through an API today
MARKETPLACES = {
    "ebay": {"display_name": "eBay", "supports_api_publish": True},
    "mercari": {"display_name": "Mercari", "supports_api_publish": False},
    "poshmark": {"display_name": "Poshmark", "supports_api_publish": False},
    "depop": {"display_name": "Depop", "supports_api_publish": False},
    "facebook": {"display_name": "Facebook Marketplace", "supports_api_publish": False},
    "whatnot": {"display_name": "Whatnot", "supports_api_publish": False},
}
