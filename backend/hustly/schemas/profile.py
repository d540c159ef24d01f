from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProfileBase(BaseModel):
    business_name: Optional[str] = None
    full_name: Optional[str] = None

    ebay_account_type: Optional[Literal["individual", "business"]] = None
    ebay_payment_policy_id: Optional[str] = None
    ebay_return_policy_id: Optional[str] = None
    ebay_fulfillment_policy_id: Optional[str] = None

    preferred_shipping_service: Optional[str] = None
    shipping_cost_domestic: Optional[Decimal] = Field(default=None, ge=0)
    shipping_cost_additional: Optional[Decimal] = Field(default=None, ge=0)
    handling_time_days: Optional[int] = Field(default=None, ge=0, le=30)
    international_shipping_enabled: Optional[bool] = None

    accepts_returns: Optional[bool] = None
    return_period_days: Optional[int] = Field(default=None, ge=0, le=60)
    return_shipping_paid_by: Optional[Literal["buyer", "seller"]] = None

    shipping_address_line1: Optional[str] = None
    shipping_address_line2: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    shipping_country: Optional[str] = Field(default=None, max_length=2)

    inventory_location_name: Optional[str] = None
    inventory_address_line1: Optional[str] = None
    inventory_address_line2: Optional[str] = None
    inventory_city: Optional[str] = None
    inventory_state: Optional[str] = None
    inventory_postal_code: Optional[str] = None
    inventory_country: Optional[str] = Field(default=None, max_length=2)


class ProfileUpdate(ProfileBase):
    pass


class ProfileRead(ProfileBase):
    id: int
    user_id: int
    ebay_location_key: Optional[str] = None
    ebay_policies_created_at: Optional[datetime] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
