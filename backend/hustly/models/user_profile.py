from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from hustly.core.database import Base


class UserProfile(Base):
    """Seller settings that drive eBay policies, shipping and inventory location."""

    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)

    business_name = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=True)

    # --- eBay policies ---
    ebay_account_type = Column(String(20), nullable=False, default="individual")  # individual, business
    ebay_payment_policy_id = Column(String(100), nullable=True)
    ebay_return_policy_id = Column(String(100), nullable=True)
    ebay_fulfillment_policy_id = Column(String(100), nullable=True)
    ebay_policies_created_at = Column(DateTime, nullable=True)

    # --- shipping ---
    preferred_shipping_service = Column(String(50), nullable=True, default="usps_priority")
    shipping_cost_domestic = Column(Numeric(10, 2), nullable=True, default=9.95)
    shipping_cost_additional = Column(Numeric(10, 2), nullable=True, default=2.00)
    handling_time_days = Column(Integer, nullable=True, default=1)
    international_shipping_enabled = Column(Boolean, nullable=False, default=False)

    # --- returns ---
    accepts_returns = Column(Boolean, nullable=False, default=True)
    return_period_days = Column(Integer, nullable=False, default=30)
    return_shipping_paid_by = Column(String(10), nullable=False, default="buyer")  # buyer, seller

    # --- shipping address ---
    shipping_address_line1 = Column(String(255), nullable=True)
    shipping_address_line2 = Column(String(255), nullable=True)
    shipping_city = Column(String(100), nullable=True)
    shipping_state = Column(String(100), nullable=True)
    shipping_postal_code = Column(String(20), nullable=True)
    shipping_country = Column(String(2), nullable=True, default="US")

    # --- inventory location ---
    inventory_location_name = Column(String(255), nullable=True)
    inventory_address_line1 = Column(String(255), nullable=True)
    inventory_address_line2 = Column(String(255), nullable=True)
    inventory_city = Column(String(100), nullable=True)
    inventory_state = Column(String(100), nullable=True)
    inventory_postal_code = Column(String(20), nullable=True)
    inventory_country = Column(String(2), nullable=True, default="US")
    ebay_location_key = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    user = relationship("User", back_populates="profile")
