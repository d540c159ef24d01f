from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from hustly.core.database import Base


class ListingMarketplace(Base):
    __tablename__ = "listing_marketplaces"
    __table_args__ = (UniqueConstraint("listing_id", "marketplace", name="uq_listing_marketplaces_listing_marketplace"),)

    id = Column(Integer, primary_key=True, index=True)

    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=False, index=True)

    # 'ebay' / 'poshmark' / ...
    marketplace = Column(String(50), nullable=False)

    external_item_id = Column(String(255), nullable=True)
    external_url = Column(String(500), nullable=True)

    sku = Column(String(100), nullable=True)
    offer_id = Column(String(100), nullable=True)

    status = Column(String(50), nullable=False, default="pending")
    # e.g. 'pending', 'offer_created', 'active', 'failed', 'ended'
    error_message = Column(Text, nullable=True)

    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    listing = relationship("Listing", back_populates="marketplace_links")
