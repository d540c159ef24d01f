from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from hustly.core.database import Base


class Listing(Base):
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")

    sku = Column(String(100), nullable=True, index=True)
    condition = Column(String(50), nullable=True)  # new_with_tags, excellent, good, ...

    # item specifics
    brand = Column(String(100), nullable=True)
    color = Column(String(50), nullable=True)
    size = Column(String(50), nullable=True)
    material = Column(String(100), nullable=True)
    gender = Column(String(50), nullable=True)
    pattern = Column(String(50), nullable=True)

    ebay_category_id = Column(String(20), nullable=True)
    shipping_cost = Column(Numeric(10, 2), nullable=True)

    status = Column(String(20), nullable=False, default="draft")  # draft, listed, sold

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    owner = relationship("User", back_populates="listings")

    images = relationship(
        "ListingImage",
        back_populates="listing",
        cascade="all, delete-orphan",
        order_by="ListingImage.sort_order"
    )
    marketplace_links = relationship(
        "ListingMarketplace",
        back_populates="listing",
        cascade="all, delete-orphan",
    )
