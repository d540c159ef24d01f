from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from hustly.core.database import Base


class MarketplaceAccount(Base):
    __tablename__ = "marketplace_accounts"
    __table_args__ = (UniqueConstraint("user_id", "marketplace", name="uq_marketplace_accounts_user_marketplace"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # 'ebay' / 'poshmark' / ...
    marketplace = Column(String(50), nullable=False)
    username = Column(String(255), nullable=True)

    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)

    # connected: OAuth grant still usable; active: seller wants this account used
    is_connected = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # eBay only: overrides UserProfile.ebay_account_type when set
    ebay_account_type = Column(String(20), nullable=True)

    last_sync_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    user = relationship("User", back_populates="marketplace_accounts")
