from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from hustly.core.database import Base


class OAuthState(Base):
    """Single-use `state` value handed to a marketplace OAuth consent page."""

    __tablename__ = "oauth_states"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(128), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    marketplace = Column(String(50), nullable=False, default="ebay")
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
