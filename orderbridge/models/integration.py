"""
Integration Models - Marketplace connection configuration per tenant
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, Boolean, Integer, DateTime, Uuid
from sqlalchemy.orm import relationship
from orderbridge.core.database import Base


class ChannelConnection(Base):
    """
    Marketplace API credentials and sync settings per seller account
    """
    __tablename__ = "channel_connection"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String(64), nullable=False, index=True)
    provider = Column(String(30), nullable=False)  # trendyol
    seller_id = Column(String(100), nullable=False)
    shop_name = Column(String(200))

    # API Credentials (should be encrypted in production)
    api_key = Column(String(200))
    api_secret = Column(Text)
    base_url = Column(String(300))

    # Settings
    is_active = Column(Boolean, default=True)
    sync_enabled = Column(Boolean, default=True)
    sync_interval_minutes = Column(Integer, default=60)
    conflict_policy = Column(String(30), default="marketplace_wins")  # marketplace_wins, internal_wins, manual
    last_sync_at = Column(DateTime)

    # Metadata
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    orders = relationship("OrderRecord", back_populates="connection")

    def __repr__(self):
        return f"<ChannelConnection {self.provider}:{self.seller_id}>"
