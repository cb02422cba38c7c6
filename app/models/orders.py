"""Orders and order items imported from Shopify."""

from datetime import datetime, timezone

from sqlalchemy import JSON, BigInteger, Boolean, Column, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True)
    shopify_order_id = Column(BigInteger, unique=True, nullable=False)
    order_number = Column(String(50), nullable=False, index=True)
    customer_name = Column(String(255))
    customer_email = Column(String(255))
    total_price = Column(Float)
    order_date = Column(UTCDateTime)
    status = Column(String(20), default="pending")  # pending | in_production | completed | shipped
    raw_data = Column(JSON, default=dict)
    synced_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"))
    shopify_line_item_id = Column(BigInteger, unique=True)
    product_name = Column(String(255), nullable=False)
    variant_title = Column(String(255))
    sku = Column(String(100))
    quantity = Column(Integer, default=1, nullable=False)
    price = Column(Float)

    # Parsed from line item properties / variant title
    headphone_material = Column(String(100))
    headphone_color = Column(String(100))
    product_category = Column(String(30))  # headphone | accessory | cable | electronics | component | other
    requires_custom_work = Column(Boolean, default=False)
    product_data = Column(JSON, default=dict)
    notes = Column(Text)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    order = relationship("Order", back_populates="items")
    tasks = relationship("WorkTask", back_populates="order_item")

    __table_args__ = (Index("ix_order_items_category", "product_category"),)
