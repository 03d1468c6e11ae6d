"""
Product database model
"""

import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from showcase.core.database import Base


class ImageIndexStatus(enum.IntEnum):
    """Enrollment state of a product's main image in the vendor index"""
    NOT_INDEXED = 0
    INDEXED = 1
    FAILED = 2


STATUS_TEXT = {
    ImageIndexStatus.NOT_INDEXED: "not indexed",
    ImageIndexStatus.INDEXED: "indexed",
    ImageIndexStatus.FAILED: "index failed",
}


class Product(Base):
    """Product model"""
    __tablename__ = "products"

    product_id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("categories.category_id"), index=True)
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    tags = Column(String(500))

    # Baidu image search enrollment; baidu_cont_sign is set iff status is INDEXED
    baidu_cont_sign = Column(String(255), nullable=True, index=True)
    baidu_image_search_status = Column(Integer, nullable=False, default=ImageIndexStatus.NOT_INDEXED)
    baidu_image_search_time = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    category = relationship("Category", back_populates="products")
    images = relationship("ProductImage", back_populates="product", cascade="all, delete-orphan")
    params = relationship("ProductParam", back_populates="product", cascade="all, delete-orphan")
