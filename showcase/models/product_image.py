"""
Product image database model
"""

from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from showcase.core.database import Base


class ProductImage(Base):
    """Product image model"""
    __tablename__ = "product_images"

    image_id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=False, index=True)
    image_url = Column(String(500), nullable=False)
    image_type = Column(String(20), nullable=False, default="sub")  # 'main' or 'sub'
    sort_order = Column(Integer, default=0)

    # Relationships
    product = relationship("Product", back_populates="images")
