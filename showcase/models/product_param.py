"""
Product parameter database model
"""

from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from showcase.core.database import Base


class ProductParam(Base):
    """Product parameter model"""
    __tablename__ = "product_params"

    param_id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=False, index=True)
    param_key = Column(String(100), nullable=False)
    param_value = Column(String(500), nullable=False)

    # Relationships
    product = relationship("Product", back_populates="params")
