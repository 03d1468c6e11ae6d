"""
Image search Pydantic schemas
"""

from pydantic import BaseModel, Field
from typing import Any, List, Optional


class ProductIdsRequest(BaseModel):
    """Batch request body"""
    product_ids: List[int] = Field(..., min_length=1, description="Product IDs to process")


class ApiResponse(BaseModel):
    """Response envelope shared by all image search endpoints"""
    success: bool
    message: str
    data: Optional[Any] = None
