"""
Image search endpoints
"""

import os
from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile
from sqlalchemy.orm import Session
from typing import List, Optional
import structlog

from showcase.core.config import settings
from showcase.core.database import get_db
from showcase.core.exceptions import ImageSearchError
from showcase.schemas.image_search import ApiResponse, ProductIdsRequest
from showcase.services.image_index_service import ImageIndexService
from showcase.services.image_search_service import ImageSearchService, image_search_service

router = APIRouter()
logger = structlog.get_logger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def get_image_search_service() -> ImageSearchService:
    """Vendor client dependency"""
    return image_search_service


def get_image_index_service(
    search_service: ImageSearchService = Depends(get_image_search_service),
) -> ImageIndexService:
    return ImageIndexService(search_service)


async def _read_search_image(files: List[UploadFile]) -> bytes:
    """Validate the uploaded search image and return its content"""
    if len(files) != 1:
        raise HTTPException(status_code=400, detail="Only one image file can be uploaded at a time")

    file = files[0]
    extension = os.path.splitext(file.filename or "")[1].lower()
    if extension not in settings.ALLOWED_IMAGE_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported image format: {extension or 'unknown'}, "
                   f"supported formats: {', '.join(settings.ALLOWED_IMAGE_EXTENSIONS)}",
        )

    if (file.content_type or "").lower() not in settings.ALLOWED_IMAGE_TYPES:
        raise HTTPException(
            status_code=400,
            detail="Unsupported image type, only JPG, PNG, GIF, WEBP and BMP images are accepted",
        )

    too_large = HTTPException(
        status_code=400,
        detail=f"Image file must not exceed {settings.MAX_FILE_SIZE // (1024 * 1024)}MB",
    )
    if file.size is not None and file.size > settings.MAX_FILE_SIZE:
        raise too_large

    # One byte past the limit is enough to detect an oversized upload
    content = await file.read(settings.MAX_FILE_SIZE + 1)
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded image file is empty")
    if len(content) > settings.MAX_FILE_SIZE:
        raise too_large
    return content


def _parse_category_id(category_id: Optional[str]) -> Optional[int]:
    try:
        return int(category_id) if category_id else None
    except ValueError:
        return None


@router.post("/batch-add", response_model=ApiResponse)
async def batch_add_products(
    request: ProductIdsRequest,
    db: Session = Depends(get_db),
    index_service: ImageIndexService = Depends(get_image_index_service),
):
    """Enroll the main images of the given products"""
    try:
        logger.info("Starting batch enrollment", count=len(request.product_ids))
        data = await index_service.batch_add(db, request.product_ids)

        return {
            "success": True,
            "message": f"Enrolled {data['success_count']} products, {data['failed_count']} failed",
            "data": data,
        }

    except (HTTPException, ImageSearchError):
        raise
    except Exception as e:
        logger.error("Batch enrollment failed", err=str(e))
        raise HTTPException(status_code=500, detail=f"Batch enrollment failed: {str(e)}")


@router.post("/search", response_model=ApiResponse)
async def search_by_image(
    image: List[UploadFile] = File(..., description="Image to search with"),
    db: Session = Depends(get_db),
    index_service: ImageIndexService = Depends(get_image_index_service),
):
    """Find products that look like the uploaded image"""
    try:
        content = await _read_search_image(image)
        results = await index_service.search_by_image(db, content)

        logger.info("Image search completed", filename=image[0].filename, results=len(results))

        if not results:
            return {
                "success": True,
                "message": "No similar products found",
                "data": {"results": [], "total": 0},
            }

        return {
            "success": True,
            "message": f"Found {len(results)} similar products",
            "data": {"results": results, "total": len(results)},
        }

    except (HTTPException, ImageSearchError):
        raise
    except Exception as e:
        logger.error("Image search failed", err=str(e))
        raise HTTPException(status_code=500, detail=f"Image search failed: {str(e)}")


@router.post("/batch-delete", response_model=ApiResponse)
async def batch_delete_products(
    request: ProductIdsRequest,
    db: Session = Depends(get_db),
    index_service: ImageIndexService = Depends(get_image_index_service),
):
    """Remove the given products from the image index"""
    try:
        logger.info("Starting batch removal", count=len(request.product_ids))
        data = await index_service.batch_delete(db, request.product_ids)

        return {
            "success": True,
            "message": f"Removed {data['success_count']} products, {data['failed_count']} failed",
            "data": data,
        }

    except (HTTPException, ImageSearchError):
        raise
    except Exception as e:
        logger.error("Batch removal failed", err=str(e))
        raise HTTPException(status_code=500, detail=f"Batch removal failed: {str(e)}")


@router.get("/status/{product_id}", response_model=ApiResponse)
async def get_product_status(
    product_id: int,
    db: Session = Depends(get_db),
    index_service: ImageIndexService = Depends(get_image_index_service),
):
    """Get the image index status of a product"""
    return {
        "success": True,
        "message": "Product status retrieved",
        "data": index_service.get_status(db, product_id),
    }


@router.get("/not-indexed", response_model=ApiResponse)
async def get_not_indexed_products(
    response: Response,
    page: int = Query(1, ge=1, description="Page number, starting at 1"),
    limit: int = Query(10, ge=1, le=100, description="Page size, 1-100"),
    name: Optional[str] = Query(None, description="Product name filter"),
    category_id: Optional[str] = Query(None, description="Category filter"),
    db: Session = Depends(get_db),
    index_service: ImageIndexService = Depends(get_image_index_service),
):
    """List products not yet enrolled in the image index"""
    data = index_service.list_products(
        db, indexed=False, page=page, limit=limit, name=name, category_id=_parse_category_id(category_id)
    )
    response.headers.update(NO_CACHE_HEADERS)
    return {"success": True, "message": "Not-indexed products retrieved", "data": data}


@router.get("/indexed", response_model=ApiResponse)
async def get_indexed_products(
    response: Response,
    page: int = Query(1, ge=1, description="Page number, starting at 1"),
    limit: int = Query(10, ge=1, le=100, description="Page size, 1-100"),
    name: Optional[str] = Query(None, description="Product name filter"),
    category_id: Optional[str] = Query(None, description="Category filter"),
    db: Session = Depends(get_db),
    index_service: ImageIndexService = Depends(get_image_index_service),
):
    """List products enrolled in the image index"""
    data = index_service.list_products(
        db, indexed=True, page=page, limit=limit, name=name, category_id=_parse_category_id(category_id)
    )
    response.headers.update(NO_CACHE_HEADERS)
    return {"success": True, "message": "Indexed products retrieved", "data": data}
