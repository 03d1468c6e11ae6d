"""
Image index service
Reconciles product rows with the Baidu similar-image index
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import structlog
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from showcase.core.exceptions import ConfigurationError, NotFoundError
from showcase.models.category import Category
from showcase.models.product import Product, ImageIndexStatus, STATUS_TEXT
from showcase.models.product_image import ProductImage
from showcase.models.product_param import ProductParam
from showcase.services.image_loader import ImageSource
from showcase.services.image_search_service import ImageSearchService

logger = structlog.get_logger(__name__)

REASON_NOT_FOUND = "Product not found"
REASON_NO_MAIN_IMAGE = "Product has no main image"
REASON_NOT_INDEXED = "Product is not enrolled in the image index"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_label(label: Any) -> Optional[int]:
    """Map a vendor brief back to a product id; None when unusable"""
    try:
        product_id = int(str(label).strip())
    except (TypeError, ValueError):
        return None
    return product_id if product_id > 0 else None


class ImageIndexService:
    """Batch enrollment, deletion and search result hydration"""

    def __init__(self, search_service: ImageSearchService):
        self.logger = logger
        self.search_service = search_service

    # ----- lookups -----

    def _main_image(self, db: Session, product_id: int) -> Optional[ProductImage]:
        return (
            db.query(ProductImage)
            .filter(ProductImage.product_id == product_id, ProductImage.image_type == "main")
            .order_by(ProductImage.sort_order.asc(), ProductImage.image_id.asc())
            .first()
        )

    def _all_images(self, db: Session, product_id: int) -> List[ProductImage]:
        return (
            db.query(ProductImage)
            .filter(ProductImage.product_id == product_id)
            .order_by(
                case((ProductImage.image_type == "main", 0), else_=1),
                ProductImage.sort_order.asc(),
                ProductImage.image_id.asc(),
            )
            .all()
        )

    def _params(self, db: Session, product_id: int) -> List[ProductParam]:
        return (
            db.query(ProductParam)
            .filter(ProductParam.product_id == product_id)
            .order_by(ProductParam.param_id.asc())
            .all()
        )

    # ----- batch reconciliation -----

    @staticmethod
    def _summary(results: Dict[str, List[Dict[str, Any]]]) -> Dict[str, Any]:
        return {
            "success_count": len(results["success"]),
            "failed_count": len(results["failed"]),
            "success": results["success"],
            "failed": results["failed"],
        }

    @staticmethod
    def _ensure_something_to_do(results: Dict[str, List[Dict[str, Any]]]):
        if not results["success"] and results["failed"] and all(
            item["reason"] == REASON_NOT_FOUND for item in results["failed"]
        ):
            raise NotFoundError("Nothing to do: none of the requested products exist")

    async def batch_add(self, db: Session, product_ids: Iterable[int]) -> Dict[str, Any]:
        """Enroll each product's main image; every item commits independently"""
        results = {"success": [], "failed": []}

        for product_id in product_ids:
            try:
                product = db.get(Product, product_id)
                if product is None:
                    results["failed"].append({"product_id": product_id, "reason": REASON_NOT_FOUND})
                    continue

                image = self._main_image(db, product_id)
                if image is None:
                    results["failed"].append({"product_id": product_id, "reason": REASON_NO_MAIN_IMAGE})
                    continue

                added = await self.search_service.enroll(image.image_url, str(product_id))

                product.baidu_cont_sign = added["cont_sign"]
                product.baidu_image_search_status = ImageIndexStatus.INDEXED
                product.baidu_image_search_time = _now()
                db.commit()

                results["success"].append({"product_id": product_id, "cont_sign": added["cont_sign"]})
                self.logger.info("Product enrolled", product_id=product_id, cont_sign=added["cont_sign"])
            except ConfigurationError:
                db.rollback()
                raise
            except Exception as e:
                db.rollback()
                self._mark_failed(db, product_id)
                results["failed"].append({"product_id": product_id, "reason": str(e)})
                self.logger.warning("Product enrollment failed", product_id=product_id, err=str(e))

        self._ensure_something_to_do(results)
        self.logger.info(
            "Batch enrollment finished",
            requested=len(results["success"]) + len(results["failed"]),
            succeeded=len(results["success"]),
            failed=len(results["failed"]),
        )
        return self._summary(results)

    def _mark_failed(self, db: Session, product_id: int):
        """Record a failed enrollment unless the product already holds a signature"""
        try:
            product = db.get(Product, product_id)
            if product is None or product.baidu_cont_sign:
                return
            product.baidu_image_search_status = ImageIndexStatus.FAILED
            product.baidu_image_search_time = _now()
            db.commit()
        except Exception as e:
            db.rollback()
            self.logger.error("Failed to record enrollment failure", product_id=product_id, err=str(e))

    async def batch_delete(self, db: Session, product_ids: Iterable[int]) -> Dict[str, Any]:
        """Remove each product's image from the index and clear its enrollment fields"""
        results = {"success": [], "failed": []}

        for product_id in product_ids:
            try:
                product = db.get(Product, product_id)
                if product is None:
                    results["failed"].append({"product_id": product_id, "reason": REASON_NOT_FOUND})
                    continue

                if not product.baidu_cont_sign:
                    results["failed"].append({"product_id": product_id, "reason": REASON_NOT_INDEXED})
                    continue

                await self.search_service.remove(product.baidu_cont_sign)

                product.baidu_cont_sign = None
                product.baidu_image_search_status = ImageIndexStatus.NOT_INDEXED
                product.baidu_image_search_time = None
                db.commit()

                results["success"].append({"product_id": product_id})
                self.logger.info("Product removed from index", product_id=product_id)
            except ConfigurationError:
                db.rollback()
                raise
            except Exception as e:
                db.rollback()
                results["failed"].append({"product_id": product_id, "reason": str(e)})
                self.logger.warning("Product removal failed", product_id=product_id, err=str(e))

        self._ensure_something_to_do(results)
        self.logger.info(
            "Batch removal finished",
            requested=len(results["success"]) + len(results["failed"]),
            succeeded=len(results["success"]),
            failed=len(results["failed"]),
        )
        return self._summary(results)

    # ----- search -----

    async def search_by_image(self, db: Session, image: ImageSource) -> List[Dict[str, Any]]:
        """Query the index with an image and return hydrated products, best match first"""
        hits = await self.search_service.find_similar(image, 0, 10)
        if not hits:
            return []
        return self.join_hits(db, hits)

    def _resolve_product_id(self, db: Session, hit: Dict[str, Any]) -> Optional[int]:
        product_id = _parse_label(hit.get("brief"))
        if product_id is not None:
            return product_id

        cont_sign = hit.get("cont_sign")
        if not cont_sign:
            return None
        row = db.query(Product.product_id).filter(Product.baidu_cont_sign == str(cont_sign)).first()
        return row[0] if row else None

    def _hydrate(self, db: Session, product: Product, hit: Dict[str, Any]) -> Dict[str, Any]:
        main_image = self._main_image(db, product.product_id)
        return {
            "product_id": product.product_id,
            "category_id": product.category_id,
            "name": product.name,
            "description": product.description,
            "price": float(product.price) if product.price is not None else None,
            "tags": product.tags,
            "main_image": main_image.image_url if main_image else None,
            "images": [
                {
                    "image_id": img.image_id,
                    "image_url": img.image_url,
                    "image_type": img.image_type,
                    "sort_order": img.sort_order,
                }
                for img in self._all_images(db, product.product_id)
            ],
            "params": [
                {"param_key": param.param_key, "param_value": param.param_value}
                for param in self._params(db, product.product_id)
            ],
            "similarity": float(hit.get("score") or 0),
            "cont_sign": hit.get("cont_sign"),
        }

    def join_hits(self, db: Session, hits: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Hydrate vendor hits with local product data, sorted by similarity descending"""
        products = []
        unresolved = 0
        stale = 0
        broken = 0

        for hit in hits:
            try:
                product_id = self._resolve_product_id(db, hit)
                if product_id is None:
                    unresolved += 1
                    continue

                product = db.get(Product, product_id)
                if product is None:
                    stale += 1
                    continue

                products.append(self._hydrate(db, product, hit))
            except Exception as e:
                db.rollback()
                broken += 1
                self.logger.warning("Failed to hydrate image search hit", brief=hit.get("brief"), err=str(e))

        if unresolved or stale or broken:
            self.logger.info("Dropped image search hits", unresolved=unresolved, stale=stale, broken=broken)

        # sorted() is stable, ties keep vendor order
        return sorted(products, key=lambda item: item["similarity"], reverse=True)

    # ----- status and listings -----

    def get_status(self, db: Session, product_id: int) -> Dict[str, Any]:
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError(REASON_NOT_FOUND)

        status = product.baidu_image_search_status or ImageIndexStatus.NOT_INDEXED
        return {
            "product_id": product.product_id,
            "name": product.name,
            "baidu_cont_sign": product.baidu_cont_sign,
            "baidu_image_search_status": status,
            "baidu_image_search_time": product.baidu_image_search_time,
            "status_text": STATUS_TEXT.get(status, STATUS_TEXT[ImageIndexStatus.NOT_INDEXED]),
        }

    def list_products(
        self,
        db: Session,
        indexed: bool,
        page: int = 1,
        limit: int = 10,
        name: Optional[str] = None,
        category_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Page through products that are (or are not) enrolled in the index"""
        conditions = [
            Product.baidu_cont_sign.isnot(None) if indexed else Product.baidu_cont_sign.is_(None)
        ]
        if name:
            conditions.append(Product.name.like(f"%{name}%"))
        if category_id is not None:
            conditions.append(Product.category_id == category_id)

        total = db.query(func.count(Product.product_id)).filter(*conditions).scalar() or 0

        if indexed:
            ordering = (Product.baidu_image_search_time.desc(), Product.product_id.desc())
        else:
            ordering = (Product.product_id.desc(),)

        rows = (
            db.query(Product, Category.name.label("category_name"))
            .outerjoin(Category, Product.category_id == Category.category_id)
            .filter(*conditions)
            .order_by(*ordering)
            .limit(limit)
            .offset((page - 1) * limit)
            .all()
        )

        products = []
        for product, category_name in rows:
            main_image = self._main_image(db, product.product_id)
            products.append({
                "product_id": product.product_id,
                "category_id": product.category_id,
                "category_name": category_name,
                "name": product.name,
                "description": product.description,
                "price": float(product.price) if product.price is not None else None,
                "tags": product.tags,
                "baidu_cont_sign": product.baidu_cont_sign,
                "baidu_image_search_status": product.baidu_image_search_status,
                "baidu_image_search_time": product.baidu_image_search_time,
                "main_image": main_image.image_url if main_image else None,
            })

        return {
            "products": products,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if limit else 0,
            },
        }
