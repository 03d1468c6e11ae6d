"""
Shared fixtures: in-memory database, fake vendor HTTP session, fake search service
"""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from showcase.core.config import Settings
from showcase.core.database import Base, create_db_engine
from showcase.models.category import Category
from showcase.models.product import Product, ImageIndexStatus
from showcase.models.product_image import ProductImage
from showcase.models.product_param import ProductParam


class FakeResponse:
    """Stands in for an aiohttp response used as an async context manager"""

    def __init__(self, payload=None, status=200, body=b""):
        self.payload = payload
        self.status = status
        self.body = body

    async def json(self, content_type=None):
        await asyncio.sleep(0)
        return self.payload

    async def read(self):
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Routes requests by URL; a list of responses is consumed in order, the last one repeats"""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def _respond(self, url):
        route = self.routes[url]
        if isinstance(route, list):
            return route.pop(0) if len(route) > 1 else route[0]
        return route

    def post(self, url, params=None, data=None, headers=None):
        self.calls.append({"method": "POST", "url": url, "params": params, "data": data})
        return self._respond(url)

    def get(self, url, **kwargs):
        self.calls.append({"method": "GET", "url": url})
        return self._respond(url)

    def calls_to(self, url):
        return [call for call in self.calls if call["url"] == url]


class FakeSearchService:
    """Records vendor operations without network access"""

    def __init__(self, hits=None):
        self.hits = hits or []
        self.signatures = {}
        self.enroll_errors = {}
        self.remove_errors = {}
        self.search_error = None
        self.enrolled = []
        self.removed = []

    async def enroll(self, image_source, label):
        self.enrolled.append((image_source, label))
        if label in self.enroll_errors:
            raise self.enroll_errors[label]
        return {"cont_sign": self.signatures.get(label, f"sign-{label}"), "log_id": 1001}

    async def find_similar(self, image_source, page=0, page_size=10):
        if self.search_error:
            raise self.search_error
        return list(self.hits)

    async def remove(self, signature):
        self.removed.append(signature)
        if signature in self.remove_errors:
            raise self.remove_errors[signature]
        return {"log_id": 2002}


@pytest.fixture
def db():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def config(tmp_path):
    return Settings(
        BAIDU_API_KEY="test-key",
        BAIDU_SECRET_KEY="test-secret",
        UPLOAD_DIR=str(tmp_path / "uploads"),
    )


@pytest.fixture
def token_response():
    return FakeResponse({"access_token": "token-1", "expires_in": 2592000})


@pytest.fixture
def search_service():
    return FakeSearchService()


@pytest.fixture
def make_product(db):
    """Insert a product with optional images and params"""

    def _make(product_id, name=None, category_id=None, main_image=None, sub_images=(),
              params=(), cont_sign=None, price="19.90"):
        product = Product(
            product_id=product_id,
            category_id=category_id,
            name=name or f"Product {product_id}",
            description=f"Description {product_id}",
            price=Decimal(price),
            tags="demo",
            baidu_cont_sign=cont_sign,
            baidu_image_search_status=ImageIndexStatus.INDEXED if cont_sign else ImageIndexStatus.NOT_INDEXED,
        )
        db.add(product)
        for index, url in enumerate(sub_images):
            db.add(ProductImage(product_id=product_id, image_url=url, image_type="sub", sort_order=index))
        if main_image:
            db.add(ProductImage(product_id=product_id, image_url=main_image, image_type="main", sort_order=0))
        for key, value in params:
            db.add(ProductParam(product_id=product_id, param_key=key, param_value=value))
        db.commit()
        return product

    return _make


@pytest.fixture
def make_category(db):
    def _make(category_id, name):
        category = Category(category_id=category_id, name=name)
        db.add(category)
        db.commit()
        return category

    return _make
