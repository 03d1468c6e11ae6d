"""
Image source resolution
"""

import asyncio
import base64

import pytest

from conftest import FakeResponse, FakeSession
from showcase.core.exceptions import ImageReadError
from showcase.services.image_loader import ImageLoader


def _b64(data):
    return base64.b64encode(data).decode("ascii")


def test_bytes_are_encoded_directly(config):
    loader = ImageLoader(config, session=FakeSession())
    assert asyncio.run(loader.encode(b"\x89PNG raw")) == _b64(b"\x89PNG raw")


def test_remote_url_is_downloaded(config):
    url = "https://cdn.example.com/products/1.jpg"
    session = FakeSession({url: FakeResponse(body=b"jpeg-bytes")})
    loader = ImageLoader(config, session=session)

    assert asyncio.run(loader.encode(url)) == _b64(b"jpeg-bytes")
    assert session.calls == [{"method": "GET", "url": url}]


def test_remote_url_error_status_raises(config):
    url = "http://cdn.example.com/missing.jpg"
    loader = ImageLoader(config, session=FakeSession({url: FakeResponse(status=404)}))

    with pytest.raises(ImageReadError, match="HTTP 404"):
        asyncio.run(loader.encode(url))


def test_absolute_path_is_read(config, tmp_path):
    image = tmp_path / "photo.png"
    image.write_bytes(b"png-bytes")
    loader = ImageLoader(config)

    assert asyncio.run(loader.encode(str(image))) == _b64(b"png-bytes")


def test_upload_prefixed_path_resolves_under_upload_root(config, tmp_path):
    image = tmp_path / "uploads" / "products" / "shoe.jpg"
    image.parent.mkdir(parents=True)
    image.write_bytes(b"shoe")
    loader = ImageLoader(config)

    assert asyncio.run(loader.encode("/uploads/products/shoe.jpg")) == _b64(b"shoe")
    assert asyncio.run(loader.encode("products/shoe.jpg")) == _b64(b"shoe")


def test_unresolvable_path_names_attempted_location(config):
    loader = ImageLoader(config)

    with pytest.raises(ImageReadError) as exc_info:
        asyncio.run(loader.encode("/uploads/products/missing.jpg"))

    message = str(exc_info.value)
    assert "/uploads/products/missing.jpg" in message
    assert "tried path" in message


@pytest.mark.parametrize("source", ["", "   ", None])
def test_empty_source_is_rejected(config, source):
    loader = ImageLoader(config)

    with pytest.raises(ImageReadError):
        asyncio.run(loader.encode(source))


def test_relative_path_cannot_leave_upload_root(config, tmp_path):
    (tmp_path / "secret.jpg").write_bytes(b"SECRET")
    loader = ImageLoader(config)

    with pytest.raises(ImageReadError, match="escapes upload root"):
        asyncio.run(loader.encode("/uploads/../secret.jpg"))
