"""Tests for image download and the passthrough image storage."""
import hashlib
from io import BytesIO
from unittest.mock import AsyncMock, patch

import pytest
from PIL import Image

from services.exceptions import ScrapeError
from services.image_storage import DownloadedImage, PassthroughImageStorage, download_image
from services.url_scraper import FetchResult


def _png(width: int = 4, height: int = 3) -> bytes:
    buffer = BytesIO()
    Image.new('RGB', (width, height), color='red').save(buffer, format='PNG')
    return buffer.getvalue()


def _result(**overrides: object) -> FetchResult:
    values = {
        'content': b'bytes',
        'final_url': 'https://cdn.example.com/a.png',
        'status_code': 200,
        'content_type': 'image/png; charset=binary',
        'error': None,
    }
    values.update(overrides)
    return FetchResult(**values)


async def test__download_image__returns_bytes_and_media_type() -> None:
    with patch('services.image_storage.fetch_url', AsyncMock(return_value=_result())) as fetch:
        image = await download_image('https://example.com/a.png', max_bytes=1024)

    assert image == DownloadedImage(
        data=b'bytes', media_type='image/png', source_url='https://cdn.example.com/a.png',
    )
    assert fetch.await_args.kwargs['max_bytes'] == 1024


async def test__download_image__fetch_error_raises() -> None:
    failed = _result(content=None, error='HTTP 404', status_code=404)
    with (
        patch('services.image_storage.fetch_url', AsyncMock(return_value=failed)),
        pytest.raises(ScrapeError, match='HTTP 404') as exc_info,
    ):
        await download_image('https://example.com/missing.png')

    assert exc_info.value.url == 'https://example.com/missing.png'


async def test__download_image__html_is_not_an_image() -> None:
    page = _result(content='<html></html>', content_type='text/html')
    with (
        patch('services.image_storage.fetch_url', AsyncMock(return_value=page)),
        pytest.raises(ScrapeError, match='Not an image: text/html'),
    ):
        await download_image('https://example.com/page')


async def test__download_image__missing_content_type_defaults_to_jpeg() -> None:
    with patch(
        'services.image_storage.fetch_url', AsyncMock(return_value=_result(content_type=None)),
    ):
        image = await download_image('https://example.com/a')

    assert image.media_type == 'image/jpeg'


async def test__passthrough_upload__measures_and_keys_by_digest() -> None:
    data = _png(4, 3)
    image = DownloadedImage(data=data, media_type='image/png', source_url='https://x.test/a.png')

    uploaded = await PassthroughImageStorage().upload(image, 'user-1')

    assert uploaded.url == 'https://x.test/a.png'
    assert uploaded.storage_key == f'images/user-1/{hashlib.sha256(data).hexdigest()}.png'
    assert (uploaded.width, uploaded.height) == (4, 3)
    assert uploaded.size == len(data)
    assert uploaded.format == 'png'


async def test__passthrough_upload__unreadable_data_uses_media_type_extension() -> None:
    image = DownloadedImage(
        data=b'<svg xmlns="http://www.w3.org/2000/svg"/>',
        media_type='image/svg+xml',
        source_url='https://x.test/logo.svg',
    )

    uploaded = await PassthroughImageStorage().upload(image, 'user-1')

    assert uploaded.storage_key.endswith('.svg+xml')
    assert uploaded.width is None
    assert uploaded.format is None
