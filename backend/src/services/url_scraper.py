"""
URL scraping service for fetching pages and extracting bookmark metadata.

Extraction uses capability dispatch: ScraperManager probes its scrapers in
priority order (image, video, product, article) and the first one whose
can_handle() accepts the URL does the work. ArticleScraper accepts every URL,
so it must stay last.
"""
import asyncio
import ipaddress
import json
import logging
import re
import socket
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any
from urllib.parse import unquote, urljoin, urlparse

import httpx
import trafilatura
from bs4 import BeautifulSoup
from PIL import Image, UnidentifiedImageError

from services.content_classifier import extract_domain, extract_vimeo_id, extract_youtube_id
from services.exceptions import ScrapeError

logger = logging.getLogger(__name__)

USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36'
)
DEFAULT_TIMEOUT = 10.0


class SSRFBlockedError(Exception):
    """Raised when a URL targets a private/internal network address."""

    pass


def is_private_ip(ip_str: str) -> bool:
    """
    Check if an IP address is private, loopback, or otherwise internal.

    Args:
        ip_str: IP address string (IPv4 or IPv6).

    Returns:
        True if the IP is private/internal, False if public.
    """
    try:
        ip = ipaddress.ip_address(ip_str)
        return (
            ip.is_private
            or ip.is_loopback
            or ip.is_link_local
            or ip.is_multicast
            or ip.is_reserved
            or ip.is_unspecified
        )
    except ValueError:
        # If we can't parse it, block it to be safe
        return True


async def validate_url_not_private(url: str) -> None:
    """
    Validate that a URL does not target a private/internal network.

    Resolves the hostname to check the actual IP address, preventing
    DNS rebinding attacks where a hostname resolves to an internal IP.
    Resolution runs in the event loop's resolver so it never blocks other tasks.

    Raises:
        SSRFBlockedError: If the URL targets a private network.
        ValueError: If the URL is malformed or the hostname does not resolve.
    """
    hostname = urlparse(url).hostname
    if not hostname:
        raise ValueError(f"Invalid URL (no hostname): {url}")

    if hostname.lower() in ('localhost', 'localhost.localdomain'):
        raise SSRFBlockedError(f"Blocked request to localhost: {url}")

    try:
        addrinfo = await asyncio.get_running_loop().getaddrinfo(
            hostname, None, family=socket.AF_UNSPEC, type=socket.SOCK_STREAM,
        )
    except socket.gaierror as e:
        raise ValueError(f"Could not resolve hostname: {hostname}") from e
    for _, _, _, _, sockaddr in addrinfo:
        ip_str = sockaddr[0]
        if is_private_ip(ip_str):
            raise SSRFBlockedError(
                f"Blocked request to private/internal address: {url} resolves to {ip_str}",
            )


@dataclass
class FetchResult:
    """Result of fetching a URL (raw content before extraction)."""

    content: str | bytes | None  # str for HTML, bytes for images
    final_url: str
    status_code: int | None
    content_type: str | None
    error: str | None

    @property
    def is_html(self) -> bool:
        """Check if the content type indicates HTML."""
        return bool(self.content_type and 'text/html' in self.content_type.lower())

    @property
    def is_image(self) -> bool:
        """Check if the content type indicates an image."""
        return bool(self.content_type and self.content_type.lower().startswith('image/'))


def _failed(url: str, error: str, status_code: int | None = None,
            content_type: str | None = None) -> FetchResult:
    return FetchResult(
        content=None,
        final_url=url,
        status_code=status_code,
        content_type=content_type,
        error=error,
    )


async def fetch_url(  # noqa: ASYNC109
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        max_bytes: int | None = None,
    ) -> FetchResult:
    """
    Fetch an HTML page or an image.

    Best-effort fetch that returns error info on failure rather than raising.
    Follows redirects and captures the final URL.

    Security: Validates that the URL (and the final URL after redirects) does
    not target private/internal networks to prevent SSRF attacks.

    Args:
        url:
            The URL to fetch.
        timeout:
            Total time budget in seconds, covering DNS checks, redirects and
            the body download.
        max_bytes:
            Optional cap on the response body size.

    Returns:
        FetchResult containing content (str for HTML, bytes for images) or error info.
    """
    try:
        async with asyncio.timeout(timeout):
            return await _fetch(url, timeout, max_bytes)
    except TimeoutError:
        return _failed(url, "Request timed out")


async def _fetch(  # noqa: ASYNC109, PLR0911
        url: str,
        timeout: float,
        max_bytes: int | None,
    ) -> FetchResult:
    try:
        await validate_url_not_private(url)
    except (SSRFBlockedError, ValueError) as e:
        return _failed(url, str(e))

    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
            headers={'User-Agent': USER_AGENT},
            http2=True,
        ) as client:
            response = await client.get(url)

            final_url = str(response.url)
            try:
                await validate_url_not_private(final_url)
            except (SSRFBlockedError, ValueError) as e:
                return _failed(final_url, f"Redirect blocked: {e}", response.status_code)

            content_type = response.headers.get('content-type', '')
            if not response.is_success:
                return _failed(
                    final_url, f"HTTP {response.status_code}", response.status_code, content_type,
                )
            if max_bytes is not None and len(response.content) > max_bytes:
                return _failed(
                    final_url,
                    f"Response too large (limit {max_bytes:,} bytes)",
                    response.status_code,
                    content_type,
                )
            if 'text/html' in content_type.lower():
                return FetchResult(
                    content=response.text,
                    final_url=final_url,
                    status_code=response.status_code,
                    content_type=content_type,
                    error=None,
                )
            if content_type.lower().startswith('image/'):
                return FetchResult(
                    content=response.content,
                    final_url=final_url,
                    status_code=response.status_code,
                    content_type=content_type,
                    error=None,
                )
            return _failed(
                final_url,
                f"Unsupported content type: {content_type}",
                response.status_code,
                content_type,
            )
    except httpx.TimeoutException:
        return _failed(url, "Request timed out")
    except httpx.RequestError as e:
        return _failed(url, f"Request failed: {e}")


@dataclass
class ImageInfo:
    """Dimensions and encoding of an image payload."""

    width: int | None
    height: int | None
    size: int
    format: str | None


def read_image_info(data: bytes) -> ImageInfo:
    """
    Read width/height/format from image bytes with Pillow.

    Unrecognized data (e.g. SVG) still reports its byte size.
    """
    try:
        with Image.open(BytesIO(data)) as image:
            width, height = image.size
            image_format = image.format.lower() if image.format else None
    except (UnidentifiedImageError, OSError):
        return ImageInfo(width=None, height=None, size=len(data), format=None)
    return ImageInfo(width=width, height=height, size=len(data), format=image_format)


@dataclass
class ScrapedMetadata:
    """Metadata extracted from a URL."""

    title: str
    description: str | None = None
    thumbnail: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    # Main readable text of the page, used for tagging when the caller sent none
    text: str | None = None

    @property
    def failed(self) -> bool:
        """True when extraction fell back to minimal metadata."""
        return 'error' in self.metadata


def _meta_content(soup: BeautifulSoup, **attrs: str) -> str | None:
    tag = soup.find('meta', attrs=attrs)
    if tag and tag.get('content'):
        value = tag['content'].strip()
        return value or None
    return None


def _first_text(soup: BeautifulSoup, selector: str) -> str | None:
    tag = soup.select_one(selector)
    if tag:
        value = tag.get_text(strip=True)
        return value or None
    return None


def _title_tag(soup: BeautifulSoup) -> str | None:
    tag = soup.find('title')
    if tag and tag.get_text():
        return tag.get_text().strip() or None
    return None


def _first_image(soup: BeautifulSoup, base_url: str) -> str | None:
    tag = soup.find('img', src=True)
    if tag:
        return urljoin(base_url, tag['src'])
    return None


def extract_page_fields(html: str, base_url: str) -> tuple[BeautifulSoup, ScrapedMetadata]:
    """
    Extract title, description, and thumbnail with layered fallbacks.

    Pure function with no I/O.

    Title priority: og:title, twitter:title, first <h1>, <title>.
    Description priority: og:description, twitter:description, meta description.
    Thumbnail priority: og:image, twitter:image, first <img src> (resolved
    against base_url).

    Returns:
        The parsed soup (for scraper-specific extraction) and the common fields.
        Title is '' when nothing was found.
    """
    soup = BeautifulSoup(html, 'lxml')
    title = (
        _meta_content(soup, property='og:title')
        or _meta_content(soup, name='twitter:title')
        or _first_text(soup, 'h1')
        or _title_tag(soup)
        or ''
    )
    description = (
        _meta_content(soup, property='og:description')
        or _meta_content(soup, name='twitter:description')
        or _meta_content(soup, name='description')
    )
    thumbnail = (
        _meta_content(soup, property='og:image')
        or _meta_content(soup, name='twitter:image')
        or _first_image(soup, base_url)
    )
    if thumbnail:
        thumbnail = urljoin(base_url, thumbnail)
    return soup, ScrapedMetadata(title=title, description=description, thumbnail=thumbnail)


def extract_html_content(html: str) -> str | None:
    """
    Extract main readable content from HTML using trafilatura.

    Pure function with no I/O. Returns plain text extracted from the page,
    stripping navigation, scripts, styles, and other non-content elements.
    """
    return trafilatura.extract(html)


class Scraper(ABC):
    """A metadata extractor for one family of URLs."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    @abstractmethod
    def can_handle(self, url: str) -> bool:
        """Return True when this scraper should handle the URL."""

    @abstractmethod
    async def scrape(self, url: str) -> ScrapedMetadata:
        """
        Extract metadata from the URL.

        Raises:
            ScrapeError: If the page could not be fetched or parsed.
        """

    async def _fetch_html(self, url: str) -> tuple[str, str]:
        """Fetch HTML, returning (html, final_url) or raising ScrapeError."""
        result = await fetch_url(url, self.timeout)
        if result.error:
            raise ScrapeError(url, result.error)
        if not isinstance(result.content, str):
            raise ScrapeError(url, f"Expected HTML, got {result.content_type}")
        return result.content, result.final_url


DIRECT_IMAGE_PATTERN = re.compile(r'\.(jpg|jpeg|png|gif|webp|svg|bmp|ico)(\?.*)?$', re.IGNORECASE)
IMAGE_HOSTS = (
    'imgur.com',
    'flickr.com',
    'pinterest.com',
    'unsplash.com',
    'pexels.com',
    'pixabay.com',
    'i.redd.it',
    'i.imgur.com',
    'media.giphy.com',
)
IMGUR_ID_PATTERN = re.compile(r'imgur\.com/(?:gallery/|a/)?([a-zA-Z0-9]+)')


class ImageScraper(Scraper):
    """Direct image URLs and known image hosts."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, max_bytes: int = 5 * 1024 * 1024) -> None:
        super().__init__(timeout)
        self.max_bytes = max_bytes

    def can_handle(self, url: str) -> bool:  # noqa: D102
        if DIRECT_IMAGE_PATTERN.search(url):
            return True
        return any(host in url for host in IMAGE_HOSTS)

    async def scrape(self, url: str) -> ScrapedMetadata:
        """
        Describe an image URL.

        Image reads are best-effort: a failed download still yields a usable
        record (title 'Image', the URL as thumbnail, the error in metadata).
        """
        try:
            if not DIRECT_IMAGE_PATTERN.search(url) and 'imgur.com' in url:
                imgur = self._scrape_imgur(url)
                if imgur is not None:
                    return imgur
            return await self._scrape_direct(url)
        except ScrapeError as e:
            logger.warning("Image metadata unavailable for %s: %s", url, e.reason)
            return ScrapedMetadata(
                title='Image',
                thumbnail=url,
                metadata={'type': 'image', 'original_url': url, 'error': e.reason},
            )

    async def _scrape_direct(self, url: str) -> ScrapedMetadata:
        result = await fetch_url(url, self.timeout, max_bytes=self.max_bytes)
        if result.error:
            raise ScrapeError(url, result.error)
        if not isinstance(result.content, bytes):
            raise ScrapeError(url, f"Expected an image, got {result.content_type}")
        info = read_image_info(result.content)
        filename = urlparse(url).path.rsplit('/', 1)[-1]
        return ScrapedMetadata(
            title=unquote(filename) or 'Image',
            thumbnail=url,
            metadata={
                'type': 'image',
                'original_url': url,
                'width': info.width,
                'height': info.height,
                'size': info.size,
                'format': info.format,
            },
        )

    @staticmethod
    def _scrape_imgur(url: str) -> ScrapedMetadata | None:
        match = IMGUR_ID_PATTERN.search(url)
        if not match:
            return None
        imgur_id = match.group(1)
        direct_url = f'https://i.imgur.com/{imgur_id}.jpg'
        return ScrapedMetadata(
            title=f'Imgur Image - {imgur_id}',
            thumbnail=direct_url,
            metadata={
                'type': 'image',
                'platform': 'imgur',
                'original_url': url,
                'direct_image_url': direct_url,
                'imgur_id': imgur_id,
            },
        )


VIDEO_URL_PATTERN = re.compile(r'youtube\.com/watch|youtu\.be|vimeo\.com|dailymotion\.com')


class VideoScraper(Scraper):
    """YouTube, Vimeo, and Dailymotion pages."""

    def can_handle(self, url: str) -> bool:  # noqa: D102
        return bool(VIDEO_URL_PATTERN.search(url))

    async def scrape(self, url: str) -> ScrapedMetadata:  # noqa: D102
        html, final_url = await self._fetch_html(url)
        soup, scraped = extract_page_fields(html, final_url)
        scraped.title = scraped.title or 'Untitled Video'

        if 'youtube.com' in url or 'youtu.be' in url:
            scraped.metadata = {
                'type': 'video',
                'platform': 'youtube',
                'video_id': extract_youtube_id(url) or '',
                'duration': _json_ld_field(soup, 'duration'),
                'channel': (
                    _link_content(soup, itemprop='name')
                    or _meta_content(soup, name='author')
                ),
            }
        elif 'vimeo.com' in url:
            scraped.metadata = {
                'type': 'video',
                'platform': 'vimeo',
                'video_id': extract_vimeo_id(url) or '',
            }
        else:
            scraped.metadata = {'type': 'video', 'platform': 'dailymotion', 'video_id': ''}
        return scraped


def _json_ld_field(soup: BeautifulSoup, key: str) -> str | None:
    """Read a field from the first JSON-LD block, if it parses."""
    script = soup.find('script', type='application/ld+json')
    if not script or not script.string:
        return None
    try:
        data = json.loads(script.string)
    except json.JSONDecodeError:
        return None
    if isinstance(data, dict) and isinstance(data.get(key), str):
        return data[key]
    return None


def _link_content(soup: BeautifulSoup, **attrs: str) -> str | None:
    tag = soup.find('link', attrs=attrs)
    if tag and tag.get('content'):
        return tag['content'].strip() or None
    return None


PRODUCT_URL_PATTERN = re.compile(r'amazon\.|ebay\.|etsy\.com|walmart\.com')


class ProductScraper(Scraper):
    """Shopping sites. Amazon gets price and brand extraction."""

    def can_handle(self, url: str) -> bool:  # noqa: D102
        return bool(PRODUCT_URL_PATTERN.search(url))

    async def scrape(self, url: str) -> ScrapedMetadata:  # noqa: D102
        html, final_url = await self._fetch_html(url)
        soup, scraped = extract_page_fields(html, final_url)

        og_title = _meta_content(soup, property='og:title')
        scraped.title = (
            og_title
            or _first_text(soup, '#productTitle')
            or scraped.title
            or 'Untitled Product'
        )
        if not _meta_content(soup, property='og:image'):
            landing = soup.find(id='landingImage')
            if landing and landing.get('src'):
                scraped.thumbnail = urljoin(final_url, landing['src'])

        price = currency = brand = None
        if 'amazon' in url:
            price = _first_text(soup, '.a-price-whole') or _first_text(soup, '.a-offscreen')
            byline = _first_text(soup, '#bylineInfo')
            brand = byline.replace('Brand: ', '') if byline else None
            currency = 'USD'

        scraped.metadata = {
            'type': 'product',
            'domain': extract_domain(url),
            'price': price,
            'currency': currency,
            'brand': brand,
        }
        return scraped


class ArticleScraper(Scraper):
    """Generic web pages. Handles every URL."""

    def can_handle(self, url: str) -> bool:  # noqa: ARG002, D102
        return True

    async def scrape(self, url: str) -> ScrapedMetadata:  # noqa: D102
        html, final_url = await self._fetch_html(url)
        soup, scraped = extract_page_fields(html, final_url)
        scraped.title = scraped.title or 'Untitled Article'

        author = (
            _meta_content(soup, name='author')
            or _meta_content(soup, property='article:author')
            or _first_text(soup, '.author')
        )
        publish_date = (
            _meta_content(soup, property='article:published_time')
            or _meta_content(soup, name='publish-date')
        )
        if not publish_date:
            time_tag = soup.find('time', datetime=True)
            publish_date = time_tag['datetime'] if time_tag else None

        scraped.metadata = {
            'type': 'article',
            'domain': extract_domain(url),
            'author': author,
            'publish_date': publish_date,
        }
        scraped.text = extract_html_content(html)
        return scraped


class ScraperManager:
    """
    Dispatches a URL to the first capable scraper.

    Never raises: any scraper failure degrades to minimal metadata with the
    URL as the title.
    """

    def __init__(self, scrapers: list[Scraper]) -> None:
        self.scrapers = scrapers

    @classmethod
    def default(cls, timeout: float = DEFAULT_TIMEOUT,
                max_image_bytes: int = 5 * 1024 * 1024) -> "ScraperManager":
        """Build the standard priority list."""
        return cls([
            ImageScraper(timeout, max_bytes=max_image_bytes),
            VideoScraper(timeout),
            ProductScraper(timeout),
            ArticleScraper(timeout),
        ])

    def select(self, url: str) -> Scraper | None:
        """Return the first scraper that can handle the URL."""
        return next((s for s in self.scrapers if s.can_handle(url)), None)

    async def scrape(self, url: str) -> ScrapedMetadata:
        """Extract metadata for the URL, falling back to minimal metadata."""
        scraper = self.select(url)
        if scraper is None:
            return ScrapedMetadata(title=url)
        try:
            return await scraper.scrape(url)
        except ScrapeError as e:
            logger.warning("Scraping failed for %s: %s", url, e.reason)
            return ScrapedMetadata(title=url, metadata={'error': 'Failed to extract metadata'})
        except Exception:
            logger.exception("Unexpected scraper failure for %s", url)
            return ScrapedMetadata(title=url, metadata={'error': 'Failed to extract metadata'})
