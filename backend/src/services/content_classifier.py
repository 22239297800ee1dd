"""
Content type detection from a bookmark's URL.

Pure functions with no I/O, so classification always happens before any
network call and cannot fail.
"""
import re
from urllib.parse import quote, urlparse

from core.taxonomy import ContentType

# Checked in insertion order; the first content type with a matching pattern wins.
CONTENT_TYPE_PATTERNS: dict[ContentType, tuple[re.Pattern[str], ...]] = {
    "video": (
        re.compile(r"youtube\.com/watch"),
        re.compile(r"youtu\.be/"),
        re.compile(r"vimeo\.com/"),
        re.compile(r"dailymotion\.com/"),
    ),
    "product": (
        re.compile(r"amazon\.(com|co\.uk|de|fr|jp|ca|in)/.*/(dp|gp/product)/"),
        re.compile(r"ebay\.(com|co\.uk|de|fr|ca)/itm/"),
        re.compile(r"etsy\.com/listing/"),
        re.compile(r"walmart\.com/ip/"),
    ),
    "tweet": (
        re.compile(r"twitter\.com/.*/status/"),
        re.compile(r"x\.com/.*/status/"),
    ),
    "image": (
        re.compile(r"\.(jpg|jpeg|png|gif|webp|svg)$", re.IGNORECASE),
    ),
}

YOUTUBE_ID_PATTERNS = (
    re.compile(r"youtube\.com/watch\?v=([^&]+)"),
    re.compile(r"youtu\.be/([^?]+)"),
    re.compile(r"youtube\.com/embed/([^?]+)"),
)
VIMEO_ID_PATTERN = re.compile(r"vimeo\.com/(\d+)")

FAVICON_SERVICE_URL = "https://www.google.com/s2/favicons?domain={domain}&sz=64"


def detect_content_type(url: str | None) -> ContentType:
    """
    Classify a URL into a content type.

    Args:
        url: The bookmark URL, or None for text-only saves.

    Returns:
        'note' when there is no URL, the first matching type from
        CONTENT_TYPE_PATTERNS, otherwise 'article'.
    """
    if not url or not url.strip():
        return "note"
    for content_type, patterns in CONTENT_TYPE_PATTERNS.items():
        if any(pattern.search(url) for pattern in patterns):
            return content_type
    return "article"


def extract_youtube_id(url: str) -> str | None:
    """Extract the video id from watch, short, or embed YouTube URLs."""
    for pattern in YOUTUBE_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def extract_vimeo_id(url: str) -> str | None:
    """Extract the numeric Vimeo video id."""
    match = VIMEO_ID_PATTERN.search(url)
    return match.group(1) if match else None


def extract_domain(url: str | None) -> str:
    """Return the bare hostname (no 'www.' prefix), or '' for unparseable input."""
    if not url:
        return ""
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError:
        return ""
    return hostname.removeprefix("www.")


def get_favicon_url(url: str) -> str | None:
    """Favicon reference for the URL's domain, or None when there is no domain."""
    domain = extract_domain(url)
    if not domain:
        return None
    return FAVICON_SERVICE_URL.format(domain=quote(domain))
