"""
Content enrichment helpers shared by every source type.

Handles:
- HTML stripping, entity decoding and summary truncation
- Hero image selection (explicit media metadata, then Open Graph/Twitter
  meta tags, then the first non-decorative <img>)
- Favicon fallback and generic-icon detection

Everything here is pure. Network-backed enrichment (readability, icon and
thumbnail caching) reports outcomes through EnrichmentResult instead of
raising, so the ingestion pipeline decides once what a failure means.
"""

import html
import re
from dataclasses import dataclass
from typing import Generic, TypeVar
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

T = TypeVar("T")

MAX_SUMMARY_LENGTH = 500
PREVIEW_SUMMARY_LENGTH = 200
TRUNCATION_SUFFIX = "..."

# <img> sources containing any of these are decorative, not hero images
DECORATIVE_IMAGE_MARKERS = ("icon", "avatar", "logo", "spinner")

# Icons served by shared favicon services or platform defaults
GENERIC_ICON_PATTERNS = [
    re.compile(r"google\.com/s2/favicons"),
    re.compile(r"gstatic\.com/favicon"),
    re.compile(r"redditstatic\.com/.*favicon"),
    re.compile(r"youtube\.com/(s/desktop/[^/]+/img/)?favicon"),
    re.compile(r"ytimg\.com/yts/img/favicon"),
]


@dataclass
class EnrichmentResult(Generic[T]):
    """Outcome of an optional enrichment step: a value or a reason it is missing."""
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None

    @classmethod
    def success(cls, value: T) -> "EnrichmentResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "EnrichmentResult[T]":
        return cls(error=error)


def decode_entities(text: str | None) -> str:
    """Decode HTML entities (named and numeric)."""
    if not text:
        return ""
    return html.unescape(text)


def strip_html(markup: str | None) -> str:
    """Plain text of an HTML fragment with whitespace collapsed."""
    if not markup:
        return ""
    if "<" not in markup:
        return re.sub(r"\s+", " ", html.unescape(markup)).strip()
    text = BeautifulSoup(markup, "html.parser").get_text(" ")
    return re.sub(r"\s+", " ", text).strip()


def truncate(text: str, length: int = MAX_SUMMARY_LENGTH, suffix: str = TRUNCATION_SUFFIX) -> str:
    """Cut at the last word boundary before `length` and append suffix."""
    if len(text) <= length:
        return text
    cut = re.sub(r"\s+\S*$", "", text[:length])
    return (cut or text[:length]) + suffix


def make_summary(markup: str | None, length: int = MAX_SUMMARY_LENGTH) -> str | None:
    """Stripped, entity-decoded and truncated summary, or None when empty."""
    text = strip_html(markup)
    return truncate(text, length) if text else None


def _is_usable_image(src: str | None) -> bool:
    if not src or src.startswith("data:"):
        return False
    lowered = src.lower()
    return not any(marker in lowered for marker in DECORATIVE_IMAGE_MARKERS)


def extract_hero_image(
    markup: str | None,
    explicit: list[str | None] | None = None,
    base_url: str | None = None,
) -> str | None:
    """
    Pick the lead image for an article.

    Args:
        markup: Article HTML (item content or a fetched page)
        explicit: Media metadata candidates in priority order
            (item image, media thumbnail, media content)
        base_url: Used to absolutize relative <img> sources

    Returns:
        Image URL or None
    """
    for candidate in explicit or []:
        if candidate:
            return candidate

    if not markup or "<" not in markup:
        return None

    soup = BeautifulSoup(markup, "html.parser")
    for attrs in (
        {"property": "og:image"},
        {"name": "og:image"},
        {"name": "twitter:image"},
        {"property": "twitter:image"},
    ):
        tag = soup.find("meta", attrs=attrs)
        if tag and tag.get("content"):
            return tag["content"]

    for img in soup.find_all("img"):
        src = img.get("src")
        if _is_usable_image(src):
            return urljoin(base_url, src) if base_url else src

    return None


def favicon_for(site_url: str | None) -> str | None:
    """<origin>/favicon.ico for a site URL."""
    if not site_url:
        return None
    parsed = urlparse(site_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}/favicon.ico"


def is_generic_icon(url: str | None) -> bool:
    """True for missing icons and shared/platform default favicons."""
    if not url:
        return True
    return any(pattern.search(url) for pattern in GENERIC_ICON_PATTERNS)


def better_icon(current: str | None, candidate: str | None) -> str | None:
    """
    Decide whether a candidate icon should replace the current one.

    Returns the candidate when it should be stored, otherwise None.
    """
    if not candidate or candidate == current:
        return None
    if current is None or is_generic_icon(current):
        return candidate
    return None
