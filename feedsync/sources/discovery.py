"""
Feed discovery - find the feed a web page advertises.

Pages announce their feeds with <link rel="alternate"> tags in the head.
Subscribing with a site URL instead of a feed URL resolves through here.
"""

import logging
from dataclasses import dataclass
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from ..http_client import FetchResponse, HttpTransport

logger = logging.getLogger(__name__)

FEED_LINK_TYPES = ("application/rss+xml", "application/atom+xml")
HTML_TYPES = ("text/html", "application/xhtml+xml")
PAGE_ACCEPT = "text/html,application/xhtml+xml,application/rss+xml,application/atom+xml;q=0.9,*/*;q=0.8"


@dataclass
class DiscoveredFeed:
    url: str
    title: str
    type: str


def discover_feed_links(html: str, base_url: str) -> list[DiscoveredFeed]:
    """
    Feed links a page advertises, in document order.

    Relative hrefs are resolved against base_url; duplicates are dropped.
    """
    soup = BeautifulSoup(html, "html.parser")
    feeds: list[DiscoveredFeed] = []
    seen: set[str] = set()
    for link in soup.find_all("link", href=True):
        link_type = (link.get("type") or "").split(";")[0].strip().lower()
        if link_type not in FEED_LINK_TYPES:
            continue
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if rel and "alternate" not in [r.lower() for r in rel]:
            continue
        url = urljoin(base_url, link["href"].strip())
        if url in seen:
            continue
        seen.add(url)
        feeds.append(DiscoveredFeed(url, (link.get("title") or "").strip() or "RSS Feed", link_type))
    return feeds


def looks_like_html(response: FetchResponse) -> bool:
    """True when a response is a web page rather than a feed document."""
    if response.content_type:
        return response.content_type in HTML_TYPES
    head = response.body[:512].lstrip().lower()
    return head.startswith(b"<!doctype html") or head.startswith(b"<html")


async def discover_feed_url(transport: HttpTransport, url: str, timeout: float = 10) -> str | None:
    """
    Resolve a subscription URL to a feed URL.

    Returns:
        url itself when it serves a feed or cannot be fetched (the first
        refresh records that failure), the first advertised feed when it
        serves a page, or None for a page that advertises no feed
    """
    try:
        response = await transport.fetch(
            url, headers={"Accept": PAGE_ACCEPT}, timeout=timeout, retries=0
        )
    except Exception as e:
        logger.debug(f"Discovery fetch failed for {url}: {e}")
        return url
    if not response.ok or not looks_like_html(response):
        return url

    feeds = discover_feed_links(response.text(), response.url)
    if not feeds:
        return None
    logger.info(f"Discovered {len(feeds)} feed(s) at {url}, using {feeds[0].url}")
    return feeds[0].url
