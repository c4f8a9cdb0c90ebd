"""
Readability extraction - full-text article bodies from the original page.

Uses trafilatura (reader-mode extraction) with a BeautifulSoup fallback.
Runs with a shorter timeout than feed fetches and never raises: every
outcome is an EnrichmentResult.
"""

import asyncio
import logging
import re
from dataclasses import dataclass

import trafilatura
from bs4 import BeautifulSoup
from trafilatura.settings import use_config

from .enrichment import EnrichmentResult, extract_hero_image
from .http_client import HttpTransport

logger = logging.getLogger(__name__)

NOISE_TAGS = [
    "script", "style", "nav", "header", "footer", "aside",
    "noscript", "iframe", "form", "button", "input",
]
NOISE_SELECTORS = [
    "[class*='ad-']", "[class*='advertisement']",
    "[class*='social']", "[class*='share']",
    "[class*='related']", "[class*='newsletter']",
    "[id*='comment']", "[class*='comment']",
]


@dataclass
class ReadableContent:
    content: str
    hero_image: str | None = None


def _extract_with_trafilatura(url: str, html: str) -> str | None:
    config = use_config()
    config.set("DEFAULT", "EXTRACTION_TIMEOUT", "0")
    return trafilatura.extract(
        html,
        url=url,
        output_format="html",
        include_links=True,
        include_images=False,
        include_tables=True,
        favor_recall=True,
        config=config,
    )


def _extract_with_beautifulsoup(html: str) -> str:
    """Heuristic fallback: keep block elements of the likeliest article node."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(NOISE_TAGS):
        tag.decompose()
    for selector in NOISE_SELECTORS:
        for element in soup.select(selector):
            element.decompose()

    article = (
        soup.find("article")
        or soup.find(class_=re.compile(r"^(article|post|post-content|entry-content|story)$", re.I))
        or soup.find(attrs={"role": "main"})
        or soup.find("main")
        or soup.body
    )
    if not article:
        return ""

    parts = [
        str(elem)
        for elem in article.find_all(["p", "h2", "h3", "h4", "ul", "ol", "blockquote", "pre"])
        if elem.get_text(strip=True)
    ]
    content = "\n".join(parts)
    if len(content) < 100:
        content = str(article)
    return re.sub(r"\n{3,}", "\n\n", content)


def extract_readable(url: str, html: str, min_length: int = 200) -> EnrichmentResult[ReadableContent]:
    """Extract the main article body from page HTML (CPU only)."""
    try:
        content = _extract_with_trafilatura(url, html)
    except Exception as e:
        logger.debug(f"trafilatura failed for {url}: {e}")
        content = None
    if not content or len(content) < min_length:
        content = _extract_with_beautifulsoup(html)
    if not content or len(BeautifulSoup(content, "html.parser").get_text(strip=True)) < min_length // 4:
        return EnrichmentResult.failure("No readable content")
    return EnrichmentResult.success(
        ReadableContent(content=content, hero_image=extract_hero_image(html, base_url=url))
    )


class ReadabilityExtractor:
    """Fetches an article page and extracts readable content."""

    def __init__(self, transport: HttpTransport, timeout: float = 15, min_length: int = 200):
        self.transport = transport
        self.timeout = timeout
        self.min_length = min_length

    async def extract(self, url: str) -> EnrichmentResult[ReadableContent]:
        try:
            response = await self.transport.fetch(
                url,
                headers={"Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8"},
                timeout=self.timeout,
                retries=0,
            )
        except Exception as e:
            return EnrichmentResult.failure(f"{type(e).__name__}: {e}")
        if not response.ok:
            return EnrichmentResult.failure(f"HTTP {response.status}")
        if response.content_type and "html" not in response.content_type:
            return EnrichmentResult.failure(f"Not an HTML page: {response.content_type}")
        return await asyncio.to_thread(extract_readable, url, response.text(), self.min_length)
