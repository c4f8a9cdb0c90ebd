"""
Syndication document parsing with feedparser.

RSS 2.0, Atom and RDF payloads of every feed type go through here. The
result is a plain ParsedDocument so normalizers never touch feedparser's
dict-like objects directly.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone

import feedparser

from ..exceptions import ParseError
from ..timeutil import format_ts

ITUNES_NAMESPACE = "http://www.itunes.com/dtds/podcast-1.0.dtd"
GENERATED_GUID_PREFIX = "generated-"
DEFAULT_ARTICLE_TITLE = "Untitled"


@dataclass
class Enclosure:
    url: str
    type: str | None = None
    length: int | None = None


@dataclass
class ParsedEntry:
    guid: str
    title: str
    link: str | None
    author: str | None
    summary: str | None
    content: str | None
    published_at: str | None
    enclosures: list[Enclosure] = field(default_factory=list)
    image_url: str | None = None
    media_thumbnail: str | None = None
    media_image: str | None = None
    itunes_duration: str | None = None
    video_id: str | None = None


@dataclass
class ParsedDocument:
    title: str | None
    site_url: str | None
    description: str | None
    icon_url: str | None
    entries: list[ParsedEntry] = field(default_factory=list)
    has_itunes_metadata: bool = False
    channel_id: str | None = None

    @property
    def has_audio_enclosures(self) -> bool:
        return any(
            (enclosure.type or "").startswith("audio/")
            for entry in self.entries
            for enclosure in entry.enclosures
        )


def _to_int(value) -> int | None:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number >= 0 else None


def _published(entry) -> str | None:
    for key in ("published_parsed", "updated_parsed", "created_parsed"):
        parsed = entry.get(key)
        if parsed:
            try:
                return format_ts(datetime(*parsed[:6], tzinfo=timezone.utc))
            except (TypeError, ValueError):
                continue
    return None


def _link(entry) -> str | None:
    link = entry.get("link")
    if link:
        return link
    for candidate in entry.get("links", []):
        if candidate.get("rel") == "alternate" or candidate.get("type") == "text/html":
            return candidate.get("href") or None
    return None


def _first_url(items, *keys: str) -> str | None:
    for item in items or []:
        for key in keys:
            if item.get(key):
                return item[key]
    return None


def _media_image(entry) -> str | None:
    for media in entry.get("media_content", []) or []:
        medium = media.get("medium") or ""
        media_type = media.get("type") or ""
        if media.get("url") and (medium == "image" or media_type.startswith("image/")):
            return media["url"]
    return None


def generate_guid(title: str | None, link: str | None, published: str | None) -> str:
    """Stable id for entries that carry neither id nor link."""
    digest = hashlib.sha1(f"{title or ''}{link or ''}{published or ''}".encode("utf-8"))
    return f"{GENERATED_GUID_PREFIX}{digest.hexdigest()[:16]}"


def _entry(raw) -> ParsedEntry:
    link = _link(raw)
    published = _published(raw)
    title = raw.get("title") or DEFAULT_ARTICLE_TITLE

    content = None
    if raw.get("content"):
        content = raw.content[0].get("value")
    summary = raw.get("summary")

    enclosures = [
        Enclosure(url=e.get("href"), type=e.get("type"), length=_to_int(e.get("length")))
        for e in raw.get("enclosures", [])
        if e.get("href")
    ]

    image = raw.get("image")
    return ParsedEntry(
        guid=raw.get("id") or link or generate_guid(raw.get("title"), link, published),
        title=title,
        link=link,
        author=raw.get("author") or None,
        summary=summary,
        content=content or summary,
        published_at=published,
        enclosures=enclosures,
        image_url=image.get("href") if isinstance(image, dict) else None,
        media_thumbnail=_first_url(raw.get("media_thumbnail"), "url"),
        media_image=_media_image(raw),
        itunes_duration=raw.get("itunes_duration"),
        video_id=raw.get("yt_videoid"),
    )


def parse_document(payload: bytes | str) -> ParsedDocument:
    """
    Parse a feed payload.

    Raises:
        ParseError: The payload is not a recognizable feed document
    """
    parsed = feedparser.parse(payload)

    if not parsed.entries and not parsed.get("version"):
        reason = parsed.get("bozo_exception") or "unrecognized document format"
        raise ParseError(f"Failed to parse feed: {reason}")

    feed = parsed.feed
    image = feed.get("image")
    icon_url = (
        (image.get("href") if isinstance(image, dict) else None)
        or feed.get("icon")
        or feed.get("logo")
    )

    return ParsedDocument(
        title=feed.get("title"),
        site_url=feed.get("link"),
        description=feed.get("subtitle") or feed.get("description"),
        icon_url=icon_url,
        entries=[_entry(raw) for raw in parsed.entries],
        has_itunes_metadata=ITUNES_NAMESPACE in parsed.get("namespaces", {}).values(),
        channel_id=feed.get("yt_channelid"),
    )
