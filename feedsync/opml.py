"""OPML import and export of subscription lists."""

import xml.etree.ElementTree as ET
from dataclasses import dataclass


@dataclass
class OPMLFeed:
    """A subscription entry; category maps to a folder name."""
    url: str
    title: str | None
    category: str | None
    site_url: str | None = None


@dataclass
class OPMLDocument:
    title: str | None
    feeds: list[OPMLFeed]


@dataclass
class OPMLImportResult:
    """Outcome of importing one OPML entry."""
    url: str
    name: str | None
    success: bool
    error: str | None = None
    feed_id: int | None = None


def parse_opml(xml_content: str) -> OPMLDocument:
    """
    Parse OPML XML content and extract feed subscriptions.

    Nested outlines without an xmlUrl are folders; the innermost named
    folder becomes a feed's category.

    Raises:
        ValueError: If XML is invalid or not OPML format
    """
    try:
        root = ET.fromstring(xml_content)
    except ET.ParseError as e:
        raise ValueError(f"Invalid XML: {e}")

    if root.tag.lower() != "opml":
        raise ValueError(f"Not an OPML document (root element: {root.tag})")

    doc_title = None
    head = root.find("head")
    if head is not None:
        title_elem = head.find("title")
        if title_elem is not None and title_elem.text:
            doc_title = title_elem.text.strip()

    body = root.find("body")
    if body is None:
        raise ValueError("OPML document missing <body> element")

    feeds: list[OPMLFeed] = []
    _parse_outlines(body, feeds, category=None)
    return OPMLDocument(title=doc_title, feeds=feeds)


def _parse_outlines(element: ET.Element, feeds: list[OPMLFeed], category: str | None) -> None:
    for outline in element.findall("outline"):
        xml_url = outline.get("xmlUrl") or outline.get("xmlurl")
        if xml_url:
            title = outline.get("title") or outline.get("text")
            feeds.append(OPMLFeed(
                url=xml_url.strip(),
                title=title.strip() if title else None,
                category=category,
                site_url=outline.get("htmlUrl") or outline.get("htmlurl"),
            ))
        else:
            folder_name = outline.get("title") or outline.get("text")
            _parse_outlines(
                outline,
                feeds,
                category=folder_name.strip() if folder_name else category,
            )


def generate_opml(feeds: list[OPMLFeed], title: str = "Feed Subscriptions") -> str:
    """
    Generate OPML 2.0 from a list of feeds.

    Uncategorized feeds come first, then one folder outline per category in
    name order.
    """
    root = ET.Element("opml", version="2.0")
    head = ET.SubElement(root, "head")
    ET.SubElement(head, "title").text = title
    body = ET.SubElement(root, "body")

    categorized: dict[str | None, list[OPMLFeed]] = {}
    for feed in feeds:
        categorized.setdefault(feed.category, []).append(feed)

    for feed in categorized.pop(None, []):
        _add_feed_outline(body, feed)

    for category, cat_feeds in sorted(categorized.items()):
        folder = ET.SubElement(body, "outline", text=category, title=category)
        for feed in cat_feeds:
            _add_feed_outline(folder, feed)

    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode")


def _add_feed_outline(parent: ET.Element, feed: OPMLFeed) -> None:
    attrs = {"type": "rss", "xmlUrl": feed.url}
    if feed.title:
        attrs["text"] = feed.title
        attrs["title"] = feed.title
    else:
        attrs["text"] = feed.url
    if feed.site_url:
        attrs["htmlUrl"] = feed.site_url
    ET.SubElement(parent, "outline", **attrs)
