"""
Tests for OPML parsing and generation.
"""

import pytest

from feedsync.opml import OPMLFeed, generate_opml, parse_opml

NESTED_OPML = """<?xml version="1.0" encoding="UTF-8"?>
<opml version="2.0">
  <head><title>My Subscriptions</title></head>
  <body>
    <outline type="rss" text="Loose" xmlUrl="https://loose.example/feed" />
    <outline text="Tech">
      <outline type="rss" title="Example Blog" text="ignored"
               xmlUrl="https://example.com/feed.xml" htmlUrl="https://example.com/" />
      <outline text="Deeper">
        <outline type="rss" xmlurl="https://deep.example/rss" />
      </outline>
    </outline>
  </body>
</opml>"""


class TestParseOPML:
    """Tests for reading subscription lists."""

    def test_nested_folders(self):
        doc = parse_opml(NESTED_OPML)

        assert doc.title == "My Subscriptions"
        assert [(f.url, f.title, f.category) for f in doc.feeds] == [
            ("https://loose.example/feed", "Loose", None),
            ("https://example.com/feed.xml", "Example Blog", "Tech"),
            ("https://deep.example/rss", None, "Deeper"),
        ]
        assert doc.feeds[1].site_url == "https://example.com/"

    def test_invalid_xml(self):
        with pytest.raises(ValueError, match="Invalid XML"):
            parse_opml("not valid xml")

    def test_wrong_root(self):
        with pytest.raises(ValueError, match="Not an OPML document"):
            parse_opml("<rss><channel/></rss>")

    def test_missing_body(self):
        with pytest.raises(ValueError, match="missing <body>"):
            parse_opml('<opml version="2.0"><head/></opml>')


class TestGenerateOPML:
    """Tests for writing subscription lists."""

    def test_uncategorized_first_then_folders_by_name(self):
        opml = generate_opml([
            OPMLFeed("https://b.example/feed", "B", "Zeta"),
            OPMLFeed("https://a.example/feed", "A", "Alpha"),
            OPMLFeed("https://loose.example/feed", None, None),
        ])

        assert opml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        doc = parse_opml(opml)
        assert [(f.url, f.category) for f in doc.feeds] == [
            ("https://loose.example/feed", None),
            ("https://a.example/feed", "Alpha"),
            ("https://b.example/feed", "Zeta"),
        ]
        # Untitled feeds fall back to their URL as outline text
        assert doc.feeds[0].title == "https://loose.example/feed"

    def test_site_url_written_as_html_url(self):
        opml = generate_opml([OPMLFeed("https://example.com/feed.xml", "Blog", None, "https://example.com/")])
        assert 'htmlUrl="https://example.com/"' in opml
