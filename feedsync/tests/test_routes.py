"""
Tests for the HTTP API.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from feedsync.asset_cache import ICONS
from feedsync.config import config, state
from feedsync.enrichment import EnrichmentResult
from feedsync.events import FEED_CREATED, ChangeBroker
from feedsync.opml import parse_opml
from feedsync.readability import ReadableContent
from feedsync.routes.misc import event_stream
from feedsync.sources import NormalizedArticle

from conftest import USER_ID, feed_response

FEED_URL = "https://example.com/feed.xml"


@pytest.fixture
def no_dns():
    """Skip DNS resolution when validating subscription URLs."""
    with patch("feedsync.services.feed_service.validate_url", side_effect=lambda url: url):
        yield


@pytest.fixture
def feed_id(test_db):
    return test_db.feeds.add(USER_ID, FEED_URL, title="Example Blog")


@pytest.fixture
def article_id(test_db, feed_id):
    (article_id,) = test_db.articles.insert_many(
        feed_id, [NormalizedArticle(guid="post-1", title="First post")]
    )
    return article_id


class TestStatus:
    """Tests for the public health check."""

    def test_status(self, client):
        response = client.get("/status")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["scheduler"]["running"] is False
        assert data["subscribers"] == 0


class TestAuth:
    """Tests for API key enforcement."""

    @pytest.fixture
    def auth_client(self, client):
        config.AUTH_API_KEY = "test-key"
        yield client
        config.AUTH_API_KEY = ""

    def test_missing_key(self, auth_client):
        response = auth_client.get("/feeds")
        assert response.status_code == 401
        assert "Missing API key" in response.json()["detail"]

    def test_invalid_key(self, auth_client):
        response = auth_client.get("/feeds", headers={"X-API-Key": "wrong"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid API key"

    def test_valid_key(self, auth_client):
        response = auth_client.get("/feeds", headers={"X-API-Key": "test-key"})
        assert response.status_code == 200

    def test_status_is_public(self, auth_client):
        assert auth_client.get("/status").status_code == 200


class TestFeeds:
    """Tests for feed subscription and management."""

    def test_list_empty(self, client):
        response = client.get("/feeds")
        assert response.status_code == 200
        assert response.json() == []

    def test_subscribe_fetches_feed(self, client, test_db, transport, no_dns):
        response = client.post("/feeds", json={"url": FEED_URL})

        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Example Blog"
        assert data["type"] == "web"
        assert data["last_fetched_at"] is not None
        assert test_db.articles.count_by_feed(data["id"]) == 2

    def test_subscribe_with_title(self, client, no_dns):
        response = client.post("/feeds", json={"url": FEED_URL, "title": "Mine"})
        assert response.json()["title"] == "Mine"

    def test_subscribe_twice_conflicts(self, client, no_dns):
        client.post("/feeds", json={"url": FEED_URL})
        response = client.post("/feeds", json={"url": FEED_URL})
        assert response.status_code == 409

    def test_subscribe_blocked_url(self, client):
        response = client.post("/feeds", json={"url": "file:///etc/passwd"})
        assert response.status_code == 400
        assert response.json()["detail"].startswith("Invalid feed URL")

    def test_subscribe_into_unknown_folder(self, client, no_dns):
        response = client.post("/feeds", json={"url": FEED_URL, "folder_id": 999})
        assert response.status_code == 404

    def test_update_feed(self, client, feed_id):
        response = client.put(f"/feeds/{feed_id}", json={"title": "Renamed", "refresh_interval_minutes": 60})

        assert response.status_code == 200
        assert response.json()["title"] == "Renamed"
        assert response.json()["refresh_interval_minutes"] == 60

    def test_update_unknown_feed(self, client):
        response = client.put("/feeds/999", json={"title": "Nope"})
        assert response.status_code == 404

    def test_delete_feed(self, client, feed_id):
        response = client.delete(f"/feeds/{feed_id}")

        assert response.status_code == 200
        assert client.get("/feeds").json() == []
        assert client.delete(f"/feeds/{feed_id}").status_code == 404

    def test_resubscribe_after_unsubscribe_restores_feed(self, client, test_db, transport, no_dns):
        first = client.post("/feeds", json={"url": FEED_URL}).json()
        test_db.feeds.apply_fetch_state(
            first["id"],
            next_fetch_at="2025-01-10 18:00:00.000000",
            error_count=4,
            last_error="[http] HTTP 500",
            last_error_at="2025-01-10 12:00:00.000000",
            last_fetched_at="2025-01-10 12:00:00.000000",
            etag='"stale"',
        )
        assert client.delete(f"/feeds/{first['id']}").status_code == 200
        folder = client.post("/folders", json={"name": "Tech"}).json()

        response = client.post("/feeds", json={"url": FEED_URL, "folder_id": folder["id"]})

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == first["id"]
        assert data["folder_id"] == folder["id"]
        assert data["error_count"] == 0
        assert data["last_error"] is None
        assert "If-None-Match" not in transport.fetch.call_args.kwargs["headers"]
        assert test_db.get_feed(first["id"]).deleted_at is None
        assert [f["id"] for f in client.get("/feeds").json()] == [first["id"]]

    def test_subscribe_discovers_feed_from_page(self, client, transport, no_dns):
        page = b"""<!DOCTYPE html><html><head>
            <link rel="alternate" type="application/rss+xml" href="/feed.xml">
            </head><body></body></html>"""

        async def fetch(url, **kwargs):
            if url == "https://example.com/":
                return feed_response(page, content_type="text/html")
            return feed_response()

        transport.fetch.side_effect = fetch

        response = client.post("/feeds", json={"url": "https://example.com/"})

        assert response.status_code == 200
        assert response.json()["url"] == FEED_URL
        assert response.json()["title"] == "Example Blog"

    def test_subscribe_page_without_feed(self, client, transport, no_dns):
        transport.fetch.return_value = feed_response(b"<html><body>Hi</body></html>", content_type="text/html")

        response = client.post("/feeds", json={"url": "https://example.com/"})

        assert response.status_code == 400
        assert response.json()["detail"] == "No feed found at this URL"
        assert client.get("/feeds").json() == []

    def test_subscribe_without_discovery_keeps_url(self, client, transport, no_dns):
        transport.fetch.return_value = feed_response(b"<html><body>Hi</body></html>", content_type="text/html")

        response = client.post("/feeds", json={"url": "https://example.com/", "discover": False})

        assert response.status_code == 200
        assert response.json()["url"] == "https://example.com/"
        assert response.json()["last_error"].startswith("[parse]")

    def test_other_users_feed_is_hidden(self, client, test_db):
        test_db.users.ensure(2, "other")
        other = test_db.feeds.add(2, FEED_URL)
        assert client.put(f"/feeds/{other}", json={"title": "Mine now"}).status_code == 404

    def test_manual_refresh(self, client, feed_id):
        response = client.post(f"/feeds/{feed_id}/refresh")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["new_articles"] == 2
        assert data["next_fetch_at"] is not None

    def test_manual_refresh_reports_failure(self, client, transport, feed_id):
        transport.fetch.return_value = feed_response(b"", status=500)

        data = client.post(f"/feeds/{feed_id}/refresh").json()

        assert data["success"] is False
        assert data["error"]

    def test_pause_and_resume(self, client, feed_id):
        assert client.post(f"/feeds/{feed_id}/pause").json()["paused"] is True

        data = client.post(f"/feeds/{feed_id}/resume").json()
        assert data["paused"] is False
        assert data["error_count"] == 0

    def test_mark_feed_read(self, client, article_id, feed_id):
        response = client.post(f"/feeds/{feed_id}/read")
        assert response.json() == {"success": True, "count": 1}

    def test_refresh_all(self, client):
        response = client.post("/refresh")
        assert response.status_code == 200
        assert response.json()["message"] == "Refresh started"


class TestOPML:
    """Tests for OPML import and export."""

    IMPORT = """<?xml version="1.0" encoding="UTF-8"?>
    <opml version="2.0">
      <body>
        <outline type="rss" text="Example Blog" xmlUrl="https://example.com/feed.xml" />
        <outline text="Tech">
          <outline type="rss" text="Alpha" xmlUrl="https://alpha.example/feed" />
          <outline type="rss" text="Beta" xmlUrl="https://beta.example/feed" />
        </outline>
      </body>
    </opml>"""

    def test_import(self, client, test_db, transport, feed_id, no_dns):
        response = client.post("/feeds/import-opml", json={"opml_content": self.IMPORT})

        assert response.status_code == 200
        data = response.json()
        assert (data["total"], data["imported"], data["skipped"], data["failed"]) == (3, 2, 1, 0)
        assert data["results"][0]["error"] == "Already subscribed"

        (folder,) = test_db.get_folders(USER_ID)
        assert folder.name == "Tech"
        feeds = {f["url"]: f for f in client.get("/feeds").json()}
        assert feeds["https://alpha.example/feed"]["title"] == "Alpha"
        assert feeds["https://beta.example/feed"]["folder_id"] == folder.id
        # Imported feeds are left for the scheduler
        assert feeds["https://alpha.example/feed"]["next_fetch_at"] is None
        transport.fetch.assert_not_awaited()

    def test_import_reuses_folder_by_name(self, client, test_db, no_dns):
        folder = client.post("/folders", json={"name": "tech"}).json()

        client.post("/feeds/import-opml", json={"opml_content": self.IMPORT})

        assert [f.id for f in test_db.get_folders(USER_ID)] == [folder["id"]]

    def test_import_reports_blocked_url(self, client):
        opml = '<opml version="2.0"><body><outline xmlUrl="file:///etc/passwd" /></body></opml>'

        data = client.post("/feeds/import-opml", json={"opml_content": opml}).json()

        assert data["failed"] == 1
        assert data["results"][0]["error"].startswith("Invalid feed URL")

    def test_import_invalid_xml(self, client):
        response = client.post("/feeds/import-opml", json={"opml_content": "not valid xml"})
        assert response.status_code == 400
        assert response.json()["detail"].startswith("Invalid OPML")

    def test_import_without_feeds(self, client):
        opml = '<opml version="2.0"><head><title>Empty</title></head><body></body></opml>'
        response = client.post("/feeds/import-opml", json={"opml_content": opml})
        assert response.status_code == 400
        assert response.json()["detail"] == "No feeds found in OPML"

    def test_import_missing_content(self, client):
        assert client.post("/feeds/import-opml", json={}).status_code == 422

    def test_export(self, client, test_db, feed_id):
        folder = client.post("/folders", json={"name": "Tech"}).json()
        client.put(f"/feeds/{feed_id}", json={"folder_id": folder["id"]})
        test_db.feeds.add(USER_ID, "https://loose.example/feed", title="Loose")

        data = client.get("/feeds/export-opml").json()

        assert data["feed_count"] == 2
        doc = parse_opml(data["opml"])
        assert [(f.url, f.title, f.category) for f in doc.feeds] == [
            ("https://loose.example/feed", "Loose", None),
            (FEED_URL, "Example Blog", "Tech"),
        ]

    def test_export_skips_unsubscribed(self, client, feed_id):
        client.delete(f"/feeds/{feed_id}")
        assert client.get("/feeds/export-opml").json()["feed_count"] == 0


class TestFolders:
    """Tests for folder management."""

    def test_create_and_list(self, client):
        created = client.post("/folders", json={"name": "Tech"}).json()

        assert created["name"] == "Tech"
        assert [f["id"] for f in client.get("/folders").json()] == [created["id"]]

    def test_rename(self, client):
        folder = client.post("/folders", json={"name": "Tech"}).json()
        response = client.put(f"/folders/{folder['id']}", json={"name": "Technology"})
        assert response.json()["name"] == "Technology"

    def test_empty_name_rejected(self, client):
        assert client.post("/folders", json={"name": ""}).status_code == 422

    def test_delete_moves_feeds_to_top_level(self, client, test_db):
        folder = client.post("/folders", json={"name": "Tech"}).json()
        feed_id = test_db.feeds.add(USER_ID, FEED_URL, folder_id=folder["id"])

        assert client.delete(f"/folders/{folder['id']}").status_code == 200

        assert client.get("/folders").json() == []
        assert test_db.get_feed(feed_id).folder_id is None

    def test_unknown_folder(self, client):
        assert client.put("/folders/999", json={"name": "X"}).status_code == 404


class TestArticles:
    """Tests for read state and bookmarks."""

    def test_mark_read_default(self, client, test_db, article_id):
        response = client.post(f"/articles/{article_id}/read")

        assert response.json() == {"success": True, "is_read": True}
        assert test_db.read_state.get(USER_ID, article_id).is_read

    def test_mark_unread(self, client, test_db, article_id):
        client.post(f"/articles/{article_id}/read", json={"is_read": False})
        assert not test_db.read_state.get(USER_ID, article_id).is_read

    def test_bookmark(self, client, test_db, article_id):
        response = client.post(f"/articles/{article_id}/bookmark", json={"is_bookmarked": True})

        assert response.json()["is_bookmarked"] is True
        assert test_db.articles.get(article_id).is_bookmarked

    def test_unknown_article(self, client):
        assert client.post("/articles/999/read").status_code == 404
        assert client.post("/articles/999/bookmark").status_code == 404

    @pytest.fixture
    def page_article_id(self, test_db, feed_id):
        (article_id,) = test_db.articles.insert_many(feed_id, [
            NormalizedArticle(guid="post-2", title="Long read", url="https://example.com/posts/2"),
        ])
        return article_id

    @staticmethod
    def use_extractor(result: EnrichmentResult) -> MagicMock:
        extractor = MagicMock()
        extractor.extract = AsyncMock(return_value=result)
        state.feeds.refresher.readability = extractor
        return extractor

    def test_readability_on_demand(self, client, test_db, page_article_id):
        extractor = self.use_extractor(EnrichmentResult.success(
            ReadableContent("<p>Full text</p>", hero_image="https://example.com/hero.jpg")
        ))

        response = client.post(f"/articles/{page_article_id}/readability")

        assert response.status_code == 200
        data = response.json()
        assert data["readability_content"] == "<p>Full text</p>"
        assert data["thumbnail_url"] == "https://example.com/hero.jpg"
        extractor.extract.assert_awaited_once_with("https://example.com/posts/2")

        # Stored content is served without extracting again
        client.post(f"/articles/{page_article_id}/readability")
        assert extractor.extract.await_count == 1

    def test_readability_keeps_feed_thumbnail(self, client, test_db, feed_id):
        (article_id,) = test_db.articles.insert_many(feed_id, [NormalizedArticle(
            guid="post-3", title="Pictured", url="https://example.com/posts/3",
            thumbnail_url="https://example.com/feed-thumb.jpg",
        )])
        self.use_extractor(EnrichmentResult.success(
            ReadableContent("<p>Text</p>", hero_image="https://example.com/hero.jpg")
        ))

        data = client.post(f"/articles/{article_id}/readability").json()

        assert data["thumbnail_url"] == "https://example.com/feed-thumb.jpg"

    def test_readability_failure_degrades(self, client, test_db, page_article_id):
        self.use_extractor(EnrichmentResult.failure("HTTP 404"))

        response = client.post(f"/articles/{page_article_id}/readability")

        assert response.status_code == 200
        assert response.json()["readability_content"] is None
        assert test_db.articles.get(page_article_id).readability_content is None

    def test_readability_unknown_article(self, client):
        assert client.post("/articles/999/readability").status_code == 404


class TestSync:
    """Tests for the sync endpoints."""

    def test_initial_pull(self, client, feed_id, article_id):
        response = client.get("/sync")

        assert response.status_code == 200
        data = response.json()
        assert [f["id"] for f in data["changes"]["feeds"]["created"]] == [feed_id]
        assert [a["id"] for a in data["changes"]["articles"]["created"]] == [article_id]
        assert data["next_cursor"]
        assert data["server_time"] == "2025-01-10 12:00:00.000000"

    def test_pull_with_cursor(self, client, clock, feed_id):
        cursor = client.get("/sync").json()["next_cursor"]
        clock.advance(seconds=1)
        client.put(f"/feeds/{feed_id}", json={"title": "Renamed"})

        changes = client.get("/sync", params={"cursor": cursor}).json()["changes"]

        assert changes["feeds"]["created"] == []
        assert [f["title"] for f in changes["feeds"]["updated"]] == ["Renamed"]

    def test_resubscribed_feed_is_updated_not_deleted(self, client, clock, feed_id, no_dns):
        client.delete(f"/feeds/{feed_id}")
        cursor = client.get("/sync").json()["next_cursor"]
        clock.advance(seconds=1)

        client.post("/feeds", json={"url": FEED_URL})

        feeds = client.get("/sync", params={"cursor": cursor}).json()["changes"]["feeds"]
        assert [f["id"] for f in feeds["updated"]] == [feed_id]
        assert feeds["deleted"] == []

    def test_include_filter(self, client, feed_id):
        changes = client.get("/sync", params={"include": "folders"}).json()["changes"]
        assert changes["feeds"] is None
        assert changes["folders"] == {"created": [], "updated": [], "deleted": []}

    def test_garbage_cursor_is_full_resync(self, client, feed_id):
        changes = client.get("/sync", params={"cursor": "garbage"}).json()["changes"]
        assert len(changes["feeds"]["created"]) == 1

    def test_push(self, client, test_db, article_id):
        response = client.post("/sync/push", json={"read_state": [
            {"article_id": article_id, "is_read": True},
            {"article_id": 999, "is_read": True},
        ]})

        assert response.json() == {"read_state": {"accepted": 1, "rejected": 1}}
        assert test_db.read_state.get(USER_ID, article_id).is_read


class TestRetention:
    """Tests for retention settings and runs."""

    def test_get_defaults(self, client):
        data = client.get("/retention").json()
        assert data["policy"]["max_articles_per_feed"] == 500
        assert data["caps"]["forum_days"] == 30

    def test_partial_update(self, client):
        response = client.put("/retention", json={"policy": {"max_article_age_days": 30}, "caps": {"video_count": 10}})

        data = response.json()
        assert data["policy"]["max_article_age_days"] == 30
        assert data["policy"]["keep_unread"] is True
        assert data["caps"]["video_count"] == 10

    def test_negative_values_rejected(self, client):
        response = client.put("/retention", json={"policy": {"max_article_age_days": -1}})
        assert response.status_code == 422

    def test_preview_and_run(self, client, test_db, feed_id):
        test_db.articles.insert_many(feed_id, [
            NormalizedArticle(guid="old", title="Old", published_at="2024-01-01 00:00:00.000000"),
        ])

        assert client.get("/retention/preview").json()["articles_affected"] == 1

        data = client.post("/retention/run").json()
        assert data["articles_deleted"] == 1
        assert data["errors"] == []
        assert test_db.articles.count_by_feed(feed_id) == 0


class TestMaintenance:
    """Tests for maintenance endpoints."""

    def test_stats(self, client, article_id):
        data = client.get("/maintenance/stats").json()
        assert data["article_count"] == 1
        assert data["total_size_bytes"] > 0

    def test_check(self, client):
        data = client.get("/maintenance/check").json()
        assert data["needs_vacuum"] is False

    def test_optimize(self, client):
        assert client.post("/maintenance/optimize").json()["success"] is True

    def test_compact(self, client):
        unforced = client.post("/maintenance/compact").json()
        assert unforced["message"].startswith("Compaction not needed")

        forced = client.post("/maintenance/compact", params={"force": True}).json()
        assert forced["success"] is True


class TestIcons:
    """Tests for cached asset serving."""

    def test_no_icon(self, client, feed_id):
        assert client.get(f"/icons/{feed_id}").status_code == 404

    def test_unknown_feed(self, client):
        assert client.get("/icons/999").status_code == 404

    def test_redirects_to_remote_icon(self, client, test_db, feed_id):
        test_db.feeds.update_metadata(feed_id, icon_url="https://example.com/favicon.ico")

        response = client.get(f"/icons/{feed_id}", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "https://example.com/favicon.ico"

    def test_serves_cached_icon_with_etag(self, client, test_db, feed_id):
        path = state.assets.path_for(ICONS, f"feed-{feed_id}.png")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\x89PNG fake")
        test_db.feeds.set_icon_cache(feed_id, path.name, "image/png")

        response = client.get(f"/icons/{feed_id}")

        assert response.status_code == 200
        assert response.content == b"\x89PNG fake"
        assert response.headers["content-type"] == "image/png"
        etag = response.headers["etag"]
        assert etag.startswith('W/"')

        cached = client.get(f"/icons/{feed_id}", headers={"If-None-Match": etag})
        assert cached.status_code == 304

    def test_clear_icon(self, client, test_db, feed_id):
        path = state.assets.path_for(ICONS, f"feed-{feed_id}.png")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\x89PNG fake")
        test_db.feeds.set_icon_cache(feed_id, path.name, "image/png")

        assert client.delete(f"/icons/{feed_id}").json() == {"success": True}

        assert not path.exists()
        assert test_db.get_feed(feed_id).icon_cached_path is None

    def test_unknown_thumbnail(self, client):
        assert client.get("/thumbnails/999").status_code == 404


class TestEventStream:
    """Tests for the server-sent event generator."""

    class FakeRequest:
        def __init__(self):
            self.checks = 0

        async def is_disconnected(self) -> bool:
            self.checks += 1
            return self.checks > 1

    @pytest.mark.asyncio
    async def test_streams_events_until_disconnect(self):
        broker = ChangeBroker()
        stream = event_stream(self.FakeRequest(), broker)

        asyncio.get_running_loop().call_soon(broker.publish, FEED_CREATED, 5)
        chunk = await stream.__anext__()

        assert chunk.startswith(f"event: {FEED_CREATED}\ndata: ")
        assert '"entity_id": 5' in chunk
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert broker.subscriber_count == 0
