"""
Unit tests for the API routes: in-memory SQLite database, real scoring.
No network calls. Fast.

Run with: pytest tests/test_routes.py -v
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import get_db, init_db
from app.models import Article, Interaction
from app.routes.articles import router

# Minimal test app: no lifespan, no background fetcher
_app = FastAPI()
_app.include_router(router)

NOW = datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def db():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def client(db):
    _app.dependency_overrides[get_db] = lambda: db
    yield TestClient(_app)
    _app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_payload(**kwargs) -> dict:
    """Returns a valid ingest payload dict, overridable via kwargs."""
    defaults = {
        "guid": "guid-1",
        "title": "Test Article",
        "link": "https://example.com/1",
        "feed_title": "Hacker News",
        "feed_category": "development",
        "published_at": "2025-01-01T12:00:00Z",
        "keywords": ["Rust"],
    }
    defaults.update(kwargs)
    return defaults


def insert_article(db, **kwargs) -> Article:
    """Insert an Article directly into the DB."""
    defaults = {
        "title": "Test Article",
        "feed_title": "Hacker News",
        "feed_category": "development",
        "published_at": NOW - timedelta(hours=1),
        "keywords": ["rust", "wasm"],
        "view_count": 0,
    }
    defaults.update(kwargs)
    article = Article(**defaults)
    db.add(article)
    db.commit()
    return article


SCORE_FIELDS = {
    "keyword_score", "source_score", "category_score", "recency_score",
    "interaction_score", "just_in_boost", "view_fatigue", "keyword_match_count", "total_score",
}


# ---------------------------------------------------------------------------
# GET /recommendations
# ---------------------------------------------------------------------------

class TestRecommendations:
    def test_returns_empty_list_when_no_articles(self, client):
        response = client.get("/recommendations")
        assert response.status_code == 200
        assert response.json() == []

    def test_no_history_returns_newest_first_without_scores(self, client, db):
        insert_article(db, title="old", published_at=NOW - timedelta(days=3))
        insert_article(db, title="new", published_at=NOW - timedelta(hours=1))

        body = client.get("/recommendations").json()

        assert [a["title"] for a in body] == ["new", "old"]
        assert all(a["total_score"] is None for a in body)

    def test_scores_attached_once_profile_exists(self, client, db):
        article = insert_article(db)
        client.post(f"/articles/{article.id}/interaction", json={"type": "thumbs_up"})

        body = client.get("/recommendations").json()

        assert SCORE_FIELDS <= set(body[0])
        assert body[0]["total_score"] is not None
        assert body[0]["interaction_score"] > 0

    def test_serving_increments_view_count(self, client, db):
        article = insert_article(db)

        body = client.get("/recommendations").json()

        assert body[0]["view_count"] == 1
        db.expire_all()
        assert db.get(Article, article.id).view_count == 1

    def test_limit_and_offset(self, client, db):
        for i in range(4):
            insert_article(db, title=f"a{i}", published_at=NOW - timedelta(hours=i + 1))

        body = client.get("/recommendations", params={"limit": 2, "offset": 1}).json()

        assert [a["title"] for a in body] == ["a1", "a2"]

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 1000}, {"offset": -1}])
    def test_invalid_paging_returns_422(self, client, params):
        assert client.get("/recommendations", params=params).status_code == 422


# ---------------------------------------------------------------------------
# GET /articles/{id}/similar
# ---------------------------------------------------------------------------

class TestSimilar:
    def test_returns_similar_articles_with_scores(self, client, db):
        seed = insert_article(db, title="seed")
        insert_article(db, title="twin")
        insert_article(db, title="stranger", keywords=["gardening"])

        body = client.get(f"/articles/{seed.id}/similar").json()

        assert [a["title"] for a in body] == ["twin"]
        assert body[0]["similarity"] == pytest.approx(1.0)
        assert body[0]["score"] == pytest.approx(1.0)

    def test_missing_article_returns_404(self, client):
        response = client.get("/articles/999/similar")
        assert response.status_code == 404

    def test_respects_limit(self, client, db):
        seed = insert_article(db)
        for i in range(4):
            insert_article(db, title=f"t{i}")

        body = client.get(f"/articles/{seed.id}/similar", params={"limit": 2}).json()

        assert len(body) == 2


# ---------------------------------------------------------------------------
# POST /articles/{id}/interaction
# ---------------------------------------------------------------------------

class TestInteraction:
    @pytest.mark.parametrize("interaction_type", ["click", "thumbs_up", "thumbs_down"])
    def test_valid_types_recorded(self, client, db, interaction_type):
        article = insert_article(db)

        response = client.post(f"/articles/{article.id}/interaction", json={"type": interaction_type})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert db.query(Interaction).count() == 1

    def test_invalid_type_returns_400_and_is_not_stored(self, client, db):
        article = insert_article(db)

        response = client.post(f"/articles/{article.id}/interaction", json={"type": "share"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid interaction type"
        assert db.query(Interaction).count() == 0

    def test_missing_article_returns_404(self, client, db):
        response = client.post("/articles/999/interaction", json={"type": "click"})
        assert response.status_code == 404

    def test_missing_type_returns_422(self, client, db):
        article = insert_article(db)
        response = client.post(f"/articles/{article.id}/interaction", json={})
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# GET /profile
# ---------------------------------------------------------------------------

class TestProfile:
    def test_empty_profile(self, client):
        assert client.get("/profile").json() == {"keywords": [], "sources": [], "categories": []}

    def test_profile_after_thumbs_up(self, client, db):
        article = insert_article(db, feed_title="Lobsters", feed_category="development")
        client.post(f"/articles/{article.id}/interaction", json={"type": "thumbs_up"})

        body = client.get("/profile").json()

        assert {k["name"] for k in body["keywords"]} == {"rust", "wasm"}
        assert body["sources"][0]["name"] == "Lobsters"
        assert body["categories"][0]["weight"] == pytest.approx(5.0, rel=1e-3)

    def test_thumbs_down_keywords_excluded(self, client, db):
        article = insert_article(db, keywords=["crypto"])
        client.post(f"/articles/{article.id}/interaction", json={"type": "thumbs_down"})

        body = client.get("/profile").json()

        assert body["keywords"] == []


# ---------------------------------------------------------------------------
# Plain article access
# ---------------------------------------------------------------------------

class TestArticles:
    def test_list_filters_by_category(self, client, db):
        insert_article(db, title="keep", feed_category="diy")
        insert_article(db, title="drop", feed_category="development")

        titles = [a["title"] for a in client.get("/articles", params={"category": "diy"}).json()]

        assert titles == ["keep"]

    def test_list_does_not_count_views(self, client, db):
        article = insert_article(db)
        client.get("/articles")
        db.expire_all()
        assert db.get(Article, article.id).view_count == 0

    def test_invalid_sort_returns_422(self, client):
        assert client.get("/articles", params={"sort": "title"}).status_code == 422

    def test_get_single_article_counts_view(self, client, db):
        article = insert_article(db)

        body = client.get(f"/articles/{article.id}").json()

        assert body["id"] == article.id
        assert body["view_count"] == 1

    def test_get_missing_article_returns_404(self, client):
        assert client.get("/articles/999").status_code == 404

    def test_malformed_keywords_served_as_empty(self, client, db):
        article = insert_article(db, keywords={"not": "a list"})
        body = client.get(f"/articles/{article.id}").json()
        assert body["keywords"] == []

    def test_categories_distinct(self, client, db):
        insert_article(db, feed_category="diy")
        insert_article(db, feed_category="diy")
        insert_article(db, feed_category="development")

        assert client.get("/categories").json() == ["development", "diy"]

    def test_admin_stats(self, client, db):
        article = insert_article(db)
        client.post(f"/articles/{article.id}/interaction", json={"type": "click"})

        body = client.get("/admin/stats").json()

        assert body["recent_articles_count"] == 1
        assert body["interactions"] == [{"interaction_type": "click", "count": 1, "unique_articles": 1}]
        assert body["profile"]["keyword_count"] == 2


# ---------------------------------------------------------------------------
# POST /ingest and /fetch
# ---------------------------------------------------------------------------

class TestIngest:
    def test_returns_200_and_acknowledgment(self, client, db):
        response = client.post("/ingest", json=[make_payload()])

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "received": 1}
        assert db.query(Article).one().keywords == ["rust"]

    def test_empty_batch_returns_zero_count(self, client):
        response = client.post("/ingest", json=[])
        assert response.status_code == 200
        assert response.json()["received"] == 0

    def test_missing_required_field_returns_422(self, client):
        # 'feed_title' is required: omitting it should fail validation
        payload = [{"title": "x", "feed_category": "y"}]
        response = client.post("/ingest", json=payload)
        assert response.status_code == 422

    def test_duplicate_guid_stored_once(self, client, db):
        client.post("/ingest", json=[make_payload(), make_payload(title="Updated")])
        assert db.query(Article).count() == 1

    def test_fetch_runs_one_cycle(self, client):
        with patch("app.routes.articles.FetcherService.fetch_all", return_value=3) as mock_fetch:
            response = client.post("/fetch")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "stored": 3}
        mock_fetch.assert_called_once()
