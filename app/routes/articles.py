import logging
from datetime import datetime, timedelta, timezone
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal, get_db
from app.fetcher import FetcherService
from app.recommender import ArticleNotFoundError, Recommendation, RecommendationService
from app.schemas import (
    ArticleIngest,
    ArticleResponse,
    InteractionCreate,
    ProfileResponse,
    ScoredArticleResponse,
    SimilarArticleResponse,
)
from app.similarity import SimilarArticle
from app.storage import ArticleStore, InvalidInteractionError

logger = logging.getLogger(__name__)

router = APIRouter()

STATS_WINDOW_DAYS = 3


def get_store(db: Session = Depends(get_db)) -> ArticleStore:
    return ArticleStore(db)


def get_service(store: ArticleStore = Depends(get_store)) -> RecommendationService:
    return RecommendationService(store, settings)


def _scored(rec: Recommendation) -> ScoredArticleResponse:
    data = ArticleResponse.model_validate(rec.article).model_dump()
    if rec.breakdown is not None:
        data.update(rec.breakdown.as_dict())
    return ScoredArticleResponse(**data)


def _similar(item: SimilarArticle) -> SimilarArticleResponse:
    data = ArticleResponse.model_validate(item.article).model_dump()
    return SimilarArticleResponse(
        **data,
        similarity=item.similarity,
        interaction_score=item.interaction_score,
        score=item.score,
    )


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

@router.get("/recommendations", response_model=List[ScoredArticleResponse])
def recommendations(
    limit: int = Query(settings.DEFAULT_RECOMMENDATION_LIMIT, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: RecommendationService = Depends(get_service),
):
    """
    Return one page of personalized recommendations with every score component.
    Each returned article gets one more view.
    """
    page = service.get_recommended_articles(limit=limit, offset=offset)
    logger.info(f"[/recommendations] Returning {len(page)} articles (limit={limit}, offset={offset})")
    return [_scored(rec) for rec in page]


@router.get("/articles/{article_id}/similar", response_model=List[SimilarArticleResponse])
def similar_articles(
    article_id: int,
    limit: int = Query(settings.DEFAULT_SIMILAR_LIMIT, ge=1, le=200),
    service: RecommendationService = Depends(get_service),
):
    """Return recent same-category articles sharing keywords with the given one."""
    try:
        similar = service.get_similar_articles(article_id, limit=limit)
    except ArticleNotFoundError:
        raise HTTPException(status_code=404, detail="Article not found")
    logger.info(f"[/articles/{article_id}/similar] Returning {len(similar)} articles")
    return [_similar(item) for item in similar]


@router.post("/articles/{article_id}/interaction")
def record_interaction(
    article_id: int,
    body: InteractionCreate,
    service: RecommendationService = Depends(get_service),
):
    """Record a click, thumbs_up or thumbs_down. Anything else is a 400 and is not stored."""
    try:
        service.record_interaction(article_id, body.type)
    except InvalidInteractionError:
        raise HTTPException(status_code=400, detail="Invalid interaction type")
    except ArticleNotFoundError:
        raise HTTPException(status_code=404, detail="Article not found")
    return {"success": True}


@router.get("/profile", response_model=ProfileResponse)
def profile(service: RecommendationService = Depends(get_service)):
    """Return the current preference profile as descending-weight lists."""
    current = service.get_profile()
    logger.info(f"[/profile] {len(current.keywords)} keywords in profile")
    return current.as_lists()


# ---------------------------------------------------------------------------
# Plain article access
# ---------------------------------------------------------------------------

@router.get("/articles", response_model=List[ArticleResponse])
def list_articles(
    category: Optional[str] = None,
    feed_title: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    sort: Literal["stored_at", "published_at"] = "stored_at",
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    store: ArticleStore = Depends(get_store),
):
    """Filtered article listing, newest first. No scoring, no view counting."""
    articles = store.get_articles(
        category=category,
        feed_title=feed_title,
        date_from=date_from,
        date_to=date_to,
        sort=sort,
        limit=limit,
        offset=offset,
    )
    logger.info(f"[/articles] Returning {len(articles)} articles")
    return articles


@router.get("/articles/{article_id}", response_model=ArticleResponse)
def get_article(article_id: int, store: ArticleStore = Depends(get_store)):
    """Return one article and count the view."""
    article = store.get_article_by_id(article_id)
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    store.increment_view_count(article_id)
    return article


@router.get("/categories", response_model=List[str])
def categories(store: ArticleStore = Depends(get_store)):
    return store.list_categories()


@router.get("/admin/stats")
def admin_stats(service: RecommendationService = Depends(get_service)):
    """Recent activity and the current profile, for inspecting how the engine sees the user."""
    since = datetime.now(timezone.utc) - timedelta(days=STATS_WINDOW_DAYS)
    current = service.get_profile().as_lists()
    return {
        "recent_articles_count": service.store.count_articles_since(since),
        "interactions": service.store.interaction_stats(since),
        "profile": {
            "keyword_count": len(current["keywords"]),
            "keywords": current["keywords"],
            "category_preferences": current["categories"],
        },
    }


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

@router.post("/ingest", status_code=200)
def ingest(articles: List[ArticleIngest], store: ArticleStore = Depends(get_store)):
    """
    Accept a batch of articles and persist them.
    Returns an acknowledgment with the count of articles received.
    """
    logger.info(f"[/ingest] Received batch of {len(articles)} articles")
    for article in articles:
        store.save_article(article, settings.MAX_KEYWORDS_PER_ARTICLE)
    return {"status": "ok", "received": len(articles)}


@router.post("/fetch")
def trigger_fetch():
    """Trigger an immediate fetch of all RSS feeds. Blocks until complete."""
    stored = FetcherService().fetch_all(SessionLocal)
    return {"status": "ok", "stored": stored}
