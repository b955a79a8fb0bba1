from fastapi import FastAPI, Query, Depends
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from typing import List, Optional, Dict, Any
from datetime import datetime

from ..collector import CollectionPipeline, build_pipeline
from ..storage.database import DatabaseManager
from ..storage.models import Article
from ..utils.config import get_config

app = FastAPI(title="Industry News Collector", version="1.0.0")

_db_manager: Optional[DatabaseManager] = None
_pipeline: Optional[CollectionPipeline] = None


class CollectRequest(BaseModel):
    source_ids: Optional[List[int]] = None


def get_db() -> DatabaseManager:
    global _db_manager
    if _db_manager is None:
        db_config = get_config().get_database_config()
        _db_manager = DatabaseManager(db_config.get('path', 'data/industry-news.db'))
    return _db_manager


def get_pipeline() -> CollectionPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline(get_config(), get_db())
    return _pipeline


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _article_to_dict(article: Article) -> Dict[str, Any]:
    return {
        "id": article.id,
        "source_id": article.source_id,
        "industry_id": article.industry_id,
        "title": article.title,
        "url": article.url,
        "summary": article.summary,
        "publish_date": _isoformat(article.publish_date),
        "date_source": article.date_source.value,
        "score": article.score,
        "priority": article.priority,
        "created_at": _isoformat(article.created_at)
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": "1.0.0"
    }


@app.post("/api/collect")
async def trigger_collection(
    request: Optional[CollectRequest] = None,
    pipeline: CollectionPipeline = Depends(get_pipeline)
):
    source_ids = request.source_ids if request else None
    # The pipeline blocks on network and sqlite, keep it off the event loop
    result = await run_in_threadpool(pipeline.run_collection, source_ids)
    return {
        "message": "Collection completed",
        **result.to_dict(),
        "timestamp": datetime.now().isoformat()
    }


@app.get("/api/collect/logs")
async def get_collect_logs(
    limit: int = Query(50, ge=1, le=500),
    source_id: Optional[int] = Query(None),
    db: DatabaseManager = Depends(get_db)
):
    logs = db.get_run_logs(limit=limit, source_id=source_id)
    return [
        {
            "id": log.id,
            "source_id": log.source_id,
            "status": log.status,
            "articles_count": log.articles_count,
            "error_message": log.error_message,
            "started_at": _isoformat(log.started_at),
            "finished_at": _isoformat(log.finished_at)
        }
        for log in logs
    ]


@app.get("/api/sources")
async def get_sources(
    active_only: bool = Query(False),
    db: DatabaseManager = Depends(get_db)
):
    sources = db.get_sources(active_only=active_only)
    return [
        {
            "id": source.id,
            "name": source.name,
            "url": source.url,
            "industry_id": source.industry_id,
            "tier": source.tier,
            "is_active": source.is_active,
            "success_count": source.success_count,
            "error_count": source.error_count,
            "last_error": source.last_error,
            "last_collected_at": _isoformat(source.last_collected_at)
        }
        for source in sources
    ]


@app.get("/api/articles")
async def get_articles(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    source_id: Optional[int] = Query(None),
    db: DatabaseManager = Depends(get_db)
):
    articles = db.get_articles(limit=limit, offset=offset, source_id=source_id)
    return [_article_to_dict(article) for article in articles]
