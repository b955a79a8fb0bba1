import pytest
from httpx import AsyncClient
from unittest.mock import Mock

from industry_news.web.app import app, get_db, get_pipeline
from industry_news.collector import CollectionResult, SourceResult
from industry_news.storage.models import Article, Source, CollectionRunLog, DateSource
from datetime import datetime


@pytest.fixture(scope="function")
def mock_db():
    return Mock()


@pytest.fixture(scope="function")
def mock_pipeline():
    return Mock()


@pytest.fixture(scope="function")
async def client(mock_db, mock_pipeline):
    from httpx import ASGITransport

    # Override the dependencies
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_pipeline] = lambda: mock_pipeline

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    # Clean up after test
    app.dependency_overrides.clear()


class TestAPI:
    @pytest.mark.asyncio
    async def test_health_endpoint(self, client):
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert "version" in data

    @pytest.mark.asyncio
    async def test_trigger_collection(self, client, mock_pipeline):
        mock_pipeline.run_collection.return_value = CollectionResult(
            sources_attempted=2,
            sources_succeeded=1,
            articles_inserted=5,
            per_source_results=[
                SourceResult(source_id=1, status="success", count=5),
                SourceResult(source_id=2, status="failed", error="HTTP 503"),
            ]
        )

        response = await client.post("/api/collect", json={"source_ids": [1, 2]})
        assert response.status_code == 200

        data = response.json()
        assert data["sources_attempted"] == 2
        assert data["sources_succeeded"] == 1
        assert data["articles_inserted"] == 5
        assert data["per_source_results"][1] == {
            "source_id": 2, "status": "failed", "count": 0, "error": "HTTP 503"
        }
        mock_pipeline.run_collection.assert_called_once_with([1, 2])

    @pytest.mark.asyncio
    async def test_trigger_collection_without_body(self, client, mock_pipeline):
        mock_pipeline.run_collection.return_value = CollectionResult()

        response = await client.post("/api/collect")
        assert response.status_code == 200
        assert response.json()["sources_attempted"] == 0
        mock_pipeline.run_collection.assert_called_once_with(None)

    @pytest.mark.asyncio
    async def test_trigger_collection_rejects_bad_ids(self, client, mock_pipeline):
        response = await client.post("/api/collect", json={"source_ids": ["abc"]})
        assert response.status_code == 422
        mock_pipeline.run_collection.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_collect_logs(self, client, mock_db):
        started = datetime(2025, 6, 10, 8, 0)
        mock_db.get_run_logs.return_value = [
            CollectionRunLog(id=3, source_id=2, status="failed", error_message="HTTP 503",
                             started_at=started, finished_at=started)
        ]

        response = await client.get("/api/collect/logs?limit=10&source_id=2")
        assert response.status_code == 200

        data = response.json()
        assert len(data) == 1
        assert data[0]["status"] == "failed"
        assert data[0]["error_message"] == "HTTP 503"
        assert data[0]["started_at"] == "2025-06-10T08:00:00"
        mock_db.get_run_logs.assert_called_once_with(limit=10, source_id=2)

    @pytest.mark.asyncio
    async def test_get_sources_endpoint(self, client, mock_db):
        mock_source = Source(
            id=1,
            name="Test Source",
            url="https://example.com/news/",
            industry_id=3,
            tier=1,
            is_active=True,
            success_count=10,
            error_count=2,
            last_error="HTTP 503",
            last_collected_at=datetime(2025, 6, 10, 8, 0)
        )
        mock_db.get_sources.return_value = [mock_source]

        response = await client.get("/api/sources")
        assert response.status_code == 200

        data = response.json()
        assert len(data) == 1
        assert data[0]["name"] == "Test Source"
        assert data[0]["success_count"] == 10
        assert data[0]["error_count"] == 2
        assert data[0]["last_error"] == "HTTP 503"
        assert data[0]["last_collected_at"] == "2025-06-10T08:00:00"
        mock_db.get_sources.assert_called_once_with(active_only=False)

    @pytest.mark.asyncio
    async def test_get_articles_endpoint(self, client, mock_db):
        mock_db.get_articles.return_value = [Article(
            id=1,
            source_id=1,
            industry_id=3,
            title="某数据中心完成新一轮融资",
            url="https://example.com/news/1.html",
            url_hash="abc",
            publish_date=datetime(2025, 6, 1),
            date_source=DateSource.INFERRED,
            score=85
        )]

        response = await client.get("/api/articles?limit=5")
        assert response.status_code == 200

        data = response.json()
        assert data[0]["title"] == "某数据中心完成新一轮融资"
        assert data[0]["date_source"] == "inferred"
        assert data[0]["publish_date"] == "2025-06-01T00:00:00"
        mock_db.get_articles.assert_called_once_with(limit=5, offset=0, source_id=None)

    @pytest.mark.asyncio
    async def test_invalid_limit(self, client):
        response = await client.get("/api/articles?limit=0")
        assert response.status_code == 422
