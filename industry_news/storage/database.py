import sqlite3
import os
import json
from datetime import datetime
from typing import List, Optional, Any, Iterable
from contextlib import contextmanager

from .models import Article, Source, SourceConfig, Industry, CollectionRunLog, DateSource


def _to_db_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_db_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class DatabaseManager:
    def __init__(self, db_path: str, busy_timeout: float = 30.0):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        self._init_database()

    def _init_database(self):
        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS industries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    slug TEXT UNIQUE NOT NULL,
                    keywords TEXT NOT NULL DEFAULT '[]',
                    is_active BOOLEAN DEFAULT TRUE,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS sources (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    url TEXT UNIQUE NOT NULL,
                    industry_id INTEGER,
                    tier INTEGER DEFAULT 2,
                    config TEXT NOT NULL DEFAULT '{}',
                    is_active BOOLEAN DEFAULT TRUE,
                    success_count INTEGER DEFAULT 0,
                    error_count INTEGER DEFAULT 0,
                    last_error TEXT,
                    last_collected_at TIMESTAMP,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (industry_id) REFERENCES industries (id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS articles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_id INTEGER,
                    industry_id INTEGER,
                    title TEXT NOT NULL,
                    url TEXT NOT NULL,
                    url_hash TEXT UNIQUE NOT NULL,
                    publish_date TIMESTAMP,
                    date_source TEXT NOT NULL DEFAULT 'fallback',
                    summary TEXT,
                    score INTEGER DEFAULT 0,
                    score_relevance INTEGER DEFAULT 0,
                    score_timeliness INTEGER DEFAULT 0,
                    score_impact INTEGER DEFAULT 0,
                    score_credibility INTEGER DEFAULT 0,
                    priority TEXT DEFAULT 'medium',
                    is_featured BOOLEAN DEFAULT FALSE,
                    is_deleted BOOLEAN DEFAULT FALSE,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (source_id) REFERENCES sources (id),
                    FOREIGN KEY (industry_id) REFERENCES industries (id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS collect_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_id INTEGER,
                    status TEXT NOT NULL,
                    articles_count INTEGER DEFAULT 0,
                    error_message TEXT,
                    started_at TIMESTAMP NOT NULL,
                    finished_at TIMESTAMP,
                    FOREIGN KEY (source_id) REFERENCES sources (id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('CREATE INDEX IF NOT EXISTS idx_articles_industry ON articles(industry_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_articles_publish_date ON articles(publish_date)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_articles_score ON articles(score)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_collect_logs_source ON collect_logs(source_id)')

            conn.commit()

    @contextmanager
    def get_connection(self):
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # Industries

    def add_industry(self, industry: Industry) -> int:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO industries (name, slug, keywords, is_active)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(slug) DO UPDATE SET
                    name = excluded.name,
                    keywords = excluded.keywords,
                    is_active = excluded.is_active
            ''', (industry.name, industry.slug,
                  json.dumps(industry.keywords, ensure_ascii=False), industry.is_active))
            conn.commit()
            cursor.execute('SELECT id FROM industries WHERE slug = ?', (industry.slug,))
            return cursor.fetchone()[0]

    def get_industries(self, active_only: bool = True) -> List[Industry]:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            query = "SELECT * FROM industries"
            if active_only:
                query += " WHERE is_active = TRUE"
            query += " ORDER BY id"

            cursor.execute(query)
            return [Industry(
                id=row['id'],
                name=row['name'],
                slug=row['slug'],
                keywords=json.loads(row['keywords'] or '[]'),
                is_active=bool(row['is_active'])
            ) for row in cursor.fetchall()]

    # Sources

    def add_source(self, source: Source) -> int:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO sources (name, url, industry_id, tier, config, is_active)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                    name = excluded.name,
                    industry_id = excluded.industry_id,
                    tier = excluded.tier,
                    config = excluded.config,
                    is_active = excluded.is_active
            ''', (source.name, source.url, source.industry_id, source.tier,
                  source.config.to_json(), source.is_active))
            conn.commit()
            cursor.execute('SELECT id FROM sources WHERE url = ?', (source.url,))
            return cursor.fetchone()[0]

    def _row_to_source(self, row) -> Source:
        return Source(
            id=row['id'],
            name=row['name'],
            url=row['url'],
            industry_id=row['industry_id'],
            tier=row['tier'] if row['tier'] is not None else 2,
            config=SourceConfig.from_json(row['config']),
            is_active=bool(row['is_active']),
            success_count=row['success_count'],
            error_count=row['error_count'],
            last_error=row['last_error'],
            last_collected_at=_from_db_time(row['last_collected_at'])
        )

    def get_sources(self, active_only: bool = True,
                    source_ids: Optional[Iterable[int]] = None) -> List[Source]:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            query = "SELECT * FROM sources"
            clauses = []
            params: List[Any] = []

            if active_only:
                clauses.append("is_active = TRUE")
            if source_ids is not None:
                ids = list(source_ids)
                if not ids:
                    return []
                clauses.append(f"id IN ({', '.join('?' for _ in ids)})")
                params.extend(ids)

            if clauses:
                query += " WHERE " + " AND ".join(clauses)
            query += " ORDER BY id"

            cursor.execute(query, params)
            return [self._row_to_source(row) for row in cursor.fetchall()]

    def get_source(self, source_id: int) -> Optional[Source]:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM sources WHERE id = ?", (source_id,))
            row = cursor.fetchone()
            return self._row_to_source(row) if row else None

    def update_source_stats(self, source_id: int, success: bool, timestamp: datetime,
                            error_message: Optional[str] = None):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            if success:
                cursor.execute('''
                    UPDATE sources
                    SET success_count = success_count + 1,
                        last_collected_at = ?,
                        last_error = NULL
                    WHERE id = ?
                ''', (_to_db_time(timestamp), source_id))
            else:
                cursor.execute('''
                    UPDATE sources
                    SET error_count = error_count + 1,
                        last_error = ?
                    WHERE id = ?
                ''', (error_message, source_id))
            conn.commit()

    # Articles

    def _row_to_article(self, row) -> Article:
        return Article(
            id=row['id'],
            source_id=row['source_id'],
            industry_id=row['industry_id'],
            title=row['title'],
            url=row['url'],
            url_hash=row['url_hash'],
            publish_date=_from_db_time(row['publish_date']),
            date_source=DateSource(row['date_source']),
            summary=row['summary'],
            score=row['score'],
            score_relevance=row['score_relevance'],
            score_timeliness=row['score_timeliness'],
            score_impact=row['score_impact'],
            score_credibility=row['score_credibility'],
            priority=row['priority'],
            is_featured=bool(row['is_featured']),
            is_deleted=bool(row['is_deleted']),
            created_at=_from_db_time(row['created_at'])
        )

    def find_article_by_url_hash(self, url_hash: str) -> Optional[Article]:
        # Deleted rows count too, a soft-deleted article is never re-collected.
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM articles WHERE url_hash = ?", (url_hash,))
            row = cursor.fetchone()
            return self._row_to_article(row) if row else None

    def insert_article(self, article: Article) -> Optional[int]:
        """Insert an article, returning its id, or None if the url_hash already exists."""
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute('''
                    INSERT INTO articles
                    (source_id, industry_id, title, url, url_hash, publish_date, date_source,
                     summary, score, score_relevance, score_timeliness, score_impact,
                     score_credibility, priority, is_featured, is_deleted, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', (
                    article.source_id, article.industry_id, article.title, article.url,
                    article.url_hash, _to_db_time(article.publish_date), article.date_source.value,
                    article.summary, article.score, article.score_relevance,
                    article.score_timeliness, article.score_impact, article.score_credibility,
                    article.priority, article.is_featured, article.is_deleted,
                    _to_db_time(article.created_at or datetime.now())
                ))
                conn.commit()
                return cursor.lastrowid
        except sqlite3.IntegrityError:
            return None

    def get_articles(self, limit: int = 50, offset: int = 0,
                     source_id: Optional[int] = None) -> List[Article]:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            query = "SELECT * FROM articles WHERE is_deleted = FALSE"
            params: List[Any] = []

            if source_id is not None:
                query += " AND source_id = ?"
                params.append(source_id)

            query += " ORDER BY publish_date DESC, id DESC LIMIT ? OFFSET ?"
            params.extend([limit, offset])

            cursor.execute(query, params)
            return [self._row_to_article(row) for row in cursor.fetchall()]

    def get_article_count(self, source_id: Optional[int] = None) -> int:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            if source_id is None:
                cursor.execute('SELECT COUNT(*) FROM articles')
            else:
                cursor.execute('SELECT COUNT(*) FROM articles WHERE source_id = ?', (source_id,))
            return cursor.fetchone()[0]

    # Run logs

    def insert_run_log(self, log: CollectionRunLog) -> int:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO collect_logs
                (source_id, status, articles_count, error_message, started_at, finished_at)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (log.source_id, log.status, log.articles_count, log.error_message,
                  _to_db_time(log.started_at), _to_db_time(log.finished_at)))
            conn.commit()
            return cursor.lastrowid

    def get_run_logs(self, limit: int = 50, source_id: Optional[int] = None) -> List[CollectionRunLog]:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            query = "SELECT * FROM collect_logs"
            params: List[Any] = []

            if source_id is not None:
                query += " WHERE source_id = ?"
                params.append(source_id)

            query += " ORDER BY id DESC LIMIT ?"
            params.append(limit)

            cursor.execute(query, params)
            return [CollectionRunLog(
                id=row['id'],
                source_id=row['source_id'],
                status=row['status'],
                articles_count=row['articles_count'],
                error_message=row['error_message'],
                started_at=_from_db_time(row['started_at']),
                finished_at=_from_db_time(row['finished_at'])
            ) for row in cursor.fetchall()]

    # Settings

    def get_setting(self, key: str, default: Any = None) -> Any:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value FROM settings WHERE key = ?", (key,))
            row = cursor.fetchone()
            return json.loads(row['value']) if row else default

    def set_setting(self, key: str, value: Any):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO settings (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
            ''', (key, json.dumps(value, ensure_ascii=False)))
            conn.commit()
