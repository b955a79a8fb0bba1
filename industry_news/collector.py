"""
Collection pipeline shared by every trigger (scheduler, API, command line).

For each active source: fetch the feed or listing page, extract and filter
candidate links, skip URLs already stored, resolve publish dates for the rest
and hand them to the persist gate. Each source writes its stats and exactly
one run log, and one failing source never stops the others.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

from .llm.client import LLMClient
from .processor.classifier import IndustryClassifier
from .processor.date_resolver import DateResolver, is_valid_date
from .processor.summarizer import TitleSummarizer
from .scraper.extractor import LinkExtractor
from .scraper.feed_reader import parse_feed
from .scraper.fetcher import Fetcher, FetchError
from .scraper.noise_filter import NoiseFilter
from .storage.database import DatabaseManager
from .storage.models import CandidateArticle, CollectionRunLog, Industry, Source, SourceConfig
from .storage.persist_gate import PersistGate
from .utils.config import Config

DEFAULT_ARTICLE_LIMIT = 20

STATUS_SUCCESS = 'success'
STATUS_FAILED = 'failed'
CANCELLED_ERROR = 'cancelled'


@dataclass
class SourceResult:
    source_id: int
    status: str = STATUS_SUCCESS
    count: int = 0
    error: Optional[str] = None


@dataclass
class CollectionResult:
    sources_attempted: int = 0
    sources_succeeded: int = 0
    articles_inserted: int = 0
    per_source_results: List[SourceResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CollectionPipeline:
    def __init__(self, db: DatabaseManager, fetcher: Fetcher, extractor: LinkExtractor,
                 noise_filter: NoiseFilter, date_resolver: DateResolver, gate: PersistGate,
                 collection_config: Optional[Dict[str, Any]] = None):
        collection_config = collection_config or {}
        self.db = db
        self.fetcher = fetcher
        self.extractor = extractor
        self.noise_filter = noise_filter
        self.date_resolver = date_resolver
        self.gate = gate
        self.article_limit = collection_config.get('article_limit', DEFAULT_ARTICLE_LIMIT)
        self.concurrency = max(1, int(collection_config.get('concurrency', 1)))
        self.logger = logging.getLogger('collector')

    def run_collection(self, source_ids: Optional[Iterable[int]] = None,
                       now: Optional[datetime] = None,
                       stop_event: Optional[threading.Event] = None) -> CollectionResult:
        sources = self.db.get_sources(active_only=True, source_ids=source_ids)
        industries = self.db.get_industries(active_only=True)
        result = CollectionResult(sources_attempted=len(sources))

        if not sources:
            self.logger.info("No active sources to collect")
            return result

        self.logger.info(f"Collecting from {len(sources)} sources")

        def run_one(source: Source) -> SourceResult:
            if stop_event is not None and stop_event.is_set():
                return SourceResult(source_id=source.id, status=STATUS_FAILED, error=CANCELLED_ERROR)
            return self.collect_source(source, industries, now=now, stop_event=stop_event)

        if self.concurrency > 1 and len(sources) > 1:
            with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
                source_results = list(executor.map(run_one, sources))
        else:
            source_results = [run_one(source) for source in sources]

        for source_result in source_results:
            result.per_source_results.append(source_result)
            # A source that fails part-way still reports the rows it wrote
            result.articles_inserted += source_result.count
            if source_result.status == STATUS_SUCCESS:
                result.sources_succeeded += 1

        self.logger.info(
            f"Collection finished: {result.sources_succeeded}/{result.sources_attempted} sources, "
            f"{result.articles_inserted} new articles"
        )
        return result

    def collect_source(self, source: Source, industries: List[Industry],
                       now: Optional[datetime] = None,
                       stop_event: Optional[threading.Event] = None) -> SourceResult:
        started_at = datetime.now()
        # One timestamp per source run anchors relative dates and fallbacks
        run_now = now or started_at
        source_result = SourceResult(source_id=source.id)

        try:
            self.logger.info(f"Collecting from: {source.name}")
            candidates = self.fetch_candidates(source, run_now)
            source_result.error = self._store_candidates(
                source_result, source, candidates, industries, run_now, stop_event)
        except FetchError as e:
            source_result.error = e.message
        except Exception as e:
            self.logger.exception(f"Unexpected error collecting {source.name}")
            source_result.error = f"{type(e).__name__}: {e}"

        if source_result.error:
            source_result.status = STATUS_FAILED
            self.logger.warning(f"Source {source.name} failed: {source_result.error}")
        else:
            self.logger.info(f"Source {source.name}: {source_result.count} new articles")

        self.db.update_source_stats(source.id, source_result.status == STATUS_SUCCESS,
                                    run_now, source_result.error)
        self.db.insert_run_log(CollectionRunLog(
            source_id=source.id,
            status=source_result.status,
            articles_count=source_result.count,
            error_message=source_result.error,
            started_at=started_at,
            finished_at=datetime.now()
        ))
        return source_result

    def fetch_candidates(self, source: Source, now: datetime) -> List[CandidateArticle]:
        config = source.config
        limit = config.article_limit or self.article_limit
        base_host = urlparse(source.url).hostname or ''

        if config.rss_url:
            try:
                candidates = self._feed_candidates(source, base_host, limit, now)
            except FetchError as e:
                self.logger.warning(f"Feed for {source.name} unavailable ({e.message}), using listing page")
                candidates = []
            if candidates:
                return candidates
            self.logger.info(f"Feed for {source.name} had no usable entries, using listing page")

        html = self.fetcher.fetch(source.url, encoding=config.encoding)
        candidates = self.extractor.extract(html, source.url, limit,
                                            noise_filter=self.noise_filter,
                                            link_selector=config.link_selector)
        self.logger.debug(f"Extracted {len(candidates)} candidates from {source.url}")
        return candidates

    def _feed_candidates(self, source: Source, base_host: str, limit: int,
                         now: datetime) -> List[CandidateArticle]:
        content = self.fetcher.fetch(source.config.rss_url, encoding=source.config.encoding)
        candidates = []
        for candidate in parse_feed(content, source.url):
            if len(candidates) >= limit:
                break
            reason = self.noise_filter.reason(candidate.title, candidate.url, base_host)
            if reason:
                self.logger.debug(f"Skipping feed entry {candidate.url}: {reason}")
                continue
            if candidate.published_at is not None and not is_valid_date(candidate.published_at, now):
                candidate.published_at = None
                candidate.date_source = None
            candidates.append(candidate)
        return candidates

    def _resolve_date(self, candidate: CandidateArticle, source: Source, now: datetime):
        if candidate.published_at is not None:
            return
        try:
            resolved = self.date_resolver.resolve(
                candidate.url,
                context=candidate.raw_date_hint,
                custom_selector=source.config.date_selector,
                now=now,
                encoding=source.config.encoding
            )
        except Exception:
            # The persist gate stamps the collection time instead
            self.logger.exception(f"Date resolution failed for {candidate.url}")
            return
        if resolved is not None:
            candidate.published_at = resolved.value
            candidate.date_source = resolved.source

    def _store_candidates(self, source_result: SourceResult, source: Source,
                          candidates: List[CandidateArticle], industries: List[Industry],
                          now: datetime, stop_event: Optional[threading.Event]) -> Optional[str]:
        """Persist new candidates, counting inserts on ``source_result`` as they land.

        Returns the source error, if every attempted write failed.
        """
        attempted = 0
        write_errors = 0
        last_error = None

        for candidate in candidates:
            if stop_event is not None and stop_event.is_set():
                self.logger.info(f"Stop requested, leaving {source.name} early")
                break

            if self.gate.is_known(candidate.url):
                continue

            self._resolve_date(candidate, source, now)

            attempted += 1
            try:
                outcome = self.gate.persist(candidate, source, industries, now)
            except Exception as e:
                self.logger.exception(f"Failed to store {candidate.url}")
                write_errors += 1
                last_error = f"{type(e).__name__}: {e}"
                continue

            if outcome.inserted:
                source_result.count += 1
            elif outcome.failed:
                write_errors += 1
                last_error = outcome.error

        if attempted and write_errors == attempted:
            return f"{write_errors} article writes failed: {last_error}"
        return None


def sync_from_config(db: DatabaseManager, config: Config):
    """Upsert the industries and sources declared in the config file."""
    logger = logging.getLogger('collector')
    industry_ids = {}

    for industry_config in config.get_industries():
        slug = industry_config.get('slug') or industry_config.get('name')
        if not slug:
            continue
        industry_ids[slug] = db.add_industry(Industry(
            name=industry_config.get('name', slug),
            slug=slug,
            keywords=industry_config.get('keywords', []),
            is_active=industry_config.get('active', True)
        ))

    for source_config in config.get_sources():
        url = source_config.get('url')
        if not url:
            logger.warning(f"Skipping source without url: {source_config.get('name')}")
            continue
        industry_slug = source_config.get('industry')
        if industry_slug and industry_slug not in industry_ids:
            logger.warning(f"Source {url} references unknown industry {industry_slug}")
        db.add_source(Source(
            name=source_config.get('name', url),
            url=url,
            industry_id=industry_ids.get(industry_slug),
            tier=source_config.get('tier', 2),
            config=SourceConfig.from_dict(source_config.get('config')),
            is_active=source_config.get('active', True)
        ))

    logger.info(f"Synced {len(industry_ids)} industries and {len(config.get_sources())} sources from config")


def build_pipeline(config: Config, db: Optional[DatabaseManager] = None) -> CollectionPipeline:
    if db is None:
        db_config = config.get_database_config()
        db = DatabaseManager(db_config.get('path', 'data/industry-news.db'))

    fetcher = Fetcher(config.get_scraping_config())
    collection_config = config.get_collection_config()

    llm_client = LLMClient(config.get_llm_config())
    summarizer = TitleSummarizer(llm_client if collection_config.get('summarize', True) else None)
    gate = PersistGate(db, classifier=IndustryClassifier(llm_client), summarizer=summarizer)

    return CollectionPipeline(
        db=db,
        fetcher=fetcher,
        extractor=LinkExtractor(),
        noise_filter=NoiseFilter(),
        date_resolver=DateResolver(fetcher),
        gate=gate,
        collection_config=collection_config
    )
