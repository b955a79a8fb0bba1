import hashlib
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .database import DatabaseManager
from .models import Article, CandidateArticle, DateSource, Industry, Source, DEFAULT_PRIORITY
from ..processor.classifier import IndustryClassifier
from ..processor.scorer import calculate_score
from ..processor.summarizer import TitleSummarizer


def url_hash(url: str) -> str:
    return hashlib.md5(url.encode('utf-8')).hexdigest()


@dataclass
class PersistOutcome:
    inserted: bool = False
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class PersistGate:
    """Deduplicates candidates by URL hash and stores new ones as scored articles."""

    def __init__(self, db: DatabaseManager, classifier: Optional[IndustryClassifier] = None,
                 summarizer: Optional[TitleSummarizer] = None):
        self.db = db
        self.classifier = classifier or IndustryClassifier()
        self.summarizer = summarizer or TitleSummarizer()
        self.logger = logging.getLogger('persist_gate')

    def is_known(self, url: str) -> bool:
        return self.db.find_article_by_url_hash(url_hash(url)) is not None

    def build_article(self, candidate: CandidateArticle, source: Source,
                      industries: List[Industry], now: datetime) -> Article:
        score = calculate_score(candidate.title, source.tier)
        summary = self.summarizer.summarize(candidate.title)
        industry_id = self.classifier.resolve(candidate.title, summary, industries, source.industry_id)

        if candidate.published_at is not None:
            publish_date = candidate.published_at
            date_source = candidate.date_source or DateSource.INFERRED
        else:
            publish_date = now
            date_source = DateSource.FALLBACK

        return Article(
            source_id=source.id,
            industry_id=industry_id,
            title=candidate.title,
            url=candidate.url,
            url_hash=url_hash(candidate.url),
            publish_date=publish_date,
            date_source=date_source,
            summary=summary,
            score_relevance=score.relevance,
            score_timeliness=score.timeliness,
            score_impact=score.impact,
            score_credibility=score.credibility,
            score=score.total,
            priority=DEFAULT_PRIORITY,
            created_at=now
        )

    def persist(self, candidate: CandidateArticle, source: Source,
                industries: List[Industry], now: datetime) -> PersistOutcome:
        try:
            if self.is_known(candidate.url):
                return PersistOutcome(inserted=False)

            article = self.build_article(candidate, source, industries, now)
            article_id = self.db.insert_article(article)
        except sqlite3.Error as e:
            self.logger.warning(f"Failed to store {candidate.url}: {e}")
            return PersistOutcome(inserted=False, error=str(e))

        if article_id is None:
            # Lost a race with another writer on the same url_hash
            self.logger.debug(f"Duplicate on insert: {candidate.url}")
            return PersistOutcome(inserted=False)

        self.logger.debug(f"Stored article {article_id}: {candidate.title}")
        return PersistOutcome(inserted=True)
