import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

logger = logging.getLogger('storage.models')


class DateSource(str, Enum):
    """Where an article's publish date came from."""
    OBSERVED = 'observed'
    INFERRED = 'inferred'
    FALLBACK = 'fallback'


DEFAULT_PRIORITY = 'medium'


@dataclass
class Industry:
    id: Optional[int] = None
    name: str = ""
    slug: str = ""
    keywords: List[str] = field(default_factory=list)
    is_active: bool = True


@dataclass
class SourceConfig:
    """Extraction hints for a single source, stored as JSON on the source row."""
    date_selector: Optional[str] = None
    rss_url: Optional[str] = None
    encoding: Optional[str] = None
    link_selector: Optional[str] = None
    article_limit: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'SourceConfig':
        if not data:
            return cls()
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        unknown = set(data) - set(known)
        if unknown:
            logger.debug(f"Ignoring unknown source config keys: {sorted(unknown)}")
        return cls(**known)

    @classmethod
    def from_json(cls, raw: Optional[str]) -> 'SourceConfig':
        if not raw:
            return cls()
        try:
            return cls.from_dict(json.loads(raw))
        except (ValueError, TypeError) as e:
            logger.warning(f"Invalid source config JSON, using defaults: {e}")
            return cls()

    def to_json(self) -> str:
        return json.dumps({k: v for k, v in asdict(self).items() if v is not None},
                          ensure_ascii=False)


@dataclass
class Source:
    id: Optional[int] = None
    name: str = ""
    url: str = ""
    industry_id: Optional[int] = None
    tier: int = 2
    config: SourceConfig = field(default_factory=SourceConfig)
    is_active: bool = True
    success_count: int = 0
    error_count: int = 0
    last_error: Optional[str] = None
    last_collected_at: Optional[datetime] = None


@dataclass
class CandidateArticle:
    title: str
    url: str
    raw_date_hint: Optional[str] = None
    published_at: Optional[datetime] = None
    date_source: Optional[DateSource] = None


@dataclass
class Article:
    id: Optional[int] = None
    source_id: Optional[int] = None
    industry_id: Optional[int] = None
    title: str = ""
    url: str = ""
    url_hash: str = ""
    publish_date: Optional[datetime] = None
    date_source: DateSource = DateSource.FALLBACK
    summary: Optional[str] = None
    score_relevance: int = 0
    score_timeliness: int = 0
    score_impact: int = 0
    score_credibility: int = 0
    score: int = 0
    priority: str = DEFAULT_PRIORITY
    is_featured: bool = False
    is_deleted: bool = False
    created_at: Optional[datetime] = None


@dataclass
class CollectionRunLog:
    source_id: Optional[int] = None
    status: str = "success"
    articles_count: int = 0
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    id: Optional[int] = None
