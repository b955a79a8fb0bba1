"""RSS/Atom feed parsing for sources that publish a feed."""

import logging
from calendar import timegm
from datetime import datetime
from typing import List, Optional

import feedparser

from ..storage.models import CandidateArticle, DateSource
from .extractor import clean_title, resolve_url, MIN_TITLE_LENGTH, MAX_TITLE_LENGTH

logger = logging.getLogger('scraper.feed_reader')


def _entry_published(entry) -> Optional[datetime]:
    """Return the entry's publish time as naive local time."""
    parsed = entry.get('published_parsed') or entry.get('updated_parsed')
    if not parsed:
        return None
    # feedparser normalizes to UTC struct_time
    return datetime.fromtimestamp(timegm(parsed))


def parse_feed(content: str, base_url: str) -> List[CandidateArticle]:
    feed = feedparser.parse(content)
    if feed.bozo and not feed.entries:
        logger.warning(f"Unparseable feed for {base_url}: {feed.get('bozo_exception')}")
        return []

    candidates = []
    seen_urls = set()

    for entry in feed.entries:
        link = entry.get('link')
        title = clean_title(entry.get('title', ''))
        if not link or not (MIN_TITLE_LENGTH <= len(title) <= MAX_TITLE_LENGTH):
            continue

        url = resolve_url(link, base_url)
        if url in seen_urls:
            continue
        seen_urls.add(url)

        published_at = _entry_published(entry)
        candidates.append(CandidateArticle(
            title=title,
            url=url,
            published_at=published_at,
            date_source=DateSource.OBSERVED if published_at else None
        ))

    logger.debug(f"Parsed {len(candidates)} entries from feed {base_url}")
    return candidates
