"""Publish-date inference for collected articles.

Strategies run in order and the first valid result wins:

1. a date embedded in the article URL,
2. a relative phrase ("3天前", "yesterday 10:15") near the link on the listing page,
3. an absolute date near the link on the listing page,
4. a fetch of the article page itself, searching a configured selector,
   metadata tags, ``<time>`` elements, date-bearing class names and finally
   the start of the main content block.

Every result is bounded to [2020-01-01, now]. ``now`` is always passed in so
that backfills of old snapshots resolve relative phrases against the snapshot
time rather than the wall clock.
"""

import re
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Callable, List

from bs4 import BeautifulSoup
from dateutil import parser as date_parser
from soupsieve import SelectorSyntaxError

from ..scraper.fetcher import Fetcher, FetchError
from ..storage.models import DateSource

MIN_YEAR = 2020
FLOOR_DATE = datetime(MIN_YEAR, 1, 1)
BODY_SCAN_LENGTH = 1000
ELEMENT_TEXT_LENGTH = 120

URL_FULL_DATE_PATTERNS = [
    re.compile(r'/(\d{4})[-/](\d{1,2})[-/](\d{1,2})(?=[/._-]|$)'),
    re.compile(r'/(\d{4})(\d{2})(\d{2})(?=[/._-]|$)'),
    re.compile(r'[-_](\d{4})(\d{2})(\d{2})[-_.]'),
    re.compile(r'[?&]date=(\d{4})-?(\d{2})-?(\d{2})'),
]

URL_MONTH_PATTERNS = [
    re.compile(r'/(\d{4})(\d{2})/'),
    re.compile(r'/(\d{4})[-/](\d{1,2})/'),
]

# Only a time directly following the day phrase belongs to it
PHRASE_TIME_PATTERN = re.compile(r'\s*(\d{1,2}):(\d{2})(?!\d)')

DAY_PHRASE_PATTERNS = [
    (re.compile(r'今天|\btoday\b', re.IGNORECASE), 0),
    (re.compile(r'前天|\bday before yesterday\b', re.IGNORECASE), 2),
    (re.compile(r'昨天|\byesterday\b', re.IGNORECASE), 1),
]
DAYS_AGO_PATTERN = re.compile(r'(\d+)\s*(?:天前|days?\s+ago)', re.IGNORECASE)
HOURS_AGO_PATTERN = re.compile(r'(\d+)\s*(?:小时前|hours?\s+ago)', re.IGNORECASE)
MINUTES_AGO_PATTERN = re.compile(r'(\d+)\s*(?:分钟前|minutes?\s+ago|mins?\s+ago)', re.IGNORECASE)
JUST_NOW_PATTERN = re.compile(r'刚刚|\bjust now\b', re.IGNORECASE)

FULL_DATE_PATTERN = re.compile(
    r'(?<!\d)(\d{4})[-/](\d{1,2})[-/](\d{1,2})(?!\d)(?:[\sT]+(\d{1,2}):(\d{2}))?')
CJK_FULL_DATE_PATTERN = re.compile(
    r'(\d{4})\s*年\s*(\d{1,2})\s*月\s*(\d{1,2})\s*日(?:\s*(\d{1,2}):(\d{2}))?')
CJK_MONTH_DAY_PATTERN = re.compile(
    r'(?<!\d)(\d{1,2})\s*月\s*(\d{1,2})\s*日(?:\s*(\d{1,2}):(\d{2}))?')

RELATIVE_DAY_PATTERN = re.compile(r'(今天|昨天|前天)\s*\d{1,2}:\d{2}')

META_DATE_KEYS = {
    'article:published_time',
    'og:published_time',
    'og:article:published_time',
    'pubdate',
    'publishdate',
    'publish_date',
    'publish-date',
    'datepublished',
    'dc.date',
    'dc.date.issued',
    'parsely-pub-date',
}

DATE_CLASS_PATTERN = re.compile(
    r'pub[-_]?date|publish[-_]?date|post[-_]?date|article[-_]?date|pubtime|time|date', re.IGNORECASE)
DATE_ID_PATTERN = re.compile(r'pubtime|publish[-_]?time|pub[-_]?date', re.IGNORECASE)
META_CLASS_PATTERN = re.compile(r'info|meta|author', re.IGNORECASE)
CONTENT_CLASS_PATTERN = re.compile(r'content|article|post', re.IGNORECASE)


@dataclass
class ResolvedDate:
    value: datetime
    source: DateSource


def is_valid_date(value: Optional[datetime], now: datetime) -> bool:
    return value is not None and FLOOR_DATE <= value <= now


def _build_date(year: int, month: int, day: int, now: datetime) -> Optional[datetime]:
    if not (1 <= month <= 12 and 1 <= day <= 31 and MIN_YEAR <= year <= now.year):
        return None
    try:
        value = datetime(year, month, day)
    except ValueError:
        return None
    return value if value <= now else None


def _with_time_of_day(value: datetime, hour: Optional[str], minute: Optional[str],
                      now: datetime) -> datetime:
    if hour is None or minute is None:
        return value
    hour, minute = int(hour), int(minute)
    if hour > 23 or minute > 59:
        return value
    timed = value.replace(hour=hour, minute=minute, second=0, microsecond=0)
    return timed if timed <= now else value


def extract_date_from_url(url: str, now: datetime) -> Optional[datetime]:
    for pattern in URL_FULL_DATE_PATTERNS:
        for match in pattern.finditer(url):
            value = _build_date(int(match.group(1)), int(match.group(2)), int(match.group(3)), now)
            if value:
                return value

    # Month-only paths such as /202512/ resolve to the first of the month
    for pattern in URL_MONTH_PATTERNS:
        for match in pattern.finditer(url):
            value = _build_date(int(match.group(1)), int(match.group(2)), 1, now)
            if value:
                return value

    return None


def _days_before(text: str, match, days: int, now: datetime) -> datetime:
    value = now - timedelta(days=days)
    time_match = PHRASE_TIME_PATTERN.match(text, match.end())
    if time_match:
        hour, minute = int(time_match.group(1)), int(time_match.group(2))
        if hour <= 23 and minute <= 59:
            return value.replace(hour=hour, minute=minute, second=0, microsecond=0)
    return value


def parse_relative_time(text: str, now: datetime) -> Optional[datetime]:
    value = None
    try:
        for pattern, days in DAY_PHRASE_PATTERNS:
            match = pattern.search(text)
            if match:
                value = _days_before(text, match, days, now)
                break
        else:
            days = DAYS_AGO_PATTERN.search(text)
            hours = HOURS_AGO_PATTERN.search(text)
            minutes = MINUTES_AGO_PATTERN.search(text)
            if days:
                value = _days_before(text, days, int(days.group(1)), now)
            elif hours:
                value = now - timedelta(hours=int(hours.group(1)))
            elif minutes:
                value = now - timedelta(minutes=int(minutes.group(1)))
            elif JUST_NOW_PATTERN.search(text):
                value = now
    except OverflowError:
        # Counts like "99999999天前" fall outside datetime's range
        return None

    return value if is_valid_date(value, now) else None


def extract_absolute_date(text: str, now: datetime) -> Optional[datetime]:
    for pattern in (FULL_DATE_PATTERN, CJK_FULL_DATE_PATTERN):
        for match in pattern.finditer(text):
            value = _build_date(int(match.group(1)), int(match.group(2)), int(match.group(3)), now)
            if value:
                return _with_time_of_day(value, match.group(4), match.group(5), now)

    for match in CJK_MONTH_DAY_PATTERN.finditer(text):
        month, day = int(match.group(1)), int(match.group(2))
        year = now.year
        try:
            if datetime(year, month, day) > now:
                year -= 1
        except ValueError:
            continue
        value = _build_date(year, month, day, now)
        if value:
            return _with_time_of_day(value, match.group(3), match.group(4), now)

    return None


def extract_date_from_context(text: str, now: datetime) -> Optional[datetime]:
    return parse_relative_time(text, now) or extract_absolute_date(text, now)


def parse_timestamp(raw: str, now: datetime) -> Optional[datetime]:
    """Parse a machine-readable timestamp into naive local time."""
    try:
        value = date_parser.parse(raw.strip())
    except (ValueError, OverflowError):
        return None
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value if is_valid_date(value, now) else None


def _element_text(element) -> str:
    return re.sub(r'\s+', ' ', element.get_text(' ', strip=True))[:ELEMENT_TEXT_LENGTH]


DATE_ELEMENT_FINDERS: List[Callable] = [
    lambda soup: soup.find_all(class_=DATE_CLASS_PATTERN),
    lambda soup: soup.find_all(id=DATE_ID_PATTERN),
    lambda soup: soup.find_all('em', string=FULL_DATE_PATTERN),
    lambda soup: soup.find_all(class_=META_CLASS_PATTERN),
    lambda soup: soup.find_all('span', string=RELATIVE_DAY_PATTERN),
]


class DateResolver:
    def __init__(self, fetcher: Optional[Fetcher] = None):
        self.fetcher = fetcher
        self.logger = logging.getLogger('date_resolver')

    def resolve(self, url: str, context: Optional[str] = None,
                custom_selector: Optional[str] = None, now: Optional[datetime] = None,
                encoding: Optional[str] = None) -> Optional[ResolvedDate]:
        now = now or datetime.now()

        value = extract_date_from_url(url, now)
        if value:
            return ResolvedDate(value, DateSource.INFERRED)

        if context:
            value = parse_relative_time(context, now) or extract_absolute_date(context, now)
            if value:
                return ResolvedDate(value, DateSource.INFERRED)

        if self.fetcher is None:
            return None
        return self.fetch_article_date(url, custom_selector, now, encoding)

    def fetch_article_date(self, url: str, custom_selector: Optional[str], now: datetime,
                           encoding: Optional[str] = None) -> Optional[ResolvedDate]:
        try:
            html = self.fetcher.fetch_article(url, encoding=encoding)
        except FetchError as e:
            self.logger.debug(f"Article page unavailable for date lookup {url}: {e.message}")
            return None

        resolved = self.find_date_in_page(html, custom_selector, now)
        if resolved is None:
            self.logger.debug(f"No publish date found on {url}")
        return resolved

    def find_date_in_page(self, html: str, custom_selector: Optional[str],
                          now: datetime) -> Optional[ResolvedDate]:
        soup = BeautifulSoup(html, 'html.parser')

        if custom_selector:
            value = self._from_custom_selector(soup, custom_selector, now)
            if value:
                return ResolvedDate(value, DateSource.OBSERVED)

        for meta in soup.find_all('meta', content=True):
            key = (meta.get('property') or meta.get('name') or meta.get('itemprop') or '').strip().lower()
            if key in META_DATE_KEYS:
                value = parse_timestamp(meta['content'], now)
                if value:
                    return ResolvedDate(value, DateSource.OBSERVED)

        for time_tag in soup.find_all('time', datetime=True):
            value = parse_timestamp(time_tag['datetime'], now)
            if value:
                return ResolvedDate(value, DateSource.OBSERVED)

        for finder in DATE_ELEMENT_FINDERS:
            for element in finder(soup):
                text = _element_text(element)
                if not text:
                    continue
                value = extract_date_from_context(text, now)
                if value:
                    return ResolvedDate(value, DateSource.OBSERVED)

        body = soup.find('article') or soup.find(['div', 'section'], class_=CONTENT_CLASS_PATTERN)
        if body is not None:
            text = re.sub(r'\s+', ' ', body.get_text(' '))[:BODY_SCAN_LENGTH]
            value = extract_date_from_context(text, now)
            if value:
                return ResolvedDate(value, DateSource.INFERRED)

        return None

    def _from_custom_selector(self, soup: BeautifulSoup, selector: str,
                              now: datetime) -> Optional[datetime]:
        try:
            elements = soup.select(selector)
        except SelectorSyntaxError as e:
            self.logger.warning(f"Invalid date selector {selector!r}: {e}")
            return None

        for element in elements:
            for attr in ('datetime', 'content'):
                if element.get(attr):
                    value = parse_timestamp(element[attr], now)
                    if value:
                        return value
            text = _element_text(element)
            if text:
                value = extract_date_from_context(text, now)
                if value:
                    return value
        return None
