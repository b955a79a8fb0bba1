import re
import logging
from typing import List, Optional, Iterator, Tuple
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from ..storage.models import CandidateArticle
from .noise_filter import NoiseFilter

MIN_TITLE_LENGTH = 10
MAX_TITLE_LENGTH = 200
CONTEXT_WINDOW = 200

ASSET_PATTERN = re.compile(r'\.(css|js|png|jpe?g|gif|svg|ico|webp|bmp|pdf|zip|rar)$', re.IGNORECASE)
TAG_PATTERN = re.compile(r'<[^>]*>')
ANCHOR_END_PATTERN = re.compile(r'</a\s*>', re.IGNORECASE)
NUMERIC_ENTITY_PATTERN = re.compile(r'&#(\d+);')


def _decode_numeric(match) -> str:
    code_point = int(match.group(1))
    # Surrogates and out-of-range values cannot be stored as UTF-8
    if code_point > 0x10FFFF or 0xD800 <= code_point <= 0xDFFF:
        return match.group(0)
    return chr(code_point)


def decode_entities(text: str) -> str:
    """Decode the common named entities and numeric references.

    Runs after the parser's own decoding, so double-encoded titles such as
    ``&amp;quot;`` end up as a literal quote.
    """
    text = (text.replace('&lt;', '<')
                .replace('&gt;', '>')
                .replace('&amp;', '&')
                .replace('&quot;', '"'))
    return NUMERIC_ENTITY_PATTERN.sub(_decode_numeric, text)


def clean_title(text: str) -> str:
    text = decode_entities(text)
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def strip_tags(markup: str) -> str:
    text = TAG_PATTERN.sub(' ', markup)
    return re.sub(r'\s+', ' ', text).strip()


def get_origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def resolve_url(href: str, base_url: str) -> str:
    return urljoin(get_origin(base_url) + '/', href.strip())


def is_link_href(href: str) -> bool:
    href = href.strip()
    if not href or href.startswith('#'):
        return False
    if href.lower().startswith('javascript:'):
        return False
    return True


class LinkExtractor:
    """Finds candidate article links in a listing page."""

    def __init__(self, context_window: int = CONTEXT_WINDOW):
        self.context_window = context_window
        self.logger = logging.getLogger('scraper.extractor')

    def _line_offsets(self, html: str) -> List[int]:
        offsets = [0]
        for match in re.finditer('\n', html):
            offsets.append(match.end())
        return offsets

    def _anchor_span(self, tag: Tag, html: str, offsets: List[int]) -> Optional[Tuple[int, int]]:
        if tag.sourceline is None or tag.sourcepos is None:
            return None
        if tag.sourceline - 1 >= len(offsets):
            return None

        start = offsets[tag.sourceline - 1] + tag.sourcepos
        end_match = ANCHOR_END_PATTERN.search(html, start)
        end = end_match.end() if end_match else start + len(str(tag))
        return start, end

    def _context_for(self, tag: Tag, title: str, html: str, offsets: List[int]) -> Optional[str]:
        span = self._anchor_span(tag, html, offsets)
        if span:
            start, end = span
            before = html[max(0, start - self.context_window):start]
            after = html[end:end + self.context_window]
            context = strip_tags(before + ' ' + after)
        elif tag.parent is not None:
            context = re.sub(r'\s+', ' ', tag.parent.get_text(' ')).replace(title, ' ').strip()
        else:
            context = ''
        return context or None

    def _select_anchors(self, soup: BeautifulSoup, link_selector: Optional[str]) -> List[Tag]:
        if not link_selector:
            return soup.find_all('a', href=True)

        anchors = []
        for element in soup.select(link_selector):
            if element.name == 'a':
                if element.get('href'):
                    anchors.append(element)
            else:
                anchors.extend(element.find_all('a', href=True))
        return anchors

    def iter_candidates(self, html: str, base_url: str,
                        link_selector: Optional[str] = None) -> Iterator[CandidateArticle]:
        """Yield every anchor that passes the basic shape checks, in document order."""
        soup = BeautifulSoup(html, 'html.parser')
        offsets = self._line_offsets(html)

        for tag in self._select_anchors(soup, link_selector):
            href = tag.get('href', '')
            if not is_link_href(href):
                continue

            title = clean_title(tag.get_text())
            if len(title) < MIN_TITLE_LENGTH or len(title) > MAX_TITLE_LENGTH:
                continue

            url = resolve_url(href, base_url)
            parsed = urlparse(url)
            if parsed.scheme not in ('http', 'https') or not parsed.netloc:
                continue
            if ASSET_PATTERN.search(parsed.path):
                continue

            yield CandidateArticle(
                title=title,
                url=url,
                raw_date_hint=self._context_for(tag, title, html, offsets)
            )

    def extract(self, html: str, base_url: str, limit: int,
                noise_filter: Optional[NoiseFilter] = None,
                link_selector: Optional[str] = None) -> List[CandidateArticle]:
        base_host = urlparse(base_url).hostname or ''
        candidates = []
        seen_urls = set()

        for candidate in self.iter_candidates(html, base_url, link_selector):
            if len(candidates) >= limit:
                break
            if candidate.url in seen_urls:
                continue
            if noise_filter is not None:
                reason = noise_filter.reason(candidate.title, candidate.url, base_host)
                if reason:
                    self.logger.debug(f"Skipping {candidate.url}: {reason}")
                    continue

            seen_urls.add(candidate.url)
            candidates.append(candidate)

        return candidates
