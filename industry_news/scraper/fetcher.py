import logging
from typing import Dict, Any, Optional

import requests

LISTING_TIMEOUT = 30
ARTICLE_TIMEOUT = 10

DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)


class FetchError(Exception):
    def __init__(self, url: str, message: str):
        super().__init__(message)
        self.url = url
        self.message = message


class Fetcher:
    """Single-shot HTTP GET for listing and article pages.

    Retries are left to the caller's schedule: a failed fetch raises
    FetchError once and the source is marked failed for this run.
    """

    def __init__(self, scraping_config: Optional[Dict[str, Any]] = None):
        scraping_config = scraping_config or {}
        self.listing_timeout = scraping_config.get('listing_timeout', LISTING_TIMEOUT)
        self.article_timeout = scraping_config.get('article_timeout', ARTICLE_TIMEOUT)

        self.session = requests.Session()
        self.session.headers.update({
            'User-Agent': scraping_config.get('user_agent', DEFAULT_USER_AGENT),
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'zh-CN,zh;q=0.9,en;q=0.8',
            'Accept-Encoding': 'gzip, deflate',
            'Connection': 'keep-alive',
        })

        self.logger = logging.getLogger('scraper.fetcher')

    def fetch(self, url: str, timeout: Optional[float] = None,
              encoding: Optional[str] = None) -> str:
        timeout = timeout or self.listing_timeout
        try:
            response = self.session.get(url, timeout=timeout)
        except requests.exceptions.Timeout:
            raise FetchError(url, f"timeout after {timeout}s")
        except requests.exceptions.TooManyRedirects:
            raise FetchError(url, "too many redirects")
        except requests.exceptions.RequestException as e:
            raise FetchError(url, f"request failed: {e}")

        if not response.ok:
            raise FetchError(url, f"HTTP {response.status_code}")

        if encoding:
            response.encoding = encoding
        elif 'charset' not in response.headers.get('Content-Type', '').lower():
            # requests falls back to ISO-8859-1 for undeclared text/html
            response.encoding = response.apparent_encoding

        self.logger.debug(f"Fetched {url} ({len(response.content)} bytes)")
        return response.text

    def fetch_article(self, url: str, encoding: Optional[str] = None) -> str:
        return self.fetch(url, timeout=self.article_timeout, encoding=encoding)
