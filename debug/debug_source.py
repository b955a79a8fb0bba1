"""Show how one listing page is read: every anchor's verdict and resolved date.

Usage: python -m debug.debug_source <url> [--selector CSS] [--links CSS] [--encoding gbk]
"""
import argparse
import logging
from datetime import datetime
from urllib.parse import urlparse

from industry_news.processor.date_resolver import DateResolver
from industry_news.scraper.extractor import LinkExtractor
from industry_news.scraper.fetcher import Fetcher, FetchError
from industry_news.scraper.noise_filter import NoiseFilter

logging.basicConfig(level=logging.INFO)


def debug_source(url, date_selector=None, link_selector=None, encoding=None, resolve_dates=True):
    print(f"\n=== Debugging {url} ===")

    fetcher = Fetcher()
    try:
        html = fetcher.fetch(url, encoding=encoding)
    except FetchError as e:
        print(f"Failed to fetch: {e.message}")
        return

    print(f"Fetched {len(html)} characters")

    extractor = LinkExtractor()
    noise_filter = NoiseFilter()
    resolver = DateResolver(fetcher if resolve_dates else None)
    base_host = urlparse(url).hostname or ''
    now = datetime.now()

    accepted = 0
    rejected = 0
    for candidate in extractor.iter_candidates(html, url, link_selector):
        reason = noise_filter.reason(candidate.title, candidate.url, base_host)
        if reason:
            rejected += 1
            print(f"  ✗ {candidate.title[:60]}\n      {candidate.url}\n      rejected: {reason}")
            continue

        accepted += 1
        resolved = resolver.resolve(candidate.url, context=candidate.raw_date_hint,
                                    custom_selector=date_selector, now=now, encoding=encoding)
        date_text = f"{resolved.value:%Y-%m-%d %H:%M} ({resolved.source.value})" if resolved else "none"
        print(f"  ✓ {candidate.title[:60]}\n      {candidate.url}\n      date: {date_text}")
        if candidate.raw_date_hint:
            print(f"      context: {candidate.raw_date_hint[:100]}")

    print(f"\nAccepted: {accepted}, rejected: {rejected}")


def main():
    parser = argparse.ArgumentParser(description='Inspect link extraction for one source')
    parser.add_argument('url')
    parser.add_argument('--selector', help='CSS selector for the publish date on article pages')
    parser.add_argument('--links', help='CSS selector narrowing the anchors scanned')
    parser.add_argument('--encoding', help='Force the page encoding')
    parser.add_argument('--no-fetch', action='store_true',
                        help='Only use URL and listing context for dates')
    args = parser.parse_args()

    debug_source(args.url, args.selector, args.links, args.encoding, resolve_dates=not args.no_fetch)


if __name__ == "__main__":
    main()
