import pytest
from unittest.mock import Mock
from datetime import datetime, timedelta, timezone

from industry_news.processor.date_resolver import (
    DateResolver, extract_date_from_url, parse_relative_time, extract_absolute_date,
    is_valid_date
)
from industry_news.scraper.fetcher import FetchError
from industry_news.storage.models import DateSource

NOW = datetime(2025, 6, 10, 8, 0)


class TestUrlDates:
    def test_full_dates(self):
        assert extract_date_from_url('https://example.com/2025-06-01/a.html', NOW) == datetime(2025, 6, 1)
        assert extract_date_from_url('https://example.com/2025/06/02/a.html', NOW) == datetime(2025, 6, 2)
        assert extract_date_from_url('https://example.com/news/20250603/a.html', NOW) == datetime(2025, 6, 3)
        assert extract_date_from_url('https://example.com/a.html?date=2025-06-04', NOW) == datetime(2025, 6, 4)

    def test_month_only(self):
        assert extract_date_from_url('https://example.com/202505/t123.html', NOW) == datetime(2025, 5, 1)
        assert extract_date_from_url('https://example.com/2025-04/t123.html', NOW) == datetime(2025, 4, 1)

    def test_future_day_falls_back_to_month_start(self):
        assert extract_date_from_url('https://example.com/2025/06/30/a.html', NOW) == datetime(2025, 6, 1)

    def test_rejects_out_of_range(self):
        assert extract_date_from_url('https://example.com/2019/06/01/a.html', NOW) is None
        assert extract_date_from_url('https://example.com/2025/13/01/a.html', NOW) is None
        assert extract_date_from_url('https://example.com/news/123456.html', NOW) is None


class TestRelativeTime:
    def test_days_ago_with_time_of_day(self):
        assert parse_relative_time('发布于 3天前 10:15', NOW) == datetime(2025, 6, 7, 10, 15)

    def test_chinese_phrases(self):
        assert parse_relative_time('昨天 09:30', NOW) == datetime(2025, 6, 9, 9, 30)
        assert parse_relative_time('前天', NOW) == NOW - timedelta(days=2)
        assert parse_relative_time('2小时前', NOW) == NOW - timedelta(hours=2)
        assert parse_relative_time('15分钟前', NOW) == NOW - timedelta(minutes=15)
        assert parse_relative_time('刚刚', NOW) == NOW

    def test_english_phrases(self):
        assert parse_relative_time('Posted yesterday', NOW) == NOW - timedelta(days=1)
        assert parse_relative_time('5 days ago', NOW) == NOW - timedelta(days=5)
        assert parse_relative_time('3 hours ago', NOW) == NOW - timedelta(hours=3)

    def test_future_time_today_rejected(self):
        assert parse_relative_time('今天 23:50', NOW) is None

    def test_time_of_day_must_follow_phrase(self):
        context = '昨天 某数据中心完成新一轮融资 | 另一条新闻 发布时间 23:59'

        assert parse_relative_time(context, NOW) == NOW - timedelta(days=1)
        assert parse_relative_time('3天前 | 其他栏目 23:59', NOW) == NOW - timedelta(days=3)

    def test_oversized_count_rejected(self):
        assert parse_relative_time('99999999天前', NOW) is None
        assert parse_relative_time('99999999999小时前', NOW) is None

    def test_no_phrase(self):
        assert parse_relative_time('某数据中心完成新一轮融资', NOW) is None


class TestAbsoluteDates:
    def test_formats(self):
        assert extract_absolute_date('时间：2025-06-05 14:20', NOW) == datetime(2025, 6, 5, 14, 20)
        assert extract_absolute_date('2025/06/05', NOW) == datetime(2025, 6, 5)
        assert extract_absolute_date('2025年6月5日', NOW) == datetime(2025, 6, 5)

    def test_month_day_rolls_back_a_year(self):
        assert extract_absolute_date('12月25日', NOW) == datetime(2024, 12, 25)
        assert extract_absolute_date('06月08日 09:00', NOW) == datetime(2025, 6, 8, 9, 0)

    def test_invalid_dates(self):
        assert extract_absolute_date('2025-02-30', NOW) is None
        assert extract_absolute_date('2026-01-01', NOW) is None
        assert extract_absolute_date('2018-01-01', NOW) is None

    def test_validity_bounds(self):
        assert is_valid_date(datetime(2020, 1, 1), NOW)
        assert is_valid_date(NOW, NOW)
        assert not is_valid_date(NOW + timedelta(seconds=1), NOW)
        assert not is_valid_date(datetime(2019, 12, 31, 23, 59), NOW)
        assert not is_valid_date(None, NOW)


class TestDateResolver:
    def setup_method(self):
        self.fetcher = Mock()
        self.resolver = DateResolver(self.fetcher)

    def test_url_date_wins_without_fetch(self):
        resolved = self.resolver.resolve('https://example.com/2025/06/01/a.html',
                                         context='3天前', now=NOW)

        assert resolved.value == datetime(2025, 6, 1)
        assert resolved.source == DateSource.INFERRED
        self.fetcher.fetch_article.assert_not_called()

    def test_context_date(self):
        resolved = self.resolver.resolve('https://example.com/news/1.html',
                                         context='发布于 3天前 10:15', now=NOW)

        assert resolved.value == datetime(2025, 6, 7, 10, 15)
        assert resolved.source == DateSource.INFERRED
        self.fetcher.fetch_article.assert_not_called()

    def test_no_fetcher_gives_none(self):
        resolver = DateResolver()
        assert resolver.resolve('https://example.com/news/1.html', now=NOW) is None

    def test_fetch_failure_gives_none(self):
        self.fetcher.fetch_article.side_effect = FetchError('https://example.com/news/1.html', 'timeout after 10s')

        assert self.resolver.resolve('https://example.com/news/1.html', now=NOW) is None

    def test_metadata_date(self):
        self.fetcher.fetch_article.return_value = '''<html><head>
        <meta property="article:published_time" content="2025-06-05 09:30:00">
        </head><body></body></html>'''

        resolved = self.resolver.resolve('https://example.com/news/1.html', now=NOW)

        assert resolved.value == datetime(2025, 6, 5, 9, 30)
        assert resolved.source == DateSource.OBSERVED

    def test_timezone_aware_metadata_is_converted_to_local(self):
        html = '<meta name="pubdate" content="2025-06-05T09:30:00+08:00">'
        expected = datetime(2025, 6, 5, 9, 30, tzinfo=timezone(timedelta(hours=8))).astimezone().replace(tzinfo=None)

        resolved = self.resolver.find_date_in_page(html, None, NOW)

        assert resolved.value == expected

    def test_time_element(self):
        html = '<article><time datetime="2025-06-04T08:00:00">6月4日</time></article>'

        resolved = self.resolver.find_date_in_page(html, None, NOW)

        assert resolved.value == datetime(2025, 6, 4, 8, 0)
        assert resolved.source == DateSource.OBSERVED

    def test_custom_selector_first(self):
        html = '''<meta property="article:published_time" content="2025-06-05 09:30:00">
        <div class="source-info"><span class="pub">2025-06-03 14:20</span></div>'''

        resolved = self.resolver.find_date_in_page(html, 'span.pub', NOW)

        assert resolved.value == datetime(2025, 6, 3, 14, 20)
        assert resolved.source == DateSource.OBSERVED

    def test_invalid_custom_selector_falls_through(self):
        html = '<meta property="article:published_time" content="2025-06-05 09:30:00">'

        resolved = self.resolver.find_date_in_page(html, 'span[', NOW)

        assert resolved.value == datetime(2025, 6, 5, 9, 30)

    def test_date_class_name(self):
        html = '<div class="article-info"><span class="time">2025-06-03 14:20</span></div>'

        resolved = self.resolver.find_date_in_page(html, None, NOW)

        assert resolved.value == datetime(2025, 6, 3, 14, 20)
        assert resolved.source == DateSource.OBSERVED

    def test_body_scan_is_inferred(self):
        html = '<article><p>本报讯 2025年6月4日，某公司宣布完成新一轮融资。</p></article>'

        resolved = self.resolver.find_date_in_page(html, None, NOW)

        assert resolved.value == datetime(2025, 6, 4)
        assert resolved.source == DateSource.INFERRED

    def test_future_metadata_rejected(self):
        html = '<meta property="article:published_time" content="2025-07-01 09:30:00">'

        assert self.resolver.find_date_in_page(html, None, NOW) is None
