from dataclasses import dataclass
from typing import Sequence

RELEVANCE_KEYWORDS = ['数据中心', '云计算', 'AI', '芯片', '算力', '服务器', '网络']
IMPACT_KEYWORDS = ['重大', '突破', '首次', '发布', '官方', '新政', '融资', '上市', '收购', '投资']

MAX_RELEVANCE = 40
MAX_TIMELINESS = 25
MAX_IMPACT = 20
MAX_CREDIBILITY = 15
MAX_TOTAL = 100

# Decay is applied at read time; a freshly collected article is always current.
COLLECTION_TIMELINESS = 20

TIER_CREDIBILITY = {1: 15, 2: 12}
DEFAULT_CREDIBILITY = 8


@dataclass
class ArticleScore:
    relevance: int
    timeliness: int
    impact: int
    credibility: int
    total: int


def _contains_any(title: str, keywords: Sequence[str]) -> bool:
    return any(keyword in title for keyword in keywords)


def calculate_score(title: str, tier: int) -> ArticleScore:
    relevance = 20
    if len(title) > 15:
        relevance += 5
    if len(title) > 30:
        relevance += 5
    if _contains_any(title, RELEVANCE_KEYWORDS):
        relevance += 10
    relevance = min(relevance, MAX_RELEVANCE)

    impact = 10
    if _contains_any(title, IMPACT_KEYWORDS):
        impact += 10
    impact = min(impact, MAX_IMPACT)

    credibility = TIER_CREDIBILITY.get(tier, DEFAULT_CREDIBILITY)

    total = relevance + COLLECTION_TIMELINESS + impact + credibility
    return ArticleScore(
        relevance=relevance,
        timeliness=COLLECTION_TIMELINESS,
        impact=impact,
        credibility=credibility,
        total=min(total, MAX_TOTAL)
    )
