import logging
from typing import List, Optional

from ..llm.client import LLMClient
from ..storage.models import Industry

UNCLASSIFIED_ANSWERS = {'未分类', 'unclassified', 'none', '无'}


class IndustryClassifier:
    """Assigns an industry per article, falling back to the source's own industry.

    The fallback is decided per article, so one failed classifier call only
    degrades that article.
    """

    def __init__(self, llm_client: Optional[LLMClient] = None):
        self.llm_client = llm_client
        self.logger = logging.getLogger('classifier')

    def is_available(self) -> bool:
        return self.llm_client is not None and self.llm_client.is_available()

    def match_answer(self, answer: str, industries: List[Industry]) -> Optional[Industry]:
        answer = answer.strip().strip('"\'“”「」《》。.').strip()
        if not answer or answer.lower() in UNCLASSIFIED_ANSWERS:
            return None

        exact = [industry for industry in industries if industry.name == answer]
        if len(exact) == 1:
            return exact[0]

        mentioned = [industry for industry in industries if industry.name and industry.name in answer]
        if len(mentioned) == 1:
            return mentioned[0]
        return None

    def classify(self, title: str, summary: Optional[str],
                 industries: List[Industry]) -> Optional[int]:
        if not industries or not self.is_available():
            return None

        try:
            answer = self.llm_client.complete('industry_classification', {
                'title': title,
                'summary': summary,
                'industries': industries
            })
        except Exception as e:
            self.logger.warning(f"Classification failed for \"{title}\": {type(e).__name__}: {e}")
            return None
        if not answer:
            return None

        matched = self.match_answer(answer, industries)
        if matched is None:
            self.logger.debug(f"Unusable classification {answer!r} for: {title}")
            return None

        self.logger.info(f"Classified \"{title}\" -> {matched.name}")
        return matched.id

    def resolve(self, title: str, summary: Optional[str], industries: List[Industry],
                fallback_id: Optional[int]) -> Optional[int]:
        industry_id = self.classify(title, summary, industries)
        return industry_id if industry_id is not None else fallback_id
