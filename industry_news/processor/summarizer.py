import re
import logging
from typing import Optional

from ..llm.client import LLMClient

MIN_SUMMARY_INPUT = 20

SUMMARY_PREFIX = re.compile(r'^(摘要[：:]\s*|总结[：:]\s*|summary:\s*)', re.IGNORECASE)


class TitleSummarizer:
    def __init__(self, llm_client: Optional[LLMClient] = None):
        self.llm_client = llm_client
        self.logger = logging.getLogger('summarizer')

    def is_available(self) -> bool:
        return self.llm_client is not None and self.llm_client.is_available()

    def summarize(self, title: str, content: Optional[str] = None) -> Optional[str]:
        if not self.is_available():
            return None

        text = content or title
        if len(text) < MIN_SUMMARY_INPUT:
            return None

        try:
            summary = self.llm_client.complete('summary', {'title': title, 'content': content})
        except Exception as e:
            self.logger.warning(f"Summary failed for \"{title}\": {type(e).__name__}: {e}")
            return None
        if not summary:
            self.logger.debug(f"No summary generated for: {title}")
            return None

        return SUMMARY_PREFIX.sub('', summary).strip() or None
