"""
OpenAI-compatible chat client used for summaries and industry classification.
Prompts are Jinja2 templates under llm/prompts; any API failure degrades to None.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import httpx
from jinja2 import Environment, FileSystemLoader, TemplateNotFound
from openai import OpenAI, OpenAIError

DEFAULT_API_BASE = 'https://open.bigmodel.cn/api/paas/v4'
DEFAULT_MODEL = 'GLM-4-Flash'
DEFAULT_TIMEOUT = 30
DEFAULT_MAX_TOKENS = 500

PROMPTS_DIR = Path(__file__).parent / 'prompts'

jinja_env = Environment(
    loader=FileSystemLoader(PROMPTS_DIR),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True
)


def render_prompts(task_name: str, data: Dict[str, Any]) -> Tuple[str, str]:
    """
    Render the system and user templates for a task.

    Args:
        task_name: Template prefix, e.g. 'industry_classification'
        data: Variables for the templates

    Returns:
        Tuple of (system_prompt, user_prompt)

    Raises:
        FileNotFoundError: If either template is missing
    """
    rendered = []
    for role in ('system', 'user'):
        template_name = f"{task_name}_{role}_prompt.md.jinja"
        try:
            rendered.append(jinja_env.get_template(template_name).render(**data))
        except TemplateNotFound:
            raise FileNotFoundError(f"Prompt template not found: {PROMPTS_DIR / template_name}")
    return rendered[0], rendered[1]


class LLMClient:
    def __init__(self, llm_config: Optional[Dict[str, Any]] = None,
                 http_client: Optional[httpx.Client] = None):
        llm_config = llm_config or {}
        self.enabled = llm_config.get('enabled', True)
        self.api_key = llm_config.get('api_key') or ''
        self.api_base = llm_config.get('api_base') or DEFAULT_API_BASE
        self.model = llm_config.get('model') or DEFAULT_MODEL
        self.timeout = llm_config.get('timeout', DEFAULT_TIMEOUT)
        self.max_tokens = llm_config.get('max_tokens', DEFAULT_MAX_TOKENS)
        self.temperature = llm_config.get('temperature', 0.7)
        self.logger = logging.getLogger('llm')

        self._client = None
        if self.is_available():
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.api_base,
                timeout=self.timeout,
                max_retries=0,
                http_client=http_client
            )

    def is_available(self) -> bool:
        # An unset ${LLM_API_KEY} survives config substitution verbatim
        if not self.enabled or not self.api_key or self.api_key.startswith('${'):
            return False
        return True

    def complete(self, task_name: str, data: Dict[str, Any]) -> Optional[str]:
        if self._client is None:
            self.logger.debug("LLM not configured, skipping")
            return None

        system_prompt, user_prompt = render_prompts(task_name, data)

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt}
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
        except OpenAIError as e:
            self.logger.warning(f"LLM request for {task_name} failed: {e}")
            return None

        # Compatible servers may omit fields the SDK does not validate
        choices = getattr(response, 'choices', None)
        if not choices:
            return None
        message = getattr(choices[0], 'message', None)
        content = getattr(message, 'content', None)
        if not isinstance(content, str):
            self.logger.warning(f"LLM response for {task_name} had no message content")
            return None
        return content.strip() or None
