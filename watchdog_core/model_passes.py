"""
Model pass implementations.

A pass is anything with a ``model_id`` attribute and an
``async invoke(source_code, contract_name) -> str`` method.  The aggregator
only depends on that shape; the classes here cover remote chat models, canned
responses and arbitrary callables.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Union

import openai

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

DEFAULT_MODELS = [
    "deepseek/deepseek-r1:free",
    "qwen/qwen-2.5-72b-instruct:free",
    "meta-llama/llama-3.1-70b-instruct:free",
]

SYSTEM_PROMPT = (
    "You are an expert smart contract security auditor. You only report issues that exist "
    "in the code you are given and you always answer with a single JSON object."
)

RESPONSE_FORMAT = """{
  "overview": "Brief contract description based on actual code",
  "keyFindings": [
    {
      "severity": "CRITICAL|HIGH|MEDIUM|LOW|INFO",
      "title": "Specific issue name",
      "description": "Technical explanation with code references",
      "location": "Exact function name",
      "codeReference": "The offending line(s)",
      "impact": "What could happen",
      "recommendation": "How to fix it"
    }
  ],
  "gasOptimizations": [
    {
      "title": "Optimization opportunity",
      "description": "What to optimize",
      "location": "Where in the code",
      "savings": "Estimated gas savings",
      "implementation": "How to implement"
    }
  ],
  "summary": "Overall assessment"
}"""


def build_audit_prompt(source_code: str, contract_name: str) -> str:
    """User prompt for one contract."""
    return f"""Analyze the Solidity contract "{contract_name}" for security vulnerabilities.

Instructions:
1. Only analyze the contract code below.
2. Reference function names that exist in the code.
3. Check reentrancy, access control, arithmetic, unchecked external calls,
   tx.origin authentication and timestamp dependence.
4. List gas optimization opportunities separately.
5. Return ONLY valid JSON in this format:

{RESPONSE_FORMAT}

Contract source:
```solidity
{source_code}
```"""


class ModelPass(Protocol):
    model_id: str

    async def invoke(self, source_code: str, contract_name: str) -> str:
        ...


class OpenAIModelPass:
    """Chat-completion pass against an OpenAI-compatible endpoint (OpenRouter by default)."""

    def __init__(self, model_id: str, api_key: str, base_url: str = DEFAULT_BASE_URL,
                 max_tokens: int = 3000, temperature: float = 0.1, client: Any = None):
        self.model_id = model_id
        self.api_key = api_key
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise ValueError(
                    "OpenRouter API key not found in environment (OPENROUTER_API_KEY) "
                    "or config file (~/.defi-watchdog/config.yaml)"
                )
            self._client = openai.AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    async def invoke(self, source_code: str, contract_name: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.model_id,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_audit_prompt(source_code, contract_name)},
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        if not response.choices:
            return ""
        content = response.choices[0].message.content or ""
        logger.debug(f"{self.model_id} raw response length: {len(content)}")
        return content


class StaticResponsePass:
    """Replays a canned response (demo and simulation mode)."""

    def __init__(self, model_id: str, response_text: str):
        self.model_id = model_id
        self.response_text = response_text

    async def invoke(self, source_code: str, contract_name: str) -> str:
        return self.response_text


class CallableModelPass:
    """Adapts a sync or async callable ``fn(source_code, contract_name)``."""

    def __init__(self, model_id: str,
                 fn: Callable[[str, str], Union[str, Awaitable[str]]]):
        self.model_id = model_id
        self.fn = fn

    async def invoke(self, source_code: str, contract_name: str) -> str:
        if inspect.iscoroutinefunction(self.fn):
            return await self.fn(source_code, contract_name)
        result = await asyncio.get_running_loop().run_in_executor(None, self.fn, source_code, contract_name)
        if inspect.isawaitable(result):
            result = await result
        return result


def build_model_passes(config, models: Optional[List[str]] = None) -> List[OpenAIModelPass]:
    """One OpenAIModelPass per configured (or explicitly requested) model."""
    model_ids = models or list(config.models)
    return [
        OpenAIModelPass(
            model_id=model_id,
            api_key=config.openrouter_api_key,
            base_url=config.openrouter_base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
        for model_id in model_ids
    ]
