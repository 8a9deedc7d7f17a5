"""
OpenAI-compatible LLM client for job analysis.

Sends one non-streaming chat completion per analysis and turns the reply
into a :class:`JobAnalysisResult`. Models often wrap their JSON in markdown
fences or surround it with prose, so the reply is narrowed with
:func:`extract_json` before it is decoded.
"""

from typing import Any, Dict, Optional

import httpx
import structlog
from pydantic import ValidationError

from monitor_api.core.config import LLMSettings
from monitor_api.core.exceptions import (
    LLMEmptyResponseError,
    LLMSchemaError,
    LLMTransportError,
    LLMUpstreamError,
)
from monitor_api.schemas.analysis import JobAnalysisResult
from monitor_api.services.llm_config import LLMConfigStore, get_llm_config_store

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60
TEMPERATURE = 0.3
RAW_PREFIX_LIMIT = 500
BODY_PREFIX_LIMIT = 500

SYSTEM_PROMPT = """You are an analysis assistant for machine learning jobs running on Huawei Ascend NPUs. \
Analyze the job information provided by the user and reply with a single JSON object in exactly \
the following format, with no other output:

{
  "summary": "a short overview of the job: task type, model, run time and resource usage",
  "taskType": {
    "category": "training | inference | unknown",
    "subCategory": "pre-training | fine-tuning | rlhf | evaluation | serving | batch-inference, or null",
    "inferenceFramework": "vLLM | TGI | MindIE | Triton, or null"
  },
  "modelInfo": {
    "modelName": "model name or null",
    "modelSize": "7B / 13B / 70B or null",
    "precision": "fp16 / bf16 / int8 / int4 or null",
    "parallelStrategy": "for example TP=8,PP=2, or null"
  },
  "resourceAssessment": {
    "npuUtilization": "high | medium | low | idle",
    "hbmUtilization": "high | medium | low",
    "description": "a short assessment of resource usage"
  },
  "issues": [
    {"severity": "critical | warning | info", "category": "category", "description": "what is wrong", "suggestion": "how to fix it"}
  ],
  "suggestions": ["overall optimization suggestions"]
}

Rules:
- Identify training or inference from the command line, process name, scripts, framework and environment variables.
- Extract model name, size, precision and parallel strategy (TP/PP/DP) where the data shows them.
- An NPU card may hold several chips (Chip0, Chip1). Power is reported per card on Chip0 only; 0W on Chip1 is normal.
- Ascend 910 cards carry 2 chips each, so tensor parallel sizes align with the chip count, not the card count.
- When information is missing use null instead of guessing. modelInfo as a whole may be null.
- issues and suggestions may be empty arrays but never null.
- If scripts or parameters are missing, say in the summary that the analysis may be incomplete."""


def extract_json(content: str) -> str:
    """
    Narrow an LLM reply down to its JSON payload.

    Tried in order: a ```json fenced block, any ``` fenced block (its
    language tag line skipped), the span from the first ``{`` to the last
    ``}``, and finally the whole reply. The result is stripped.
    """
    start = content.find("```json")
    if start != -1:
        start += len("```json")
        end = content.find("```", start)
        if end != -1:
            return content[start:end].strip()

    start = content.find("```")
    if start != -1:
        start += len("```")
        newline = content.find("\n", start)
        if newline != -1:
            start = newline + 1
        end = content.find("```", start)
        if end != -1:
            return content[start:end].strip()

    first = content.find("{")
    last = content.rfind("}")
    if first != -1 and last > first:
        return content[first:last + 1].strip()

    return content.strip()


def parse_analysis(content: str) -> JobAnalysisResult:
    """
    Decode a reply into the analysis schema.

    Raises:
        LLMSchemaError: The payload is not valid JSON or misses required fields
    """
    try:
        return JobAnalysisResult.model_validate_json(extract_json(content))
    except ValidationError as e:
        raise LLMSchemaError(str(e), content[:RAW_PREFIX_LIMIT]) from e


def effective_timeout(config: LLMSettings) -> int:
    return config.timeout if config.timeout >= 1 else DEFAULT_TIMEOUT_SECONDS


class LLMClient:
    """
    Async chat-completions client.

    The underlying ``httpx.AsyncClient`` is created on first use from the
    current config snapshot and replaced whenever the config changes. A
    replaced client is closed once the requests still running on it finish.
    """

    def __init__(
        self,
        config_store: LLMConfigStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config_store = config_store
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._in_flight: Dict[httpx.AsyncClient, int] = {}
        config_store.subscribe(self.on_config_change)

    async def _get_client(self, config: LLMSettings) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(effective_timeout(config)),
                transport=self._transport,
            )
        return self._client

    async def _acquire(self, config: LLMSettings) -> httpx.AsyncClient:
        client = await self._get_client(config)
        self._in_flight[client] = self._in_flight.get(client, 0) + 1
        return client

    async def _release(self, client: httpx.AsyncClient) -> None:
        remaining = self._in_flight.pop(client) - 1
        if remaining:
            self._in_flight[client] = remaining
        elif client is not self._client:
            await client.aclose()

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def on_config_change(self, config: LLMSettings) -> None:
        """Retire the HTTP client so the next call picks up the new timeout."""
        client, self._client = self._client, None
        if client is not None and client not in self._in_flight:
            await client.aclose()
        logger.info("LLM client reset", endpoint=config.endpoint, timeout=effective_timeout(config))

    def _build_request(self, config: LLMSettings, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        return {
            "model": config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": TEMPERATURE,
        }

    async def chat(self, system_prompt: str, user_prompt: str) -> str:
        """
        Run one chat completion and return the first choice's content.

        Raises:
            LLMTransportError: The endpoint could not be reached or timed out
            LLMUpstreamError: The endpoint answered with a non-200 status
            LLMEmptyResponseError: The reply carries no usable first choice
        """
        config = await self.config_store.snapshot()
        client = await self._acquire(config)

        url = config.endpoint.rstrip("/") + "/chat/completions"
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

        try:
            response = await client.post(
                url,
                json=self._build_request(config, system_prompt, user_prompt),
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.warning("LLM request failed", url=url, error=str(e))
            raise LLMTransportError(f"http request: {e}") from e
        finally:
            await self._release(client)

        if response.status_code != 200:
            logger.warning("LLM returned error status", url=url, status_code=response.status_code)
            raise LLMUpstreamError(response.status_code, response.text[:BODY_PREFIX_LIMIT])

        try:
            data = response.json()
        except ValueError as e:
            raise LLMTransportError(f"unmarshal response: {e}") from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise LLMEmptyResponseError()

        message = choices[0].get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise LLMEmptyResponseError()
        return content

    async def analyze(self, user_prompt: str) -> JobAnalysisResult:
        """Send the job prompt with the fixed system prompt and decode the reply."""
        content = await self.chat(SYSTEM_PROMPT, user_prompt)
        return parse_analysis(content)


_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get the process-wide LLM client."""
    global _llm_client

    if _llm_client is None:
        _llm_client = LLMClient(get_llm_config_store())
    return _llm_client


async def close_llm_client() -> None:
    global _llm_client

    if _llm_client is not None:
        await _llm_client.close()
        _llm_client = None
