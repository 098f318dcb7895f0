"""
Text-generation client for an Ollama-compatible chat API
"""
import asyncio
import json
import re
import time
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from companion.core.config import Settings, get_settings
from companion.core.exceptions import LLMError
from companion.core.logging_config import LoggingConfig
from companion.core.metrics import llm_request_duration_seconds, llm_requests_total

logger = LoggingConfig.get_logger(__name__)


class TaskType(str, Enum):
    """What a generation call is for; selects model and labels metrics"""
    SAFETY_CLASSIFICATION = "safety_classification"
    INTENT_CLASSIFICATION = "intent_classification"
    UNIFIED_CLASSIFICATION = "unified_classification"
    DOMAIN_RELEVANCE = "domain_relevance"
    EXTRACTION = "extraction"
    GOAL_SELECTION = "goal_selection"
    MULTI_INTENT = "multi_intent"
    RESPONSE = "response"
    COMPOSITION = "composition"


CLASSIFICATION_TASKS = frozenset([
    TaskType.SAFETY_CLASSIFICATION,
    TaskType.INTENT_CLASSIFICATION,
    TaskType.UNIFIED_CLASSIFICATION,
    TaskType.DOMAIN_RELEVANCE,
    TaskType.MULTI_INTENT,
])


class GenerationOptions(BaseModel):
    """Per-call generation options"""
    max_tokens: Optional[int] = Field(default=None, ge=1, description="Token budget")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    json_output: bool = Field(default=False, description="Request a JSON object response")
    model: Optional[str] = Field(default=None, description="Override the model for this call")
    task_type: TaskType = TaskType.RESPONSE


class LLMResponse(BaseModel):
    """Chat API response model"""
    model: str
    content: str
    done: bool = False


_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def parse_json_response(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of a model response.

    Accepts a bare object, an object inside a fenced code block, or an object
    surrounded by prose.

    Raises:
        LLMError: if no JSON object can be decoded
    """
    if not text or not text.strip():
        raise LLMError("Empty response where JSON was expected")

    candidates = [text.strip()]
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed

    raise LLMError(f"Response is not a JSON object: {text[:120]!r}")


class LLMClient:
    """
    Client for an Ollama-compatible `/api/chat` endpoint.

    `generate(messages, options)` is the single entry point used by
    classifiers, extractors, mode handlers and the response composer.
    Cancelling the awaiting task cancels the in-flight HTTP request.
    """

    def __init__(self, settings: Optional[Settings] = None, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client"""
        if self._client is None:
            base_url = self.settings.llm_base_url.rstrip("/")
            if base_url.endswith("/v1"):
                base_url = base_url[:-3]
            self._client = httpx.AsyncClient(
                base_url=base_url,
                timeout=float(self.settings.llm_timeout_seconds),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
        return self._client

    def select_model(self, options: GenerationOptions) -> str:
        """Explicit model, then classifier model for classification tasks, then default"""
        if options.model:
            return options.model
        if options.task_type in CLASSIFICATION_TASKS and self.settings.llm_classifier_model:
            return self.settings.llm_classifier_model
        return self.settings.llm_model

    def _build_payload(self, messages: List[Dict[str, str]], options: GenerationOptions, model: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "stream": False,
            "options": {
                "temperature": options.temperature if options.temperature is not None else self.settings.llm_temperature,
                "num_predict": options.max_tokens or self.settings.llm_max_tokens,
            },
        }
        if options.json_output:
            payload["format"] = "json"
        return payload

    async def chat(self, messages: List[Dict[str, str]], options: Optional[GenerationOptions] = None) -> LLMResponse:
        """
        Send a chat request and return the parsed response

        Args:
            messages: Conversation as role/content mappings
            options: Generation options

        Returns:
            LLMResponse with the assistant content

        Raises:
            LLMError: on transport failure after retries, HTTP error status or malformed payload
        """
        options = options or GenerationOptions()
        model = self.select_model(options)
        payload = self._build_payload(messages, options, model)
        task_label = options.task_type.value

        if self.settings.log_llm_verbose:
            logger.info(
                "LLM request",
                extra={"model": model, "task_type": task_label, "messages": payload["messages"], "options": payload["options"]}
            )
        else:
            logger.debug(
                "LLM request",
                extra={
                    "model": model,
                    "task_type": task_label,
                    "message_count": len(messages),
                    "prompt_chars": sum(len(m["content"]) for m in messages),
                }
            )

        client = self._get_client()
        max_retries = self.settings.llm_max_retries
        retry_delay = 1.0
        start_time = time.time()

        for attempt in range(max_retries):
            try:
                response = await client.post("/api/chat", json=payload)
                response.raise_for_status()
                data = response.json()
                content = (data.get("message") or {}).get("content")
                if content is None:
                    raise LLMError(f"Malformed chat response from {model}: missing message content")

                duration = time.time() - start_time
                llm_requests_total.labels(model=model, task_type=task_label, status="success").inc()
                llm_request_duration_seconds.labels(model=model, task_type=task_label).observe(duration)
                logger.debug(
                    "LLM response received",
                    extra={"model": model, "task_type": task_label, "duration_ms": int(duration * 1000), "chars": len(content)}
                )
                return LLMResponse(model=model, content=content, done=data.get("done", True))

            except (httpx.TimeoutException, httpx.TransportError) as e:
                if attempt < max_retries - 1:
                    logger.warning(
                        f"LLM transport error, retrying ({attempt + 1}/{max_retries}): {e}",
                        extra={"model": model, "task_type": task_label}
                    )
                    await asyncio.sleep(retry_delay * (attempt + 1))
                    continue
                llm_requests_total.labels(model=model, task_type=task_label, status="error").inc()
                raise LLMError(f"Request to {self.settings.llm_base_url} failed after {max_retries} attempts: {e}") from e
            except httpx.HTTPStatusError as e:
                llm_requests_total.labels(model=model, task_type=task_label, status="error").inc()
                raise LLMError(f"HTTP error from LLM: {e.response.status_code} - {e.response.text}") from e
            except ValueError as e:
                llm_requests_total.labels(model=model, task_type=task_label, status="error").inc()
                raise LLMError(f"Invalid JSON payload from LLM: {e}") from e

        raise LLMError(f"Failed to generate response after {max_retries} attempts")

    async def generate(self, messages: List[Dict[str, str]], options: Optional[GenerationOptions] = None) -> str:
        """Generate text for a conversation; returns the assistant content"""
        response = await self.chat(messages, options)
        return response.content

    async def health_check(self) -> bool:
        """Check if the LLM server is reachable"""
        try:
            response = await self._get_client().get("/api/tags", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def close(self):
        """Close the HTTP client if this instance created it"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
