"""
Shared LLM extraction flow for domain extractors
"""
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from companion.classifiers.base import clamp_confidence, format_history, request_json
from companion.core.llm_client import TaskType
from companion.core.logging_config import LoggingConfig
from companion.core.state import ExtractionRecord
from companion.domains.registry import ExtractionContext
from companion.utils.datetime_utils import utc_now

logger = LoggingConfig.get_logger(__name__)


class LLMExtractor:
    """
    Extracts a domain payload as JSON and validates it with a pydantic model.

    Subclasses set `domain_id`, `data_model` and `instructions`, and may
    override `is_empty` to reject payloads that carry no information.
    Failures are logged and reported as no extraction.
    """

    domain_id: str = ""
    data_model: Type[BaseModel]
    instructions: str = ""
    max_tokens: int = 500
    temperature: float = 0.3

    def __init__(self, llm):
        self.llm = llm

    def build_prompt(self, context: ExtractionContext) -> str:
        return (
            f"{self.instructions}\n\n"
            f"Recent conversation:\n{format_history(context.recent_messages, 5)}\n\n"
            "Return a single JSON object. Use null for anything not mentioned. "
            'Include "confidence" (0.0-1.0) for how clearly the message carries this information.'
        )

    def is_empty(self, data: Dict[str, Any]) -> bool:
        """True when no field carries information"""
        return not any(v not in (None, [], {}, "") for k, v in data.items() if k != "confidence")

    async def extract(self, message: str, context: ExtractionContext) -> Optional[ExtractionRecord]:
        """Run the extraction; returns None when nothing usable was found"""
        try:
            payload = await request_json(
                self.llm,
                self.build_prompt(context),
                message,
                TaskType.EXTRACTION,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            return self.to_record(payload, context)
        except ValidationError as e:
            logger.warning(
                f"{self.domain_id} extraction failed validation: {e.error_count()} errors",
                extra={"domain_id": self.domain_id}
            )
            return None
        except Exception as e:
            logger.warning(f"{self.domain_id} extraction failed: {e}", extra={"domain_id": self.domain_id}, exc_info=True)
            return None

    def to_record(self, payload: Dict[str, Any], context: ExtractionContext) -> Optional[ExtractionRecord]:
        """Validate the payload and wrap it as an ExtractionRecord"""
        validated = self.data_model.model_validate(payload)
        data = validated.model_dump(exclude_none=True)
        if self.is_empty(data):
            return None
        confidence = clamp_confidence(payload.get("confidence"), default=0.5)
        data.pop("confidence", None)
        return ExtractionRecord(
            domain_id=self.domain_id,
            data=data,
            confidence=confidence,
            timestamp=context.now or utc_now(),
        )
