"""
Composition of several mode responses into one reply
"""
from itertools import combinations
from typing import List, Optional, Sequence, Set

from companion.core.llm_client import GenerationOptions, TaskType
from companion.core.logging_config import LoggingConfig
from companion.orchestrator.types import ModeSegment

logger = LoggingConfig.get_logger(__name__)

COMPOSITION_PROMPT = """You combine several draft replies to the same user message into one cohesive reply.

User's message: "{message}"

Draft replies:
{drafts}

Primary mode: {primary_mode}

Instructions:
1. Combine the drafts naturally without mentioning modes
2. Prioritize content from the primary mode ({primary_mode}) and prefer its perspective on conflicts
3. Do not repeat information
4. Keep the reply concise (under 400 words)
5. Write it as one coherent assistant reply

Combined reply:"""


class ResponseComposer:
    """
    Joins segments without a model call unless they overlap.

    Two segments conflict when both are longer than `min_response_chars`
    and they share more than `conflict_word_count` distinct words longer
    than `significant_word_length` characters. Without a conflict, and
    unless a blended composition was requested, segments are joined in the
    order given with blank lines between them.
    """

    def __init__(
        self,
        llm,
        min_response_chars: int = 100,
        significant_word_length: int = 4,
        conflict_word_count: int = 5,
    ):
        self.llm = llm
        self.min_response_chars = min_response_chars
        self.significant_word_length = significant_word_length
        self.conflict_word_count = conflict_word_count

    def significant_words(self, text: str) -> Set[str]:
        return {w for w in text.lower().split() if len(w) > self.significant_word_length}

    def detect_conflict(self, segments: Sequence[ModeSegment]) -> bool:
        substantial = [s for s in segments if len(s.content) > self.min_response_chars]
        if len(substantial) < 2:
            return False
        word_sets = [self.significant_words(s.content) for s in substantial]
        return any(len(a & b) > self.conflict_word_count for a, b in combinations(word_sets, 2))

    async def compose(
        self,
        message: str,
        segments: List[ModeSegment],
        primary_mode: str,
        strategy: Optional[str] = None,
    ) -> str:
        """
        Compose segments, primary first

        Args:
            message: The user's message
            segments: Non-empty handler outputs, primary segment first
            primary_mode: Mode whose view wins on conflict
            strategy: Requested composition strategy

        Returns:
            The composed reply
        """
        if not segments:
            return ""
        if len(segments) == 1:
            return segments[0].content

        conflict = self.detect_conflict(segments)
        if not conflict and strategy != "blended":
            logger.debug("Composing by concatenation", extra={"segments": len(segments), "strategy": strategy})
            return "\n\n".join(s.content.strip() for s in segments if s.content.strip())

        logger.debug("Composing with model", extra={"conflict": conflict, "strategy": strategy})
        return await self.blend(message, segments, primary_mode)

    async def blend(self, message: str, segments: List[ModeSegment], primary_mode: str) -> str:
        primary = next((s for s in segments if s.mode == primary_mode), segments[0])
        prompt = COMPOSITION_PROMPT.format(
            message=message,
            drafts="\n\n---\n\n".join(f"[{s.mode}]:\n{s.content}" for s in segments),
            primary_mode=primary_mode,
        )
        try:
            composed = await self.llm.generate(
                [{"role": "system", "content": prompt}],
                GenerationOptions(max_tokens=500, temperature=0.3, task_type=TaskType.COMPOSITION),
            )
        except Exception as e:
            logger.warning(f"Model composition failed, using primary response: {e}", exc_info=True)
            return primary.content
        return composed.strip() or primary.content
