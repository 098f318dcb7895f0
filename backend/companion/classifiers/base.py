"""
Shared helpers for LLM-backed classifiers
"""
from typing import Any, Dict, List, Optional, Sequence

from companion.core.llm_client import GenerationOptions, TaskType, parse_json_response
from companion.core.state import ChatTurn


async def request_json(
    llm,
    system_prompt: str,
    user_message: str,
    task_type: TaskType,
    max_tokens: int = 300,
    temperature: float = 0.3,
    history: Optional[Sequence[ChatTurn]] = None,
) -> Dict[str, Any]:
    """
    Ask the text-generation collaborator for a JSON object

    Raises:
        LLMError: on generation failure or a non-JSON answer
    """
    messages: List[Dict[str, str]] = [{"role": "system", "content": system_prompt}]
    if history:
        messages.extend(turn.as_message() for turn in history)
    messages.append({"role": "user", "content": user_message})
    content = await llm.generate(
        messages,
        GenerationOptions(
            max_tokens=max_tokens,
            temperature=temperature,
            json_output=True,
            task_type=task_type,
        ),
    )
    return parse_json_response(content)


def clamp_confidence(value: Any, default: float = 0.5) -> float:
    """Coerce a model-reported confidence into [0, 1]"""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return max(0.0, min(1.0, number))


def format_history(turns: Sequence[ChatTurn], limit: int, max_chars: int = 200) -> str:
    """Render the last `limit` turns as `role: content` lines"""
    selected = list(turns)[-limit:] if limit else []
    if not selected:
        return "(no previous messages)"
    return "\n".join(f"{t.role}: {t.content[:max_chars]}" for t in selected)
