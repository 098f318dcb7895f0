"""
Consult mode: advice, problem solving and questions
"""
from typing import Any, Dict

from companion.modes.base import HandlerContext, LLMModeHandler


class ConsultHandler(LLMModeHandler):
    mode = "consult"
    description = "Advice, help with a problem, health or money questions, thoughtful explanations"
    temperature = 0.6
    max_tokens = 700
    system_prompt = """You are a thoughtful, supportive assistant in CONSULT mode.

Your role:
- Understand the user's situation before offering advice
- Give practical, specific suggestions the user can act on
- Be honest about uncertainty and suggest a professional when the topic needs one
- Ask a clarifying question if the problem is ambiguous

Structure longer answers with short paragraphs or a brief list."""

    def build_state_updates(self, context: HandlerContext) -> Dict[str, Any]:
        topics = [e.value for e in context.state.context_elements if e.key.startswith("topic:")]
        return {"consult_topics": topics[:3]} if topics else {}
