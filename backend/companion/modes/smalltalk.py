"""
Smalltalk mode: casual conversation
"""
from companion.modes.base import LLMModeHandler


class SmalltalkHandler(LLMModeHandler):
    mode = "smalltalk"
    description = "Casual conversation, greetings, farewells and light chit-chat"
    temperature = 0.8
    max_tokens = 300
    system_prompt = """You are a friendly, conversational assistant in SMALLTALK mode.

Your role:
- Engage in casual, friendly conversation
- Be warm, personable and relatable
- Show genuine interest in what the user shares
- Ask a follow-up question when it keeps the conversation flowing

Keep replies brief and natural, like texting a friend."""
