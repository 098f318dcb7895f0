"""
Mode dispatch table keyed by mode id
"""
from typing import Dict, Iterable, List, Optional

from companion.core.logging_config import LoggingConfig
from companion.core.state import ConversationMode
from companion.modes.base import ModeHandler

logger = LoggingConfig.get_logger(__name__)


class ModeRegistry:
    """
    Read-only lookup of mode handlers.

    `describe()` is the source of the mode list shown to the intent and
    multi-intent classifiers, so a newly registered handler is discoverable
    without changing them.
    """

    def __init__(self, handlers: Iterable[ModeHandler], default_mode: str = ConversationMode.SMALLTALK.value):
        self._handlers: Dict[str, ModeHandler] = {}
        for handler in handlers:
            if handler.mode in self._handlers:
                raise ValueError(f"Duplicate mode handler: {handler.mode}")
            self._handlers[handler.mode] = handler
        if default_mode not in self._handlers:
            raise ValueError(f"Default mode '{default_mode}' has no handler")
        self.default_mode = default_mode

    def get(self, mode: str) -> Optional[ModeHandler]:
        return self._handlers.get(mode)

    def resolve(self, mode: str) -> ModeHandler:
        """Handler for `mode`, or the default handler for unknown modes"""
        handler = self._handlers.get(mode)
        if handler is None:
            logger.warning("Unknown mode, using default handler", extra={"mode": mode, "default_mode": self.default_mode})
            return self._handlers[self.default_mode]
        return handler

    def ids(self) -> List[str]:
        return list(self._handlers)

    def describe(self) -> Dict[str, str]:
        """Mode id to description"""
        return {mode: handler.description for mode, handler in self._handlers.items()}

    def __contains__(self, mode: str) -> bool:
        return mode in self._handlers
