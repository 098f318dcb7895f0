"""
Error types for the turn pipeline and its collaborators
"""
from typing import Any, Dict, Optional


class PipelineError(Exception):
    """
    Infrastructure failure inside a pipeline stage.

    Carries the name of the failing stage and the original exception so the
    caller can report where the turn broke. Never raised for expected
    fallbacks (classification miss, extraction miss, handler timeout).
    """

    def __init__(self, stage: str, cause: BaseException, context: Optional[Dict[str, Any]] = None):
        self.stage = stage
        self.cause = cause
        self.context = context or {}
        super().__init__(f"Pipeline stage '{stage}' failed: {cause}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary"""
        return {
            "stage": self.stage,
            "error_type": type(self.cause).__name__,
            "message": str(self.cause),
            "context": self.context,
        }


class LLMError(Exception):
    """Text-generation collaborator failure (transport, status, timeout, payload)"""
    pass
