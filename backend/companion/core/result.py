"""
Explicit success/failure values for expected fallback paths
"""
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of an operation whose failure is an expected, handled path.

    A failed result may still carry a value: classifiers return their
    conservative fallback as the value of a failure so callers can proceed
    while still seeing that the signal was degraded.
    """
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value, error=error)

