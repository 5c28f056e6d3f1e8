"""
results.py

Uniform result type for facade operations that can report why they failed.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class ResultError:
    """Typed description of a failure: what kind, what the service said, which code."""
    kind: str
    message: str
    code: Optional[int] = None
    exception: Optional[BaseException] = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ResultError":
        return cls(
            kind=getattr(exc, "kind", "service_error"),
            message=getattr(exc, "message", None) or str(exc),
            code=getattr(exc, "code", None),
            exception=exc,
        )


@dataclass(frozen=True)
class Result:
    """
    Either a success payload or a ResultError.

    A Result is truthy only when it succeeded, so callers that only care
    about success can keep writing `if facade.get_all_lists(): ...`.
    """
    value: Any = None
    error: Optional[ResultError] = None

    @classmethod
    def success(cls, value: Any) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, exc: BaseException) -> "Result":
        return cls(error=ResultError.from_exception(exc))

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok

    def unwrap(self) -> Any:
        """Return the value or raise the carried error."""
        if self.error is not None:
            if self.error.exception is not None:
                raise self.error.exception
            raise RuntimeError(self.error.message)
        return self.value

    def unwrap_or(self, default: Any) -> Any:
        return self.value if self.error is None else default
