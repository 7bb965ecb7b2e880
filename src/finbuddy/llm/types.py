from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, model_validator


class ErrorKind(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    TIMEOUT = "timeout"
    BUSY = "busy"
    UNAVAILABLE = "unavailable"
    MALFORMED = "malformed"


RETRYABLE_ERRORS = frozenset({ErrorKind.TIMEOUT, ErrorKind.BUSY, ErrorKind.UNAVAILABLE})


class GenerationResult(BaseModel):
    success: bool
    text: str = ""
    error: ErrorKind | None = None
    detail: str = ""
    model: str | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> GenerationResult:
        if self.success and (not self.text or self.error is not None):
            raise ValueError("successful generation requires text and no error")
        if not self.success and self.error is None:
            raise ValueError("failed generation requires an error kind")
        return self

    @classmethod
    def ok(cls, text: str, model: str | None = None) -> GenerationResult:
        return cls(success=True, text=text, model=model)

    @classmethod
    def fail(cls, error: ErrorKind, detail: str = "", model: str | None = None) -> GenerationResult:
        return cls(success=False, error=error, detail=detail, model=model)

    @property
    def retryable(self) -> bool:
        return not self.success and self.error in RETRYABLE_ERRORS
