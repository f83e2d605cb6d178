# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Structured outcome returned to administrative callers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from vigil.core.exceptions import IntegrityError, OperationRefusedError


class OperationOutcome(StrEnum):
    SUCCEEDED = "SUCCEEDED"
    PARTIAL = "PARTIAL"
    REFUSED = "REFUSED"
    FAILED = "FAILED"


class OperationResult(BaseModel):
    """Tells "refused" apart from "attempted and failed" and "partially done"."""

    operation: str
    outcome: OperationOutcome
    message: str = ""
    error_kind: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.outcome == OperationOutcome.SUCCEEDED

    @classmethod
    def succeeded(cls, operation: str, message: str = "", **data: Any) -> OperationResult:
        return cls(
            operation=operation,
            outcome=OperationOutcome.SUCCEEDED,
            message=message,
            data=data,
        )

    @classmethod
    def partial(cls, operation: str, message: str, **data: Any) -> OperationResult:
        return cls(
            operation=operation,
            outcome=OperationOutcome.PARTIAL,
            message=message,
            data=data,
        )

    @classmethod
    def from_exception(cls, operation: str, exc: Exception) -> OperationResult:
        """Map a raised error onto REFUSED or FAILED."""
        outcome = (
            OperationOutcome.REFUSED
            if isinstance(exc, OperationRefusedError)
            else OperationOutcome.FAILED
        )
        kind = "integrity" if isinstance(exc, IntegrityError) else type(exc).__name__
        return cls(
            operation=operation,
            outcome=outcome,
            message=str(exc),
            error_kind=kind,
        )
