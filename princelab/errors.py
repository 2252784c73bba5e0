from __future__ import annotations

"""Centralised error types for PrinceLab.

Each custom error is JSON-serialisable via ``to_dict`` so log lines carry
machine-readable diagnostics instead of free-form strings.  ``retryable``
tells the caller whether trying the same request again can succeed: model
outages can, broken conversation records cannot.
"""

from typing import Any, Dict, Optional


class PrinceLabError(Exception):
    """Base class for all structured PrinceLab exceptions."""

    code: str = "PRINCELAB_ERROR"
    status: str = "error"
    retryable: bool = False

    def __init__(self, message: str, *, data: Optional[Dict[str, Any]] = None) -> None:  # noqa: D401 – simple init
        super().__init__(message)
        self.message = message
        self.data = data or {}

    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:  # noqa: D401 – utility
        return {
            "status": self.status,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "data": self.data,
        }

    def __str__(self) -> str:  # noqa: D401 – friendly repr
        return f"{self.code}: {self.message}"


class CompletionError(PrinceLabError):
    """The model backend failed or returned nothing usable."""

    code = "COMPLETION_ERROR"
    retryable = True

    def __init__(self, message: str, *, model: str | None = None, data: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, data={**(data or {}), **({"model": model} if model else {})})
        self.model = model


class InvariantViolation(PrinceLabError):
    """A conversation record broke one of its structural bounds."""

    code = "INVARIANT_VIOLATION"

    def __init__(self, message: str, *, user_key: str, data: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, data={**(data or {}), "user_key": user_key})
        self.user_key = user_key
