# src/dealcore/domain/errors.py
from __future__ import annotations

from typing import Any


class DealCoreError(Exception):
    """Base class for errors surfaced by the valuation and scoring core."""


class ResourceNotFoundError(DealCoreError):
    def __init__(self, resource: str, identifier: Any) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} with identifier '{identifier}' not found")


class MissingContextError(DealCoreError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Missing required context: {name}")


class ScoringValidationError(DealCoreError, ValueError):
    def __init__(self, total: float, tolerance: float) -> None:
        self.total = total
        self.tolerance = tolerance
        super().__init__(
            f"Scoring weights must sum to 1.0 (+/- {tolerance:g}); got {total:.4f}"
        )


def require_context(value: str | None, name: str) -> str:
    if value is None or not str(value).strip():
        raise MissingContextError(name)
    return str(value)
