# src/batch/models.py
"""Batch orchestration models: ItemSuccess, ItemFailure, BatchOutcome."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class ItemSuccess(Generic[T, R]):
    item: T
    result: R


@dataclass(frozen=True)
class ItemFailure(Generic[T]):
    item: T
    error: Exception


@dataclass
class BatchOutcome(Generic[T, R]):
    """Partition of a batch's input into successes and failures."""

    succeeded: list[ItemSuccess[T, R]] = field(default_factory=list)
    failed: list[ItemFailure[T]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def results(self) -> list[R]:
        return [s.result for s in self.succeeded]

    def result_map(self) -> dict[T, R]:
        """Results keyed by item (items must be hashable)."""
        return {s.item: s.result for s in self.succeeded}
