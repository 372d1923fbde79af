"""Class ranking."""

from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from results_engine.core.config import settings


@dataclass
class RankingEntry:
    student_id: int
    admission_number: str
    average_marks: Decimal | None
    total_points: int | None
    position: int | None = None
    total_students: int = 0

    @property
    def has_results(self) -> bool:
        return self.average_marks is not None


def competition_positions(values: Mapping[Hashable, Any], descending: bool = True) -> dict[Hashable, int]:
    """Standard competition ranking (1, 2, 2, 4) of the given values."""
    ordered = sorted(values.items(), key=lambda kv: kv[1], reverse=descending)
    positions: dict[Hashable, int] = {}
    previous = object()
    position = 0
    for index, (key, value) in enumerate(ordered, start=1):
        if value != previous:
            position = index
            previous = value
        positions[key] = position
    return positions


class RankingEngine:
    """Orders students and assigns shared positions on ties."""

    def __init__(self, basis: str | None = None):
        self.basis = basis or settings.RANKING_BASIS

    def _sort_key(self, entry: RankingEntry) -> tuple:
        points = (entry.total_points is None, entry.total_points or 0)
        if self.basis == "total_points":
            return (points, -entry.average_marks, entry.admission_number)
        return (-entry.average_marks, points, entry.admission_number)

    @staticmethod
    def _tie_key(entry: RankingEntry) -> tuple:
        return (entry.average_marks, entry.total_points)

    def rank(self, entries: list[RankingEntry]) -> list[RankingEntry]:
        """Return entries in rank order with positions filled in.

        Students without any result are listed last with no position.
        """
        ranked = sorted((e for e in entries if e.has_results), key=self._sort_key)
        unranked = sorted((e for e in entries if not e.has_results), key=lambda e: e.admission_number)

        total = len(ranked)
        position = 0
        previous = None
        for index, entry in enumerate(ranked, start=1):
            key = self._tie_key(entry)
            if key != previous:
                position = index
                previous = key
            entry.position = position
            entry.total_students = total
        for entry in unranked:
            entry.position = None
            entry.total_students = total
        return ranked + unranked
