"""
Ranking primitives for leaderboards.

Two rank semantics exist and are kept apart:

* page rank: position within an already-sorted page, ``offset + index + 1``
* absolute rank: ``1 + number of entities scoring strictly higher``, so
  tied entities share a rank

Ties in ordering are broken by ascending id so that paging is stable.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from .exceptions import InvalidArgumentError
from .stats_calculator import DerivedMetrics, ScoreRecord, StatsCalculator

MIN_COMPARE = 2
MAX_COMPARE = 5


class Period(str, Enum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL_TIME = "allTime"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Period":
        if value is None or value == "":
            return cls.ALL_TIME
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(p.value for p in cls)
            raise InvalidArgumentError(f"Invalid period '{value}'. Expected one of: {allowed}", field="period")


PERIOD_WINDOWS = {
    Period.WEEK: timedelta(days=7),
    Period.MONTH: timedelta(days=30),
    Period.YEAR: timedelta(days=365),
}


def period_start(period: Period, now: datetime) -> Optional[datetime]:
    """Lower bound of the period window, or None for all time."""
    window = PERIOD_WINDOWS.get(period)
    return now - window if window else None


@dataclass
class RankedEntry:
    rank: int
    record: ScoreRecord
    metrics: DerivedMetrics
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {'rank': self.rank}
        data.update(self.extra)
        data.update(self.record.to_dict())
        data.update(self.metrics.to_dict())
        return data


def sort_key(record: ScoreRecord, attribute: str = 'performance_points'):
    return (-getattr(record, attribute), record.id)


def rank_sorted(records: Iterable[ScoreRecord], attribute: str = 'performance_points') -> List[ScoreRecord]:
    """Order records descending by ``attribute``, ties by ascending id."""
    return sorted(records, key=lambda r: sort_key(r, attribute))


def page_ranks(records: Sequence[ScoreRecord], offset: int = 0,
               calculator: StatsCalculator = None) -> List[RankedEntry]:
    """Assign page ranks to records already ordered by the sort key."""
    if offset < 0:
        raise InvalidArgumentError("offset must be >= 0", field="offset")
    calculator = calculator or StatsCalculator()
    return [
        RankedEntry(rank=offset + i + 1, record=r, metrics=calculator.derived_metrics(r))
        for i, r in enumerate(records)
    ]


def absolute_rank(count_greater: int) -> int:
    return count_greater + 1


def absolute_rank_in(record: ScoreRecord, population: Iterable[ScoreRecord],
                     attribute: str = 'performance_points') -> int:
    value = getattr(record, attribute)
    return absolute_rank(sum(1 for other in population if getattr(other, attribute) > value))


def compare(entries: Sequence[RankedEntry]) -> dict:
    """
    Reduce 2-5 ranked entries to per-metric bests.

    ``highest`` holds the maximum of each metric; ``lowest.rank`` is the worst
    (numerically largest) rank among the entries.
    """
    if not MIN_COMPARE <= len(entries) <= MAX_COMPARE:
        raise InvalidArgumentError(
            f"Provide between {MIN_COMPARE} and {MAX_COMPARE} entities to compare"
        )

    return {
        'highest': {
            'performancePoints': max(e.record.performance_points for e in entries),
            'kdRatio': max(e.metrics.kd_ratio for e in entries),
            'winRate': max(e.metrics.win_rate for e in entries),
            'mvpCount': max(e.record.mvp_count for e in entries),
            'kills': max(e.record.kills for e in entries),
        },
        'lowest': {
            'rank': max(e.rank for e in entries),
        },
    }
