from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Tuple


@dataclass(frozen=True)
class ScoreRecord:
    """Read-only view of an entity's score counters."""
    id: int
    performance_points: int = 0
    kills: int = 0
    deaths: int = 0
    matches_played: int = 0
    matches_won: int = 0
    mvp_count: int = 0
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            'performancePoints': self.performance_points,
            'kills': self.kills,
            'deaths': self.deaths,
            'matchesPlayed': self.matches_played,
            'matchesWon': self.matches_won,
            'mvpCount': self.mvp_count,
        }


@dataclass(frozen=True)
class DerivedMetrics:
    kd_ratio: float
    win_rate: float

    def to_dict(self) -> dict:
        return {'kdRatio': self.kd_ratio, 'winRate': self.win_rate}


@dataclass(frozen=True)
class TeamAggregate:
    performance_points: int
    kills: int
    deaths: int
    mvp_count: int
    kd_ratio: float
    member_count: int

    def to_dict(self) -> dict:
        return {
            'totalPerformancePoints': self.performance_points,
            'totalKills': self.kills,
            'totalDeaths': self.deaths,
            'totalMvps': self.mvp_count,
            'kdRatio': self.kd_ratio,
            'memberCount': self.member_count,
        }


class StatsCalculator:
    """
    Derived metrics over score counters.
    K/D is rounded to 2 decimals and win rate to 1 decimal by default.
    Every method is pure: the same counters always give the same result.
    """

    def __init__(self, kd_decimals: int = 2, win_rate_decimals: int = 1):
        self.kd_decimals = kd_decimals
        self.win_rate_decimals = win_rate_decimals

    def kd_ratio(self, kills: int, deaths: int) -> float:
        """Kills per death; with no deaths the ratio is the kill count itself."""
        if deaths > 0:
            return round(kills / deaths, self.kd_decimals)
        return float(kills)

    def win_rate(self, matches_won: int, matches_played: int) -> float:
        """Percentage of matches won, 0 when nothing has been played."""
        if matches_played <= 0:
            return 0.0
        won = min(max(matches_won, 0), matches_played)
        return round(won / matches_played * 100, self.win_rate_decimals)

    def derived_metrics(self, record: ScoreRecord) -> DerivedMetrics:
        return DerivedMetrics(
            kd_ratio=self.kd_ratio(record.kills, record.deaths),
            win_rate=self.win_rate(record.matches_won, record.matches_played),
        )

    def team_aggregate(self, members: Iterable[ScoreRecord]) -> TeamAggregate:
        """
        Roll up the current members of a team.

        Recomputed on every call from whatever records are passed in;
        an empty roster gives all-zero totals.
        """
        members = list(members)
        kills = sum(m.kills for m in members)
        deaths = sum(m.deaths for m in members)
        return TeamAggregate(
            performance_points=sum(m.performance_points for m in members),
            kills=kills,
            deaths=deaths,
            mvp_count=sum(m.mvp_count for m in members),
            kd_ratio=self.kd_ratio(kills, deaths),
            member_count=len(members),
        )


def apply_xp(level: int, xp: int, delta: int, xp_per_level: int = 100) -> Tuple[int, int, bool]:
    """
    Apply an XP change and resolve any level-ups.

    The threshold for leaving a level is ``level * xp_per_level`` and is
    re-evaluated after every level gained, so a large award can cross
    several levels at once. XP never drops below zero and levels are
    never lost.

    Returns:
        (new_level, new_xp, leveled_up)
    """
    if xp_per_level <= 0:
        raise ValueError("xp_per_level must be positive")

    new_level = max(level, 1)
    new_xp = max(xp + delta, 0)
    leveled_up = False

    while new_xp >= new_level * xp_per_level:
        new_xp -= new_level * xp_per_level
        new_level += 1
        leveled_up = True

    return new_level, new_xp, leveled_up
