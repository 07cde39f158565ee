"""
Unit tests for ranking primitives: periods, page ranks, absolute ranks and
comparison.
"""
from datetime import datetime, timedelta

import pytest
from arena.exceptions import InvalidArgumentError
from arena.ranking import (
    Period,
    RankedEntry,
    absolute_rank,
    absolute_rank_in,
    compare,
    page_ranks,
    period_start,
    rank_sorted,
)
from arena.stats_calculator import DerivedMetrics, ScoreRecord


def entry(rank, id, points=0, kills=0, deaths=0, mvps=0, win_rate=0.0, kd=0.0):
    return RankedEntry(
        rank=rank,
        record=ScoreRecord(id=id, performance_points=points, kills=kills, deaths=deaths, mvp_count=mvps),
        metrics=DerivedMetrics(kd_ratio=kd, win_rate=win_rate),
    )


class TestPeriod:
    def test_parse_known_values(self):
        assert Period.parse('week') == Period.WEEK
        assert Period.parse('allTime') == Period.ALL_TIME

    def test_missing_defaults_to_all_time(self):
        assert Period.parse(None) == Period.ALL_TIME
        assert Period.parse('') == Period.ALL_TIME

    def test_unknown_period_rejected(self):
        with pytest.raises(InvalidArgumentError) as exc_info:
            Period.parse('decade')
        assert exc_info.value.status_code == 400
        assert exc_info.value.details == {'field': 'period'}

    def test_period_start(self):
        now = datetime(2024, 6, 30, 12, 0)
        assert period_start(Period.WEEK, now) == now - timedelta(days=7)
        assert period_start(Period.MONTH, now) == now - timedelta(days=30)
        assert period_start(Period.YEAR, now) == now - timedelta(days=365)
        assert period_start(Period.ALL_TIME, now) is None


class TestRankSorted:
    def test_descending_with_id_tiebreak(self):
        records = [
            ScoreRecord(id=3, performance_points=50),
            ScoreRecord(id=1, performance_points=50),
            ScoreRecord(id=2, performance_points=80),
        ]
        assert [r.id for r in rank_sorted(records)] == [2, 1, 3]

    def test_sort_by_other_attribute(self):
        records = [ScoreRecord(id=1, kills=1), ScoreRecord(id=2, kills=9)]
        assert [r.id for r in rank_sorted(records, 'kills')] == [2, 1]


class TestPageRanks:
    def test_first_page(self):
        records = [ScoreRecord(id=1, performance_points=300), ScoreRecord(id=2, performance_points=200)]
        assert [e.rank for e in page_ranks(records)] == [1, 2]

    def test_offset_page(self):
        """Ranks continue from the offset."""
        entries = page_ranks([ScoreRecord(id=3, performance_points=100)], offset=2)
        assert [e.rank for e in entries] == [3]

    def test_ties_get_distinct_page_ranks(self):
        records = [ScoreRecord(id=1, performance_points=50), ScoreRecord(id=2, performance_points=50)]
        assert [e.rank for e in page_ranks(records)] == [1, 2]

    def test_metrics_attached(self):
        entries = page_ranks([ScoreRecord(id=1, kills=10, deaths=0, matches_played=20, matches_won=15)])
        assert entries[0].metrics.kd_ratio == 10.0
        assert entries[0].metrics.win_rate == 75.0

    def test_negative_offset_rejected(self):
        with pytest.raises(InvalidArgumentError):
            page_ranks([], offset=-1)

    def test_to_dict_merges_fields(self):
        ranked = page_ranks([ScoreRecord(id=7, performance_points=40)])[0]
        ranked.extra = {'id': 7, 'username': 'ace'}
        data = ranked.to_dict()

        assert data['rank'] == 1
        assert data['username'] == 'ace'
        assert data['performancePoints'] == 40
        assert 'kdRatio' in data and 'winRate' in data


class TestAbsoluteRank:
    def test_counts_strictly_greater(self):
        assert absolute_rank(0) == 1
        assert absolute_rank(4) == 5

    def test_ties_share_rank(self):
        population = [
            ScoreRecord(id=1, performance_points=100),
            ScoreRecord(id=2, performance_points=80),
            ScoreRecord(id=3, performance_points=80),
            ScoreRecord(id=4, performance_points=10),
        ]
        assert absolute_rank_in(population[1], population) == 2
        assert absolute_rank_in(population[2], population) == 2
        assert absolute_rank_in(population[3], population) == 4


class TestCompare:
    def test_highest_and_lowest(self):
        entries = [
            entry(rank=1, id=1, points=300, kills=40, mvps=2, kd=2.5, win_rate=60.0),
            entry(rank=4, id=2, points=120, kills=55, mvps=7, kd=3.1, win_rate=40.0),
        ]
        result = compare(entries)

        assert result['highest'] == {
            'performancePoints': 300,
            'kdRatio': 3.1,
            'winRate': 60.0,
            'mvpCount': 7,
            'kills': 55,
        }
        assert result['lowest'] == {'rank': 4}

    @pytest.mark.parametrize("count", [0, 1, 6])
    def test_entity_count_bounds(self, count):
        entries = [entry(rank=i + 1, id=i + 1) for i in range(count)]
        with pytest.raises(InvalidArgumentError):
            compare(entries)

    def test_five_entries_allowed(self):
        entries = [entry(rank=i + 1, id=i + 1, points=10 * i) for i in range(5)]
        assert compare(entries)['highest']['performancePoints'] == 40
