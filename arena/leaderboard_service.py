"""
Leaderboard queries: global player, tower and team rankings, tournament
winners, single-player details, player comparison and tower-internal
rankings.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from flask import current_app

from shared.state_machine import TournamentStatus
from .exceptions import InvalidArgumentError, NotFoundError
from .models import db, User, Tower, Tournament, TournamentRegistration, ReviewStatus, utcnow, isoformat
from .ranking import Period, RankedEntry, compare, page_ranks, period_start, absolute_rank, rank_sorted
from .score_store import EntityType, ScoreStore, PLAYER_SORT_KEYS
from .stats_calculator import StatsCalculator

logger = logging.getLogger(__name__)

ONGOING_STATUSES = (TournamentStatus.UPCOMING.value, TournamentStatus.LIVE.value)


def parse_page(limit: Optional[int], offset: Optional[int],
               default_limit: int = 50, max_limit: int = 100) -> Tuple[int, int]:
    """Validate pagination input; missing values take their defaults."""
    limit = default_limit if limit is None else limit
    offset = 0 if offset is None else offset
    if limit < 1 or limit > max_limit:
        raise InvalidArgumentError(f"limit must be between 1 and {max_limit}", field='limit')
    if offset < 0:
        raise InvalidArgumentError("offset must be >= 0", field='offset')
    return limit, offset


def parse_user_ids(raw: Optional[str]) -> List[int]:
    if not raw:
        raise InvalidArgumentError('userIds query parameter required (comma-separated)', field='userIds')
    try:
        ids = [int(part) for part in raw.split(',') if part.strip()]
    except ValueError:
        raise InvalidArgumentError('userIds must be a comma-separated list of integers', field='userIds')
    return list(dict.fromkeys(ids))


def timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def paginated(leaderboard: list, period: Period, total: int, limit: int, offset: int) -> dict:
    return {
        'leaderboard': leaderboard,
        'period': period.value,
        'updatedAt': timestamp(),
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'hasMore': offset + limit < total,
        },
    }


def tower_summary_for(user: User) -> Optional[dict]:
    tower = user.current_tower
    return tower.to_summary() if tower else None


def team_summary_for(user: User) -> Optional[dict]:
    team = user.current_team
    return team.to_summary() if team else None


def badge_summaries(user: User, limit: int = 3) -> list:
    return [
        {'type': ub.badge.type, 'name': ub.badge.name, 'iconUrl': ub.badge.icon_url}
        for ub in user.badges[:limit]
    ]


class LeaderboardService:
    def __init__(self, store: ScoreStore = None, calculator: StatsCalculator = None,
                 apply_period_filter: bool = None):
        self.store = store or ScoreStore()
        self.calculator = calculator or StatsCalculator()
        self._apply_period_filter = apply_period_filter

    @property
    def apply_period_filter(self) -> bool:
        if self._apply_period_filter is not None:
            return self._apply_period_filter
        return current_app.config.get('APPLY_PERIOD_FILTER', True)

    def _since(self, period: Period, now: datetime = None) -> Optional[datetime]:
        if not self.apply_period_filter:
            return None
        return period_start(period, now or utcnow())

    def _page(self, limit, offset) -> Tuple[int, int]:
        return parse_page(
            limit, offset,
            default_limit=current_app.config.get('LEADERBOARD_DEFAULT_LIMIT', 50),
            max_limit=current_app.config.get('LEADERBOARD_MAX_LIMIT', 100),
        )

    # ==================== Players ====================

    def players(self, limit: int = None, offset: int = None, period: str = None,
                sort_by: str = None, now: datetime = None) -> dict:
        limit, offset = self._page(limit, offset)
        period = Period.parse(period)
        sort_by = sort_by or 'performancePoints'
        if sort_by not in PLAYER_SORT_KEYS:
            allowed = ', '.join(PLAYER_SORT_KEYS)
            raise InvalidArgumentError(f"Invalid sortBy '{sort_by}'. Expected one of: {allowed}", field='sortBy')

        since = self._since(period, now)
        users = self.store.fetch_ranked(EntityType.PLAYER, PLAYER_SORT_KEYS[sort_by], limit, offset, since)
        entries = page_ranks([u.score_record() for u in users], offset, self.calculator)
        leaderboard = [self._player_row(entry, user) for entry, user in zip(entries, users)]

        total = self.store.count(EntityType.PLAYER, since)
        logger.debug(f"Player leaderboard: period={period.value} sortBy={sort_by} "
                     f"offset={offset} rows={len(leaderboard)} total={total}")
        return paginated(leaderboard, period, total, limit, offset)

    def _player_row(self, entry: RankedEntry, user: User) -> dict:
        approved = [r for r in user.registrations_created if r.status == ReviewStatus.APPROVED]
        entry.extra = {
            'id': user.id,
            'name': user.name,
            'username': user.username,
            'avatarUrl': user.avatar_url,
            'gameId': user.game_id,
            'role': user.role,
            'level': user.level,
            'xp': user.xp,
            'wins': user.wins,
            'currentTower': tower_summary_for(user),
            'currentTeam': team_summary_for(user),
            'tournamentsPlayed': len(approved),
            'ongoingTournaments': sum(1 for r in approved if r.tournament.status in ONGOING_STATUSES),
            'badges': badge_summaries(user),
        }
        return entry.to_dict()

    # ==================== Towers ====================

    def towers(self, limit: int = None, offset: int = None, period: str = None,
               now: datetime = None) -> dict:
        limit, offset = self._page(limit, offset)
        period = Period.parse(period)
        since = self._since(period, now)

        towers = self.store.fetch_ranked(EntityType.TOWER, limit=limit, offset=offset, since=since)
        leaderboard = []
        for index, tower in enumerate(towers):
            leaderboard.append({
                'rank': offset + index + 1,
                'id': tower.id,
                'name': tower.name,
                'logoUrl': tower.logo_url,
                'bannerUrl': tower.banner_url,
                'code': tower.code,
                'level': tower.level,
                'xp': tower.xp,
                'totalPoints': tower.total_points,
                'tournamentsParticipated': tower.tournaments_participated,
                'tournamentsWon': tower.tournaments_won,
                'totalMembers': tower.member_count,
                'totalTeams': len(tower.teams),
                'leader': tower.leader.to_summary() if tower.leader else None,
                'badges': [b.to_dict() for b in tower.badges[:3]],
            })

        total = self.store.count(EntityType.TOWER, since)
        return paginated(leaderboard, period, total, limit, offset)

    # ==================== Teams ====================

    def teams(self, limit: int = None, offset: int = None, period: str = None,
              now: datetime = None) -> dict:
        limit, offset = self._page(limit, offset)
        period = Period.parse(period)
        since = self._since(period, now)

        teams = self.store.fetch_ranked(EntityType.TEAM, limit=limit, offset=offset, since=since)
        leaderboard = []
        for index, team in enumerate(teams):
            aggregate = self.calculator.team_aggregate(self.store.fetch_members(team.id))
            approved = [r for r in team.registrations if r.status == ReviewStatus.APPROVED]
            captain = None
            if team.captain:
                captain = team.captain.to_summary()
                captain['performancePoints'] = team.captain.performance_points
            leaderboard.append({
                'rank': offset + index + 1,
                'id': team.id,
                'name': team.name,
                'logoUrl': team.logo_url,
                'tower': team.tower.to_summary() if team.tower else None,
                'captain': captain,
                'memberCount': aggregate.member_count,
                'totalPoints': aggregate.performance_points,
                'totalKills': aggregate.kills,
                'totalDeaths': aggregate.deaths,
                'teamKD': aggregate.kd_ratio,
                'totalMVPs': aggregate.mvp_count,
                'tournamentsPlayed': len(approved),
                'ongoingTournaments': sum(1 for r in approved if r.tournament.status in ONGOING_STATUSES),
                'members': [
                    dict(m.user.to_summary(), performancePoints=m.user.performance_points)
                    for m in team.members
                ],
            })

        total = self.store.count(EntityType.TEAM, since)
        return paginated(leaderboard, period, total, limit, offset)

    # ==================== Tournament winners ====================

    def tournament_winners(self, limit: int = 20) -> list:
        if limit is None or limit < 1:
            raise InvalidArgumentError('limit must be >= 1', field='limit')

        tournaments = (
            Tournament.query
            .filter_by(status=TournamentStatus.COMPLETED.value)
            .order_by(Tournament.created_at.desc(), Tournament.id.desc())
            .limit(limit)
            .all()
        )

        results = []
        for tournament in tournaments:
            registrations = (
                TournamentRegistration.query
                .filter_by(tournament_id=tournament.id, status=ReviewStatus.APPROVED)
                .order_by(TournamentRegistration.created_at.asc(), TournamentRegistration.id.asc())
                .limit(3)
                .all()
            )
            results.append({
                'tournamentId': tournament.id,
                'tournamentTitle': tournament.title,
                'game': tournament.game,
                'matchDateTime': isoformat(tournament.match_date_time),
                'winners': [
                    {'position': position, 'team': self._winner_team(reg.team)}
                    for position, reg in enumerate(registrations, start=1)
                ],
            })
        return results

    def _winner_team(self, team) -> dict:
        data = team.to_summary()
        data['tower'] = team.tower.to_summary() if team.tower else None
        data['captain'] = team.captain.to_summary() if team.captain else None
        data['members'] = [m.user.to_summary() for m in team.members]
        return data

    # ==================== Single player ====================

    def _get_player(self, user_id: int) -> User:
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError('Player')
        return user

    def absolute_rank(self, user: User) -> int:
        return absolute_rank(self.store.count_where(user.performance_points))

    def player_details(self, user_id: int) -> dict:
        user = self._get_player(user_id)
        record = user.score_record()
        metrics = self.calculator.derived_metrics(record)

        player = {
            'id': user.id,
            'name': user.name,
            'username': user.username,
            'avatarUrl': user.avatar_url,
            'gameId': user.game_id,
            'bio': user.bio,
            'role': user.role,
            'level': user.level,
            'xp': user.xp,
            'wins': user.wins,
            'instagramUrl': user.instagram_url,
            'youtubeUrl': user.youtube_url,
            'discordUrl': user.discord_url,
            'customTagline': user.custom_tagline,
        }
        player.update(record.to_dict())
        player.update(metrics.to_dict())

        current_tower = None
        if user.current_tower:
            tower = user.current_tower
            current_tower = tower.to_dict()
            current_tower['memberCount'] = tower.member_count
            current_tower['teamCount'] = len(tower.teams)

        teams = list(user.captained_teams)
        teams += [m.team for m in user.team_memberships if m.team not in teams]

        registrations = sorted(user.registrations_created, key=lambda r: (r.created_at, r.id), reverse=True)

        def registration_row(reg):
            return {
                'id': reg.id,
                'status': reg.status,
                'tournament': dict(reg.tournament.to_summary(), game=reg.tournament.game,
                                   matchDateTime=isoformat(reg.tournament.match_date_time)),
                'team': reg.team.to_summary(),
            }

        return {
            'rank': self.absolute_rank(user),
            'player': player,
            'currentTower': current_tower,
            'teams': [
                dict(t.to_dict(), members=[m.user.to_summary() for m in t.members])
                for t in teams
            ],
            'tournaments': {
                'total': len(registrations),
                'ongoing': [registration_row(r) for r in registrations
                            if r.tournament.status in ONGOING_STATUSES],
                'completed': [registration_row(r) for r in registrations
                              if r.tournament.status == TournamentStatus.COMPLETED.value],
            },
            'badges': [ub.to_dict() for ub in user.badges],
            'achievements': [ua.to_dict() for ua in user.achievements],
        }

    # ==================== Compare ====================

    def compare_players(self, user_ids_param: str) -> dict:
        ids = parse_user_ids(user_ids_param)
        if not 2 <= len(ids) <= 5:
            raise InvalidArgumentError('Please provide 2-5 user IDs to compare', field='userIds')

        users = User.query.filter(User.id.in_(ids)).all()
        found = {u.id for u in users}
        missing = [i for i in ids if i not in found]
        if missing:
            raise NotFoundError('Player', f"Player not found: {', '.join(str(i) for i in missing)}")

        by_id = {u.id: u for u in users}
        ordered = [by_id[i] for i in ids]

        entries = []
        rows = []
        for user in ordered:
            record = user.score_record()
            entry = RankedEntry(
                rank=self.absolute_rank(user),
                record=record,
                metrics=self.calculator.derived_metrics(record),
            )
            approved = [r for r in user.registrations_created if r.status == ReviewStatus.APPROVED]
            entry.extra = {
                'id': user.id,
                'name': user.name,
                'username': user.username,
                'avatarUrl': user.avatar_url,
                'gameId': user.game_id,
                'level': user.level,
                'xp': user.xp,
                'wins': user.wins,
                'currentTower': tower_summary_for(user),
                'currentTeam': team_summary_for(user),
                'tournamentsPlayed': len(approved),
                'badges': badge_summaries(user),
            }
            entries.append(entry)
            rows.append(entry.to_dict())

        return {
            'players': rows,
            'comparison': compare(entries),
            'comparedAt': timestamp(),
        }

    # ==================== Rank history ====================

    def rank_history(self, user_id: int, period: str = None) -> dict:
        period = Period.parse(period or Period.MONTH.value)
        user = self._get_player(user_id)
        rank = self.absolute_rank(user)
        now = timestamp()
        return {
            'userId': user.id,
            'username': user.username,
            'currentRank': rank,
            'performancePoints': user.performance_points,
            'period': period.value,
            'history': [
                {'date': now, 'rank': rank, 'points': user.performance_points},
            ],
        }

    # ==================== Tower-internal ====================

    def tower_members(self, tower: Tower) -> dict:
        """Rank a tower's leader and approved members by performance points."""
        users = {}
        if tower.leader:
            users[tower.leader.id] = tower.leader
        for member in tower.approved_members:
            users.setdefault(member.user_id, member.user)

        records = rank_sorted(u.score_record() for u in users.values())
        entries = page_ranks(records, 0, self.calculator)
        leaderboard = []
        for entry in entries:
            user = users[entry.record.id]
            entry.extra = dict(user.to_summary(), level=user.level, xp=user.xp, wins=user.wins)
            leaderboard.append(entry.to_dict())

        return {
            'towerId': tower.id,
            'towerName': tower.name,
            'leaderboard': leaderboard,
        }
