from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import func

from .exceptions import InvalidArgumentError
from .models import db, User, Tower, Team, TeamMember
from .stats_calculator import ScoreRecord


class EntityType(str, Enum):
    PLAYER = "player"
    TOWER = "tower"
    TEAM = "team"


# Public sort keys accepted by the player leaderboard, mapped to columns
PLAYER_SORT_KEYS = {
    'performancePoints': 'performance_points',
    'kills': 'kills',
    'wins': 'wins',
    'matchesWon': 'matches_won',
    'mvpCount': 'mvp_count',
}


class ScoreStore:
    """
    Read-only access to score counters.

    Rows come back ordered descending by the sort key with ascending id as
    the tie-break, so a page boundary never splits tied rows unpredictably.
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def _team_points(self):
        return (
            self.session.query(
                TeamMember.team_id.label('team_id'),
                func.coalesce(func.sum(User.performance_points), 0).label('total'),
            )
            .join(User, User.id == TeamMember.user_id)
            .group_by(TeamMember.team_id)
            .subquery()
        )

    def _base_query(self, entity_type: EntityType, since: Optional[datetime]):
        model = {EntityType.PLAYER: User, EntityType.TOWER: Tower, EntityType.TEAM: Team}[entity_type]
        query = self.session.query(model)
        if since is not None:
            query = query.filter(model.created_at >= since)
        return query

    def fetch_ranked(
        self,
        entity_type: EntityType,
        sort_key: str = 'performance_points',
        limit: int = 50,
        offset: int = 0,
        since: datetime = None
    ) -> list:
        """Fetch one page of entities ordered for ranking."""
        entity_type = EntityType(entity_type)
        query = self._base_query(entity_type, since)

        if entity_type == EntityType.PLAYER:
            column = getattr(User, sort_key, None)
            if sort_key not in PLAYER_SORT_KEYS.values() or column is None:
                raise InvalidArgumentError(f"Cannot sort players by '{sort_key}'", field='sortBy')
            query = query.order_by(column.desc(), User.id.asc())
        elif entity_type == EntityType.TOWER:
            query = query.order_by(Tower.total_points.desc(), Tower.id.asc())
        else:
            points = self._team_points()
            query = (
                query.outerjoin(points, points.c.team_id == Team.id)
                .order_by(func.coalesce(points.c.total, 0).desc(), Team.id.asc())
            )

        return query.offset(offset).limit(limit).all()

    def count(self, entity_type: EntityType, since: datetime = None) -> int:
        return self._base_query(EntityType(entity_type), since).count()

    def count_where(self, greater_than: int, sort_key: str = 'performance_points') -> int:
        """Number of players whose ``sort_key`` is strictly greater than ``greater_than``."""
        return self.session.query(User).filter(getattr(User, sort_key) > greater_than).count()

    def fetch_members(self, team_id: int) -> List[ScoreRecord]:
        """Score records of a team's current members."""
        users = (
            self.session.query(User).join(TeamMember, TeamMember.user_id == User.id)
            .filter(TeamMember.team_id == team_id)
            .order_by(User.id.asc())
            .all()
        )
        return [u.score_record() for u in users]
