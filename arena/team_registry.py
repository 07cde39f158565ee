import logging

from flask import current_app

from .exceptions import ConflictError, InvalidArgumentError, NotFoundError
from .models import db, User, Team, TeamMember, TowerMember
from .permissions import require, tower_admin
from .profile_service import award_badge, update_achievement
from .tower_registry import TowerRegistry

logger = logging.getLogger(__name__)


class TeamRegistry:
    """Creates teams inside a tower and manages their rosters."""

    def __init__(self, towers: TowerRegistry = None):
        self.towers = towers or TowerRegistry()

    def get_team(self, team_id: int) -> Team:
        team = db.session.get(Team, team_id)
        if not team:
            raise NotFoundError('Team')
        return team

    def _require_tower_member(self, tower_id: int, user_id: int):
        member = TowerMember.query.filter_by(tower_id=tower_id, user_id=user_id, approved=True).first()
        if not member:
            raise InvalidArgumentError('User is not an approved member of this tower', field='userId')

    def create_team(self, user: User, tower_id: int, name: str, captain_id: int = None) -> Team:
        if not name:
            raise InvalidArgumentError('name required', field='name')
        tower = self.towers.get_tower(tower_id)
        require(user, tower_admin(tower))

        if Team.query.filter_by(tower_id=tower.id, name=name).first():
            raise ConflictError('Team name already exists in this tower')

        team = Team(name=name, tower_id=tower.id)
        if captain_id is not None:
            self._require_tower_member(tower.id, captain_id)
            team.captain_id = captain_id
        db.session.add(team)
        db.session.flush()

        if captain_id is not None:
            db.session.add(TeamMember(team_id=team.id, user_id=captain_id))
            captain = db.session.get(User, captain_id)
            award_badge(captain, 'TEAM_CAPTAIN', commit=False)

        update_achievement(user, 'TEAM_CREATED', commit=False)
        db.session.commit()

        logger.info(f"Team {team.id} ({team.name}) created in tower {tower.id} by user {user.id}")
        return team

    def add_member(self, user: User, team_id: int, target_user_id: int) -> TeamMember:
        if not target_user_id:
            raise InvalidArgumentError('userId required', field='userId')
        team = self.get_team(team_id)
        require(user, tower_admin(team.tower))

        if not db.session.get(User, target_user_id):
            raise NotFoundError('User')
        if TeamMember.query.filter_by(team_id=team.id, user_id=target_user_id).first():
            raise ConflictError('User already in team')
        self._require_tower_member(team.tower_id, target_user_id)

        team_size = current_app.config.get('TEAM_SIZE', 4)
        if len(team.members) >= team_size:
            raise InvalidArgumentError(f'Team is full ({team_size} members)')

        member = TeamMember(team_id=team.id, user_id=target_user_id)
        db.session.add(member)
        db.session.commit()
        return member
