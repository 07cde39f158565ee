import logging
import random
import string
from typing import List

from flask import current_app

from shared.state_machine import TournamentStatus
from .exceptions import ConflictError, InvalidArgumentError, NotFoundError
from .models import (
    db, User, Tower, TowerMember, TowerAnnouncement, TowerRole, Team,
    TournamentRegistration, ReviewStatus,
)
from .permissions import IsOwner, require, tower_admin
from .profile_service import award_badge, update_achievement
from .stats_calculator import StatsCalculator

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6
ANNOUNCEMENT_LIMIT = 20

SETTINGS_FIELDS = {
    'name': 'name',
    'logoUrl': 'logo_url',
    'bannerUrl': 'banner_url',
    'description': 'description',
    'maxTeams': 'max_teams',
    'maxMembers': 'max_members',
}


def generate_tower_code() -> str:
    """Generate a join code like 'K3ZQ7A'."""
    return ''.join(random.choices(CODE_ALPHABET, k=CODE_LENGTH))


class TowerRegistry:
    """
    Manages towers and their membership:
    - Create towers and hand out join codes
    - Review join requests and assign member roles
    - Announcements and settings
    - Read models for the tower pages
    """

    def __init__(self, calculator: StatsCalculator = None):
        self.calculator = calculator or StatsCalculator()

    def get_tower(self, tower_id: int) -> Tower:
        tower = db.session.get(Tower, tower_id)
        if not tower:
            raise NotFoundError('Tower')
        return tower

    def _get_member(self, tower: Tower, member_id: int) -> TowerMember:
        member = TowerMember.query.filter_by(id=member_id, tower_id=tower.id).first()
        if not member:
            raise NotFoundError('Member')
        return member

    def _unique_code(self) -> str:
        for _ in range(10):
            code = generate_tower_code()
            if not Tower.query.filter_by(code=code).first():
                return code
        raise ConflictError('Could not allocate a unique tower code')

    # ==================== Lifecycle ====================

    def create_tower(self, user: User, name: str) -> Tower:
        if not name:
            raise InvalidArgumentError('name required', field='name')
        if TowerMember.query.filter_by(user_id=user.id).first():
            raise ConflictError('User already in a tower or already requested')
        if Tower.query.filter_by(name=name).first():
            raise ConflictError('Tower name already exists')

        tower = Tower(name=name, code=self._unique_code(), leader_id=user.id)
        db.session.add(tower)
        db.session.flush()
        db.session.add(TowerMember(tower_id=tower.id, user_id=user.id, role=TowerRole.CO_LEADER, approved=True))

        award_badge(user, 'TOWER_OWNER', commit=False)
        update_achievement(user, 'TOWER_CREATED', commit=False)
        db.session.commit()

        logger.info(f"Tower {tower.id} ({tower.name}) created by user {user.id}")
        return tower

    def delete_tower(self, user: User, tower_id: int):
        tower = self.get_tower(tower_id)
        require(user, IsOwner(tower), 'Only tower owner can delete tower')
        if Team.query.filter_by(tower_id=tower.id).count() > 0:
            raise InvalidArgumentError('Cannot delete tower with existing teams. Delete all teams first.')

        db.session.delete(tower)
        db.session.commit()
        logger.info(f"Tower {tower_id} deleted by user {user.id}")

    def update_settings(self, user: User, tower_id: int, data: dict) -> Tower:
        tower = self.get_tower(tower_id)
        require(user, tower_admin(tower), 'Only tower owner or co-leader can update settings')

        new_name = data.get('name')
        if new_name and new_name != tower.name and Tower.query.filter_by(name=new_name).first():
            raise ConflictError('Tower name already exists')

        for key, attr in SETTINGS_FIELDS.items():
            if key in data and data[key] is not None:
                setattr(tower, attr, data[key])
        db.session.commit()
        return tower

    # ==================== Membership ====================

    def join(self, user: User, code: str) -> TowerMember:
        if not code:
            raise InvalidArgumentError('code required', field='code')
        tower = Tower.query.filter_by(code=code.strip().upper()).first()
        if not tower:
            raise NotFoundError('Tower')
        if TowerMember.query.filter_by(user_id=user.id).first():
            raise ConflictError('User already in a tower or already requested')

        member = TowerMember(tower_id=tower.id, user_id=user.id)
        db.session.add(member)
        db.session.commit()
        logger.info(f"User {user.id} requested to join tower {tower.id}")
        return member

    def approve_member(self, user: User, tower_id: int, member_id: int) -> TowerMember:
        tower = self.get_tower(tower_id)
        require(user, tower_admin(tower))
        member = self._get_member(tower, member_id)
        member.approved = True
        db.session.commit()
        return member

    def remove_member(self, user: User, tower_id: int, member_id: int):
        tower = self.get_tower(tower_id)
        require(user, tower_admin(tower))
        member = self._get_member(tower, member_id)
        if member.user_id == tower.leader_id:
            raise InvalidArgumentError('Tower owner cannot be removed')
        if tower.co_leader_id == member.user_id:
            tower.co_leader_id = None
        db.session.delete(member)
        db.session.commit()

    def add_co_leader(self, user: User, tower_id: int, target_user_id: int) -> TowerMember:
        tower = self.get_tower(tower_id)
        require(user, tower_admin(tower))
        member = TowerMember.query.filter_by(tower_id=tower.id, user_id=target_user_id).first()
        if not member:
            raise NotFoundError('Member')
        member.approved = True
        member.role = TowerRole.CO_LEADER
        db.session.commit()
        return member

    def set_member_role(self, user: User, tower_id: int, member_id: int, role: str) -> TowerMember:
        """Promote to ELITE_MEMBER or demote back to MEMBER."""
        tower = self.get_tower(tower_id)
        verb = 'promote' if role == TowerRole.ELITE_MEMBER else 'demote'
        require(user, tower_admin(tower), f'Only tower owner or co-leader can {verb} members')
        member = self._get_member(tower, member_id)
        member.role = role
        db.session.commit()
        return member

    def assign_co_leader(self, user: User, tower_id: int, target_user_id: int) -> Tower:
        tower = self.get_tower(tower_id)
        require(user, IsOwner(tower), 'Only tower owner can assign co-leader')
        member = TowerMember.query.filter_by(tower_id=tower.id, user_id=target_user_id, approved=True).first()
        if not member:
            raise NotFoundError('Member', 'User is not a member of this tower')

        tower.co_leader_id = target_user_id
        member.role = TowerRole.CO_LEADER
        db.session.commit()
        return tower

    def remove_co_leader(self, user: User, tower_id: int) -> Tower:
        tower = self.get_tower(tower_id)
        require(user, IsOwner(tower), 'Only tower owner can remove co-leader')
        if not tower.co_leader_id:
            raise InvalidArgumentError('No co-leader assigned')

        member = TowerMember.query.filter_by(tower_id=tower.id, user_id=tower.co_leader_id).first()
        tower.co_leader_id = None
        if member:
            member.role = TowerRole.MEMBER
        db.session.commit()
        return tower

    # ==================== Announcements ====================

    def list_announcements(self, tower_id: int) -> List[TowerAnnouncement]:
        tower = self.get_tower(tower_id)
        return (
            TowerAnnouncement.query.filter_by(tower_id=tower.id)
            .order_by(TowerAnnouncement.created_at.desc(), TowerAnnouncement.id.desc())
            .limit(ANNOUNCEMENT_LIMIT)
            .all()
        )

    def create_announcement(self, user: User, tower_id: int, title: str, message: str) -> TowerAnnouncement:
        if not title or not message:
            raise InvalidArgumentError('title and message required')
        tower = self.get_tower(tower_id)
        require(user, tower_admin(tower), 'Only tower owner or co-leader can create announcements')

        announcement = TowerAnnouncement(tower_id=tower.id, title=title, message=message, created_by=user.id)
        db.session.add(announcement)
        db.session.commit()

        current_app.notifications.notify_tower_announcement(tower, announcement)
        return announcement

    # ==================== Read models ====================

    def _member_row(self, user: User, role: str, joined_at) -> dict:
        data = dict(user.to_summary(), level=user.level, xp=user.xp, role=role,
                    joinedAt=joined_at.isoformat() if joined_at else None)
        data.update(user.stats_dict())
        data.update(self.calculator.derived_metrics(user.score_record()).to_dict())
        return data

    def overview(self, tower_id: int) -> dict:
        tower = self.get_tower(tower_id)
        approved = sorted(tower.approved_members, key=lambda m: (m.role, m.joined_at or tower.created_at))
        co_leader = tower.co_leader

        data = tower.to_dict()
        data.update({
            'leader': dict(tower.leader.to_summary(), level=tower.leader.level, xp=tower.leader.xp),
            'coLeader': dict(co_leader.to_summary(), level=co_leader.level, xp=co_leader.xp) if co_leader else None,
            'members': [
                dict(m.to_dict(), user=dict(m.user.to_summary(), role=m.user.role, level=m.user.level,
                                            xp=m.user.xp, **m.user.stats_dict()))
                for m in approved
            ],
            'teams': [self._team_status(team) for team in tower.teams],
            'badges': [b.to_dict() for b in tower.badges],
            'stats': {
                'totalMembers': tower.member_count,
                'totalTeams': len(tower.teams),
                'tournamentsParticipated': tower.tournaments_participated,
                'tournamentsWon': tower.tournaments_won,
                'totalPoints': tower.total_points,
            },
        })
        return data

    def members(self, tower_id: int) -> dict:
        """Leader, co-leader and approved members, each listed once."""
        tower = self.get_tower(tower_id)
        rows = [self._member_row(tower.leader, 'OWNER', tower.created_at)]
        seen = {tower.leader_id}

        if tower.co_leader and tower.co_leader_id not in seen:
            rows.append(self._member_row(tower.co_leader, TowerRole.CO_LEADER, tower.created_at))
            seen.add(tower.co_leader_id)

        for member in sorted(tower.approved_members, key=lambda m: (m.joined_at or tower.created_at, m.id)):
            if member.user_id in seen:
                continue
            rows.append(self._member_row(member.user, member.role, member.joined_at))
            seen.add(member.user_id)

        return {
            'towerId': tower.id,
            'towerName': tower.name,
            'members': rows,
            'totalMembers': len(rows),
        }

    def _team_status(self, team: Team) -> dict:
        team_size = current_app.config.get('TEAM_SIZE', 4)
        active = [
            r for r in team.registrations
            if r.status in (ReviewStatus.PENDING, ReviewStatus.APPROVED)
            and r.tournament.status in (TournamentStatus.UPCOMING.value, TournamentStatus.LIVE.value)
        ]
        member_count = len(team.members)
        data = team.to_dict()
        data.update({
            'captain': team.captain.to_summary() if team.captain else None,
            'members': [m.user.to_summary() for m in team.members],
            'status': 'REGISTERED' if active else 'FREE',
            'memberCount': member_count,
            'slotsAvailable': max(team_size - member_count, 0),
            'currentTournaments': [
                {
                    'id': r.tournament.id,
                    'title': r.tournament.title,
                    'status': r.status,
                    'tournamentStatus': r.tournament.status,
                }
                for r in active
            ],
        })
        return data

    def teams_status(self, tower_id: int) -> list:
        tower = self.get_tower(tower_id)
        teams = Team.query.filter_by(tower_id=tower.id).order_by(Team.id.asc()).all()
        return [self._team_status(team) for team in teams]

    def tournaments(self, tower_id: int) -> dict:
        tower = self.get_tower(tower_id)
        registrations = (
            TournamentRegistration.query
            .join(Team, Team.id == TournamentRegistration.team_id)
            .filter(Team.tower_id == tower.id)
            .order_by(TournamentRegistration.created_at.desc(), TournamentRegistration.id.desc())
            .all()
        )

        def row(reg):
            data = reg.to_dict()
            data['tournament'] = dict(
                reg.tournament.to_dict(include_organizers=False),
                roomPassword=reg.tournament.room_password if reg.status == ReviewStatus.APPROVED else None,
            )
            data['team'] = reg.team.to_summary()
            return data

        ongoing = [r for r in registrations
                   if r.status == ReviewStatus.APPROVED
                   and r.tournament.status in (TournamentStatus.UPCOMING.value, TournamentStatus.LIVE.value)]
        pending = [r for r in registrations if r.status == ReviewStatus.PENDING]
        past = [r for r in registrations if r.tournament.status == TournamentStatus.COMPLETED.value]

        return {
            'ongoing': [row(r) for r in ongoing],
            'pending': [row(r) for r in pending],
            'past': [row(r) for r in past],
            'stats': {
                'totalParticipated': len(registrations),
                'totalApproved': sum(1 for r in registrations if r.status == ReviewStatus.APPROVED),
                'totalPending': len(pending),
            },
        }
