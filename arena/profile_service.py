import logging
from typing import Optional

from flask import current_app

from shared.state_machine import TournamentStatus
from .exceptions import InvalidArgumentError, NotFoundError, UnauthorizedError
from .models import (
    db, User, Team, TeamMember, TournamentRegistration, Tournament,
    Badge, UserBadge, Achievement, UserAchievement, utcnow, isoformat,
)
from .stats_calculator import StatsCalculator, apply_xp

logger = logging.getLogger(__name__)

PROFILE_FIELDS = {
    'name': 'name',
    'bio': 'bio',
    'avatarUrl': 'avatar_url',
    'gameId': 'game_id',
    'instagramUrl': 'instagram_url',
    'youtubeUrl': 'youtube_url',
    'discordUrl': 'discord_url',
    'customTagline': 'custom_tagline',
}

PREFERENCE_FIELDS = {
    'notifyTournaments': 'notify_tournaments',
    'notifyTeams': 'notify_teams',
    'notifyTowers': 'notify_towers',
}

MIN_PASSWORD_LENGTH = 6
VETERAN_TOURNAMENTS = 10
CHAMPION_WINS = 5


# ==================== Progression ====================

def add_xp(user: User, amount: int, commit: bool = True) -> dict:
    """Apply an XP change to a user and persist the resulting level and XP."""
    old_level = user.level
    new_level, new_xp, leveled_up = apply_xp(
        user.level, user.xp, amount, current_app.config.get('XP_PER_LEVEL', 100)
    )
    user.level = new_level
    user.xp = new_xp
    if commit:
        db.session.commit()
    if leveled_up:
        logger.info(f"User {user.id} leveled up: {old_level} -> {new_level}")
    return {'newLevel': new_level, 'newXP': new_xp, 'leveledUp': leveled_up}


def award_badge(user: User, badge_type: str, commit: bool = True) -> Optional[UserBadge]:
    """Give a user a badge once; unknown badge types are ignored."""
    badge = Badge.query.filter_by(type=badge_type).first()
    if not badge:
        logger.debug(f"Badge type {badge_type} is not seeded; skipping award")
        return None

    existing = UserBadge.query.filter_by(user_id=user.id, badge_id=badge.id).first()
    if existing:
        return existing

    user_badge = UserBadge(user_id=user.id, badge_id=badge.id)
    db.session.add(user_badge)
    if commit:
        db.session.commit()
    return user_badge


def update_achievement(user: User, achievement_type: str, progress: int = 1,
                       commit: bool = True) -> Optional[UserAchievement]:
    """
    Increment progress on an achievement.

    The first increment completes it and grants its XP reward through the
    regular level-up rules. Later increments only add progress.
    """
    achievement = Achievement.query.filter_by(type=achievement_type).first()
    if not achievement:
        logger.debug(f"Achievement type {achievement_type} is not seeded; skipping")
        return None

    user_achievement = UserAchievement.query.filter_by(
        user_id=user.id, achievement_id=achievement.id
    ).first()
    if user_achievement:
        user_achievement.progress += progress
    else:
        user_achievement = UserAchievement(
            user_id=user.id, achievement_id=achievement.id, progress=progress, completed=False
        )
        db.session.add(user_achievement)

    if not user_achievement.completed and user_achievement.progress >= 1:
        user_achievement.completed = True
        user_achievement.completed_at = utcnow()
        if achievement.xp_reward > 0:
            add_xp(user, achievement.xp_reward, commit=False)

    if commit:
        db.session.commit()
    return user_achievement


# ==================== Profile views ====================

class ProfileService:
    def __init__(self, calculator: StatsCalculator = None):
        self.calculator = calculator or StatsCalculator()

    def overview(self, user: User) -> dict:
        tower_role = None
        current_tower = None
        if user.led_towers:
            tower = user.led_towers[0]
            current_tower = dict(tower.to_summary(), code=tower.code, maxTeams=tower.max_teams,
                                 memberCount=len(tower.members), teamCount=len(tower.teams))
            tower_role = 'OWNER'
        elif user.approved_tower_memberships:
            membership = user.approved_tower_memberships[0]
            current_tower = dict(membership.tower.to_summary(), leaderId=membership.tower.leader_id)
            tower_role = membership.role

        team_role = None
        current_team = None
        team = user.current_team
        if team:
            current_team = dict(team.to_summary(), captainId=team.captain_id,
                                tower=team.tower.to_summary() if team.tower else None)
            team_role = 'CAPTAIN' if team.captain_id == user.id else 'PLAYER'

        data = user.to_dict(private=True)
        data.update({
            'currentTower': current_tower,
            'towerRole': tower_role,
            'currentTeam': current_team,
            'teamRole': team_role,
        })
        return data

    def stats(self, user: User) -> dict:
        record = user.score_record()
        data = {
            'id': user.id,
            'username': user.username,
            'avatarUrl': user.avatar_url,
            'level': user.level,
            'xp': user.xp,
            'badges': [ub.to_dict() for ub in sorted(user.badges, key=lambda b: b.earned_at, reverse=True)],
        }
        data.update(user.stats_dict())
        data.update(self.calculator.derived_metrics(record).to_dict())
        return data

    def tournaments(self, user: User) -> dict:
        registrations = (
            TournamentRegistration.query
            .join(Team, Team.id == TournamentRegistration.team_id)
            .join(TeamMember, TeamMember.team_id == Team.id)
            .filter(TeamMember.user_id == user.id)
            .order_by(TournamentRegistration.created_at.desc(), TournamentRegistration.id.desc())
            .all()
        )

        def row(reg):
            t = reg.tournament
            return {
                'id': reg.id,
                'status': reg.status,
                'createdAt': isoformat(reg.created_at),
                'tournament': {
                    'id': t.id,
                    'title': t.title,
                    'game': t.game,
                    'logoUrl': t.logo_url,
                    'status': t.status,
                    'matchDateTime': isoformat(t.match_date_time),
                },
                'team': reg.team.to_summary(),
            }

        ongoing = [r for r in registrations
                   if r.tournament.status in (TournamentStatus.UPCOMING.value, TournamentStatus.LIVE.value)]
        completed = [r for r in registrations if r.tournament.status == TournamentStatus.COMPLETED.value]
        wins = self._tournament_wins(user)

        return {
            'ongoing': [row(r) for r in ongoing],
            'completed': [row(r) for r in completed],
            'totalParticipated': len(registrations),
            'totalWins': wins,
            'achievements': {
                'firstTournament': len(registrations) > 0,
                'veteran': len(registrations) >= VETERAN_TOURNAMENTS,
                'champion': wins >= CHAMPION_WINS,
            },
        }

    def _tournament_wins(self, user: User) -> int:
        """Completed tournaments where the user's team won the final recorded match."""
        team_ids = {m.team_id for m in user.team_memberships}
        if not team_ids:
            return 0
        wins = 0
        completed = Tournament.query.filter_by(status=TournamentStatus.COMPLETED.value).all()
        for tournament in completed:
            decided = [m for m in tournament.matches if m.winner_team_id is not None]
            if not decided:
                continue
            final = max(decided, key=lambda m: (m.updated_at or m.created_at, m.id))
            if final.winner_team_id in team_ids:
                wins += 1
        return wins

    def achievements(self, user: User) -> dict:
        badges = sorted(user.badges, key=lambda b: b.earned_at, reverse=True)
        achievements = sorted(
            user.achievements,
            key=lambda a: (a.completed_at is not None, a.completed_at or utcnow()),
            reverse=True,
        )
        return {
            'badges': [ub.to_dict() for ub in badges],
            'achievements': [ua.to_dict() for ua in achievements],
            'totalBadges': len(badges),
            'totalAchievements': sum(1 for a in achievements if a.completed),
        }

    def update_profile(self, user: User, data: dict) -> dict:
        for key, attr in PROFILE_FIELDS.items():
            if key in data:
                setattr(user, attr, data[key])
        db.session.commit()
        return user.to_dict(private=True)

    def update_preferences(self, user: User, data: dict) -> dict:
        for key, attr in PREFERENCE_FIELDS.items():
            if key in data and data[key] is not None:
                setattr(user, attr, bool(data[key]))
        db.session.commit()
        return user.notification_preferences()

    def change_password(self, user: User, current_password: str, new_password: str):
        if not current_password or not new_password:
            raise InvalidArgumentError('Current password and new password required')
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise InvalidArgumentError(f'New password must be at least {MIN_PASSWORD_LENGTH} characters',
                                       field='newPassword')
        if not user.check_password(current_password):
            raise UnauthorizedError('Current password is incorrect')
        user.set_password(new_password)
        db.session.commit()
        logger.info(f"User {user.id} changed their password")

    def public_profile(self, username: str) -> dict:
        user = User.query.filter_by(username=username).first()
        if not user:
            raise NotFoundError('User')

        data = user.to_dict()
        data.update(user.stats_dict())
        data.update(self.calculator.derived_metrics(user.score_record()).to_dict())
        badges = sorted(user.badges, key=lambda b: b.earned_at, reverse=True)[:10]
        data['badges'] = [ub.to_dict() for ub in badges]
        data['teams'] = [
            dict(m.team.to_summary(), tower=m.team.tower.to_summary() if m.team.tower else None)
            for m in user.team_memberships
        ]
        data['ledTowers'] = [
            dict(t.to_summary(), memberCount=len(t.members), teamCount=len(t.teams))
            for t in user.led_towers
        ]
        return data
