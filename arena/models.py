import json
from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from shared.state_machine import TournamentStatus
from .stats_calculator import ScoreRecord

db = SQLAlchemy()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: datetime):
    return value.isoformat() if value else None


class UserRole:
    PLAYER = 'PLAYER'
    ORGANISER = 'ORGANISER'
    SUPER_ADMIN = 'SUPER_ADMIN'


class TowerRole:
    MEMBER = 'MEMBER'
    ELITE_MEMBER = 'ELITE_MEMBER'
    CO_LEADER = 'CO_LEADER'


class ReviewStatus:
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'


tournament_organizers = db.Table(
    'tournament_organizers',
    db.Column('tournament_id', db.Integer, db.ForeignKey('tournaments.id'), primary_key=True),
    db.Column('user_id', db.Integer, db.ForeignKey('users.id'), primary_key=True),
)


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    mobile = db.Column(db.String(20), unique=True, nullable=False, index=True)
    email = db.Column(db.String(200), unique=True, nullable=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=UserRole.PLAYER)

    # Profile
    bio = db.Column(db.Text, nullable=True)
    avatar_url = db.Column(db.Text, nullable=True)
    game_id = db.Column(db.String(100), nullable=True)
    instagram_url = db.Column(db.String(300), nullable=True)
    youtube_url = db.Column(db.String(300), nullable=True)
    discord_url = db.Column(db.String(300), nullable=True)
    custom_tagline = db.Column(db.String(200), nullable=True)

    # Progression
    level = db.Column(db.Integer, nullable=False, default=1)
    xp = db.Column(db.Integer, nullable=False, default=0)

    # Score counters, written by the external score source
    matches_played = db.Column(db.Integer, nullable=False, default=0)
    matches_won = db.Column(db.Integer, nullable=False, default=0)
    kills = db.Column(db.Integer, nullable=False, default=0)
    deaths = db.Column(db.Integer, nullable=False, default=0)
    wins = db.Column(db.Integer, nullable=False, default=0)
    mvp_count = db.Column(db.Integer, nullable=False, default=0)
    performance_points = db.Column(db.Integer, nullable=False, default=0, index=True)

    # Notification preferences
    notify_tournaments = db.Column(db.Boolean, nullable=False, default=True)
    notify_teams = db.Column(db.Boolean, nullable=False, default=True)
    notify_towers = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    led_towers = db.relationship('Tower', back_populates='leader', foreign_keys='Tower.leader_id')
    tower_memberships = db.relationship('TowerMember', back_populates='user', cascade='all, delete-orphan')
    team_memberships = db.relationship('TeamMember', back_populates='user', cascade='all, delete-orphan')
    captained_teams = db.relationship('Team', back_populates='captain', foreign_keys='Team.captain_id')
    registrations_created = db.relationship(
        'TournamentRegistration', back_populates='created_by', foreign_keys='TournamentRegistration.created_by_user_id'
    )
    badges = db.relationship('UserBadge', back_populates='user', cascade='all, delete-orphan')
    achievements = db.relationship('UserAchievement', back_populates='user', cascade='all, delete-orphan')
    organized_tournaments = db.relationship('Tournament', secondary=tournament_organizers, back_populates='organizers')

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def approved_tower_memberships(self):
        return [m for m in self.tower_memberships if m.approved]

    @property
    def current_tower(self):
        """The tower the user leads, otherwise the first approved membership."""
        if self.led_towers:
            return self.led_towers[0]
        approved = self.approved_tower_memberships
        return approved[0].tower if approved else None

    @property
    def current_team(self):
        if self.captained_teams:
            return self.captained_teams[0]
        return self.team_memberships[0].team if self.team_memberships else None

    def to_summary(self):
        return {
            'id': self.id,
            'name': self.name,
            'username': self.username,
            'avatarUrl': self.avatar_url,
        }

    def to_dict(self, private: bool = False):
        data = {
            'id': self.id,
            'name': self.name,
            'username': self.username,
            'bio': self.bio,
            'avatarUrl': self.avatar_url,
            'gameId': self.game_id,
            'instagramUrl': self.instagram_url,
            'youtubeUrl': self.youtube_url,
            'discordUrl': self.discord_url,
            'customTagline': self.custom_tagline,
            'role': self.role,
            'level': self.level,
            'xp': self.xp,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
        if private:
            data['email'] = self.email
            data['mobile'] = self.mobile
        return data

    def score_record(self) -> ScoreRecord:
        return ScoreRecord(
            id=self.id,
            performance_points=self.performance_points or 0,
            kills=self.kills or 0,
            deaths=self.deaths or 0,
            matches_played=self.matches_played or 0,
            matches_won=self.matches_won or 0,
            mvp_count=self.mvp_count or 0,
            created_at=self.created_at,
        )

    def stats_dict(self):
        return {
            'matchesPlayed': self.matches_played,
            'matchesWon': self.matches_won,
            'kills': self.kills,
            'deaths': self.deaths,
            'wins': self.wins,
            'mvpCount': self.mvp_count,
            'performancePoints': self.performance_points,
        }

    def notification_preferences(self):
        return {
            'id': self.id,
            'notifyTournaments': self.notify_tournaments,
            'notifyTeams': self.notify_teams,
            'notifyTowers': self.notify_towers,
        }


class Tower(db.Model):
    __tablename__ = 'towers'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    code = db.Column(db.String(12), unique=True, nullable=False, index=True)
    leader_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    co_leader_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    logo_url = db.Column(db.Text, nullable=True)
    banner_url = db.Column(db.Text, nullable=True)
    description = db.Column(db.Text, nullable=True)
    max_teams = db.Column(db.Integer, default=5)
    max_members = db.Column(db.Integer, default=50)

    # Denormalized counters
    level = db.Column(db.Integer, nullable=False, default=1)
    xp = db.Column(db.Integer, nullable=False, default=0)
    total_points = db.Column(db.Integer, nullable=False, default=0, index=True)
    tournaments_participated = db.Column(db.Integer, nullable=False, default=0)
    tournaments_won = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    leader = db.relationship('User', back_populates='led_towers', foreign_keys=[leader_id])
    co_leader = db.relationship('User', foreign_keys=[co_leader_id])
    members = db.relationship('TowerMember', back_populates='tower', cascade='all, delete-orphan')
    teams = db.relationship('Team', back_populates='tower')
    badges = db.relationship('TowerBadge', back_populates='tower', cascade='all, delete-orphan',
                             order_by='TowerBadge.earned_at.desc()')
    announcements = db.relationship('TowerAnnouncement', back_populates='tower', cascade='all, delete-orphan')

    @property
    def approved_members(self):
        return [m for m in self.members if m.approved]

    @property
    def member_count(self):
        """Approved members, counting the leader once."""
        return len({self.leader_id} | {m.user_id for m in self.approved_members})

    def to_summary(self):
        return {'id': self.id, 'name': self.name, 'logoUrl': self.logo_url}

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'leaderId': self.leader_id,
            'coLeaderId': self.co_leader_id,
            'logoUrl': self.logo_url,
            'bannerUrl': self.banner_url,
            'description': self.description,
            'maxTeams': self.max_teams,
            'maxMembers': self.max_members,
            'level': self.level,
            'xp': self.xp,
            'totalPoints': self.total_points,
            'tournamentsParticipated': self.tournaments_participated,
            'tournamentsWon': self.tournaments_won,
            'createdAt': isoformat(self.created_at),
        }


class TowerMember(db.Model):
    __tablename__ = 'tower_members'

    id = db.Column(db.Integer, primary_key=True)
    tower_id = db.Column(db.Integer, db.ForeignKey('towers.id'), nullable=False)
    # One tower (or pending request) per user
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, unique=True)
    role = db.Column(db.String(20), nullable=False, default=TowerRole.MEMBER)
    approved = db.Column(db.Boolean, nullable=False, default=False)
    joined_at = db.Column(db.DateTime, default=utcnow)

    tower = db.relationship('Tower', back_populates='members')
    user = db.relationship('User', back_populates='tower_memberships')

    def to_dict(self):
        return {
            'id': self.id,
            'towerId': self.tower_id,
            'userId': self.user_id,
            'role': self.role,
            'approved': self.approved,
            'joinedAt': isoformat(self.joined_at),
        }


class TowerAnnouncement(db.Model):
    __tablename__ = 'tower_announcements'

    id = db.Column(db.Integer, primary_key=True)
    tower_id = db.Column(db.Integer, db.ForeignKey('towers.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    tower = db.relationship('Tower', back_populates='announcements')

    def to_dict(self):
        return {
            'id': self.id,
            'towerId': self.tower_id,
            'title': self.title,
            'message': self.message,
            'createdBy': self.created_by,
            'createdAt': isoformat(self.created_at),
        }


class TowerBadge(db.Model):
    __tablename__ = 'tower_badges'

    id = db.Column(db.Integer, primary_key=True)
    tower_id = db.Column(db.Integer, db.ForeignKey('towers.id'), nullable=False)
    type = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    icon_url = db.Column(db.String(300), nullable=True)
    earned_at = db.Column(db.DateTime, default=utcnow)

    tower = db.relationship('Tower', back_populates='badges')

    def to_dict(self):
        return {'type': self.type, 'name': self.name, 'iconUrl': self.icon_url}


class Team(db.Model):
    __tablename__ = 'teams'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    tower_id = db.Column(db.Integer, db.ForeignKey('towers.id'), nullable=False)
    captain_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    logo_url = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    tower = db.relationship('Tower', back_populates='teams')
    captain = db.relationship('User', back_populates='captained_teams', foreign_keys=[captain_id])
    members = db.relationship('TeamMember', back_populates='team', cascade='all, delete-orphan')
    registrations = db.relationship('TournamentRegistration', back_populates='team', cascade='all, delete-orphan')

    __table_args__ = (
        db.UniqueConstraint('tower_id', 'name', name='unique_team_name_per_tower'),
    )

    def to_summary(self):
        return {'id': self.id, 'name': self.name, 'logoUrl': self.logo_url}

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'towerId': self.tower_id,
            'captainId': self.captain_id,
            'logoUrl': self.logo_url,
            'createdAt': isoformat(self.created_at),
        }


class TeamMember(db.Model):
    __tablename__ = 'team_members'

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    joined_at = db.Column(db.DateTime, default=utcnow)

    team = db.relationship('Team', back_populates='members')
    user = db.relationship('User', back_populates='team_memberships')

    __table_args__ = (
        db.UniqueConstraint('team_id', 'user_id', name='unique_team_member'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'teamId': self.team_id,
            'userId': self.user_id,
            'joinedAt': isoformat(self.joined_at),
        }


class Tournament(db.Model):
    __tablename__ = 'tournaments'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    game = db.Column(db.String(100), nullable=False)
    logo_url = db.Column(db.Text, nullable=True)
    entry_fee = db.Column(db.Integer, nullable=False, default=0)
    max_teams = db.Column(db.Integer, nullable=False)
    match_date_time = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=TournamentStatus.UPCOMING.value, index=True)
    room_id = db.Column(db.String(100), nullable=True)
    room_password = db.Column(db.String(100), nullable=True)
    allowed_tower_ids = db.Column(db.Text, nullable=True)  # JSON list, null = open to all towers
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    organizers = db.relationship('User', secondary=tournament_organizers, back_populates='organized_tournaments')
    registrations = db.relationship('TournamentRegistration', back_populates='tournament',
                                    cascade='all, delete-orphan')
    matches = db.relationship('Match', back_populates='tournament', cascade='all, delete-orphan')

    @property
    def allowed_towers(self):
        return json.loads(self.allowed_tower_ids) if self.allowed_tower_ids else None

    @property
    def approved_registrations(self):
        return [r for r in self.registrations if r.status == ReviewStatus.APPROVED]

    def to_summary(self):
        return {'id': self.id, 'title': self.title, 'status': self.status}

    def to_dict(self, include_organizers: bool = True):
        data = {
            'id': self.id,
            'title': self.title,
            'game': self.game,
            'logoUrl': self.logo_url,
            'entryFee': self.entry_fee,
            'maxTeams': self.max_teams,
            'matchDateTime': isoformat(self.match_date_time),
            'status': self.status,
            'roomId': self.room_id,
            'allowedTowerIds': self.allowed_towers,
            'approvedTeams': len(self.approved_registrations),
            'createdAt': isoformat(self.created_at),
        }
        if include_organizers:
            data['organizers'] = [u.to_summary() for u in self.organizers]
        return data


class TournamentRegistration(db.Model):
    __tablename__ = 'tournament_registrations'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=ReviewStatus.PENDING)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    tournament = db.relationship('Tournament', back_populates='registrations')
    team = db.relationship('Team', back_populates='registrations')
    created_by = db.relationship('User', back_populates='registrations_created', foreign_keys=[created_by_user_id])
    approved_by = db.relationship('User', foreign_keys=[approved_by_user_id])

    __table_args__ = (
        db.UniqueConstraint('tournament_id', 'team_id', name='unique_registration_per_tournament'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'tournamentId': self.tournament_id,
            'teamId': self.team_id,
            'status': self.status,
            'createdByUserId': self.created_by_user_id,
            'approvedByUserId': self.approved_by_user_id,
            'createdAt': isoformat(self.created_at),
        }


class Match(db.Model):
    __tablename__ = 'matches'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=False)
    team_a_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False)
    team_b_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False)
    winner_team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=True)
    room_id = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    tournament = db.relationship('Tournament', back_populates='matches')
    team_a = db.relationship('Team', foreign_keys=[team_a_id])
    team_b = db.relationship('Team', foreign_keys=[team_b_id])
    winner_team = db.relationship('Team', foreign_keys=[winner_team_id])
    proofs = db.relationship('Proof', back_populates='match', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'tournamentId': self.tournament_id,
            'teamA': self.team_a.to_summary() if self.team_a else None,
            'teamB': self.team_b.to_summary() if self.team_b else None,
            'winnerTeam': self.winner_team.to_summary() if self.winner_team else None,
            'roomId': self.room_id,
            'createdAt': isoformat(self.created_at),
        }


class Proof(db.Model):
    __tablename__ = 'proofs'

    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('matches.id'), nullable=False)
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    url = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    match = db.relationship('Match', back_populates='proofs')

    def to_dict(self):
        return {
            'id': self.id,
            'matchId': self.match_id,
            'uploadedById': self.uploaded_by_id,
            'url': self.url,
            'createdAt': isoformat(self.created_at),
        }


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.Text, nullable=True)
    read = db.Column(db.Boolean, nullable=False, default=False)
    sent_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    sender = db.relationship('User', foreign_keys=[sent_by])

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'data': json.loads(self.data) if self.data else None,
            'read': self.read,
            'sender': self.sender.to_summary() if self.sender else None,
            'createdAt': isoformat(self.created_at),
        }


class Badge(db.Model):
    __tablename__ = 'badges'

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(300), nullable=True)
    icon_url = db.Column(db.String(300), nullable=True)

    def to_dict(self):
        return {
            'type': self.type,
            'name': self.name,
            'description': self.description,
            'iconUrl': self.icon_url,
        }


class UserBadge(db.Model):
    __tablename__ = 'user_badges'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    badge_id = db.Column(db.Integer, db.ForeignKey('badges.id'), nullable=False)
    earned_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship('User', back_populates='badges')
    badge = db.relationship('Badge')

    __table_args__ = (
        db.UniqueConstraint('user_id', 'badge_id', name='unique_user_badge'),
    )

    def to_dict(self):
        data = self.badge.to_dict()
        data['earnedAt'] = isoformat(self.earned_at)
        return data


class Achievement(db.Model):
    __tablename__ = 'achievements'

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(300), nullable=True)
    icon_url = db.Column(db.String(300), nullable=True)
    xp_reward = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            'type': self.type,
            'name': self.name,
            'description': self.description,
            'iconUrl': self.icon_url,
            'xpReward': self.xp_reward,
        }


class UserAchievement(db.Model):
    __tablename__ = 'user_achievements'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    achievement_id = db.Column(db.Integer, db.ForeignKey('achievements.id'), nullable=False)
    progress = db.Column(db.Integer, nullable=False, default=0)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime, nullable=True)

    user = db.relationship('User', back_populates='achievements')
    achievement = db.relationship('Achievement')

    __table_args__ = (
        db.UniqueConstraint('user_id', 'achievement_id', name='unique_user_achievement'),
    )

    def to_dict(self):
        data = self.achievement.to_dict()
        data.update({
            'progress': self.progress,
            'completed': self.completed,
            'completedAt': isoformat(self.completed_at),
        })
        return data


class OrganizerApplication(db.Model):
    __tablename__ = 'organizer_applications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, unique=True)
    reason = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=ReviewStatus.PENDING)
    reviewed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    user = db.relationship('User', foreign_keys=[user_id])

    def to_dict(self, include_user: bool = False):
        data = {
            'id': self.id,
            'userId': self.user_id,
            'reason': self.reason,
            'status': self.status,
            'reviewedBy': self.reviewed_by,
            'createdAt': isoformat(self.created_at),
        }
        if include_user and self.user:
            data['user'] = self.user.to_dict(private=True)
        return data
