"""
Badge and achievement catalog.
"""
import logging

from .models import db, Badge, Achievement

logger = logging.getLogger(__name__)

BADGES = [
    ('FIRST_TOURNAMENT', 'Tournament Debut', 'Participated in your first tournament'),
    ('FIRST_WIN', 'First Victory', 'Won your first match'),
    ('TOWER_OWNER', 'Tower Master', 'Created and own a tower'),
    ('TEAM_CAPTAIN', 'Team Leader', 'Captain of a team'),
    ('MVP_MASTER', 'MVP Master', 'Earned MVP 10 times'),
    ('TOURNAMENT_WINNER', 'Champion', 'Won a tournament'),
    ('ORGANIZER', 'Event Organizer', 'Became an approved organizer'),
    ('VETERAN', 'Veteran Player', 'Played 50+ matches'),
    ('SHARPSHOOTER', 'Sharpshooter', 'Achieved 100+ kills'),
    ('TEAM_PLAYER', 'Team Player', 'Member of 3+ teams'),
]

ACHIEVEMENTS = [
    ('TOURNAMENT_PARTICIPATION', 'Tournament Participant', 'Participate in a tournament', 50),
    ('TOURNAMENT_WIN', 'Tournament Victor', 'Win a tournament', 200),
    ('TEAM_CREATED', 'Team Founder', 'Create a team', 30),
    ('TOWER_CREATED', 'Tower Founder', 'Create a tower', 50),
    ('MVP_EARNED', 'MVP Award', 'Earn MVP in a match', 25),
    ('KILLS_MILESTONE', 'Kill Streak', 'Reach kill milestones', 10),
    ('WINS_MILESTONE', 'Winning Streak', 'Reach win milestones', 15),
]


def icon_path(folder: str, type_: str) -> str:
    return f"/{folder}/{type_.lower().replace('_', '-')}.png"


def seed_catalog() -> tuple:
    """Insert or refresh badges, insert missing achievements. Returns (badges, achievements)."""
    for type_, name, description in BADGES:
        badge = Badge.query.filter_by(type=type_).first()
        if badge is None:
            badge = Badge(type=type_)
            db.session.add(badge)
        badge.name = name
        badge.description = description
        badge.icon_url = icon_path('badges', type_)

    for type_, name, description, xp_reward in ACHIEVEMENTS:
        if Achievement.query.filter_by(type=type_).first():
            continue
        db.session.add(Achievement(
            type=type_,
            name=name,
            description=description,
            icon_url=icon_path('achievements', type_),
            xp_reward=xp_reward,
        ))

    db.session.commit()
    logger.info(f"Seeded {len(BADGES)} badges and {len(ACHIEVEMENTS)} achievements")
    return len(BADGES), len(ACHIEVEMENTS)
