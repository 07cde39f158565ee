"""
Pytest configuration and fixtures for platform tests.

Fixtures hand back ids rather than ORM instances; open an app context in the
test and load what you need. Requests through ``client`` run outside any
test-held app context so each one resolves its own bearer token.
"""
import itertools
import os
from datetime import datetime

import pytest

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'

from arena.app import create_app
from arena.auth import sign_token
from arena.models import db, User, UserRole, Tower, TowerMember, TowerRole, Team, TeamMember, Tournament
from arena.seed import seed_catalog


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app('testing')
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Clear all tables before each test."""
    with app.app_context():
        db.session.remove()
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

    yield db.session


@pytest.fixture
def seeded(app, db_session):
    """Badge and achievement catalog."""
    with app.app_context():
        seed_catalog()


@pytest.fixture
def make_user(app, db_session):
    """Factory creating a user and returning its id."""
    counter = itertools.count(1)

    def _make_user(username: str = None, role: str = UserRole.PLAYER, password: str = 'secret123', **fields):
        n = next(counter)
        username = username or f'player{n}'
        with app.app_context():
            user = User(
                name=fields.pop('name', username.title()),
                username=username,
                mobile=fields.pop('mobile', f'90000{n:05d}'),
                role=role,
                **fields
            )
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make_user


@pytest.fixture
def make_tower(app, db_session):
    """Factory creating a tower led by ``leader_id`` with approved ``member_ids``."""
    counter = itertools.count(1)

    def _make_tower(leader_id: int, name: str = None, member_ids=(), **fields):
        n = next(counter)
        with app.app_context():
            tower = Tower(name=name or f'Tower {n}', code=f'TWR{n:03d}', leader_id=leader_id, **fields)
            db.session.add(tower)
            db.session.flush()
            db.session.add(TowerMember(tower_id=tower.id, user_id=leader_id,
                                       role=TowerRole.CO_LEADER, approved=True))
            for user_id in member_ids:
                db.session.add(TowerMember(tower_id=tower.id, user_id=user_id, approved=True))
            db.session.commit()
            return tower.id

    return _make_tower


@pytest.fixture
def make_team(app, db_session):
    """Factory creating a team with the given roster."""
    counter = itertools.count(1)

    def _make_team(tower_id: int, name: str = None, member_ids=(), captain_id: int = None, **fields):
        n = next(counter)
        with app.app_context():
            team = Team(name=name or f'Team {n}', tower_id=tower_id, captain_id=captain_id, **fields)
            db.session.add(team)
            db.session.flush()
            for user_id in member_ids:
                db.session.add(TeamMember(team_id=team.id, user_id=user_id))
            db.session.commit()
            return team.id

    return _make_team


@pytest.fixture
def make_tournament(app, db_session):
    """Factory creating an UPCOMING tournament organized by ``organizer_id``."""

    def _make_tournament(organizer_id: int, title: str = 'Weekend Cup', max_teams: int = 4, **fields):
        with app.app_context():
            tournament = Tournament(
                title=title,
                game=fields.pop('game', 'BGMI'),
                max_teams=max_teams,
                match_date_time=fields.pop('match_date_time', datetime(2030, 1, 1, 18, 0)),
                **fields
            )
            tournament.organizers = [db.session.get(User, organizer_id)]
            db.session.add(tournament)
            db.session.commit()
            return tournament.id

    return _make_tournament


@pytest.fixture
def auth_headers(app):
    """Build an Authorization header for a user id."""

    def _auth_headers(user_id: int) -> dict:
        with app.app_context():
            token = sign_token(db.session.get(User, user_id))
        return {'Authorization': f'Bearer {token}'}

    return _auth_headers


@pytest.fixture
def mock_redis(mocker):
    """Stand-in Redis client for notification publishing."""
    return mocker.MagicMock()
