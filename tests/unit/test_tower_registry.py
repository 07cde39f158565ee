"""
Unit tests for TowerRegistry and TeamRegistry.
"""
import pytest
from arena.exceptions import ConflictError, ForbiddenError, InvalidArgumentError, NotFoundError
from arena.models import db, User, Tower, TowerMember, TowerRole, Team, Notification
from arena.team_registry import TeamRegistry
from arena.tower_registry import TowerRegistry, generate_tower_code


def user(user_id):
    return db.session.get(User, user_id)


class TestTowerCode:
    def test_format(self):
        code = generate_tower_code()
        assert len(code) == 6
        assert code.isupper() or code.isdigit()
        assert code.isalnum()


class TestCreateTower:
    def test_create(self, app, make_user, seeded):
        owner = make_user('owner')
        with app.app_context():
            tower = TowerRegistry().create_tower(user(owner), 'Night Owls')

            assert tower.leader_id == owner
            assert len(tower.code) == 6
            membership = TowerMember.query.filter_by(user_id=owner).first()
            assert membership.role == TowerRole.CO_LEADER
            assert membership.approved is True
            assert [ub.badge.type for ub in user(owner).badges] == ['TOWER_OWNER']
            assert user(owner).xp == 50

    def test_name_required(self, app, make_user):
        owner = make_user('owner')
        with app.app_context():
            with pytest.raises(InvalidArgumentError):
                TowerRegistry().create_tower(user(owner), '')

    def test_duplicate_name(self, app, make_user):
        first = make_user()
        second = make_user()
        with app.app_context():
            registry = TowerRegistry()
            registry.create_tower(user(first), 'Night Owls')
            with pytest.raises(ConflictError):
                registry.create_tower(user(second), 'Night Owls')

    def test_one_tower_per_user(self, app, make_user):
        owner = make_user('owner')
        with app.app_context():
            registry = TowerRegistry()
            registry.create_tower(user(owner), 'First')
            with pytest.raises(ConflictError):
                registry.create_tower(user(owner), 'Second')


class TestMembership:
    @pytest.fixture
    def tower(self, app, make_user, make_tower):
        owner = make_user('owner')
        tower_id = make_tower(owner)
        with app.app_context():
            code = db.session.get(Tower, tower_id).code
        return {'id': tower_id, 'owner': owner, 'code': code}

    def test_join_with_code(self, app, make_user, tower):
        joiner = make_user()
        with app.app_context():
            member = TowerRegistry().join(user(joiner), tower['code'].lower())
            assert member.tower_id == tower['id']
            assert member.approved is False

    def test_join_unknown_code(self, app, make_user, tower):
        joiner = make_user()
        with app.app_context():
            with pytest.raises(NotFoundError):
                TowerRegistry().join(user(joiner), 'NOPE00')

    def test_join_twice(self, app, make_user, tower):
        joiner = make_user()
        with app.app_context():
            registry = TowerRegistry()
            registry.join(user(joiner), tower['code'])
            with pytest.raises(ConflictError):
                registry.join(user(joiner), tower['code'])

    def test_approve_and_promote(self, app, make_user, tower):
        joiner = make_user()
        with app.app_context():
            registry = TowerRegistry()
            member = registry.join(user(joiner), tower['code'])
            registry.approve_member(user(tower['owner']), tower['id'], member.id)
            promoted = registry.set_member_role(user(tower['owner']), tower['id'], member.id, TowerRole.ELITE_MEMBER)

            assert promoted.approved is True
            assert promoted.role == TowerRole.ELITE_MEMBER

    def test_member_cannot_approve(self, app, make_user, tower):
        joiner = make_user()
        other = make_user()
        with app.app_context():
            registry = TowerRegistry()
            member = registry.join(user(joiner), tower['code'])
            with pytest.raises(ForbiddenError):
                registry.approve_member(user(other), tower['id'], member.id)

    def test_owner_cannot_be_removed(self, app, tower):
        with app.app_context():
            owner_membership = TowerMember.query.filter_by(user_id=tower['owner']).first()
            with pytest.raises(InvalidArgumentError):
                TowerRegistry().remove_member(user(tower['owner']), tower['id'], owner_membership.id)

    def test_assign_and_remove_co_leader(self, app, make_user, tower):
        joiner = make_user()
        with app.app_context():
            registry = TowerRegistry()
            member = registry.join(user(joiner), tower['code'])
            registry.approve_member(user(tower['owner']), tower['id'], member.id)

            assigned = registry.assign_co_leader(user(tower['owner']), tower['id'], joiner)
            assert assigned.co_leader_id == joiner

            with pytest.raises(ForbiddenError):
                registry.remove_co_leader(user(joiner), tower['id'])

            cleared = registry.remove_co_leader(user(tower['owner']), tower['id'])
            assert cleared.co_leader_id is None
            assert TowerMember.query.filter_by(user_id=joiner).first().role == TowerRole.MEMBER

    def test_assign_co_leader_requires_member(self, app, make_user, tower):
        outsider = make_user()
        with app.app_context():
            with pytest.raises(NotFoundError):
                TowerRegistry().assign_co_leader(user(tower['owner']), tower['id'], outsider)

    def test_members_lists_leader_once(self, app, make_user, tower):
        joiner = make_user()
        with app.app_context():
            registry = TowerRegistry()
            member = registry.join(user(joiner), tower['code'])
            registry.approve_member(user(tower['owner']), tower['id'], member.id)
            result = registry.members(tower['id'])

        assert [row['id'] for row in result['members']] == [tower['owner'], joiner]
        assert result['members'][0]['role'] == 'OWNER'
        assert result['totalMembers'] == 2


class TestSettingsAndAnnouncements:
    def test_update_settings(self, app, make_user, make_tower):
        owner = make_user('owner')
        tower_id = make_tower(owner)
        with app.app_context():
            tower = TowerRegistry().update_settings(user(owner), tower_id, {'description': 'Scrims nightly',
                                                                          'maxTeams': 8})
            assert tower.description == 'Scrims nightly'
            assert tower.max_teams == 8

    def test_rename_conflict(self, app, make_user, make_tower):
        owner = make_user('owner')
        tower_id = make_tower(owner, name='Alpha')
        make_tower(make_user(), name='Beta')
        with app.app_context():
            with pytest.raises(ConflictError):
                TowerRegistry().update_settings(user(owner), tower_id, {'name': 'Beta'})

    def test_announcement_notifies_members(self, app, make_user, make_tower):
        owner = make_user('owner')
        member = make_user()
        tower_id = make_tower(owner, member_ids=[member])
        with app.app_context():
            registry = TowerRegistry()
            registry.create_announcement(user(owner), tower_id, 'Practice', '9pm tonight')

            assert [a.title for a in registry.list_announcements(tower_id)] == ['Practice']
            assert [n.user_id for n in Notification.query.all()] == [member]

    def test_delete_blocked_by_teams(self, app, make_user, make_tower, make_team):
        owner = make_user('owner')
        tower_id = make_tower(owner)
        make_team(tower_id)
        with app.app_context():
            with pytest.raises(InvalidArgumentError):
                TowerRegistry().delete_tower(user(owner), tower_id)

    def test_delete(self, app, make_user, make_tower):
        owner = make_user('owner')
        tower_id = make_tower(owner)
        with app.app_context():
            TowerRegistry().delete_tower(user(owner), tower_id)
            assert db.session.get(Tower, tower_id) is None
            assert TowerMember.query.count() == 0


class TestTeams:
    @pytest.fixture
    def tower(self, make_user, make_tower):
        owner = make_user('owner')
        members = [make_user() for _ in range(5)]
        return {'id': make_tower(owner, member_ids=members), 'owner': owner, 'members': members}

    def test_create_team_with_captain(self, app, tower, seeded):
        captain = tower['members'][0]
        with app.app_context():
            team = TeamRegistry().create_team(user(tower['owner']), tower['id'], 'Alpha', captain)

            assert team.captain_id == captain
            assert [m.user_id for m in team.members] == [captain]
            assert [ub.badge.type for ub in user(captain).badges] == ['TEAM_CAPTAIN']

    def test_captain_must_be_tower_member(self, app, make_user, tower):
        outsider = make_user()
        with app.app_context():
            with pytest.raises(InvalidArgumentError):
                TeamRegistry().create_team(user(tower['owner']), tower['id'], 'Alpha', outsider)

    def test_duplicate_team_name(self, app, tower):
        with app.app_context():
            registry = TeamRegistry()
            registry.create_team(user(tower['owner']), tower['id'], 'Alpha')
            with pytest.raises(ConflictError):
                registry.create_team(user(tower['owner']), tower['id'], 'Alpha')

    def test_member_cannot_create_team(self, app, tower):
        with app.app_context():
            with pytest.raises(ForbiddenError):
                TeamRegistry().create_team(user(tower['members'][0]), tower['id'], 'Alpha')

    def test_team_size_limit(self, app, tower):
        with app.app_context():
            registry = TeamRegistry()
            team = registry.create_team(user(tower['owner']), tower['id'], 'Alpha')
            for member_id in tower['members'][:4]:
                registry.add_member(user(tower['owner']), team.id, member_id)

            with pytest.raises(InvalidArgumentError) as exc_info:
                registry.add_member(user(tower['owner']), team.id, tower['members'][4])
            assert 'full' in exc_info.value.message

    def test_add_member_twice(self, app, tower):
        with app.app_context():
            registry = TeamRegistry()
            team = registry.create_team(user(tower['owner']), tower['id'], 'Alpha')
            registry.add_member(user(tower['owner']), team.id, tower['members'][0])
            with pytest.raises(ConflictError):
                registry.add_member(user(tower['owner']), team.id, tower['members'][0])

    def test_add_unknown_user(self, app, tower):
        with app.app_context():
            registry = TeamRegistry()
            team = registry.create_team(user(tower['owner']), tower['id'], 'Alpha')
            with pytest.raises(NotFoundError):
                registry.add_member(user(tower['owner']), team.id, 99999)

    def test_teams_status(self, app, tower):
        with app.app_context():
            registry = TeamRegistry()
            team = registry.create_team(user(tower['owner']), tower['id'], 'Alpha')
            registry.add_member(user(tower['owner']), team.id, tower['members'][0])

            status = TowerRegistry().teams_status(tower['id'])
            assert status[0]['status'] == 'FREE'
            assert status[0]['memberCount'] == 1
            assert status[0]['slotsAvailable'] == 3
            assert Team.query.count() == 1
