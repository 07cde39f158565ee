"""
Unit tests for TournamentRegistry class.
Tests: create_tournament, list_tournaments, start/complete, set_room,
       register_team, review_registration, matches and results
"""
import pytest
from arena.exceptions import ConflictError, ForbiddenError, InvalidArgumentError, NotFoundError
from arena.models import db, User, UserAchievement, Notification, Tournament, TournamentRegistration, ReviewStatus
from arena.tournament_registry import TournamentRegistry, parse_datetime


@pytest.fixture
def setup(make_user, make_tower, make_team, make_tournament):
    """An organizer, one tower with two full teams and an open tournament."""
    organizer = make_user('org')
    leader = make_user('leader')
    players = [make_user() for _ in range(4)]
    tower = make_tower(leader, member_ids=players)
    team_a = make_team(tower, name='Alpha', member_ids=players[:2])
    team_b = make_team(tower, name='Bravo', member_ids=players[2:])
    tournament = make_tournament(organizer, max_teams=2)
    return {
        'organizer': organizer, 'leader': leader, 'players': players, 'tower': tower,
        'team_a': team_a, 'team_b': team_b, 'tournament': tournament,
    }


def user(user_id):
    return db.session.get(User, user_id)


def register_and_approve(registry, setup, team_key):
    registration = registry.register_team(user(setup['leader']), setup['tournament'], setup[team_key])
    return registry.review_registration(user(setup['organizer']), setup['tournament'], registration.id, True)


class TestCreateTournament:
    """Tests for create_tournament method."""

    def test_create(self, app, make_user):
        creator = make_user('org')
        with app.app_context():
            tournament = TournamentRegistry().create_tournament(user(creator), {
                'title': 'Summer Cup',
                'game': 'BGMI',
                'maxTeams': 16,
                'matchDateTime': '2030-07-01T18:00:00Z',
            })

            assert tournament.id is not None
            assert tournament.status == 'UPCOMING'
            assert tournament.max_teams == 16
            assert tournament.match_date_time.hour == 18
            assert [o.id for o in tournament.organizers] == [creator]

    def test_name_accepted_as_title(self, app, make_user):
        creator = make_user('org')
        with app.app_context():
            tournament = TournamentRegistry().create_tournament(user(creator), {
                'name': 'Named Cup', 'game': 'BGMI', 'maxTeams': 4, 'matchDateTime': '2030-07-01T18:00:00',
            })
            assert tournament.title == 'Named Cup'

    def test_extra_organizers(self, app, make_user):
        creator = make_user('org')
        helper = make_user('helper')
        with app.app_context():
            tournament = TournamentRegistry().create_tournament(user(creator), {
                'title': 'Cup', 'game': 'BGMI', 'maxTeams': 4, 'matchDateTime': '2030-07-01T18:00:00',
                'organizerIds': [helper],
            })
            assert sorted(o.id for o in tournament.organizers) == sorted([creator, helper])

    @pytest.mark.parametrize("data", [
        {'game': 'BGMI', 'maxTeams': 4, 'matchDateTime': '2030-07-01T18:00:00'},
        {'title': 'Cup', 'maxTeams': 4, 'matchDateTime': '2030-07-01T18:00:00'},
        {'title': 'Cup', 'game': 'BGMI', 'matchDateTime': '2030-07-01T18:00:00'},
        {'title': 'Cup', 'game': 'BGMI', 'maxTeams': 4},
        {'title': 'Cup', 'game': 'BGMI', 'maxTeams': 'many', 'matchDateTime': '2030-07-01T18:00:00'},
        {'title': 'Cup', 'game': 'BGMI', 'maxTeams': 4, 'matchDateTime': 'next friday'},
    ])
    def test_invalid_input(self, app, make_user, data):
        creator = make_user('org')
        with app.app_context():
            with pytest.raises(InvalidArgumentError):
                TournamentRegistry().create_tournament(user(creator), data)

    def test_notifies_eligible_tower_owners(self, app, make_user, make_tower):
        creator = make_user('org')
        leader = make_user('leader')
        tower = make_tower(leader)
        make_tower(make_user('excluded'))

        with app.app_context():
            TournamentRegistry().create_tournament(user(creator), {
                'title': 'Cup', 'game': 'BGMI', 'maxTeams': 4, 'matchDateTime': '2030-07-01T18:00:00',
                'allowedTowerIds': [tower],
            })
            notified = [n.user_id for n in Notification.query.filter_by(type='TOURNAMENT_CREATED').all()]
            assert notified == [leader]


class TestParseDatetime:
    def test_converts_to_naive_utc(self):
        parsed = parse_datetime('2030-07-01T20:00:00+02:00', 'matchDateTime')
        assert parsed.tzinfo is None
        assert parsed.hour == 18


class TestListTournaments:
    def test_status_filter(self, app, make_user, make_tournament):
        organizer = make_user('org')
        make_tournament(organizer, title='Upcoming')
        make_tournament(organizer, title='Done', status='COMPLETED')

        with app.app_context():
            registry = TournamentRegistry()
            assert [t.title for t in registry.list_tournaments(status='COMPLETED')] == ['Done']
            assert len(registry.list_tournaments()) == 2
            assert len(registry.list_tournaments(limit=1)) == 1


class TestLifecycle:
    def test_start_requires_approved_team(self, app, setup):
        with app.app_context():
            with pytest.raises(InvalidArgumentError):
                TournamentRegistry().start_tournament(user(setup['organizer']), setup['tournament'])

    def test_start_and_complete(self, app, setup):
        with app.app_context():
            registry = TournamentRegistry()
            register_and_approve(registry, setup, 'team_a')

            assert registry.start_tournament(user(setup['organizer']), setup['tournament']).status == 'LIVE'
            assert registry.complete_tournament(user(setup['organizer']), setup['tournament']).status == 'COMPLETED'

    def test_only_organizer_can_start(self, app, setup):
        with app.app_context():
            with pytest.raises(ForbiddenError):
                TournamentRegistry().start_tournament(user(setup['leader']), setup['tournament'])

    def test_cannot_complete_upcoming(self, app, setup):
        with app.app_context():
            with pytest.raises(InvalidArgumentError):
                TournamentRegistry().complete_tournament(user(setup['organizer']), setup['tournament'])

    def test_set_room_notifies_approved_teams(self, app, setup):
        with app.app_context():
            registry = TournamentRegistry()
            register_and_approve(registry, setup, 'team_a')
            tournament = registry.set_room(user(setup['organizer']), setup['tournament'], 'ROOM42', 'pw')

            assert tournament.room_id == 'ROOM42'
            recipients = {n.user_id for n in Notification.query.filter_by(type='ROOM_DETAILS').all()}
            assert recipients == {setup['leader']} | set(setup['players'][:2])

    def test_set_room_requires_room_id(self, app, setup):
        with app.app_context():
            with pytest.raises(InvalidArgumentError):
                TournamentRegistry().set_room(user(setup['organizer']), setup['tournament'], '')


class TestRegistrations:
    def test_register_team(self, app, setup):
        with app.app_context():
            registration = TournamentRegistry().register_team(
                user(setup['leader']), setup['tournament'], setup['team_a']
            )
            assert registration.status == ReviewStatus.PENDING
            assert registration.created_by_user_id == setup['leader']

    def test_only_tower_admin_can_register(self, app, setup):
        with app.app_context():
            with pytest.raises(ForbiddenError):
                TournamentRegistry().register_team(user(setup['players'][0]), setup['tournament'], setup['team_a'])

    def test_duplicate_registration(self, app, setup):
        with app.app_context():
            registry = TournamentRegistry()
            registry.register_team(user(setup['leader']), setup['tournament'], setup['team_a'])
            with pytest.raises(ConflictError):
                registry.register_team(user(setup['leader']), setup['tournament'], setup['team_a'])

    def test_tower_not_allowed(self, app, setup):
        with app.app_context():
            db.session.get(Tournament, setup['tournament']).allowed_tower_ids = '[99999]'
            db.session.commit()
            with pytest.raises(ForbiddenError):
                TournamentRegistry().register_team(user(setup['leader']), setup['tournament'], setup['team_a'])

    def test_unknown_team(self, app, setup):
        with app.app_context():
            with pytest.raises(NotFoundError):
                TournamentRegistry().register_team(user(setup['leader']), setup['tournament'], 99999)

    def test_approval_rewards_members(self, app, setup, seeded):
        with app.app_context():
            registry = TournamentRegistry()
            registration = register_and_approve(registry, setup, 'team_a')

            assert registration.status == ReviewStatus.APPROVED
            assert registration.approved_by_user_id == setup['organizer']
            player = user(setup['players'][0])
            assert [ub.badge.type for ub in player.badges] == ['FIRST_TOURNAMENT']
            assert player.xp == 50
            assert Notification.query.filter_by(type='REGISTRATION_APPROVED').count() == 3

    def test_approving_twice_is_a_conflict(self, app, setup, seeded):
        with app.app_context():
            registry = TournamentRegistry()
            registration = register_and_approve(registry, setup, 'team_a')

            with pytest.raises(ConflictError):
                registry.review_registration(user(setup['organizer']), setup['tournament'],
                                             registration.id, True)

            progress = UserAchievement.query.filter_by(user_id=setup['players'][0]).one().progress
            assert progress == 1
            assert Notification.query.filter_by(type='REGISTRATION_APPROVED').count() == 3

    def test_rejected_registration_can_be_approved(self, app, setup):
        with app.app_context():
            registry = TournamentRegistry()
            registration = registry.register_team(user(setup['leader']), setup['tournament'], setup['team_a'])
            registry.review_registration(user(setup['organizer']), setup['tournament'], registration.id, False)
            approved = registry.review_registration(user(setup['organizer']), setup['tournament'],
                                                    registration.id, True)
            assert approved.status == ReviewStatus.APPROVED

    def test_reject(self, app, setup):
        with app.app_context():
            registry = TournamentRegistry()
            registration = registry.register_team(user(setup['leader']), setup['tournament'], setup['team_a'])
            rejected = registry.review_registration(user(setup['organizer']), setup['tournament'],
                                                    registration.id, False)
            assert rejected.status == ReviewStatus.REJECTED
            assert Notification.query.filter_by(type='REGISTRATION_REJECTED').count() == 3

    def test_capacity_checked_on_approval(self, app, setup, make_team):
        team_c = make_team(setup['tower'], name='Charlie')
        with app.app_context():
            registry = TournamentRegistry()
            db.session.get(Tournament, setup['tournament']).max_teams = 1
            db.session.commit()

            pending = registry.register_team(user(setup['leader']), setup['tournament'], team_c)
            register_and_approve(registry, setup, 'team_a')

            with pytest.raises(InvalidArgumentError) as exc_info:
                registry.review_registration(user(setup['organizer']), setup['tournament'], pending.id, True)
            assert exc_info.value.message == 'Tournament is full'

    def test_capacity_checked_on_register(self, app, setup):
        with app.app_context():
            registry = TournamentRegistry()
            db.session.get(Tournament, setup['tournament']).max_teams = 1
            db.session.commit()
            register_and_approve(registry, setup, 'team_a')

            with pytest.raises(InvalidArgumentError):
                registry.register_team(user(setup['leader']), setup['tournament'], setup['team_b'])

    def test_no_registration_once_live(self, app, setup):
        with app.app_context():
            registry = TournamentRegistry()
            db.session.get(Tournament, setup['tournament']).status = 'LIVE'
            db.session.commit()
            with pytest.raises(InvalidArgumentError):
                registry.register_team(user(setup['leader']), setup['tournament'], setup['team_a'])


class TestMatches:
    @pytest.fixture
    def live(self, app, setup):
        with app.app_context():
            registry = TournamentRegistry()
            register_and_approve(registry, setup, 'team_a')
            register_and_approve(registry, setup, 'team_b')
            registry.start_tournament(user(setup['organizer']), setup['tournament'])
            match = registry.create_match(user(setup['organizer']), setup['tournament'],
                                          setup['team_a'], setup['team_b'])
            return dict(setup, match=match.id)

    def test_create_match_requires_distinct_approved_teams(self, app, live, make_team):
        outsider = make_team(live['tower'], name='Delta')
        with app.app_context():
            registry = TournamentRegistry()
            with pytest.raises(InvalidArgumentError):
                registry.create_match(user(live['organizer']), live['tournament'], live['team_a'], live['team_a'])
            with pytest.raises(InvalidArgumentError):
                registry.create_match(user(live['organizer']), live['tournament'], live['team_a'], outsider)

    def test_string_team_ids(self, app, live):
        with app.app_context():
            registry = TournamentRegistry()
            with pytest.raises(InvalidArgumentError):
                registry.create_match(user(live['organizer']), live['tournament'],
                                      str(live['team_a']), live['team_a'])

            match = registry.create_match(user(live['organizer']), live['tournament'],
                                          str(live['team_a']), str(live['team_b']))
            assert (match.team_a_id, match.team_b_id) == (live['team_a'], live['team_b'])

            result = registry.record_result(user(live['organizer']), match.id, str(live['team_b']))
            assert result.winner_team_id == live['team_b']

    def test_record_result(self, app, live):
        with app.app_context():
            match = TournamentRegistry().record_result(user(live['organizer']), live['match'], live['team_b'])
            assert match.winner_team_id == live['team_b']
            assert match.to_dict()['winnerTeam']['name'] == 'Bravo'

    def test_winner_must_have_played(self, app, live):
        with app.app_context():
            with pytest.raises(InvalidArgumentError):
                TournamentRegistry().record_result(user(live['organizer']), live['match'], 99999)

    def test_result_only_while_live(self, app, live):
        with app.app_context():
            registry = TournamentRegistry()
            registry.complete_tournament(user(live['organizer']), live['tournament'])
            with pytest.raises(InvalidArgumentError):
                registry.record_result(user(live['organizer']), live['match'], live['team_a'])

    def test_match_room_organizer_only(self, app, live):
        with app.app_context():
            registry = TournamentRegistry()
            with pytest.raises(ForbiddenError):
                registry.set_match_room(user(live['leader']), live['match'], 'R1')
            assert registry.set_match_room(user(live['organizer']), live['match'], 'R1').room_id == 'R1'

    def test_add_proof_and_list(self, app, live):
        with app.app_context():
            registry = TournamentRegistry()
            proof = registry.add_proof(user(live['players'][0]), live['match'], 'https://img.example/1.png')
            assert proof.uploaded_by_id == live['players'][0]
            assert [m.id for m in registry.list_matches(live['tournament'])] == [live['match']]

    def test_unknown_match(self, app, live):
        with app.app_context():
            with pytest.raises(NotFoundError):
                TournamentRegistry().get_match(99999)


class TestListRegistrations:
    def test_ordered_by_creation(self, app, setup):
        with app.app_context():
            registry = TournamentRegistry()
            first = registry.register_team(user(setup['leader']), setup['tournament'], setup['team_b'])
            second = registry.register_team(user(setup['leader']), setup['tournament'], setup['team_a'])
            listed = registry.list_registrations(setup['tournament'])
            assert [r.id for r in listed] == [first.id, second.id]
            assert TournamentRegistration.query.count() == 2
