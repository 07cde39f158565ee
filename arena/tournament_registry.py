import json
import logging
from datetime import datetime, timezone
from typing import List

from flask import current_app

from shared.state_machine import TournamentStateMachine, TransitionError
from .exceptions import ConflictError, ForbiddenError, InvalidArgumentError, NotFoundError
from .models import (
    db, User, Team, Tournament, TournamentRegistration, Match, Proof, ReviewStatus,
)
from .permissions import IsOrganizer, require, tower_admin
from .profile_service import award_badge, update_achievement

logger = logging.getLogger(__name__)


def parse_datetime(value: str, field: str) -> datetime:
    """Parse an ISO-8601 timestamp into naive UTC."""
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise InvalidArgumentError(f'{field} must be an ISO-8601 datetime', field=field)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_positive_int(value, field: str, minimum: int = 1) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f'{field} must be an integer', field=field)
    if number < minimum:
        raise InvalidArgumentError(f'{field} must be >= {minimum}', field=field)
    return number


class TournamentRegistry:
    """
    Manages tournament lifecycle:
    - Create tournaments and announce them to tower owners
    - Drive status through the state machine (UPCOMING -> LIVE -> COMPLETED)
    - Team registrations and their review
    - Matches, proofs and results
    """

    def get_tournament(self, tournament_id: int) -> Tournament:
        tournament = db.session.get(Tournament, tournament_id)
        if not tournament:
            raise NotFoundError('Tournament')
        return tournament

    def get_match(self, match_id: int) -> Match:
        match = db.session.get(Match, match_id)
        if not match:
            raise NotFoundError('Match')
        return match

    def _state_machine(self, tournament: Tournament) -> TournamentStateMachine:
        return TournamentStateMachine.from_state_string(tournament.status)

    def _require_action(self, tournament: Tournament, action: str, message: str):
        sm = self._state_machine(tournament)
        if not sm.can_perform(action):
            raise InvalidArgumentError(f'{message} while tournament is {tournament.status}')

    # ==================== Tournament CRUD ====================

    def create_tournament(self, user: User, data: dict) -> Tournament:
        title = data.get('title') or data.get('name')
        game = data.get('game')
        max_teams = data.get('maxTeams')
        match_date_time = data.get('matchDateTime')
        if not title or not game or not max_teams or not match_date_time:
            raise InvalidArgumentError('name, game, maxTeams, matchDateTime required')

        organizer_ids = [user.id] + [
            parse_positive_int(i, 'organizerIds') for i in (data.get('organizerIds') or [])
        ]
        organizers = User.query.filter(User.id.in_(set(organizer_ids))).all()
        if len(organizers) != len(set(organizer_ids)):
            raise NotFoundError('Organizer')

        allowed_tower_ids = data.get('allowedTowerIds')
        tournament = Tournament(
            title=title,
            game=game,
            logo_url=data.get('logoUrl'),
            entry_fee=parse_positive_int(data.get('entryFee', 0), 'entryFee', minimum=0),
            max_teams=parse_positive_int(max_teams, 'maxTeams'),
            match_date_time=parse_datetime(match_date_time, 'matchDateTime'),
            allowed_tower_ids=json.dumps(
                [parse_positive_int(i, 'allowedTowerIds') for i in allowed_tower_ids]
            ) if allowed_tower_ids else None,
        )
        tournament.organizers = organizers
        db.session.add(tournament)
        db.session.commit()

        logger.info(f"Tournament {tournament.id} ({tournament.title}) created by user {user.id}")
        current_app.notifications.notify_tower_owners_about_tournament(tournament, sent_by=user.id)
        return tournament

    def list_tournaments(
        self,
        status: str = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Tournament]:
        """List tournaments with optional status filtering."""
        query = Tournament.query

        if status:
            query = query.filter_by(status=status)

        query = query.order_by(Tournament.match_date_time.asc(), Tournament.id.asc())
        return query.offset(offset).limit(limit).all()

    # ==================== Lifecycle ====================

    def _transition(self, user: User, tournament_id: int, action: str) -> Tournament:
        tournament = self.get_tournament(tournament_id)
        require(user, IsOrganizer(tournament), f'Only organizers can {action} this tournament')

        sm = self._state_machine(tournament)
        try:
            old_state = sm.state.value
            new_state = sm.transition(action, guard_context={
                'approved_registrations': len(tournament.approved_registrations),
            })
        except TransitionError as e:
            raise InvalidArgumentError(e.reason)

        tournament.status = new_state.value
        db.session.commit()
        logger.info(f"Tournament {tournament.id}: {old_state} -> {new_state.value}")
        return tournament

    def start_tournament(self, user: User, tournament_id: int) -> Tournament:
        return self._transition(user, tournament_id, 'start')

    def complete_tournament(self, user: User, tournament_id: int) -> Tournament:
        return self._transition(user, tournament_id, 'complete')

    def set_room(self, user: User, tournament_id: int, room_id: str, room_password: str = None) -> Tournament:
        if not room_id:
            raise InvalidArgumentError('roomId required', field='roomId')
        tournament = self.get_tournament(tournament_id)
        require(user, IsOrganizer(tournament))
        self._require_action(tournament, 'set_room', 'Cannot set room')

        tournament.room_id = room_id
        tournament.room_password = room_password
        db.session.commit()

        current_app.notifications.notify_teams_about_room_details(tournament)
        return tournament

    # ==================== Registrations ====================

    def _check_capacity(self, tournament: Tournament, exclude_id: int = None):
        approved = [r for r in tournament.approved_registrations if r.id != exclude_id]
        if len(approved) >= tournament.max_teams:
            raise InvalidArgumentError('Tournament is full')

    def register_team(self, user: User, tournament_id: int, team_id: int) -> TournamentRegistration:
        if not team_id:
            raise InvalidArgumentError('teamId required', field='teamId')
        team_id = parse_positive_int(team_id, 'teamId')
        tournament = self.get_tournament(tournament_id)
        team = db.session.get(Team, team_id)
        if not team:
            raise NotFoundError('Team')
        require(user, tower_admin(team.tower))

        self._require_action(tournament, 'register_team', 'Cannot register teams')
        allowed = tournament.allowed_towers
        if allowed is not None and team.tower_id not in allowed:
            raise ForbiddenError("Team's tower is not allowed in this tournament")
        if TournamentRegistration.query.filter_by(tournament_id=tournament.id, team_id=team.id).first():
            raise ConflictError('Team already registered for this tournament')
        self._check_capacity(tournament)

        registration = TournamentRegistration(
            tournament_id=tournament.id,
            team_id=team.id,
            created_by_user_id=user.id,
        )
        db.session.add(registration)
        db.session.commit()
        logger.info(f"Team {team.id} registered for tournament {tournament.id}")
        return registration

    def review_registration(self, user: User, tournament_id: int, registration_id: int,
                            approve: bool) -> TournamentRegistration:
        tournament = self.get_tournament(tournament_id)
        require(user, IsOrganizer(tournament))
        registration = TournamentRegistration.query.filter_by(
            id=registration_id, tournament_id=tournament.id
        ).first()
        if not registration:
            raise NotFoundError('Registration')
        self._require_action(tournament, 'review_registration', 'Cannot review registrations')

        outcome = ReviewStatus.APPROVED if approve else ReviewStatus.REJECTED
        if registration.status == outcome:
            raise ConflictError(f'Registration already {outcome.lower()}')
        if approve:
            self._check_capacity(tournament, exclude_id=registration.id)
        registration.status = outcome
        registration.approved_by_user_id = user.id

        if approve:
            for member in registration.team.members:
                update_achievement(member.user, 'TOURNAMENT_PARTICIPATION', commit=False)
                award_badge(member.user, 'FIRST_TOURNAMENT', commit=False)
        db.session.commit()

        logger.info(f"Registration {registration.id} {registration.status} by user {user.id}")
        current_app.notifications.notify_team_about_registration(registration, approve)
        return registration

    def list_registrations(self, tournament_id: int) -> List[TournamentRegistration]:
        tournament = self.get_tournament(tournament_id)
        return (
            TournamentRegistration.query.filter_by(tournament_id=tournament.id)
            .order_by(TournamentRegistration.created_at.asc(), TournamentRegistration.id.asc())
            .all()
        )

    # ==================== Matches ====================

    def create_match(self, user: User, tournament_id: int, team_a_id: int, team_b_id: int,
                     room_id: str = None) -> Match:
        tournament = self.get_tournament(tournament_id)
        require(user, IsOrganizer(tournament))
        self._require_action(tournament, 'create_match', 'Cannot create matches')

        if not team_a_id or not team_b_id:
            raise InvalidArgumentError('teamAId and teamBId required')
        team_a_id = parse_positive_int(team_a_id, 'teamAId')
        team_b_id = parse_positive_int(team_b_id, 'teamBId')
        if team_a_id == team_b_id:
            raise InvalidArgumentError('A team cannot play itself')
        approved_team_ids = {r.team_id for r in tournament.approved_registrations}
        for team_id in (team_a_id, team_b_id):
            if team_id not in approved_team_ids:
                raise InvalidArgumentError(f'Team {team_id} is not an approved participant')

        match = Match(tournament_id=tournament.id, team_a_id=team_a_id, team_b_id=team_b_id, room_id=room_id)
        db.session.add(match)
        db.session.commit()
        return match

    def set_match_room(self, user: User, match_id: int, room_id: str) -> Match:
        match = self.get_match(match_id)
        require(user, IsOrganizer(match.tournament))
        match.room_id = room_id
        db.session.commit()
        return match

    def add_proof(self, user: User, match_id: int, url: str) -> Proof:
        if not url:
            raise InvalidArgumentError('url required', field='url')
        match = self.get_match(match_id)
        proof = Proof(match_id=match.id, uploaded_by_id=user.id, url=url)
        db.session.add(proof)
        db.session.commit()
        return proof

    def record_result(self, user: User, match_id: int, winner_team_id: int) -> Match:
        match = self.get_match(match_id)
        tournament = match.tournament
        require(user, IsOrganizer(tournament))
        self._require_action(tournament, 'record_result', 'Cannot record results')

        winner_team_id = parse_positive_int(winner_team_id, 'winnerTeamId')
        if winner_team_id not in (match.team_a_id, match.team_b_id):
            raise InvalidArgumentError('Winner must be one of the two teams in the match', field='winnerTeamId')

        match.winner_team_id = winner_team_id
        db.session.commit()
        logger.info(f"Match {match.id} won by team {winner_team_id}")
        return match

    def list_matches(self, tournament_id: int) -> List[Match]:
        tournament = self.get_tournament(tournament_id)
        return Match.query.filter_by(tournament_id=tournament.id).order_by(Match.id.asc()).all()
