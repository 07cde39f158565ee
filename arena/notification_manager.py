import json
import logging
from typing import Iterable, List, Optional

import redis

from shared.events import (
    NotificationEvent,
    NotificationType,
    organizer_reviewed_event,
    registration_reviewed_event,
    room_details_event,
    tournament_created_event,
    tower_announcement_event,
)
from .exceptions import NotFoundError
from .models import db, Notification, Tower, User

logger = logging.getLogger(__name__)


class NotificationManager:
    """
    Creates and serves user notifications.
    Notifications are persisted in the database; when a Redis client is
    available each one is also published on the user's channel for
    live delivery.
    """

    # Preference flag on User consulted for each notification type.
    # Types without an entry are always delivered.
    PREFERENCES = {
        NotificationType.TOURNAMENT_CREATED: 'notify_tournaments',
        NotificationType.ROOM_DETAILS: 'notify_tournaments',
        NotificationType.REGISTRATION_APPROVED: 'notify_teams',
        NotificationType.REGISTRATION_REJECTED: 'notify_teams',
        NotificationType.TOWER_ANNOUNCEMENT: 'notify_towers',
    }

    def __init__(self, redis_client: redis.Redis = None):
        self.redis = redis_client

    def wants(self, user: User, event_type: NotificationType) -> bool:
        pref_field = self.PREFERENCES.get(event_type)
        if not pref_field:
            return True
        return bool(getattr(user, pref_field, True))

    def notify(self, event: NotificationEvent) -> Optional[Notification]:
        """Persist and publish a single notification, honoring the recipient's preferences."""
        created = self.notify_many([event])
        return created[0] if created else None

    def notify_many(self, events: Iterable[NotificationEvent]) -> List[Notification]:
        events = list(events)
        if not events:
            return []

        recipients = {
            u.id: u for u in User.query.filter(User.id.in_({e.user_id for e in events})).all()
        }

        created = []
        delivered = []
        for event in events:
            user = recipients.get(event.user_id)
            if user is None or not self.wants(user, event.type):
                continue
            notification = Notification(
                user_id=event.user_id,
                type=event.type.value if isinstance(event.type, NotificationType) else event.type,
                title=event.title,
                message=event.message,
                data=json.dumps(event.data) if event.data else None,
                sent_by=event.sent_by,
            )
            db.session.add(notification)
            created.append(notification)
            delivered.append(event)

        db.session.commit()

        for event in delivered:
            self.publish(event)

        return created

    def publish(self, event: NotificationEvent):
        if not self.redis:
            return
        try:
            self.redis.publish(event.channel, event.to_json())
        except redis.RedisError as e:
            logger.warning(f"Failed to publish notification to {event.channel}: {e}")

    # ==================== Queries ====================

    def list_for_user(self, user_id: int, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            query = query.filter_by(read=False)
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    def _get_owned(self, user_id: int, notification_id: int) -> Notification:
        notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if not notification:
            raise NotFoundError('Notification')
        return notification

    def mark_read(self, user_id: int, notification_id: int) -> Notification:
        notification = self._get_owned(user_id, notification_id)
        notification.read = True
        db.session.commit()
        return notification

    def mark_all_read(self, user_id: int) -> int:
        count = Notification.query.filter_by(user_id=user_id, read=False).update({'read': True})
        db.session.commit()
        return count

    def unread_count(self, user_id: int) -> int:
        return Notification.query.filter_by(user_id=user_id, read=False).count()

    def delete(self, user_id: int, notification_id: int):
        notification = self._get_owned(user_id, notification_id)
        db.session.delete(notification)
        db.session.commit()

    # ==================== Fan-out ====================

    def notify_tower_owners_about_tournament(self, tournament, sent_by: int = None) -> List[Notification]:
        """Tell the leader of every eligible tower about a new tournament."""
        query = Tower.query
        allowed = tournament.allowed_towers
        if allowed is not None:
            query = query.filter(Tower.id.in_(allowed))
        leader_ids = sorted({t.leader_id for t in query.all()})
        return self.notify_many(
            tournament_created_event(leader_id, tournament.id, tournament.title, tournament.game, sent_by)
            for leader_id in leader_ids
        )

    def notify_team_about_registration(self, registration, approved: bool) -> List[Notification]:
        team = registration.team
        recipients = _unique([team.tower.leader_id] + [m.user_id for m in team.members])
        return self.notify_many(
            registration_reviewed_event(
                user_id=user_id,
                approved=approved,
                tournament_id=registration.tournament_id,
                tournament_title=registration.tournament.title,
                team_id=team.id,
                team_name=team.name,
                registration_id=registration.id,
                sent_by=registration.approved_by_user_id,
            )
            for user_id in recipients
        )

    def notify_teams_about_room_details(self, tournament) -> List[Notification]:
        if not tournament.room_id:
            return []
        events = []
        for registration in tournament.approved_registrations:
            team = registration.team
            for user_id in _unique([team.tower.leader_id] + [m.user_id for m in team.members]):
                events.append(room_details_event(
                    user_id=user_id,
                    tournament_id=tournament.id,
                    tournament_title=tournament.title,
                    team_id=team.id,
                    team_name=team.name,
                    room_id=tournament.room_id,
                    room_password=tournament.room_password,
                ))
        return self.notify_many(events)

    def notify_organizer_review(self, application, approved: bool, reviewer_id: int) -> Optional[Notification]:
        return self.notify(organizer_reviewed_event(application.user_id, approved, sent_by=reviewer_id))

    def notify_tower_announcement(self, tower, announcement) -> List[Notification]:
        recipients = _unique(
            [tower.leader_id] + [m.user_id for m in tower.approved_members]
        )
        return self.notify_many(
            tower_announcement_event(user_id, tower.id, tower.name, announcement.title,
                                     sent_by=announcement.created_by)
            for user_id in recipients
            if user_id != announcement.created_by
        )


def _unique(ids: Iterable[int]) -> List[int]:
    return list(dict.fromkeys(i for i in ids if i is not None))
