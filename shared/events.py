from enum import Enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
import json


class NotificationType(str, Enum):
    # Tournament lifecycle
    TOURNAMENT_CREATED = "TOURNAMENT_CREATED"
    ROOM_DETAILS = "ROOM_DETAILS"

    # Registration review
    REGISTRATION_APPROVED = "REGISTRATION_APPROVED"
    REGISTRATION_REJECTED = "REGISTRATION_REJECTED"

    # Organizer review
    ORGANIZER_APPROVED = "ORGANIZER_APPROVED"
    ORGANIZER_REJECTED = "ORGANIZER_REJECTED"

    # Towers
    TOWER_ANNOUNCEMENT = "TOWER_ANNOUNCEMENT"


@dataclass
class NotificationEvent:
    type: NotificationType
    user_id: int
    title: str
    message: str
    data: dict = None
    sent_by: Optional[int] = None
    timestamp: str = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        if self.data is None:
            self.data = {}

    @property
    def channel(self) -> str:
        return f"user:{self.user_id}:notifications"

    def to_dict(self) -> dict:
        return {
            "type": self.type.value if isinstance(self.type, NotificationType) else self.type,
            "userId": self.user_id,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "sentBy": self.sent_by,
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "NotificationEvent":
        known = [t.value for t in NotificationType]
        return cls(
            type=NotificationType(data["type"]) if data["type"] in known else data["type"],
            user_id=data["userId"],
            title=data["title"],
            message=data["message"],
            data=data.get("data", {}),
            sent_by=data.get("sentBy"),
            timestamp=data.get("timestamp"),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "NotificationEvent":
        return cls.from_dict(json.loads(json_str))


def tournament_created_event(user_id: int, tournament_id: int, title: str, game: str,
                             sent_by: int = None) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.TOURNAMENT_CREATED,
        user_id=user_id,
        title=f"New Tournament: {title}",
        message=f"A new {game} tournament has been created. Register your teams now!",
        data={"tournamentId": tournament_id},
        sent_by=sent_by,
    )


def registration_reviewed_event(user_id: int, approved: bool, tournament_id: int, tournament_title: str,
                                team_id: int, team_name: str, registration_id: int,
                                sent_by: int = None) -> NotificationEvent:
    if approved:
        kind = NotificationType.REGISTRATION_APPROVED
        title = f"Team Registered: {tournament_title}"
        message = f"Your team {team_name} has been confirmed for {tournament_title}!"
    else:
        kind = NotificationType.REGISTRATION_REJECTED
        title = f"Registration Rejected: {tournament_title}"
        message = f"Your team {team_name}'s registration for {tournament_title} was rejected."
    return NotificationEvent(
        type=kind,
        user_id=user_id,
        title=title,
        message=message,
        data={
            "tournamentId": tournament_id,
            "teamId": team_id,
            "registrationId": registration_id,
        },
        sent_by=sent_by,
    )


def room_details_event(user_id: int, tournament_id: int, tournament_title: str, team_id: int,
                       team_name: str, room_id: str, room_password: str = None) -> NotificationEvent:
    message = (
        f"Your team {team_name} has been confirmed for {tournament_title}.\n\n"
        f"Room ID: {room_id}\nPassword: {room_password or 'N/A'}"
    )
    return NotificationEvent(
        type=NotificationType.ROOM_DETAILS,
        user_id=user_id,
        title=f"Room Details: {tournament_title}",
        message=message,
        data={
            "tournamentId": tournament_id,
            "teamId": team_id,
            "roomId": room_id,
            "roomPassword": room_password,
        },
    )


def organizer_reviewed_event(user_id: int, approved: bool, sent_by: int = None) -> NotificationEvent:
    if approved:
        return NotificationEvent(
            type=NotificationType.ORGANIZER_APPROVED,
            user_id=user_id,
            title="Organizer Application Approved",
            message="Congratulations! Your organizer application has been approved. "
                    "You can now create tournaments.",
            sent_by=sent_by,
        )
    return NotificationEvent(
        type=NotificationType.ORGANIZER_REJECTED,
        user_id=user_id,
        title="Organizer Application Rejected",
        message="Your organizer application has been reviewed and rejected. You can apply again later.",
        sent_by=sent_by,
    )


def tower_announcement_event(user_id: int, tower_id: int, tower_name: str, title: str,
                             sent_by: int = None) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.TOWER_ANNOUNCEMENT,
        user_id=user_id,
        title=f"{tower_name}: {title}",
        message=f"New announcement posted in {tower_name}.",
        data={"towerId": tower_id},
        sent_by=sent_by,
    )
