from enum import Enum
from dataclasses import dataclass
from datetime import datetime
import json


class EventType(str, Enum):
    # Team events
    TEAM_CONFIRMED = "team.confirmed"

    # Registration events
    REGISTRATION_CONFIRMED = "registration.confirmed"
    REGISTRATION_DENIED = "registration.denied"

    # Submission events
    SUBMISSION_APPROVED = "submission.approved"
    SUBMISSION_REJECTED = "submission.rejected"
    SUBMISSION_VOIDED = "submission.voided"


@dataclass
class Event:
    """A record of one elevated (moderator) operation."""
    type: EventType
    subject_id: str
    actor_id: str
    timestamp: str = None
    data: dict = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.utcnow().isoformat() + "Z"
        if self.data is None:
            self.data = {}

    def to_dict(self) -> dict:
        return {
            "type": self.type.value if isinstance(self.type, EventType) else self.type,
            "subject_id": self.subject_id,
            "actor_id": self.actor_id,
            "timestamp": self.timestamp,
            "data": self.data
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def team_confirmed_event(team_id: str, moderator_id: str) -> Event:
    return Event(type=EventType.TEAM_CONFIRMED, subject_id=team_id, actor_id=moderator_id)


def registration_event(event_type: EventType, registration_id: str, moderator_id: str,
                       team_id: str = None, tournament_id: str = None) -> Event:
    return Event(
        type=event_type,
        subject_id=registration_id,
        actor_id=moderator_id,
        data={
            "team_id": team_id,
            "tournament_id": tournament_id
        }
    )


def submission_approved_event(submission_id: str, moderator_id: str, corrected: dict) -> Event:
    return Event(
        type=EventType.SUBMISSION_APPROVED,
        subject_id=submission_id,
        actor_id=moderator_id,
        data={"corrected": corrected}
    )


def submission_status_event(event_type: EventType, submission_id: str, moderator_id: str) -> Event:
    return Event(type=event_type, subject_id=submission_id, actor_id=moderator_id)
