"""
Elevated operations.

These are the only entry points that may change moderator-owned state (team
confirmation, registration confirmation, submission status). Each one checks
the caller's moderator role, stages an audit row, and delegates to the owning
component. The component stages the audit row right before its write, after
any retried read, so the row and the state change commit together.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, update

from shared.errors import NotEligible, NotFound, Unauthorized
from shared.events import (
    Event, EventType, registration_event, submission_approved_event,
    submission_status_event, team_confirmed_event
)
from .models import db, ModerationLog, Player, Registration, Submission, Team
from .registration import RegistrationDesk
from .store import stage
from .submissions import SubmissionCorrection, SubmissionLifecycle

logger = logging.getLogger(__name__)


class Moderation:

    def __init__(self, registrations: RegistrationDesk = None, submissions: SubmissionLifecycle = None):
        self.registrations = registrations or RegistrationDesk()
        self.submissions = submissions or SubmissionLifecycle(self.registrations)

    # ==================== Teams ====================

    def confirm_team(self, moderator_id: str, team_id: str) -> Team:
        """Set team_confirmed; only possible once every filled slot has accepted."""
        def op(audit):
            stmt = (
                update(Team)
                .where(
                    Team.id == team_id,
                    Team.slot1_confirmed.is_(True),
                    or_(Team.slot2_player_id.is_(None), Team.slot2_confirmed.is_(True)),
                    or_(Team.slot3_player_id.is_(None), Team.slot3_confirmed.is_(True)),
                )
                .values(team_confirmed=True, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            stage(audit)
            result = db.session.execute(stmt)
            if result.rowcount == 0:
                if db.session.get(Team, team_id) is None:
                    raise NotFound(f"Team {team_id} not found")
                raise NotEligible("Every invited player must accept before the team can be confirmed")
            db.session.commit()
            logger.info(f"Team {team_id} confirmed by {moderator_id}")
            return db.session.get(Team, team_id)

        return self._elevated(moderator_id, team_confirmed_event(team_id, moderator_id), op)

    # ==================== Registrations ====================

    def confirm_registration(self, moderator_id: str, registration_id: str) -> Registration:
        registration = self._registration_for_audit(moderator_id, registration_id)
        event = registration_event(
            EventType.REGISTRATION_CONFIRMED, registration_id, moderator_id,
            team_id=registration.team_id if registration else None,
            tournament_id=registration.tournament_id if registration else None
        )
        return self._elevated(
            moderator_id, event,
            lambda audit: self.registrations.confirm(registration_id, audit=audit)
        )

    def deny_registration(self, moderator_id: str, registration_id: str) -> None:
        registration = self._registration_for_audit(moderator_id, registration_id)
        event = registration_event(
            EventType.REGISTRATION_DENIED, registration_id, moderator_id,
            team_id=registration.team_id if registration else None,
            tournament_id=registration.tournament_id if registration else None
        )
        return self._elevated(
            moderator_id, event,
            lambda audit: self.registrations.deny(registration_id, audit=audit)
        )

    # ==================== Submissions ====================

    def admin_approve_submission(
        self,
        moderator_id: str,
        submission_id: str,
        map_number: Optional[int] = None,
        kills1: Optional[int] = None,
        kills2: Optional[int] = None,
        kills3: Optional[int] = None,
        placement: Optional[int] = None
    ) -> Submission:
        """Apply corrected values and move pending -> approved atomically."""
        kills = None
        if kills1 is not None or kills2 is not None or kills3 is not None:
            kills = (kills1, kills2, kills3)
        correction = SubmissionCorrection(map_number=map_number, kills=kills, placement=placement)
        event = submission_approved_event(submission_id, moderator_id, {
            'map_number': map_number,
            'kills': list(kills) if kills else None,
            'placement': placement,
        })
        return self._elevated(
            moderator_id, event,
            lambda audit: self.submissions.approve(submission_id, correction, audit=audit)
        )

    def admin_reject_submission(self, moderator_id: str, submission_id: str) -> Submission:
        event = submission_status_event(EventType.SUBMISSION_REJECTED, submission_id, moderator_id)
        return self._elevated(
            moderator_id, event,
            lambda audit: self.submissions.reject(submission_id, audit=audit)
        )

    def admin_void_submission(self, moderator_id: str, submission_id: str) -> Submission:
        event = submission_status_event(EventType.SUBMISSION_VOIDED, submission_id, moderator_id)
        return self._elevated(
            moderator_id, event,
            lambda audit: self.submissions.void(submission_id, audit=audit)
        )

    # ==================== Internals ====================

    def require_moderator(self, moderator_id: Optional[str]) -> Player:
        player = db.session.get(Player, moderator_id) if moderator_id else None
        if player is None or not player.is_moderator:
            logger.warning(f"Elevated operation refused for {moderator_id}")
            raise Unauthorized("Moderator privileges are required")
        return player

    def _registration_for_audit(self, moderator_id: str, registration_id: str) -> Optional[Registration]:
        self.require_moderator(moderator_id)
        return db.session.get(Registration, registration_id)

    def _elevated(self, moderator_id: str, event: Event, op):
        self.require_moderator(moderator_id)
        audit = ModerationLog(
            moderator_id=moderator_id,
            action=event.type.value,
            subject_id=event.subject_id,
            payload=event.to_json()
        )
        try:
            return op(audit)
        except Exception:
            db.session.rollback()
            raise
