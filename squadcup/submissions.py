import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import update

from shared.errors import InvalidTransition, NotEligible, NotFound, Unauthorized
from shared.state_machine import SubmissionState, SubmissionStateMachine
from .models import db, Submission, Team, Tournament, new_id
from .registration import RegistrationDesk
from .store import constraint_guard, dialect_insert, stage, with_read_retry
from .validation import (
    max_maps_for, require_image_ref, require_kills, require_map_number, require_placement
)

logger = logging.getLogger(__name__)

UPSERT_KEY = ['tournament_id', 'team_id', 'map_number']


@dataclass
class SubmissionCorrection:
    """Values a moderator overrides at approval time; None keeps the submitted value."""
    map_number: Optional[int] = None
    kills: Optional[Sequence[int]] = None
    placement: Optional[int] = None

    def validate(self, max_maps: int) -> Dict[str, int]:
        values = {}
        if self.map_number is not None:
            values['map_number'] = require_map_number(self.map_number, max_maps)
        if self.kills is not None:
            kills1, kills2, kills3 = require_kills(self.kills)
            values.update(kills1=kills1, kills2=kills2, kills3=kills3)
        if self.placement is not None:
            values['placement'] = require_placement(self.placement)
        return values


class SubmissionLifecycle:
    """
    One scoreboard result per (tournament, team, map).

    Submitting is a single upsert that replaces content and resets the status to
    pending. Moderator transitions are single conditional UPDATEs keyed on the
    current status, so readers never see a half-applied correction.
    """

    def __init__(self, registrations: RegistrationDesk = None):
        self.registrations = registrations or RegistrationDesk()

    def submit(
        self,
        tournament_id: str,
        team_id: str,
        map_number: int,
        placement: int,
        kills: Sequence[int],
        image_ref: Optional[str],
        player_id: Optional[str] = None
    ) -> Submission:
        """
        Upsert the team's result for one map.

        Callers must get explicit confirmation from the submitting player before
        calling this when a result for the map already exists; the write itself
        always overwrites.
        """
        tournament = db.session.get(Tournament, tournament_id)
        if tournament is None:
            raise NotFound(f"Tournament {tournament_id} not found")

        if player_id is not None:
            team = db.session.get(Team, team_id)
            if team is None or not team.has_player(player_id):
                raise NotEligible("Only players on the team can submit its scores")

        if not self.registrations.is_confirmed_registrant(team_id, tournament_id):
            logger.warning(f"Rejected submission from unconfirmed team {team_id} in {tournament_id}")
            raise Unauthorized("Team is not a confirmed registrant of this tournament")

        map_number = require_map_number(map_number, max_maps_for(tournament))
        placement = require_placement(placement)
        kills1, kills2, kills3 = require_kills(kills)
        image_ref = require_image_ref(image_ref)

        now = datetime.utcnow()
        table = Submission.__table__
        ins = dialect_insert(table).values(
            id=new_id(),
            tournament_id=tournament_id,
            team_id=team_id,
            map_number=map_number,
            placement=placement,
            kills1=kills1,
            kills2=kills2,
            kills3=kills3,
            image_ref=image_ref,
            status=SubmissionState.PENDING.value,
            created_at=now,
            updated_at=now
        )
        stmt = ins.on_conflict_do_update(
            index_elements=UPSERT_KEY,
            set_={
                'placement': ins.excluded.placement,
                'kills1': ins.excluded.kills1,
                'kills2': ins.excluded.kills2,
                'kills3': ins.excluded.kills3,
                'image_ref': ins.excluded.image_ref,
                'status': SubmissionState.PENDING.value,
                'updated_at': now,
            },
            where=table.c.status.in_(SubmissionStateMachine.sources_of('submit'))
        )

        with constraint_guard("Submission conflicts with an existing result"):
            result = db.session.execute(stmt)
            if result.rowcount == 0:
                db.session.rollback()
                raise InvalidTransition(
                    SubmissionState.VOID.value,
                    SubmissionState.PENDING.value,
                    f"Map {map_number} was voided by a moderator and cannot be resubmitted"
                )
            db.session.commit()

        logger.info(f"Team {team_id} submitted map {map_number} in tournament {tournament_id}")
        return self.get_submission_for_map(tournament_id, team_id, map_number)

    def approve(self, submission_id: str, correction: Optional[SubmissionCorrection] = None, audit=None) -> Submission:
        """
        pending -> approved, applying any moderator correction in the same statement.

        `audit` is staged only after the reads here, so a retried read cannot drop it.
        """
        submission = self.get_submission(submission_id)
        tournament = db.session.get(Tournament, submission.tournament_id)
        values = (correction or SubmissionCorrection()).validate(max_maps_for(tournament))

        def unchanged(row: Submission) -> bool:
            return all(getattr(row, field) == value for field, value in values.items())

        return self._transition(submission_id, 'approve', values, noop_check=unchanged, audit=audit)

    def reject(self, submission_id: str, audit=None) -> Submission:
        """pending -> rejected; the row stays and can be resubmitted."""
        return self._transition(submission_id, 'reject', audit=audit)

    def void(self, submission_id: str, audit=None) -> Submission:
        """approved -> void, terminal."""
        return self._transition(submission_id, 'void', audit=audit)

    def _transition(self, submission_id: str, action: str, values: Dict = None, noop_check=None,
                    audit=None) -> Submission:
        sources = SubmissionStateMachine.sources_of(action)
        target = SubmissionStateMachine(SubmissionState(sources[0])).target_of(action)

        stmt = (
            update(Submission)
            .where(Submission.id == submission_id, Submission.status.in_(sources))
            .values(status=target.value, updated_at=datetime.utcnow(), **(values or {}))
            .execution_options(synchronize_session=False)
        )
        stage(audit)
        with constraint_guard("Another result already exists for that map"):
            result = db.session.execute(stmt)

        if result.rowcount == 0:
            # Nothing matched: either gone, already there, or an illegal move
            current = db.session.get(Submission, submission_id, populate_existing=True)
            if current is None:
                db.session.rollback()
                raise NotFound(f"Submission {submission_id} not found")

            sm = SubmissionStateMachine.from_state_string(current.status)
            if sm.is_noop(action) and (noop_check is None or noop_check(current)):
                db.session.commit()
                logger.info(f"Submission {submission_id} already {current.status}; {action} is a no-op")
                return current

            db.session.rollback()
            raise InvalidTransition(
                current.status,
                target.value,
                f"Cannot {action} a submission that is {current.status}"
            )

        db.session.commit()
        logger.info(f"Submission {submission_id} -> {target.value}")
        return db.session.get(Submission, submission_id)

    @with_read_retry
    def get_submission(self, submission_id: str) -> Submission:
        submission = db.session.get(Submission, submission_id)
        if submission is None:
            raise NotFound(f"Submission {submission_id} not found")
        return submission

    @with_read_retry
    def get_submission_for_map(self, tournament_id: str, team_id: str, map_number: int) -> Optional[Submission]:
        return Submission.query.filter_by(
            tournament_id=tournament_id,
            team_id=team_id,
            map_number=map_number
        ).first()

    @with_read_retry
    def list_team_submissions(self, tournament_id: str, team_id: str) -> List[Submission]:
        return (
            Submission.query
            .filter_by(tournament_id=tournament_id, team_id=team_id)
            .order_by(Submission.map_number.asc())
            .all()
        )

    @with_read_retry
    def list_pending(self, tournament_id: Optional[str] = None) -> List[Submission]:
        """The moderation queue, most recently (re)submitted first."""
        query = Submission.query.filter_by(status=SubmissionState.PENDING.value)
        if tournament_id:
            query = query.filter_by(tournament_id=tournament_id)
        return query.order_by(Submission.updated_at.desc(), Submission.created_at.desc()).all()
