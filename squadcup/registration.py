import logging
from datetime import datetime
from typing import List, Optional, Tuple

from flask import current_app
from sqlalchemy import delete, func, insert, literal, or_, select, update

from shared.errors import CapacityReached, NotEligible, NotFound
from shared.state_machine import RegistrationStateMachine
from .models import db, Registration, Team, Tournament, new_id
from .store import constraint_guard, stage, with_read_retry

logger = logging.getLogger(__name__)


class RegistrationDesk:
    """
    Binds teams to tournaments.

    Per (team, tournament): absent -> pending -> confirmed, and a denial deletes
    the row so the team may register again. The unique constraint on
    (tournament_id, team_id) is what makes double registration impossible.
    """

    def __init__(self, enforce_capacity: Optional[bool] = None):
        self._enforce_capacity = enforce_capacity

    @property
    def enforce_capacity(self) -> bool:
        if self._enforce_capacity is not None:
            return self._enforce_capacity
        return current_app.config.get('ENFORCE_CAPACITY', False)

    def register(self, team_id: str, tournament_id: str, player_id: Optional[str] = None) -> Registration:
        """Register a team; a duplicate (even a concurrent one) raises Conflict."""
        tournament = db.session.get(Tournament, tournament_id)
        if tournament is None:
            raise NotFound(f"Tournament {tournament_id} not found")
        team = db.session.get(Team, team_id)
        if team is None:
            raise NotFound(f"Team {team_id} not found")
        if player_id is not None and not team.has_player(player_id):
            raise NotEligible("Only players on the team can register it")

        conflict_msg = f"Team '{team.name}' is already registered for this tournament"

        if self.enforce_capacity and tournament.teams_possible is not None:
            registration_id = self._insert_within_capacity(tournament, team_id, conflict_msg)
        else:
            registration = Registration(
                tournament_id=tournament_id,
                team_id=team_id,
                confirmed=False
            )
            db.session.add(registration)
            with constraint_guard(conflict_msg):
                db.session.commit()
            registration_id = registration.id

        logger.info(f"Team {team_id} registered for tournament {tournament_id}")
        return db.session.get(Registration, registration_id)

    def _insert_within_capacity(self, tournament: Tournament, team_id: str, conflict_msg: str) -> str:
        """INSERT ... SELECT ... WHERE confirmed < capacity, as one statement."""
        registration_id = new_id()
        confirmed_count = self._confirmed_count(tournament.id)
        source = select(
            literal(registration_id, type_=db.String(36)),
            literal(tournament.id, type_=db.String(36)),
            literal(team_id, type_=db.String(36)),
            literal(False, type_=db.Boolean),
            literal(datetime.utcnow(), type_=db.DateTime),
        ).where(confirmed_count < tournament.teams_possible)

        stmt = insert(Registration.__table__).from_select(
            ['id', 'tournament_id', 'team_id', 'confirmed', 'created_at'],
            source
        )
        with constraint_guard(conflict_msg):
            result = db.session.execute(stmt)
            if result.rowcount == 0:
                db.session.rollback()
                logger.warning(f"Tournament {tournament.id} is full ({tournament.teams_possible} teams)")
                raise CapacityReached(f"Tournament is full ({tournament.teams_possible} teams)")
            db.session.commit()
        return registration_id

    @staticmethod
    def _confirmed_count(tournament_id: str):
        return (
            select(func.count(Registration.id))
            .where(Registration.tournament_id == tournament_id, Registration.confirmed.is_(True))
            .correlate(None)
            .scalar_subquery()
        )

    def confirm(self, registration_id: str, audit=None) -> Registration:
        """
        Moderator confirmation; confirming twice is a no-op success.

        With capacity enforced, the confirmed count is re-checked inside the
        UPDATE so pending rows cannot be confirmed past `teams_possible`.
        """
        registration = db.session.get(Registration, registration_id)
        if registration is None:
            raise NotFound(f"Registration {registration_id} not found")
        tournament = registration.tournament

        stmt = (
            update(Registration)
            .where(Registration.id == registration_id, Registration.confirmed.is_(False))
            .values(confirmed=True)
            .execution_options(synchronize_session=False)
        )
        if self.enforce_capacity and tournament.teams_possible is not None:
            stmt = stmt.where(self._confirmed_count(tournament.id) < tournament.teams_possible)

        stage(audit)
        result = db.session.execute(stmt)

        if result.rowcount == 0:
            current = db.session.get(Registration, registration_id, populate_existing=True)
            if current is None:
                db.session.rollback()
                raise NotFound(f"Registration {registration_id} not found")
            if RegistrationStateMachine.for_row(current.confirmed).is_noop('confirm'):
                db.session.commit()
                return current
            db.session.rollback()
            logger.warning(f"Tournament {tournament.id} is full; registration {registration_id} stays pending")
            raise CapacityReached(f"Tournament is full ({tournament.teams_possible} teams)")

        db.session.commit()
        logger.info(f"Registration {registration_id} confirmed")
        return db.session.get(Registration, registration_id)

    def deny(self, registration_id: str, audit=None) -> None:
        """Moderator denial removes the row entirely."""
        stage(audit)
        stmt = (
            delete(Registration)
            .where(Registration.id == registration_id)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        if result.rowcount == 0:
            db.session.rollback()
            raise NotFound(f"Registration {registration_id} not found")
        db.session.commit()
        logger.info(f"Registration {registration_id} denied and removed")

    @with_read_retry
    def get_registration(self, registration_id: str) -> Registration:
        registration = db.session.get(Registration, registration_id)
        if registration is None:
            raise NotFound(f"Registration {registration_id} not found")
        return registration

    @with_read_retry
    def list_participants(self, tournament_id: str) -> List[Registration]:
        """Confirmed teams first, then by registration time."""
        return (
            Registration.query
            .filter_by(tournament_id=tournament_id)
            .order_by(Registration.confirmed.desc(), Registration.created_at.asc())
            .all()
        )

    @with_read_retry
    def list_pending(self, tournament_id: Optional[str] = None) -> List[Registration]:
        """Registrations awaiting a moderator, oldest first."""
        query = Registration.query.filter(Registration.confirmed.is_(False))
        if tournament_id:
            query = query.filter(Registration.tournament_id == tournament_id)
        return query.order_by(Registration.created_at.asc()).all()

    @with_read_retry
    def list_my_tournaments(self, player_id: str) -> List[Registration]:
        """Registrations of every team the player is on, newest first."""
        return (
            Registration.query
            .join(Team, Registration.team_id == Team.id)
            .filter(or_(
                Team.slot1_player_id == player_id,
                Team.slot2_player_id == player_id,
                Team.slot3_player_id == player_id,
            ))
            .order_by(Registration.created_at.desc())
            .all()
        )

    @with_read_retry
    def is_confirmed_registrant(self, team_id: str, tournament_id: str) -> bool:
        return Registration.query.filter_by(
            team_id=team_id,
            tournament_id=tournament_id,
            confirmed=True
        ).first() is not None



def partition_participants(registrations: List[Registration]) -> Tuple[List[Registration], List[Registration]]:
    """Split an ordered participant list into (confirmed, pending)."""
    confirmed = [r for r in registrations if r.confirmed]
    pending = [r for r in registrations if not r.confirmed]
    return confirmed, pending
