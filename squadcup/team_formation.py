import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, case, literal, or_, update

from shared.errors import NotEligible, NotFound, ValidationError
from .models import db, Player, Team
from .store import constraint_guard, with_read_retry
from .validation import require_name

logger = logging.getLogger(__name__)


class TeamFormation:
    """
    Builds three-player teams:
    - The captain fills slot 1 and is confirmed on creation
    - Invitees fill slots 2 and 3 and confirm by accepting
    - The team-level confirmation is a moderator gate (see Moderation.confirm_team)
    """

    def create_team(
        self,
        captain_id: str,
        name: str,
        invitee2: Optional[str] = None,
        invitee3: Optional[str] = None,
        logo_ref: Optional[str] = None
    ) -> Team:
        """Create a team led by `captain_id` with up to two invited players."""
        name = require_name(name, 'Team name')
        invitee2 = invitee2 or None
        invitee3 = invitee3 or None

        for invitee in (invitee2, invitee3):
            if invitee and invitee == captain_id:
                raise ValidationError("The captain cannot invite themselves")
        if invitee2 and invitee3 and invitee2 == invitee3:
            raise ValidationError("The same player cannot fill two slots")

        for player_id in (captain_id, invitee2, invitee3):
            if player_id and db.session.get(Player, player_id) is None:
                raise NotFound(f"Player {player_id} not found")

        team = Team(
            name=name,
            logo_ref=logo_ref,
            slot1_player_id=captain_id,
            slot2_player_id=invitee2,
            slot3_player_id=invitee3,
            slot1_confirmed=True,
            slot2_confirmed=False,
            slot3_confirmed=False,
            team_confirmed=False
        )
        db.session.add(team)
        with constraint_guard(f"A team named '{name}' already exists"):
            db.session.commit()

        logger.info(f"Team {team.id} '{name}' created by {captain_id}")
        return team

    def accept_invite(self, team_id: str, player_id: str) -> Team:
        """Confirm the invited player's own slot. Does not touch team_confirmed."""
        stmt = (
            update(Team)
            .where(
                Team.id == team_id,
                or_(
                    and_(Team.slot2_player_id == player_id, Team.slot2_confirmed.is_(False)),
                    and_(Team.slot3_player_id == player_id, Team.slot3_confirmed.is_(False)),
                )
            )
            .values(
                slot2_confirmed=case((Team.slot2_player_id == player_id, literal(True)),
                                     else_=Team.slot2_confirmed),
                slot3_confirmed=case((Team.slot3_player_id == player_id, literal(True)),
                                     else_=Team.slot3_confirmed),
                updated_at=datetime.utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)

        if result.rowcount == 0:
            db.session.rollback()
            if db.session.get(Team, team_id) is None:
                raise NotFound(f"Team {team_id} not found")
            raise NotEligible("You do not hold an unconfirmed slot on this team")

        db.session.commit()
        logger.info(f"Player {player_id} accepted invite to team {team_id}")
        return db.session.get(Team, team_id)

    @with_read_retry
    def get_team(self, team_id: str) -> Team:
        team = db.session.get(Team, team_id)
        if team is None:
            raise NotFound(f"Team {team_id} not found")
        return team

    @with_read_retry
    def list_my_teams(self, player_id: str) -> List[Team]:
        """Every team the player holds a slot on, confirmed or not, by name."""
        return (
            Team.query
            .filter(or_(
                Team.slot1_player_id == player_id,
                Team.slot2_player_id == player_id,
                Team.slot3_player_id == player_id,
            ))
            .order_by(Team.name)
            .all()
        )
