import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from flask import current_app

from shared.state_machine import SubmissionState
from .models import db, Registration, Submission, Team
from .store import with_read_retry


@dataclass
class ScoringRule:
    """
    Points for one approved map: the placement table entry plus a per-kill weight.
    Placements missing from the table (or not recorded) score no placement points.
    """
    placement_points: Dict[int, float] = field(default_factory=dict)
    kill_points: float = 1.0

    def points_for(self, placement: Optional[int], total_kills: int) -> float:
        base = self.placement_points.get(placement, 0) if placement is not None else 0
        return base + total_kills * self.kill_points

    @classmethod
    def from_config(cls, app_config) -> "ScoringRule":
        return cls(
            placement_points=dict(app_config.get('PLACEMENT_POINTS', {})),
            kill_points=app_config.get('KILL_POINTS', 1.0)
        )


@dataclass
class LeaderboardEntry:
    tournament_id: str
    team_id: str
    team_name: Optional[str]
    maps_played: int = 0
    total_kills: int = 0
    total_points: float = 0
    updated_at: Optional[datetime] = None
    rank: int = 0

    def to_dict(self) -> dict:
        return {
            'rank': self.rank,
            'tournament_id': self.tournament_id,
            'team_id': self.team_id,
            'team_name': self.team_name,
            'maps_played': self.maps_played,
            'total_kills': self.total_kills,
            'total_points': self.total_points,
            'total_points_display': fmt_points(self.total_points),
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class LeaderboardAggregator:
    """
    Ranks teams from approved submissions only.
    Always computed from current rows; nothing is cached or written.
    """

    def __init__(self, scoring: Optional[ScoringRule] = None):
        self._scoring = scoring

    @property
    def scoring(self) -> ScoringRule:
        if self._scoring is not None:
            return self._scoring
        return ScoringRule.from_config(current_app.config)

    @with_read_retry
    def compute(self, tournament_id: str, include_empty: bool = False) -> List[LeaderboardEntry]:
        scoring = self.scoring

        rows = (
            db.session.query(Submission, Team.name)
            .join(Registration, (Registration.team_id == Submission.team_id)
                  & (Registration.tournament_id == Submission.tournament_id))
            .join(Team, Team.id == Submission.team_id)
            .filter(
                Submission.tournament_id == tournament_id,
                Submission.status == SubmissionState.APPROVED.value,
                Registration.confirmed.is_(True)
            )
            .all()
        )

        entries: Dict[str, LeaderboardEntry] = {}
        for submission, team_name in rows:
            entry = entries.get(submission.team_id)
            if entry is None:
                entry = LeaderboardEntry(
                    tournament_id=tournament_id,
                    team_id=submission.team_id,
                    team_name=team_name
                )
                entries[submission.team_id] = entry

            entry.maps_played += 1
            entry.total_kills += submission.total_kills
            entry.total_points += scoring.points_for(submission.placement, submission.total_kills)
            stamp = submission.updated_at or submission.created_at
            if stamp and (entry.updated_at is None or stamp > entry.updated_at):
                entry.updated_at = stamp

        if include_empty:
            confirmed = (
                db.session.query(Registration.team_id, Team.name)
                .join(Team, Team.id == Registration.team_id)
                .filter(Registration.tournament_id == tournament_id, Registration.confirmed.is_(True))
                .all()
            )
            for team_id, team_name in confirmed:
                if team_id not in entries:
                    entries[team_id] = LeaderboardEntry(
                        tournament_id=tournament_id,
                        team_id=team_id,
                        team_name=team_name
                    )

        ranked = sorted(
            entries.values(),
            key=lambda e: (-e.total_points, -e.total_kills, (e.team_name or '').lower(), e.team_id)
        )
        for i, entry in enumerate(ranked):
            entry.rank = i + 1
        return ranked


def fmt_points(value) -> str:
    """Format points for display: integers bare, everything else to one decimal."""
    try:
        num = float(value)
    except (TypeError, ValueError):
        return "0"
    if not math.isfinite(num):
        return "0"
    rounded = round(num * 10) / 10
    if abs(rounded - round(rounded)) < 1e-9:
        return str(int(round(rounded)))
    return f"{rounded:.1f}"
