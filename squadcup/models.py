import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin

db = SQLAlchemy()

TEAM_SIZE = 3


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class Player(UserMixin, db.Model):
    """Mirror of the externally authenticated player; only id and gamertag are used."""
    __tablename__ = 'players'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    gamertag = db.Column(db.String(100), nullable=True)
    is_moderator = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def get_id(self):
        return str(self.id)

    def to_dict(self):
        return {
            'id': self.id,
            'gamertag': self.gamertag,
            'is_moderator': self.is_moderator,
        }


class Tournament(db.Model):
    __tablename__ = 'tournaments'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='registration')
    teams_possible = db.Column(db.Integer, nullable=True)  # capacity, None = TBD
    max_maps = db.Column(db.Integer, nullable=True)  # None = config default
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    registrations = db.relationship('Registration', back_populates='tournament',
                                    cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'status': self.status,
            'teams_possible': self.teams_possible,
            'max_maps': self.max_maps,
            'created_at': _iso(self.created_at),
        }


class Team(db.Model):
    __tablename__ = 'teams'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), nullable=False, unique=True)
    logo_ref = db.Column(db.String(500), nullable=True)

    slot1_player_id = db.Column(db.String(36), db.ForeignKey('players.id'), nullable=False)
    slot2_player_id = db.Column(db.String(36), db.ForeignKey('players.id'), nullable=True)
    slot3_player_id = db.Column(db.String(36), db.ForeignKey('players.id'), nullable=True)

    # The captain confirms by creating the team
    slot1_confirmed = db.Column(db.Boolean, nullable=False, default=True)
    slot2_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    slot3_confirmed = db.Column(db.Boolean, nullable=False, default=False)

    # Moderator gate, set only through the elevated path
    team_confirmed = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    registrations = db.relationship('Registration', back_populates='team',
                                    cascade='all, delete-orphan')

    @property
    def captain_id(self) -> str:
        return self.slot1_player_id

    def roster(self) -> List[Tuple[int, Optional[str], bool]]:
        """(slot, player_id, confirmed) for every slot, filled or not."""
        return [
            (1, self.slot1_player_id, bool(self.slot1_confirmed)),
            (2, self.slot2_player_id, bool(self.slot2_confirmed)),
            (3, self.slot3_player_id, bool(self.slot3_confirmed)),
        ]

    def player_ids(self) -> List[str]:
        return [pid for _, pid, _ in self.roster() if pid]

    def slot_of(self, player_id: str) -> Optional[int]:
        for slot, pid, _ in self.roster():
            if pid and pid == player_id:
                return slot
        return None

    def has_player(self, player_id: str) -> bool:
        return self.slot_of(player_id) is not None

    @property
    def all_slots_confirmed(self) -> bool:
        return all(confirmed for _, pid, confirmed in self.roster() if pid)

    def to_dict(self, names: dict = None):
        names = names or {}
        return {
            'id': self.id,
            'name': self.name,
            'logo_ref': self.logo_ref,
            'players': [
                {
                    'slot': slot,
                    'player_id': pid,
                    'display_name': names.get(pid) if pid else None,
                    'confirmed': confirmed,
                }
                for slot, pid, confirmed in self.roster()
            ],
            'all_players_confirmed': self.all_slots_confirmed,
            'team_confirmed': self.team_confirmed,
            'created_at': _iso(self.created_at),
        }


class Registration(db.Model):
    __tablename__ = 'registrations'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tournament_id = db.Column(db.String(36), db.ForeignKey('tournaments.id'), nullable=False, index=True)
    team_id = db.Column(db.String(36), db.ForeignKey('teams.id'), nullable=False, index=True)
    confirmed = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    tournament = db.relationship('Tournament', back_populates='registrations')
    team = db.relationship('Team', back_populates='registrations')

    __table_args__ = (
        db.UniqueConstraint('tournament_id', 'team_id', name='unique_registration_per_tournament'),
    )

    def to_dict(self, include_team: bool = False, names: dict = None):
        data = {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'team_id': self.team_id,
            'confirmed': self.confirmed,
            'created_at': _iso(self.created_at),
        }
        if include_team:
            data['team'] = self.team.to_dict(names=names) if self.team else None
        return data


class Submission(db.Model):
    __tablename__ = 'submissions'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tournament_id = db.Column(db.String(36), db.ForeignKey('tournaments.id'), nullable=False, index=True)
    team_id = db.Column(db.String(36), db.ForeignKey('teams.id'), nullable=False, index=True)
    map_number = db.Column(db.Integer, nullable=False)
    placement = db.Column(db.Integer, nullable=True)
    kills1 = db.Column(db.Integer, nullable=False, default=0)
    kills2 = db.Column(db.Integer, nullable=False, default=0)
    kills3 = db.Column(db.Integer, nullable=False, default=0)
    image_ref = db.Column(db.String(500), nullable=False)  # storage path, not a URL
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    team = db.relationship('Team')

    __table_args__ = (
        db.UniqueConstraint('tournament_id', 'team_id', 'map_number', name='unique_submission_per_map'),
        db.CheckConstraint('map_number >= 1', name='ck_submission_map_number'),
        db.CheckConstraint('kills1 >= 0 AND kills2 >= 0 AND kills3 >= 0', name='ck_submission_kills'),
        db.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'void')",
            name='ck_submission_status'
        ),
    )

    @property
    def kills(self) -> Tuple[int, int, int]:
        return (self.kills1, self.kills2, self.kills3)

    @property
    def total_kills(self) -> int:
        return sum(self.kills)

    def to_dict(self):
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'team_id': self.team_id,
            'map_number': self.map_number,
            'placement': self.placement,
            'kills': list(self.kills),
            'total_kills': self.total_kills,
            'image_ref': self.image_ref,
            'status': self.status,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class ModerationLog(db.Model):
    """One row per elevated operation, written in the same transaction as the change."""
    __tablename__ = 'moderation_log'

    id = db.Column(db.Integer, primary_key=True)
    moderator_id = db.Column(db.String(36), nullable=False, index=True)
    action = db.Column(db.String(50), nullable=False)
    subject_id = db.Column(db.String(36), nullable=False, index=True)
    payload = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
