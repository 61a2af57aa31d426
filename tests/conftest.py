"""
Pytest configuration and fixtures for the participation engine tests.
"""
import os
import sys
import pytest
from flask import g

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'
os.environ['SQLALCHEMY_DATABASE_URI'] = 'sqlite:///:memory:'

from squadcup.app import create_app
from squadcup.models import db, Player, Tournament, Team, Registration, Submission


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app('testing')

    @app.before_request
    def forget_cached_player():
        # Tests share one app context, so g outlives each request
        g.pop('_login_user', None)

    return app


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh schema per test, inside one application context."""
    with app.app_context():
        db.drop_all()
        db.create_all()

        yield db.session

        db.session.rollback()
        db.session.remove()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


def make_player(gamertag: str, is_moderator: bool = False) -> Player:
    player = Player(gamertag=gamertag, is_moderator=is_moderator)
    db.session.add(player)
    db.session.commit()
    return player


@pytest.fixture
def captain(db_session):
    return make_player('CaptainFox')


@pytest.fixture
def player_b(db_session):
    return make_player('Bravo')


@pytest.fixture
def player_c(db_session):
    return make_player('Charlie')


@pytest.fixture
def outsider(db_session):
    return make_player('Outsider')


@pytest.fixture
def moderator(db_session):
    return make_player('ModMia', is_moderator=True)


@pytest.fixture
def sample_tournament(db_session):
    """A tournament with room for four teams and five maps."""
    tournament = Tournament(
        name='Friday Night Drop',
        status='registration',
        teams_possible=4,
        max_maps=5
    )
    db.session.add(tournament)
    db.session.commit()
    return tournament


@pytest.fixture
def sample_team(db_session, captain, player_b, player_c):
    """A full team where both invitees have accepted."""
    team = Team(
        name='Foxtrot',
        slot1_player_id=captain.id,
        slot2_player_id=player_b.id,
        slot3_player_id=player_c.id,
        slot1_confirmed=True,
        slot2_confirmed=True,
        slot3_confirmed=True
    )
    db.session.add(team)
    db.session.commit()
    return team


@pytest.fixture
def confirmed_registration(db_session, sample_team, sample_tournament):
    """sample_team is a confirmed registrant of sample_tournament."""
    registration = Registration(
        tournament_id=sample_tournament.id,
        team_id=sample_team.id,
        confirmed=True
    )
    db.session.add(registration)
    db.session.commit()
    return registration


@pytest.fixture
def make_team(db_session):
    """Factory for additional teams, each with a fresh captain."""
    counter = {'n': 0}

    def _make(name: str = None, confirmed_in: Tournament = None) -> Team:
        counter['n'] += 1
        captain = make_player(f'Captain{counter["n"]}')
        team = Team(name=name or f'Team {counter["n"]}', slot1_player_id=captain.id)
        db.session.add(team)
        db.session.commit()
        if confirmed_in is not None:
            db.session.add(Registration(tournament_id=confirmed_in.id, team_id=team.id, confirmed=True))
            db.session.commit()
        return team

    return _make


@pytest.fixture
def pending_submission(db_session, confirmed_registration, sample_team, sample_tournament):
    """Map 3 of sample_team, kills (5, 2, 1), placement 4, awaiting moderation."""
    submission = Submission(
        tournament_id=sample_tournament.id,
        team_id=sample_team.id,
        map_number=3,
        placement=4,
        kills1=5,
        kills2=2,
        kills3=1,
        image_ref=f'{sample_tournament.id}/{sample_team.id}/map_3.jpg',
        status='pending'
    )
    db.session.add(submission)
    db.session.commit()
    return submission
