"""
Concurrent writers against a file-backed database.
Two threads race the same write from their own application contexts; the
store, not a read-then-write check, decides the outcome.
"""
import threading

import pytest

from squadcup import config as config_module
from squadcup.app import create_app
from squadcup.models import db, Player, Registration, Submission, Team, Tournament
from squadcup.registration import RegistrationDesk
from squadcup.submissions import SubmissionLifecycle
from shared.errors import Conflict


@pytest.fixture
def race_app(tmp_path, monkeypatch):
    class FileBackedConfig(config_module.TestingConfig):
        SQLALCHEMY_DATABASE_URI = 'sqlite:///' + str(tmp_path / 'race.db')

    monkeypatch.setitem(config_module.config, 'file_backed', FileBackedConfig)
    app = create_app('file_backed')
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def seeded(race_app):
    """A full team and a tournament; returns their ids."""
    with race_app.app_context():
        players = [Player(gamertag=tag) for tag in ('Alpha', 'Bravo', 'Charlie')]
        db.session.add_all(players)
        db.session.flush()
        team = Team(
            name='Racers',
            slot1_player_id=players[0].id,
            slot2_player_id=players[1].id,
            slot3_player_id=players[2].id,
            slot1_confirmed=True,
            slot2_confirmed=True,
            slot3_confirmed=True
        )
        tournament = Tournament(name='Photo Finish', status='registration', teams_possible=4, max_maps=5)
        db.session.add_all([team, tournament])
        db.session.commit()
        return {'team_id': team.id, 'tournament_id': tournament.id, 'captain_id': players[0].id}


def race(app, action, workers=2):
    """Run `action` in `workers` threads released together; returns the outcomes."""
    barrier = threading.Barrier(workers)
    outcomes = []
    lock = threading.Lock()

    def worker(index):
        with app.app_context():
            barrier.wait()
            try:
                action(index)
                outcome = 'ok'
            except Conflict:
                db.session.rollback()
                outcome = 'conflict'
            finally:
                db.session.remove()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return sorted(outcomes)


class TestConcurrentRegistration:

    def test_one_of_two_registrations_wins(self, race_app, seeded):
        def register(_):
            RegistrationDesk().register(seeded['team_id'], seeded['tournament_id'])

        outcomes = race(race_app, register)

        assert outcomes == ['conflict', 'ok']
        with race_app.app_context():
            assert Registration.query.filter_by(team_id=seeded['team_id']).count() == 1


class TestConcurrentSubmission:

    @pytest.fixture
    def registered(self, race_app, seeded):
        with race_app.app_context():
            db.session.add(Registration(
                team_id=seeded['team_id'],
                tournament_id=seeded['tournament_id'],
                confirmed=True
            ))
            db.session.commit()
        return seeded

    def test_same_map_converges_on_one_row(self, race_app, registered):
        def submit(index):
            SubmissionLifecycle().submit(
                tournament_id=registered['tournament_id'],
                team_id=registered['team_id'],
                map_number=1,
                placement=index + 1,
                kills=[index, 0, 0],
                image_ref=f'uploads/map_1_{index}.jpg',
                player_id=registered['captain_id']
            )

        outcomes = race(race_app, submit)

        assert outcomes == ['ok', 'ok']
        with race_app.app_context():
            rows = Submission.query.filter_by(team_id=registered['team_id'], map_number=1).all()
            assert len(rows) == 1
            assert rows[0].status == 'pending'
            assert rows[0].placement in (1, 2)
