"""
Unit tests for the leaderboard aggregator.
Only approved submissions of confirmed registrants count.
"""
import pytest
from squadcup.leaderboard import LeaderboardAggregator, ScoringRule, fmt_points
from squadcup.models import db, Registration, Submission


@pytest.fixture
def scoring():
    return ScoringRule(placement_points={1: 15, 2: 12, 3: 10}, kill_points=1)


@pytest.fixture
def aggregator(scoring):
    return LeaderboardAggregator(scoring)


def add_result(tournament, team, map_number, placement, kills, status='approved'):
    submission = Submission(
        tournament_id=tournament.id,
        team_id=team.id,
        map_number=map_number,
        placement=placement,
        kills1=kills[0],
        kills2=kills[1],
        kills3=kills[2],
        image_ref=f'{team.id}/map_{map_number}.jpg',
        status=status
    )
    db.session.add(submission)
    db.session.commit()
    return submission


class TestScoringRule:

    def test_placement_plus_kills(self, scoring):
        assert scoring.points_for(1, 7) == 22

    def test_unlisted_placement_scores_kills_only(self, scoring):
        assert scoring.points_for(9, 4) == 4

    def test_missing_placement(self, scoring):
        assert scoring.points_for(None, 3) == 3

    def test_from_config(self, app):
        rule = ScoringRule.from_config(app.config)
        assert rule.placement_points[1] == 15
        assert rule.kill_points == 1


class TestCompute:

    def test_only_approved_rows_count(self, aggregator, sample_tournament, sample_team, confirmed_registration):
        add_result(sample_tournament, sample_team, 1, 1, (3, 2, 1))
        for map_number, status in ((2, 'pending'), (3, 'rejected'), (4, 'void')):
            add_result(sample_tournament, sample_team, map_number, 1, (10, 10, 10), status=status)

        entries = aggregator.compute(sample_tournament.id)

        assert len(entries) == 1
        assert entries[0].maps_played == 1
        assert entries[0].total_kills == 6
        assert entries[0].total_points == 21

    def test_unconfirmed_registrant_excluded(self, aggregator, sample_tournament, make_team):
        team = make_team('Pending Pandas')
        db.session.add(Registration(tournament_id=sample_tournament.id, team_id=team.id, confirmed=False))
        db.session.commit()
        add_result(sample_tournament, team, 1, 1, (5, 5, 5))

        assert aggregator.compute(sample_tournament.id) == []

    def test_ranked_by_points_then_kills(self, aggregator, sample_tournament, make_team):
        alpha = make_team('Alpha', confirmed_in=sample_tournament)
        bravo = make_team('Bravo', confirmed_in=sample_tournament)
        charlie = make_team('Charlie', confirmed_in=sample_tournament)

        add_result(sample_tournament, alpha, 1, 3, (1, 1, 0))     # 10 + 2
        add_result(sample_tournament, bravo, 1, 1, (0, 0, 0))     # 15 + 0
        add_result(sample_tournament, charlie, 1, 2, (1, 1, 1))   # 12 + 3

        entries = aggregator.compute(sample_tournament.id)

        assert [e.team_name for e in entries] == ['Charlie', 'Bravo', 'Alpha']
        assert [e.rank for e in entries] == [1, 2, 3]

    def test_kill_tiebreak(self, aggregator, sample_tournament, make_team):
        alpha = make_team('Alpha', confirmed_in=sample_tournament)
        bravo = make_team('Bravo', confirmed_in=sample_tournament)

        add_result(sample_tournament, alpha, 1, 3, (1, 1, 0))   # 10 + 2 = 12
        add_result(sample_tournament, bravo, 1, None, (4, 4, 4))  # 0 + 12 = 12

        entries = aggregator.compute(sample_tournament.id)

        assert [e.team_name for e in entries] == ['Bravo', 'Alpha']

    def test_sums_across_maps(self, aggregator, sample_tournament, sample_team, confirmed_registration):
        add_result(sample_tournament, sample_team, 1, 2, (1, 0, 0))
        add_result(sample_tournament, sample_team, 2, 3, (0, 2, 0))

        entry = aggregator.compute(sample_tournament.id)[0]

        assert entry.maps_played == 2
        assert entry.total_kills == 3
        assert entry.total_points == 25
        assert entry.updated_at is not None

    def test_include_empty(self, aggregator, sample_tournament, make_team):
        scored = make_team('Scored', confirmed_in=sample_tournament)
        make_team('Idle', confirmed_in=sample_tournament)
        add_result(sample_tournament, scored, 1, 1, (0, 0, 0))

        without = aggregator.compute(sample_tournament.id)
        with_empty = aggregator.compute(sample_tournament.id, include_empty=True)

        assert [e.team_name for e in without] == ['Scored']
        assert [e.team_name for e in with_empty] == ['Scored', 'Idle']
        assert with_empty[1].maps_played == 0

    def test_other_tournament_ignored(self, aggregator, sample_tournament, sample_team, confirmed_registration):
        from squadcup.models import Tournament
        other = Tournament(name='Other Cup')
        db.session.add(other)
        db.session.commit()

        add_result(sample_tournament, sample_team, 1, 1, (1, 1, 1))

        assert aggregator.compute(other.id) == []

    def test_entry_to_dict(self, aggregator, sample_tournament, sample_team, confirmed_registration):
        add_result(sample_tournament, sample_team, 1, 1, (1, 1, 1))

        data = aggregator.compute(sample_tournament.id)[0].to_dict()

        assert data['rank'] == 1
        assert data['team_name'] == 'Foxtrot'
        assert data['total_points_display'] == '18'


class TestFmtPoints:

    @pytest.mark.parametrize('value,expected', [
        (12, '12'),
        (12.0, '12'),
        (12.26, '12.3'),
        (7.5, '7.5'),
        (None, '0'),
        ('abc', '0'),
        (float('nan'), '0'),
    ])
    def test_formatting(self, value, expected):
        assert fmt_points(value) == expected
