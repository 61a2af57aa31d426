from flask import Blueprint, request, jsonify, current_app
from flask_login import current_user, login_required

from shared.errors import InvalidTransition, NotEligible, Unauthorized
from shared.state_machine import SubmissionState
from squadcup.registration import partition_participants
from squadcup.validation import is_int

bp = Blueprint('player', __name__)


def _names_for_teams(teams):
    ids = [pid for team in teams for pid in team.player_ids()]
    return current_app.profiles.hydrate(ids)


def _registration_list(registrations):
    names = _names_for_teams([r.team for r in registrations if r.team])
    return [r.to_dict(include_team=True, names=names) for r in registrations]


# ==================== Teams ====================

@bp.route('/api/v1/teams', methods=['POST'])
@login_required
def create_team():
    data = request.json or {}
    team = current_app.teams.create_team(
        captain_id=current_user.id,
        name=data.get('name'),
        invitee2=data.get('invitee2'),
        invitee3=data.get('invitee3'),
        logo_ref=data.get('logo_ref')
    )
    return jsonify({
        'message': 'Team created',
        'team': team.to_dict(names=_names_for_teams([team]))
    }), 201


@bp.route('/api/v1/teams/<team_id>/accept', methods=['POST'])
@login_required
def accept_invite(team_id):
    team = current_app.teams.accept_invite(team_id, current_user.id)
    return jsonify({
        'message': 'Invite accepted',
        'team': team.to_dict(names=_names_for_teams([team]))
    })


@bp.route('/api/v1/me/teams', methods=['GET'])
@login_required
def my_teams():
    teams = current_app.teams.list_my_teams(current_user.id)
    names = _names_for_teams(teams)
    return jsonify({
        'teams': [t.to_dict(names=names) for t in teams],
        'count': len(teams)
    })


@bp.route('/api/v1/me/tournaments', methods=['GET'])
@login_required
def my_tournaments():
    registrations = current_app.registrations.list_my_tournaments(current_user.id)
    return jsonify({
        'registrations': [
            dict(r.to_dict(), tournament=r.tournament.to_dict() if r.tournament else None)
            for r in registrations
        ],
        'count': len(registrations)
    })


# ==================== Registration ====================

@bp.route('/api/v1/tournaments/<tournament_id>/registrations', methods=['POST'])
@login_required
def register_team(tournament_id):
    data = request.json or {}
    team_id = data.get('team_id')
    if not team_id:
        return jsonify({'error': 'team_id is required', 'code': 'VALIDATION_ERROR'}), 400

    registration = current_app.registrations.register(team_id, tournament_id, player_id=current_user.id)
    return jsonify({
        'message': 'Team registered, waiting for moderator confirmation',
        'registration': registration.to_dict()
    }), 201


@bp.route('/api/v1/tournaments/<tournament_id>/participants', methods=['GET'])
def list_participants(tournament_id):
    registrations = current_app.registrations.list_participants(tournament_id)
    confirmed, pending = partition_participants(registrations)
    return jsonify({
        'confirmed': _registration_list(confirmed),
        'pending': _registration_list(pending),
        'count': len(registrations)
    })


# ==================== Submissions ====================

@bp.route('/api/v1/tournaments/<tournament_id>/teams/<team_id>/submissions', methods=['GET'])
@login_required
def list_team_submissions(tournament_id, team_id):
    submissions = current_app.submissions.list_team_submissions(tournament_id, team_id)
    return jsonify({
        'submissions': [s.to_dict() for s in submissions],
        'count': len(submissions)
    })


@bp.route('/api/v1/tournaments/<tournament_id>/teams/<team_id>/submissions', methods=['POST'])
@login_required
def submit_scores(tournament_id, team_id):
    """
    Submit one map's result. Overwriting an existing result for the map needs
    `confirm_overwrite: true`, otherwise the existing row is returned with 409.
    """
    data = request.json or {}
    team = current_app.teams.get_team(team_id)
    if not team.has_player(current_user.id):
        raise NotEligible("Only players on the team can submit its scores")
    if not current_app.registrations.is_confirmed_registrant(team_id, tournament_id):
        raise Unauthorized("Team is not a confirmed registrant of this tournament")

    map_number = data.get('map_number')
    existing = None
    if is_int(map_number):
        existing = current_app.submissions.get_submission_for_map(tournament_id, team_id, map_number)

    if existing is not None and existing.status == SubmissionState.VOID.value:
        raise InvalidTransition(
            existing.status,
            SubmissionState.PENDING.value,
            f"Map {map_number} was voided by a moderator and cannot be resubmitted"
        )

    if existing is not None and not data.get('confirm_overwrite'):
        return jsonify({
            'error': f'Map {map_number} already has a {existing.status} result; confirm to overwrite it',
            'code': 'CONFIRMATION_REQUIRED',
            'existing': existing.to_dict()
        }), 409

    submission = current_app.submissions.submit(
        tournament_id=tournament_id,
        team_id=team_id,
        map_number=map_number,
        placement=data.get('placement'),
        kills=data.get('kills'),
        image_ref=data.get('image_ref'),
        player_id=current_user.id
    )
    return jsonify({
        'message': f'Submitted map {submission.map_number}, waiting for moderator approval',
        'submission': submission.to_dict()
    }), 200 if existing is not None else 201


# ==================== Leaderboard ====================

@bp.route('/api/v1/tournaments/<tournament_id>/leaderboard', methods=['GET'])
def get_leaderboard(tournament_id):
    include_empty = request.args.get('include_empty', 'false').lower() in ('1', 'true', 'yes')
    entries = current_app.leaderboard.compute(tournament_id, include_empty=include_empty)
    return jsonify({
        'tournament_id': tournament_id,
        'entries': [e.to_dict() for e in entries],
        'count': len(entries)
    })
