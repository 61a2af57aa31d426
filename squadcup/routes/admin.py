from flask import Blueprint, request, jsonify, current_app
from flask_login import current_user, login_required

bp = Blueprint('admin', __name__, url_prefix='/api/v1/admin')


@bp.before_request
@login_required
def require_login():
    """Every admin route needs an authenticated caller; the role is checked per operation."""
    return None


def _names_for_registrations(registrations):
    ids = [pid for r in registrations if r.team for pid in r.team.player_ids()]
    return current_app.profiles.hydrate(ids)


# ==================== Teams ====================

@bp.route('/teams/<team_id>/confirm', methods=['POST'])
def confirm_team(team_id):
    team = current_app.moderation.confirm_team(current_user.id, team_id)
    return jsonify({'message': 'Team confirmed', 'team': team.to_dict()})


# ==================== Registrations ====================

@bp.route('/registrations/pending', methods=['GET'])
def pending_registrations():
    current_app.moderation.require_moderator(current_user.id)
    registrations = current_app.registrations.list_pending(request.args.get('tournament_id'))
    names = _names_for_registrations(registrations)
    return jsonify({
        'registrations': [r.to_dict(include_team=True, names=names) for r in registrations],
        'count': len(registrations)
    })


@bp.route('/registrations/<registration_id>/confirm', methods=['POST'])
def confirm_registration(registration_id):
    registration = current_app.moderation.confirm_registration(current_user.id, registration_id)
    return jsonify({'message': 'Registration confirmed', 'registration': registration.to_dict()})


@bp.route('/registrations/<registration_id>', methods=['DELETE'])
def deny_registration(registration_id):
    current_app.moderation.deny_registration(current_user.id, registration_id)
    return jsonify({'message': 'Registration denied'})


# ==================== Submissions ====================

@bp.route('/submissions/pending', methods=['GET'])
def pending_submissions():
    current_app.moderation.require_moderator(current_user.id)
    submissions = current_app.submissions.list_pending(request.args.get('tournament_id'))
    return jsonify({
        'submissions': [s.to_dict() for s in submissions],
        'count': len(submissions)
    })


@bp.route('/submissions/<submission_id>/approve', methods=['POST'])
def approve_submission(submission_id):
    data = request.json or {}
    kills = data.get('kills') or [None, None, None]
    if not isinstance(kills, list) or len(kills) != 3:
        return jsonify({'error': 'kills must list exactly 3 values', 'code': 'VALIDATION_ERROR'}), 400

    submission = current_app.moderation.admin_approve_submission(
        current_user.id,
        submission_id,
        map_number=data.get('map_number'),
        kills1=kills[0],
        kills2=kills[1],
        kills3=kills[2],
        placement=data.get('placement')
    )
    return jsonify({'message': 'Submission approved', 'submission': submission.to_dict()})


@bp.route('/submissions/<submission_id>/reject', methods=['POST'])
def reject_submission(submission_id):
    submission = current_app.moderation.admin_reject_submission(current_user.id, submission_id)
    return jsonify({'message': 'Submission rejected', 'submission': submission.to_dict()})


@bp.route('/submissions/<submission_id>/void', methods=['POST'])
def void_submission(submission_id):
    submission = current_app.moderation.admin_void_submission(current_user.id, submission_id)
    return jsonify({'message': 'Submission voided', 'submission': submission.to_dict()})
