from flask import Blueprint, current_app, request, jsonify
from flask_login import current_user, login_required

bp = Blueprint('organizer', __name__)


@bp.route('/organizer/apply', methods=['POST'])
@login_required
def apply():
    data = request.get_json(silent=True) or {}
    application = current_app.organizers.apply(current_user, data.get('reason'))
    return jsonify(application.to_dict(include_user=True)), 201


@bp.route('/organizer/my-application', methods=['GET'])
@login_required
def my_application():
    return jsonify(current_app.organizers.my_application(current_user).to_dict())


# ==================== Super admin ====================

@bp.route('/admin/organizer-applications', methods=['GET'])
@login_required
def list_applications():
    applications = current_app.organizers.list_applications(current_user, request.args.get('status'))
    return jsonify([a.to_dict(include_user=True) for a in applications])


@bp.route('/admin/organizer-applications/<int:application_id>/approve', methods=['POST'])
@login_required
def approve_application(application_id: int):
    application = current_app.organizers.approve(current_user, application_id)
    return jsonify(application.to_dict(include_user=True))


@bp.route('/admin/organizer-applications/<int:application_id>/reject', methods=['POST'])
@login_required
def reject_application(application_id: int):
    application = current_app.organizers.reject(current_user, application_id)
    return jsonify(application.to_dict(include_user=True))


@bp.route('/admin/organizers', methods=['GET'])
@login_required
def list_organizers():
    return jsonify(current_app.organizers.list_organizers(current_user))


@bp.route('/admin/organizers/<int:user_id>/block', methods=['POST'])
@login_required
def block_organizer(user_id: int):
    user = current_app.organizers.block(current_user, user_id)
    return jsonify({'message': 'Organizer blocked successfully', 'user': user.to_dict(private=True)})
