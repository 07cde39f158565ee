import redis
from flask import Blueprint, Response, current_app, request, jsonify
from flask_login import current_user, login_required

from ..exceptions import ArenaError

bp = Blueprint('notifications', __name__)


@bp.route('/notifications', methods=['GET'])
@login_required
def list_notifications():
    unread_only = request.args.get('unreadOnly') == 'true'
    notifications = current_app.notifications.list_for_user(current_user.id, unread_only=unread_only)
    return jsonify([n.to_dict() for n in notifications])


@bp.route('/notifications/<int:notification_id>/read', methods=['POST'])
@login_required
def mark_read(notification_id: int):
    notification = current_app.notifications.mark_read(current_user.id, notification_id)
    return jsonify(notification.to_dict())


@bp.route('/notifications/read-all', methods=['POST'])
@login_required
def mark_all_read():
    count = current_app.notifications.mark_all_read(current_user.id)
    return jsonify({'message': 'All notifications marked as read', 'count': count})


@bp.route('/notifications/unread-count', methods=['GET'])
@login_required
def unread_count():
    return jsonify({'count': current_app.notifications.unread_count(current_user.id)})


@bp.route('/notifications/<int:notification_id>', methods=['DELETE'])
@login_required
def delete_notification(notification_id: int):
    current_app.notifications.delete(current_user.id, notification_id)
    return jsonify({'message': 'Notification deleted'})


@bp.route('/notifications/stream')
@login_required
def stream_notifications():
    """SSE endpoint for live user notifications."""
    if not current_app.config.get('REDIS_URL'):
        raise ArenaError('Live notifications are not available', status_code=503)

    redis_url = current_app.config['REDIS_URL']
    user_id = current_user.id

    def generate():
        # Dedicated connection with no read timeout for the long-lived stream
        sse_redis = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=None,
            socket_connect_timeout=5
        )
        pubsub = sse_redis.pubsub(ignore_subscribe_messages=True)
        pubsub.subscribe(f'user:{user_id}:notifications')

        yield f"data: {{\"type\":\"connected\",\"userId\":{user_id}}}\n\n"

        try:
            while True:
                message = pubsub.get_message(timeout=30)
                if message and message['type'] == 'message':
                    yield f"data: {message['data']}\n\n"
                else:
                    yield ": keepalive\n\n"
        finally:
            pubsub.close()

    return Response(generate(), mimetype='text/event-stream', headers={
        'Cache-Control': 'no-cache',
        'X-Accel-Buffering': 'no'
    })
