from flask import Blueprint, request
from flask_login import login_required, current_user
from wbsmaster.helpers import get_or_404, parse_bool, parse_int
from wbsmaster.models import db, Notification

notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


@notifications_bp.route('', methods=['GET'])
@login_required
def list_notifications():
    query = Notification.query.filter_by(user_id=current_user.id)
    if parse_bool(request.args.get('unread')):
        query = query.filter_by(is_read=False)
    limit = parse_int(request.args.get('limit'), 'limit', 50, 1, 500)
    items = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    unread = Notification.query.filter_by(user_id=current_user.id, is_read=False).count()
    return {'notifications': [n.to_dict() for n in items], 'unread_count': unread}

@notifications_bp.route('/<int:notification_id>', methods=['PATCH'])
@login_required
def mark_read(notification_id):
    note = get_or_404(Notification, notification_id, 'notification')
    if note.user_id != current_user.id:
        return {'error': 'notification not found'}, 404
    note.is_read = True
    db.session.commit()
    return {'notification': note.to_dict()}

@notifications_bp.route('/read-all', methods=['POST'])
@login_required
def mark_all_read():
    updated = (Notification.query.filter_by(user_id=current_user.id, is_read=False)
               .update({'is_read': True}, synchronize_session=False))
    db.session.commit()
    return {'updated': updated}
