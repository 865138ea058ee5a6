from functools import wraps
from flask import Blueprint, request
from flask_login import current_user, login_required
from werkzeug.security import generate_password_hash
from wbsmaster.blueprints.auth import MIN_PASSWORD_LENGTH
from wbsmaster.helpers import json_body, clean, choice, get_or_404
from wbsmaster.models import (db, User, TeamMember, Notification, ChatMessage, AiSetting, Issue, Holiday,
                              USER_ROLES)

admin_bp = Blueprint('admin', __name__, url_prefix='/api/users')


def admin_required(view):
    @wraps(view)
    @login_required
    def wrapper(*args, **kwargs):
        if not current_user.is_admin:
            return {'error': 'Admin access required'}, 403
        return view(*args, **kwargs)
    return wrapper


@admin_bp.route('', methods=['GET'])
@admin_required
def list_users():
    q = request.args.get('q', '').strip()
    query = User.query
    if q:
        like = f"%{q}%"
        query = query.filter(db.or_(User.email.ilike(like), User.name.ilike(like)))
    return {'users': [u.to_dict() for u in query.order_by(User.email.asc()).all()]}

@admin_bp.route('', methods=['POST'])
@admin_required
def create_user():
    data = json_body()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not email or not password:
        return {'error': 'email and password required'}, 400
    if len(password) < MIN_PASSWORD_LENGTH:
        return {'error': f'Password must be at least {MIN_PASSWORD_LENGTH} characters'}, 400
    if User.query.filter_by(email=email).first():
        return {'error': 'Email already registered'}, 409
    user = User(email=email, name=clean(data.get('name')) or email.split('@')[0],
                role=choice(data.get('role'), USER_ROLES, 'role', 'MEMBER'),
                password_hash=generate_password_hash(password))
    db.session.add(user)
    db.session.commit()
    return {'user': user.to_dict()}, 201

@admin_bp.route('/<int:user_id>', methods=['PATCH'])
@admin_required
def update_user(user_id):
    user = get_or_404(User, user_id, 'user')
    data = json_body()
    if 'name' in data:
        user.name = clean(data['name'])
    if 'avatar' in data:
        user.avatar = clean(data['avatar'])
    if 'role' in data:
        role = choice(data['role'], USER_ROLES, 'role')
        if user.id == current_user.id and role != 'ADMIN':
            return {'error': 'You cannot revoke your own admin role.'}, 400
        user.role = role
    db.session.commit()
    return {'user': user.to_dict()}

@admin_bp.route('/<int:user_id>/reset-password', methods=['POST'])
@admin_required
def reset_password(user_id):
    user = get_or_404(User, user_id, 'user')
    if user.id == current_user.id:
        return {'error': 'Use change-password for your own account.'}, 400
    new_pw = json_body().get('new_password')
    if not new_pw or len(new_pw) < MIN_PASSWORD_LENGTH:
        return {'error': f'Provide a new password (min {MIN_PASSWORD_LENGTH} chars).'}, 400
    user.password_hash = generate_password_hash(new_pw)
    db.session.commit()
    return {'status': 'ok'}

@admin_bp.route('/<int:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    if current_user.id == user_id:
        return {'error': 'You cannot delete yourself.'}, 400
    user = get_or_404(User, user_id, 'user')
    if user.projects:
        return {'error': 'Cannot delete user who owns projects.'}, 400
    _detach_user(user)
    db.session.delete(user)
    db.session.commit()
    return {'status': 'deleted'}

def _detach_user(user):
    """Drop rows that belong to ``user`` and clear references held by shared records."""
    for model in (TeamMember, Notification, ChatMessage, AiSetting):
        model.query.filter_by(user_id=user.id).delete(synchronize_session=False)
    Issue.query.filter_by(reporter_id=user.id).update({'reporter_id': None}, synchronize_session=False)
    Issue.query.filter_by(assignee_id=user.id).update({'assignee_id': None}, synchronize_session=False)
    Holiday.query.filter_by(user_id=user.id).update({'user_id': None}, synchronize_session=False)
