import logging
import time
from flask import Blueprint, session, current_app
from flask_login import login_user, logout_user, current_user, login_required
from werkzeug.security import check_password_hash, generate_password_hash
from wbsmaster.helpers import json_body, clean
from wbsmaster.models import db, User, utcnow

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

MIN_PASSWORD_LENGTH = 6


@auth_bp.route('/login', methods=['POST'])
def login():
    max_attempts = current_app.config['LOGIN_MAX_ATTEMPTS']
    lock_seconds = current_app.config['LOGIN_LOCK_SECONDS']
    locked_until = session.get('login_lock_until')
    if locked_until and locked_until > time.time():
        remaining = int(locked_until - time.time())
        return {'error': f'Too many attempts. Try again in {remaining}s', 'retry_after': remaining}, 429
    data = json_body()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not email or not password:
        return {'error': 'email and password required'}, 400
    attempts = session.get('login_attempts', 0)
    user = User.query.filter_by(email=email).first()
    if user and check_password_hash(user.password_hash, password):
        session['login_attempts'] = 0
        session.pop('login_lock_until', None)
        user.last_seen = utcnow()
        db.session.commit()
        login_user(user)
        logger.info('user %s signed in', user.email)
        return {'user': user.to_dict()}
    attempts += 1
    session['login_attempts'] = attempts
    remaining = max_attempts - attempts
    logger.info('failed sign-in for %s (%d attempts)', email, attempts)
    if remaining <= 0:
        session['login_lock_until'] = time.time() + lock_seconds
        session['login_attempts'] = 0
        return {'error': f'Account locked for {lock_seconds}s due to repeated failures.',
                'retry_after': lock_seconds}, 429
    return {'error': f'Invalid credentials. {remaining} attempts left.'}, 401

@auth_bp.route('/logout', methods=['POST'])
def logout():
    logout_user()
    return {'status': 'ok'}

@auth_bp.route('/me')
@login_required
def me():
    return {'user': current_user.to_dict()}

@auth_bp.route('/register', methods=['POST'])
def register():
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
                password_hash=generate_password_hash(password))
    db.session.add(user)
    db.session.commit()
    logger.info('registered user %s', email)
    return {'user': user.to_dict()}, 201

@auth_bp.route('/change-password', methods=['POST'])
@login_required
def change_password():
    data = json_body()
    old = data.get('old_password')
    new = data.get('new_password')
    confirm = data.get('confirm_password')
    if not old or not new or not confirm:
        return {'error': 'All fields required'}, 400
    if not check_password_hash(current_user.password_hash, old):
        return {'error': 'Current password incorrect'}, 400
    if new != confirm:
        return {'error': 'Passwords do not match'}, 400
    if len(new) < MIN_PASSWORD_LENGTH:
        return {'error': f'Password must be at least {MIN_PASSWORD_LENGTH} characters'}, 400
    current_user.password_hash = generate_password_hash(new)
    db.session.commit()
    return {'status': 'ok'}
