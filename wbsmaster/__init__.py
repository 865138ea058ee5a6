import logging
import os
from flask import Flask
from flask_login import LoginManager
from werkzeug.security import generate_password_hash
from wbsmaster.models import db, User
from wbsmaster.errors import register_error_handlers

logger = logging.getLogger(__name__)


def create_app(config_object=None):
    app = Flask(__name__)
    if config_object is None:
        from config import get_config
        config_object = get_config()
    if isinstance(config_object, dict):
        from config import BaseConfig
        app.config.from_object(BaseConfig)
        app.config.update(config_object)
    else:
        app.config.from_object(config_object)
    logging.basicConfig(level=app.config.get('LOG_LEVEL', 'INFO'),
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    if app.config['SECRET_KEY'] == 'dev-insecure' and not app.config.get('TESTING'):
        logger.warning('Using fallback dev SECRET_KEY; set SECRET_KEY in .env for production.')

    db.init_app(app)
    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return {'error': 'Authentication required'}, 401

    register_error_handlers(app)
    from wbsmaster.blueprints import ALL_BLUEPRINTS
    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)

    with app.app_context():
        db.create_all()
        ensure_admin(app)
    return app


def ensure_admin(app):
    """Create or promote the bootstrap admin named by ADMIN_EMAIL / ADMIN_PASSWORD."""
    email = app.config.get('ADMIN_EMAIL') or os.getenv('ADMIN_EMAIL')
    password = app.config.get('ADMIN_PASSWORD') or os.getenv('ADMIN_PASSWORD')
    if not email or not password:
        return
    user = User.query.filter_by(email=email.strip().lower()).first()
    if user is None:
        user = User(email=email.strip().lower(), name='Administrator',
                    password_hash=generate_password_hash(password), role='ADMIN')
        db.session.add(user)
        logger.info('created bootstrap admin %s', user.email)
    elif user.role != 'ADMIN':
        user.role = 'ADMIN'
    db.session.commit()
