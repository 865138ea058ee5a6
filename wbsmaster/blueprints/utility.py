import logging
from flask import Blueprint
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from wbsmaster.models import db

logger = logging.getLogger(__name__)

utility_bp = Blueprint('utility', __name__)

@utility_bp.route('/healthz')
def healthz():
    try:
        db.session.execute(text('SELECT 1'))
        return {'status': 'ok'}, 200
    except SQLAlchemyError:
        logger.exception('health check failed')
        db.session.rollback()
        return {'status': 'degraded'}, 500
