import logging
import re
from datetime import datetime
from flask import request, current_app
from wbsmaster.errors import ApiError
from wbsmaster.models import db, Project, TeamMember, Notification

logger = logging.getLogger(__name__)

TIME_RE = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


def json_body():
    """Request payload as a dict: JSON when sent, else the form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()

def require_fields(data, *names):
    for name in names:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ApiError(f'{name} is required', 400)

def clean(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value

def parse_date(value, field='date'):
    if value in (None, ''):
        return None
    try:
        return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()
    except ValueError:
        raise ApiError(f'invalid {field}', 400)

def parse_time(value, field='time'):
    if value in (None, ''):
        return None
    if not TIME_RE.match(str(value)):
        raise ApiError(f'{field} must be HH:MM', 400)
    return str(value)

def parse_int(value, field, default=None, minimum=None, maximum=None):
    if value in (None, ''):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ApiError(f'invalid {field}', 400)
    if (minimum is not None and number < minimum) or (maximum is not None and number > maximum):
        raise ApiError(f'{field} out of range', 400)
    return number

def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')

def choice(value, allowed, field, default=None):
    if value in (None, ''):
        return default
    value = str(value).upper()
    if value not in allowed:
        raise ApiError(f'invalid {field}: {value}', 400)
    return value

def check_range(start, end, start_field='start_date', end_field='end_date'):
    if start and end and end < start:
        raise ApiError(f'{end_field} must not precede {start_field}', 400)

def get_or_404(model, obj_id, label=None):
    obj = db.session.get(model, obj_id)
    if obj is None:
        raise ApiError(f'{label or model.__name__.lower()} not found', 404)
    return obj

def get_project(project_id):
    pid = parse_int(project_id, 'project_id')
    if pid is None:
        raise ApiError('project_id is required', 400)
    return get_or_404(Project, pid, 'project')

def paginate(query, serialize=lambda o: o.to_dict()):
    """All rows as a list, or ``{items, total, page, page_size}`` when ``page`` is given."""
    page = parse_int(request.args.get('page'), 'page', minimum=1)
    if page is None:
        return [serialize(o) for o in query.all()]
    size = parse_int(request.args.get('page_size'), 'page_size',
                     default=current_app.config['DEFAULT_PAGE_SIZE'], minimum=1)
    size = min(size, current_app.config['MAX_PAGE_SIZE'])
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * size).limit(size).all()
    return {'items': [serialize(o) for o in rows], 'total': total, 'page': page, 'page_size': size}

def member_project_ids(user_id):
    rows = db.session.query(TeamMember.project_id).filter(TeamMember.user_id == user_id).all()
    return [r[0] for r in rows]

def notify_team(project_id, actor_id, type_, title, message=None, link=None, related_id=None):
    """Queue a notification for every team member except the actor. Never raises."""
    try:
        members = TeamMember.query.filter(TeamMember.project_id == project_id,
                                          TeamMember.user_id != actor_id).all()
        for m in members:
            db.session.add(Notification(user_id=m.user_id, type=type_, title=title, message=message,
                                        link=link, related_id=related_id, project_id=project_id))
        return len(members)
    except Exception:
        logger.exception('failed to queue %s notifications for project %s', type_, project_id)
        return 0
