from datetime import date, datetime, timedelta
from flask import Blueprint, request
from flask_login import login_required
from wbsmaster.helpers import parse_int
from wbsmaster.models import db, CustomerRequirement, FieldIssue, Issue, WbsItem, Holiday, utcnow

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/api/dashboard')

COUNTED = (
    ('customer_requirements', CustomerRequirement),
    ('field_issues', FieldIssue),
    ('issues', Issue),
    ('wbs_items', WbsItem),
)


@dashboard_bp.route('/today-stats')
@login_required
def today_stats():
    project_id = parse_int(request.args.get('project_id'), 'project_id')
    today = date.today()
    # created_at is stored as naive UTC
    start = datetime.combine(utcnow().date(), datetime.min.time())
    end = start + timedelta(days=1)
    stats = {}
    for key, model in COUNTED:
        query = model.query.filter(model.created_at >= start, model.created_at < end)
        if project_id:
            query = query.filter(model.project_id == project_id)
        stats[key] = query.count()
    events = Holiday.query.filter(Holiday.date <= today,
                                  db.func.coalesce(Holiday.end_date, Holiday.date) >= today)
    if project_id:
        events = events.filter(Holiday.project_id == project_id)
    stats['events'] = events.count()
    return {'date': today.isoformat(), 'project_id': project_id, 'stats': stats}
