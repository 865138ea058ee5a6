import calendar
import io
from datetime import date, timedelta
from flask import Blueprint, request, send_file
from flask_login import login_required
from wbsmaster.helpers import (json_body, require_fields, clean, parse_date, parse_time, parse_int, parse_bool,
                               choice, check_range, get_or_404, get_project)
from wbsmaster.models import db, Holiday, User, HOLIDAY_TYPES, utcnow

holidays_bp = Blueprint('holidays', __name__, url_prefix='/api/holidays')

TYPE_STYLES = {
    'COMPANY_HOLIDAY': {'label': 'Company holiday', 'color': 'bg-rose-500'},
    'TEAM_OFFSITE': {'label': 'Team offsite', 'color': 'bg-primary'},
    'PERSONAL_LEAVE': {'label': 'Personal leave', 'color': 'bg-success'},
    'PERSONAL_SCHEDULE': {'label': 'Personal schedule', 'color': 'bg-sky-500'},
    'MEETING': {'label': 'Meeting', 'color': 'bg-violet-500'},
    'DEADLINE': {'label': 'Deadline', 'color': 'bg-warning'},
    'OTHER': {'label': 'Other', 'color': 'bg-gray-400'},
}
_calendar = calendar.Calendar(firstweekday=calendar.SUNDAY)


def _overlapping(query, first, last):
    """Events whose [date, end_date] span touches [first, last]."""
    return query.filter(Holiday.date <= last,
                        db.func.coalesce(Holiday.end_date, Holiday.date) >= first)

def _filtered_query():
    query = Holiday.query
    args = request.args
    if args.get('project_id'):
        query = query.filter(Holiday.project_id == parse_int(args['project_id'], 'project_id'))
    if args.get('type'):
        query = query.filter(Holiday.type == choice(args['type'], HOLIDAY_TYPES, 'type'))
    year = parse_int(args.get('year'), 'year', minimum=1, maximum=9999)
    month = parse_int(args.get('month'), 'month', minimum=1, maximum=12)
    if year and month:
        query = _overlapping(query, date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1]))
    elif year:
        query = _overlapping(query, date(year, 1, 1), date(year, 12, 31))
    return query.order_by(Holiday.date.asc(), Holiday.start_time.asc(), Holiday.id.asc())

def _apply_fields(holiday, data):
    if 'title' in data:
        require_fields(data, 'title')
        holiday.title = data['title'].strip()
    if 'description' in data:
        holiday.description = clean(data['description'])
    if 'date' in data:
        require_fields(data, 'date')
        holiday.date = parse_date(data['date'], 'date')
    if 'end_date' in data:
        holiday.end_date = parse_date(data['end_date'], 'end_date')
    if 'type' in data:
        holiday.type = choice(data['type'], HOLIDAY_TYPES, 'type')
    if 'is_all_day' in data:
        holiday.is_all_day = parse_bool(data['is_all_day'], True)
    if 'start_time' in data:
        holiday.start_time = parse_time(data['start_time'], 'start_time')
    if 'end_time' in data:
        holiday.end_time = parse_time(data['end_time'], 'end_time')
    if 'user_id' in data:
        uid = parse_int(data['user_id'], 'user_id')
        holiday.user_id = get_or_404(User, uid, 'user').id if uid else None
    check_range(holiday.date, holiday.end_date, 'date', 'end_date')
    if holiday.start_time and holiday.end_time and holiday.end_time < holiday.start_time:
        return 'end_time must not precede start_time'
    return None

@holidays_bp.route('', methods=['GET'])
@login_required
def list_holidays():
    return {'holidays': [h.to_dict() for h in _filtered_query().all()]}

@holidays_bp.route('', methods=['POST'])
@login_required
def create_holiday():
    data = json_body()
    if not data.get('date') and data.get('start_date'):
        data['date'] = data['start_date']
    require_fields(data, 'project_id', 'title', 'date')
    project = get_project(data['project_id'])
    holiday = Holiday(project_id=project.id, is_all_day=True, type='COMPANY_HOLIDAY')
    error = _apply_fields(holiday, data)
    if error:
        return {'error': error}, 400
    db.session.add(holiday)
    db.session.commit()
    return {'holiday': holiday.to_dict()}, 201

@holidays_bp.route('/<int:holiday_id>', methods=['GET'])
@login_required
def get_holiday(holiday_id):
    return {'holiday': get_or_404(Holiday, holiday_id, 'holiday').to_dict()}

@holidays_bp.route('/<int:holiday_id>', methods=['PATCH'])
@login_required
def update_holiday(holiday_id):
    holiday = get_or_404(Holiday, holiday_id, 'holiday')
    error = _apply_fields(holiday, json_body())
    if error:
        db.session.rollback()
        return {'error': error}, 400
    db.session.commit()
    return {'holiday': holiday.to_dict()}

@holidays_bp.route('/<int:holiday_id>', methods=['DELETE'])
@login_required
def delete_holiday(holiday_id):
    holiday = get_or_404(Holiday, holiday_id, 'holiday')
    db.session.delete(holiday)
    db.session.commit()
    return {'status': 'deleted'}

@holidays_bp.route('/today')
@login_required
def today_events():
    today = date.today()
    query = _overlapping(Holiday.query, today, today)
    if request.args.get('project_id'):
        query = query.filter(Holiday.project_id == parse_int(request.args['project_id'], 'project_id'))
    if request.args.get('user_id'):
        uid = parse_int(request.args['user_id'], 'user_id')
        query = query.filter(db.or_(Holiday.user_id == uid, Holiday.user_id.is_(None)))
    events = query.order_by(Holiday.is_all_day.desc(), Holiday.start_time.asc(), Holiday.id.asc()).all()
    return {'date': today.isoformat(), 'holidays': [h.to_dict() for h in events]}

@holidays_bp.route('/types')
@login_required
def holiday_types():
    return {'types': [{'type': t, **TYPE_STYLES[t]} for t in HOLIDAY_TYPES]}

@holidays_bp.route('/calendar')
@login_required
def calendar_view():
    view = (request.args.get('view') or 'month').lower()
    if view not in ('month', 'week'):
        return {'error': "view must be 'month' or 'week'"}, 400
    today = date.today()
    if view == 'week':
        anchor = parse_date(request.args.get('date'), 'date') or today
        first = anchor - timedelta(days=(anchor.weekday() + 1) % 7)
        weeks = [[first + timedelta(days=i) for i in range(7)]]
        month = None
    else:
        year = parse_int(request.args.get('year'), 'year', today.year, 1, 9999)
        month = parse_int(request.args.get('month'), 'month', today.month, 1, 12)
        weeks = _calendar.monthdatescalendar(year, month)
    first, last = weeks[0][0], weeks[-1][-1]
    query = _overlapping(Holiday.query, first, last)
    if request.args.get('project_id'):
        query = query.filter(Holiday.project_id == parse_int(request.args['project_id'], 'project_id'))
    if request.args.get('type'):
        query = query.filter(Holiday.type == choice(request.args['type'], HOLIDAY_TYPES, 'type'))
    events = [h.to_dict() for h in query.order_by(Holiday.date.asc(), Holiday.id.asc()).all()]
    grid = []
    for week in weeks:
        row = []
        for d in week:
            iso = d.isoformat()
            row.append({
                'date': iso, 'day': d.day, 'is_today': d == today, 'is_weekend': d.weekday() >= 5,
                'in_month': month is None or d.month == month,
                'events': [e for e in events if e['date'] <= iso <= (e['end_date'] or e['date'])],
            })
        grid.append(row)
    return {'view': view, 'start': first.isoformat(), 'end': last.isoformat(), 'weeks': grid}

@holidays_bp.route('/export.ics')
@login_required
def export_ics():
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//WBS Master//Schedule//EN"]
    stamp = utcnow().strftime('%Y%m%dT%H%M%SZ')
    for h in _filtered_query().all():
        title = f"{TYPE_STYLES[h.type]['label']}: {h.title}".replace('\n', ' ')
        lines.extend(["BEGIN:VEVENT", f"UID:holiday-{h.id}@wbsmaster", f"DTSTAMP:{stamp}"])
        if h.is_all_day or not h.start_time:
            # DTEND is exclusive for all-day events
            end = (h.end_date or h.date) + timedelta(days=1)
            lines.extend([f"DTSTART;VALUE=DATE:{h.date.strftime('%Y%m%d')}",
                          f"DTEND;VALUE=DATE:{end.strftime('%Y%m%d')}"])
        else:
            end_day = h.end_date or h.date
            lines.extend([f"DTSTART:{h.date.strftime('%Y%m%d')}T{h.start_time.replace(':', '')}00",
                          f"DTEND:{end_day.strftime('%Y%m%d')}T{(h.end_time or h.start_time).replace(':', '')}00"])
        lines.append(f"SUMMARY:{title}")
        if h.description:
            lines.append("DESCRIPTION:" + h.description.replace('\n', '\\n'))
        lines.append("END:VEVENT")
    lines.append('END:VCALENDAR')
    bio = io.BytesIO('\r\n'.join(lines).encode('utf-8'))
    return send_file(bio, mimetype='text/calendar', as_attachment=True, download_name='schedule.ics')
