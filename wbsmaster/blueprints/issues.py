import re
from datetime import date
from flask import Blueprint, request
from flask_login import login_required, current_user
from wbsmaster.helpers import (json_body, require_fields, clean, parse_date, parse_int, choice, get_or_404,
                               get_project, member_project_ids)
from wbsmaster.models import db, Issue, User, ISSUE_STATUSES, ISSUE_PRIORITIES, ISSUE_CATEGORIES

issues_bp = Blueprint('issues', __name__, url_prefix='/api/issues')

CODE_RE = re.compile(r'^ISS-(\d+)$')
RESOLVED_STATUSES = ('RESOLVED', 'CLOSED')
CATEGORY_LABELS = {
    'BUG': 'Bug',
    'IMPROVEMENT': 'Improvement',
    'QUESTION': 'Question',
    'FEATURE': 'New feature',
    'DOCUMENTATION': 'Documentation',
    'OTHER': 'Other',
}
PRIORITY_RANK = db.case({p: i for i, p in enumerate(ISSUE_PRIORITIES)}, value=Issue.priority,
                        else_=len(ISSUE_PRIORITIES))


def next_code(project_id):
    highest = 0
    for (code,) in db.session.query(Issue.code).filter(Issue.project_id == project_id):
        m = CODE_RE.match(code or '')
        if m:
            highest = max(highest, int(m.group(1)))
    return f'ISS-{highest + 1:03d}'

def _refresh_delay(issue):
    issue.is_delayed = bool(issue.due_date and issue.due_date < date.today()
                            and issue.status not in RESOLVED_STATUSES)

def _user_ref(value, field):
    uid = parse_int(value, field)
    if uid is None:
        return None
    return get_or_404(User, uid, 'user').id

@issues_bp.route('', methods=['GET'])
@login_required
def list_issues():
    query = Issue.query
    args = request.args
    if args.get('project_id'):
        query = query.filter(Issue.project_id == parse_int(args['project_id'], 'project_id'))
    # Unknown enum values are ignored rather than rejected
    for field, allowed in (('status', ISSUE_STATUSES), ('priority', ISSUE_PRIORITIES),
                           ('category', ISSUE_CATEGORIES)):
        value = (args.get(field) or '').upper()
        if value in allowed:
            query = query.filter(getattr(Issue, field) == value)
    issues = query.order_by(Issue.is_delayed.desc(), PRIORITY_RANK, Issue.due_date.is_(None),
                            Issue.due_date.asc(), Issue.created_at.desc(), Issue.id.desc()).all()
    return {'issues': [i.to_dict() for i in issues]}

@issues_bp.route('', methods=['POST'])
@login_required
def create_issue():
    data = json_body()
    require_fields(data, 'project_id', 'title')
    project = get_project(data['project_id'])
    issue = Issue(project_id=project.id, code=next_code(project.id), title=data['title'].strip(),
                  description=clean(data.get('description')),
                  status=choice(data.get('status'), ISSUE_STATUSES, 'status', 'OPEN'),
                  priority=choice(data.get('priority'), ISSUE_PRIORITIES, 'priority', 'MEDIUM'),
                  category=choice(data.get('category'), ISSUE_CATEGORIES, 'category', 'BUG'),
                  due_date=parse_date(data.get('due_date'), 'due_date'),
                  reporter_id=current_user.id,
                  assignee_id=_user_ref(data.get('assignee_id'), 'assignee_id'))
    if issue.status in RESOLVED_STATUSES:
        issue.resolved_date = date.today()
    _refresh_delay(issue)
    db.session.add(issue)
    db.session.commit()
    return {'issue': issue.to_dict()}, 201

@issues_bp.route('/<int:issue_id>', methods=['GET'])
@login_required
def get_issue(issue_id):
    return {'issue': get_or_404(Issue, issue_id, 'issue').to_dict()}

@issues_bp.route('/<int:issue_id>', methods=['PATCH'])
@login_required
def update_issue(issue_id):
    issue = get_or_404(Issue, issue_id, 'issue')
    data = json_body()
    if 'title' in data:
        require_fields(data, 'title')
        issue.title = data['title'].strip()
    if 'description' in data:
        issue.description = clean(data['description'])
    if 'priority' in data:
        issue.priority = choice(data['priority'], ISSUE_PRIORITIES, 'priority')
    if 'category' in data:
        issue.category = choice(data['category'], ISSUE_CATEGORIES, 'category')
    if 'due_date' in data:
        issue.due_date = parse_date(data['due_date'], 'due_date')
    if 'reporter_id' in data:
        issue.reporter_id = _user_ref(data['reporter_id'], 'reporter_id')
    if 'assignee_id' in data:
        issue.assignee_id = _user_ref(data['assignee_id'], 'assignee_id')
    if 'resolved_date' in data:
        issue.resolved_date = parse_date(data['resolved_date'], 'resolved_date')
    if 'status' in data:
        issue.status = choice(data['status'], ISSUE_STATUSES, 'status')
        if issue.status in RESOLVED_STATUSES:
            if issue.resolved_date is None:
                issue.resolved_date = date.today()
        else:
            issue.resolved_date = None
    _refresh_delay(issue)
    db.session.commit()
    return {'issue': issue.to_dict()}

@issues_bp.route('/<int:issue_id>', methods=['DELETE'])
@login_required
def delete_issue(issue_id):
    issue = get_or_404(Issue, issue_id, 'issue')
    db.session.delete(issue)
    db.session.commit()
    return {'status': 'deleted'}

@issues_bp.route('/stats')
@login_required
def issue_stats():
    if request.args.get('project_id'):
        scope = [get_project(request.args['project_id']).id]
    else:
        scope = member_project_ids(current_user.id)
    statuses = db.session.query(Issue.status, Issue.category).filter(Issue.project_id.in_(scope)).all()
    totals = {'total': len(statuses), 'open': 0, 'in_progress': 0, 'resolved': 0, 'closed': 0,
              'unresolved': 0}
    categories = {}
    for status, category in statuses:
        totals[status.lower()] += 1
        done = status in RESOLVED_STATUSES
        bucket = categories.setdefault(category, {'resolved': 0, 'unresolved': 0})
        bucket['resolved' if done else 'unresolved'] += 1
    # resolved counts both RESOLVED and CLOSED
    totals['resolved'] += totals['closed']
    totals['unresolved'] = totals['open'] + totals['in_progress']
    category_list = [{'category': c, 'label': CATEGORY_LABELS.get(c, c), 'resolved': v['resolved'],
                      'unresolved': v['unresolved'], 'total': v['resolved'] + v['unresolved']}
                     for c, v in categories.items()]
    category_list.sort(key=lambda c: c['total'], reverse=True)
    return {'totals': totals, 'categories': category_list}
