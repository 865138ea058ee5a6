from datetime import date
from flask import Blueprint, request, send_file
from flask_login import login_required, current_user
from wbsmaster import excel
from wbsmaster.helpers import (json_body, require_fields, clean, parse_date, choice, get_or_404,
                               get_project, paginate, notify_team, parse_int)
from wbsmaster.imports import next_sequence, uploaded_rows, import_records
from wbsmaster.models import db, FieldIssue, FIELD_ISSUE_STATUSES

field_issues_bp = Blueprint('field_issues', __name__, url_prefix='/api/field-issues')

CODE_FORMAT = 'IS%04d'
TEXT_FIELDS = ('category', 'description', 'issuer', 'requirement_code', 'assignee',
               'proposed_solution', 'final_solution', 'remarks')
DATE_FIELDS = ('registered_date', 'target_date', 'completed_date')
DONE_STATUSES = ('RESOLVED', 'CLOSED')
IMPORT_SHEET = '리스트'


def _filtered_query():
    query = FieldIssue.query
    args = request.args
    if args.get('project_id'):
        query = query.filter(FieldIssue.project_id == parse_int(args['project_id'], 'project_id'))
    if args.get('business_unit'):
        query = query.filter(FieldIssue.business_unit == args['business_unit'])
    if args.get('status'):
        query = query.filter(FieldIssue.status == choice(args['status'], FIELD_ISSUE_STATUSES, 'status'))
    search = args.get('search', '').strip()
    if search:
        like = f"%{search}%"
        query = query.filter(db.or_(FieldIssue.code.ilike(like), FieldIssue.title.ilike(like),
                                    FieldIssue.description.ilike(like), FieldIssue.issuer.ilike(like),
                                    FieldIssue.assignee.ilike(like)))
    return query.order_by(FieldIssue.sequence.asc(), FieldIssue.created_at.desc())

def _stamp_completion(issue):
    if issue.status in DONE_STATUSES and issue.completed_date is None:
        issue.completed_date = date.today()

@field_issues_bp.route('', methods=['GET'])
@login_required
def list_field_issues():
    return {'field_issues': paginate(_filtered_query())}

@field_issues_bp.route('', methods=['POST'])
@login_required
def create_field_issue():
    data = json_body()
    require_fields(data, 'project_id', 'business_unit', 'title')
    project = get_project(data['project_id'])
    sequence = next_sequence(FieldIssue, project.id)
    code = clean(data.get('code')) or CODE_FORMAT % sequence
    if FieldIssue.query.filter_by(project_id=project.id, code=code).first():
        return {'error': f'Code {code} already exists in this project'}, 409
    issue = FieldIssue(project_id=project.id, sequence=sequence, code=code,
                       business_unit=data['business_unit'].strip(), title=data['title'].strip(),
                       status=choice(data.get('status'), FIELD_ISSUE_STATUSES, 'status', 'OPEN'),
                       **{f: clean(data.get(f)) for f in TEXT_FIELDS},
                       **{f: parse_date(data.get(f), f) for f in DATE_FIELDS})
    _stamp_completion(issue)
    db.session.add(issue)
    db.session.flush()
    notify_team(project.id, current_user.id, 'FIELD_ISSUE', f'New field issue {issue.code}', issue.title,
                f'/dashboard/field-issues?id={issue.id}', issue.id)
    db.session.commit()
    return {'field_issue': issue.to_dict()}, 201

@field_issues_bp.route('/<int:issue_id>', methods=['GET'])
@login_required
def get_field_issue(issue_id):
    return {'field_issue': get_or_404(FieldIssue, issue_id, 'field issue').to_dict()}

@field_issues_bp.route('/<int:issue_id>', methods=['PATCH'])
@login_required
def update_field_issue(issue_id):
    issue = get_or_404(FieldIssue, issue_id, 'field issue')
    data = json_body()
    for field in ('business_unit', 'title'):
        if field in data:
            require_fields(data, field)
            setattr(issue, field, data[field].strip())
    for field in TEXT_FIELDS:
        if field in data:
            setattr(issue, field, clean(data[field]))
    for field in DATE_FIELDS:
        if field in data:
            setattr(issue, field, parse_date(data[field], field))
    if 'status' in data:
        issue.status = choice(data['status'], FIELD_ISSUE_STATUSES, 'status')
    _stamp_completion(issue)
    db.session.commit()
    return {'field_issue': issue.to_dict()}

@field_issues_bp.route('/<int:issue_id>', methods=['DELETE'])
@login_required
def delete_field_issue(issue_id):
    issue = get_or_404(FieldIssue, issue_id, 'field issue')
    db.session.delete(issue)
    db.session.commit()
    return {'status': 'deleted'}

@field_issues_bp.route('/import', methods=['POST'])
@login_required
def import_field_issues():
    project, clear_existing, rows = uploaded_rows(sheet_name=IMPORT_SHEET)
    stats = import_records(FieldIssue, project, rows, excel.parse_field_issue_row, CODE_FORMAT, clear_existing)
    return {'stats': stats}

@field_issues_bp.route('/export')
@login_required
def export_field_issues():
    rows = [(i.code, i.business_unit, i.category, i.title, i.description, i.registered_date, i.issuer,
             i.requirement_code, i.assignee, i.status, i.target_date, i.completed_date,
             i.proposed_solution, i.final_solution, i.remarks)
            for i in _filtered_query().all()]
    bio = excel.build_workbook('Field issues', excel.FIELD_ISSUE_HEADERS, rows,
                               widths={'Title': 40, 'Description': 60})
    return send_file(bio, mimetype=excel.XLSX_MIMETYPE, as_attachment=True, download_name='field_issues.xlsx')
