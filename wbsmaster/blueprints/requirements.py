import logging
from flask import Blueprint, request, send_file
from flask_login import login_required, current_user
from wbsmaster import excel
from wbsmaster.helpers import (json_body, require_fields, clean, parse_date, choice, get_or_404,
                               get_project, paginate, notify_team, parse_int)
from wbsmaster.imports import next_sequence, uploaded_rows, import_records
from wbsmaster.models import db, CustomerRequirement, APPLY_STATUSES

logger = logging.getLogger(__name__)

requirements_bp = Blueprint('requirements', __name__, url_prefix='/api/customer-requirements')

CODE_FORMAT = 'RQIT_%05d'
TEXT_FIELDS = ('category', 'requester', 'solution', 'remarks', 'to_be_code')


def _filtered_query():
    query = CustomerRequirement.query
    args = request.args
    if args.get('project_id'):
        query = query.filter(CustomerRequirement.project_id == parse_int(args['project_id'], 'project_id'))
    if args.get('business_unit'):
        query = query.filter(CustomerRequirement.business_unit == args['business_unit'])
    if args.get('apply_status'):
        query = query.filter(CustomerRequirement.apply_status ==
                             choice(args['apply_status'], APPLY_STATUSES, 'apply_status'))
    search = args.get('search', '').strip()
    if search:
        like = f"%{search}%"
        query = query.filter(db.or_(CustomerRequirement.code.ilike(like),
                                    CustomerRequirement.function_name.ilike(like),
                                    CustomerRequirement.content.ilike(like),
                                    CustomerRequirement.requester.ilike(like)))
    return query.order_by(CustomerRequirement.sequence.asc(), CustomerRequirement.created_at.desc())

@requirements_bp.route('', methods=['GET'])
@login_required
def list_requirements():
    return {'customer_requirements': paginate(_filtered_query())}

@requirements_bp.route('', methods=['POST'])
@login_required
def create_requirement():
    data = json_body()
    require_fields(data, 'project_id', 'business_unit', 'function_name', 'content')
    project = get_project(data['project_id'])
    sequence = next_sequence(CustomerRequirement, project.id)
    code = clean(data.get('code')) or CODE_FORMAT % sequence
    if CustomerRequirement.query.filter_by(project_id=project.id, code=code).first():
        return {'error': f'Code {code} already exists in this project'}, 409
    req = CustomerRequirement(
        project_id=project.id, sequence=sequence, code=code,
        business_unit=data['business_unit'].strip(), function_name=data['function_name'].strip(),
        content=data['content'].strip(), request_date=parse_date(data.get('request_date'), 'request_date'),
        apply_status=choice(data.get('apply_status'), APPLY_STATUSES, 'apply_status', 'REVIEWING'),
        **{f: clean(data.get(f)) for f in TEXT_FIELDS})
    db.session.add(req)
    db.session.flush()
    notify_team(project.id, current_user.id, 'CUSTOMER_REQUIREMENT',
                f'New customer requirement {req.code}', req.function_name,
                f'/dashboard/requirements?id={req.id}', req.id)
    db.session.commit()
    return {'customer_requirement': req.to_dict()}, 201

@requirements_bp.route('/<int:req_id>', methods=['GET'])
@login_required
def get_requirement(req_id):
    return {'customer_requirement': get_or_404(CustomerRequirement, req_id, 'customer requirement').to_dict()}

@requirements_bp.route('/<int:req_id>', methods=['PATCH'])
@login_required
def update_requirement(req_id):
    req = get_or_404(CustomerRequirement, req_id, 'customer requirement')
    data = json_body()
    for field in ('business_unit', 'function_name', 'content'):
        if field in data:
            require_fields(data, field)
            setattr(req, field, data[field].strip())
    for field in TEXT_FIELDS:
        if field in data:
            setattr(req, field, clean(data[field]))
    if 'code' in data:
        code = clean(data['code'])
        if not code:
            return {'error': 'code is required'}, 400
        clash = CustomerRequirement.query.filter(CustomerRequirement.project_id == req.project_id,
                                                 CustomerRequirement.code == code,
                                                 CustomerRequirement.id != req.id).first()
        if clash:
            return {'error': f'Code {code} already exists in this project'}, 409
        req.code = code
    if 'request_date' in data:
        req.request_date = parse_date(data['request_date'], 'request_date')
    if 'apply_status' in data:
        req.apply_status = choice(data['apply_status'], APPLY_STATUSES, 'apply_status')
    db.session.commit()
    return {'customer_requirement': req.to_dict()}

@requirements_bp.route('/<int:req_id>', methods=['DELETE'])
@login_required
def delete_requirement(req_id):
    req = get_or_404(CustomerRequirement, req_id, 'customer requirement')
    db.session.delete(req)
    db.session.commit()
    return {'status': 'deleted'}

@requirements_bp.route('/stats')
@login_required
def requirement_stats():
    query = CustomerRequirement.query
    if request.args.get('project_id'):
        query = query.filter(CustomerRequirement.project_id == parse_int(request.args['project_id'], 'project_id'))
    by_status = {s: 0 for s in APPLY_STATUSES}
    by_unit = {}
    total = 0
    for status, unit in query.with_entities(CustomerRequirement.apply_status, CustomerRequirement.business_unit):
        total += 1
        by_status[status] = by_status.get(status, 0) + 1
        by_unit[unit] = by_unit.get(unit, 0) + 1
    return {'total': total, 'by_apply_status': by_status, 'by_business_unit': by_unit}

@requirements_bp.route('/import', methods=['POST'])
@login_required
def import_requirements():
    project, clear_existing, rows = uploaded_rows()
    stats = import_records(CustomerRequirement, project, rows, excel.parse_requirement_row,
                           CODE_FORMAT, clear_existing)
    return {'stats': stats}

@requirements_bp.route('/export')
@login_required
def export_requirements():
    rows = [(r.sequence, r.code, r.business_unit, r.category, r.function_name, r.content,
             r.request_date, r.requester, r.solution, r.apply_status, r.remarks)
            for r in _filtered_query().all()]
    bio = excel.build_workbook('Customer requirements', excel.REQUIREMENT_HEADERS, rows,
                               widths={'Requirement': 60, 'Solution': 40, 'Function': 30})
    return send_file(bio, mimetype=excel.XLSX_MIMETYPE, as_attachment=True,
                     download_name='customer_requirements.xlsx')
