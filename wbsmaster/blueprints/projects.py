import logging
from datetime import date
from flask import Blueprint, request
from flask_login import login_required, current_user
from wbsmaster import scheduling
from wbsmaster.blueprints.wbs import load_tree, company_holidays
from wbsmaster.helpers import (json_body, require_fields, clean, parse_date, parse_int, choice,
                               check_range, get_or_404, get_project)
from wbsmaster.models import (db, Project, TeamMember, User, CustomerRequirement, FieldIssue, Issue, WbsItem,
                              Notification, ChatMessage, PROJECT_STATUSES, TEAM_ROLES)

logger = logging.getLogger(__name__)

projects_bp = Blueprint('projects', __name__, url_prefix='/api/projects')


@projects_bp.route('', methods=['GET'])
@login_required
def list_projects():
    query = Project.query
    status = request.args.get('status')
    if status:
        query = query.filter(Project.status == choice(status, PROJECT_STATUSES, 'status'))
    q = request.args.get('q', '').strip()
    if q:
        like = f"%{q}%"
        query = query.filter(db.or_(Project.name.ilike(like), Project.description.ilike(like)))
    projects = query.order_by(Project.created_at.desc(), Project.id.desc()).all()
    return {'projects': [p.to_dict() for p in projects]}

@projects_bp.route('', methods=['POST'])
@login_required
def create_project():
    data = json_body()
    require_fields(data, 'name')
    start = parse_date(data.get('start_date'), 'start_date')
    end = parse_date(data.get('end_date'), 'end_date')
    check_range(start, end)
    proj = Project(name=data['name'].strip(), description=clean(data.get('description')),
                   status=choice(data.get('status'), PROJECT_STATUSES, 'status', 'PLANNING'),
                   start_date=start, end_date=end,
                   progress=parse_int(data.get('progress'), 'progress', 0, 0, 100),
                   owner_id=current_user.id)
    db.session.add(proj)
    db.session.flush()
    db.session.add(TeamMember(project_id=proj.id, user_id=current_user.id, role='OWNER'))
    db.session.commit()
    logger.info('project %s created by %s', proj.id, current_user.email)
    return {'project': proj.to_dict()}, 201

@projects_bp.route('/<int:project_id>', methods=['GET'])
@login_required
def get_project_detail(project_id):
    proj = get_or_404(Project, project_id, 'project')
    data = proj.to_dict()
    data['members'] = [m.to_dict() for m in proj.team_members]
    return {'project': data}

@projects_bp.route('/<int:project_id>', methods=['PATCH'])
@login_required
def update_project(project_id):
    proj = get_or_404(Project, project_id, 'project')
    data = json_body()
    if 'name' in data:
        require_fields(data, 'name')
        proj.name = data['name'].strip()
    if 'description' in data:
        proj.description = clean(data['description'])
    if 'status' in data:
        proj.status = choice(data['status'], PROJECT_STATUSES, 'status')
    if 'progress' in data:
        proj.progress = parse_int(data['progress'], 'progress', 0, 0, 100)
    if 'start_date' in data:
        proj.start_date = parse_date(data['start_date'], 'start_date')
    if 'end_date' in data:
        proj.end_date = parse_date(data['end_date'], 'end_date')
    check_range(proj.start_date, proj.end_date)
    db.session.commit()
    return {'project': proj.to_dict()}

@projects_bp.route('/<int:project_id>', methods=['DELETE'])
@login_required
def delete_project(project_id):
    proj = get_or_404(Project, project_id, 'project')
    _detach_project(proj)
    db.session.delete(proj)
    db.session.commit()
    logger.info('project %s deleted by %s', project_id, current_user.email)
    return {'status': 'deleted'}

def _detach_project(proj):
    """Drop notifications about ``proj`` and unlink chat history that mentions it."""
    Notification.query.filter_by(project_id=proj.id).delete(synchronize_session=False)
    ChatMessage.query.filter_by(project_id=proj.id).update({'project_id': None}, synchronize_session=False)

@projects_bp.route('/<int:project_id>/overview')
@login_required
def project_overview(project_id):
    proj = get_project(project_id)
    tree = load_tree(proj.id)
    return {
        'project': proj.to_dict(),
        'counts': {
            'customer_requirements': CustomerRequirement.query.filter_by(project_id=proj.id).count(),
            'field_issues': FieldIssue.query.filter_by(project_id=proj.id).count(),
            'issues': Issue.query.filter_by(project_id=proj.id).count(),
            'wbs_items': WbsItem.query.filter_by(project_id=proj.id).count(),
        },
        'wbs_stats': scheduling.wbs_stats(tree),
        'schedule': scheduling.project_schedule(proj.start_date, proj.end_date,
                                                company_holidays(proj.id), date.today()),
    }


# -------------------- Members --------------------
@projects_bp.route('/<int:project_id>/members', methods=['GET'])
@login_required
def list_members(project_id):
    proj = get_or_404(Project, project_id, 'project')
    members = (TeamMember.query.filter_by(project_id=proj.id)
               .order_by(TeamMember.joined_at.asc(), TeamMember.id.asc()).all())
    return {'members': [m.to_dict() for m in members]}

@projects_bp.route('/<int:project_id>/members', methods=['POST'])
@login_required
def add_member(project_id):
    proj = get_or_404(Project, project_id, 'project')
    data = json_body()
    require_fields(data, 'user_id')
    user = get_or_404(User, parse_int(data['user_id'], 'user_id'), 'user')
    if TeamMember.query.filter_by(project_id=proj.id, user_id=user.id).first():
        return {'error': 'User is already a member of this project'}, 409
    member = TeamMember(project_id=proj.id, user_id=user.id,
                        role=choice(data.get('role'), TEAM_ROLES, 'role', 'MEMBER'))
    db.session.add(member)
    db.session.commit()
    return {'member': member.to_dict()}, 201

@projects_bp.route('/<int:project_id>/members/<int:member_id>', methods=['PATCH'])
@login_required
def update_member(project_id, member_id):
    member = get_or_404(TeamMember, member_id, 'member')
    if member.project_id != project_id:
        return {'error': 'member not found'}, 404
    member.role = choice(json_body().get('role'), TEAM_ROLES, 'role', member.role)
    db.session.commit()
    return {'member': member.to_dict()}

@projects_bp.route('/<int:project_id>/members/<int:member_id>', methods=['DELETE'])
@login_required
def remove_member(project_id, member_id):
    member = get_or_404(TeamMember, member_id, 'member')
    if member.project_id != project_id:
        return {'error': 'member not found'}, 404
    db.session.delete(member)
    db.session.commit()
    return {'status': 'deleted'}
