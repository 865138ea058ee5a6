from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin

db = SQLAlchemy()

USER_ROLES = ('ADMIN', 'MANAGER', 'MEMBER')
PROJECT_STATUSES = ('PLANNING', 'ACTIVE', 'ON_HOLD', 'COMPLETED', 'CANCELLED')
TEAM_ROLES = ('OWNER', 'MANAGER', 'MEMBER')
APPLY_STATUSES = ('REVIEWING', 'APPROVED', 'REJECTED', 'IN_DEVELOPMENT', 'APPLIED', 'HOLD')
FIELD_ISSUE_STATUSES = ('OPEN', 'IN_PROGRESS', 'RESOLVED', 'WONT_FIX', 'CLOSED')
ISSUE_STATUSES = ('OPEN', 'IN_PROGRESS', 'RESOLVED', 'CLOSED')
ISSUE_PRIORITIES = ('CRITICAL', 'HIGH', 'MEDIUM', 'LOW')
ISSUE_CATEGORIES = ('BUG', 'IMPROVEMENT', 'QUESTION', 'FEATURE', 'DOCUMENTATION', 'OTHER')
HOLIDAY_TYPES = ('COMPANY_HOLIDAY', 'TEAM_OFFSITE', 'PERSONAL_LEAVE', 'PERSONAL_SCHEDULE',
                 'MEETING', 'DEADLINE', 'OTHER')
WBS_STATUSES = ('PENDING', 'IN_PROGRESS', 'HOLDING', 'COMPLETED', 'CANCELLED')
FEEDBACK_RATINGS = ('POSITIVE', 'NEGATIVE', 'NEUTRAL')


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)

def _iso(value):
    return value.isoformat() if value is not None else None


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class User(UserMixin, TimestampMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(120))
    avatar = db.Column(db.String(512))
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), default='MEMBER', nullable=False)
    last_seen = db.Column(db.DateTime, default=utcnow)
    projects = db.relationship('Project', backref='owner', lazy=True)

    @property
    def is_admin(self):
        return self.role == 'ADMIN'

    def to_dict(self):
        return {'id': self.id, 'email': self.email, 'name': self.name, 'avatar': self.avatar,
                'role': self.role, 'created_at': _iso(self.created_at)}

    def summary(self):
        return {'id': self.id, 'name': self.name or self.email, 'avatar': self.avatar}


class Project(TimestampMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), default='PLANNING', nullable=False)
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    progress = db.Column(db.Integer, default=0, nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    # Owned records go with the project
    team_members = db.relationship('TeamMember', backref='project', lazy=True, cascade='all, delete-orphan')
    customer_requirements = db.relationship('CustomerRequirement', backref='project', lazy=True, cascade='all, delete-orphan')
    field_issues = db.relationship('FieldIssue', backref='project', lazy=True, cascade='all, delete-orphan')
    issues = db.relationship('Issue', backref='project', lazy=True, cascade='all, delete-orphan')
    holidays = db.relationship('Holiday', backref='project', lazy=True, cascade='all, delete-orphan')
    wbs_items = db.relationship('WbsItem', backref='project', lazy=True, cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id, 'name': self.name, 'description': self.description, 'status': self.status,
            'start_date': _iso(self.start_date), 'end_date': _iso(self.end_date), 'progress': self.progress,
            'owner_id': self.owner_id, 'owner': self.owner.summary() if self.owner else None,
            'member_count': len(self.team_members),
            'created_at': _iso(self.created_at), 'updated_at': _iso(self.updated_at),
        }

    def summary(self):
        return {'id': self.id, 'name': self.name}


class TeamMember(TimestampMixin, db.Model):
    __table_args__ = (db.UniqueConstraint('project_id', 'user_id', name='uq_team_member_project_user'),)
    id = db.Column(db.Integer, primary_key=True)
    role = db.Column(db.String(20), default='MEMBER', nullable=False)
    joined_at = db.Column(db.DateTime, default=utcnow)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    user = db.relationship('User', lazy='joined')

    def to_dict(self):
        return {'id': self.id, 'role': self.role, 'joined_at': _iso(self.joined_at),
                'project_id': self.project_id, 'user_id': self.user_id,
                'user': self.user.to_dict() if self.user else None}


class CustomerRequirement(TimestampMixin, db.Model):
    __table_args__ = (db.UniqueConstraint('project_id', 'code', name='uq_customer_requirement_code'),)
    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id'), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)
    code = db.Column(db.String(40), nullable=False)
    business_unit = db.Column(db.String(40), nullable=False)
    category = db.Column(db.String(80))
    function_name = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    request_date = db.Column(db.Date)
    requester = db.Column(db.String(120))
    solution = db.Column(db.Text)
    apply_status = db.Column(db.String(20), default='REVIEWING', nullable=False)
    remarks = db.Column(db.Text)
    to_be_code = db.Column(db.String(80))

    def to_dict(self):
        return {
            'id': self.id, 'project_id': self.project_id, 'project': self.project.summary() if self.project else None,
            'sequence': self.sequence, 'code': self.code, 'business_unit': self.business_unit,
            'category': self.category, 'function_name': self.function_name, 'content': self.content,
            'request_date': _iso(self.request_date), 'requester': self.requester, 'solution': self.solution,
            'apply_status': self.apply_status, 'remarks': self.remarks, 'to_be_code': self.to_be_code,
            'created_at': _iso(self.created_at), 'updated_at': _iso(self.updated_at),
        }


class FieldIssue(TimestampMixin, db.Model):
    __table_args__ = (db.UniqueConstraint('project_id', 'code', name='uq_field_issue_code'),)
    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id'), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)
    code = db.Column(db.String(40), nullable=False)
    business_unit = db.Column(db.String(40), nullable=False)
    category = db.Column(db.String(80))
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text)
    registered_date = db.Column(db.Date)
    issuer = db.Column(db.String(120))
    requirement_code = db.Column(db.String(40))
    assignee = db.Column(db.String(120))
    status = db.Column(db.String(20), default='OPEN', nullable=False)
    target_date = db.Column(db.Date)
    completed_date = db.Column(db.Date)
    proposed_solution = db.Column(db.Text)
    final_solution = db.Column(db.Text)
    remarks = db.Column(db.Text)

    def to_dict(self):
        return {
            'id': self.id, 'project_id': self.project_id, 'project': self.project.summary() if self.project else None,
            'sequence': self.sequence, 'code': self.code, 'business_unit': self.business_unit,
            'category': self.category, 'title': self.title, 'description': self.description,
            'registered_date': _iso(self.registered_date), 'issuer': self.issuer,
            'requirement_code': self.requirement_code, 'assignee': self.assignee, 'status': self.status,
            'target_date': _iso(self.target_date), 'completed_date': _iso(self.completed_date),
            'proposed_solution': self.proposed_solution, 'final_solution': self.final_solution,
            'remarks': self.remarks, 'created_at': _iso(self.created_at), 'updated_at': _iso(self.updated_at),
        }


class Issue(TimestampMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id'), nullable=False, index=True)
    code = db.Column(db.String(20), nullable=False)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), default='OPEN', nullable=False)
    priority = db.Column(db.String(20), default='MEDIUM', nullable=False)
    category = db.Column(db.String(20), default='BUG', nullable=False)
    due_date = db.Column(db.Date)
    resolved_date = db.Column(db.Date)
    is_delayed = db.Column(db.Boolean, default=False, nullable=False)
    reporter_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    assignee_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    reporter = db.relationship('User', foreign_keys=[reporter_id])
    assignee = db.relationship('User', foreign_keys=[assignee_id])

    def to_dict(self):
        return {
            'id': self.id, 'project_id': self.project_id, 'project': self.project.summary() if self.project else None,
            'code': self.code, 'title': self.title, 'description': self.description, 'status': self.status,
            'priority': self.priority, 'category': self.category, 'due_date': _iso(self.due_date),
            'resolved_date': _iso(self.resolved_date), 'is_delayed': self.is_delayed,
            'reporter': self.reporter.summary() if self.reporter else None,
            'assignee': self.assignee.summary() if self.assignee else None,
            'created_at': _iso(self.created_at), 'updated_at': _iso(self.updated_at),
        }


class Holiday(TimestampMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    date = db.Column(db.Date, nullable=False, index=True)
    end_date = db.Column(db.Date)
    type = db.Column(db.String(30), nullable=False)
    is_all_day = db.Column(db.Boolean, default=True, nullable=False)
    start_time = db.Column(db.String(5))
    end_time = db.Column(db.String(5))
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    user = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id, 'project_id': self.project_id, 'project': self.project.summary() if self.project else None,
            'title': self.title, 'description': self.description, 'date': _iso(self.date),
            'end_date': _iso(self.end_date), 'type': self.type, 'is_all_day': self.is_all_day,
            'start_time': self.start_time, 'end_time': self.end_time, 'user_id': self.user_id,
            'user': self.user.summary() if self.user else None,
            'created_at': _iso(self.created_at), 'updated_at': _iso(self.updated_at),
        }


# WBS items may be assigned to many users
wbs_assignee = db.Table(
    'wbs_assignee',
    db.Column('wbs_item_id', db.Integer, db.ForeignKey('wbs_item.id'), primary_key=True),
    db.Column('user_id', db.Integer, db.ForeignKey('user.id'), primary_key=True)
)

class WbsItem(TimestampMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id'), nullable=False, index=True)
    parent_id = db.Column(db.Integer, db.ForeignKey('wbs_item.id'), index=True)
    code = db.Column(db.String(40), nullable=False)
    name = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text)
    level = db.Column(db.Integer, nullable=False)  # 1..4
    sort_order = db.Column(db.Integer, default=0, nullable=False)
    status = db.Column(db.String(20), default='PENDING', nullable=False)
    progress = db.Column(db.Integer, default=0, nullable=False)
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    weight = db.Column(db.Integer, default=1, nullable=False)
    deliverable_name = db.Column(db.String(300))
    deliverable_link = db.Column(db.String(1024))
    children = db.relationship('WbsItem', backref=db.backref('parent', remote_side=[id]),
                               lazy=True, cascade='all, delete-orphan', order_by='WbsItem.sort_order')
    assignees = db.relationship('User', secondary=wbs_assignee, lazy='subquery',
                                backref=db.backref('wbs_items', lazy='dynamic'))

    def to_dict(self, with_children=False):
        data = {
            'id': self.id, 'project_id': self.project_id, 'parent_id': self.parent_id, 'code': self.code,
            'name': self.name, 'description': self.description, 'level': f'LEVEL{self.level}',
            'level_number': self.level, 'order': self.sort_order, 'status': self.status,
            'progress': self.progress, 'start_date': _iso(self.start_date), 'end_date': _iso(self.end_date),
            'weight': self.weight, 'deliverable_name': self.deliverable_name,
            'deliverable_link': self.deliverable_link,
            'assignees': [u.summary() for u in self.assignees],
            'has_children': len(self.children) > 0,
            'created_at': _iso(self.created_at), 'updated_at': _iso(self.updated_at),
        }
        if with_children:
            data['children'] = [c.to_dict() for c in self.children]
        return data


class ChatMessage(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id', ondelete='SET NULL'))
    role = db.Column(db.String(20), nullable=False)  # user|assistant
    content = db.Column(db.Text, nullable=False)
    sql_query = db.Column(db.Text)
    chart_type = db.Column(db.String(20))
    chart_data = db.Column(db.JSON)
    user_query = db.Column(db.Text)
    processing_time_ms = db.Column(db.Integer)
    feedback_rating = db.Column(db.String(20))
    feedback_comment = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id, 'user_id': self.user_id, 'project_id': self.project_id, 'role': self.role,
            'content': self.content, 'sql_query': self.sql_query, 'chart_type': self.chart_type,
            'chart_data': self.chart_data, 'user_query': self.user_query,
            'processing_time_ms': self.processing_time_ms, 'feedback_rating': self.feedback_rating,
            'feedback_comment': self.feedback_comment, 'created_at': _iso(self.created_at),
        }


class AiSetting(TimestampMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), unique=True, nullable=False)
    provider = db.Column(db.String(40), default='openai', nullable=False)
    api_key = db.Column(db.String(512))
    model = db.Column(db.String(120))
    base_url = db.Column(db.String(512))
    sql_system_prompt = db.Column(db.Text)
    analysis_system_prompt = db.Column(db.Text)

    def to_dict(self):
        masked = None
        if self.api_key:
            masked = ('*' * 8) + self.api_key[-4:]
        return {'provider': self.provider, 'api_key': masked, 'has_api_key': bool(self.api_key),
                'model': self.model, 'base_url': self.base_url,
                'sql_system_prompt': self.sql_system_prompt,
                'analysis_system_prompt': self.analysis_system_prompt}


class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    type = db.Column(db.String(40), nullable=False)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text)
    link = db.Column(db.String(300))
    related_id = db.Column(db.Integer)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id', ondelete='CASCADE'))
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {'id': self.id, 'type': self.type, 'title': self.title, 'message': self.message,
                'link': self.link, 'related_id': self.related_id, 'project_id': self.project_id,
                'is_read': self.is_read, 'created_at': _iso(self.created_at)}
