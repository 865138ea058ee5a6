from wbsmaster.blueprints.auth import auth_bp
from wbsmaster.blueprints.admin import admin_bp
from wbsmaster.blueprints.projects import projects_bp
from wbsmaster.blueprints.requirements import requirements_bp
from wbsmaster.blueprints.field_issues import field_issues_bp
from wbsmaster.blueprints.issues import issues_bp
from wbsmaster.blueprints.wbs import wbs_bp
from wbsmaster.blueprints.holidays import holidays_bp
from wbsmaster.blueprints.chat import chat_bp
from wbsmaster.blueprints.notifications import notifications_bp
from wbsmaster.blueprints.dashboard import dashboard_bp
from wbsmaster.blueprints.utility import utility_bp

ALL_BLUEPRINTS = (
    auth_bp, admin_bp, projects_bp, requirements_bp, field_issues_bp, issues_bp,
    wbs_bp, holidays_bp, chat_bp, notifications_bp, dashboard_bp, utility_bp,
)
