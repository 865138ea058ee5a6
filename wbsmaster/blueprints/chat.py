import logging
import time
from flask import Blueprint, request, current_app, send_file
from flask_login import login_required, current_user
from wbsmaster import excel, llm
from wbsmaster.helpers import json_body, require_fields, clean, parse_int, choice, get_or_404, get_project
from wbsmaster.models import db, ChatMessage, AiSetting, FEEDBACK_RATINGS

logger = logging.getLogger(__name__)

chat_bp = Blueprint('chat', __name__, url_prefix='/api')

EXPORT_HEADERS = ['Time', 'Role', 'Message', 'SQL', 'Chart type', 'Rating', 'Feedback']


def _llm_client(setting):
    """Client for the current user, or None when no API key is configured."""
    api_key = (setting.api_key if setting else None) or current_app.config.get('OPENAI_API_KEY')
    if not api_key:
        return None
    model = (setting.model if setting else None) or current_app.config['LLM_MODEL']
    base_url = (setting.base_url if setting else None) or current_app.config.get('LLM_BASE_URL')
    factory = current_app.config.get('LLM_CLIENT_FACTORY') or llm.LlmClient
    return factory(api_key=api_key, model=model, base_url=base_url)

def _history_query():
    query = ChatMessage.query.filter(ChatMessage.user_id == current_user.id)
    if request.args.get('project_id'):
        query = query.filter(ChatMessage.project_id == parse_int(request.args['project_id'], 'project_id'))
    return query

@chat_bp.route('/chat', methods=['GET'])
@login_required
def history():
    limit = parse_int(request.args.get('limit'), 'limit', current_app.config['CHAT_HISTORY_LIMIT'], 1, 500)
    recent = _history_query().order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).limit(limit).all()
    return {'messages': [m.to_dict() for m in reversed(recent)]}

@chat_bp.route('/chat', methods=['POST'])
@login_required
def send_message():
    data = json_body()
    message = (data.get('message') or '').strip()
    if not message:
        return {'error': 'message is required'}, 400
    project_id = get_project(data['project_id']).id if data.get('project_id') else None
    setting = AiSetting.query.filter_by(user_id=current_user.id).first()
    client = _llm_client(setting)
    if client is None:
        return {'error': 'No LLM API key configured. Add one in AI settings.'}, 400
    user_msg = ChatMessage(user_id=current_user.id, project_id=project_id, role='user', content=message)
    db.session.add(user_msg)
    db.session.commit()
    started = time.monotonic()
    try:
        result = llm.process_message(client, message, project_id,
                                     setting.sql_system_prompt if setting else None,
                                     setting.analysis_system_prompt if setting else None)
    except RuntimeError as exc:
        logger.warning('LLM pipeline failed for user %s: %s', current_user.id, exc)
        result = {'content': f'The assistant is unavailable: {exc}', 'sql': None,
                  'chart_type': None, 'chart_data': None}
    elapsed = int((time.monotonic() - started) * 1000)
    logger.info('chat answer for user %s in %d ms (sql=%s)', current_user.id, elapsed, bool(result['sql']))
    reply = ChatMessage(user_id=current_user.id, project_id=project_id, role='assistant',
                        content=result['content'], sql_query=result['sql'], chart_type=result['chart_type'],
                        chart_data=result['chart_data'], user_query=message, processing_time_ms=elapsed)
    db.session.add(reply)
    db.session.commit()
    return {'user_message': user_msg.to_dict(), 'message': reply.to_dict()}, 201

@chat_bp.route('/chat', methods=['DELETE'])
@login_required
def clear_history():
    deleted = _history_query().delete(synchronize_session=False)
    db.session.commit()
    return {'status': 'deleted', 'deleted': deleted}

@chat_bp.route('/chat/feedback', methods=['POST'])
@login_required
def feedback():
    data = json_body()
    require_fields(data, 'message_id', 'rating')
    msg = get_or_404(ChatMessage, parse_int(data.get('message_id'), 'message_id'), 'message')
    if msg.user_id != current_user.id:
        return {'error': 'message not found'}, 404
    if msg.role != 'assistant':
        return {'error': 'only assistant messages can be rated'}, 400
    rating = choice(data['rating'], FEEDBACK_RATINGS, 'rating')
    msg.feedback_rating = rating
    msg.feedback_comment = clean(data.get('comment'))
    db.session.commit()
    return {'message': msg.to_dict()}

@chat_bp.route('/chat/export')
@login_required
def export_history():
    rows = [(m.created_at.strftime('%Y-%m-%d %H:%M:%S'), m.role, m.content, m.sql_query, m.chart_type,
             m.feedback_rating, m.feedback_comment)
            for m in _history_query().order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc()).all()]
    bio = excel.build_workbook('Chat history', EXPORT_HEADERS, rows, widths={'Message': 80, 'SQL': 50})
    return send_file(bio, mimetype=excel.XLSX_MIMETYPE, as_attachment=True, download_name='chat_history.xlsx')


# -------------------- AI settings --------------------
@chat_bp.route('/ai-settings', methods=['GET'])
@login_required
def get_ai_settings():
    setting = AiSetting.query.filter_by(user_id=current_user.id).first()
    if setting is None:
        return {'settings': {'provider': 'openai', 'api_key': None, 'has_api_key': False,
                             'model': current_app.config['LLM_MODEL'], 'base_url': None,
                             'sql_system_prompt': None, 'analysis_system_prompt': None}}
    return {'settings': setting.to_dict()}

@chat_bp.route('/ai-settings', methods=['PUT'])
@login_required
def put_ai_settings():
    data = json_body()
    setting = AiSetting.query.filter_by(user_id=current_user.id).first()
    if setting is None:
        setting = AiSetting(user_id=current_user.id)
        db.session.add(setting)
    setting.provider = clean(data.get('provider')) or setting.provider or 'openai'
    # A masked key echoed back by the client leaves the stored key untouched
    if 'api_key' in data and not str(data.get('api_key') or '').startswith('*'):
        setting.api_key = clean(data['api_key'])
    for field in ('model', 'base_url', 'sql_system_prompt', 'analysis_system_prompt'):
        if field in data:
            setattr(setting, field, clean(data[field]))
    db.session.commit()
    return {'settings': setting.to_dict()}
