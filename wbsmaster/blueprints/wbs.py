import logging
from datetime import date, timedelta
from flask import Blueprint, request, send_file
from flask_login import login_required, current_user
from wbsmaster import excel, scheduling
from wbsmaster.errors import ApiError
from wbsmaster.helpers import (json_body, require_fields, clean, parse_date, parse_int, parse_bool, choice,
                               check_range, get_or_404, get_project, member_project_ids)
from wbsmaster.models import db, WbsItem, User, Holiday, WBS_STATUSES

logger = logging.getLogger(__name__)

wbs_bp = Blueprint('wbs', __name__, url_prefix='/api/wbs')

MAX_LEVEL = 4
NON_WORKING_TYPES = ('COMPANY_HOLIDAY', 'TEAM_OFFSITE')
EXPORT_HEADERS = ['Code', 'Level', 'Name', 'Assignees', 'Status', 'Progress', 'Start date', 'End date',
                  'Work days', 'Weight', 'Deliverable', 'Deliverable link']


# -------------------- Loading --------------------
def load_items(project_id):
    items = (WbsItem.query.filter_by(project_id=project_id)
             .order_by(WbsItem.level.asc(), WbsItem.sort_order.asc(), WbsItem.code.asc()).all())
    return [i.to_dict() for i in items]

def load_tree(project_id):
    return scheduling.build_tree(load_items(project_id))

def company_holidays(project_id):
    """Every non-working date registered for the project, multi-day events expanded."""
    dates = []
    rows = Holiday.query.filter(Holiday.project_id == project_id, Holiday.type.in_(NON_WORKING_TYPES)).all()
    for h in rows:
        current = h.date
        while current <= (h.end_date or h.date):
            dates.append(current)
            current += timedelta(days=1)
    return dates

def parse_level(value):
    """Accept ``LEVEL3``, ``3`` or 3."""
    if value in (None, ''):
        raise ApiError('level is required', 400)
    text = str(value).strip().upper()
    if text.startswith('LEVEL'):
        text = text[5:]
    try:
        level = int(text)
    except ValueError:
        raise ApiError(f'invalid level: {value}', 400)
    if not 1 <= level <= MAX_LEVEL:
        raise ApiError(f'invalid level: {value}', 400)
    return level

def _siblings(project_id, parent_id):
    return WbsItem.query.filter_by(project_id=project_id, parent_id=parent_id)

def _users(ids):
    if ids is None:
        return None
    if not isinstance(ids, list):
        raise ApiError('assignee_ids must be a list', 400)
    users = []
    for raw in ids:
        users.append(get_or_404(User, parse_int(raw, 'assignee_ids'), 'user'))
    return users


# -------------------- Tree maintenance --------------------
def update_ancestors(parent):
    """Recompute progress and status of ``parent`` and every ancestor above it."""
    while parent is not None:
        if not parent.children:
            break
        parent.progress, parent.status = scheduling.rollup_progress(parent.children)
        parent = parent.parent

def _subtree_depth(item):
    if not item.children:
        return 1
    return 1 + max(_subtree_depth(c) for c in item.children)

def _rewrite_subtree(item):
    for idx, child in enumerate(sorted(item.children, key=lambda c: c.sort_order)):
        child.code = f'{item.code}.{idx + 1}'
        child.level = item.level + 1
        _rewrite_subtree(child)

def apply_update(item, data):
    """Shared single-item update used by PATCH and drag-to-reschedule."""
    if 'name' in data:
        require_fields(data, 'name')
        item.name = data['name'].strip()
    for field in ('description', 'deliverable_name', 'deliverable_link'):
        if field in data:
            setattr(item, field, clean(data[field]))
    if 'status' in data:
        item.status = choice(data['status'], WBS_STATUSES, 'status')
    if 'progress' in data:
        item.progress = parse_int(data['progress'], 'progress', 0, 0, 100)
    if 'weight' in data:
        item.weight = parse_int(data['weight'], 'weight', 1, 0)
    if 'order' in data:
        item.sort_order = parse_int(data['order'], 'order', item.sort_order, 0)
    if 'start_date' in data:
        item.start_date = parse_date(data['start_date'], 'start_date')
    if 'end_date' in data:
        item.end_date = parse_date(data['end_date'], 'end_date')
    check_range(item.start_date, item.end_date)
    users = _users(data.get('assignee_ids'))
    if users is not None:
        item.assignees = users
    update_ancestors(item.parent)


# -------------------- CRUD --------------------
@wbs_bp.route('', methods=['GET'])
@login_required
def list_wbs():
    args = request.args
    project = get_project(args.get('project_id'))
    items = load_items(project.id)
    if args.get('parent_id'):
        parent_id = parse_int(args['parent_id'], 'parent_id')
        children = [i for i in items if i['parent_id'] == parent_id]
        children.sort(key=lambda i: (i['order'], i['code']))
        return {'items': children}
    tree = scheduling.build_tree(items)
    if args.get('assignee_id'):
        tree = scheduling.filter_by_assignee(tree, parse_int(args['assignee_id'], 'assignee_id'))
    if parse_bool(args.get('computed')):
        tree = scheduling.apply_computed_dates(tree)
    if parse_bool(args.get('flat')):
        rows = scheduling.flatten(tree)
        rows.sort(key=lambda i: (i['level_number'], i['order'], i['code']))
        return {'items': [{k: v for k, v in r.items() if k != 'children'} for r in rows]}
    if 'expanded' in args:
        expanded = {parse_int(x, 'expanded') for x in args['expanded'].split(',') if x.strip()}
        rows = scheduling.flatten(tree, expanded)
        return {'items': [{k: v for k, v in r.items() if k != 'children'} for r in rows]}
    return {'items': tree}

@wbs_bp.route('', methods=['POST'])
@login_required
def create_wbs():
    data = json_body()
    require_fields(data, 'name', 'project_id')
    project = get_project(data['project_id'])
    level = parse_level(data.get('level'))
    parent = None
    if data.get('parent_id') not in (None, ''):
        parent = get_or_404(WbsItem, parse_int(data['parent_id'], 'parent_id'), 'parent item')
        if parent.project_id != project.id:
            return {'error': 'parent item belongs to another project'}, 400
        if level != parent.level + 1:
            return {'error': f'level must be {parent.level + 1} under a level {parent.level} parent'}, 400
    elif level != 1:
        return {'error': 'top-level items must be level 1'}, 400
    siblings = _siblings(project.id, parent.id if parent else None)
    count = siblings.count()
    max_order = siblings.with_entities(db.func.max(WbsItem.sort_order)).scalar()
    number = (max_order + 2) if max_order is not None else 1
    start = parse_date(data.get('start_date'), 'start_date')
    end = parse_date(data.get('end_date'), 'end_date')
    check_range(start, end)
    item = WbsItem(project_id=project.id, parent=parent, level=level, sort_order=count,
                   code=f'{parent.code}.{number}' if parent else str(number),
                   name=data['name'].strip(), description=clean(data.get('description')),
                   status=choice(data.get('status'), WBS_STATUSES, 'status', 'PENDING'),
                   progress=parse_int(data.get('progress'), 'progress', 0, 0, 100),
                   weight=parse_int(data.get('weight'), 'weight', 1, 0),
                   start_date=start, end_date=end,
                   deliverable_name=clean(data.get('deliverable_name')),
                   deliverable_link=clean(data.get('deliverable_link')))
    item.assignees = _users(data.get('assignee_ids')) or []
    db.session.add(item)
    update_ancestors(parent)
    db.session.commit()
    return {'item': item.to_dict()}, 201

@wbs_bp.route('/<int:item_id>', methods=['GET'])
@login_required
def get_wbs(item_id):
    item = get_or_404(WbsItem, item_id, 'wbs item')
    data = item.to_dict(with_children=True)
    data['parent'] = ({'id': item.parent.id, 'code': item.parent.code, 'name': item.parent.name}
                      if item.parent else None)
    return {'item': data}

@wbs_bp.route('/<int:item_id>', methods=['PATCH'])
@login_required
def update_wbs(item_id):
    item = get_or_404(WbsItem, item_id, 'wbs item')
    apply_update(item, json_body())
    db.session.commit()
    return {'item': item.to_dict()}

@wbs_bp.route('/<int:item_id>', methods=['DELETE'])
@login_required
def delete_wbs(item_id):
    item = get_or_404(WbsItem, item_id, 'wbs item')
    parent = item.parent
    removed = len(scheduling.collect_ids(_descendants(item)))
    db.session.delete(item)
    db.session.flush()
    if parent is not None:
        db.session.expire(parent, ['children'])
        update_ancestors(parent)
    db.session.commit()
    return {'status': 'deleted', 'children_deleted': removed}

def _descendants(item):
    return [{'id': c.id, 'children': _descendants(c)} for c in item.children]

@wbs_bp.route('/<int:item_id>/level', methods=['PATCH'])
@login_required
def change_level(item_id):
    item = get_or_404(WbsItem, item_id, 'wbs item')
    direction = (json_body().get('direction') or '').lower()
    if direction not in ('up', 'down'):
        return {'error': "direction must be 'up' or 'down'"}, 400
    old_parent = item.parent
    if direction == 'up':
        if item.level == 1 or old_parent is None:
            return {'error': 'A level 1 item cannot move up'}, 400
        new_parent = old_parent.parent
    else:
        if item.level == MAX_LEVEL:
            return {'error': f'A level {MAX_LEVEL} item cannot move down'}, 400
        new_parent = (_siblings(item.project_id, item.parent_id)
                      .filter(WbsItem.sort_order < item.sort_order, WbsItem.id != item.id)
                      .order_by(WbsItem.sort_order.desc(), WbsItem.id.desc()).first())
        if new_parent is None:
            return {'error': 'No previous sibling to move under'}, 400
        if item.level + _subtree_depth(item) > MAX_LEVEL:
            return {'error': f'Moving down would push descendants below level {MAX_LEVEL}'}, 400
    siblings = _siblings(item.project_id, new_parent.id if new_parent else None)
    count = siblings.count()
    max_order = siblings.with_entities(db.func.max(WbsItem.sort_order)).scalar()
    old_level = item.level
    item.parent = new_parent
    item.level = new_parent.level + 1 if new_parent else 1
    item.sort_order = (max_order + 1) if max_order is not None else 0
    item.code = f'{new_parent.code}.{count + 1}' if new_parent else str(count + 1)
    _rewrite_subtree(item)
    db.session.flush()
    if old_parent is not None:
        db.session.expire(old_parent, ['children'])
        update_ancestors(old_parent)
    update_ancestors(new_parent)
    db.session.commit()
    logger.info('wbs item %s moved from level %d to %d', item.id, old_level, item.level)
    return {'item': item.to_dict(), 'message': f'Level changed from {old_level} to {item.level}'}

@wbs_bp.route('/<int:item_id>/reschedule', methods=['POST'])
@login_required
def reschedule(item_id):
    item = get_or_404(WbsItem, item_id, 'wbs item')
    data = json_body()
    mode = data.get('mode') or 'move'
    if 'delta_days' in data:
        delta = parse_int(data['delta_days'], 'delta_days')
    elif 'delta_x' in data:
        cell_width = data.get('cell_width')
        if cell_width is None:
            cell_width = scheduling.DEFAULT_CELL_WIDTH
        try:
            delta = scheduling.pixels_to_days(float(data['delta_x']), float(cell_width))
        except (TypeError, ValueError) as exc:
            return {'error': f'invalid drag distance: {exc}'}, 400
    else:
        return {'error': 'delta_days or delta_x is required'}, 400
    start, end = scheduling.shift_dates(mode, item.start_date, item.end_date, delta)
    apply_update(item, {'start_date': start.isoformat(), 'end_date': end.isoformat()})
    db.session.commit()
    return {'item': item.to_dict(), 'delta_days': delta}

@wbs_bp.route('/bulk-assign', methods=['POST'])
@login_required
def bulk_assign():
    data = json_body()
    item_ids = data.get('item_ids')
    if not isinstance(item_ids, list) or not item_ids:
        return {'error': 'item_ids is required'}, 400
    users = _users(data.get('user_ids') or [])
    mode = (data.get('mode') or 'replace').lower()
    if mode not in ('replace', 'add'):
        return {'error': "mode must be 'replace' or 'add'"}, 400
    updated = []
    for raw in item_ids:
        item = get_or_404(WbsItem, parse_int(raw, 'item_ids'), 'wbs item')
        if mode == 'replace':
            item.assignees = list(users)
        else:
            current = {u.id for u in item.assignees}
            item.assignees = item.assignees + [u for u in users if u.id not in current]
        updated.append(item)
    db.session.commit()
    return {'updated': len(updated), 'items': [i.to_dict() for i in updated]}


# -------------------- Views --------------------
@wbs_bp.route('/gantt')
@login_required
def gantt():
    project = get_project(request.args.get('project_id'))
    try:
        cell_width = float(request.args.get('cell_width') or scheduling.DEFAULT_CELL_WIDTH)
    except ValueError:
        return {'error': 'invalid cell_width'}, 400
    if cell_width <= 0:
        return {'error': 'cell_width must be positive'}, 400
    today = date.today()
    tree = scheduling.apply_computed_dates(load_tree(project.id))
    expanded = None
    if request.args.get('expanded') is not None:
        expanded = {parse_int(x, 'expanded') for x in request.args['expanded'].split(',') if x.strip()}
    chart_start, days = scheduling.chart_range(project.start_date, project.end_date, today)
    rows = []
    for index, node in enumerate(scheduling.flatten(tree, expanded)):
        delayed = scheduling.is_delayed(node['end_date'], node['status'], today)
        rows.append({
            'id': node['id'], 'code': node['code'], 'name': node['name'], 'level_number': node['level_number'],
            'status': node['status'], 'display_status': 'DELAYED' if delayed else node['status'],
            'progress': node['progress'], 'start_date': node['start_date'], 'end_date': node['end_date'],
            'has_children': node['has_children'], 'is_delayed': delayed,
            'delay_days': scheduling.delay_days(node['end_date'], node['status'], today),
            'bar': scheduling.bar_position(node['start_date'], node['end_date'], chart_start, cell_width),
            'row': scheduling.bar_vertical_position(index),
            'color': scheduling.bar_color(node['status'], delayed),
        })
    return {
        'chart_start': chart_start.isoformat(), 'days': days, 'cell_width': cell_width,
        'dates': scheduling.date_header(chart_start, days, today),
        'today_line': scheduling.today_line(chart_start, cell_width, today),
        'rows': rows,
    }

@wbs_bp.route('/stats')
@login_required
def stats():
    if request.args.get('project_id'):
        scope = [get_project(request.args['project_id']).id]
    else:
        scope = member_project_ids(current_user.id)
    tree = []
    for pid in scope:
        tree.extend(load_tree(pid))
    result = scheduling.wbs_stats(tree)
    result.update(scheduling.assignee_stats(tree))
    result['project_count'] = len(scope)
    return result

@wbs_bp.route('/schedule-stats')
@login_required
def schedule_stats():
    project = get_project(request.args.get('project_id'))
    today = date.today()
    tree = scheduling.apply_computed_dates(load_tree(project.id))
    leaves = [n for n in scheduling.flatten(tree) if not n['children']]
    delayed = [{'id': n['id'], 'code': n['code'], 'name': n['name'], 'end_date': n['end_date'],
                'status': n['status'], 'delay_days': scheduling.delay_days(n['end_date'], n['status'], today)}
               for n in leaves if scheduling.is_delayed(n['end_date'], n['status'], today)]
    delayed.sort(key=lambda d: d['delay_days'], reverse=True)
    schedule = scheduling.project_schedule(project.start_date, project.end_date,
                                           company_holidays(project.id), today)
    return {
        'project': project.summary(),
        'schedule': schedule,
        'message': None if schedule else 'project start and end dates are not set',
        'wbs': {
            'total': len(leaves),
            'completed': sum(1 for n in leaves if n['status'] == 'COMPLETED'),
            'in_progress': sum(1 for n in leaves if n['status'] == 'IN_PROGRESS'),
            'delayed': len(delayed),
            **scheduling.planned_vs_actual(tree, today),
        },
        'delayed_items': delayed,
    }

@wbs_bp.route('/export')
@login_required
def export():
    project = get_project(request.args.get('project_id'))
    tree = scheduling.apply_computed_dates(load_tree(project.id))
    rows = []
    for n in scheduling.flatten(tree):
        status = scheduling.display_status(n['status'], n['end_date'])
        rows.append((n['code'], scheduling.LEVEL_NAMES[n['level_number']], n['name'],
                     ', '.join(a['name'] for a in n['assignees']),
                     scheduling.STATUS_LABELS.get(status, status), n['progress'],
                     n['start_date'], n['end_date'], scheduling.work_days(n['start_date'], n['end_date']),
                     n['weight'], n['deliverable_name'], n['deliverable_link']))
    bio = excel.build_workbook('WBS', EXPORT_HEADERS, rows, widths={'Name': 50, 'Assignees': 30})
    return send_file(bio, mimetype=excel.XLSX_MIMETYPE, as_attachment=True,
                     download_name=f'wbs_project_{project.id}.xlsx')
