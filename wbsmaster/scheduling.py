"""WBS tree and Gantt date arithmetic.

Everything here works on plain dicts shaped like ``WbsItem.to_dict()``
(``children`` lists, ISO date strings or ``date`` objects) so the same
helpers serve the API, the Excel export and the tests.
"""
import math
from datetime import date, datetime, timedelta

TERMINAL_STATUSES = ('COMPLETED', 'CANCELLED')
DRAG_MODES = ('move', 'resize-start', 'resize-end')
WEEKDAY_NAMES = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')

BAR_COLORS = {
    'DELAYED': 'bg-rose-500',
    'COMPLETED': 'bg-success',
    'IN_PROGRESS': 'bg-primary',
    'HOLDING': 'bg-warning',
}
DEFAULT_BAR_COLOR = 'bg-gray-400'

LEVEL_NAMES = {1: 'Major category', 2: 'Middle category', 3: 'Minor category', 4: 'Unit task'}
ZOOM_LEVELS = (20, 30, 40, 60, 80)
DEFAULT_CELL_WIDTH = 40
ROW_HEIGHT = 40

STATUS_LABELS = {
    'PENDING': 'Pending',
    'IN_PROGRESS': 'In progress',
    'HOLDING': 'On hold',
    'COMPLETED': 'Completed',
    'CANCELLED': 'Cancelled',
    'DELAYED': 'Delayed',
}


class ScheduleError(ValueError):
    pass


def as_date(value):
    """Coerce a date, datetime or ISO string (``YYYY-MM-DD[...]``) to a date. None passes through."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()
    except ValueError:
        raise ScheduleError(f'invalid date: {value}')

def _today(today=None):
    return as_date(today) or date.today()

def round_half_up(value, digits=0):
    """Round half up (2.5 -> 3, -2.5 -> -2)."""
    factor = 10 ** digits
    result = math.floor(value * factor + 0.5) / factor
    return int(result) if digits == 0 else result


# -------------------- Status --------------------
def is_delayed(end_date, status, today=None):
    end = as_date(end_date)
    if end is None or status in TERMINAL_STATUSES:
        return False
    return end < _today(today)

def delay_days(end_date, status, today=None):
    if not is_delayed(end_date, status, today):
        return 0
    return (_today(today) - as_date(end_date)).days

def display_status(status, end_date, today=None):
    return 'DELAYED' if is_delayed(end_date, status, today) else status

def bar_color(status, delayed=False):
    if delayed:
        return BAR_COLORS['DELAYED']
    return BAR_COLORS.get(status, DEFAULT_BAR_COLOR)


# -------------------- Tree --------------------
def build_tree(items):
    """Nest a flat list of item dicts by ``parent_id``; siblings sorted by order then code."""
    nodes = {}
    for item in items:
        node = dict(item)
        node['children'] = []
        nodes[node['id']] = node
    roots = []
    for node in nodes.values():
        parent = nodes.get(node.get('parent_id'))
        if parent is None:
            roots.append(node)
        else:
            parent['children'].append(node)
    key = lambda n: (n.get('order') or 0, n.get('code') or '')
    for node in nodes.values():
        node['children'].sort(key=key)
    roots.sort(key=key)
    return roots

def collect_ids(items):
    ids = []
    stack = list(reversed(items))
    while stack:
        item = stack.pop()
        ids.append(item['id'])
        stack.extend(reversed(item.get('children') or []))
    return ids

def flatten(items, expanded_ids=None):
    """Pre-order rows of the tree, descending only into expanded items.

    ``expanded_ids=None`` means everything is expanded.
    """
    rows = []
    def walk(nodes):
        for node in nodes:
            rows.append(node)
            children = node.get('children') or []
            if children and (expanded_ids is None or node['id'] in expanded_ids):
                walk(children)
    walk(items)
    return rows

def filter_by_assignee(items, assignee_id):
    """Keep items assigned to ``assignee_id`` plus the ancestor path of every match."""
    result = []
    for item in items:
        children = filter_by_assignee(item.get('children') or [], assignee_id)
        assigned = any(a['id'] == assignee_id for a in item.get('assignees') or [])
        if assigned or children:
            node = dict(item)
            node['children'] = children
            result.append(node)
    return result

def parent_dates(item):
    """(start, end) of an item: its own dates when it has no children, otherwise
    min child start and max child end, computed recursively. Either may be None."""
    children = item.get('children') or []
    if not children:
        return as_date(item.get('start_date')), as_date(item.get('end_date'))
    starts, ends = [], []
    for child in children:
        s, e = parent_dates(child)
        if s:
            starts.append(s)
        if e:
            ends.append(e)
    return (min(starts) if starts else None), (max(ends) if ends else None)

def apply_computed_dates(items):
    """Copy of the tree where every parent carries its aggregated dates.
    A parent keeps its own date when no descendant has one."""
    out = []
    for item in items:
        node = dict(item)
        children = apply_computed_dates(item.get('children') or [])
        node['children'] = children
        if children:
            start, end = parent_dates(node)
            if start:
                node['start_date'] = start.isoformat()
            if end:
                node['end_date'] = end.isoformat()
        out.append(node)
    return out


# -------------------- Progress --------------------
def rollup_progress(children):
    """Weighted average progress of ``children`` (dicts or objects with progress/weight)
    and the status derived from it."""
    total_weight = 0
    weighted = 0
    for child in children:
        progress = _attr(child, 'progress') or 0
        weight = _attr(child, 'weight')
        if weight is None:
            weight = 1
        weighted += progress * weight
        total_weight += weight
    if total_weight == 0:
        return 0, 'PENDING'
    progress = round_half_up(weighted / total_weight)
    if progress >= 100:
        return 100, 'COMPLETED'
    if progress > 0:
        return progress, 'IN_PROGRESS'
    return progress, 'PENDING'

def _attr(obj, name):
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


# -------------------- Stats --------------------
def counted_items(items):
    """Items that carry work for statistics: assigned items at any level, and
    unassigned items only when they are leaves."""
    for item in flatten(items):
        if item.get('assignees') or not item.get('children'):
            yield item

def wbs_stats(items, today=None):
    """Status counts over the counted items with weighted overall progress."""
    stats = {'total': 0, 'completed': 0, 'in_progress': 0, 'pending': 0, 'delayed': 0}
    weighted = 0
    total_weight = 0
    for item in counted_items(items):
        weight = item.get('weight')
        if weight is None:
            weight = 1
        stats['total'] += 1
        weighted += (item.get('progress') or 0) * weight
        total_weight += weight
        status = item.get('status')
        if status == 'COMPLETED':
            stats['completed'] += 1
        elif status == 'IN_PROGRESS':
            stats['in_progress'] += 1
        else:
            stats['pending'] += 1
        if is_delayed(item.get('end_date'), status, today):
            stats['delayed'] += 1
    stats['overall_progress'] = round_half_up(weighted / total_weight, 1) if total_weight else 0
    return stats

def assignee_stats(items):
    """Per-assignee workload, plus an ``unassigned`` bucket of leaf items."""
    buckets = {}
    unassigned = _empty_bucket(None, 'Unassigned')
    for item in counted_items(items):
        assignees = item.get('assignees') or []
        targets = []
        for a in assignees:
            if a['id'] not in buckets:
                buckets[a['id']] = _empty_bucket(a['id'], a.get('name'), a.get('avatar'))
            targets.append(buckets[a['id']])
        if not assignees:
            targets.append(unassigned)
        for bucket in targets:
            bucket['total'] += 1
            bucket['_progress_sum'] += item.get('progress') or 0
            status = item.get('status')
            if status == 'COMPLETED':
                bucket['completed'] += 1
            elif status == 'IN_PROGRESS':
                bucket['in_progress'] += 1
            else:
                bucket['pending'] += 1
    result = [_finish_bucket(b) for b in buckets.values()]
    result.sort(key=lambda b: b['avg_progress'], reverse=True)
    return {'assignees': result, 'unassigned': _finish_bucket(unassigned)}

def _empty_bucket(user_id, name, avatar=None):
    return {'user_id': user_id, 'name': name, 'avatar': avatar, 'total': 0, 'completed': 0,
            'in_progress': 0, 'pending': 0, '_progress_sum': 0}

def _finish_bucket(bucket):
    total = bucket['total']
    bucket['avg_progress'] = round_half_up(bucket.pop('_progress_sum') / total) if total else 0
    bucket['completion_rate'] = round_half_up(bucket['completed'] * 100 / total) if total else 0
    return bucket

def work_days(start_date, end_date):
    """Inclusive day count, minimum 1. None when a date is missing."""
    start, end = as_date(start_date), as_date(end_date)
    if start is None or end is None:
        return None
    return max(1, (end - start).days + 1)

def project_schedule(start_date, end_date, holidays=(), today=None):
    """Calendar statistics for a project window.

    ``holidays`` is an iterable of dates treated as non-working when they fall
    on a weekday. Returns None when either bound is missing.
    """
    start, end = as_date(start_date), as_date(end_date)
    if start is None or end is None:
        return None
    today = _today(today)
    holiday_dates = {as_date(h) for h in holidays}
    total = (end - start).days + 1
    weekend = 0
    company_holidays = 0
    elapsed_workable = 0
    current = start
    while current <= end:
        if current.weekday() >= 5:
            weekend += 1
        elif current in holiday_dates:
            company_holidays += 1
        elif current <= today:
            elapsed_workable += 1
        current += timedelta(days=1)
    workable = total - weekend - company_holidays
    if today < start:
        elapsed, remaining = 0, total
    elif today >= end:
        elapsed, remaining = total, 0
    else:
        elapsed = (today - start).days + 1
        remaining = (end - today).days
    return {
        'total_days': total,
        'weekend_days': weekend,
        'holiday_days': company_holidays,
        'workable_days': workable,
        'elapsed_days': elapsed,
        'remaining_days': remaining,
        'elapsed_workable_days': elapsed_workable,
        'remaining_workable_days': workable - elapsed_workable,
        'expected_progress': round_half_up(elapsed_workable * 100 / workable) if workable else 0,
    }

def planned_vs_actual(tree, today=None):
    """Planned and actual progress from the level-1 items.

    Each root contributes its weight (a percentage) times the share of its own
    period that has elapsed (planned) or times the mean progress of its leaves
    (actual).
    """
    today = _today(today)
    planned = 0.0
    actual = 0.0
    for root in tree:
        weight = root.get('weight') or 0
        leaves = [n for n in flatten([root]) if not n.get('children')]
        if leaves:
            actual += weight * (sum(n.get('progress') or 0 for n in leaves) / len(leaves)) / 100
        start, end = as_date(root.get('start_date')), as_date(root.get('end_date'))
        if start and end:
            if today < start:
                period = 0
            elif today >= end:
                period = 100
            else:
                span = (end - start).days
                period = (today - start).days * 100 / span if span > 0 else 0
            planned += period * weight / 100
    planned = round_half_up(planned, 1)
    actual = round_half_up(actual, 1)
    return {
        'planned_progress': planned,
        'actual_progress': actual,
        'delay_rate': round_half_up(planned - actual, 1),
        'achievement_rate': round_half_up(actual * 100 / planned, 1) if planned else None,
    }


# -------------------- Drag --------------------
def pixels_to_days(delta_x, cell_width):
    if not cell_width or cell_width <= 0:
        raise ScheduleError('cell_width must be positive')
    try:
        return round_half_up(delta_x / cell_width)
    except (OverflowError, ValueError):
        raise ScheduleError(f'invalid delta_x: {delta_x}')

def shift_dates(mode, start_date, end_date, delta_days, today=None):
    """New (start, end) after dragging a bar by ``delta_days``.

    Missing dates default to today. Resizing never lets the bar collapse:
    start stays at least one day before end.
    """
    if mode not in DRAG_MODES:
        raise ScheduleError(f'invalid mode: {mode}')
    start = as_date(start_date) or _today(today)
    end = as_date(end_date) or _today(today)
    try:
        return _shift(mode, start, end, timedelta(days=int(delta_days)))
    except OverflowError:
        raise ScheduleError(f'delta_days out of range: {delta_days}')

def _shift(mode, start, end, delta):
    if mode == 'move':
        return start + delta, end + delta
    if mode == 'resize-start':
        new_start = start + delta
        if new_start >= end:
            new_start = end - timedelta(days=1)
        return new_start, end
    new_end = end + delta
    if new_end <= start:
        new_end = start + timedelta(days=1)
    return start, new_end


# -------------------- Gantt --------------------
def chart_range(project_start=None, project_end=None, today=None, padding=7):
    """(chart start, number of days) covering the project, padded on both sides."""
    start, end = as_date(project_start), as_date(project_end)
    if start is None or end is None:
        today = _today(today)
        start, end = today - timedelta(days=7), today + timedelta(days=60)
    start -= timedelta(days=padding)
    end += timedelta(days=padding)
    return start, (end - start).days + 1

def date_header(chart_start, days, today=None):
    today = _today(today)
    start = as_date(chart_start)
    header = []
    for offset in range(days):
        d = start + timedelta(days=offset)
        header.append({
            'date': d.isoformat(), 'day': d.day, 'month': d.month,
            'weekday': WEEKDAY_NAMES[d.weekday()], 'is_weekend': d.weekday() >= 5,
            'is_today': d == today,
        })
    return header

def bar_position(start_date, end_date, chart_start, cell_width):
    start, end = as_date(start_date), as_date(end_date)
    if start is None or end is None:
        return None
    offset = (start - as_date(chart_start)).days
    duration = (end - start).days + 1
    return {'left': offset * cell_width, 'width': duration * cell_width}

def today_line(chart_start, cell_width, today=None):
    diff = (_today(today) - as_date(chart_start)).days
    if diff < 0:
        return None
    return diff * cell_width + cell_width / 2

def bar_vertical_position(row_index, row_height=ROW_HEIGHT):
    return {'top': row_index * row_height + 4, 'height': row_height - 8}
