from datetime import date
import pytest
from wbsmaster import scheduling

TODAY = date(2024, 3, 6)


def _node(id, code, order=0, parent_id=None, **extra):
    node = {'id': id, 'code': code, 'order': order, 'parent_id': parent_id, 'level_number': 1,
            'progress': 0, 'status': 'PENDING', 'weight': 1, 'assignees': [],
            'start_date': None, 'end_date': None}
    node.update(extra)
    return node

def test_delay_helpers():
    assert scheduling.is_delayed('2024-03-05', 'IN_PROGRESS', TODAY)
    assert not scheduling.is_delayed('2024-03-06', 'IN_PROGRESS', TODAY)
    assert not scheduling.is_delayed('2024-03-01', 'COMPLETED', TODAY)
    assert not scheduling.is_delayed(None, 'PENDING', TODAY)
    assert scheduling.delay_days('2024-03-01', 'PENDING', TODAY) == 5
    assert scheduling.display_status('PENDING', '2024-03-01', TODAY) == 'DELAYED'
    assert scheduling.bar_color('COMPLETED') == 'bg-success'
    assert scheduling.bar_color('COMPLETED', delayed=True) == 'bg-rose-500'
    assert scheduling.bar_color('CANCELLED') == scheduling.DEFAULT_BAR_COLOR

def test_as_date_rejects_garbage():
    with pytest.raises(scheduling.ScheduleError):
        scheduling.as_date('March 1st')

def test_build_tree_orders_siblings():
    items = [_node(3, '1.2', 1, parent_id=1), _node(2, '1.1', 0, parent_id=1), _node(1, '1'),
             _node(4, '2', 1)]
    tree = scheduling.build_tree(items)
    assert [n['id'] for n in tree] == [1, 4]
    assert [n['code'] for n in tree[0]['children']] == ['1.1', '1.2']
    assert scheduling.collect_ids(tree) == [1, 2, 3, 4]
    assert [n['id'] for n in scheduling.flatten(tree, expanded_ids=set())] == [1, 4]

def test_filter_by_assignee_keeps_ancestors():
    tree = scheduling.build_tree([
        _node(1, '1'), _node(2, '1.1', parent_id=1, assignees=[{'id': 7, 'name': 'Kim'}]),
        _node(3, '1.2', 1, parent_id=1), _node(4, '2', 1)])
    filtered = scheduling.filter_by_assignee(tree, 7)
    assert [n['id'] for n in scheduling.flatten(filtered)] == [1, 2]

def test_computed_parent_dates():
    tree = scheduling.build_tree([
        _node(1, '1', start_date='2024-01-01', end_date='2024-01-02'),
        _node(2, '1.1', parent_id=1, start_date='2024-03-04', end_date='2024-03-08'),
        _node(3, '1.2', 1, parent_id=1, start_date='2024-03-01', end_date='2024-03-05'),
        _node(4, '2', 1, start_date='2024-02-01', end_date='2024-02-02'),
        _node(5, '2.1', parent_id=4)])
    computed = scheduling.apply_computed_dates(tree)
    assert (computed[0]['start_date'], computed[0]['end_date']) == ('2024-03-01', '2024-03-08')
    # A parent keeps its own dates when no child has any
    assert (computed[1]['start_date'], computed[1]['end_date']) == ('2024-02-01', '2024-02-02')

def test_rollup_progress():
    assert scheduling.rollup_progress([{'progress': 50, 'weight': 1}, {'progress': 100, 'weight': 3}]) \
        == (88, 'IN_PROGRESS')
    assert scheduling.rollup_progress([{'progress': 100, 'weight': 2}, {'progress': 100}]) == (100, 'COMPLETED')
    assert scheduling.rollup_progress([{'progress': 0, 'weight': 1}]) == (0, 'PENDING')
    # Zero-weight children do not count
    assert scheduling.rollup_progress([{'progress': 100, 'weight': 0}, {'progress': 20, 'weight': 1}]) \
        == (20, 'IN_PROGRESS')
    assert scheduling.rollup_progress([]) == (0, 'PENDING')

KIM = {'id': 7, 'name': 'Kim', 'avatar': None}

def _grouped_tree():
    leaf_a = _node(3, '1.1', parent_id=1, level_number=2, progress=100, status='COMPLETED', end_date='2024-03-01')
    leaf_b = _node(4, '1.2', parent_id=1, level_number=2, progress=20, status='IN_PROGRESS', end_date='2024-03-01')
    group = _node(1, '1', progress=60, status='IN_PROGRESS', end_date='2024-03-10', assignees=[KIM],
                  children=[leaf_a, leaf_b])
    bare = _node(2, '2', progress=50, status='IN_PROGRESS',
                 children=[_node(5, '2.1', parent_id=2, level_number=2, end_date='2024-03-10')])
    return [group, bare]

def test_wbs_stats_counts_assigned_groups_and_unassigned_leaves():
    stats = scheduling.wbs_stats(_grouped_tree(), TODAY)
    assert stats == {'total': 4, 'completed': 1, 'in_progress': 2, 'pending': 1, 'delayed': 1,
                     'overall_progress': 45.0}

def test_assignee_stats_counts_assigned_groups():
    result = scheduling.assignee_stats(_grouped_tree())
    assert [(a['name'], a['total'], a['avg_progress']) for a in result['assignees']] == [('Kim', 1, 60)]
    unassigned = result['unassigned']
    assert (unassigned['total'], unassigned['completed'], unassigned['pending']) == (3, 1, 1)
    assert unassigned['avg_progress'] == 40
    assert unassigned['completion_rate'] == 33

def test_assignee_stats():
    lee = {'id': 8, 'name': 'Lee', 'avatar': None}
    items = [_node(1, '1', assignees=[KIM], progress=100, status='COMPLETED'),
             _node(2, '2', assignees=[KIM, lee], progress=50, status='IN_PROGRESS'),
             _node(3, '3')]
    result = scheduling.assignee_stats(items)
    assert [a['name'] for a in result['assignees']] == ['Kim', 'Lee']
    assert result['assignees'][0]['avg_progress'] == 75
    assert result['assignees'][0]['completion_rate'] == 50
    assert result['unassigned']['total'] == 1
    assert result['unassigned']['pending'] == 1

def test_averages_round_half_up():
    assert scheduling.round_half_up(2.5) == 3
    assert scheduling.round_half_up(0.5) == 1
    assert scheduling.round_half_up(-2.5) == -2
    assert scheduling.round_half_up(12.25, 1) == 12.3
    items = [_node(1, '1', assignees=[KIM], progress=2), _node(2, '2', assignees=[KIM], progress=3)]
    assert scheduling.assignee_stats(items)['assignees'][0]['avg_progress'] == 3

def test_work_days():
    assert scheduling.work_days('2024-03-01', '2024-03-01') == 1
    assert scheduling.work_days('2024-03-01', '2024-03-05') == 5
    assert scheduling.work_days(None, '2024-03-05') is None

def test_project_schedule():
    stats = scheduling.project_schedule('2024-03-04', '2024-03-10', [date(2024, 3, 6)], date(2024, 3, 5))
    assert stats == {
        'total_days': 7, 'weekend_days': 2, 'holiday_days': 1, 'workable_days': 4,
        'elapsed_days': 2, 'remaining_days': 5, 'elapsed_workable_days': 2,
        'remaining_workable_days': 2, 'expected_progress': 50,
    }
    # Holidays on a weekend are not double counted
    assert scheduling.project_schedule('2024-03-04', '2024-03-10', ['2024-03-09'], TODAY)['holiday_days'] == 0
    assert scheduling.project_schedule(None, '2024-03-10') is None

def test_project_schedule_before_and_after():
    before = scheduling.project_schedule('2024-03-04', '2024-03-08', (), date(2024, 3, 1))
    assert (before['elapsed_days'], before['remaining_days'], before['expected_progress']) == (0, 5, 0)
    after = scheduling.project_schedule('2024-03-04', '2024-03-08', (), date(2024, 4, 1))
    assert (after['elapsed_days'], after['remaining_days'], after['expected_progress']) == (5, 0, 100)

def test_planned_vs_actual():
    tree = scheduling.build_tree([
        _node(1, '1', weight=100, start_date='2024-03-01', end_date='2024-03-11'),
        _node(2, '1.1', parent_id=1, progress=20),
        _node(3, '1.2', 1, parent_id=1, progress=40)])
    result = scheduling.planned_vs_actual(tree, TODAY)
    assert result == {'planned_progress': 50.0, 'actual_progress': 30.0, 'delay_rate': 20.0,
                      'achievement_rate': 60.0}
    assert scheduling.planned_vs_actual([], TODAY)['achievement_rate'] is None

def test_pixels_to_days_rounds_half_up():
    assert scheduling.pixels_to_days(85, 40) == 2
    assert scheduling.pixels_to_days(60, 40) == 2
    assert scheduling.pixels_to_days(-60, 40) == -1
    assert scheduling.pixels_to_days(10, 40) == 0
    with pytest.raises(scheduling.ScheduleError):
        scheduling.pixels_to_days(10, 0)
    with pytest.raises(scheduling.ScheduleError):
        scheduling.pixels_to_days(float('inf'), 40)
    with pytest.raises(scheduling.ScheduleError):
        scheduling.pixels_to_days(float('nan'), 40)

def test_shift_dates():
    start, end = date(2024, 3, 1), date(2024, 3, 5)
    assert scheduling.shift_dates('move', start, end, 3) == (date(2024, 3, 4), date(2024, 3, 8))
    assert scheduling.shift_dates('resize-start', start, end, 2) == (date(2024, 3, 3), end)
    assert scheduling.shift_dates('resize-start', start, end, 10) == (date(2024, 3, 4), end)
    assert scheduling.shift_dates('resize-end', start, end, -4) == (start, date(2024, 3, 2))
    assert scheduling.shift_dates('move', None, None, 1, TODAY) == (date(2024, 3, 7), date(2024, 3, 7))
    with pytest.raises(scheduling.ScheduleError):
        scheduling.shift_dates('rotate', start, end, 1)
    with pytest.raises(scheduling.ScheduleError):
        scheduling.shift_dates('move', start, end, 10 ** 7)
    with pytest.raises(scheduling.ScheduleError):
        scheduling.shift_dates('resize-start', start, end, -10 ** 7)

def test_chart_geometry():
    start, days = scheduling.chart_range('2024-03-01', '2024-03-31')
    assert (start, days) == (date(2024, 2, 23), 45)
    fallback_start, fallback_days = scheduling.chart_range(today=TODAY)
    assert fallback_start == date(2024, 2, 21)
    assert fallback_days == 82
    header = scheduling.date_header(start, 3, TODAY)
    assert header[0] == {'date': '2024-02-23', 'day': 23, 'month': 2, 'weekday': 'Fri',
                         'is_weekend': False, 'is_today': False}
    assert scheduling.bar_position('2024-03-01', '2024-03-05', start, 40) == {'left': 280, 'width': 200}
    assert scheduling.bar_position(None, '2024-03-05', start, 40) is None
    assert scheduling.today_line(start, 40, TODAY) == 12 * 40 + 20
    assert scheduling.today_line(start, 40, date(2024, 1, 1)) is None
    assert scheduling.bar_vertical_position(0) == {'top': 4, 'height': 32}
