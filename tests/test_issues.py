from datetime import date, timedelta


def _create(client, project_id, title, **extra):
    return client.post('/api/issues', json={'project_id': project_id, 'title': title, **extra})

def test_codes_increment_from_highest(auth_client, project_id):
    first = _create(auth_client, project_id, 'One').get_json()['issue']
    second = _create(auth_client, project_id, 'Two').get_json()['issue']
    assert (first['code'], second['code']) == ('ISS-001', 'ISS-002')
    auth_client.delete(f"/api/issues/{first['id']}")
    assert _create(auth_client, project_id, 'Three').get_json()['issue']['code'] == 'ISS-003'

def test_defaults_and_reporter(auth_client, project_id):
    issue = _create(auth_client, project_id, 'Crash').get_json()['issue']
    assert (issue['status'], issue['priority'], issue['category']) == ('OPEN', 'MEDIUM', 'BUG')
    assert issue['reporter']['name'] == 'Admin'
    assert _create(auth_client, project_id, 'Bad', priority='URGENT').status_code == 400
    assert _create(auth_client, project_id, 'Bad', assignee_id=999).status_code == 404

def test_list_order_delayed_then_priority(auth_client, project_id):
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    _create(auth_client, project_id, 'High later', priority='HIGH', due_date=tomorrow)
    _create(auth_client, project_id, 'Critical', priority='CRITICAL')
    _create(auth_client, project_id, 'Late low', priority='LOW', due_date=yesterday)
    issues = auth_client.get(f'/api/issues?project_id={project_id}').get_json()['issues']
    assert [i['title'] for i in issues] == ['Late low', 'Critical', 'High later']
    assert issues[0]['is_delayed'] is True

def test_unknown_filter_values_are_ignored(auth_client, project_id):
    _create(auth_client, project_id, 'A', category='FEATURE')
    _create(auth_client, project_id, 'B')
    assert len(auth_client.get('/api/issues?status=WHATEVER').get_json()['issues']) == 2
    features = auth_client.get('/api/issues?category=feature').get_json()['issues']
    assert [i['title'] for i in features] == ['A']

def test_resolved_date_follows_status(auth_client, project_id):
    iid = _create(auth_client, project_id, 'Crash').get_json()['issue']['id']
    body = auth_client.patch(f'/api/issues/{iid}', json={'status': 'RESOLVED'}).get_json()['issue']
    assert body['resolved_date'] == date.today().isoformat()
    body = auth_client.patch(f'/api/issues/{iid}', json={'status': 'OPEN'}).get_json()['issue']
    assert body['resolved_date'] is None

def test_resolving_clears_delay(auth_client, project_id):
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    iid = _create(auth_client, project_id, 'Late', due_date=yesterday).get_json()['issue']['id']
    body = auth_client.patch(f'/api/issues/{iid}', json={'status': 'CLOSED'}).get_json()['issue']
    assert body['is_delayed'] is False

def test_stats(auth_client, project_id):
    _create(auth_client, project_id, 'A')
    _create(auth_client, project_id, 'B', status='IN_PROGRESS')
    _create(auth_client, project_id, 'C', status='RESOLVED', category='FEATURE')
    _create(auth_client, project_id, 'D', status='CLOSED')
    stats = auth_client.get(f'/api/issues/stats?project_id={project_id}').get_json()
    assert stats['totals'] == {'total': 4, 'open': 1, 'in_progress': 1, 'resolved': 2, 'closed': 1,
                               'unresolved': 2}
    assert stats['categories'][0] == {'category': 'BUG', 'label': 'Bug', 'resolved': 1, 'unresolved': 2,
                                      'total': 3}
    # Without a project the scope is every project the user belongs to
    assert auth_client.get('/api/issues/stats').get_json()['totals']['total'] == 4
