from datetime import date


def test_notifications_read_flow(login, auth_client, project_id, member):
    auth_client.post('/api/field-issues', json={'project_id': project_id, 'business_unit': 'Plant', 'title': 'A'})
    auth_client.post('/api/field-issues', json={'project_id': project_id, 'business_unit': 'Plant', 'title': 'B'})
    other = login('member@example.com', 'member1')
    data = other.get('/api/notifications?unread=true').get_json()
    assert data['unread_count'] == 2
    assert data['notifications'][0]['title'] == 'New field issue IS0002'
    first = data['notifications'][0]['id']
    assert other.patch(f'/api/notifications/{first}').get_json()['notification']['is_read'] is True
    assert len(other.get('/api/notifications?unread=true').get_json()['notifications']) == 1
    # Other users cannot touch it
    assert auth_client.patch(f'/api/notifications/{first}').status_code == 404
    assert other.post('/api/notifications/read-all').get_json()['updated'] == 1
    assert other.get('/api/notifications').get_json()['unread_count'] == 0

def test_today_stats(auth_client, project_id):
    auth_client.post('/api/customer-requirements', json={'project_id': project_id, 'business_unit': 'Sales',
                                                         'function_name': 'Login', 'content': 'SSO'})
    auth_client.post('/api/issues', json={'project_id': project_id, 'title': 'Crash'})
    auth_client.post('/api/issues', json={'project_id': project_id, 'title': 'Slow'})
    auth_client.post('/api/holidays', json={'project_id': project_id, 'title': 'Today off',
                                            'date': date.today().isoformat()})
    data = auth_client.get(f'/api/dashboard/today-stats?project_id={project_id}').get_json()
    assert data['stats'] == {'customer_requirements': 1, 'field_issues': 0, 'issues': 2, 'wbs_items': 0,
                             'events': 1}
    other = auth_client.post('/api/projects', json={'name': 'Other'}).get_json()['project']['id']
    assert auth_client.get(f'/api/dashboard/today-stats?project_id={other}').get_json()['stats']['issues'] == 0

def test_healthz(client):
    resp = client.get('/healthz')
    assert resp.status_code == 200
    assert resp.get_json() == {'status': 'ok'}

def test_unknown_route_is_json(client):
    resp = client.get('/api/nowhere')
    assert resp.status_code == 404
    assert 'error' in resp.get_json()
