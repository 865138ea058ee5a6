ADMIN_EMAIL = 'admin@example.com'
ADMIN_PASSWORD = 'secret1'


def test_login_and_me(client):
    resp = client.post('/api/auth/login', json={'email': ADMIN_EMAIL.upper(), 'password': ADMIN_PASSWORD})
    assert resp.status_code == 200
    assert resp.get_json()['user']['email'] == ADMIN_EMAIL
    me = client.get('/api/auth/me')
    assert me.status_code == 200
    assert me.get_json()['user']['role'] == 'ADMIN'

def test_login_accepts_form_data(client):
    resp = client.post('/api/auth/login', data={'email': ADMIN_EMAIL, 'password': ADMIN_PASSWORD})
    assert resp.status_code == 200

def test_unauthenticated_requests_get_json_401(client):
    resp = client.get('/api/projects')
    assert resp.status_code == 401
    assert resp.get_json() == {'error': 'Authentication required'}

def test_wrong_password_reports_remaining_attempts(client):
    resp = client.post('/api/auth/login', json={'email': ADMIN_EMAIL, 'password': 'nope'})
    assert resp.status_code == 401
    assert '4 attempts left' in resp.get_json()['error']

def test_lockout_after_repeated_failures(client):
    for _ in range(4):
        assert client.post('/api/auth/login', json={'email': ADMIN_EMAIL, 'password': 'x'}).status_code == 401
    resp = client.post('/api/auth/login', json={'email': ADMIN_EMAIL, 'password': 'x'})
    assert resp.status_code == 429
    # Locked even with the right password
    resp = client.post('/api/auth/login', json={'email': ADMIN_EMAIL, 'password': ADMIN_PASSWORD})
    assert resp.status_code == 429
    assert resp.get_json()['retry_after'] > 0

def test_login_requires_both_fields(client):
    assert client.post('/api/auth/login', json={'email': ADMIN_EMAIL}).status_code == 400

def test_register(client):
    resp = client.post('/api/auth/register', json={'email': 'new@example.com', 'password': 'abcdef'})
    assert resp.status_code == 201
    assert resp.get_json()['user']['name'] == 'new'
    assert resp.get_json()['user']['role'] == 'MEMBER'
    dup = client.post('/api/auth/register', json={'email': 'NEW@example.com', 'password': 'abcdef'})
    assert dup.status_code == 409
    short = client.post('/api/auth/register', json={'email': 'x@example.com', 'password': 'abc'})
    assert short.status_code == 400

def test_change_password(auth_client, app):
    bad = auth_client.post('/api/auth/change-password', json={
        'old_password': 'wrong', 'new_password': 'newpass', 'confirm_password': 'newpass'})
    assert bad.status_code == 400
    mismatch = auth_client.post('/api/auth/change-password', json={
        'old_password': ADMIN_PASSWORD, 'new_password': 'newpass', 'confirm_password': 'other1'})
    assert mismatch.status_code == 400
    ok = auth_client.post('/api/auth/change-password', json={
        'old_password': ADMIN_PASSWORD, 'new_password': 'newpass', 'confirm_password': 'newpass'})
    assert ok.status_code == 200
    other = app.test_client()
    assert other.post('/api/auth/login', json={'email': ADMIN_EMAIL, 'password': 'newpass'}).status_code == 200

def test_logout(auth_client):
    assert auth_client.post('/api/auth/logout').status_code == 200
    assert auth_client.get('/api/auth/me').status_code == 401
