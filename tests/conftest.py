import pytest
from werkzeug.security import generate_password_hash
from config import TestingConfig
from wbsmaster import create_app
from wbsmaster.models import db, User

ADMIN_EMAIL = 'admin@example.com'
ADMIN_PASSWORD = 'secret1'


@pytest.fixture(scope='function')
def app():
    test_app = create_app(TestingConfig)
    with test_app.app_context():
        if not User.query.filter_by(email=ADMIN_EMAIL).first():
            user = User(email=ADMIN_EMAIL, name='Admin', role='ADMIN',
                        password_hash=generate_password_hash(ADMIN_PASSWORD))
            db.session.add(user)
            db.session.commit()
    yield test_app
    with test_app.app_context():
        db.session.remove()
        db.drop_all()

@pytest.fixture()
def client(app):
    return app.test_client()

@pytest.fixture()
def auth_client(client):
    resp = client.post('/api/auth/login', json={'email': ADMIN_EMAIL, 'password': ADMIN_PASSWORD})
    assert resp.status_code == 200
    return client

@pytest.fixture()
def project_id(auth_client):
    resp = auth_client.post('/api/projects', json={'name': 'Apollo', 'start_date': '2024-03-01',
                                                   'end_date': '2024-03-31'})
    assert resp.status_code == 201
    return resp.get_json()['project']['id']

@pytest.fixture()
def member(app, auth_client, project_id):
    """A second user who belongs to the project."""
    resp = auth_client.post('/api/users', json={'email': 'member@example.com', 'password': 'member1',
                                                'name': 'Member'})
    assert resp.status_code == 201
    user_id = resp.get_json()['user']['id']
    resp = auth_client.post(f'/api/projects/{project_id}/members', json={'user_id': user_id})
    assert resp.status_code == 201
    return user_id

@pytest.fixture()
def login(app):
    """Signed-in test client for another account."""
    def _login(email, password):
        other = app.test_client()
        resp = other.post('/api/auth/login', json={'email': email, 'password': password})
        assert resp.status_code == 200
        return other
    return _login
