"""
Pytest fixtures for Almoxarifado backend tests.

Every test gets its own SQLite file database (threads in the concurrency
tests need real connections, which :memory: cannot share).
"""

import base64

import pytest

from almoxarifado import create_app
from almoxarifado.extensions import db
from almoxarifado.models import Material, User
from almoxarifado.services.auth_service import hash_password


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(PASSWORD)


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application bound to a fresh database."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.sqlite3'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        # room for every worker thread in the concurrency tests plus this session
        'SQLALCHEMY_ENGINE_OPTIONS': {'pool_size': 20, 'max_overflow': 10},
        'MAX_SIGNATURE_BYTES': 1024,
        'BULK_IMPORT_MAX_LINES': 50,
        'LOG_LEVEL': 'DEBUG',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


def _make_user(email: str, name: str, role: str, password_hash: str, is_active: bool = True) -> User:
    user = User(email=email, name=name, role=role, password_hash=password_hash, is_active=is_active)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def admin(app, password_hash):
    return _make_user("admin@almox.test", "Admin One", "admin", password_hash)


@pytest.fixture(scope='function')
def admin2(app, password_hash):
    return _make_user("admin2@almox.test", "Admin Two", "admin", password_hash)


@pytest.fixture(scope='function')
def viewer(app, password_hash):
    return _make_user("viewer@almox.test", "Viewer", "viewer", password_hash)


@pytest.fixture(scope='function')
def withdrawer(app, password_hash):
    return _make_user("withdrawer@almox.test", "Withdrawer", "withdrawer", password_hash)


@pytest.fixture(scope='function')
def material_factory(app):
    """Create materials directly; current_quantity is the initial stock."""
    counter = {"n": 0}

    def make(**overrides) -> Material:
        counter["n"] += 1
        fields = {
            "code": f"MAT-{counter['n']:03d}",
            "name": f"Material {counter['n']}",
            "unit": "un",
            "current_quantity": 0,
            "min_quantity": 0,
        }
        fields.update(overrides)
        material = Material(**fields)
        db.session.add(material)
        db.session.commit()
        return material

    return make


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def login(client):
    """login(user) -> Authorization headers for that user."""
    def _login(user: User) -> dict:
        token = get_auth_token(client, user.email)
        assert token, f"login failed for {user.email}"
        return auth_headers(token)
    return _login


@pytest.fixture(scope='function')
def admin_headers(login, admin):
    return login(admin)


@pytest.fixture(scope='function')
def admin2_headers(login, admin2):
    return login(admin2)


@pytest.fixture(scope='function')
def viewer_headers(login, viewer):
    return login(viewer)


@pytest.fixture(scope='function')
def withdrawer_headers(login, withdrawer):
    return login(withdrawer)


@pytest.fixture(scope='session')
def signature_image():
    payload = base64.b64encode(b"\x89PNG\r\n\x1a\n" + b"\x00" * 64).decode("ascii")
    return f"data:image/png;base64,{payload}"
