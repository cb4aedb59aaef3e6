import os, sys, pytest
# Ensure the backend directory is on path so 'fieldops' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from fieldops import create_app, get_context
from fieldops.models.base import Base

TEST_CONFIG = {
    'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
    'JWT_SECRET_KEY': 'test-secret-key-that-is-long-enough-for-hs256',
    'LOG_LEVEL': 'WARNING',
}


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    app = create_app(dict(TEST_CONFIG))
    # After app and blueprints are registered, ensure all tables exist
    with app.app_context():
        Base.metadata.create_all(get_context().engine)
    yield app
    with app.app_context():
        get_context().dispose()


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_context):
    return app_context.test_client()
