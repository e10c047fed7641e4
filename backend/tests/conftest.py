import os, sys, pytest
# Ensure the backend directory is on path so 'mutka' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from mutka import create_app, get_db
from mutka.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import mutka.models.asset  # noqa: F401
import mutka.models.audit  # noqa: F401
import mutka.models.auto  # noqa: F401
import mutka.models.cashbox  # noqa: F401
import mutka.models.client_exchange  # noqa: F401
import mutka.models.contact  # noqa: F401
import mutka.models.currency  # noqa: F401
import mutka.models.finance  # noqa: F401
import mutka.models.hr  # noqa: F401
import mutka.models.platform  # noqa: F401
import mutka.models.stock  # noqa: F401


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'JWT_SECRET_KEY': 'test-secret',
        'VIEW_AS_SECRET': 'test-view-as-secret',
        'PLATFORM_ADMIN_EMAILS': ['root@platform.test'],
        'TESTING': True,
    })
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()
