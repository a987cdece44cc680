import pytest

from guerreiro_concursos import create_app
from guerreiro_concursos.config import AppConfig

from tests.fakes import NOW_TS, WEBHOOK_SECRET, FakeAuth, FakeClock, FakeFirestore, FakeStripe


@pytest.fixture()
def config():
    return AppConfig(
        flask_secret_key='test-secret',
        environment='test',
        stripe_secret_key='sk_test_123',
        stripe_publishable_key='pk_test_123',
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_price_ids=('price_mensal', 'price_anual'),
    )


@pytest.fixture()
def fake_db():
    return FakeFirestore()


@pytest.fixture()
def fake_stripe():
    return FakeStripe()


@pytest.fixture()
def fake_auth():
    return FakeAuth()


@pytest.fixture()
def clock():
    return FakeClock(NOW_TS)


@pytest.fixture()
def app(config, fake_db, fake_stripe, fake_auth, clock):
    flask_app = create_app(
        config,
        db=fake_db,
        stripe_module=fake_stripe,
        auth_module=fake_auth,
        time_module=clock,
    )
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture()
def client(app):
    with app.test_client() as test_client:
        yield test_client
