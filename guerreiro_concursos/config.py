import os
from dataclasses import dataclass, field

DEV_ENV_NAMES = {'development', 'dev', 'local', 'test'}

DEFAULT_CORS_ALLOWED_ORIGINS = (
    'https://guerreiroconcursos.com',
    'https://www.guerreiroconcursos.com',
    'http://localhost:5173',
    'http://127.0.0.1:5173',
)


def _env(name, default=''):
    return (os.getenv(name, default) or default).strip()


def _env_list(name):
    return tuple(item.strip() for item in _env(name).split(',') if item.strip())


def safe_float_env(name, default=0.0):
    raw = _env(name, str(default))
    try:
        value = float(raw)
    except Exception:
        return default
    return min(max(value, 0.0), 1.0)


def resolve_runtime_env():
    return (
        os.getenv('SENTRY_ENVIRONMENT')
        or os.getenv('FLASK_ENV')
        or os.getenv('ENV')
        or ('production' if os.getenv('RENDER') else 'development')
    ).strip().lower()


@dataclass(frozen=True)
class AppConfig:
    """Central config object, populated from the environment by load_config()."""

    flask_secret_key: str = ''
    log_level: str = 'INFO'
    environment: str = 'production'
    sentry_dsn: str = ''
    sentry_release: str = 'guerreiro-concursos'
    sentry_traces_sample_rate: float = 0.0
    stripe_secret_key: str = ''
    stripe_publishable_key: str = ''
    stripe_webhook_secret: str = ''
    stripe_price_ids: tuple = ()
    checkout_success_url: str = 'https://guerreiroconcursos.com/sucesso'
    checkout_cancel_url: str = 'https://guerreiroconcursos.com/erro'
    portal_default_origin: str = 'http://localhost:5173'
    cors_allowed_origins: frozenset = field(default_factory=lambda: frozenset(DEFAULT_CORS_ALLOWED_ORIGINS))
    firebase_credentials: str = ''

    @property
    def is_dev_like(self):
        return self.environment in DEV_ENV_NAMES


def load_config() -> AppConfig:
    runtime_env = resolve_runtime_env()
    origins = _env_list('CORS_ALLOWED_ORIGINS') or DEFAULT_CORS_ALLOWED_ORIGINS
    config = AppConfig(
        flask_secret_key=_env('FLASK_SECRET_KEY'),
        log_level=_env('LOG_LEVEL', 'INFO').upper(),
        environment=runtime_env,
        sentry_dsn=_env('SENTRY_BACKEND_DSN'),
        sentry_release=_env('SENTRY_RELEASE', 'guerreiro-concursos'),
        sentry_traces_sample_rate=safe_float_env('SENTRY_TRACES_SAMPLE_RATE', 0.0),
        stripe_secret_key=_env('STRIPE_SECRET_KEY'),
        stripe_publishable_key=_env('STRIPE_PUBLISHABLE_KEY'),
        stripe_webhook_secret=_env('STRIPE_WEBHOOK_SECRET'),
        stripe_price_ids=_env_list('STRIPE_PRICE_IDS'),
        checkout_success_url=_env('CHECKOUT_SUCCESS_URL', 'https://guerreiroconcursos.com/sucesso'),
        checkout_cancel_url=_env('CHECKOUT_CANCEL_URL', 'https://guerreiroconcursos.com/erro'),
        portal_default_origin=_env('PORTAL_DEFAULT_ORIGIN', 'http://localhost:5173').rstrip('/'),
        cors_allowed_origins=frozenset(origin.rstrip('/').lower() for origin in origins),
        firebase_credentials=_env('FIREBASE_CREDENTIALS'),
    )
    if not config.is_dev_like and not config.flask_secret_key:
        raise RuntimeError('FLASK_SECRET_KEY must be set in non-development environments.')
    return config
