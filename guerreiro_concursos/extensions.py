import json
import os
import time

import firebase_admin
import sentry_sdk
import stripe
from firebase_admin import auth, credentials, firestore
from flask import current_app
from sentry_sdk.integrations.flask import FlaskIntegration

from .logging_config import get_logger

EXTENSION_KEY = 'guerreiro_concursos'
FIREBASE_CREDENTIALS_FILE = 'firebase-credentials.json'


class AppContext:
    """Clients and settings handed to every request handler.

    Built once per app by init_extensions(); handlers take it as an explicit
    argument instead of reaching for module globals.
    """

    def __init__(self, *, config, db, stripe_module, auth_module, logger, time_module=time, sentry=None):
        self.config = config
        self.db = db
        self.stripe = stripe_module
        self.auth = auth_module
        self.logger = logger
        self.time_module = time_module
        self.sentry_sdk = sentry


def init_firebase(config, logger):
    """Return a Firestore client, or None when Firebase cannot be set up."""
    try:
        if os.path.exists(FIREBASE_CREDENTIALS_FILE):
            cred = credentials.Certificate(FIREBASE_CREDENTIALS_FILE)
        elif config.firebase_credentials:
            cred = credentials.Certificate(json.loads(config.firebase_credentials))
        else:
            cred = credentials.ApplicationDefault()
        if not firebase_admin._apps:
            firebase_admin.initialize_app(cred)
        return firestore.client()
    except Exception as e:
        logger.info(f"⚠️ Firebase initialization skipped: {e}")
        return None


def init_sentry(config):
    if not config.sentry_dsn:
        return None
    sentry_sdk.init(
        dsn=config.sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=config.sentry_traces_sample_rate,
        send_default_pii=False,
        environment=config.environment,
        release=config.sentry_release,
    )
    return sentry_sdk


def init_extensions(app, config, *, db=None, stripe_module=None, auth_module=None, time_module=None):
    """Construct the shared clients and attach them to ``app``.

    Anything passed explicitly is used as-is, which is how tests swap in
    fakes.
    """
    logger = get_logger()
    if db is None:
        db = init_firebase(config, logger)
    if stripe_module is None:
        stripe_module = stripe
        stripe_module.api_key = config.stripe_secret_key or None
    ctx = AppContext(
        config=config,
        db=db,
        stripe_module=stripe_module,
        auth_module=auth_module or auth,
        logger=logger,
        time_module=time_module or time,
        sentry=init_sentry(config),
    )
    app.extensions.setdefault(EXTENSION_KEY, {})
    app.extensions[EXTENSION_KEY]['ctx'] = ctx
    return ctx


def get_app_context():
    return current_app.extensions[EXTENSION_KEY]['ctx']
