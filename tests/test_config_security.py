import pytest

from guerreiro_concursos.config import load_config


def test_load_config_requires_secret_key_in_non_dev(monkeypatch):
    monkeypatch.setenv("RENDER", "true")
    monkeypatch.delenv("FLASK_ENV", raising=False)
    monkeypatch.delenv("SENTRY_ENVIRONMENT", raising=False)
    monkeypatch.delenv("ENV", raising=False)
    monkeypatch.delenv("FLASK_SECRET_KEY", raising=False)

    with pytest.raises(RuntimeError):
        load_config()


def test_load_config_allows_missing_secret_in_dev(monkeypatch):
    monkeypatch.delenv("RENDER", raising=False)
    monkeypatch.delenv("SENTRY_ENVIRONMENT", raising=False)
    monkeypatch.setenv("FLASK_ENV", "development")
    monkeypatch.delenv("FLASK_SECRET_KEY", raising=False)

    cfg = load_config()
    assert cfg.flask_secret_key == ""
    assert cfg.is_dev_like is True


def test_load_config_reads_stripe_settings(monkeypatch):
    monkeypatch.setenv("FLASK_ENV", "test")
    monkeypatch.delenv("SENTRY_ENVIRONMENT", raising=False)
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_abc")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", " whsec_abc ")
    monkeypatch.setenv("STRIPE_PRICE_IDS", "price_a, price_b,,")
    monkeypatch.setenv("CORS_ALLOWED_ORIGINS", "https://App.example/")
    monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", "7")

    cfg = load_config()
    assert cfg.stripe_secret_key == "sk_test_abc"
    assert cfg.stripe_webhook_secret == "whsec_abc"
    assert cfg.stripe_price_ids == ("price_a", "price_b")
    assert cfg.cors_allowed_origins == frozenset({"https://app.example"})
    assert cfg.sentry_traces_sample_rate == 1.0
