import structlog
from checkout.utils.logging import bind_checkout_context, clear_checkout_context, get_log_level


class TestLogLevel:
    def test_level_follows_environment(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.delenv("ENV", raising=False)
        monkeypatch.delenv("ENVIRONMENT", raising=False)

        monkeypatch.setenv("PROTEAN_ENV", "production")
        assert get_log_level() == "INFO"

        monkeypatch.setenv("PROTEAN_ENV", "test")
        assert get_log_level() == "WARNING"

    def test_explicit_level_wins(self, monkeypatch):
        monkeypatch.setenv("PROTEAN_ENV", "production")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        assert get_log_level() == "DEBUG"


class TestCheckoutContext:
    def test_bind_and_clear(self):
        clear_checkout_context()
        bind_checkout_context(checkout_id="chk-001")
        assert structlog.contextvars.get_contextvars() == {"checkout_id": "chk-001"}

        clear_checkout_context()
        assert structlog.contextvars.get_contextvars() == {}
