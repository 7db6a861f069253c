import pytest

from config import Config


def test_defaults(monkeypatch):
    for name in ("HEALTH_BATCH_SIZE", "HEALTH_MAX_CONCURRENT", "HEALTH_CHECK_INTERVAL_HOURS", "ADMIN_USER_IDS"):
        monkeypatch.delenv(name, raising=False)

    settings = Config().health_settings()

    assert settings.batch_size == 50
    assert settings.max_concurrent == 10
    assert settings.check_interval == 24 * 60 * 60
    assert settings.slow_threshold == 5.0
    assert settings.max_redirects == 5


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("HEALTH_CHECK_INTERVAL_HOURS", "0.5")
    monkeypatch.setenv("HEALTH_SLOW_THRESHOLD", "2.5")
    monkeypatch.setenv("ADMIN_USER_IDS", "12, 34,abc")
    monkeypatch.setenv("ENABLE_HEALTH_SWEEPS", "no")

    config = Config()

    assert config.health_settings().check_interval == 1800
    assert config.health_settings().slow_threshold == 2.5
    assert config.ADMIN_USER_IDS == [12, 34]
    assert config.ENABLE_HEALTH_SWEEPS is False


@pytest.mark.parametrize(
    "name, value",
    [
        ("HEALTH_BATCH_SIZE", "0"),
        ("HEALTH_MAX_CONCURRENT", "-1"),
        ("HEALTH_MAX_REDIRECTS", "-1"),
        ("HEALTH_BATCH_PAUSE", "-0.5"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=name):
        Config()


def test_bot_token_is_required_only_for_the_console(monkeypatch):
    monkeypatch.setenv("TELEGRAM_TOKEN", "")

    config = Config()

    with pytest.raises(ValueError, match="TELEGRAM_TOKEN"):
        config.require_bot_token()


def test_database_url_and_str_hide_password(monkeypatch):
    monkeypatch.setenv("DB_USER", "keeper")
    monkeypatch.setenv("DB_PASSWORD", "s3cret")
    monkeypatch.setenv("DB_HOST", "db")
    monkeypatch.setenv("DB_NAME", "links")

    config = Config()

    assert config.database_url == "postgresql://keeper:s3cret@db:5432/links"
    assert "s3cret" not in str(config)
