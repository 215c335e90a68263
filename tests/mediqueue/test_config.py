import pytest

from mediqueue.core import config


def test_validate_runtime_config_accepts_defaults() -> None:
    config.validate_runtime_config()


def test_validate_runtime_config_requires_secret_in_production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'production')
    monkeypatch.setattr(config, 'JWT_SECRET_KEY', 'change-me')

    with pytest.raises(RuntimeError, match='JWT_SECRET_KEY'):
        config.validate_runtime_config()


def test_validate_runtime_config_rejects_unknown_booking_scope(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'BOOKING_SCOPE', 'clinic')

    with pytest.raises(RuntimeError, match='BOOKING_SCOPE'):
        config.validate_runtime_config()


def test_get_bool_parses_common_spellings() -> None:
    assert config._get_bool(' Yes ') is True
    assert config._get_bool('0', default=True) is False
    assert config._get_bool(None, default=True) is True
