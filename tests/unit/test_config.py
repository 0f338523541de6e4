"""
Unit tests for environment driven configuration.
"""
import json

import pytest

from organ_match.core.config import (
    ApplicationConfig,
    get_config,
    load_config_from_file,
)
from organ_match.main import create_app


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ('STORAGE_BACKEND', 'REDIS_LOCK_ENABLED', 'WORKERS', 'DEFAULT_PAGE_LIMIT',
                 'MAX_PAGE_LIMIT', 'DISPLAY_SCORING_MODE', 'REDIS_PASSWORD', 'LOG_LEVEL', 'ENVIRONMENT', 'DEBUG'):
        monkeypatch.delenv(name, raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


class TestDefaults:

    def test_defaults(self):
        config = ApplicationConfig()

        assert config.database.backend == 'memory'
        assert config.redis.lock_enabled is False
        assert config.matching.default_page_limit == 50
        assert config.matching.display_scoring_mode == 'display'
        assert config.workers == 1
        assert config.environment == 'development'
        assert config.debug is False

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_collections(self):
        assert ApplicationConfig().get_database_collections() == {
            'donors': 'donors',
            'recipients': 'recipients',
            'matches': 'matches',
            'metadata': 'metadata',
        }


class TestValidation:

    def test_unknown_backend(self, monkeypatch):
        monkeypatch.setenv('STORAGE_BACKEND', 'postgres')

        with pytest.raises(ValueError, match='Storage backend'):
            ApplicationConfig()

    def test_unknown_scoring_mode(self, monkeypatch):
        monkeypatch.setenv('DISPLAY_SCORING_MODE', 'fancy')

        with pytest.raises(ValueError, match='scoring mode'):
            ApplicationConfig()

    def test_page_limits(self, monkeypatch):
        monkeypatch.setenv('DEFAULT_PAGE_LIMIT', '100')
        monkeypatch.setenv('MAX_PAGE_LIMIT', '10')

        with pytest.raises(ValueError, match='Max page limit'):
            ApplicationConfig()

    def test_multiple_workers_need_redis_lock(self, monkeypatch):
        monkeypatch.setenv('WORKERS', '4')

        with pytest.raises(ValueError, match='Redis locking'):
            ApplicationConfig()

    def test_multiple_workers_with_redis_lock(self, monkeypatch):
        monkeypatch.setenv('WORKERS', '4')
        monkeypatch.setenv('REDIS_LOCK_ENABLED', 'true')

        assert ApplicationConfig().workers == 4

    def test_errors_are_collected(self, monkeypatch):
        monkeypatch.setenv('STORAGE_BACKEND', 'postgres')
        monkeypatch.setenv('WORKERS', '2')

        with pytest.raises(ValueError) as exc_info:
            ApplicationConfig()

        assert 'Storage backend' in str(exc_info.value)
        assert 'Redis locking' in str(exc_info.value)


class TestSerialization:

    def test_password_is_masked(self, monkeypatch):
        monkeypatch.setenv('REDIS_PASSWORD', 'secret')

        assert ApplicationConfig().to_dict()['redis']['password'] == '***masked***'

    def test_load_from_file(self, tmp_path, monkeypatch):
        # Registered so the values written by the loader are restored
        monkeypatch.setenv('LOG_LEVEL', 'INFO')
        monkeypatch.setenv('DEFAULT_PAGE_LIMIT', '50')
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'default_page_limit': 20, 'log': {'level': 'DEBUG'}}))

        config = load_config_from_file(str(path))

        assert config.matching.default_page_limit == 20
        assert config.logging.level == 'DEBUG'

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_from_file(str(tmp_path / 'missing.json'))


class TestApplication:

    def test_debug_flag_reaches_app(self, monkeypatch):
        monkeypatch.setenv('DEBUG', 'true')
        monkeypatch.setenv('ENVIRONMENT', 'staging')

        config = ApplicationConfig()
        app = create_app(config)

        assert config.debug is True
        assert app.debug is True
        assert app.state.config.environment == 'staging'
