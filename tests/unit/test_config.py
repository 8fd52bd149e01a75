"""Unit tests for Settings and registry file location."""

import pytest

from crossdeploy.exceptions import ConfigurationError
from crossdeploy.utils.config import (
    DEFAULT_REGISTRY_FILE,
    REGISTRY_ENV,
    Settings,
    locate_registry,
)


class TestSettings:

    def test_defaults(self):
        settings = Settings()

        assert settings.retries == 3
        assert settings.backoff_base == 1.0
        assert settings.backoff_max == 30.0
        assert settings.max_parallel_builds == 2
        assert settings.keep_local_artifact is True
        assert settings.backup is False
        assert settings.package_manager == ["sudo", "apt-get", "install", "-y"]

    def test_state_dir_from_environment(self, monkeypatch):
        monkeypatch.setenv("CROSSDEPLOY_STATE_DIR", "/var/lib/crossdeploy")

        assert Settings().state_dir == "/var/lib/crossdeploy"

    def test_from_mapping_coerces_numbers(self):
        settings = Settings.from_mapping({'backoff_base': 2, 'ssh_timeout': 5})

        assert settings.backoff_base == 2.0
        assert isinstance(settings.backoff_base, float)
        assert settings.ssh_timeout == 5.0

    def test_package_manager_accepts_string(self):
        settings = Settings.from_mapping({'package_manager': 'apt-get install -y'})

        assert settings.package_manager == ['apt-get', 'install', '-y']

    def test_from_mapping_empty(self):
        assert Settings.from_mapping(None) == Settings()

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigurationError, match="Unknown settings key"):
            Settings.from_mapping({'retry': 3})

    @pytest.mark.parametrize("data", [
        {'retries': 'three'},
        {'retries': True},
        {'backup': 'yes'},
        {'package_manager': [1, 2]},
        {'state_dir': 42},
    ])
    def test_wrong_type_rejected(self, data):
        with pytest.raises(ConfigurationError):
            Settings.from_mapping(data)

    @pytest.mark.parametrize("data", [
        {'retries': -1},
        {'max_parallel_builds': 0},
        {'ssh_timeout': 0},
        {'package_manager': []},
    ])
    def test_out_of_range_rejected(self, data):
        with pytest.raises(ConfigurationError):
            Settings.from_mapping(data)

    def test_with_overrides_ignores_none(self):
        base = Settings(retries=5)

        assert base.with_overrides(retries=None) is base
        assert base.with_overrides(retries=0).retries == 0

    def test_with_overrides_validates(self):
        with pytest.raises(ConfigurationError):
            Settings().with_overrides(retries=-2)


class TestLocateRegistry:

    def test_cli_path_wins(self):
        assert locate_registry('cli.yaml', {REGISTRY_ENV: 'env.yaml'}) == 'cli.yaml'

    def test_environment_next(self):
        assert locate_registry(None, {REGISTRY_ENV: 'env.yaml'}) == 'env.yaml'

    def test_default_file(self):
        assert locate_registry(None, {}) == DEFAULT_REGISTRY_FILE
