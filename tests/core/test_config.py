"""Tests for finsight.core.config."""

import json
import os
from decimal import Decimal

import pytest
import yaml

from finsight.core.config import Config, env_overrides, read_config_file
from finsight.core.exceptions import ConfigurationError


class TestConfig:
    def test_defaults_come_from_schema(self):
        config = Config(environ={})
        assert config.get("cache.ttl_seconds") == 30
        assert config.get("cache.net_worth_ttl_seconds") == 60
        assert config.get("history.max_samples") == 100
        assert config.get("trends.default_timeframe") == "6months"
        assert config.get("logging.level") == "WARNING"

    def test_custom_env_prefix(self):
        config = Config(env_prefix="MYAPP_", environ={"MYAPP_CURRENCY__DEFAULT": "EUR"})
        assert config.get("currency.default") == "EUR"

    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("FINSIGHT_CURRENCY__DEFAULT", "GBP")
        assert Config().get("currency.default") == "GBP"

    def test_yaml_config_file(self, tmp_config_file):
        config = Config(config_file=tmp_config_file, environ={})
        assert config.get("cache.ttl_seconds") == 5
        # Untouched defaults in the same section survive the merge
        assert config.get("cache.net_worth_ttl_seconds") == 60

    def test_json_config_file(self, tmp_dir):
        config_path = os.path.join(tmp_dir, "config.json")
        with open(config_path, "w") as f:
            json.dump({"history": {"max_samples": 10}}, f)

        config = Config(config_file=config_path, environ={})
        assert config.get("history.max_samples") == 10

    def test_env_overrides_file(self, tmp_config_file):
        config = Config(config_file=tmp_config_file, environ={"FINSIGHT_CACHE__TTL_SECONDS": "12"})
        assert config.get("cache.ttl_seconds") == "12"

    def test_missing_file_is_ignored(self, tmp_dir):
        config = Config(config_file=os.path.join(tmp_dir, "absent.yaml"), environ={})
        assert config.get("cache.ttl_seconds") == 30

    def test_get_missing_key(self):
        config = Config(environ={})
        assert config.get("nonexistent.key") is None
        assert config.get("nonexistent.key", "fallback") == "fallback"


class TestReadConfigFile:
    def test_empty_yaml_is_empty_mapping(self, tmp_dir):
        path = os.path.join(tmp_dir, "empty.yaml")
        open(path, "w").close()
        assert read_config_file(path) == {}

    def test_non_mapping_raises(self, tmp_dir):
        path = os.path.join(tmp_dir, "list.yaml")
        with open(path, "w") as f:
            yaml.dump([1, 2], f)
        with pytest.raises(ConfigurationError, match="mapping"):
            read_config_file(path)

    def test_unsupported_extension_raises(self, tmp_dir):
        path = os.path.join(tmp_dir, "config.toml")
        with open(path, "w") as f:
            f.write("x = 1\n")
        with pytest.raises(ConfigurationError, match="Unsupported"):
            read_config_file(path)

    def test_bad_json_raises(self, tmp_dir):
        path = os.path.join(tmp_dir, "config.json")
        with open(path, "w") as f:
            f.write("{not json")
        with pytest.raises(ConfigurationError, match="Cannot parse"):
            read_config_file(path)


class TestEnvOverrides:
    def test_nesting_and_case(self):
        overrides = env_overrides(
            {"FINSIGHT_TRENDS__PROJECTION_WINDOW": "4", "FINSIGHT_PLUGIN__A__B": "x", "OTHER": "y"}
        )
        assert overrides == {"trends": {"projection_window": "4"}, "plugin": {"a": {"b": "x"}}}

    def test_empty_prefix_disables(self):
        assert env_overrides({"CACHE__TTL_SECONDS": "1"}, prefix="") == {}


class TestValidated:
    def test_typed_defaults(self):
        settings = Config(environ={}).validated()
        assert settings.cache.ttl_seconds == 30
        assert settings.validation.tolerance == Decimal("0.01")
        assert settings.validation.max_abs_total == Decimal("1000000000")
        assert settings.trends.anomaly_std_multiplier == Decimal("2")
        assert settings.validation.strict is False

    def test_env_strings_are_coerced(self):
        environ = {"FINSIGHT_CACHE__TTL_SECONDS": "12", "FINSIGHT_VALIDATION__STRICT": "true"}
        settings = Config(environ=environ).validated()
        assert settings.cache.ttl_seconds == 12
        assert settings.validation.strict is True

    def test_file_values(self, tmp_config_file):
        settings = Config(config_file=tmp_config_file, environ={}).validated()
        assert settings.validation.max_abs_total == Decimal("5000000")
        assert settings.trends.default_timeframe == "3months"

    def test_invalid_value_raises(self):
        config = Config(environ={"FINSIGHT_CACHE__TTL_SECONDS": "-1"})
        with pytest.raises(ConfigurationError):
            config.validated()

    def test_unknown_timeframe_raises(self, tmp_dir):
        config_path = os.path.join(tmp_dir, "config.yaml")
        with open(config_path, "w") as f:
            yaml.dump({"trends": {"default_timeframe": "5years"}}, f)
        with pytest.raises(ConfigurationError):
            Config(config_file=config_path, environ={}).validated()

    def test_extra_sections_are_kept(self):
        settings = Config(environ={"FINSIGHT_PLUGIN__NAME": "x"}).validated()
        assert settings.model_extra["plugin"] == {"name": "x"}
