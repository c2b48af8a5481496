"""Tests for configuration."""

import pytest

from cadence.infrastructure.config import Configuration, load_configuration, read_env_file


class TestReadEnvFile:
    def test_reads_env_values(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("KEY1=value1\nKEY2=value2\n")
        monkeypatch.chdir(tmp_path)

        result = read_env_file(["KEY1", "KEY2"])
        assert result == {"KEY1": "value1", "KEY2": "value2"}

    def test_strips_quotes(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text('KEY1="quoted"\nKEY2=\'single\'\n')
        monkeypatch.chdir(tmp_path)

        result = read_env_file(["KEY1", "KEY2"])
        assert result["KEY1"] == "quoted"
        assert result["KEY2"] == "single"

    def test_skips_comments_and_blank_lines(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("# comment\n\nKEY1=value1\n\n")
        monkeypatch.chdir(tmp_path)

        assert read_env_file(["KEY1"]) == {"KEY1": "value1"}

    def test_only_requested_keys(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("KEY1=value1\nKEY2=value2\n")
        monkeypatch.chdir(tmp_path)

        assert "KEY2" not in read_env_file(["KEY1"])

    def test_missing_file_returns_empty(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert read_env_file(["KEY1"]) == {}

    def test_export_prefix(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text("export CADENCE_DB_PATH=/var/lib/cadence.db\n")
        monkeypatch.chdir(tmp_path)

        assert read_env_file(["CADENCE_DB_PATH"]) == {"CADENCE_DB_PATH": "/var/lib/cadence.db"}

    def test_explicit_path(self, tmp_path):
        env_file = tmp_path / "scheduler.env"
        env_file.write_text("MAX_CONCURRENT_TASKS=3\n")

        assert read_env_file(["MAX_CONCURRENT_TASKS"], path=env_file) == {"MAX_CONCURRENT_TASKS": "3"}

    def test_value_may_contain_equals(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("CADENCE_CONFIG=a=b.yaml\n")

        assert read_env_file(["CADENCE_CONFIG"], path=env_file) == {"CADENCE_CONFIG": "a=b.yaml"}


class TestConfiguration:
    def test_dotted_lookup(self):
        config = Configuration({"feature": {"nested": {"flag": True}}})
        assert config["feature.nested.flag"] is True
        assert config.get("feature.missing", "default") == "default"

    def test_flat_key_with_dot_wins(self):
        config = Configuration({"a.b": 1, "a": {"b": 2}})
        assert config["a.b"] == 1

    def test_is_read_only(self):
        config = Configuration({"key": 1})
        with pytest.raises(TypeError):
            config["key"] = 2  # type: ignore[index]

    def test_source_mapping_changes_do_not_leak(self):
        values = {"key": 1}
        config = Configuration(values)
        values["key"] = 2
        assert config["key"] == 1

    @pytest.mark.parametrize("raw,expected", [("true", True), ("Yes", True), ("0", False), ("off", False), (1, True), (None, False)])
    def test_get_bool(self, raw, expected):
        assert Configuration({"flag": raw}).get_bool("flag") is expected

    def test_get_bool_default(self):
        assert Configuration().get_bool("missing", True) is True


class TestLoadConfiguration:
    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "cadence.yaml"
        path.write_text("run_log_cleanup:\n  enabled: false\n  retention_days: 7\n")
        config = load_configuration(path)
        assert config.get_bool("run_log_cleanup.enabled", True) is False
        assert config["run_log_cleanup.retention_days"] == 7

    def test_missing_file_is_empty(self, tmp_path):
        assert len(load_configuration(tmp_path / "absent.yaml")) == 0

    def test_empty_file_is_empty(self, tmp_path):
        path = tmp_path / "cadence.yaml"
        path.write_text("")
        assert len(load_configuration(path)) == 0

    def test_non_mapping_root_rejected(self, tmp_path):
        path = tmp_path / "cadence.yaml"
        path.write_text("- one\n- two\n")
        with pytest.raises(ValueError, match="must be a mapping"):
            load_configuration(path)
