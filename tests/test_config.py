"""Tests for settings files and environment overrides."""

import pytest

from ffhuman.config import Settings, load_settings
from ffhuman.errors import ValidationError


@pytest.fixture(autouse=True)
def clean_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("FFHUMAN_CONFIG", raising=False)


class TestLoadSettings:
    """Defaults, then file, then environment."""

    def test_defaults(self):
        settings = load_settings(env={})
        assert settings == Settings()
        assert settings.workers == 2
        assert settings.watch.settle_time == 0.5
        assert ".mp4" in settings.watch.extensions

    def test_local_file(self, tmp_path):
        (tmp_path / "ffhuman.yaml").write_text("workers: 4\nwatch:\n  poll_interval: 2.5\n")
        settings = load_settings(env={})
        assert settings.workers == 4
        assert settings.watch.poll_interval == 2.5

    def test_explicit_file(self, tmp_path):
        config = tmp_path / "custom.yaml"
        config.write_text("log_level: DEBUG\n")
        assert load_settings(config, env={}).log_level == "DEBUG"

    def test_config_env_var(self, tmp_path):
        config = tmp_path / "elsewhere.yaml"
        config.write_text("temp_dir: /scratch\n")
        settings = load_settings(env={"FFHUMAN_CONFIG": str(config)})
        assert settings.temp_dir == "/scratch"

    def test_env_overrides_file(self, tmp_path):
        (tmp_path / "ffhuman.yaml").write_text("workers: 4\n")
        settings = load_settings(env={"FFHUMAN_WORKERS": "8", "FFHUMAN_WATCH_SETTLE_TIME": "0"})
        assert settings.workers == 8
        assert settings.watch.settle_time == 0

    def test_tool_paths_from_env(self):
        settings = load_settings(env={"FFHUMAN_FFMPEG": "/opt/ff/ffmpeg"})
        assert settings.ffmpeg_path == "/opt/ff/ffmpeg"

    def test_empty_file(self, tmp_path):
        (tmp_path / "ffhuman.yaml").write_text("")
        assert load_settings(env={}) == Settings()


class TestSettingsErrors:
    """Bad settings become validation errors naming the field."""

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ValidationError, match="file not found"):
            load_settings(tmp_path / "nope.yaml", env={})

    def test_missing_env_file(self, tmp_path):
        with pytest.raises(ValidationError, match="FFHUMAN_CONFIG"):
            load_settings(env={"FFHUMAN_CONFIG": str(tmp_path / "nope.yaml")})

    def test_not_a_mapping(self, tmp_path):
        (tmp_path / "ffhuman.yaml").write_text("- workers\n")
        with pytest.raises(ValidationError, match="top level must be a mapping"):
            load_settings(env={})

    def test_workers_out_of_range(self):
        with pytest.raises(ValidationError) as exc:
            load_settings(env={"FFHUMAN_WORKERS": "0"})
        assert exc.value.field == "workers"
        assert exc.value.exit_code == 2

    def test_nested_field_named(self, tmp_path):
        (tmp_path / "ffhuman.yaml").write_text("watch:\n  poll_interval: 0\n")
        with pytest.raises(ValidationError) as exc:
            load_settings(env={})
        assert exc.value.field == "watch.poll_interval"

    def test_bad_yaml(self, tmp_path):
        (tmp_path / "ffhuman.yaml").write_text("workers: [1, 2\n")
        with pytest.raises(ValidationError, match="cannot read"):
            load_settings(env={})
