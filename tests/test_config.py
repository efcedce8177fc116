"""
Tests for configuration loading.
"""

import pytest
import yaml

from kobo_notes.utils.config import Config


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for name in Config.ENV_MAPPINGS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = Config()
    assert config.config_path is None
    assert config.get('export.format') == 'markdown'
    assert config.get('export.structure') == 'single'
    assert config.get('export.workers') == 1
    assert config.get('kobo.database_path') is None
    assert config.validate() == []


def test_defaults_are_not_shared():
    config = Config()
    config.set('export.format', 'text')
    assert Config().get('export.format') == 'markdown'


def test_file_overrides_defaults(tmp_path):
    path = tmp_path / "custom.yaml"
    path.write_text(yaml.dump({'export': {'format': 'text', 'workers': 3}}))

    config = Config(str(path))
    assert config.config_path == path
    assert config.get('export.format') == 'text'
    assert config.get('export.workers') == 3
    assert config.get('export.structure') == 'single'


def test_config_found_in_working_directory(tmp_path):
    (tmp_path / "config.yaml").write_text("export:\n  structure: zip\n")
    assert Config().get('export.structure') == 'zip'


def test_missing_explicit_file_falls_back_to_defaults(tmp_path):
    config = Config(str(tmp_path / "nope.yaml"))
    assert config.config_path is None
    assert config.get('export.format') == 'markdown'


def test_env_variables_override(monkeypatch):
    monkeypatch.setenv("KOBO_NOTES_FORMAT", "text")
    monkeypatch.setenv("KOBO_NOTES_WORKERS", "4")
    config = Config()
    assert config.get('export.format') == 'text'
    assert config.get('export.workers') == 4


def test_get_missing_key_returns_default():
    assert Config().get('export.nothing', 'fallback') == 'fallback'
    assert Config().get_section('nothing') == {}


def test_validate_reports_problems(tmp_path):
    config = Config()
    config.set('kobo.database_path', str(tmp_path / "missing.sqlite"))
    config.set('export.format', 'pdf')
    config.set('export.structure', 'tree')
    config.set('export.workers', 0)
    config.set('logging.level', 'LOUD')

    issues = config.validate()
    assert len(issues) == 5
    assert any('database_path' in issue for issue in issues)


def test_save_and_reload(tmp_path):
    config = Config()
    config.set('export.format', 'text')
    path = tmp_path / "saved" / "config.yaml"
    config.save(str(path))

    assert Config(str(path)).get('export.format') == 'text'


def test_example_config_is_valid_yaml(tmp_path):
    path = tmp_path / "example.yaml"
    Config().create_example_config(str(path))

    data = yaml.safe_load(path.read_text())
    assert set(data) == {'kobo', 'export', 'logging'}
    assert Config(str(path)).validate() == []
