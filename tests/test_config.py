import json
import os

import pytest
from jsonschema import ValidationError

from calltagger.utils import config as config_module
from calltagger.utils.config import (
    default_config,
    load_config,
    reset_config_cache,
    section,
    validate_config,
)


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    monkeypatch.delenv("CALLTAGGER_CONFIG", raising=False)
    reset_config_cache()
    yield
    reset_config_cache()


def _write(path, data):
    path.write_text(json.dumps(data))
    return str(path)


def test_load_explicit_path(tmp_path):
    path = _write(tmp_path / "cfg.json", {"provider": "gemini", "model": "gemini-2.0-flash"})

    cfg = load_config(path)

    assert cfg["provider"] == "gemini"
    # Cached for later callers
    assert load_config() is cfg


def test_env_var_path(monkeypatch, tmp_path):
    path = _write(tmp_path / "cfg.json", {"provider": "anthropic"})
    monkeypatch.setenv("CALLTAGGER_CONFIG", path)

    assert load_config()["provider"] == "anthropic"


def test_invalid_file_skipped(monkeypatch, tmp_path):
    bad = _write(tmp_path / "bad.json", {"provider": "ollama"})
    good = _write(tmp_path / "good.json", {"provider": "openai", "tagger": {"concurrency": 2}})
    monkeypatch.setenv("CALLTAGGER_CONFIG", good)

    cfg = load_config(bad)

    assert cfg["tagger"]["concurrency"] == 2


def test_malformed_json_skipped(monkeypatch, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{oops")
    monkeypatch.setattr(config_module, "_PACKAGE_DIR", str(tmp_path))

    cfg = load_config(str(bad))

    assert cfg == default_config()


def test_defaults_when_nothing_found(monkeypatch, tmp_path):
    monkeypatch.setattr(config_module, "_PACKAGE_DIR", str(tmp_path))
    monkeypatch.setenv("CALLTAGGER_CONFIG", os.path.join(str(tmp_path), "nope.json"))

    cfg = load_config()

    assert cfg["provider"] == "openai"
    assert cfg["tagger"]["concurrency"] == 5


def test_example_config_is_valid():
    example = os.path.join(os.path.dirname(config_module.__file__), "..", "config.json.example")
    with open(example, "r", encoding="utf-8") as f:
        validate_config(json.load(f))


def test_validate_bad_config():
    with pytest.raises(ValidationError):
        validate_config({"provider": "openai", "tagger": {"concurrency": 0}})
    with pytest.raises(ValidationError):
        validate_config({"model": "gpt-4o"})
    with pytest.raises(ValueError):
        validate_config(["not", "a", "dict"])


def test_section_merges_defaults():
    merged = section({"cache": {"ttl_seconds": 10}}, "cache")

    assert merged == {"max_size": 10000, "ttl_seconds": 10}
    assert section({"fallback": None}, "fallback") == {}
