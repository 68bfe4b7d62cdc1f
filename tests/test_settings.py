"""Tests for the remembered server selection."""

import json
from pathlib import Path

import pytest

from patient_viewer.settings import ServerSettings

SERVERS = {"A": "https://a.example.org/fhir", "B": "https://b.example.org/fhir"}


def _settings(path: Path) -> ServerSettings:
    return ServerSettings(path=path, servers=SERVERS, default_url=SERVERS["A"])


def test_missing_file_gives_default(tmp_path: Path) -> None:
    assert _settings(tmp_path / "settings.json").load() == SERVERS["A"]


def test_save_then_load(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "settings.json"
    settings = _settings(path)

    settings.save(SERVERS["B"])

    assert json.loads(path.read_text()) == {"fhir-server-url": SERVERS["B"]}
    assert _settings(path).load() == SERVERS["B"]


def test_unknown_saved_url_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"fhir-server-url": "https://old.example.org/fhir"}))

    assert _settings(path).load() == SERVERS["A"]


def test_corrupt_file_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json")

    assert _settings(path).load() == SERVERS["A"]


def test_saving_unknown_server_fails(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"

    with pytest.raises(ValueError):
        _settings(path).save("https://evil.example.com/fhir")

    assert not path.exists()


def test_label_for() -> None:
    settings = ServerSettings(servers=SERVERS)
    assert settings.label_for(SERVERS["B"]) == "B"
    assert settings.label_for("https://other") == "https://other"
