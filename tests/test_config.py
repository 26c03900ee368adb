"""Tests for the environment driven settings."""

from pathlib import Path

import pytest

from incremental_forest.core._config import Settings
from incremental_forest.forest import Forest


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FOREST_EXPLAIN", "true")
    monkeypatch.setenv("FOREST_SITE", "lab")

    settings = Settings()

    assert settings.FOREST_EXPLAIN is True
    assert settings.FOREST_SITE == "lab"


def test_constructor_arguments_override_settings(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr("incremental_forest.forest._forest.settings.FOREST_EXPLAIN", True)

    assert Forest("configured", path=tmp_path).explain is True
    assert Forest("configured", path=tmp_path, explain=False).explain is False
