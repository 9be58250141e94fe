"""Shared fixtures for playwatch tests."""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture()
def base_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Redirect all playwatch runtime files to a temporary directory.

    Patches ``playwatch.config.get_base_dir`` so that nothing touches the
    real ``~/.playwatch/``.
    """
    fake_base = tmp_path / ".playwatch"
    fake_base.mkdir()
    (fake_base / "logs").mkdir()

    monkeypatch.setattr("playwatch.config.get_base_dir", lambda: fake_base)

    return fake_base
