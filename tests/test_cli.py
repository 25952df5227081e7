from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any, Dict

import pytest

from storyboard import ClipSpec, EditorFacade, cli


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "STORYBOARD_FRAME_RATE",
        "STORYBOARD_DEFAULT_GAP",
        "STORYBOARD_ARCHIVE_BASENAME",
        "STORYBOARD_SCENE_EXTENSION",
        "STORYBOARD_FIXED_BOARD_SECONDS",
        "STORYBOARD_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def archive_path(tmp_path: Path) -> Path:
    facade = EditorFacade()
    facade.begin_import("robot").complete([ClipSpec("walk", 0, 50)])
    facade.add_primitive("box")
    facade.add_board(30)
    path = tmp_path / "shot.zip"
    path.write_bytes(facade.serialize())
    return path


def test_inspect_prints_a_summary(archive_path: Path) -> None:
    out = io.StringIO()

    assert cli.main(["inspect", str(archive_path)], out=out) == 0

    text = out.getvalue()
    assert "Boards: 2 (frames [0, 30])" in text
    assert "  - robot: walk" in text
    assert "Sun rotation: 2 key(s)" in text


def test_inspect_json_with_resolution(archive_path: Path) -> None:
    out = io.StringIO()

    assert cli.main(["inspect", str(archive_path), "--json", "--resolve"], out=out) == 0

    payload = json.loads(out.getvalue())
    assert payload["timeline"] == [0, 30]
    assert payload["meshes"] == {"robot": ["walk"]}
    assert payload["clipKeyCounts"] == {"walk": 2}
    assert sorted(payload["animatedNodes"]) == ["box", "robot"]
    assert payload["unresolved"] == []


def test_inspect_rejects_invalid_archives(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "broken.zip"
    path.write_bytes(b"not a zip")

    assert cli.main(["inspect", str(path)], out=io.StringIO()) == 1
    assert "Invalid archive" in capsys.readouterr().err

    assert cli.main(["inspect", str(tmp_path / "missing.zip")], out=io.StringIO()) == 2


def test_invalid_configuration_exits_early(
    archive_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("STORYBOARD_FRAME_RATE", "fast")

    assert cli.main(["inspect", str(archive_path)], out=io.StringIO()) == 2
    assert "STORYBOARD_FRAME_RATE" in capsys.readouterr().err


def test_serve_runs_the_app_factory(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: Dict[str, Any] = {}

    def _fake_run(app: str, **kwargs: Any) -> None:
        calls["app"] = app
        calls.update(kwargs)

    monkeypatch.setattr(cli.uvicorn, "run", _fake_run)

    assert cli.main(["serve", "--port", "9000", "--host", "0.0.0.0"]) == 0
    assert calls["app"] == "storyboard.api.app:create_app"
    assert calls["factory"] is True
    assert calls["port"] == 9000
    assert calls["host"] == "0.0.0.0"
    assert calls["reload"] is False
