from __future__ import annotations

import base64
import io
import zipfile

import pytest
from fastapi.testclient import TestClient

from storyboard import EditorFacade, ManualClock, StoryboardSettings
from storyboard.api import create_app


@pytest.fixture()
def editor() -> EditorFacade:
    return EditorFacade(settings=StoryboardSettings(), clock=ManualClock())


@pytest.fixture()
def client(editor: EditorFacade) -> TestClient:
    return TestClient(create_app(StoryboardSettings(), facade=editor))


def _sun_id(client: TestClient) -> str:
    objects = client.get("/api/objects").json()["data"]
    return next(item["id"] for item in objects if item["kind"] == "sun")


def test_get_storyboard_state(client: TestClient) -> None:
    response = client.get("/api/storyboard")

    assert response.status_code == 200
    payload = response.json()
    assert payload["timeline"] == [0]
    assert payload["timeline_length"] == 1
    assert payload["playback_state"] == "stopped"
    assert payload["scene_settings"]["transform_gizmo_mode"] == "position"
    assert len(payload["sky"]["sun_direction"]) == 3


def test_add_boards(client: TestClient) -> None:
    response = client.post("/api/storyboard/boards", json={})
    assert response.status_code == 201
    assert response.json()["timeline"] == [0, 60]

    response = client.post("/api/storyboard/boards", json={"gap_frames": 30})
    assert response.json()["timeline"] == [0, 60, 90]

    response = client.post("/api/storyboard/boards", json={"gap_frames": -1})
    assert response.status_code == 422


def test_set_current_board(client: TestClient) -> None:
    response = client.put("/api/storyboard/current-board", json={"index": 1})
    assert response.status_code == 200
    assert response.json()["timeline_length"] == 2
    assert response.json()["current_board_index"] == 1

    response = client.put("/api/storyboard/current-board", json={"index": 5})
    assert response.status_code == 400

    response = client.put("/api/storyboard/current-board", json={"index": -1})
    assert response.status_code == 422


def test_primitive_lifecycle(client: TestClient) -> None:
    response = client.post("/api/objects/primitives", json={"kind": "torus"})
    assert response.status_code == 201
    created = response.json()
    assert created["name"] == "torus"
    assert created["kind"] == "mesh"

    response = client.put(
        f"/api/objects/{created['id']}/properties/position", json={"value": [1, 2, 3]}
    )
    assert response.status_code == 200
    assert response.json()["properties"]["position"] == [1.0, 2.0, 3.0]

    response = client.put(
        f"/api/objects/{created['id']}/properties/colour", json={"value": [1, 0, 0]}
    )
    assert response.status_code == 400

    response = client.put(
        f"/api/objects/{created['id']}/properties/position", json={"value": "up"}
    )
    assert response.status_code == 400

    response = client.put("/api/selection", json={"id": created["id"]})
    assert response.json()["scene_settings"]["selected_item_id"] == created["id"]

    response = client.delete("/api/selection")
    assert response.status_code == 200
    assert client.get(f"/api/objects/{created['id']}").status_code == 404

    assert client.delete("/api/selection").status_code == 404


def test_unknown_objects_are_not_found(client: TestClient) -> None:
    assert client.get("/api/objects/nope").status_code == 404
    response = client.put("/api/objects/nope/properties/position", json={"value": [0, 0, 0]})
    assert response.status_code == 404
    assert client.put("/api/selection", json={"id": "nope"}).status_code == 404


def test_primitive_kind_is_validated(client: TestClient) -> None:
    response = client.post("/api/objects/primitives", json={"kind": "teapot"})

    assert response.status_code == 422


def test_import_model_with_clips(client: TestClient) -> None:
    response = client.post(
        "/api/objects/imports",
        json={"name": "robot", "clips": [{"name": "walk", "last_frame": 30}]},
    )

    assert response.status_code == 201
    payload = response.json()
    (walk,) = payload["children"]
    assert walk["kind"] == "animation"
    assert walk["properties"]["lastFrame"] == 30.0

    response = client.put(
        f"/api/objects/{walk['id']}/properties/currentFrame", json={"value": 12}
    )
    assert response.status_code == 200
    assert response.json()["properties"]["currentFrame"] == 12.0

    response = client.post("/api/objects/imports", json={"name": "   "})
    assert response.status_code == 422


def test_sun_selection_and_deletion(client: TestClient) -> None:
    sun_id = _sun_id(client)

    response = client.put("/api/selection", json={"id": sun_id})
    assert response.json()["scene_settings"]["transform_gizmo_mode"] == "rotation"

    response = client.delete("/api/selection")
    assert response.status_code == 400


def test_update_settings(client: TestClient) -> None:
    response = client.patch(
        "/api/storyboard/settings",
        json={"new_primitive_mesh_type": "cylinder", "current_board_index": 1},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["scene_settings"]["new_primitive_mesh_type"] == "cylinder"
    assert payload["current_board_index"] == 1

    created = client.post("/api/objects/primitives", json={}).json()
    assert created["name"] == "cylinder"


def test_playback_endpoints(client: TestClient) -> None:
    client.post("/api/storyboard/boards", json={})

    response = client.post("/api/storyboard/playback/play")
    assert response.json()["playback_state"] == "playing"

    response = client.post("/api/storyboard/playback/tick", json={"now": 0.5})
    assert response.json()["current_frame"] == pytest.approx(30.0)

    response = client.post("/api/storyboard/playback/pause")
    assert response.json()["playback_state"] == "paused"

    client.post("/api/storyboard/playback/play")
    response = client.post("/api/storyboard/playback/tick", json={"now": 10.0})
    payload = response.json()
    assert payload["playback_state"] == "stopped"
    assert payload["current_board_index"] == 1


def test_archive_download_and_upload(client: TestClient, editor: EditorFacade) -> None:
    client.post("/api/objects/imports", json={"name": "robot", "clips": [{"name": "walk"}]})
    client.post("/api/storyboard/boards", json={})

    response = client.get("/api/archive")
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert response.headers["x-storyboard-boards"] == "2"
    assert "storyboard.zip" in response.headers["content-disposition"]
    with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
        assert "storyboard_keyframes.json" in archive.namelist()

    other = TestClient(create_app(StoryboardSettings(), facade=EditorFacade()))
    upload = other.post(
        "/api/archive",
        json={"content": base64.b64encode(response.content).decode("ascii")},
    )
    assert upload.status_code == 200
    payload = upload.json()
    assert payload["entry_errors"] == {}
    assert payload["unresolved"] == []
    assert payload["state"]["timeline"] == [0, 60]
    names = sorted(item["name"] for item in other.get("/api/objects").json()["data"])
    assert names == ["robot", "skySun"]


def test_archive_upload_errors(client: TestClient) -> None:
    response = client.post("/api/archive", json={"content": "!!not base64!!"})
    assert response.status_code == 422

    response = client.post(
        "/api/archive", json={"content": base64.b64encode(b"nope").decode("ascii")}
    )
    assert response.status_code == 422
    assert client.get("/api/storyboard").json()["timeline"] == [0]


def test_missing_entry_is_reported(client: TestClient) -> None:
    archive = client.get("/api/archive").content
    buffer = io.BytesIO()
    with zipfile.ZipFile(io.BytesIO(archive)) as source, zipfile.ZipFile(buffer, "w") as target:
        for name in source.namelist():
            if name != "storyboard_keyframes.json":
                target.writestr(name, source.read(name))

    response = client.post(
        "/api/archive", json={"content": base64.b64encode(buffer.getvalue()).decode("ascii")}
    )

    assert response.status_code == 422
    assert response.json()["detail"]["entry"] == "storyboard_keyframes.json"
