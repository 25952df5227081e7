import pytest

from storyboard import InMemorySceneEngine, Quaternion, SerializationError, Vector3
from storyboard.engine import TAG_ANIMATED


def test_scene_round_trip_recreates_nodes_and_clips() -> None:
    engine = InMemorySceneEngine()
    node = engine.create_node(
        "box",
        tags=[TAG_ANIMATED],
        position=Vector3(1, 2, 3),
        rotation=Quaternion.from_euler(0.1, 0.2, 0.3),
    )
    node.animations = {"position": [{"frame": 0, "value": {"x": 1, "y": 2, "z": 3}}]}
    clip = engine.create_clip("walk", from_frame=5, to_frame=40)
    clip.weight = 0.5

    payload = engine.serialize_scene()
    loaded = InMemorySceneEngine()
    loaded.load_scene(payload)

    restored = loaded.get_node_by_name("box")
    assert restored is not None
    assert restored.position == Vector3(1, 2, 3)
    assert restored.rotation.is_close(node.rotation)
    assert restored.animations == node.animations
    assert loaded.nodes_by_tag(TAG_ANIMATED) == [restored]
    walk = loaded.get_clip_by_name("walk")
    assert walk is not None and walk.weight == 0.5


def test_clip_reports_frames_only_after_evaluation(engine) -> None:
    clip = engine.create_clip("walk", from_frame=5, to_frame=40)
    assert (clip.first_frame, clip.last_frame, clip.current_frame) == (0.0, 0.0, 0.0)

    clip.go_to_frame(100)

    assert (clip.first_frame, clip.last_frame, clip.current_frame) == (5.0, 40.0, 40.0)


def test_load_scene_rejects_bad_payloads(engine) -> None:
    engine.create_node("keep")

    with pytest.raises(SerializationError):
        engine.load_scene([])  # type: ignore[arg-type]
    with pytest.raises(SerializationError):
        engine.load_scene({"nodes": [{"name": "broken"}]})
    assert engine.nodes == []


def test_clear_disposes_everything(engine) -> None:
    node = engine.create_node("box")
    clip = engine.create_clip("walk")

    engine.clear()

    assert node.disposed and clip.disposed
    assert engine.nodes == [] and engine.clips == []
