"""Scene engine collaborator interface and an in-memory reference engine.

The storyboard never talks to a renderer directly. Everything it needs from
the scene (transform nodes, pre-authored animation clips, a static scene
serializer and tag queries) goes through :class:`SceneEngine`. The
:class:`InMemorySceneEngine` keeps the whole scene in plain Python objects so
the storyboard can be driven headless, for example by the HTTP API and the
test-suite.
"""

from __future__ import annotations

import copy
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Set

from .errors import SerializationError
from .math3d import Quaternion, Vector3

LOG = logging.getLogger(__name__)

# Tags understood by the storyboard when a scene is reloaded.
TAG_ANIMATED = "storyboardAnimated"
TAG_WITHOUT_CLIPS = "meshWithoutAnimationGroups"
TAG_GIZMO_ATTACHABLE = "gizmoAttachableMesh"
TAG_SHADOW_CASTER = "shadowCaster"
TAG_SUN_PROXY = "skySunGizmoAttachedMesh"

SCENE_FORMAT_VERSION = 1


@dataclass
class SceneNode:
    """A transform-bearing object living in the scene graph."""

    id: str
    name: str
    position: Vector3 = field(default_factory=Vector3.zero)
    rotation: Quaternion = field(default_factory=Quaternion.identity)
    scaling: Vector3 = field(default_factory=Vector3.one)
    tags: Set[str] = field(default_factory=set)
    metadata: Dict[str, Any] = field(default_factory=dict)
    # Serialised keyframe tracks carried with the node, keyed by property.
    animations: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    disposed: bool = False

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


@dataclass
class AnimationClip:
    """A pre-authored animation (for example an imported walk cycle).

    ``from_frame``/``to_frame`` describe the authored range. The clip only
    reports a playhead once it has been evaluated, mirroring engines that
    create their animatables lazily on the first play or seek.
    """

    id: str
    name: str
    from_frame: float = 0.0
    to_frame: float = 0.0
    weight: float = 1.0
    loop: bool = False
    evaluated: bool = False
    playing: bool = False
    frame: float = 0.0
    disposed: bool = False

    @property
    def current_frame(self) -> float:
        return self.frame if self.evaluated else 0.0

    @property
    def first_frame(self) -> float:
        return self.from_frame if self.evaluated else 0.0

    @property
    def last_frame(self) -> float:
        return self.to_frame if self.evaluated else 0.0

    def play(self) -> None:
        self.evaluated = True
        self.playing = True

    def pause(self) -> None:
        self.playing = False

    def stop(self) -> None:
        self.playing = False
        self.evaluated = False
        self.frame = self.from_frame

    def reset(self) -> None:
        self.frame = self.from_frame

    def go_to_frame(self, frame: float) -> None:
        """Jump to ``frame`` without interpolating, clamped to the authored range."""

        self.evaluated = True
        low, high = sorted((self.from_frame, self.to_frame))
        self.frame = min(max(float(frame), low), high)

    def dispose(self) -> None:
        self.playing = False
        self.disposed = True


class SceneEngine(ABC):
    """Operations the storyboard consumes from the rendering engine."""

    scene_extension: str = "scene"

    @abstractmethod
    def create_node(
        self,
        name: str,
        *,
        tags: Iterable[str] = (),
        position: Vector3 | None = None,
        rotation: Quaternion | None = None,
        scaling: Vector3 | None = None,
    ) -> SceneNode:
        """Create a transform node with a fresh unique identifier."""

    @abstractmethod
    def dispose_node(self, node: SceneNode) -> None:
        """Remove ``node`` from the scene and release its resources."""

    @abstractmethod
    def create_clip(
        self, name: str, *, from_frame: float = 0.0, to_frame: float = 0.0
    ) -> AnimationClip:
        """Register a pre-authored animation clip."""

    @abstractmethod
    def dispose_clip(self, clip: AnimationClip) -> None:
        """Remove ``clip`` from the scene."""

    @abstractmethod
    def get_node_by_id(self, node_id: str) -> SceneNode | None:
        """Return the node with ``node_id`` or ``None``."""

    @abstractmethod
    def get_node_by_name(self, name: str) -> SceneNode | None:
        """Return the first node called ``name`` or ``None``."""

    @abstractmethod
    def get_clip_by_name(self, name: str) -> AnimationClip | None:
        """Return the first clip called ``name`` or ``None``."""

    @abstractmethod
    def nodes_by_tag(self, tag: str) -> List[SceneNode]:
        """Return every live node carrying ``tag``."""

    def unique_node_name(self, name: str) -> str:
        """Return ``name``, suffixed with ``_2``, ``_3``... if a node already uses it."""

        return _first_free(name, lambda candidate: self.get_node_by_name(candidate) is None)

    def unique_clip_name(self, name: str) -> str:
        return _first_free(name, lambda candidate: self.get_clip_by_name(candidate) is None)

    @abstractmethod
    def serialize_scene(self) -> Dict[str, Any]:
        """Return a fresh JSON-serialisable description of the static scene.

        The ``nodes`` and ``clips`` arrays hold one object per item with at
        least a ``name``; node entries also carry ``tags`` and ``animations``.
        Callers may modify the returned payload.
        """

    @abstractmethod
    def load_scene(self, payload: Mapping[str, Any]) -> None:
        """Replace the current scene with the one described by ``payload``.

        Raises:
            SerializationError: If the payload cannot be understood.
        """

    @abstractmethod
    def clear(self) -> None:
        """Dispose every node and clip in the scene."""


def _first_free(name: str, is_free: Callable[[str], bool]) -> str:
    candidate, suffix = name, 1
    while not is_free(candidate):
        suffix += 1
        candidate = f"{name}_{suffix}"
    return candidate


class InMemorySceneEngine(SceneEngine):
    """Keep the scene graph in process memory."""

    def __init__(self, *, scene_extension: str = "scene") -> None:
        self.scene_extension = scene_extension
        self._ids = itertools.count(1)
        self._nodes: Dict[str, SceneNode] = {}
        self._clips: Dict[str, AnimationClip] = {}
        self.environment: Dict[str, Any] = {"reflectionProbe": {"size": 64}}

    def _unique_id(self) -> str:
        return str(next(self._ids))

    @property
    def nodes(self) -> List[SceneNode]:
        return list(self._nodes.values())

    @property
    def clips(self) -> List[AnimationClip]:
        return list(self._clips.values())

    def create_node(
        self,
        name: str,
        *,
        tags: Iterable[str] = (),
        position: Vector3 | None = None,
        rotation: Quaternion | None = None,
        scaling: Vector3 | None = None,
    ) -> SceneNode:
        node = SceneNode(
            id=self._unique_id(),
            name=name,
            position=position or Vector3.zero(),
            rotation=rotation or Quaternion.identity(),
            scaling=scaling or Vector3.one(),
            tags=set(tags),
        )
        self._nodes[node.id] = node
        return node

    def dispose_node(self, node: SceneNode) -> None:
        self._nodes.pop(node.id, None)
        node.disposed = True

    def create_clip(
        self, name: str, *, from_frame: float = 0.0, to_frame: float = 0.0
    ) -> AnimationClip:
        clip = AnimationClip(
            id=self._unique_id(),
            name=name,
            from_frame=float(from_frame),
            to_frame=float(to_frame),
            frame=float(from_frame),
        )
        self._clips[clip.id] = clip
        return clip

    def dispose_clip(self, clip: AnimationClip) -> None:
        self._clips.pop(clip.id, None)
        clip.dispose()

    def get_node_by_id(self, node_id: str) -> SceneNode | None:
        return self._nodes.get(node_id)

    def get_node_by_name(self, name: str) -> SceneNode | None:
        for node in self._nodes.values():
            if node.name == name:
                return node
        return None

    def get_clip_by_name(self, name: str) -> AnimationClip | None:
        for clip in self._clips.values():
            if clip.name == name:
                return clip
        return None

    def nodes_by_tag(self, tag: str) -> List[SceneNode]:
        return [node for node in self._nodes.values() if tag in node.tags]

    def serialize_scene(self) -> Dict[str, Any]:
        return {
            "version": SCENE_FORMAT_VERSION,
            "environment": copy.deepcopy(self.environment),
            "nodes": [
                {
                    "name": node.name,
                    "position": node.position.to_payload(),
                    "rotation": node.rotation.to_payload(),
                    "scaling": node.scaling.to_payload(),
                    "tags": sorted(node.tags),
                    "metadata": copy.deepcopy(node.metadata),
                    "animations": copy.deepcopy(node.animations),
                }
                for node in self._nodes.values()
            ],
            "clips": [
                {
                    "name": clip.name,
                    "from": clip.from_frame,
                    "to": clip.to_frame,
                    "weight": clip.weight,
                    "loop": clip.loop,
                }
                for clip in self._clips.values()
            ],
        }

    def load_scene(self, payload: Mapping[str, Any]) -> None:
        if not isinstance(payload, Mapping):
            raise SerializationError("Scene payload must be a JSON object")

        nodes_payload = payload.get("nodes", [])
        clips_payload = payload.get("clips", [])
        if not isinstance(nodes_payload, list) or not isinstance(clips_payload, list):
            raise SerializationError("Scene payload 'nodes' and 'clips' must be arrays")

        self.clear()
        try:
            for entry in nodes_payload:
                node = self.create_node(
                    str(entry["name"]),
                    tags=[str(tag) for tag in entry.get("tags", [])],
                    position=Vector3.from_mapping(entry["position"]),
                    rotation=Quaternion.from_mapping(entry["rotation"]),
                    scaling=Vector3.from_mapping(entry["scaling"]),
                )
                node.metadata = dict(entry.get("metadata", {}))
                node.animations = {
                    str(kind): list(keys)
                    for kind, keys in dict(entry.get("animations", {})).items()
                }
            for entry in clips_payload:
                clip = self.create_clip(
                    str(entry["name"]),
                    from_frame=float(entry.get("from", 0.0)),
                    to_frame=float(entry.get("to", 0.0)),
                )
                clip.weight = float(entry.get("weight", 1.0))
                clip.loop = bool(entry.get("loop", False))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            self.clear()
            raise SerializationError(f"Invalid scene payload: {exc}") from exc

        LOG.debug(
            "Loaded scene with %d nodes and %d clips", len(self._nodes), len(self._clips)
        )

    def clear(self) -> None:
        for node in list(self._nodes.values()):
            self.dispose_node(node)
        for clip in list(self._clips.values()):
            self.dispose_clip(clip)


__all__ = [
    "AnimationClip",
    "InMemorySceneEngine",
    "SCENE_FORMAT_VERSION",
    "SceneEngine",
    "SceneNode",
    "TAG_ANIMATED",
    "TAG_GIZMO_ATTACHABLE",
    "TAG_SHADOW_CASTER",
    "TAG_SUN_PROXY",
    "TAG_WITHOUT_CLIPS",
]
