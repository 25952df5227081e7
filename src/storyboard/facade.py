"""Editor-facing operations over one storyboard document."""

from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Sequence, Tuple

from .channel import ChannelValue, PropertyKind
from .codec import ArchiveCodec, LoadReport
from .engine import (
    TAG_GIZMO_ATTACHABLE,
    TAG_SHADOW_CASTER,
    TAG_SUN_PROXY,
    TAG_WITHOUT_CLIPS,
    InMemorySceneEngine,
    SceneEngine,
)
from .environment import SkyLighting, create_sun_proxy
from .errors import InvariantViolation, NotFound, UnsupportedChannel
from .math3d import Quaternion, Vector3
from .playback import Clock, PlaybackController
from .registry import StoryboardRegistry
from .settings import StoryboardSettings
from .targets import AnimatableTarget, NestedAnimationTarget, TargetKind, TransformTarget

LOG = logging.getLogger(__name__)


class GizmoMode(str, Enum):
    POSITION = "position"
    ROTATION = "rotation"
    SCALE = "scale"


class PrimitiveKind(str, Enum):
    BOX = "box"
    SPHERE = "sphere"
    CYLINDER = "cylinder"
    TORUS = "torus"
    PLANE = "plane"
    GROUND = "ground"


@dataclass
class SceneSettings:
    """Editor state that is not part of the saved document."""

    transform_gizmo_mode: GizmoMode = GizmoMode.POSITION
    new_primitive_mesh_type: PrimitiveKind = PrimitiveKind.BOX
    current_board_index: int = 0
    selected_item_id: str | None = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "transformGizmoMode": self.transform_gizmo_mode.value,
            "newPrimitiveMeshType": self.new_primitive_mesh_type.value,
            "currentBoardIndex": self.current_board_index,
            "selectedItemID": self.selected_item_id,
        }


@dataclass(frozen=True)
class ClipSpec:
    """A clip found in an imported model."""

    name: str
    first_frame: float = 0.0
    last_frame: float = 0.0

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("Clip name must be a non-empty string.")
        object.__setattr__(self, "name", self.name.strip())
        if self.last_frame < self.first_frame:
            raise ValueError(f"Clip '{self.name}' ends before it starts.")


@dataclass(frozen=True)
class Inspectable:
    """Read-only view of an object shown in the editor's inspector."""

    id: str
    name: str
    kind: str
    properties: Dict[str, Any] = field(default_factory=dict)
    children: Tuple["Inspectable", ...] = ()

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "properties": dict(self.properties),
            "children": [child.to_payload() for child in self.children],
        }


def _rounded(values: Sequence[float]) -> List[float]:
    return [round(value, 6) for value in values]


def _coerce_vector(value: Any) -> Vector3:
    if isinstance(value, Vector3):
        return value
    if isinstance(value, Mapping):
        return Vector3.from_mapping(value)
    if isinstance(value, (list, tuple)):
        return Vector3.from_iterable(value)
    raise TypeError(f"Expected a vector, got {type(value)!r}")


def _coerce_rotation(value: Any) -> Quaternion:
    if isinstance(value, Quaternion):
        return value
    if isinstance(value, Mapping):
        return Quaternion.from_mapping(value)
    if isinstance(value, (list, tuple)):
        if len(value) == 4:
            return Quaternion(*value)
        return Quaternion.from_euler_degrees(value)
    raise TypeError(f"Expected a rotation, got {type(value)!r}")


def coerce_live_value(kind: PropertyKind, value: Any) -> ChannelValue:
    """Convert editor input (mappings, sequences, numbers) to a channel value.

    Three-item rotation sequences are Euler angles in degrees; four items are
    a quaternion.
    """

    if kind is PropertyKind.ROTATION:
        return _coerce_rotation(value)
    if kind is PropertyKind.POSITION or kind is PropertyKind.SCALING:
        return _coerce_vector(value)
    if kind is PropertyKind.PLAYHEAD_FRAME:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"playhead frame must be a number, got {type(value)!r}")
        return float(value)
    raise UnsupportedChannel(f"Unsupported channel property '{kind}'", property_kind=kind)


class PendingImport:
    """An import whose model is still loading.

    The import keeps the storyboard it was started against. Completing it
    after the document has been replaced adds the model to that old
    storyboard, not the current one, and then disposes it so nothing is
    left behind in the live scene.
    """

    def __init__(self, facade: "EditorFacade", name: str) -> None:
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Imported model name must be a non-empty string.")
        self.name = name.strip()
        self._facade = facade
        self._registry = facade.registry
        self._engine = facade.engine
        self.target: TransformTarget | None = None

    @property
    def completed(self) -> bool:
        return self.target is not None

    @property
    def stale(self) -> bool:
        return self._registry is not self._facade.registry

    def complete(self, clips: Sequence[ClipSpec | str] = ()) -> TransformTarget:
        """Create the model's transform and one nested animation per clip."""

        if self.target is not None:
            raise InvariantViolation(f"Import of '{self.name}' already completed")
        if self.stale:
            LOG.warning(
                "Import of '%s' finished after the document was replaced; "
                "it is attached to the previous storyboard and discarded",
                self.name,
            )

        clip_specs = [ClipSpec(clip) if isinstance(clip, str) else clip for clip in clips]
        tags = {TAG_GIZMO_ATTACHABLE, TAG_SHADOW_CASTER}
        if not clip_specs:
            tags.add(TAG_WITHOUT_CLIPS)
        node = self._engine.create_node(self._engine.unique_node_name(self.name), tags=tags)
        target = TransformTarget(node, self._engine)
        self._registry.register_transform(target)

        for clip_spec in clip_specs:
            clip = self._engine.create_clip(
                self._engine.unique_clip_name(clip_spec.name),
                from_frame=clip_spec.first_frame,
                to_frame=clip_spec.last_frame,
            )
            nested = target.add_nested(clip)
            nested.play()
            nested.reset()
            nested.pause()
            self._registry.register_nested(nested)

        self.target = target
        self._facade._forget_import(self)
        self._registry.settle()
        if self.stale:
            self._registry.remove_target(target)
            return target
        LOG.info("Imported '%s' with %d clip(s)", self.name, len(clip_specs))
        return target


class EditorFacade:
    """The operations the editor UI performs on the open storyboard document."""

    def __init__(
        self,
        engine: SceneEngine | None = None,
        *,
        settings: StoryboardSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or StoryboardSettings()
        self.engine = engine or InMemorySceneEngine(scene_extension=self.settings.scene_extension)
        self.codec = ArchiveCodec(
            self.settings.archive_names,
            frame_rate=self.settings.frame_rate,
            default_gap=self.settings.default_gap,
        )
        self.scene_settings = SceneSettings()
        self.sky = SkyLighting()
        self.last_report = LoadReport()
        self._clock = clock
        self._deserializing = False
        self._pending_imports: List[PendingImport] = []

        registry = self._new_registry()
        self._install(registry, create_sun_proxy(self.engine, registry))

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------

    def _new_registry(self) -> StoryboardRegistry:
        return StoryboardRegistry(
            frame_rate=self.settings.frame_rate,
            default_gap=self.settings.default_gap,
        )

    def _install(self, registry: StoryboardRegistry, sun: TransformTarget) -> None:
        self.registry = registry
        self.sun = sun
        self.playback = PlaybackController(
            registry,
            clock=self._clock,
            fixed_board_seconds=self.settings.fixed_board_seconds,
        )
        registry.add_board_listener(self._on_board_changed)
        self.scene_settings.current_board_index = registry.current_board_index
        self.scene_settings.selected_item_id = None
        self.sky.follow(sun)

    def _on_board_changed(self, registry: StoryboardRegistry) -> None:
        self.scene_settings.current_board_index = registry.current_board_index

    def _teardown(self) -> None:
        self.playback.stop()
        self.sky.detach()
        self.registry.dispose()
        self.engine.clear()

    def _forget_import(self, pending: PendingImport) -> None:
        if pending in self._pending_imports:
            self._pending_imports.remove(pending)

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        if self._deserializing:
            raise InvariantViolation("The document cannot change while an archive is loading")
        yield
        self.registry.settle()

    # ------------------------------------------------------------------
    # Boards and playback
    # ------------------------------------------------------------------

    def add_board(self, gap_frames: int | None = None) -> int:
        with self._mutation():
            return self.registry.add_board(gap_frames)

    def set_current_board(self, index: int) -> bool:
        with self._mutation():
            return self.registry.set_current_board(index)

    def get_timeline_length(self) -> int:
        return self.registry.timeline_length

    def get_current_board(self) -> int:
        return self.registry.current_board_index

    def play(self, on_end: Callable[[], None] | None = None) -> None:
        with self._mutation():
            self.playback.play(on_end)

    def pause(self) -> None:
        self.playback.pause()

    def tick(self, now: float | None = None) -> float:
        with self._mutation():
            return self.playback.tick(now)

    # ------------------------------------------------------------------
    # Live edits
    # ------------------------------------------------------------------

    def write_live_value(self, target_id: str, property_kind: PropertyKind | str, value: Any) -> None:
        """Apply ``value`` to a target and store it in the current board."""

        kind = PropertyKind.parse(property_kind)
        with self._mutation():
            target = self.registry.get_target(target_id)
            self.registry.write_live_value(target, kind, coerce_live_value(kind, value))

    def set_property(self, target_id: str, key: str, value: Any) -> None:
        """Set an inspector property.

        Transforms accept ``position``, ``rotation`` (Euler degrees or a
        quaternion) and ``scaling``. Nested animations accept
        ``currentFrame``, which is storyboarded, and ``blendWeight``, which
        is not.

        Raises:
            NotFound: If ``target_id`` is unknown.
            UnsupportedChannel: If ``key`` does not apply to the target.
        """

        with self._mutation():
            target = self._lookup_target(target_id)
            if target.kind is TargetKind.TRANSFORM:
                self._set_transform_property(target, key, value)  # type: ignore[arg-type]
            elif target.kind is TargetKind.NESTED_ANIMATION:
                self._set_nested_property(target, key, value)  # type: ignore[arg-type]
            else:
                raise UnsupportedChannel(f"Unsupported target kind {target.kind!r}")

    def _set_transform_property(self, target: TransformTarget, key: str, value: Any) -> None:
        try:
            kind = PropertyKind.parse(key)
        except UnsupportedChannel as exc:
            raise UnsupportedChannel(
                f"Transform '{target.name}' has no property '{key}'", property_kind=key
            ) from exc
        if not kind.is_transform:
            raise UnsupportedChannel(
                f"Transform '{target.name}' has no property '{key}'", property_kind=key
            )

        converted = coerce_live_value(kind, value)
        if kind in self.registry.channels_for(target):
            self.registry.write_live_value(target, kind, converted)
        else:
            # Properties without a channel, such as the sun proxy's position.
            target.set_value(kind, converted)

    def _set_nested_property(self, target: NestedAnimationTarget, key: str, value: Any) -> None:
        if key == "currentFrame":
            self.registry.write_live_value(
                target, PropertyKind.PLAYHEAD_FRAME, coerce_live_value(PropertyKind.PLAYHEAD_FRAME, value)
            )
        elif key == "blendWeight":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError("blendWeight must be a number")
            target.blend_weight = float(value)
        else:
            raise UnsupportedChannel(
                f"Nested animation '{target.name}' has no property '{key}'", property_kind=key
            )

    # ------------------------------------------------------------------
    # Scene objects
    # ------------------------------------------------------------------

    def add_primitive(self, kind: PrimitiveKind | str | None = None) -> TransformTarget:
        """Add a primitive mesh keyed at its current value on every board."""

        primitive = PrimitiveKind(kind) if kind is not None else self.scene_settings.new_primitive_mesh_type
        with self._mutation():
            node = self.engine.create_node(
                self.engine.unique_node_name(primitive.value),
                tags=(TAG_GIZMO_ATTACHABLE, TAG_SHADOW_CASTER, TAG_WITHOUT_CLIPS),
            )
            target = TransformTarget(node, self.engine)
            self.registry.register_transform(target)
        LOG.debug("Added %s primitive %s", primitive.value, target.id)
        return target

    def begin_import(self, name: str) -> PendingImport:
        if self._deserializing:
            raise InvariantViolation("Cannot start an import while an archive is loading")
        pending = PendingImport(self, name)
        self._pending_imports.append(pending)
        return pending

    @property
    def pending_imports(self) -> List[PendingImport]:
        return list(self._pending_imports)

    def select(self, item_id: str | None) -> None:
        """Select an inspectable, or clear the selection with ``None``."""

        if item_id is None:
            self.scene_settings.selected_item_id = None
            return
        target = self._lookup_target(item_id)
        self.scene_settings.selected_item_id = target.id
        if target is self.sun:
            self.scene_settings.transform_gizmo_mode = GizmoMode.ROTATION

    def delete_selected(self) -> bool:
        """Delete the selected object and everything it owns.

        Returns:
            ``False`` when nothing was selected.
        """

        selected = self.scene_settings.selected_item_id
        if selected is None:
            return False
        with self._mutation():
            target = self._lookup_target(selected)
            if target is self.sun:
                raise ValueError("The sun cannot be deleted")
            self.registry.remove_target(target)
            self.scene_settings.selected_item_id = None
        LOG.info("Deleted %s", target.name)
        return True

    def _lookup_target(self, target_id: str) -> AnimatableTarget:
        target = self.registry.find_target(target_id)
        if target is None:
            raise NotFound(f"No inspectable with id '{target_id}'", name=target_id)
        return target

    def get_inspectable(self, item_id: str, *, strict: bool = False) -> Inspectable | None:
        target = self.registry.find_target(item_id)
        if target is None:
            if strict:
                raise NotFound(f"No inspectable with id '{item_id}'", name=item_id)
            return None
        return self._describe(target)

    def inspectables(self) -> List[Inspectable]:
        """Top-level inspectables; nested animations are listed as children."""

        return [self._describe(target) for target in self.registry.transform_targets()]

    def _describe(self, target: AnimatableTarget) -> Inspectable:
        if isinstance(target, TransformTarget):
            euler = target.get_rotation().to_euler()
            return Inspectable(
                id=target.id,
                name=target.name,
                kind="sun" if target.node.has_tag(TAG_SUN_PROXY) else "mesh",
                properties={
                    "position": _rounded(target.get_position().as_tuple()),
                    "rotation": _rounded([math.degrees(angle) for angle in euler.as_tuple()]),
                    "scaling": _rounded(target.get_scaling().as_tuple()),
                },
                children=tuple(
                    self._describe(nested)
                    for nested in target.nested
                    if self.registry.is_registered(nested)
                ),
            )
        return Inspectable(
            id=target.id,
            name=target.name,
            kind="animation",
            properties={
                "firstFrame": target.first_frame,
                "lastFrame": target.last_frame,
                "currentFrame": target.get_playhead_frame(),
                "blendWeight": target.blend_weight,
            },
        )

    # ------------------------------------------------------------------
    # Scene settings
    # ------------------------------------------------------------------

    def update_settings(self, **changes: Any) -> SceneSettings:
        """Apply a partial update to :attr:`scene_settings`.

        A board index more than one past the end is ignored with a warning.
        """

        allowed = {
            "transform_gizmo_mode",
            "new_primitive_mesh_type",
            "current_board_index",
            "selected_item_id",
        }
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Unknown scene settings: {', '.join(sorted(unknown))}")

        if "current_board_index" in changes:
            index = changes["current_board_index"]
            if isinstance(index, int) and index > self.registry.timeline_length:
                LOG.warning(
                    "Ignoring board index %d beyond the %d boards",
                    index,
                    self.registry.timeline_length,
                )
            else:
                self.set_current_board(index)
        if "transform_gizmo_mode" in changes:
            self.scene_settings.transform_gizmo_mode = GizmoMode(changes["transform_gizmo_mode"])
        if "new_primitive_mesh_type" in changes:
            self.scene_settings.new_primitive_mesh_type = PrimitiveKind(
                changes["new_primitive_mesh_type"]
            )
        if "selected_item_id" in changes:
            self.select(changes["selected_item_id"])
        if self.scene_settings.selected_item_id == self.sun.id:
            self.scene_settings.transform_gizmo_mode = GizmoMode.ROTATION
        return self.scene_settings

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def serialize(self) -> bytes:
        if self._deserializing:
            raise InvariantViolation("Cannot save while an archive is loading")
        return self.codec.serialize(self.registry, self.engine, sun=self.sun)

    def deserialize(self, data: bytes) -> LoadReport:
        """Replace the open document with the archive in ``data``.

        The previous document is torn down first. If loading then fails an
        empty document is installed before the error propagates.
        """

        if self._deserializing:
            raise InvariantViolation("An archive is already loading")
        self._deserializing = True
        try:
            try:
                result = self.codec.deserialize(data, self.engine, teardown=self._teardown)
            except Exception:
                self.engine.clear()
                registry = self._new_registry()
                self._install(registry, create_sun_proxy(self.engine, registry))
                self.last_report = LoadReport()
                raise

            sun = result.sun or create_sun_proxy(self.engine, result.registry)
            self._install(result.registry, sun)
            self.last_report = result.report
            result.registry.settle()
        finally:
            self._deserializing = False
        return self.last_report


__all__ = [
    "ClipSpec",
    "EditorFacade",
    "GizmoMode",
    "Inspectable",
    "PendingImport",
    "PrimitiveKind",
    "SceneSettings",
    "coerce_live_value",
]
