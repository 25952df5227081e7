"""Animatable targets: transform objects and nested animation clip proxies."""

from __future__ import annotations

from enum import Enum
from typing import Callable, List, Tuple, Union

from .channel import ChannelValue, PropertyKind, TRANSFORM_KINDS, coerce_value
from .engine import AnimationClip, SceneEngine, SceneNode
from .errors import UnsupportedChannel
from .math3d import Quaternion, Vector3

TargetListener = Callable[["AnimatableTarget", str], None]

EVENT_CHANGED = "changed"
EVENT_SETTLED = "settled"


class TargetKind(str, Enum):
    """The closed set of animatable target variants."""

    TRANSFORM = "transform"
    NESTED_ANIMATION = "nestedAnimation"


class _Observable:
    """Minimal publish/subscribe hook shared by every target."""

    def __init__(self) -> None:
        self._listeners: List[TargetListener] = []

    def subscribe(self, listener: TargetListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event: str) -> None:
        for listener in list(self._listeners):
            listener(self, event)  # type: ignore[arg-type]

    def _clear_listeners(self) -> None:
        self._listeners.clear()


class NestedAnimationTarget(_Observable):
    """Proxy exposing a pre-authored clip's playhead as an animatable scalar."""

    kind = TargetKind.NESTED_ANIMATION
    supported_kinds: Tuple[PropertyKind, ...] = (PropertyKind.PLAYHEAD_FRAME,)

    def __init__(
        self,
        clip: AnimationClip,
        engine: SceneEngine,
        *,
        owner: "TransformTarget | None" = None,
    ) -> None:
        super().__init__()
        self.clip = clip
        self.engine = engine
        self.owner = owner
        self.disposed = False

    def __repr__(self) -> str:
        return f"NestedAnimationTarget({self.name!r}, id={self.id!r})"

    @property
    def id(self) -> str:
        return self.clip.id

    @property
    def name(self) -> str:
        return self.clip.name

    @property
    def first_frame(self) -> float:
        return self.clip.first_frame

    @property
    def last_frame(self) -> float:
        return self.clip.last_frame

    @property
    def blend_weight(self) -> float:
        return self.clip.weight

    @blend_weight.setter
    def blend_weight(self, weight: float) -> None:
        self.clip.weight = float(weight)

    @property
    def loop(self) -> bool:
        return self.clip.loop

    @loop.setter
    def loop(self, value: bool) -> None:
        self.clip.loop = bool(value)

    def get_playhead_frame(self) -> float:
        return self.clip.current_frame

    def seek_playhead(self, frame: float) -> None:
        """Jump the clip to ``frame`` without interpolation."""

        self.clip.go_to_frame(frame)

    def play(self) -> None:
        self.clip.play()

    def pause(self) -> None:
        self.clip.pause()

    def stop(self) -> None:
        self.clip.stop()

    def reset(self) -> None:
        self.clip.reset()

    def get_value(self, kind: PropertyKind) -> ChannelValue:
        if kind is PropertyKind.PLAYHEAD_FRAME:
            return self.get_playhead_frame()
        raise UnsupportedChannel(
            f"Nested animation '{self.name}' has no '{kind.value}' channel",
            property_kind=kind,
        )

    def set_value(self, kind: PropertyKind, value: object) -> None:
        if kind is PropertyKind.PLAYHEAD_FRAME:
            self.seek_playhead(coerce_value(kind, value))  # type: ignore[arg-type]
            return
        raise UnsupportedChannel(
            f"Nested animation '{self.name}' has no '{kind.value}' channel",
            property_kind=kind,
        )

    def dispose(self) -> None:
        if self.disposed:
            return
        self.engine.dispose_clip(self.clip)
        self._clear_listeners()
        self.disposed = True


class TransformTarget(_Observable):
    """A transform-bearing scene object with position, rotation and scaling."""

    kind = TargetKind.TRANSFORM
    supported_kinds: Tuple[PropertyKind, ...] = TRANSFORM_KINDS

    def __init__(self, node: SceneNode, engine: SceneEngine) -> None:
        super().__init__()
        self.node = node
        self.engine = engine
        self.nested: List[NestedAnimationTarget] = []
        self.disposed = False

    def __repr__(self) -> str:
        return f"TransformTarget({self.name!r}, id={self.id!r})"

    @property
    def id(self) -> str:
        return self.node.id

    @property
    def name(self) -> str:
        return self.node.name

    @property
    def tags(self) -> set[str]:
        return self.node.tags

    def get_position(self) -> Vector3:
        return self.node.position

    def get_rotation(self) -> Quaternion:
        return self.node.rotation

    def get_scaling(self) -> Vector3:
        return self.node.scaling

    def set_position(self, value: Vector3) -> None:
        self.node.position = coerce_value(PropertyKind.POSITION, value)  # type: ignore[assignment]

    def set_rotation(self, value: Quaternion) -> None:
        self.node.rotation = coerce_value(PropertyKind.ROTATION, value)  # type: ignore[assignment]

    def set_scaling(self, value: Vector3) -> None:
        self.node.scaling = coerce_value(PropertyKind.SCALING, value)  # type: ignore[assignment]

    def get_value(self, kind: PropertyKind) -> ChannelValue:
        if kind is PropertyKind.POSITION:
            return self.get_position()
        if kind is PropertyKind.ROTATION:
            return self.get_rotation()
        if kind is PropertyKind.SCALING:
            return self.get_scaling()
        raise UnsupportedChannel(
            f"Transform '{self.name}' has no '{kind.value}' channel", property_kind=kind
        )

    def set_value(self, kind: PropertyKind, value: object) -> None:
        if kind is PropertyKind.POSITION:
            self.set_position(value)  # type: ignore[arg-type]
        elif kind is PropertyKind.ROTATION:
            self.set_rotation(value)  # type: ignore[arg-type]
        elif kind is PropertyKind.SCALING:
            self.set_scaling(value)  # type: ignore[arg-type]
        else:
            raise UnsupportedChannel(
                f"Transform '{self.name}' has no '{kind.value}' channel",
                property_kind=kind,
            )

    def add_nested(self, clip: AnimationClip) -> NestedAnimationTarget:
        """Wrap ``clip`` as a nested animation owned by this transform."""

        nested = NestedAnimationTarget(clip, self.engine, owner=self)
        self.nested.append(nested)
        return nested

    def dispose(self) -> None:
        """Dispose every owned nested animation and then the node itself."""

        if self.disposed:
            return
        for nested in self.nested:
            nested.dispose()
        self.nested.clear()
        self.engine.dispose_node(self.node)
        self._clear_listeners()
        self.disposed = True


AnimatableTarget = Union[TransformTarget, NestedAnimationTarget]


__all__ = [
    "AnimatableTarget",
    "EVENT_CHANGED",
    "EVENT_SETTLED",
    "NestedAnimationTarget",
    "TargetKind",
    "TargetListener",
    "TransformTarget",
]
