"""Sun proxy and the sky lighting derived from its orientation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from .channel import PropertyKind
from .engine import TAG_GIZMO_ATTACHABLE, TAG_SUN_PROXY, SceneEngine
from .math3d import Vector3
from .registry import StoryboardRegistry
from .targets import EVENT_SETTLED, AnimatableTarget, TransformTarget

LOG = logging.getLogger(__name__)

SUN_PROXY_NAME = "skySun"
DEFAULT_SUN_DIRECTION = Vector3(-0.95, -0.28, 0.0)
SUNRISE_SUNSET_THRESHOLD = 0.2


@dataclass(frozen=True)
class Color3:
    r: float
    g: float
    b: float

    def lerp(self, other: "Color3", amount: float) -> "Color3":
        return Color3(
            self.r + (other.r - self.r) * amount,
            self.g + (other.g - self.g) * amount,
            self.b + (other.b - self.b) * amount,
        )

    def to_payload(self) -> dict[str, float]:
        return {"r": self.r, "g": self.g, "b": self.b}


SUNRISE_SUNSET_COLOR = Color3(1.0, 0.65, 0.0)
DAY_SKY_COLOR = Color3(0.6, 0.6, 0.6)
DIM_WHITE_SKY_COLOR = Color3(0.4, 0.4, 0.4)


def sun_color(elevation: float) -> Color3:
    """Return the sun's light colour for ``elevation`` (0 at the horizon, 1 at noon).

    Near the horizon the colour runs from dim white through orange towards
    daylight; above the threshold it is plain daylight.
    """

    if elevation > SUNRISE_SUNSET_THRESHOLD:
        return DAY_SKY_COLOR
    amount = max(0.0, elevation) / SUNRISE_SUNSET_THRESHOLD
    towards_orange = DIM_WHITE_SKY_COLOR.lerp(SUNRISE_SUNSET_COLOR, amount)
    towards_day = SUNRISE_SUNSET_COLOR.lerp(DAY_SKY_COLOR, amount)
    return towards_orange.lerp(towards_day, amount)


@dataclass(frozen=True)
class SkyState:
    sun_direction: Vector3
    sun_position: Vector3
    sun_color: Color3

    @property
    def elevation(self) -> float:
        return -self.sun_direction.y

    def to_payload(self) -> dict[str, object]:
        return {
            "sunDirection": self.sun_direction.to_payload(),
            "sunPosition": self.sun_position.to_payload(),
            "sunColor": self.sun_color.to_payload(),
            "elevation": self.elevation,
        }


class SkyLighting:
    """Observer that keeps the sky in step with the sun proxy's rotation.

    The sky is refreshed on the ``settled`` notification only, so a batch of
    rotation writes produces a single refresh.
    """

    def __init__(self, *, base_direction: Vector3 = DEFAULT_SUN_DIRECTION) -> None:
        length = base_direction.length()
        if length == 0:
            raise ValueError("Sun base direction must have a non-zero length")
        self.base_direction = base_direction.scale(1.0 / length)
        self.state = self._state_for(self.base_direction)
        self.refreshes = 0
        self._sun: TransformTarget | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def sun(self) -> TransformTarget | None:
        return self._sun

    def follow(self, sun: TransformTarget) -> None:
        """Start tracking ``sun`` and refresh immediately."""

        self.detach()
        self._sun = sun
        self._unsubscribe = sun.subscribe(self._on_target_event)
        self.refresh()

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = None
        self._sun = None

    def refresh(self) -> SkyState:
        if self._sun is not None and not self._sun.disposed:
            direction = self._sun.get_rotation().rotate(self.base_direction)
            self.state = self._state_for(direction)
            self.refreshes += 1
            LOG.debug("Sky refreshed, sun elevation %.3f", self.state.elevation)
        return self.state

    def _on_target_event(self, target: AnimatableTarget, event: str) -> None:
        if event == EVENT_SETTLED:
            self.refresh()

    @staticmethod
    def _state_for(direction: Vector3) -> SkyState:
        return SkyState(
            sun_direction=direction,
            sun_position=direction.scale(-1.0),
            sun_color=sun_color(-direction.y),
        )


def create_sun_proxy(
    engine: SceneEngine,
    registry: StoryboardRegistry,
    *,
    name: str = SUN_PROXY_NAME,
) -> TransformTarget:
    """Create the sun's gizmo proxy and register its rotation with the storyboard.

    Only the rotation channel is storyboarded; moving or scaling the proxy
    has no effect on the lighting.
    """

    node = engine.create_node(name, tags=(TAG_SUN_PROXY, TAG_GIZMO_ATTACHABLE))
    sun = TransformTarget(node, engine)
    registry.register_transform(sun, kinds=(PropertyKind.ROTATION,))
    return sun


__all__ = [
    "Color3",
    "DEFAULT_SUN_DIRECTION",
    "SUN_PROXY_NAME",
    "SkyLighting",
    "SkyState",
    "create_sun_proxy",
    "sun_color",
]
