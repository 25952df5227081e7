"""Per-property keyframe tracks keyed by storyboard board index."""

from __future__ import annotations

import bisect
import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Union

from .errors import UnsupportedChannel
from .math3d import Quaternion, Vector3

ChannelValue = Union[Vector3, Quaternion, float]


class PropertyKind(str, Enum):
    """Animatable properties a channel can drive."""

    POSITION = "position"
    ROTATION = "rotation"
    SCALING = "scaling"
    PLAYHEAD_FRAME = "playheadFrame"

    @classmethod
    def parse(cls, value: "PropertyKind | str") -> "PropertyKind":
        """Return the matching kind, raising :class:`UnsupportedChannel` otherwise."""

        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as exc:
            raise UnsupportedChannel(
                f"Unsupported channel property '{value}'", property_kind=value
            ) from exc

    @property
    def is_transform(self) -> bool:
        return self is not PropertyKind.PLAYHEAD_FRAME


TRANSFORM_KINDS = (PropertyKind.POSITION, PropertyKind.ROTATION, PropertyKind.SCALING)


def coerce_value(kind: PropertyKind, value: object) -> ChannelValue:
    """Validate ``value`` against the value type stored by ``kind`` channels.

    Raises:
        TypeError: If the value has the wrong type for the channel.
        UnsupportedChannel: If ``kind`` is not a known property kind.
    """

    if kind is PropertyKind.POSITION or kind is PropertyKind.SCALING:
        if isinstance(value, Vector3):
            return value
        raise TypeError(f"{kind.value} keys must be Vector3, got {type(value)!r}")
    if kind is PropertyKind.ROTATION:
        if isinstance(value, Quaternion):
            return value
        raise TypeError(f"rotation keys must be Quaternion, got {type(value)!r}")
    if kind is PropertyKind.PLAYHEAD_FRAME:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"playhead keys must be numbers, got {type(value)!r}")
        number = float(value)
        if not math.isfinite(number):
            raise ValueError("playhead keys must be finite numbers")
        return number
    raise UnsupportedChannel(f"Unsupported channel property '{kind}'", property_kind=kind)


def interpolate(kind: PropertyKind, start: ChannelValue, end: ChannelValue, amount: float) -> ChannelValue:
    """Blend two key values using the default curve for ``kind``."""

    if kind is PropertyKind.ROTATION:
        return start.slerp(end, amount)  # type: ignore[union-attr]
    if kind is PropertyKind.POSITION or kind is PropertyKind.SCALING:
        return start.lerp(end, amount)  # type: ignore[union-attr]
    if kind is PropertyKind.PLAYHEAD_FRAME:
        return start + (end - start) * amount  # type: ignore[operator]
    raise UnsupportedChannel(f"Unsupported channel property '{kind}'", property_kind=kind)


@dataclass(frozen=True)
class ChannelKey:
    """A single ``frame -> value`` pair stored for one board."""

    frame: int
    value: ChannelValue


class Channel:
    """Ordered keys for one property of one target, one key per board."""

    def __init__(self, owner_id: str, property_kind: PropertyKind | str, *, name: str | None = None) -> None:
        self.owner_id = owner_id
        self.property_kind = PropertyKind.parse(property_kind)
        self.name = name or f"{owner_id}_{self.property_kind.value}"
        self._keys: List[ChannelKey] = []

    def __repr__(self) -> str:
        return f"Channel({self.name!r}, keys={len(self._keys)})"

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[ChannelKey]:
        return iter(self._keys)

    @property
    def keys(self) -> List[ChannelKey]:
        return list(self._keys)

    @property
    def values(self) -> List[ChannelValue]:
        return [key.value for key in self._keys]

    @property
    def frames(self) -> List[int]:
        return [key.frame for key in self._keys]

    def append(self, frame: int, value: object) -> ChannelKey:
        """Append a key for the next board."""

        if self._keys and frame < self._keys[-1].frame:
            raise ValueError(
                f"Channel '{self.name}' frames must be non-decreasing "
                f"(got {frame} after {self._keys[-1].frame})"
            )
        key = ChannelKey(int(frame), coerce_value(self.property_kind, value))
        self._keys.append(key)
        return key

    def value_at(self, index: int) -> ChannelValue:
        return self._keys[index].value

    def set_value(self, index: int, value: object) -> None:
        """Overwrite the value stored at board ``index`` in place."""

        key = self._keys[index]
        self._keys[index] = ChannelKey(key.frame, coerce_value(self.property_kind, value))

    def replace_keys(self, keys: Iterable[ChannelKey]) -> None:
        """Replace every key, validating order and value types."""

        self._keys = []
        for key in keys:
            self.append(key.frame, key.value)

    def clear(self) -> None:
        self._keys.clear()

    def evaluate(self, frame: float) -> ChannelValue:
        """Return the interpolated value at ``frame``.

        Frames before the first key or after the last key clamp to the end
        values. Boards sharing the same frame resolve to the later key.
        """

        if not self._keys:
            raise IndexError(f"Channel '{self.name}' has no keys to evaluate")

        frames = self.frames
        if frame <= frames[0]:
            return self._keys[bisect.bisect_right(frames, frames[0]) - 1].value
        if frame >= frames[-1]:
            return self._keys[-1].value

        upper = bisect.bisect_right(frames, frame)
        lower = upper - 1
        start, end = self._keys[lower], self._keys[upper]
        span = end.frame - start.frame
        if span <= 0:
            return end.value
        amount = (frame - start.frame) / span
        return interpolate(self.property_kind, start.value, end.value, amount)


__all__ = [
    "Channel",
    "ChannelKey",
    "ChannelValue",
    "PropertyKind",
    "TRANSFORM_KINDS",
    "coerce_value",
    "interpolate",
]
