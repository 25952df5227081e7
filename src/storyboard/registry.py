"""The storyboard registry: timeline, targeted channels and the board cursor."""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Sequence, Tuple

from .channel import Channel, ChannelKey, ChannelValue, PropertyKind, TRANSFORM_KINDS
from .errors import InvariantViolation, NotFound, UnsupportedChannel
from .targets import (
    EVENT_CHANGED,
    EVENT_SETTLED,
    AnimatableTarget,
    NestedAnimationTarget,
    TargetKind,
    TransformTarget,
)

LOG = logging.getLogger(__name__)

DEFAULT_FRAME_RATE = 60

RegistryListener = Callable[["StoryboardRegistry"], None]


@dataclass(frozen=True)
class TargetedAnimation:
    """Associates one channel with the target whose live state it drives."""

    target: AnimatableTarget
    channel: Channel

    @property
    def property_kind(self) -> PropertyKind:
        return self.channel.property_kind


def _supports(target: AnimatableTarget, kind: PropertyKind) -> bool:
    """Return whether ``target`` exposes ``kind``, dispatching on the target variant."""

    if target.kind is TargetKind.TRANSFORM:
        return kind in TRANSFORM_KINDS
    if target.kind is TargetKind.NESTED_ANIMATION:
        return kind is PropertyKind.PLAYHEAD_FRAME
    raise UnsupportedChannel(f"Unsupported target kind {target.kind!r}")


def _validate_gap(gap_frames: object) -> int:
    if isinstance(gap_frames, bool) or not isinstance(gap_frames, int):
        raise TypeError(f"gap_frames must be an int, got {type(gap_frames)!r}")
    if gap_frames < 0:
        raise ValueError("gap_frames must be zero or a positive integer")
    return gap_frames


class StoryboardRegistry:
    """Owns the board timeline and every (target, channel) association.

    The timeline starts with a single board at frame ``0``. Every channel
    always holds exactly one key per board; the registry is the only writer of
    the timeline and pairs each timeline append with a key append on every
    channel.
    """

    def __init__(
        self,
        *,
        frame_rate: int = DEFAULT_FRAME_RATE,
        default_gap: int | None = None,
        timeline: Sequence[int] | None = None,
    ) -> None:
        if isinstance(frame_rate, bool) or not isinstance(frame_rate, int) or frame_rate <= 0:
            raise ValueError("frame_rate must be a positive integer")
        self.frame_rate = frame_rate
        self.default_gap = _validate_gap(frame_rate if default_gap is None else default_gap)

        frames = [0] if timeline is None else [int(frame) for frame in timeline]
        self._timeline: List[int] = frames
        self._check_timeline()

        self._animations: List[TargetedAnimation] = []
        self._targets: Dict[str, AnimatableTarget] = {}
        self._current_board_index = 0
        self._dirty = False
        self._matching = False
        self._pending_settle: Dict[str, AnimatableTarget] = {}
        self._board_listeners: List[RegistryListener] = []
        self._timeline_listeners: List[RegistryListener] = []
        self.match_passes = 0
        self.disposed = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def timeline(self) -> List[int]:
        return list(self._timeline)

    @property
    def timeline_length(self) -> int:
        return len(self._timeline)

    @property
    def current_board_index(self) -> int:
        return self._current_board_index

    @property
    def last_frame(self) -> int:
        if not self._timeline:
            raise InvariantViolation("Storyboard timeline is empty")
        return self._timeline[-1]

    def targets(self) -> List[AnimatableTarget]:
        return list(self._targets.values())

    def transform_targets(self) -> List[TransformTarget]:
        return [
            target
            for target in self._targets.values()
            if isinstance(target, TransformTarget)
        ]

    def nested_targets(self) -> List[NestedAnimationTarget]:
        return [
            target
            for target in self._targets.values()
            if isinstance(target, NestedAnimationTarget)
        ]

    def get_target(self, target_id: str) -> AnimatableTarget:
        try:
            return self._targets[target_id]
        except KeyError as exc:
            raise NotFound(f"Target '{target_id}' is not registered", name=target_id) from exc

    def find_target(self, target_id: str) -> AnimatableTarget | None:
        return self._targets.get(target_id)

    def is_registered(self, target: AnimatableTarget) -> bool:
        return self._targets.get(target.id) is target

    def targeted_animations(self) -> List[TargetedAnimation]:
        return list(self._animations)

    def channels_for(self, target: AnimatableTarget) -> Dict[PropertyKind, Channel]:
        return {
            animation.property_kind: animation.channel
            for animation in self._animations
            if animation.target is target
        }

    def channel_for(self, target: AnimatableTarget, kind: PropertyKind | str) -> Channel:
        property_kind = PropertyKind.parse(kind)
        for animation in self._animations:
            if animation.target is target and animation.property_kind is property_kind:
                return animation.channel
        raise NotFound(
            f"Target '{target.name}' has no registered '{property_kind.value}' channel",
            name=target.name,
        )

    def board_for_frame(self, frame: float) -> int:
        """Return the index of the last board whose frame is ``<= frame``."""

        index = bisect.bisect_right(self._timeline, frame) - 1
        return max(0, min(index, len(self._timeline) - 1))

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_board_listener(self, listener: RegistryListener) -> None:
        """Call ``listener`` whenever the current board changes."""

        self._board_listeners.append(listener)

    def add_timeline_listener(self, listener: RegistryListener) -> None:
        """Call ``listener`` whenever a board is appended."""

        self._timeline_listeners.append(listener)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_transform(
        self,
        target: TransformTarget,
        *,
        kinds: Iterable[PropertyKind] = TRANSFORM_KINDS,
        keys: Mapping[PropertyKind, Sequence[ChannelValue]] | None = None,
    ) -> Dict[PropertyKind, Channel]:
        """Create the channels of ``target`` and add them to the storyboard.

        Channels without stored ``keys`` are seeded with the target's current
        live value at every existing board.
        """

        self._ensure_not_registered(target)
        channels: Dict[PropertyKind, Channel] = {}
        for kind in kinds:
            property_kind = PropertyKind.parse(kind)
            if not _supports(target, property_kind):
                raise UnsupportedChannel(
                    f"Transform '{target.name}' cannot animate '{property_kind.value}'",
                    property_kind=property_kind,
                )
            values = None if keys is None else keys.get(property_kind)
            channels[property_kind] = self._build_channel(target, property_kind, values)

        self._targets[target.id] = target
        for channel in channels.values():
            self._animations.append(TargetedAnimation(target, channel))
        return channels

    def register_nested(
        self,
        target: NestedAnimationTarget,
        *,
        keys: Sequence[ChannelValue] | None = None,
    ) -> Channel:
        """Add the playhead channel of a nested animation to the storyboard."""

        self._ensure_not_registered(target)
        channel = self._build_channel(target, PropertyKind.PLAYHEAD_FRAME, keys)
        self._targets[target.id] = target
        self._animations.append(TargetedAnimation(target, channel))
        return channel

    def remove_target(self, target: AnimatableTarget, *, dispose: bool = True) -> None:
        """Drop ``target`` and every channel and nested target it owns."""

        if not self.is_registered(target):
            raise NotFound(f"Target '{target.name}' is not registered", name=target.name)

        doomed: List[AnimatableTarget] = [target]
        if isinstance(target, TransformTarget):
            doomed.extend(nested for nested in target.nested if self.is_registered(nested))
        elif isinstance(target, NestedAnimationTarget) and target.owner is not None:
            if target in target.owner.nested:
                target.owner.nested.remove(target)

        doomed_ids = {item.id for item in doomed}
        remaining: List[TargetedAnimation] = []
        for animation in self._animations:
            if animation.target.id in doomed_ids:
                animation.channel.clear()
            else:
                remaining.append(animation)
        self._animations = remaining
        for item in doomed:
            self._targets.pop(item.id, None)
            self._pending_settle.pop(item.id, None)

        if dispose:
            target.dispose()
        LOG.debug("Removed target %s (%d channels left)", target.name, len(self._animations))

    def dispose(self) -> None:
        """Dispose every target and channel and reset the registry."""

        for target in list(self._targets.values()):
            if isinstance(target, NestedAnimationTarget) and target.owner is not None:
                continue
            target.dispose()
        for target in list(self._targets.values()):
            target.dispose()
        for animation in self._animations:
            animation.channel.clear()
        self._animations.clear()
        self._targets.clear()
        self._pending_settle.clear()
        self._board_listeners.clear()
        self._timeline_listeners.clear()
        self.disposed = True

    # ------------------------------------------------------------------
    # Board operations
    # ------------------------------------------------------------------

    def add_board(self, gap_frames: int | None = None) -> int:
        """Append a board ``gap_frames`` after the last one.

        Every channel gains one key holding its target's live value, captured
        for all channels before the timeline changes.

        Returns:
            The index of the new board.

        Raises:
            InvariantViolation: If the timeline is empty.
            UnsupportedChannel: If a channel's property is not supported by
                its target.
        """

        gap = self.default_gap if gap_frames is None else _validate_gap(gap_frames)
        if not self._timeline:
            raise InvariantViolation("No boards in the timeline; board 0 must always exist")

        snapshot: List[Tuple[Channel, ChannelValue]] = []
        for animation in self._animations:
            kind = PropertyKind.parse(animation.property_kind)
            if not _supports(animation.target, kind):
                raise UnsupportedChannel(
                    f"Unsupported animated target or property '{kind.value}' "
                    f"on '{animation.target.name}'",
                    property_kind=kind,
                )
            snapshot.append((animation.channel, animation.target.get_value(kind)))

        frame = self._timeline[-1] + gap
        self._timeline.append(frame)
        for channel, value in snapshot:
            channel.append(frame, value)

        self._check_lengths()
        LOG.debug("Added board %d at frame %d", len(self._timeline) - 1, frame)
        for listener in list(self._timeline_listeners):
            listener(self)
        return len(self._timeline) - 1

    def set_current_board(self, index: int) -> bool:
        """Move the board cursor, appending a board when ``index`` is one past the end.

        Returns:
            ``True`` when the live scene was re-matched, ``False`` when the
            call was a no-op.

        Raises:
            IndexError: If ``index`` is negative or more than one past the end.
            InvariantViolation: If called while the registry is matching.
        """

        if isinstance(index, bool) or not isinstance(index, int):
            raise TypeError(f"board index must be an int, got {type(index)!r}")
        if self._matching:
            raise InvariantViolation("set_current_board re-entered while matching a board")
        if index < 0 or index > len(self._timeline):
            raise IndexError(
                f"Board index {index} is outside 0..{len(self._timeline)}"
            )

        if index == len(self._timeline):
            self.add_board()
            self._current_board_index = index
            self._dirty = True
        elif index != self._current_board_index:
            self._current_board_index = index
            self._dirty = True

        if not self._dirty:
            return False

        self.match_current_board()
        for listener in list(self._board_listeners):
            listener(self)
        return True

    def move_cursor(self, index: int) -> None:
        """Move the board cursor without touching live state.

        Used during playback, where interpolation owns the live values.
        """

        if not 0 <= index < len(self._timeline):
            raise IndexError(f"Board index {index} is outside 0..{len(self._timeline) - 1}")
        # Live values no longer reflect a stored board.
        self._dirty = True
        if index == self._current_board_index:
            return
        self._current_board_index = index
        for listener in list(self._board_listeners):
            listener(self)

    def match_current_board(self) -> None:
        """Write every channel's key at the current board into its target."""

        if not self._timeline:
            raise InvariantViolation("No boards in the timeline")

        self._check_lengths()
        index = self._current_board_index
        self._matching = True
        try:
            for animation in self._animations:
                target = animation.target
                kind = animation.property_kind
                value = animation.channel.value_at(index)
                if target.kind is TargetKind.TRANSFORM:
                    target.set_value(kind, value)
                elif target.kind is TargetKind.NESTED_ANIMATION:
                    target.seek_playhead(value)  # type: ignore[union-attr, arg-type]
                else:
                    raise UnsupportedChannel(f"Unsupported target kind {target.kind!r}")
                self._pending_settle[target.id] = target
        finally:
            self._matching = False
        self._dirty = False
        self.match_passes += 1
        LOG.debug("Matched board %d across %d channels", index, len(self._animations))

    def write_live_value(
        self, target: AnimatableTarget, kind: PropertyKind | str, value: ChannelValue
    ) -> None:
        """Apply ``value`` to ``target`` and store it as the current board's key."""

        property_kind = PropertyKind.parse(kind)
        channel = self.channel_for(target, property_kind)
        target.set_value(property_kind, value)
        channel.set_value(self._current_board_index, value)
        self._pending_settle[target.id] = target
        target.publish(EVENT_CHANGED)

    def settle(self) -> List[AnimatableTarget]:
        """Notify observers of every target written since the last settle."""

        pending = list(self._pending_settle.values())
        self._pending_settle.clear()
        for target in pending:
            target.publish(EVENT_SETTLED)
        return pending

    def evaluate(self, frame: float) -> None:
        """Apply the interpolated value of every channel at ``frame``."""

        for animation in self._animations:
            value = animation.channel.evaluate(frame)
            animation.target.set_value(animation.property_kind, value)
            self._pending_settle[animation.target.id] = animation.target

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def verify(self) -> None:
        """Raise :class:`InvariantViolation` if the registry is inconsistent."""

        self._check_timeline()
        self._check_lengths()
        if not 0 <= self._current_board_index < len(self._timeline):
            raise InvariantViolation(
                f"Current board {self._current_board_index} is outside the timeline"
            )
        for animation in self._animations:
            if animation.channel.frames != self._timeline:
                raise InvariantViolation(
                    f"Channel '{animation.channel.name}' frames do not match the timeline"
                )

    def _check_timeline(self) -> None:
        if not self._timeline:
            raise InvariantViolation("Storyboard timeline is empty")
        if self._timeline[0] != 0:
            raise InvariantViolation("The first board must be at frame 0")
        for previous, current in zip(self._timeline, self._timeline[1:]):
            if current < previous:
                raise InvariantViolation("Storyboard timeline frames must be non-decreasing")

    def _check_lengths(self) -> None:
        expected = len(self._timeline)
        for animation in self._animations:
            if len(animation.channel) != expected:
                raise InvariantViolation(
                    f"Channel '{animation.channel.name}' has {len(animation.channel)} keys "
                    f"but the timeline has {expected} boards"
                )

    def _ensure_not_registered(self, target: AnimatableTarget) -> None:
        if target.id in self._targets:
            raise ValueError(f"Target '{target.name}' ({target.id}) is already registered")

    def _build_channel(
        self,
        target: AnimatableTarget,
        kind: PropertyKind,
        values: Sequence[ChannelValue] | None,
    ) -> Channel:
        channel = Channel(target.id, kind, name=f"{target.name}_{kind.value}")
        if values is None:
            live_value = target.get_value(kind)
            channel.replace_keys(ChannelKey(frame, live_value) for frame in self._timeline)
            return channel

        if len(values) != len(self._timeline):
            raise InvariantViolation(
                f"'{target.name}' {kind.value} has {len(values)} keys "
                f"but the timeline has {len(self._timeline)} boards"
            )
        channel.replace_keys(
            ChannelKey(frame, value) for frame, value in zip(self._timeline, values)
        )
        return channel


__all__ = [
    "DEFAULT_FRAME_RATE",
    "RegistryListener",
    "StoryboardRegistry",
    "TargetedAnimation",
]
