"""Continuous storyboard playback driven by an explicit clock."""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, List, Protocol

from .errors import InvariantViolation
from .registry import StoryboardRegistry

LOG = logging.getLogger(__name__)

TickListener = Callable[[float], None]
EndCallback = Callable[[], None]


class Clock(Protocol):
    """Source of time, in seconds, shared by interpolation and board events."""

    def now(self) -> float:
        ...


class MonotonicClock:
    """Wall clock backed by :func:`time.monotonic`."""

    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """A clock that only moves when told to, for tests and offline rendering."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("A clock cannot move backwards")
        self._now += seconds
        return self._now


class PlaybackState(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


class _Ticker:
    """A periodic job owned by the controller; cancelling stops future firings only."""

    def __init__(self, name: str, callback: Callable[[float], None]) -> None:
        self.name = name
        self._callback = callback
        self.active = True

    def cancel(self) -> None:
        self.active = False

    def fire(self, frame: float) -> None:
        if self.active:
            self._callback(frame)


class PlaybackController:
    """Plays the storyboard as one continuous, interpolated animation.

    Board ``0..N-1`` maps onto frames ``0..last_frame`` of the timeline. While
    playing, each :meth:`tick` reads the clock, applies the interpolated value
    of every channel, advances the current board once the playhead reaches the
    board's frame and refreshes presentation listeners. Reaching the last
    frame stops playback, clamps the board to ``N-1`` and fires the completion
    callback registered for this play cycle exactly once.

    ``fixed_board_seconds`` restores the legacy behaviour of advancing one
    board per fixed wall-clock interval regardless of the board gaps.
    """

    def __init__(
        self,
        registry: StoryboardRegistry,
        *,
        clock: Clock | None = None,
        speed: float = 1.0,
        fixed_board_seconds: float | None = None,
    ) -> None:
        if speed <= 0:
            raise ValueError("speed must be greater than zero")
        if fixed_board_seconds is not None and fixed_board_seconds <= 0:
            raise ValueError("fixed_board_seconds must be greater than zero")
        self.registry = registry
        self.clock: Clock = clock or MonotonicClock()
        self.speed = float(speed)
        self.fixed_board_seconds = fixed_board_seconds
        self.state = PlaybackState.STOPPED
        self.current_frame = 0.0
        self._started_at = 0.0
        self._on_end: EndCallback | None = None
        self._tick_listeners: List[TickListener] = []
        self._tickers: List[_Ticker] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_tick_listener(self, listener: TickListener) -> None:
        """Call ``listener`` with the current frame on every playback tick."""

        self._tick_listeners.append(listener)

    def remove_tick_listener(self, listener: TickListener) -> None:
        if listener in self._tick_listeners:
            self._tick_listeners.remove(listener)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @property
    def is_playing(self) -> bool:
        return self.state is PlaybackState.PLAYING

    @property
    def frames_per_second(self) -> float:
        return self.registry.frame_rate * self.speed

    def play(self, on_end: EndCallback | None = None) -> None:
        """Start playback from board 0, or resume when paused.

        ``on_end`` replaces any completion callback already registered for the
        current cycle.
        """

        if self.registry.timeline_length < 1:
            raise InvariantViolation("Cannot play a storyboard without boards")
        if on_end is not None:
            self._on_end = on_end
        if self.state is PlaybackState.PLAYING:
            return

        now = self.clock.now()
        if self.state is PlaybackState.PAUSED:
            self._started_at = now - self.current_frame / self.frames_per_second
        else:
            self.current_frame = 0.0
            self._started_at = now
            self.registry.move_cursor(0)
            self.registry.evaluate(0.0)

        self._tickers = [
            _Ticker("board", self._advance_board),
            _Ticker("presentation", self._refresh_presentation),
        ]
        self.state = PlaybackState.PLAYING
        LOG.info(
            "Playing storyboard: %d boards over %d frames",
            self.registry.timeline_length,
            self.registry.last_frame,
        )

    def pause(self) -> None:
        """Cancel both tickers, keeping whatever state was already applied."""

        if self.state is not PlaybackState.PLAYING:
            return
        self._cancel_tickers()
        self.state = PlaybackState.PAUSED
        LOG.debug("Paused storyboard at frame %.2f", self.current_frame)

    def stop(self) -> None:
        """Stop without firing the completion callback."""

        self._cancel_tickers()
        self._on_end = None
        self.state = PlaybackState.STOPPED
        self.current_frame = 0.0

    def tick(self, now: float | None = None) -> float:
        """Advance playback to the clock's current time and return the frame."""

        if self.state is not PlaybackState.PLAYING:
            return self.current_frame

        timestamp = self.clock.now() if now is None else now
        last_frame = float(self.registry.last_frame)
        elapsed_frames = max(0.0, (timestamp - self._started_at) * self.frames_per_second)
        self.current_frame = min(elapsed_frames, last_frame)

        self.registry.evaluate(self.current_frame)
        for ticker in list(self._tickers):
            ticker.fire(self.current_frame)

        if self.current_frame >= last_frame:
            self._finish()
        return self.current_frame

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _advance_board(self, frame: float) -> None:
        registry = self.registry
        last_index = registry.timeline_length - 1
        if registry.current_board_index >= last_index:
            return

        if self.fixed_board_seconds is not None:
            elapsed_seconds = frame / self.frames_per_second
            target = int(elapsed_seconds // self.fixed_board_seconds)
        else:
            target = registry.board_for_frame(frame)

        target = min(target, last_index)
        if target > registry.current_board_index:
            registry.move_cursor(target)

    def _refresh_presentation(self, frame: float) -> None:
        self.registry.settle()
        for listener in list(self._tick_listeners):
            listener(frame)

    def _cancel_tickers(self) -> None:
        for ticker in self._tickers:
            ticker.cancel()
        self._tickers = []

    def _finish(self) -> None:
        self._cancel_tickers()
        self.state = PlaybackState.STOPPED

        registry = self.registry
        registry.move_cursor(registry.timeline_length - 1)
        registry.set_current_board(registry.timeline_length - 1)
        registry.settle()

        callback, self._on_end = self._on_end, None
        LOG.info("Storyboard playback finished at frame %.2f", self.current_frame)
        if callback is not None:
            callback()


__all__ = [
    "Clock",
    "ManualClock",
    "MonotonicClock",
    "PlaybackController",
    "PlaybackState",
]
