from __future__ import annotations

from typing import List

import pytest

from storyboard import ManualClock, PlaybackController, PlaybackState, Vector3


@pytest.fixture()
def three_boards(registry, make_transform):
    """A box moving 60 units along x per board, boards at frames 0, 60 and 120."""

    target = make_transform(position=Vector3(0, 0, 0))
    target.set_position(Vector3(60, 0, 0))
    registry.add_board(60)
    target.set_position(Vector3(120, 0, 0))
    registry.add_board(60)
    return target


def test_playback_interpolates_and_advances_boards(registry, three_boards, clock) -> None:
    controller = PlaybackController(registry, clock=clock)
    finished: List[bool] = []

    controller.play(on_end=lambda: finished.append(True))
    assert controller.state is PlaybackState.PLAYING
    assert three_boards.get_position() == Vector3(0, 0, 0)

    clock.advance(0.5)
    assert controller.tick() == pytest.approx(30.0)
    assert three_boards.get_position().is_close(Vector3(30, 0, 0))
    assert registry.current_board_index == 0

    clock.advance(0.5)
    controller.tick()
    assert registry.current_board_index == 1
    assert three_boards.get_position().is_close(Vector3(60, 0, 0))

    clock.advance(1.0)
    controller.tick()
    assert controller.state is PlaybackState.STOPPED
    assert registry.current_board_index == 2
    assert three_boards.get_position() == Vector3(120, 0, 0)
    assert finished == [True]

    clock.advance(1.0)
    controller.tick()
    assert finished == [True]


def test_boards_advance_with_elapsed_frames_not_fixed_seconds(registry, make_transform, clock) -> None:
    make_transform()
    registry.add_board(30)
    registry.add_board(120)
    controller = PlaybackController(registry, clock=clock)

    controller.play()
    clock.advance(0.5)
    controller.tick()

    assert registry.current_board_index == 1


def test_fixed_board_seconds_restores_legacy_cadence(registry, make_transform, clock) -> None:
    make_transform()
    registry.add_board(30)
    registry.add_board(120)
    controller = PlaybackController(registry, clock=clock, fixed_board_seconds=1.0)

    controller.play()
    clock.advance(0.5)
    controller.tick()
    assert registry.current_board_index == 0

    clock.advance(0.5)
    controller.tick()
    assert registry.current_board_index == 1

    clock.advance(1.0)
    controller.tick()
    assert registry.current_board_index == 2
    assert controller.state is PlaybackState.PLAYING


def test_pause_cancels_tickers_and_resume_continues(registry, three_boards, clock) -> None:
    controller = PlaybackController(registry, clock=clock)
    frames: List[float] = []
    controller.add_tick_listener(frames.append)

    controller.play()
    clock.advance(0.5)
    controller.tick()
    controller.pause()
    assert controller.state is PlaybackState.PAUSED

    clock.advance(10.0)
    assert controller.tick() == pytest.approx(30.0)
    assert frames == [pytest.approx(30.0)]
    assert three_boards.get_position().is_close(Vector3(30, 0, 0))

    controller.play()
    clock.advance(0.5)
    assert controller.tick() == pytest.approx(60.0)
    assert registry.current_board_index == 1


def test_completion_callback_fires_once_per_cycle(registry, three_boards, clock) -> None:
    controller = PlaybackController(registry, clock=clock)
    calls: List[str] = []

    controller.play(on_end=lambda: calls.append("first"))
    controller.play(on_end=lambda: calls.append("first"))
    clock.advance(0.5)
    controller.tick()
    controller.pause()
    controller.play(on_end=lambda: calls.append("resumed"))
    clock.advance(2.0)
    controller.tick()
    controller.tick()

    assert calls == ["resumed"]
    assert controller.state is PlaybackState.STOPPED


def test_stop_does_not_fire_completion(registry, three_boards, clock) -> None:
    controller = PlaybackController(registry, clock=clock)
    finished: List[bool] = []

    controller.play(on_end=lambda: finished.append(True))
    clock.advance(0.5)
    controller.tick()
    controller.stop()
    clock.advance(5.0)
    controller.tick()

    assert controller.state is PlaybackState.STOPPED
    assert finished == []


def test_ticks_settle_observers(registry, three_boards, clock) -> None:
    events: List[str] = []
    three_boards.subscribe(lambda _target, event: events.append(event))
    controller = PlaybackController(registry, clock=clock)

    controller.play()
    clock.advance(0.25)
    controller.tick()

    assert events == ["settled"]


def test_speed_scales_the_playhead(registry, three_boards) -> None:
    clock = ManualClock()
    controller = PlaybackController(registry, clock=clock, speed=2.0)

    controller.play()
    clock.advance(0.5)

    assert controller.tick() == pytest.approx(60.0)


def test_invalid_controller_arguments(registry) -> None:
    with pytest.raises(ValueError):
        PlaybackController(registry, speed=0)
    with pytest.raises(ValueError):
        PlaybackController(registry, fixed_board_seconds=0)
    with pytest.raises(ValueError):
        ManualClock().advance(-1)
