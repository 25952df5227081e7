from __future__ import annotations

import logging

import pytest

from storyboard import StoryboardSettings


def test_defaults_when_environment_is_empty() -> None:
    settings = StoryboardSettings.from_env({})

    assert settings.frame_rate == 60
    assert settings.default_gap is None
    assert settings.gap_frames == 60
    assert settings.fixed_board_seconds is None
    assert settings.archive_names.scene == "storyboard.scene"
    assert settings.log_level == "INFO"


def test_values_are_read_from_the_environment() -> None:
    settings = StoryboardSettings.from_env(
        {
            "STORYBOARD_FRAME_RATE": " 30 ",
            "STORYBOARD_DEFAULT_GAP": "45",
            "STORYBOARD_FIXED_BOARD_SECONDS": "1.5",
            "STORYBOARD_ARCHIVE_BASENAME": "shot",
            "STORYBOARD_SCENE_EXTENSION": ".babylon",
            "STORYBOARD_LOG_LEVEL": "debug",
        }
    )

    assert settings.frame_rate == 30
    assert settings.gap_frames == 45
    assert settings.fixed_board_seconds == 1.5
    assert settings.archive_names.scene == "shot.babylon"
    assert settings.archive_names.keyframes == "shot_keyframes.json"
    assert settings.log_level == "DEBUG"


def test_blank_values_fall_back_to_defaults() -> None:
    settings = StoryboardSettings.from_env(
        {"STORYBOARD_FRAME_RATE": "  ", "STORYBOARD_ARCHIVE_BASENAME": ""}
    )

    assert settings.frame_rate == 60
    assert settings.archive_basename == "storyboard"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("STORYBOARD_FRAME_RATE", "fast"),
        ("STORYBOARD_FRAME_RATE", "0"),
        ("STORYBOARD_DEFAULT_GAP", "-1"),
        ("STORYBOARD_FIXED_BOARD_SECONDS", "0"),
        ("STORYBOARD_FIXED_BOARD_SECONDS", "nan"),
        ("STORYBOARD_LOG_LEVEL", "LOUD"),
        ("STORYBOARD_ARCHIVE_BASENAME", "a/b"),
    ],
)
def test_invalid_values_name_the_variable(name: str, value: str) -> None:
    with pytest.raises(ValueError) as excinfo:
        StoryboardSettings.from_env({name: value})

    assert name in str(excinfo.value)


def test_direct_construction_is_validated() -> None:
    with pytest.raises(ValueError):
        StoryboardSettings(frame_rate=0)
    with pytest.raises(ValueError):
        StoryboardSettings(default_gap=-5)
    assert StoryboardSettings(log_level="warning").log_level == "WARNING"


def test_configure_logging_sets_the_package_level() -> None:
    logger = logging.getLogger("storyboard")
    previous = logger.level
    try:
        StoryboardSettings(log_level="ERROR").configure_logging()
        assert logger.level == logging.ERROR
    finally:
        logger.setLevel(previous)
