"""Configuration helpers for the storyboard editor service."""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from typing import Mapping

from .codec import ArchiveNames, DEFAULT_BASENAME
from .registry import DEFAULT_FRAME_RATE

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


def _parse_int(source: Mapping[str, str], name: str, *, minimum: int) -> int | None:
    raw = source.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        parsed = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer.") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be at least {minimum}.")
    return parsed


def _parse_seconds(source: Mapping[str, str], name: str) -> float | None:
    raw = source.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        parsed = float(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a number of seconds.") from exc
    if not math.isfinite(parsed) or parsed <= 0:
        raise ValueError(f"{name} must be greater than zero.")
    return parsed


@dataclass(frozen=True)
class StoryboardSettings:
    """Runtime settings for the storyboard editor.

    Values are read from ``STORYBOARD_*`` environment variables; empty strings
    are treated as if the variable was unset.
    """

    frame_rate: int = DEFAULT_FRAME_RATE
    default_gap: int | None = None
    archive_basename: str = DEFAULT_BASENAME
    scene_extension: str = "scene"
    fixed_board_seconds: float | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.frame_rate < 1:
            raise ValueError("frame_rate must be greater than zero.")
        if self.default_gap is not None and self.default_gap < 0:
            raise ValueError("default_gap must not be negative.")
        level = self.log_level.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}.")
        object.__setattr__(self, "log_level", level)

    @property
    def gap_frames(self) -> int:
        return self.frame_rate if self.default_gap is None else self.default_gap

    @property
    def archive_names(self) -> ArchiveNames:
        return ArchiveNames(self.archive_basename, self.scene_extension)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "StoryboardSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.

        Raises:
            ValueError: If a variable is set to an invalid value. The message
                names the offending variable.
        """

        source = environ if environ is not None else os.environ

        frame_rate = _parse_int(source, "STORYBOARD_FRAME_RATE", minimum=1)
        default_gap = _parse_int(source, "STORYBOARD_DEFAULT_GAP", minimum=0)
        fixed_board_seconds = _parse_seconds(source, "STORYBOARD_FIXED_BOARD_SECONDS")

        basename = _normalise_string(
            source.get("STORYBOARD_ARCHIVE_BASENAME"), default=DEFAULT_BASENAME
        )
        scene_extension = _normalise_string(
            source.get("STORYBOARD_SCENE_EXTENSION"), default="scene"
        )
        try:
            ArchiveNames(basename, scene_extension)
        except ValueError as exc:
            raise ValueError(
                f"STORYBOARD_ARCHIVE_BASENAME/STORYBOARD_SCENE_EXTENSION: {exc}"
            ) from exc

        log_level = _normalise_string(source.get("STORYBOARD_LOG_LEVEL"), default="INFO").upper()
        if log_level not in _LOG_LEVELS:
            raise ValueError(
                f"STORYBOARD_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}."
            )

        return cls(
            frame_rate=DEFAULT_FRAME_RATE if frame_rate is None else frame_rate,
            default_gap=default_gap,
            archive_basename=basename,
            scene_extension=scene_extension,
            fixed_board_seconds=fixed_board_seconds,
            log_level=log_level,
        )

    def configure_logging(self) -> None:
        """Apply :attr:`log_level` to the ``storyboard`` logger hierarchy."""

        logging.getLogger("storyboard").setLevel(self.log_level)


__all__ = ["StoryboardSettings"]
