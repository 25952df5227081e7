"""Test configuration for the storyboard project."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from typing import Any, Callable

import pytest

from storyboard import (
    EditorFacade,
    InMemorySceneEngine,
    ManualClock,
    StoryboardRegistry,
    StoryboardSettings,
    TransformTarget,
    Vector3,
)


@pytest.fixture()
def engine() -> InMemorySceneEngine:
    return InMemorySceneEngine()


@pytest.fixture()
def registry() -> StoryboardRegistry:
    return StoryboardRegistry()


@pytest.fixture()
def make_transform(
    engine: InMemorySceneEngine, registry: StoryboardRegistry
) -> Callable[..., TransformTarget]:
    """Factory creating a registered transform target in ``engine``."""

    def _factory(name: str = "box", *, position: Vector3 | None = None, **kwargs: Any) -> TransformTarget:
        node = engine.create_node(name, position=position)
        target = TransformTarget(node, engine)
        registry.register_transform(target, **kwargs)
        return target

    return _factory


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def facade(clock: ManualClock) -> EditorFacade:
    return EditorFacade(settings=StoryboardSettings(), clock=clock)
