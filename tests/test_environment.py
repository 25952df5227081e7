from __future__ import annotations

import math

import pytest

from storyboard import PropertyKind, Quaternion, SkyLighting, Vector3, create_sun_proxy
from storyboard.engine import TAG_GIZMO_ATTACHABLE, TAG_SUN_PROXY
from storyboard.environment import (
    DAY_SKY_COLOR,
    DIM_WHITE_SKY_COLOR,
    SUN_PROXY_NAME,
    sun_color,
)


def test_sun_color_blends_near_the_horizon() -> None:
    assert sun_color(-0.3) == DIM_WHITE_SKY_COLOR
    assert sun_color(0.0) == DIM_WHITE_SKY_COLOR
    assert sun_color(0.5) == DAY_SKY_COLOR

    halfway = sun_color(0.1)
    assert (halfway.r, halfway.g, halfway.b) == pytest.approx((0.75, 0.575, 0.25))

    at_threshold = sun_color(0.2)
    assert (at_threshold.r, at_threshold.g, at_threshold.b) == pytest.approx((0.6, 0.6, 0.6))


def test_sun_proxy_only_storyboards_rotation(engine, registry) -> None:
    sun = create_sun_proxy(engine, registry)

    assert sun.name == SUN_PROXY_NAME
    assert {TAG_SUN_PROXY, TAG_GIZMO_ATTACHABLE} <= sun.tags
    assert set(registry.channels_for(sun)) == {PropertyKind.ROTATION}


def test_sky_follows_the_sun_on_settle(engine, registry) -> None:
    sun = create_sun_proxy(engine, registry)
    sky = SkyLighting()
    sky.follow(sun)
    initial = sky.state
    assert sky.refreshes == 1
    assert initial.sun_direction.length() == pytest.approx(1.0)
    assert initial.sun_position.is_close(initial.sun_direction.scale(-1.0))

    rotation = Quaternion.from_axis_angle(Vector3(0, 0, 1), math.radians(-30))
    registry.write_live_value(sun, PropertyKind.ROTATION, rotation)
    assert sky.refreshes == 1

    registry.settle()

    assert sky.refreshes == 2
    assert sky.state.sun_direction.is_close(rotation.rotate(sky.base_direction))
    assert sky.state != initial


def test_sky_detach_stops_refreshing(engine, registry) -> None:
    sun = create_sun_proxy(engine, registry)
    sky = SkyLighting()
    sky.follow(sun)

    sky.detach()
    registry.write_live_value(sun, PropertyKind.ROTATION, Quaternion.from_euler(0.1, 0, 0))
    registry.settle()

    assert sky.refreshes == 1
    assert sky.sun is None


def test_state_payload_uses_camel_case(engine, registry) -> None:
    sky = SkyLighting(base_direction=Vector3(0, -2, 0))

    payload = sky.state.to_payload()

    assert payload["sunDirection"] == {"x": 0.0, "y": -1.0, "z": 0.0}
    assert payload["elevation"] == pytest.approx(1.0)
    assert payload["sunColor"] == DAY_SKY_COLOR.to_payload()


def test_base_direction_must_not_be_zero() -> None:
    with pytest.raises(ValueError):
        SkyLighting(base_direction=Vector3.zero())
