import math

import pytest

from storyboard import Quaternion, Vector3


def test_vector_validates_components() -> None:
    with pytest.raises(TypeError):
        Vector3(True, 0, 0)  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        Vector3("1", 0, 0)  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        Vector3(math.nan, 0, 0)

    vector = Vector3(1, 2, 3)
    assert vector.as_tuple() == (1.0, 2.0, 3.0)
    assert isinstance(vector.x, float)


def test_vector_arithmetic_and_lerp() -> None:
    start = Vector3(0, 0, 0)
    end = Vector3(10, -4, 2)

    assert start.lerp(end, 0.5) == Vector3(5, -2, 1)
    assert (end - start) == end
    assert (start + end).scale(2) == Vector3(20, -8, 4)
    assert Vector3(3, 4, 0).length() == pytest.approx(5.0)
    assert Vector3.from_iterable([1, 2, 3]).is_close(Vector3(1, 2, 3.0000001))


def test_vector_from_iterable_requires_three_items() -> None:
    with pytest.raises(ValueError):
        Vector3.from_iterable([1, 2])


def test_quaternion_is_normalised_and_rejects_zero() -> None:
    rotation = Quaternion(0, 0, 0, 2)
    assert rotation.as_tuple() == (0.0, 0.0, 0.0, 1.0)

    with pytest.raises(ValueError):
        Quaternion(0, 0, 0, 0)


def test_quaternion_is_close_treats_negation_as_same_rotation() -> None:
    rotation = Quaternion.from_axis_angle(Vector3(0, 1, 0), 0.7)
    negated = Quaternion(-rotation.x, -rotation.y, -rotation.z, -rotation.w)

    assert rotation.is_close(negated)
    assert not rotation.is_close(Quaternion.identity())


def test_euler_degrees_round_trip() -> None:
    rotation = Quaternion.from_euler_degrees([10, 35, -20])
    euler = rotation.to_euler()

    assert [math.degrees(value) for value in euler.as_tuple()] == pytest.approx(
        [10, 35, -20], abs=1e-6
    )


def test_slerp_halfway_between_rotations() -> None:
    axis = Vector3(0, 1, 0)
    start = Quaternion.identity()
    end = Quaternion.from_axis_angle(axis, math.pi / 2)

    halfway = start.slerp(end, 0.5)

    assert halfway.is_close(Quaternion.from_axis_angle(axis, math.pi / 4))
    assert start.slerp(end, 0.0).is_close(start)
    assert start.slerp(end, 1.0).is_close(end)


def test_rotate_preserves_length() -> None:
    rotation = Quaternion.from_euler(0.3, 1.1, -0.4)
    vector = Vector3(-0.95, -0.28, 0)

    assert rotation.rotate(vector).length() == pytest.approx(vector.length())
    assert Quaternion.identity().rotate(vector).is_close(vector)
