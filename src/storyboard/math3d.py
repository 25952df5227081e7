"""Small immutable vector and quaternion types used by storyboard channels."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Mapping

_EPSILON = 1e-9


def _coerce_component(value: object, *, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{field_name} must be a number, got {type(value)!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"{field_name} must be a finite number")
    return number


@dataclass(frozen=True)
class Vector3:
    """A three component vector used for positions and scales."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __post_init__(self) -> None:
        for name in ("x", "y", "z"):
            object.__setattr__(
                self, name, _coerce_component(getattr(self, name), field_name=name)
            )

    @classmethod
    def zero(cls) -> "Vector3":
        return cls(0.0, 0.0, 0.0)

    @classmethod
    def one(cls) -> "Vector3":
        return cls(1.0, 1.0, 1.0)

    @classmethod
    def from_iterable(cls, values: Iterable[float]) -> "Vector3":
        """Build a vector from any three-item sequence."""

        items = list(values)
        if len(items) != 3:
            raise ValueError(f"Vector3 requires exactly 3 components, got {len(items)}")
        return cls(*items)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> "Vector3":
        return cls(payload["x"], payload["y"], payload["z"])  # type: ignore[arg-type]

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def to_payload(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}

    def __add__(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def scale(self, factor: float) -> "Vector3":
        return Vector3(self.x * factor, self.y * factor, self.z * factor)

    def length(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def is_close(self, other: "Vector3", *, tolerance: float = 1e-6) -> bool:
        return all(
            math.isclose(a, b, abs_tol=tolerance)
            for a, b in zip(self.as_tuple(), other.as_tuple())
        )

    def lerp(self, other: "Vector3", amount: float) -> "Vector3":
        """Linearly interpolate towards ``other``."""

        return Vector3(
            self.x + (other.x - self.x) * amount,
            self.y + (other.y - self.y) * amount,
            self.z + (other.z - self.z) * amount,
        )


@dataclass(frozen=True)
class Quaternion:
    """A rotation quaternion stored as ``(x, y, z, w)``.

    Instances are normalised on construction so stored rotation keys are
    always unit quaternions. A zero-length input is rejected.
    """

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0

    def __post_init__(self) -> None:
        components = [
            _coerce_component(getattr(self, name), field_name=name)
            for name in ("x", "y", "z", "w")
        ]
        norm = math.sqrt(sum(component * component for component in components))
        if norm < _EPSILON:
            raise ValueError("Rotation quaternion norm is too close to zero")
        for name, component in zip(("x", "y", "z", "w"), components):
            object.__setattr__(self, name, component / norm)

    @classmethod
    def identity(cls) -> "Quaternion":
        return cls(0.0, 0.0, 0.0, 1.0)

    @classmethod
    def from_euler(cls, x: float, y: float, z: float) -> "Quaternion":
        """Return the quaternion for Euler angles in radians.

        Rotation order is yaw (``y``), then pitch (``x``), then roll (``z``),
        the convention editors use when presenting rotations as a vector.
        """

        half_yaw = y * 0.5
        half_pitch = x * 0.5
        half_roll = z * 0.5

        sin_roll, cos_roll = math.sin(half_roll), math.cos(half_roll)
        sin_pitch, cos_pitch = math.sin(half_pitch), math.cos(half_pitch)
        sin_yaw, cos_yaw = math.sin(half_yaw), math.cos(half_yaw)

        return cls(
            cos_yaw * sin_pitch * cos_roll + sin_yaw * cos_pitch * sin_roll,
            sin_yaw * cos_pitch * cos_roll - cos_yaw * sin_pitch * sin_roll,
            cos_yaw * cos_pitch * sin_roll - sin_yaw * sin_pitch * cos_roll,
            cos_yaw * cos_pitch * cos_roll + sin_yaw * sin_pitch * sin_roll,
        )

    @classmethod
    def from_euler_degrees(cls, values: Iterable[float]) -> "Quaternion":
        vector = Vector3.from_iterable(values)
        return cls.from_euler(
            math.radians(vector.x), math.radians(vector.y), math.radians(vector.z)
        )

    @classmethod
    def from_axis_angle(cls, axis: Vector3, angle: float) -> "Quaternion":
        length = axis.length()
        if length < _EPSILON:
            raise ValueError("Rotation axis must have a non-zero length")
        sin_half = math.sin(angle * 0.5) / length
        return cls(axis.x * sin_half, axis.y * sin_half, axis.z * sin_half, math.cos(angle * 0.5))

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> "Quaternion":
        return cls(payload["x"], payload["y"], payload["z"], payload["w"])  # type: ignore[arg-type]

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.x, self.y, self.z, self.w)

    def to_payload(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z, "w": self.w}

    def dot(self, other: "Quaternion") -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z + self.w * other.w

    def is_close(self, other: "Quaternion", *, tolerance: float = 1e-6) -> bool:
        """Return ``True`` when both quaternions describe the same rotation."""

        return abs(abs(self.dot(other)) - 1.0) <= tolerance

    def to_euler(self) -> Vector3:
        """Return Euler angles in radians using the :meth:`from_euler` order."""

        x, y, z, w = self.as_tuple()
        sin_pitch = 2.0 * (w * x - y * z)
        sin_pitch = max(-1.0, min(1.0, sin_pitch))
        pitch = math.asin(sin_pitch)
        yaw = math.atan2(2.0 * (w * y + x * z), 1.0 - 2.0 * (x * x + y * y))
        roll = math.atan2(2.0 * (w * z + x * y), 1.0 - 2.0 * (x * x + z * z))
        return Vector3(pitch, yaw, roll)

    def rotate(self, vector: Vector3) -> Vector3:
        """Apply this rotation to ``vector``."""

        qx, qy, qz, qw = self.as_tuple()
        # t = 2 * cross(q.xyz, v)
        tx = 2.0 * (qy * vector.z - qz * vector.y)
        ty = 2.0 * (qz * vector.x - qx * vector.z)
        tz = 2.0 * (qx * vector.y - qy * vector.x)
        return Vector3(
            vector.x + qw * tx + (qy * tz - qz * ty),
            vector.y + qw * ty + (qz * tx - qx * tz),
            vector.z + qw * tz + (qx * ty - qy * tx),
        )

    def slerp(self, other: "Quaternion", amount: float) -> "Quaternion":
        """Spherically interpolate towards ``other`` along the shortest arc."""

        cosine = self.dot(other)
        target = other
        if cosine < 0.0:
            cosine = -cosine
            target = Quaternion(-other.x, -other.y, -other.z, -other.w)

        if cosine > 1.0 - 1e-6:
            start_weight = 1.0 - amount
            end_weight = amount
        else:
            angle = math.acos(cosine)
            inverse_sin = 1.0 / math.sin(angle)
            start_weight = math.sin((1.0 - amount) * angle) * inverse_sin
            end_weight = math.sin(amount * angle) * inverse_sin

        return Quaternion(
            self.x * start_weight + target.x * end_weight,
            self.y * start_weight + target.y * end_weight,
            self.z * start_weight + target.z * end_weight,
            self.w * start_weight + target.w * end_weight,
        )


__all__ = ["Quaternion", "Vector3"]
