"""Zip archive persistence for a storyboard and its static scene.

An archive holds five JSON entries named after a shared basename:

``<basename>.<scene-ext>``
    The static scene graph produced by :meth:`SceneEngine.serialize_scene`,
    with its environment section stripped. Transform channel keys travel
    inside the scene on each animated node.
``<basename>_keyframes.json``
    The board timeline as a flat integer array.
``<basename>_m2a.json``
    Mesh name to the names of the clips it owns.
``<basename>_a2aa.json``
    Clip name to its per-board ``{"frame", "value"}`` playhead keys.
``<basename>_skySun_rotation_animation.json``
    One ``{x, y, z, w}`` quaternion per board for the sun proxy.

Loading runs in two phases. Every non-scene entry is parsed and validated
first; only then is the scene loaded and cross-references resolved by name.
"""

from __future__ import annotations

import io
import json
import logging
import zipfile
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from .channel import ChannelValue, PropertyKind
from .crossref import CrossReferenceTable, UnresolvedReference, fit_to_boards
from .engine import TAG_ANIMATED, TAG_SUN_PROXY, SceneEngine, SceneNode
from .environment import SUN_PROXY_NAME
from .errors import DisposalError, InvariantViolation, SerializationError
from .math3d import Quaternion, Vector3
from .registry import DEFAULT_FRAME_RATE, StoryboardRegistry
from .targets import TransformTarget

LOG = logging.getLogger(__name__)

DEFAULT_BASENAME = "storyboard"


class Vector3Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    x: float
    y: float
    z: float

    def to_vector(self) -> Vector3:
        return Vector3(self.x, self.y, self.z)


class QuaternionPayload(BaseModel):
    """Quaternion entry accepting both ``x`` and the legacy ``_x`` spelling."""

    model_config = ConfigDict(extra="ignore")

    x: float = Field(validation_alias=AliasChoices("x", "_x"))
    y: float = Field(validation_alias=AliasChoices("y", "_y"))
    z: float = Field(validation_alias=AliasChoices("z", "_z"))
    w: float = Field(validation_alias=AliasChoices("w", "_w"))

    def to_quaternion(self) -> Quaternion:
        return Quaternion(self.x, self.y, self.z, self.w)


class PlayheadKeyPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    frame: int = Field(..., ge=0)
    value: float


class VectorKeyPayload(BaseModel):
    frame: int = Field(..., ge=0)
    value: Vector3Payload


class RotationKeyPayload(BaseModel):
    frame: int = Field(..., ge=0)
    value: QuaternionPayload


class TimelinePayload(BaseModel):
    frames: List[int]

    @field_validator("frames")
    @classmethod
    def _validate_frames(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("The timeline must contain at least one board.")
        if value[0] != 0:
            raise ValueError("The first board must be at frame 0.")
        for previous, current in zip(value, value[1:]):
            if current < previous:
                raise ValueError("Timeline frames must be non-decreasing.")
        return value


_SUN_ADAPTER = TypeAdapter(List[QuaternionPayload])
_M2A_ADAPTER = TypeAdapter(Dict[str, List[str]])
_A2AA_ADAPTER = TypeAdapter(Dict[str, List[PlayheadKeyPayload]])
_VECTOR_KEYS_ADAPTER = TypeAdapter(List[VectorKeyPayload])
_ROTATION_KEYS_ADAPTER = TypeAdapter(List[RotationKeyPayload])


@dataclass(frozen=True)
class ArchiveNames:
    """Entry names derived from the archive basename and scene extension."""

    basename: str = DEFAULT_BASENAME
    scene_extension: str = "scene"

    def __post_init__(self) -> None:
        for label, value in (("basename", self.basename), ("scene_extension", self.scene_extension)):
            if not isinstance(value, str):
                raise TypeError(f"Archive {label} must be a string.")
            trimmed = value.strip()
            if not trimmed:
                raise ValueError(f"Archive {label} must be a non-empty string.")
            if "/" in trimmed or "\\" in trimmed:
                raise ValueError(f"Archive {label} must not contain path separators.")
            object.__setattr__(self, label, trimmed)
        object.__setattr__(self, "scene_extension", self.scene_extension.lstrip("."))

    @property
    def scene(self) -> str:
        return f"{self.basename}.{self.scene_extension}"

    @property
    def keyframes(self) -> str:
        return f"{self.basename}_keyframes.json"

    @property
    def mesh_to_clips(self) -> str:
        return f"{self.basename}_m2a.json"

    @property
    def clip_keys(self) -> str:
        return f"{self.basename}_a2aa.json"

    @property
    def sun_rotation(self) -> str:
        return f"{self.basename}_skySun_rotation_animation.json"

    def all(self) -> Tuple[str, ...]:
        return (
            self.scene,
            self.keyframes,
            self.mesh_to_clips,
            self.clip_keys,
            self.sun_rotation,
        )


@dataclass
class LoadReport:
    """Recoverable problems met while loading an archive."""

    entry_errors: Dict[str, str] = field(default_factory=dict)
    unresolved: List[UnresolvedReference] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.entry_errors and not self.unresolved

    def warnings(self) -> List[str]:
        messages = [f"{entry}: {error}" for entry, error in self.entry_errors.items()]
        messages.extend(reference.describe() for reference in self.unresolved)
        return messages


@dataclass
class LoadResult:
    registry: StoryboardRegistry
    crossref: CrossReferenceTable
    sun: TransformTarget | None
    report: LoadReport


@dataclass(frozen=True)
class ArchiveSummary:
    """What an archive contains, read without touching any scene."""

    entries: Tuple[str, ...]
    timeline: Tuple[int, ...]
    meshes: Dict[str, List[str]]
    clip_key_counts: Dict[str, int]
    sun_boards: int | None
    animated_nodes: Tuple[str, ...]
    report: LoadReport


@dataclass
class _Phase1:
    timeline: List[int]
    sun_keys: List[Quaternion] | None
    m2a: Dict[str, List[str]] | None
    a2aa: Dict[str, List[Dict[str, Any]]] | None
    report: LoadReport


class ArchiveCodec:
    """Serialize a storyboard registry and its scene to a zip archive and back."""

    def __init__(
        self,
        names: ArchiveNames | None = None,
        *,
        frame_rate: int = DEFAULT_FRAME_RATE,
        default_gap: int | None = None,
    ) -> None:
        self.names = names or ArchiveNames()
        self.frame_rate = frame_rate
        self.default_gap = default_gap

    # ------------------------------------------------------------------
    # Serialize
    # ------------------------------------------------------------------

    def serialize(
        self,
        registry: StoryboardRegistry,
        engine: SceneEngine,
        crossref: CrossReferenceTable | None = None,
        *,
        sun: TransformTarget | None = None,
    ) -> bytes:
        """Return the archive bytes for ``registry`` and ``engine``'s scene.

        Raises:
            SerializationError: If the timeline is empty, the registry is
                inconsistent or two scene nodes or clips share a name. No
                archive is produced and no live node is changed.
        """

        if registry.timeline_length == 0:
            raise SerializationError("Cannot save a storyboard without boards")
        try:
            registry.verify()
        except InvariantViolation as exc:
            raise SerializationError(f"Storyboard is inconsistent: {exc}") from exc

        table = crossref if crossref is not None else CrossReferenceTable.from_registry(registry)
        table.refresh_from(registry)

        scene = engine.serialize_scene()
        scene.pop("environment", None)
        self._check_unique_names(scene)
        self._stamp_transform_keys(registry, scene, sun)

        m2a, a2aa = table.to_payload()
        entries: List[Tuple[str, Any]] = [
            (self.names.scene, scene),
            (self.names.keyframes, registry.timeline),
            (self.names.mesh_to_clips, m2a),
            (self.names.clip_keys, a2aa),
        ]
        if sun is not None:
            rotation = registry.channel_for(sun, PropertyKind.ROTATION)
            entries.append(
                (self.names.sun_rotation, [value.to_payload() for value in rotation.values])  # type: ignore[union-attr]
            )

        buffer = io.BytesIO()
        try:
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for name, payload in entries:
                    archive.writestr(name, json.dumps(payload, ensure_ascii=False))
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"Could not encode archive: {exc}") from exc

        LOG.info(
            "Saved storyboard archive '%s' with %d boards and %d channels",
            self.names.basename,
            registry.timeline_length,
            len(registry.targeted_animations()),
        )
        return buffer.getvalue()

    @staticmethod
    def _check_unique_names(scene: Mapping[str, Any]) -> None:
        # Clips and meshes are linked back by name on load.
        for section in ("nodes", "clips"):
            seen = set()
            for entry in scene.get(section, []):
                name = entry["name"]
                if name in seen:
                    raise SerializationError(
                        f"Cannot save: more than one scene {section[:-1]} is called '{name}'"
                    )
                seen.add(name)

    def _stamp_transform_keys(
        self,
        registry: StoryboardRegistry,
        scene: Mapping[str, Any],
        sun: TransformTarget | None,
    ) -> None:
        """Write each storyboarded transform's keys into its scene entry."""

        stamps: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
        for target in registry.transform_targets():
            if target is sun or target.node.has_tag(TAG_SUN_PROXY):
                continue
            stamps[target.name] = {
                kind.value: [
                    {"frame": key.frame, "value": key.value.to_payload()}  # type: ignore[union-attr]
                    for key in channel
                ]
                for kind, channel in registry.channels_for(target).items()
            }

        for entry in scene.get("nodes", []):
            tags = list(entry.get("tags", []))
            if entry["name"] in stamps:
                entry["animations"] = stamps[entry["name"]]
                if TAG_ANIMATED not in tags:
                    tags.append(TAG_ANIMATED)
            elif TAG_ANIMATED in tags:
                tags.remove(TAG_ANIMATED)
                entry["animations"] = {}
            entry["tags"] = sorted(tags)

    # ------------------------------------------------------------------
    # Deserialize
    # ------------------------------------------------------------------

    def deserialize(
        self,
        data: bytes,
        engine: SceneEngine,
        *,
        teardown: Callable[[], None] | None = None,
    ) -> LoadResult:
        """Replace the current scene with the archive in ``data``.

        ``teardown`` disposes the previous storyboard and runs before anything
        is read; the previous state is gone even if loading then fails.

        Raises:
            DisposalError: If ``teardown`` fails.
            SerializationError: If a required entry is missing or malformed.
        """

        if teardown is not None:
            try:
                teardown()
            except Exception as exc:
                raise DisposalError(f"Could not dispose the previous scene: {exc}") from exc

        with self._open(data) as archive:
            phase1 = self._read_phase1(archive)
            scene_payload = self._read_required(archive, self.names.scene)

        try:
            engine.load_scene(scene_payload)
        except SerializationError as exc:
            raise SerializationError(str(exc), entry=self.names.scene) from exc

        try:
            return self._build(engine, phase1)
        except ValueError as exc:
            raise SerializationError(f"Could not rebuild the storyboard: {exc}") from exc

    def inspect(self, data: bytes) -> ArchiveSummary:
        """Validate the archive entries and summarise them without loading a scene."""

        with self._open(data) as archive:
            entries = tuple(archive.namelist())
            phase1 = self._read_phase1(archive)
            scene_payload = self._read_required(archive, self.names.scene)

        nodes = scene_payload.get("nodes", []) if isinstance(scene_payload, Mapping) else []
        animated = tuple(
            str(node.get("name"))
            for node in nodes
            if isinstance(node, Mapping) and TAG_ANIMATED in node.get("tags", [])
        )
        return ArchiveSummary(
            entries=entries,
            timeline=tuple(phase1.timeline),
            meshes=dict(phase1.m2a or {}),
            clip_key_counts={name: len(keys) for name, keys in (phase1.a2aa or {}).items()},
            sun_boards=None if phase1.sun_keys is None else len(phase1.sun_keys),
            animated_nodes=animated,
            report=phase1.report,
        )

    def _open(self, data: bytes) -> zipfile.ZipFile:
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError("Archive data must be bytes")
        try:
            return zipfile.ZipFile(io.BytesIO(bytes(data)))
        except zipfile.BadZipFile as exc:
            raise SerializationError(f"Archive is not a valid zip file: {exc}") from exc

    def _read_json(self, archive: zipfile.ZipFile, name: str) -> Any:
        with archive.open(name) as handle:
            return json.loads(handle.read().decode("utf-8"))

    def _read_required(self, archive: zipfile.ZipFile, name: str) -> Any:
        try:
            return self._read_json(archive, name)
        except KeyError as exc:
            raise SerializationError(f"Archive is missing '{name}'", entry=name) from exc
        except (ValueError, zipfile.BadZipFile) as exc:
            raise SerializationError(f"Archive entry '{name}' is malformed: {exc}", entry=name) from exc

    def _read_optional(
        self,
        archive: zipfile.ZipFile,
        name: str,
        adapter: TypeAdapter,
        report: LoadReport,
    ) -> Any:
        try:
            raw = self._read_json(archive, name)
        except KeyError:
            LOG.debug("Archive has no '%s' entry", name)
            return None
        except (ValueError, zipfile.BadZipFile) as exc:
            report.entry_errors[name] = f"malformed JSON: {exc}"
            LOG.warning("Skipping malformed archive entry '%s': %s", name, exc)
            return None

        try:
            return adapter.validate_python(raw)
        except ValidationError as exc:
            report.entry_errors[name] = f"{exc.error_count()} validation error(s)"
            LOG.warning("Skipping invalid archive entry '%s': %s", name, exc)
            return None

    def _read_phase1(self, archive: zipfile.ZipFile) -> _Phase1:
        report = LoadReport()

        raw_timeline = self._read_required(archive, self.names.keyframes)
        try:
            timeline = TimelinePayload.model_validate({"frames": raw_timeline}).frames
        except ValidationError as exc:
            raise SerializationError(
                f"Archive entry '{self.names.keyframes}' is invalid: {exc}",
                entry=self.names.keyframes,
            ) from exc

        sun_payload = self._read_optional(archive, self.names.sun_rotation, _SUN_ADAPTER, report)
        sun_keys: List[Quaternion] | None = None
        if sun_payload is not None:
            try:
                sun_keys = [item.to_quaternion() for item in sun_payload]
            except ValueError as exc:
                report.entry_errors[self.names.sun_rotation] = str(exc)
                LOG.warning("Skipping invalid sun rotation keys: %s", exc)

        m2a = self._read_optional(archive, self.names.mesh_to_clips, _M2A_ADAPTER, report)
        a2aa_payload = self._read_optional(archive, self.names.clip_keys, _A2AA_ADAPTER, report)
        a2aa = None
        if a2aa_payload is not None:
            a2aa = {
                name: [key.model_dump() for key in keys] for name, keys in a2aa_payload.items()
            }
        return _Phase1(timeline, sun_keys, m2a, a2aa, report)

    # ------------------------------------------------------------------
    # Phase 2
    # ------------------------------------------------------------------

    def _build(self, engine: SceneEngine, phase1: _Phase1) -> LoadResult:
        report = phase1.report
        board_count = len(phase1.timeline)
        registry = StoryboardRegistry(
            frame_rate=self.frame_rate,
            default_gap=self.default_gap,
            timeline=phase1.timeline,
        )

        transforms: Dict[str, TransformTarget] = {}
        for node in engine.nodes_by_tag(TAG_ANIMATED):
            if node.has_tag(TAG_SUN_PROXY):
                continue
            target = TransformTarget(node, engine)
            registry.register_transform(
                target, keys=self._node_keys(node, board_count, report)
            )
            transforms[node.id] = target

        table = CrossReferenceTable.from_payload(phase1.m2a, phase1.a2aa)
        resolution = table.resolve(engine, board_count=board_count)
        report.unresolved.extend(resolution.unresolved)
        for mesh in resolution.resolved:
            if mesh.node.has_tag(TAG_SUN_PROXY):
                _record_unresolved(
                    report,
                    UnresolvedReference(
                        "mesh", mesh.node.name, detail="the sun proxy owns no clips"
                    ),
                )
                continue
            owner = transforms.get(mesh.node.id)
            if owner is None:
                owner = TransformTarget(mesh.node, engine)
                registry.register_transform(owner)
                transforms[mesh.node.id] = owner
            for resolved in mesh.clips:
                nested = owner.add_nested(resolved.clip)
                nested.play()
                nested.reset()
                nested.pause()
                nested.blend_weight = 1.0
                nested.loop = False
                registry.register_nested(
                    nested,
                    keys=None if resolved.keys is None else list(resolved.keys),
                )

        sun = self._build_sun(engine, registry, phase1.sun_keys, report)

        registry.match_current_board()
        registry.verify()
        LOG.info(
            "Loaded storyboard archive '%s': %d boards, %d targets, %d warnings",
            self.names.basename,
            board_count,
            len(registry.targets()),
            len(report.warnings()),
        )
        return LoadResult(registry=registry, crossref=table, sun=sun, report=report)

    def _node_keys(
        self, node: SceneNode, board_count: int, report: LoadReport
    ) -> Dict[PropertyKind, Sequence[ChannelValue]]:
        keys: Dict[PropertyKind, Sequence[ChannelValue]] = {}
        for raw_kind, raw_keys in node.animations.items():
            try:
                kind = PropertyKind(raw_kind)
            except ValueError:
                _record_unresolved(
                    report,
                    UnresolvedReference("keys", raw_kind, owner=node.name, detail="unknown property"),
                )
                continue
            try:
                if kind is PropertyKind.ROTATION:
                    values: List[Any] = [
                        key.value.to_quaternion()
                        for key in _ROTATION_KEYS_ADAPTER.validate_python(raw_keys)
                    ]
                elif kind.is_transform:
                    values = [
                        key.value.to_vector()
                        for key in _VECTOR_KEYS_ADAPTER.validate_python(raw_keys)
                    ]
                else:
                    raise ValueError(f"'{kind.value}' is not a transform property")
            except (ValidationError, ValueError) as exc:
                _record_unresolved(
                    report,
                    UnresolvedReference("keys", kind.value, owner=node.name, detail=str(exc)),
                )
                continue

            if len(values) != board_count:
                _record_unresolved(
                    report,
                    UnresolvedReference(
                        "keys",
                        kind.value,
                        owner=node.name,
                        detail=f"{len(values)} keys for {board_count} boards",
                    ),
                )
                values = _fit_values(values, board_count, node, kind)
            keys[kind] = values
        return keys

    def _build_sun(
        self,
        engine: SceneEngine,
        registry: StoryboardRegistry,
        sun_keys: List[Quaternion] | None,
        report: LoadReport,
    ) -> TransformTarget | None:
        nodes = engine.nodes_by_tag(TAG_SUN_PROXY)
        if not nodes:
            if sun_keys is not None:
                _record_unresolved(
                    report,
                    UnresolvedReference(
                        "mesh", SUN_PROXY_NAME, detail="sun rotation keys without a sun proxy"
                    ),
                )
            return None

        sun = TransformTarget(nodes[0], engine)
        keys = None
        if sun_keys is not None:
            values: List[Any] = list(sun_keys)
            if len(values) != registry.timeline_length:
                _record_unresolved(
                    report,
                    UnresolvedReference(
                        "keys",
                        PropertyKind.ROTATION.value,
                        owner=sun.name,
                        detail=f"{len(values)} keys for {registry.timeline_length} boards",
                    ),
                )
                values = _fit_values(values, registry.timeline_length, sun.node, PropertyKind.ROTATION)
            keys = {PropertyKind.ROTATION: values}
        registry.register_transform(sun, kinds=(PropertyKind.ROTATION,), keys=keys)
        return sun


def _record_unresolved(report: LoadReport, reference: UnresolvedReference) -> None:
    report.unresolved.append(reference)
    LOG.warning("Unresolved storyboard reference: %s", reference.describe())


def _fit_values(
    values: List[Any], count: int, node: SceneNode, kind: PropertyKind
) -> List[Any]:
    if values:
        return fit_to_boards(values, count)
    live = {
        PropertyKind.POSITION: node.position,
        PropertyKind.ROTATION: node.rotation,
        PropertyKind.SCALING: node.scaling,
    }[kind]
    return [live] * count


__all__ = [
    "ArchiveCodec",
    "ArchiveNames",
    "ArchiveSummary",
    "DEFAULT_BASENAME",
    "LoadReport",
    "LoadResult",
    "PlayheadKeyPayload",
    "QuaternionPayload",
    "TimelinePayload",
]
