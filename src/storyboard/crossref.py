"""Name-keyed links between persisted clips and the meshes that own them.

The static scene format does not remember which nested clips belong to which
transform, nor the playhead keys recorded for each clip. Both are kept in a
:class:`CrossReferenceTable` that is saved next to the scene and resolved back
into live objects, by name, after the scene has been reloaded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Literal, Mapping, Sequence, Tuple

from .channel import ChannelKey, PropertyKind
from .engine import AnimationClip, SceneEngine, SceneNode

if TYPE_CHECKING:
    from .registry import StoryboardRegistry

LOG = logging.getLogger(__name__)

ReferenceKind = Literal["mesh", "clip", "keys"]


@dataclass(frozen=True)
class UnresolvedReference:
    """A persisted name that did not match anything in the loaded scene."""

    kind: ReferenceKind
    name: str
    owner: str | None = None
    detail: str = ""

    def describe(self) -> str:
        owner = f" (owned by '{self.owner}')" if self.owner else ""
        suffix = f": {self.detail}" if self.detail else ""
        return f"{self.kind} '{self.name}'{owner}{suffix}"


@dataclass(frozen=True)
class ResolvedClip:
    clip: AnimationClip
    keys: Tuple[float, ...] | None


@dataclass(frozen=True)
class ResolvedMesh:
    node: SceneNode
    clips: Tuple[ResolvedClip, ...]


@dataclass
class ResolutionResult:
    """Outcome of :meth:`CrossReferenceTable.resolve`."""

    resolved: List[ResolvedMesh] = field(default_factory=list)
    unresolved: List[UnresolvedReference] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.unresolved


class CrossReferenceTable:
    """``mesh name -> clip names`` and ``clip name -> playhead keys`` tables."""

    def __init__(
        self,
        mesh_to_clips: Mapping[str, Sequence[str]] | None = None,
        clip_keys: Mapping[str, Sequence[ChannelKey]] | None = None,
    ) -> None:
        self.mesh_to_clips: Dict[str, List[str]] = {
            str(mesh): [str(name) for name in names]
            for mesh, names in (mesh_to_clips or {}).items()
        }
        self.clip_keys: Dict[str, List[ChannelKey]] = {
            str(name): list(keys) for name, keys in (clip_keys or {}).items()
        }

    def __repr__(self) -> str:
        return (
            f"CrossReferenceTable(meshes={len(self.mesh_to_clips)}, "
            f"clips={len(self.clip_keys)})"
        )

    def link(self, mesh_name: str, clip_names: Iterable[str]) -> None:
        """Record that ``mesh_name`` owns the clips called ``clip_names``."""

        self.mesh_to_clips[mesh_name] = [str(name) for name in clip_names]

    def unlink_mesh(self, mesh_name: str) -> None:
        for clip_name in self.mesh_to_clips.pop(mesh_name, []):
            self.clip_keys.pop(clip_name, None)

    def record_keys(self, clip_name: str, keys: Iterable[ChannelKey]) -> None:
        self.clip_keys[clip_name] = list(keys)

    def clip_names(self) -> List[str]:
        return [name for names in self.mesh_to_clips.values() for name in names]

    @classmethod
    def from_registry(cls, registry: StoryboardRegistry) -> "CrossReferenceTable":
        """Build the table from the live ownership and playhead channels."""

        table = cls()
        for transform in registry.transform_targets():
            owned = [nested for nested in transform.nested if registry.is_registered(nested)]
            if owned:
                table.link(transform.name, (nested.name for nested in owned))
        table.refresh_from(registry)
        return table

    @classmethod
    def from_payload(
        cls,
        m2a: Mapping[str, Sequence[str]] | None,
        a2aa: Mapping[str, Sequence[Mapping[str, Any]]] | None,
    ) -> "CrossReferenceTable":
        """Rebuild a table from already validated ``m2a``/``a2aa`` payloads."""

        clip_keys = {
            name: [ChannelKey(int(key["frame"]), float(key["value"])) for key in keys]
            for name, keys in (a2aa or {}).items()
        }
        return cls(m2a or {}, clip_keys)

    def refresh_from(self, registry: StoryboardRegistry) -> None:
        """Copy the current playhead keys of every nested target in ``registry``."""

        for target in registry.nested_targets():
            channel = registry.channel_for(target, PropertyKind.PLAYHEAD_FRAME)
            self.clip_keys[target.name] = channel.keys

    def resolve(self, engine: SceneEngine, *, board_count: int) -> ResolutionResult:
        """Resolve every persisted name against ``engine``'s loaded scene.

        Keys are padded with their last value or truncated to ``board_count``
        so the channels built from them satisfy the timeline invariant; each
        adjustment is reported as an unresolved ``keys`` reference.
        """

        result = ResolutionResult()
        claimed: Dict[str, str] = {}
        for mesh_name, clip_names in self.mesh_to_clips.items():
            node = engine.get_node_by_name(mesh_name)
            if node is None:
                result.unresolved.append(UnresolvedReference("mesh", mesh_name))
                continue

            clips: List[ResolvedClip] = []
            for clip_name in clip_names:
                clip = engine.get_clip_by_name(clip_name)
                if clip is None:
                    result.unresolved.append(
                        UnresolvedReference("clip", clip_name, owner=mesh_name)
                    )
                    continue

                if clip.id in claimed:
                    result.unresolved.append(
                        UnresolvedReference(
                            "clip",
                            clip_name,
                            owner=mesh_name,
                            detail=f"already owned by '{claimed[clip.id]}'",
                        )
                    )
                    continue
                claimed[clip.id] = mesh_name

                stored = self.clip_keys.get(clip_name)
                if stored is None:
                    result.unresolved.append(
                        UnresolvedReference(
                            "keys", clip_name, owner=mesh_name, detail="no stored keys"
                        )
                    )
                    clips.append(ResolvedClip(clip, None))
                    continue

                values = [float(key.value) for key in stored]  # type: ignore[arg-type]
                if len(values) != board_count:
                    result.unresolved.append(
                        UnresolvedReference(
                            "keys",
                            clip_name,
                            owner=mesh_name,
                            detail=f"{len(values)} keys for {board_count} boards",
                        )
                    )
                    values = fit_to_boards(values, board_count)
                clips.append(ResolvedClip(clip, tuple(values)))

            result.resolved.append(ResolvedMesh(node, tuple(clips)))

        for reference in result.unresolved:
            LOG.warning("Unresolved storyboard reference: %s", reference.describe())
        return result

    def to_payload(self) -> Tuple[Dict[str, List[str]], Dict[str, List[Dict[str, float]]]]:
        """Return the ``(m2a, a2aa)`` JSON payloads."""

        m2a = {mesh: list(names) for mesh, names in self.mesh_to_clips.items()}
        a2aa = {
            name: [{"frame": key.frame, "value": float(key.value)} for key in keys]  # type: ignore[arg-type]
            for name, keys in self.clip_keys.items()
        }
        return m2a, a2aa


def fit_to_boards(values: List[float], count: int) -> List[float]:
    if count <= 0:
        return []
    if not values:
        return [0.0] * count
    if len(values) >= count:
        return values[:count]
    return values + [values[-1]] * (count - len(values))


__all__ = [
    "CrossReferenceTable",
    "ResolutionResult",
    "ResolvedClip",
    "ResolvedMesh",
    "UnresolvedReference",
    "fit_to_boards",
]
