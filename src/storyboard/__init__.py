"""Board-based keyframe storyboard engine."""

from .math3d import Quaternion, Vector3
from .errors import (
    DisposalError,
    InvariantViolation,
    NotFound,
    SerializationError,
    StoryboardError,
    UnsupportedChannel,
)
from .channel import Channel, ChannelKey, PropertyKind
from .engine import AnimationClip, InMemorySceneEngine, SceneEngine, SceneNode
from .targets import NestedAnimationTarget, TargetKind, TransformTarget
from .registry import StoryboardRegistry, TargetedAnimation
from .playback import ManualClock, MonotonicClock, PlaybackController, PlaybackState
from .crossref import CrossReferenceTable, ResolutionResult, UnresolvedReference
from .codec import ArchiveCodec, ArchiveNames, LoadReport, LoadResult
from .environment import SkyLighting, create_sun_proxy
from .settings import StoryboardSettings
from .facade import ClipSpec, EditorFacade, PendingImport, SceneSettings

__all__ = [
    "Vector3",
    "Quaternion",
    "StoryboardError",
    "InvariantViolation",
    "UnsupportedChannel",
    "SerializationError",
    "DisposalError",
    "NotFound",
    "PropertyKind",
    "Channel",
    "ChannelKey",
    "SceneEngine",
    "InMemorySceneEngine",
    "SceneNode",
    "AnimationClip",
    "TargetKind",
    "TransformTarget",
    "NestedAnimationTarget",
    "StoryboardRegistry",
    "TargetedAnimation",
    "PlaybackController",
    "PlaybackState",
    "ManualClock",
    "MonotonicClock",
    "CrossReferenceTable",
    "ResolutionResult",
    "UnresolvedReference",
    "ArchiveCodec",
    "ArchiveNames",
    "LoadReport",
    "LoadResult",
    "SkyLighting",
    "create_sun_proxy",
    "StoryboardSettings",
    "EditorFacade",
    "SceneSettings",
    "PendingImport",
    "ClipSpec",
]
