"""FastAPI application exposing the storyboard editor facade."""

from __future__ import annotations

import base64
import binascii
from typing import Any, List, Literal

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field, field_validator
from starlette.responses import Response

from ..engine import InMemorySceneEngine
from ..errors import (
    DisposalError,
    InvariantViolation,
    NotFound,
    SerializationError,
    StoryboardError,
    UnsupportedChannel,
)
from ..facade import ClipSpec, EditorFacade, GizmoMode, Inspectable, PrimitiveKind
from ..settings import StoryboardSettings

ARCHIVE_MEDIA_TYPE = "application/zip"


class SkyResource(BaseModel):
    sun_direction: List[float]
    sun_color: List[float]
    elevation: float


class SceneSettingsResource(BaseModel):
    transform_gizmo_mode: GizmoMode
    new_primitive_mesh_type: PrimitiveKind
    current_board_index: int
    selected_item_id: str | None = None


class StoryboardStateResponse(BaseModel):
    """Snapshot of the open storyboard."""

    timeline: List[int]
    timeline_length: int = Field(..., ge=1)
    current_board_index: int = Field(..., ge=0)
    playback_state: Literal["stopped", "playing", "paused"]
    current_frame: float
    scene_settings: SceneSettingsResource
    sky: SkyResource


class InspectableResource(BaseModel):
    id: str
    name: str
    kind: Literal["mesh", "sun", "animation"]
    properties: dict[str, Any] = Field(default_factory=dict)
    children: List["InspectableResource"] = Field(default_factory=list)


InspectableResource.model_rebuild()


class InspectableListResponse(BaseModel):
    data: List[InspectableResource]


class UnresolvedReferenceResource(BaseModel):
    kind: str
    name: str
    owner: str | None = None
    detail: str = ""


class LoadReportResponse(BaseModel):
    entry_errors: dict[str, str] = Field(default_factory=dict)
    unresolved: List[UnresolvedReferenceResource] = Field(default_factory=list)
    state: StoryboardStateResponse


class BoardCreateRequest(BaseModel):
    """Request payload for appending a board."""

    gap_frames: int | None = Field(
        None, ge=0, description="Frames after the last board. Defaults to one second."
    )


class CurrentBoardRequest(BaseModel):
    index: int = Field(..., ge=0)


class TickRequest(BaseModel):
    now: float | None = Field(
        None, description="Clock reading to advance to. Defaults to the server clock."
    )


class PrimitiveCreateRequest(BaseModel):
    kind: PrimitiveKind | None = None


class ClipResource(BaseModel):
    name: str
    first_frame: float = 0.0
    last_frame: float = 0.0

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise TypeError("Clip name must be provided as a string.")
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Clip name must be a non-empty string.")
        return trimmed


class ModelImportRequest(BaseModel):
    """Request payload describing an imported model and its clips."""

    name: str
    clips: List[ClipResource] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise TypeError("Model name must be provided as a string.")
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Model name must be a non-empty string.")
        return trimmed


class PropertyUpdateRequest(BaseModel):
    value: Any = Field(
        ...,
        description=(
            "Three numbers for position/scaling, Euler degrees or a quaternion for "
            "rotation, a number for currentFrame/blendWeight."
        ),
    )


class SelectionRequest(BaseModel):
    id: str | None = None


class SceneSettingsUpdateRequest(BaseModel):
    transform_gizmo_mode: GizmoMode | None = None
    new_primitive_mesh_type: PrimitiveKind | None = None
    current_board_index: int | None = Field(None, ge=0)
    selected_item_id: str | None = None


class ArchiveUploadRequest(BaseModel):
    """Payload carrying a storyboard archive."""

    content: str = Field(..., description="Base64-encoded zip archive.")

    @field_validator("content")
    @classmethod
    def _validate_content(cls, value: str) -> str:
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Archive content must be provided as base64-encoded data.") from exc
        return value

    def decoded_content(self) -> bytes:
        return base64.b64decode(self.content)


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, SerializationError):
        detail = {"message": str(exc), "entry": exc.entry} if exc.entry else str(exc)
        return HTTPException(status_code=422, detail=detail)
    if isinstance(exc, InvariantViolation):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, DisposalError):
        return HTTPException(status_code=500, detail=str(exc))
    if isinstance(exc, (UnsupportedChannel, ValueError, TypeError, IndexError, KeyError)):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _inspectable_resource(item: Inspectable) -> InspectableResource:
    return InspectableResource.model_validate(item.to_payload())


def create_app(
    settings: StoryboardSettings | None = None,
    *,
    facade: EditorFacade | None = None,
) -> FastAPI:
    """Create a FastAPI app serving one storyboard document."""

    resolved_settings = settings or StoryboardSettings.from_env()
    resolved_settings.configure_logging()
    editor = facade or EditorFacade(
        InMemorySceneEngine(scene_extension=resolved_settings.scene_extension),
        settings=resolved_settings,
    )

    tags_metadata = [
        {"name": "Storyboard", "description": "Boards, the board cursor and playback."},
        {"name": "Objects", "description": "Scene objects and their inspector properties."},
        {"name": "Archive", "description": "Save and load storyboard archives."},
    ]

    app = FastAPI(
        title="Storyboard Keyframes API",
        description="HTTP API driving a board-based keyframe storyboard.",
        openapi_tags=tags_metadata,
    )
    app.state.facade = editor

    def _state() -> StoryboardStateResponse:
        sky = editor.sky.state
        settings_payload = editor.scene_settings
        return StoryboardStateResponse(
            timeline=editor.registry.timeline,
            timeline_length=editor.get_timeline_length(),
            current_board_index=editor.get_current_board(),
            playback_state=editor.playback.state.value,
            current_frame=editor.playback.current_frame,
            scene_settings=SceneSettingsResource(
                transform_gizmo_mode=settings_payload.transform_gizmo_mode,
                new_primitive_mesh_type=settings_payload.new_primitive_mesh_type,
                current_board_index=settings_payload.current_board_index,
                selected_item_id=settings_payload.selected_item_id,
            ),
            sky=SkyResource(
                sun_direction=list(sky.sun_direction.as_tuple()),
                sun_color=[sky.sun_color.r, sky.sun_color.g, sky.sun_color.b],
                elevation=sky.elevation,
            ),
        )

    @app.get("/api/storyboard", response_model=StoryboardStateResponse, tags=["Storyboard"])
    def get_storyboard() -> StoryboardStateResponse:
        return _state()

    @app.post(
        "/api/storyboard/boards",
        response_model=StoryboardStateResponse,
        status_code=201,
        tags=["Storyboard"],
    )
    def add_board(payload: BoardCreateRequest) -> StoryboardStateResponse:
        try:
            editor.add_board(payload.gap_frames)
        except (StoryboardError, ValueError, TypeError) as exc:
            raise _http_error(exc) from exc
        return _state()

    @app.put(
        "/api/storyboard/current-board",
        response_model=StoryboardStateResponse,
        tags=["Storyboard"],
    )
    def set_current_board(payload: CurrentBoardRequest) -> StoryboardStateResponse:
        try:
            editor.set_current_board(payload.index)
        except (StoryboardError, ValueError, TypeError, IndexError) as exc:
            raise _http_error(exc) from exc
        return _state()

    @app.post(
        "/api/storyboard/playback/play",
        response_model=StoryboardStateResponse,
        tags=["Storyboard"],
    )
    def play() -> StoryboardStateResponse:
        try:
            editor.play()
        except StoryboardError as exc:
            raise _http_error(exc) from exc
        return _state()

    @app.post(
        "/api/storyboard/playback/pause",
        response_model=StoryboardStateResponse,
        tags=["Storyboard"],
    )
    def pause() -> StoryboardStateResponse:
        editor.pause()
        return _state()

    @app.post(
        "/api/storyboard/playback/tick",
        response_model=StoryboardStateResponse,
        tags=["Storyboard"],
    )
    def tick(payload: TickRequest) -> StoryboardStateResponse:
        try:
            editor.tick(payload.now)
        except StoryboardError as exc:
            raise _http_error(exc) from exc
        return _state()

    @app.patch(
        "/api/storyboard/settings",
        response_model=StoryboardStateResponse,
        tags=["Storyboard"],
    )
    def update_settings(payload: SceneSettingsUpdateRequest) -> StoryboardStateResponse:
        changes = payload.model_dump(exclude_unset=True)
        try:
            editor.update_settings(**changes)
        except (StoryboardError, ValueError, TypeError, IndexError) as exc:
            raise _http_error(exc) from exc
        return _state()

    @app.get("/api/objects", response_model=InspectableListResponse, tags=["Objects"])
    def list_objects() -> InspectableListResponse:
        return InspectableListResponse(
            data=[_inspectable_resource(item) for item in editor.inspectables()]
        )

    @app.get("/api/objects/{object_id}", response_model=InspectableResource, tags=["Objects"])
    def get_object(object_id: str) -> InspectableResource:
        try:
            item = editor.get_inspectable(object_id, strict=True)
        except NotFound as exc:
            raise _http_error(exc) from exc
        return _inspectable_resource(item)  # type: ignore[arg-type]

    @app.post(
        "/api/objects/primitives",
        response_model=InspectableResource,
        status_code=201,
        tags=["Objects"],
    )
    def add_primitive(payload: PrimitiveCreateRequest) -> InspectableResource:
        try:
            target = editor.add_primitive(payload.kind)
        except (StoryboardError, ValueError) as exc:
            raise _http_error(exc) from exc
        return _inspectable_resource(editor.get_inspectable(target.id))  # type: ignore[arg-type]

    @app.post(
        "/api/objects/imports",
        response_model=InspectableResource,
        status_code=201,
        tags=["Objects"],
    )
    def import_model(payload: ModelImportRequest) -> InspectableResource:
        try:
            pending = editor.begin_import(payload.name)
            target = pending.complete(
                [
                    ClipSpec(clip.name, clip.first_frame, clip.last_frame)
                    for clip in payload.clips
                ]
            )
        except (StoryboardError, ValueError, TypeError) as exc:
            raise _http_error(exc) from exc
        return _inspectable_resource(editor.get_inspectable(target.id))  # type: ignore[arg-type]

    @app.put(
        "/api/objects/{object_id}/properties/{key}",
        response_model=InspectableResource,
        tags=["Objects"],
    )
    def set_property(object_id: str, key: str, payload: PropertyUpdateRequest) -> InspectableResource:
        try:
            editor.set_property(object_id, key, payload.value)
            item = editor.get_inspectable(object_id, strict=True)
        except (StoryboardError, ValueError, TypeError, KeyError) as exc:
            raise _http_error(exc) from exc
        return _inspectable_resource(item)  # type: ignore[arg-type]

    @app.put("/api/selection", response_model=StoryboardStateResponse, tags=["Objects"])
    def select(payload: SelectionRequest) -> StoryboardStateResponse:
        try:
            editor.select(payload.id)
        except NotFound as exc:
            raise _http_error(exc) from exc
        return _state()

    @app.delete("/api/selection", response_model=StoryboardStateResponse, tags=["Objects"])
    def delete_selected() -> StoryboardStateResponse:
        try:
            deleted = editor.delete_selected()
        except (StoryboardError, ValueError) as exc:
            raise _http_error(exc) from exc
        if not deleted:
            raise HTTPException(status_code=404, detail="Nothing is selected.")
        return _state()

    @app.get("/api/archive", tags=["Archive"])
    def download_archive() -> Response:
        try:
            content = editor.serialize()
        except StoryboardError as exc:
            raise _http_error(exc) from exc

        filename = f"{editor.settings.archive_basename}.zip"
        headers = {
            "content-disposition": f'attachment; filename="{filename}"',
            "x-storyboard-boards": str(editor.get_timeline_length()),
        }
        return Response(content=content, media_type=ARCHIVE_MEDIA_TYPE, headers=headers)

    @app.post("/api/archive", response_model=LoadReportResponse, tags=["Archive"])
    def upload_archive(payload: ArchiveUploadRequest) -> LoadReportResponse:
        try:
            report = editor.deserialize(payload.decoded_content())
        except (StoryboardError, ValueError, TypeError) as exc:
            raise _http_error(exc) from exc
        return LoadReportResponse(
            entry_errors=dict(report.entry_errors),
            unresolved=[
                UnresolvedReferenceResource(
                    kind=reference.kind,
                    name=reference.name,
                    owner=reference.owner,
                    detail=reference.detail,
                )
                for reference in report.unresolved
            ],
            state=_state(),
        )

    return app


__all__ = ["create_app"]
