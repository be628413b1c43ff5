"""
FastAPI entrypoint for the advertisement checker service.

This module defines the public HTTP interface: sessions are created by
uploading an advertisement, driven through their stages by explicit
user events, and queried for results and conversation history.

Sessions live in a bounded in-process registry: idle sessions expire and
can be deleted explicitly. Nothing is persisted except the user's scene
configuration.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, List, Optional
from uuid import uuid4

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import Response

from adchecker.app.catalog.client import ChecklistCatalogClient
from adchecker.app.catalog.scene_store import SceneStore
from adchecker.app.checking.chat import ChatResponder
from adchecker.app.checking.checker import SingleItemChecker
from adchecker.app.checking.errors import (
    CheckerError,
    InvalidTransition,
    ValidationError,
)
from adchecker.app.config import CheckerConfig
from adchecker.app.llm.executor import GenerativeExecutor, build_executor
from adchecker.app.prompts import PromptBuilder
from adchecker.app.schemas.catalog import AdType, ChecklistItem, Scene, SceneRecord
from adchecker.app.schemas.session import ChatMessage, SessionSnapshot
from adchecker.app.workflow.profile import get_profile
from adchecker.app.workflow.registry import SessionRegistry
from adchecker.app.workflow.state_machine import SessionStateMachine

# Events / streaming
from adchecker.app.events import CheckEvent, CheckEventType, MemoryQueueEventEmitter

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


# ---------------------------------------------------------------------------
# Presentation helpers (presentation-only)
# ---------------------------------------------------------------------------

class JapaneseJSONResponse(Response):
    """
    JSON response that keeps Japanese text readable (no ASCII escaping).
    """

    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        ).encode("utf-8")


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class ConfirmTypeRequest(BaseModel):
    ad_type: Optional[AdType] = Field(
        None,
        description="Confirmed type; omitted to accept the detected type",
    )

    model_config = ConfigDict(extra="forbid")


class SceneSelectionRequest(BaseModel):
    scene_ids: List[str] = Field(..., min_length=1)
    category: Optional[str] = Field(
        None,
        description="Catalog scene type to resolve ids against; "
        "omitted to use the locally configured scenes",
    )

    model_config = ConfigDict(extra="forbid")


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------------
# Application setup
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Advertisement Checker Service",
    description="Model-assisted compliance checks for real-estate advertisements",
    version="0.1.0",
)


def configure_app(
    *,
    config: CheckerConfig,
    executor: GenerativeExecutor,
    catalog: Optional[ChecklistCatalogClient] = None,
    scene_store: Optional[SceneStore] = None,
) -> None:
    """
    Wire every collaborator onto ``app.state``.

    Called by the startup hook, and directly by tests with injected
    collaborators.
    """
    prompts = PromptBuilder()

    app.state.config = config
    app.state.checker = SingleItemChecker(executor=executor, prompts=prompts)
    app.state.chat = ChatResponder(executor=executor, prompts=prompts)
    app.state.catalog = catalog or ChecklistCatalogClient.from_config(config)
    app.state.scene_store = scene_store or SceneStore(config.SCENE_STORE_PATH)
    app.state.sessions = SessionRegistry(
        max_sessions=config.MAX_SESSIONS,
        idle_ttl_seconds=config.SESSION_IDLE_TTL_SECONDS,
    )


# ---------------------------------------------------------------------------
# Startup / Shutdown
# ---------------------------------------------------------------------------

@app.on_event("startup")
def startup_event() -> None:
    """
    Application startup hook.

    Configuration is loaded once and treated as immutable for the lifetime
    of the process. The generative executor is constructed here.
    """
    config = CheckerConfig.from_env()

    logging.basicConfig(level=config.LOG_LEVEL, format=LOG_FORMAT)
    logger.info(
        "Starting advertisement checker (provider=%s, profile=%s)",
        config.MODEL_PROVIDER,
        config.WORKFLOW_PROFILE,
    )

    configure_app(config=config, executor=build_executor(config))


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """Application shutdown hook."""
    catalog: Optional[ChecklistCatalogClient] = getattr(app.state, "catalog", None)
    if catalog is not None:
        await catalog.aclose()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _http_error(exc: CheckerError, session_id: Optional[str] = None) -> HTTPException:
    if isinstance(exc, ValidationError):
        status_code = 413 if exc.too_large else 400
    elif isinstance(exc, InvalidTransition):
        status_code = 409
    else:
        status_code = 502

    return HTTPException(
        status_code=status_code,
        detail={
            "error_kind": exc.kind,
            "message": exc.user_message,
            "session_id": session_id,
        },
    )


def _get_session(session_id: str) -> SessionStateMachine:
    sessions: SessionRegistry = app.state.sessions
    machine = sessions.get(session_id)
    if machine is None:
        raise HTTPException(status_code=404, detail="Unknown session")
    return machine


async def _resolve_scenes(request: SceneSelectionRequest) -> List[Scene]:
    if request.category is not None:
        catalog: ChecklistCatalogClient = app.state.catalog
        try:
            available: List[Scene] = list(
                await catalog.fetch_scenes(request.category)
            )
        except CheckerError as exc:
            raise _http_error(exc) from exc
    else:
        store: SceneStore = app.state.scene_store
        available = store.load()

    by_id = {scene.id: scene for scene in available}
    unknown = [scene_id for scene_id in request.scene_ids if scene_id not in by_id]
    if unknown:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown scene ids: {unknown}",
        )

    return [by_id[scene_id] for scene_id in request.scene_ids]


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@app.post(
    "/sessions",
    response_model=SessionSnapshot,
    response_class=JapaneseJSONResponse,
    summary="Upload an advertisement and start a session",
)
async def create_session(
    file: UploadFile = File(..., description="PDF or image advertisement"),
    profile: Optional[str] = Form(None, description="Workflow profile name"),
) -> SessionSnapshot:
    """
    Create a session and upload its file.

    On the checklist track the advertisement type is detected before the
    response is returned.
    """
    config: CheckerConfig = app.state.config

    try:
        workflow = get_profile(profile or config.WORKFLOW_PROFILE)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        content = await file.read()
    except Exception as exc:
        raise HTTPException(
            status_code=400,
            detail="Failed to read uploaded file",
        ) from exc

    session_id = str(uuid4())
    machine = SessionStateMachine(
        session_id=session_id,
        profile=workflow,
        config=config,
        checker=app.state.checker,
        chat=app.state.chat,
        catalog=app.state.catalog,
    )
    app.state.sessions.add(machine)

    try:
        return await machine.upload(
            filename=file.filename or "upload",
            content=content,
            declared_mime_type=file.content_type,
        )
    except CheckerError as exc:
        raise _http_error(exc, session_id) from exc


@app.get(
    "/sessions/{session_id}",
    response_model=SessionSnapshot,
    response_class=JapaneseJSONResponse,
    summary="Session snapshot",
)
def get_session(session_id: str) -> SessionSnapshot:
    return _get_session(session_id).snapshot()


@app.post(
    "/sessions/{session_id}/upload",
    response_model=SessionSnapshot,
    response_class=JapaneseJSONResponse,
    summary="Upload a new file into a session in its initial stage",
)
async def upload_to_session(
    session_id: str,
    file: UploadFile = File(..., description="PDF or image advertisement"),
) -> SessionSnapshot:
    machine = _get_session(session_id)

    try:
        content = await file.read()
    except Exception as exc:
        raise HTTPException(
            status_code=400,
            detail="Failed to read uploaded file",
        ) from exc

    try:
        return await machine.upload(
            filename=file.filename or "upload",
            content=content,
            declared_mime_type=file.content_type,
        )
    except CheckerError as exc:
        raise _http_error(exc, session_id) from exc


@app.post(
    "/sessions/{session_id}/confirm",
    response_model=SessionSnapshot,
    response_class=JapaneseJSONResponse,
    summary="Confirm the advertisement type and run the checklist review",
)
async def confirm_type(
    session_id: str,
    request: Optional[ConfirmTypeRequest] = None,
) -> SessionSnapshot:
    machine = _get_session(session_id)
    ad_type = request.ad_type if request is not None else None
    try:
        return await machine.confirm_type(ad_type)
    except CheckerError as exc:
        raise _http_error(exc, session_id) from exc


@app.post(
    "/sessions/{session_id}/scenes",
    response_model=SessionSnapshot,
    response_class=JapaneseJSONResponse,
    summary="Evaluate the advertisement against selected scenes",
)
async def evaluate_scenes(
    session_id: str,
    request: SceneSelectionRequest,
) -> SessionSnapshot:
    machine = _get_session(session_id)
    scenes = await _resolve_scenes(request)
    try:
        return await machine.evaluate_scenes(scenes)
    except CheckerError as exc:
        raise _http_error(exc, session_id) from exc


@app.post(
    "/sessions/{session_id}/scenes/stream",
    summary="Evaluate selected scenes (streaming progress)",
)
async def evaluate_scenes_stream(
    session_id: str,
    request: SceneSelectionRequest,
):
    """
    Evaluate scenes while streaming progress events.

    This endpoint is observational only:
    - Client disconnects do NOT cancel the evaluation
    - Events do NOT influence execution
    - The stream ends with SESSION_COMPLETED or SESSION_FAILED
    """
    machine = _get_session(session_id)
    scenes = await _resolve_scenes(request)
    try:
        machine.check_scene_selection(scenes)
    except CheckerError as exc:
        raise _http_error(exc, session_id) from exc

    emitter = MemoryQueueEventEmitter()

    # --------------------------------------------------------------
    # Background evaluation
    # --------------------------------------------------------------
    async def run_evaluation_task() -> None:
        try:
            await machine.evaluate_scenes(scenes, emitter=emitter)
        except CheckerError as exc:
            # Rejected before the stage started (e.g. a concurrent
            # request won): no SESSION_FAILED has been emitted yet
            if not emitter.closed:
                await emitter.emit(
                    CheckEvent(
                        session_id=session_id,
                        event_type=CheckEventType.SESSION_FAILED,
                        details={
                            "stage": machine.stage.value,
                            "error_kind": exc.kind,
                            "message": exc.user_message,
                        },
                    )
                )
        except Exception:
            logger.exception("Session %s scene evaluation crashed", session_id)
        finally:
            await emitter.close()

    asyncio.create_task(run_evaluation_task())

    # --------------------------------------------------------------
    # SSE event stream
    # --------------------------------------------------------------
    async def event_stream():
        try:
            async for event in emitter.stream():
                yield event.to_sse_payload()
        except asyncio.CancelledError:
            # Client disconnected; evaluation continues
            pass

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@app.post(
    "/sessions/{session_id}/chat",
    response_model=ChatMessage,
    response_class=JapaneseJSONResponse,
    summary="Ask a follow-up question about the results",
)
async def chat(session_id: str, request: ChatRequest) -> ChatMessage:
    machine = _get_session(session_id)
    try:
        return await machine.ask(request.message)
    except CheckerError as exc:
        raise _http_error(exc, session_id) from exc


@app.post(
    "/sessions/{session_id}/reset",
    response_model=SessionSnapshot,
    response_class=JapaneseJSONResponse,
    summary="Discard the session's file and results",
)
async def reset_session(session_id: str) -> SessionSnapshot:
    return await _get_session(session_id).reset()


@app.delete(
    "/sessions/{session_id}",
    status_code=204,
    summary="Delete the session and release its file",
)
async def delete_session(session_id: str) -> Response:
    sessions: SessionRegistry = app.state.sessions
    machine = sessions.remove(session_id)
    if machine is None:
        raise HTTPException(status_code=404, detail="Unknown session")

    # Outcomes of calls still in flight are discarded
    await machine.reset()
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

@app.get(
    "/catalog/categories",
    response_class=JapaneseJSONResponse,
    summary="Advertisement / scene categories known to the catalog",
)
async def catalog_categories() -> List[str]:
    catalog: ChecklistCatalogClient = app.state.catalog
    try:
        return await catalog.list_categories()
    except CheckerError as exc:
        raise _http_error(exc) from exc


@app.get(
    "/catalog/checklist",
    response_model=List[ChecklistItem],
    response_class=JapaneseJSONResponse,
    summary="Checklist items for one advertisement type",
)
async def catalog_checklist(category: AdType) -> List[ChecklistItem]:
    catalog: ChecklistCatalogClient = app.state.catalog
    try:
        return await catalog.fetch_checklist(category)
    except CheckerError as exc:
        raise _http_error(exc) from exc


@app.get(
    "/catalog/scenes",
    response_model=List[SceneRecord],
    response_class=JapaneseJSONResponse,
    summary="Tabular scene records for one scene type",
)
async def catalog_scenes(category: str) -> List[SceneRecord]:
    catalog: ChecklistCatalogClient = app.state.catalog
    try:
        return await catalog.fetch_scenes(category)
    except CheckerError as exc:
        raise _http_error(exc) from exc


# ---------------------------------------------------------------------------
# Local scene configuration
# ---------------------------------------------------------------------------

@app.get(
    "/scenes",
    response_model=List[Scene],
    response_class=JapaneseJSONResponse,
    summary="Configured scenes",
)
def list_scenes() -> List[Scene]:
    store: SceneStore = app.state.scene_store
    return store.load()


@app.put(
    "/scenes",
    response_model=List[Scene],
    response_class=JapaneseJSONResponse,
    summary="Replace the configured scenes",
)
def replace_scenes(scenes: List[Scene]) -> List[Scene]:
    store: SceneStore = app.state.scene_store
    try:
        return store.save(scenes)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


# ---------------------------------------------------------------------------
# Health Check
# ---------------------------------------------------------------------------

@app.get(
    "/health",
    summary="Service health check",
)
def health_check() -> JSONResponse:
    """Simple health check endpoint."""
    return JSONResponse(
        content={
            "status": "ok",
            "service": "adchecker",
        }
    )
