from __future__ import annotations

import logging
import os
import time
from typing import Dict, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from analysis.evaluator import SKIP_MISSING_LANDMARKS
from analysis.session import ExerciseSession, SessionUpdate
from analysis.utils import DEFAULT_PREVIEW_FPS, DEFAULT_TARGET_REPS, EVALUATION_THROTTLE_MS
from animation.interpolator import KeyframeAnimator
from animation.player import AnimationLoop
from animation.rig import RigConfigurationError
from api.schemas import (
    AnimationData,
    AnimationFrameRequest,
    OverlayRequest,
    OverlayResponse,
    PoseFeedback,
    PoseMessage,
    SessionCreateRequest,
    SessionResponse,
)
from pose.landmarks import to_landmark_frame
from pose.overlay import FULL_BODY_CONNECTIONS, SKELETON_CONNECTIONS, TOPOLOGY_VERSION, overlay_segments


def _get_env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, str(default))).strip())
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    try:
        return float(str(os.getenv(name, str(default))).strip())
    except ValueError:
        return default


# Service knobs (tunable via environment)
KORE_THROTTLE_MS = _get_env_float("KORE_THROTTLE_MS", EVALUATION_THROTTLE_MS)
KORE_TARGET_REPS = _get_env_int("KORE_TARGET_REPS", DEFAULT_TARGET_REPS)
KORE_MAX_SESSIONS = _get_env_int("KORE_MAX_SESSIONS", 64)
KORE_SESSION_IDLE_S = _get_env_float("KORE_SESSION_IDLE_S", 300.0)
KORE_PREVIEW_FPS = _get_env_float("KORE_PREVIEW_FPS", DEFAULT_PREVIEW_FPS)
KORE_LOG_LEVEL = os.getenv("KORE_LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=getattr(logging, KORE_LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(title="Kore Motion API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


SESSIONS: Dict[str, ExerciseSession] = {}


def _session_or_404(session_id: str) -> ExerciseSession:
    session = SESSIONS.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Unknown session_id")
    return session


def _evict_idle_sessions() -> None:
    """End and drop sessions that were ended or have not seen a frame for KORE_SESSION_IDLE_S."""
    now = time.monotonic()
    for session_id, session in list(SESSIONS.items()):
        if session.active and now - session.last_active_at <= KORE_SESSION_IDLE_S:
            continue
        session.end()
        del SESSIONS[session_id]
        logger.info("session %s evicted (idle or ended)", session_id)


def _session_response(session: ExerciseSession) -> SessionResponse:
    snap = session.snapshot()
    if not session.active:
        status = "ended"
    elif session.completed:
        status = "completed"
    else:
        status = "active"
    return SessionResponse(
        session_id=session.session_id,
        status=status,
        stage=snap["stage"],
        reps=snap["reps"],
        target_reps=snap["target_reps"],
        completed=snap["completed"],
    )


def _feedback_message(session: ExerciseSession, update: SessionUpdate) -> Optional[str]:
    event = update.event
    if session.completed:
        return f"Great work! You completed {session.reps} repetitions."
    if event.get("rep_event") == "rep_complete":
        return f"Repetition {event['reps']} done"
    if event.get("skipped") == SKIP_MISSING_LANDMARKS:
        joints = ", ".join(name.replace("_", " ") for name in session.spec.landmarks[:3])
        return f"Keep your {joints} visible to the camera"
    return None


@app.get("/health", response_class=PlainTextResponse)
async def health() -> str:
    return "ok"


@app.post("/sessions", response_model=SessionResponse, status_code=201)
async def create_session(body: SessionCreateRequest):
    _evict_idle_sessions()
    if len(SESSIONS) >= KORE_MAX_SESSIONS:
        raise HTTPException(status_code=503, detail="Too many active sessions")
    try:
        spec = body.classification_data.to_spec()
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    session = ExerciseSession(
        spec,
        target_reps=KORE_TARGET_REPS if body.target_reps is None else body.target_reps,
        facing=body.facing,
        viewport=(body.viewport.width, body.viewport.height) if body.viewport else None,
        throttle_ms=KORE_THROTTLE_MS,
    )
    SESSIONS[session.session_id] = session
    return _session_response(session)


@app.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    return _session_response(_session_or_404(session_id))


@app.delete("/sessions/{session_id}", response_model=SessionResponse)
async def end_session(session_id: str):
    session = _session_or_404(session_id)
    session.end()
    del SESSIONS[session_id]
    return _session_response(session)


@app.websocket("/sessions/{session_id}/pose")
async def pose_stream(websocket: WebSocket, session_id: str):
    """
    Live pose feedback. The client sends {"pose_landmarks": [...], "timestamp": ms}
    for every detected frame and gets a PoseFeedback reply for each one.
    """
    await websocket.accept()
    session = SESSIONS.get(session_id)
    if session is None or not session.active:
        await websocket.send_json({"error": "Session not found"})
        await websocket.close(code=1008)
        return

    logger.info("pose socket opened for session %s", session_id)
    try:
        while True:
            try:
                raw = await websocket.receive_json()
                message = PoseMessage.model_validate(raw)
            except (ValueError, ValidationError) as exc:
                logger.warning("session %s: rejected pose message: %s", session_id, exc)
                await websocket.send_json({"error": "Invalid pose message"})
                continue

            if not session.active:
                await websocket.send_json({"error": "Session ended"})
                await websocket.close(code=1000)
                return

            update = session.process_landmarks(message.pose_landmarks, message.timestamp)
            feedback = PoseFeedback(
                rep_counts=int(update.snapshot["reps"]),
                stage=update.snapshot["stage"],
                accepted=bool(update.event["accepted"]),
                skipped=update.event.get("skipped"),
                completed=bool(update.snapshot["completed"]),
                feedback_message=_feedback_message(session, update),
                segments=[seg.as_dict() for seg in update.segments],
            )
            await websocket.send_json(feedback.model_dump())
    except WebSocketDisconnect:
        logger.info("pose socket closed for session %s", session_id)


@app.post("/overlay", response_model=OverlayResponse)
async def overlay(body: OverlayRequest):
    frame = to_landmark_frame(body.pose_landmarks)
    segments = overlay_segments(
        frame,
        body.width,
        body.height,
        facing=body.facing,
        connections=FULL_BODY_CONNECTIONS if body.full_body else SKELETON_CONNECTIONS,
    )
    return OverlayResponse(topology_version=TOPOLOGY_VERSION, segments=[s.as_dict() for s in segments])


@app.post("/animation/frame")
async def animation_frame(body: AnimationFrameRequest):
    try:
        rig = body.animation_data.to_rig()
    except RigConfigurationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    animator = KeyframeAnimator(rig, body.width, body.height)
    if body.progress is not None:
        frame = animator.frame_at_progress(body.progress, elapsed=body.elapsed)
    else:
        frame = animator.frame_at(body.elapsed)
    return frame.as_dict()


@app.websocket("/animation/preview")
async def animation_preview(websocket: WebSocket):
    """
    Streams target-motion preview frames. The first client message is the
    animationData object (optionally with "width"/"height"); frames follow until
    the client disconnects.
    """
    await websocket.accept()
    try:
        raw = await websocket.receive_json()
        width = float(raw.get("width", 200.0)) if isinstance(raw, dict) else 200.0
        height = float(raw.get("height", 200.0)) if isinstance(raw, dict) else 200.0
        rig = AnimationData.model_validate(raw).to_rig()
        animator = KeyframeAnimator(rig, width, height)
    except WebSocketDisconnect:
        return
    except (ValueError, ValidationError) as exc:
        await websocket.send_json({"error": f"Invalid animation data: {exc}"})
        await websocket.close(code=1003)
        return

    loop = AnimationLoop(animator, lambda frame: websocket.send_json(frame.as_dict()), fps=KORE_PREVIEW_FPS)
    loop.start()
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        try:
            await loop.stop()
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            # the last frame raced the client closing the socket
            logger.debug("preview stream ended: %s", exc)
