from __future__ import annotations

import json
import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from analysis.analyzer import FramePipeline, FrameResult, analyze_video
from api.schemas import (
    AnalyzeResponse,
    AnglesOut,
    FrameIn,
    FrameResultOut,
    IssueOut,
    JobStatusResponse,
    JobSubmitResponse,
    PointMarkersOut,
    SessionState,
    TextLineOut,
)
from pose.backend import PoseBackend
from pose.draw import PointMarkers
from pose.landmarks import Landmark


logger = logging.getLogger(__name__)


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


# Runtime knobs (tunable via environment)
SQUATCOACH_MODEL_COMPLEXITY = _get_env_int("SQUATCOACH_MODEL_COMPLEXITY", 1)  # 0/1/2
SQUATCOACH_TARGET_WIDTH = _get_env_int("SQUATCOACH_TARGET_WIDTH", 0)  # <= 0 disables resize
SQUATCOACH_MIN_VISIBILITY = _get_env_float("SQUATCOACH_MIN_VISIBILITY", 0.5)
MAX_UPLOAD_BYTES = _get_env_int("SQUATCOACH_MAX_UPLOAD_MB", 50) * 1024 * 1024
REPORT_ROOT = Path(os.getenv("SQUATCOACH_REPORT_ROOT", "report")).resolve()
SESSION_IDLE_TTL_S = _get_env_float("SQUATCOACH_SESSION_TTL_S", 900.0)  # <= 0 keeps sessions until DELETE

ALLOWED_CONTENT_TYPES = {"video/mp4", "application/octet-stream"}


app = FastAPI(title="Squat Coach API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- live sessions -------------------------------------------------------


@dataclass
class _Session:
    pipeline: FramePipeline
    lock: threading.Lock = field(default_factory=threading.Lock)
    frames_processed: int = 0
    last_seen: float = field(default_factory=time.monotonic)


SESSIONS: Dict[str, _Session] = {}
_SESSIONS_LOCK = threading.Lock()


def _evict_idle_sessions(now: float) -> None:
    # Caller holds _SESSIONS_LOCK
    if SESSION_IDLE_TTL_S <= 0:
        return
    stale = [sid for sid, s in SESSIONS.items() if now - s.last_seen > SESSION_IDLE_TTL_S]
    for sid in stale:
        del SESSIONS[sid]
        logger.info("session %s expired after %.0fs idle", sid, SESSION_IDLE_TTL_S)


def _get_session(session_id: str) -> _Session:
    now = time.monotonic()
    with _SESSIONS_LOCK:
        _evict_idle_sessions(now)
        session = SESSIONS.get(session_id)
        if session is not None:
            session.last_seen = now
    if session is None:
        raise HTTPException(status_code=404, detail="Unknown session_id")
    return session


def _session_state(session_id: str, session: _Session) -> SessionState:
    state = session.pipeline.state
    return SessionState(
        session_id=session_id,
        count=state.count,
        in_squat_position=state.in_squat_position,
        frames_processed=session.frames_processed,
    )


def _frame_out(session_id: str, result: FrameResult) -> FrameResultOut:
    instructions: List[object] = []
    for instr in result.instructions:
        if isinstance(instr, PointMarkers):
            instructions.append(PointMarkersOut(points=list(instr.points), radius=instr.radius))
        else:
            instructions.append(TextLineOut(text=instr.text, position=instr.position))
    verdict = result.verdict
    return FrameResultOut(
        session_id=session_id,
        frame_index=result.frame_idx,
        analyzable=result.analyzable,
        count=result.count,
        in_squat_position=result.in_squat_position,
        rep_event=result.rep_event,
        form_correct=verdict.correct if verdict is not None else None,
        issues=[IssueOut(category=i.category, message=i.message) for i in verdict.issues] if verdict else [],
        angles=AnglesOut(**result.angles.as_dict()) if result.angles is not None else None,
        instructions=instructions,
    )


@app.post("/sessions", response_model=SessionState, status_code=201)
def create_session() -> SessionState:
    session_id = str(uuid.uuid4())
    session = _Session(pipeline=FramePipeline(min_visibility=SQUATCOACH_MIN_VISIBILITY))
    with _SESSIONS_LOCK:
        _evict_idle_sessions(time.monotonic())
        SESSIONS[session_id] = session
    logger.info("session %s started", session_id)
    return _session_state(session_id, session)


@app.get("/sessions/{session_id}", response_model=SessionState)
def get_session(session_id: str) -> SessionState:
    session = _get_session(session_id)
    with session.lock:
        return _session_state(session_id, session)


@app.post("/sessions/{session_id}/frames", response_model=FrameResultOut)
def submit_frame(session_id: str, frame: FrameIn) -> FrameResultOut:
    session = _get_session(session_id)
    landmarks: List[Optional[Landmark]] = [
        Landmark(x=lm.x, y=lm.y, visibility=lm.visibility) if lm is not None else None
        for lm in frame.landmarks
    ]
    # One frame at a time per session; the FSM state must not interleave
    with session.lock:
        result = session.pipeline.process(landmarks)
        session.frames_processed += 1
    return _frame_out(session_id, result)


@app.post("/sessions/{session_id}/reset", response_model=SessionState)
def reset_session(session_id: str) -> SessionState:
    session = _get_session(session_id)
    with session.lock:
        session.pipeline.reset()
        session.frames_processed = 0
        logger.info("session %s reset", session_id)
        return _session_state(session_id, session)


@app.delete("/sessions/{session_id}", status_code=204)
def delete_session(session_id: str) -> None:
    with _SESSIONS_LOCK:
        session = SESSIONS.pop(session_id, None)
    if session is None:
        raise HTTPException(status_code=404, detail="Unknown session_id")
    logger.info("session %s closed", session_id)


# --- video jobs ----------------------------------------------------------


def _iter_frames_from_video_file(
    video_path: Path,
    *,
    target_width: Optional[int] = None,
    model_complexity: int = 1,
    on_start: Optional[Callable[[int], None]] = None,
    on_progress: Optional[Callable[[int], None]] = None,
) -> Iterator[Sequence[Optional[Landmark]]]:
    import cv2  # type: ignore

    cap = cv2.VideoCapture(str(video_path))
    if not cap.isOpened():
        raise RuntimeError("Failed to open uploaded video")
    total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)

    try:
        backend = PoseBackend(model_complexity=model_complexity)
    except ImportError as exc:
        cap.release()
        raise RuntimeError("mediapipe is not available in the API runtime") from exc

    try:
        with backend as b:
            if on_start is not None:
                on_start(total_frames)
            idx = 0
            while True:
                ok, frame = cap.read()
                if not ok:
                    break
                if target_width and target_width > 0:
                    h, w = frame.shape[:2]
                    if w > target_width:
                        scale = float(target_width) / float(w)
                        frame = cv2.resize(
                            frame, (target_width, int(round(h * scale))), interpolation=cv2.INTER_AREA
                        )
                landmarks = b.infer(frame)
                idx += 1
                if on_progress is not None:
                    on_progress(idx)
                yield landmarks
    finally:
        cap.release()


JOBS: Dict[str, dict] = {}
JOB_FRAMES_TOTAL: Dict[str, int] = {}
JOB_FRAMES_DONE: Dict[str, int] = {}


def _log(vid: str, msg: str) -> None:
    logger.info("job %s: %s", vid, msg)
    report_dir = REPORT_ROOT / vid
    report_dir.mkdir(parents=True, exist_ok=True)
    with open(report_dir / "logs.txt", "a", encoding="utf-8") as f:
        f.write(msg + "\n")


def _run_job(job_id: str, path: Path) -> None:
    JOBS[job_id] = {"status": "processing"}
    _log(job_id, "Job started")

    def on_start(total: int) -> None:
        JOB_FRAMES_TOTAL[job_id] = int(total)
        _log(job_id, f"Frames total: {total}")

    def on_progress(done: int) -> None:
        JOB_FRAMES_DONE[job_id] = int(done)

    try:
        frames_iter = _iter_frames_from_video_file(
            path,
            target_width=SQUATCOACH_TARGET_WIDTH if SQUATCOACH_TARGET_WIDTH > 0 else None,
            model_complexity=SQUATCOACH_MODEL_COMPLEXITY,
            on_start=on_start,
            on_progress=on_progress,
        )
        t0 = time.time()
        result = analyze_video(frames_iter)
        elapsed = max(1e-6, time.time() - t0)
        fps = JOB_FRAMES_DONE.get(job_id, 0) / elapsed
        _log(job_id, f"Processing done in {elapsed:.2f}s @ {fps:.2f} FPS")
        # Keep API paths stable: the job id is the video id
        result["video_id"] = job_id
        with open(REPORT_ROOT / job_id / "summary.json", "w", encoding="utf-8") as f:
            json.dump(result, f, ensure_ascii=False, indent=2)
        JOBS[job_id] = {"status": "done", "video_id": job_id}
    except Exception as exc:
        logger.exception("job %s failed", job_id)
        _log(job_id, f"Error: {exc}")
        JOBS[job_id] = {"status": "error", "error": str(exc)}


@app.post("/analyze", response_model=JobSubmitResponse, status_code=202)
async def analyze(file: UploadFile = File(...)):
    content_type = file.content_type or ""
    filename = (file.filename or "").lower()
    if content_type not in ALLOWED_CONTENT_TYPES and not filename.endswith(".mp4"):
        raise HTTPException(status_code=415, detail="Unsupported media type; expected MP4")
    body = await file.read()
    if len(body) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"File too large; max {MAX_UPLOAD_BYTES // (1024 * 1024)}MB")

    vid = str(uuid.uuid4())
    JOBS[vid] = {"status": "queued"}
    JOB_FRAMES_TOTAL[vid] = 0
    JOB_FRAMES_DONE[vid] = 0

    report_dir = REPORT_ROOT / vid
    report_dir.mkdir(parents=True, exist_ok=True)
    video_path = report_dir / "input.mp4"
    video_path.write_bytes(body)

    threading.Thread(target=_run_job, args=(vid, video_path), daemon=True).start()
    return JobSubmitResponse(video_id=vid, status="queued")


@app.get("/status/{video_id}", response_model=JobStatusResponse)
async def status(video_id: str):
    job = JOBS.get(video_id)
    if not job:
        raise HTTPException(status_code=404, detail="Unknown video_id")
    total = JOB_FRAMES_TOTAL.get(video_id) or 0
    done = JOB_FRAMES_DONE.get(video_id) or 0
    progress = min(1.0, done / total) if total else None
    return JobStatusResponse(
        video_id=video_id,
        status=job.get("status", "unknown"),
        detail=job.get("error"),
        progress=progress,
        frames_done=done,
        frames_total=total,
    )


@app.get("/result/{video_id}", response_model=AnalyzeResponse)
async def result(video_id: str):
    p = REPORT_ROOT / video_id / "summary.json"
    if not p.exists():
        raise HTTPException(status_code=404, detail="summary.json missing")
    return json.loads(p.read_text(encoding="utf-8"))


@app.get("/logs/{video_id}", response_class=PlainTextResponse)
async def logs_endpoint(video_id: str):
    p = REPORT_ROOT / video_id / "logs.txt"
    if p.exists():
        return p.read_text(encoding="utf-8")
    return ""


@app.get("/health", response_class=PlainTextResponse)
async def health() -> str:
    return "ok"
