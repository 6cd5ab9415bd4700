"""
FastAPI Backend for Eduvane

Provides REST API endpoints with:
- Optional JWT authentication (no token = guest turn, nothing persisted)
- One orchestrator per (user, session) kept in memory
- Server-sent event stream of orchestrator events
- Submission history and profile backed by Supabase, or local JSON storage
"""

from fastapi import FastAPI, HTTPException, Depends, File, Form, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, field_validator
from typing import Callable, Dict, Optional, Set, Tuple
from dataclasses import dataclass, field
import asyncio
import json
import logging
import os
import signal
import sys
import time
import uuid

# Setup enhanced logging with pretty formatting
from lib.logger import setup_logging, get_logger

setup_logging(level=logging.INFO, use_colors=True)

logger = get_logger("backend.main")

# Add the eduvane_orchestrator package to Python path
backend_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(backend_dir)

package_src = os.path.join(project_root, 'eduvane_orchestrator', 'src')
if os.path.exists(package_src) and package_src not in sys.path:
    sys.path.insert(0, package_src)

from lib.supabase_client import get_supabase_client, supabase_configured
from lib.auth import get_current_user, get_optional_user

from eduvane_orchestrator.config import OrchestratorConfig
from eduvane_orchestrator.models import InputFile, UnifiedInput, UserProfile, UserRole
from eduvane_orchestrator.orchestrator import Orchestrator
from eduvane_orchestrator.persistence import LocalPersistence, PersistenceAdapter, SupabasePersistence
from eduvane_orchestrator.reasoning_service import ReasoningService

STREAM_FAILURE_MESSAGE = "Something went wrong while processing your request."

# Sessions untouched for this long are dropped on the next session lookup
SESSION_IDLE_SECONDS = float(os.getenv("EDUVANE_SESSION_IDLE_SECONDS", "3600"))

# ==================== Singletons ====================

_config: Optional[OrchestratorConfig] = None
_reasoning_service: Optional[ReasoningService] = None
_local_stores: Dict[str, LocalPersistence] = {}


def get_config() -> OrchestratorConfig:
    global _config
    if _config is None:
        _config = OrchestratorConfig.from_env()
    return _config


def get_reasoning_service() -> ReasoningService:
    """Get or create the shared reasoning service (one OpenAI client for all sessions)."""
    global _reasoning_service
    if _reasoning_service is None:
        from eduvane_orchestrator.openai_service import OpenAIReasoningService
        _reasoning_service = OpenAIReasoningService(
            chat_history_messages=get_config().chat_history_messages
        )
    return _reasoning_service


def build_persistence(user: Optional[dict]) -> Optional[PersistenceAdapter]:
    """Persistence for a signed-in user; guests get none."""
    if user is None:
        return None

    config = get_config()
    if supabase_configured():
        return SupabasePersistence(
            get_supabase_client(),
            user["id"],
            history_limit=config.history_limit,
            insight_window=config.insight_window,
        )

    if user["id"] not in _local_stores:
        store_dir = os.getenv("EDUVANE_LOCAL_STORE")
        path = os.path.join(store_dir, f"{user['id']}.json") if store_dir else None
        _local_stores[user["id"]] = LocalPersistence(
            path=path,
            history_limit=config.history_limit,
            insight_window=config.insight_window,
        )
    return _local_stores[user["id"]]


def get_persistence_factory() -> Callable[[Optional[dict]], Optional[PersistenceAdapter]]:
    return build_persistence


# ==================== Session registry ====================

@dataclass
class SessionHandle:
    orchestrator: Orchestrator
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_used: float = field(default_factory=time.monotonic)


_sessions: Dict[Tuple[str, str], SessionHandle] = {}

# Guests have no user id to scope by, so they may only use ids the server handed out
_guest_sessions: Set[str] = set()


def _session_key(session_id: str, user: Optional[dict]) -> Tuple[str, str]:
    return (user["id"] if user else "guest", session_id)


def issue_guest_session() -> str:
    session_id = str(uuid.uuid4())
    _guest_sessions.add(session_id)
    return session_id


def _drop_session(key: Tuple[str, str]) -> Optional[SessionHandle]:
    handle = _sessions.pop(key, None)
    if key[0] == "guest":
        _guest_sessions.discard(key[1])
    if handle is not None:
        handle.orchestrator.reset_session()
    return handle


def evict_idle_sessions(max_idle: Optional[float] = None, now: Optional[float] = None) -> int:
    """
    Drop sessions idle for longer than max_idle seconds.

    Busy sessions are kept. File-backed local stores of users with no
    session left are dropped too; they reload from disk on the next request.
    In-memory stores hold the only copy of a user's data and are kept.
    """
    max_idle = SESSION_IDLE_SECONDS if max_idle is None else max_idle
    now = time.monotonic() if now is None else now

    idle = [
        key for key, handle in _sessions.items()
        if not handle.lock.locked() and now - handle.last_used > max_idle
    ]
    for key in idle:
        _drop_session(key)

    active_users = {owner for owner, _ in _sessions}
    for user_id in [u for u, store in _local_stores.items() if store.path and u not in active_users]:
        del _local_stores[user_id]

    if idle:
        logger.info("Evicted idle sessions", data={"evicted": len(idle), "active_sessions": len(_sessions)})
    return len(idle)


def get_session_handle(
    session_id: str,
    user: Optional[dict],
    reasoning: ReasoningService,
    persistence_for: Callable[[Optional[dict]], Optional[PersistenceAdapter]]
) -> SessionHandle:
    key = _session_key(session_id, user)
    if key not in _sessions:
        evict_idle_sessions()
        _sessions[key] = SessionHandle(Orchestrator(
            reasoning,
            persistence=persistence_for(user),
            config=get_config(),
        ))
        logger.info("Created orchestrator session", data={
            "session_id": session_id[:20],
            "user": key[0][:20],
            "active_sessions": len(_sessions),
        })
    return _sessions[key]


# Initialize FastAPI app
app = FastAPI(
    title="Eduvane API",
    description="Orchestrates analysis, conversation and learning-task turns for Eduvane",
    version="1.0.0"
)

cors_origins = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001,http://127.0.0.1:3000",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in cors_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Session-Id"],
)

# ==================== Pydantic Models ====================

class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    role: Optional[UserRole] = None

    @field_validator("role", mode="before")
    @classmethod
    def _role(cls, value):
        return value.strip().upper() if isinstance(value, str) else value


# ==================== Endpoints ====================

@app.get("/")
async def root():
    return {
        "status": "ok",
        "service": "Eduvane API",
        "persistence": "supabase" if supabase_configured() else "local",
        "active_sessions": len(_sessions),
    }


@app.post("/api/orchestrate/stream")
async def orchestrate_stream(
    session_id: Optional[str] = Form(None),
    text: str = Form(""),
    file: Optional[UploadFile] = File(None),
    user: Optional[dict] = Depends(get_optional_user),
    reasoning: ReasoningService = Depends(get_reasoning_service),
    persistence_for: Callable = Depends(get_persistence_factory),
):
    """
    Run one turn and stream its events with SSE.

    Each event is sent as `data: {json}`; the stream always ends with
    `data: {"type": "DONE"}`.

    Without a session_id a new session is started. Its id comes back in
    the X-Session-Id header. Guests can only continue sessions issued to them.
    """
    if not session_id:
        session_id = issue_guest_session() if user is None else str(uuid.uuid4())
    elif user is None and session_id not in _guest_sessions:
        raise HTTPException(status_code=404, detail="Unknown or expired guest session")

    handle = get_session_handle(session_id, user, reasoning, persistence_for)
    if handle.lock.locked():
        raise HTTPException(status_code=409, detail="A turn is already in progress for this session")

    upload = None
    if file is not None and file.filename:
        upload = InputFile(
            name=file.filename,
            media_type=file.content_type or "application/octet-stream",
            data=await file.read(),
        )
    unified_input = UnifiedInput(text=text, file=upload)
    is_guest = user is None

    async def generate():
        """Generator function for streaming response."""
        async with handle.lock:
            start_time = time.time()
            logger.request("POST", "/api/orchestrate/stream", user_id=user["id"] if user else None, data={
                "session_id": session_id[:20],
                "text_length": len(text),
                "file": upload.name if upload else None,
            })

            event_count = 0
            try:
                async for event in handle.orchestrator.process_input(unified_input, is_guest=is_guest):
                    event_count += 1
                    yield f"data: {json.dumps(event.to_dict())}\n\n"
            except Exception as e:
                logger.error("Error in orchestrate_stream", error=e, data={
                    "session_id": session_id[:20],
                    "events_sent": event_count,
                })
                yield f"data: {json.dumps({'type': 'ERROR', 'message': STREAM_FAILURE_MESSAGE})}\n\n"

            yield f"data: {json.dumps({'type': 'DONE'})}\n\n"
            handle.last_used = time.monotonic()
            logger.response(200, "/api/orchestrate/stream", duration=time.time() - start_time, data={
                "events": event_count,
            })

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={"X-Session-Id": session_id},
    )


@app.post("/api/sessions/{session_id}/reset")
async def reset_session(
    session_id: str,
    user: Optional[dict] = Depends(get_optional_user),
):
    """Start the conversation over. A turn still in flight goes quiet."""
    handle = _sessions.get(_session_key(session_id, user))
    if handle:
        handle.orchestrator.reset_session()
    return {"status": "reset", "session_id": session_id}


@app.delete("/api/sessions/{session_id}")
async def delete_session(
    session_id: str,
    user: Optional[dict] = Depends(get_optional_user),
):
    handle = _drop_session(_session_key(session_id, user))
    if handle is None:
        raise HTTPException(status_code=404, detail="Session not found")

    return {"status": "deleted", "session_id": session_id}


@app.get("/api/history")
async def get_history(
    user: dict = Depends(get_current_user),
    persistence_for: Callable = Depends(get_persistence_factory),
):
    persistence = persistence_for(user)
    items = await persistence.get_history()
    return {"history": [item.model_dump(mode="json") for item in items]}


@app.get("/api/history/{submission_id}")
async def get_submission(
    submission_id: str,
    user: dict = Depends(get_current_user),
    persistence_for: Callable = Depends(get_persistence_factory),
):
    persistence = persistence_for(user)
    submission = await persistence.get_submission(submission_id)
    if submission is None:
        raise HTTPException(status_code=404, detail="Submission not found")
    return submission.model_dump(mode="json", by_alias=True)


@app.delete("/api/history")
async def clear_history(
    user: dict = Depends(get_current_user),
    persistence_for: Callable = Depends(get_persistence_factory),
):
    persistence = persistence_for(user)
    await persistence.clear_history()
    logger.info("History cleared", data={"user_id": user["id"][:20]})
    return {"status": "cleared"}


@app.get("/api/profile")
async def get_profile(
    user: dict = Depends(get_current_user),
    persistence_for: Callable = Depends(get_persistence_factory),
):
    persistence = persistence_for(user)
    profile = await persistence.get_user_profile() or UserProfile(email=user.get("email"))
    return profile.model_dump(mode="json")


@app.put("/api/profile")
async def update_profile(
    update: ProfileUpdate,
    user: dict = Depends(get_current_user),
    persistence_for: Callable = Depends(get_persistence_factory),
):
    persistence = persistence_for(user)
    current = await persistence.get_user_profile() or UserProfile(email=user.get("email"))
    profile = current.model_copy(update={
        "name": update.name if update.name is not None else current.name,
        "role": update.role or current.role,
    })
    await persistence.save_user_profile(profile)

    # Live sessions of this user pick up the change on their next turn
    for (owner, _), handle in _sessions.items():
        if owner != user["id"]:
            continue
        state = handle.orchestrator.state
        if profile.role:
            state.confirm_role(profile.role)
        if profile.name:
            state.user_name = profile.name

    logger.success("Profile updated", data={
        "user_id": user["id"][:20],
        "role": profile.role.value if profile.role else None,
    })
    return profile.model_dump(mode="json")


@app.on_event("shutdown")
async def shutdown_event():
    """End every learning session still held in memory."""
    for handle in _sessions.values():
        handle.orchestrator.reset_session()
    _sessions.clear()
    _guest_sessions.clear()
    logger.info("🛑 Orchestrator sessions closed")


if __name__ == "__main__":
    import uvicorn

    def handle_exit(*args):
        """Handle graceful shutdown."""
        logger.section("SERVER SHUTDOWN", {"reason": "signal received"})
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_exit)
    signal.signal(signal.SIGTERM, handle_exit)

    try:
        uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=True)
    except KeyboardInterrupt:
        logger.info("🛑 Server stopped.")
        sys.exit(0)
