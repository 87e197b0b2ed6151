"""
ZYSCULPT MAIN API
=================

This module defines the FastAPI application and all HTTP endpoints. It is
designed for single-user use: one person runs one server (python run.py),
signs in once, and uses it as their personal career-document backend.

ENDPOINTS:
  GET    /                                   - API name and list of endpoints.
  GET    /health                             - Which services are up (for monitoring).
  POST   /auth/login                         - Sign in, load the profile and all sessions.
  GET    /profile                            - Current profile and the "saving" flag.
  PATCH  /profile                            - Edit profile fields (debounced remote save).
  GET    /sessions                           - All sessions, newest first, plus the active id.
  POST   /sessions                           - Create a session (becomes active).
  GET    /sessions/{id}                      - One session.
  PATCH  /sessions/{id}                      - Merge fields onto a session.
  DELETE /sessions/{id}                      - Delete a session.
  POST   /sessions/{id}/rename               - Change the title.
  POST   /sessions/{id}/activate             - Make it the active session.
  PATCH  /sessions/{id}/style                - Export style (font, bullet glyph, template).
  POST   /sessions/{id}/chat                 - One chat turn, full reply in the response.
  POST   /sessions/{id}/chat/stream          - One chat turn as NDJSON events:
                                               {"type": "fragment"}..., then "done" or "error".
  POST   /sessions/{id}/sculpt               - Produce the final document.
  POST   /sessions/{id}/career-plan          - Generate and store a day-by-day roadmap.
  POST   /sessions/{id}/career-plan/tasks/{task_id}/toggle
  POST   /sessions/{id}/career-plan/logs     - Log the day's win.
  POST   /knowledge/quiz                     - Multiple-choice quiz (and flashcards) on a topic.
  GET    /sessions/{id}/export/{docx|pdf}    - Download the sculpted document.

ERRORS:
  Unknown session -> 404, a turn already running on the session -> 409,
  unusable AI JSON -> 502, Groq rate limit -> 429, service not built -> 503.
  A failed chat turn or sculpt is not an HTTP error: the response carries the
  user-facing error notice instead.

STARTUP:
  The lifespan function builds the remote store (only if Supabase is
  configured), the session and profile stores, the Groq AI service (only if a
  key is set) and the engines on top of it. On shutdown it flushes a pending
  profile save and waits for outstanding remote writes.
"""

import asyncio
import base64
import binascii
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse

from config import RATE_LIMIT_MESSAGE, REMOTE_CONFIGURED
from zysculpt.models import (
    AudioPayload,
    CareerPlanRequest,
    ChatRequest,
    ChatResponse,
    CreateSessionRequest,
    LogWinRequest,
    LoginRequest,
    ProfileResponse,
    ProfileUpdate,
    QuizRequest,
    QuizResponse,
    RemoteStoreError,
    RenameRequest,
    SculptRequest,
    SculptResponse,
    SessionNotFoundError,
    SessionUpdate,
    StructuredOutputError,
    StyleUpdate,
    TurnInProgressError,
)
from zysculpt.services import career_service, export
from zysculpt.services.ai_service import AIProvider, AIService, is_rate_limit_error
from zysculpt.services.chat_engine import ChatEngine, TurnGuard
from zysculpt.services.profile_store import ProfileStore
from zysculpt.services.remote_store import RemoteStore, build_remote_store
from zysculpt.services.sculpt_engine import SculptEngine
from zysculpt.services.session_store import SessionStore
from zysculpt.services.sync import OutboundSync
from zysculpt.services.structured import StructuredGenerationEngine, flashcard


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("Zysculpt")


# -----------------------------------------------------------------------------
# GLOBAL SERVICE REFERENCES
# -----------------------------------------------------------------------------
# Set during startup (lifespan) and used by all route handlers.
remote_store: Optional[RemoteStore] = None
session_store: Optional[SessionStore] = None
profile_store: Optional[ProfileStore] = None
ai_service: Optional[AIProvider] = None
chat_engine: Optional[ChatEngine] = None
sculpt_engine: Optional[SculptEngine] = None
structured_engine: Optional[StructuredGenerationEngine] = None


def print_title():
    """Print the Zysculpt banner to the console when the server starts."""
    CYAN = "\033[96m"
    MAGENTA = "\033[95m"
    WHITE = "\033[97m"
    BOLD = "\033[1m"
    RESET = "\033[0m"

    banner = f"""
{BOLD}{CYAN}  ╔══════════════════════════════════════╗
{CYAN}  ║{MAGENTA}         Z Y S C U L P T              {CYAN}║
{CYAN}  ╚══════════════════════════════════════╝{RESET}
      {WHITE}{BOLD}Talk it through. Sculpt the document.{RESET}
"""
    print(banner)


def configure_services(remote: Optional[RemoteStore] = None, ai: Optional[AIProvider] = None) -> None:
    """
    (Re)build every service. The lifespan calls this with the real remote store
    and Groq service; tests call it with fakes.
    """
    global remote_store, session_store, profile_store, ai_service
    global chat_engine, sculpt_engine, structured_engine

    remote_store = remote
    sync = OutboundSync(enabled=remote is not None)
    session_store = SessionStore(remote, sync=sync)
    profile_store = ProfileStore(remote, sync=sync)
    ai_service = ai

    if ai is not None:
        guard = TurnGuard()
        chat_engine = ChatEngine(session_store, profile_store, ai, guard=guard)
        sculpt_engine = SculptEngine(session_store, profile_store, ai, guard=guard)
        structured_engine = StructuredGenerationEngine(ai, session_store, profile_store)
    else:
        chat_engine = sculpt_engine = structured_engine = None


def _build_ai_service() -> Optional[AIProvider]:
    try:
        return AIService()
    except ValueError as e:
        logger.warning("AI features disabled: %s", e)
        return None


# -------------------------------------------------------------------------
# LIFESPAN (STARTUP / SHUTDOWN)
# -------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    STARTUP: remote store (or local-only), stores, Groq service, engines.
    SHUTDOWN: flush a pending profile save, wait for in-flight remote writes.
    """
    print_title()
    logger.info("=" * 60)
    logger.info("Zysculpt - Starting Up...")
    logger.info("=" * 60)

    configure_services(build_remote_store(), _build_ai_service())

    logger.info("Service Status:")
    logger.info("    - Remote store: %s", "Supabase" if remote_store is not None else "disabled (local-only)")
    logger.info("    - AI (Groq): %s", "Ready" if ai_service is not None else "disabled (no GROQ_API_KEY)")
    logger.info("=" * 60)
    logger.info("API: http://localhost:8000")
    logger.info("Docs: http://localhost:8000/docs")
    logger.info("=" * 60)

    yield

    logger.info("Shutting down Zysculpt...")
    if profile_store is not None:
        await profile_store.flush()
    if session_store is not None:
        await session_store.sync.drain()
    logger.info("Pending saves finished. Goodbye!")


# -------------------------------------------------------------------------
# FASTAPI APP AND CORS
# -------------------------------------------------------------------------
app = FastAPI(
    title="Zysculpt API",
    description="Chat-driven resume, cover letter and career roadmap assistant",
    lifespan=lifespan
)

# Allow any origin so a frontend on another port or device can call this API without CORS errors.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SessionNotFoundError)
async def session_not_found_handler(request: Request, exc: SessionNotFoundError):
    return JSONResponse(status_code=404, content={"detail": f"Session not found: {exc}"})


@app.exception_handler(TurnInProgressError)
async def turn_in_progress_handler(request: Request, exc: TurnInProgressError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(StructuredOutputError)
async def structured_output_handler(request: Request, exc: StructuredOutputError):
    logger.warning("Unusable structured output: %s", exc)
    return JSONResponse(status_code=502, content={"detail": "The AI returned content in an unexpected format. Please try again."})


# -------------------------------------------------------------------------
# HELPERS
# -------------------------------------------------------------------------

def _stores():
    if session_store is None or profile_store is None:
        raise HTTPException(status_code=503, detail="Stores not initialized")
    return session_store, profile_store


def _require_ai(engine):
    if engine is None:
        raise HTTPException(status_code=503, detail="AI service not initialized (set GROQ_API_KEY)")
    return engine


def _session_or_404(session_id: str):
    sessions, _ = _stores()
    session = sessions.get(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)
    return session


def _decode_audio(request: ChatRequest) -> Optional[AudioPayload]:
    if not request.audio_base64:
        return None
    try:
        data = base64.b64decode(request.audio_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=422, detail="audio_base64 is not valid base64")
    extension = request.audio_mime_type.split("/")[-1].split(";")[0] or "webm"
    return AudioPayload(data=data, filename=f"voice-note.{extension}", mime_type=request.audio_mime_type)


# =========================================================================
# API ENDPOINTS
# =========================================================================

@app.get("/")
async def root():
    """Return the API name and a short description of each endpoint (for discovery)."""
    return {
        "message": "Zysculpt API",
        "endpoints": {
            "/auth/login": "Sign in and load your profile and sessions",
            "/profile": "Read or edit your profile",
            "/sessions": "List or create chat sessions",
            "/sessions/{id}/chat": "One chat turn (add /stream for NDJSON fragments)",
            "/sessions/{id}/sculpt": "Produce the final document",
            "/sessions/{id}/career-plan": "Generate a day-by-day roadmap",
            "/sessions/{id}/export/{fmt}": "Download the document as docx or pdf",
            "/knowledge/quiz": "Quiz and flashcards on any topic",
            "/health": "System health check"
        }
    }


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "remote_configured": REMOTE_CONFIGURED,
        "remote_store": remote_store is not None,
        "signed_in": session_store is not None and session_store.user_id is not None,
        "ai_service": ai_service is not None,
        "chat_engine": chat_engine is not None,
        "sculpt_engine": sculpt_engine is not None,
        "structured_engine": structured_engine is not None,
    }


# -- auth / profile -------------------------------------------------------

@app.post("/auth/login")
async def login(request: LoginRequest):
    """
    Sign in against Supabase, then build the profile (auth metadata + stored
    row) and replace the local sessions with the stored ones.
    """
    if remote_store is None:
        raise HTTPException(status_code=503, detail="Remote store not configured (local-only mode)")
    sessions, profiles = _stores()
    try:
        user = await remote_store.sign_in(request.email, request.password)
    except RemoteStoreError as e:
        logger.warning("Sign-in failed for %s: %s", request.email, e)
        raise HTTPException(status_code=401, detail="Invalid email or password")

    profile = await profiles.bootstrap(user)
    loaded = await sessions.load(user.id)
    return {
        "user_id": user.id,
        "email": user.email,
        "profile": profile,
        "sessions_loaded": loaded,
        "session_count": len(sessions.sessions),
    }


@app.get("/profile", response_model=ProfileResponse)
async def get_profile():
    _, profiles = _stores()
    return ProfileResponse(profile=profiles.profile, is_saving=profiles.is_saving)


@app.patch("/profile", response_model=ProfileResponse)
async def update_profile(request: ProfileUpdate):
    _, profiles = _stores()
    profile = profiles.update(**request.model_dump(exclude_unset=True, exclude_none=True))
    return ProfileResponse(profile=profile, is_saving=profiles.is_saving)


# -- sessions -------------------------------------------------------------

@app.get("/sessions")
async def list_sessions():
    sessions, _ = _stores()
    return {"active_session_id": sessions.active_session_id, "sessions": sessions.sessions}


@app.post("/sessions", status_code=201)
async def create_session(request: CreateSessionRequest):
    sessions, _ = _stores()
    context = request.model_dump(exclude={"type"}, exclude_none=True)
    session_id = sessions.create_session(request.type, context)
    return sessions.get(session_id)


@app.get("/sessions/{session_id}")
async def get_session(session_id: str):
    return _session_or_404(session_id)


@app.patch("/sessions/{session_id}")
async def update_session(session_id: str, request: SessionUpdate):
    sessions, _ = _stores()
    _session_or_404(session_id)
    try:
        sessions.update_session(session_id, request.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return sessions.get(session_id)


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    sessions, _ = _stores()
    _session_or_404(session_id)
    sessions.delete_session(session_id)
    return {"deleted": session_id, "active_session_id": sessions.active_session_id}


@app.post("/sessions/{session_id}/rename")
async def rename_session(session_id: str, request: RenameRequest):
    sessions, _ = _stores()
    _session_or_404(session_id)
    sessions.rename_session(session_id, request.title)
    return sessions.get(session_id)


@app.post("/sessions/{session_id}/activate")
async def activate_session(session_id: str):
    sessions, _ = _stores()
    _session_or_404(session_id)
    sessions.set_active(session_id)
    return {"active_session_id": session_id}


@app.patch("/sessions/{session_id}/style")
async def update_style(session_id: str, request: StyleUpdate):
    sessions, _ = _stores()
    _session_or_404(session_id)
    sessions.update_style(session_id, **request.model_dump())
    return sessions.get(session_id).style_prefs


# -- chat / sculpt --------------------------------------------------------

@app.post("/sessions/{session_id}/chat", response_model=ChatResponse)
async def chat(session_id: str, request: ChatRequest):
    """
    One chat turn. The reply streams into the session as it is generated;
    this endpoint waits for the end and returns the finished message.
    """
    engine = _require_ai(chat_engine)
    audio = _decode_audio(request)
    try:
        result = await engine.run_turn(session_id, request.message, audio=audio, model=request.model)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if result.rate_limited:
        raise HTTPException(status_code=429, detail=RATE_LIMIT_MESSAGE)
    return ChatResponse(session_id=session_id, message=result.message, error=result.error)


@app.post("/sessions/{session_id}/chat/stream")
async def chat_stream(session_id: str, request: ChatRequest):
    """
    Same turn as /chat, delivered as newline-delimited JSON:
      {"type": "fragment", "text": "..."}   one per fragment, in order
      {"type": "done", "message": {...}}    the finished reply
      {"type": "error", "error": "...", "message": {...}}
    """
    engine = _require_ai(chat_engine)
    _session_or_404(session_id)
    if engine.guard.is_busy(session_id):
        raise TurnInProgressError(f"Session {session_id} already has a reply in progress")
    audio = _decode_audio(request)
    if not request.message.strip() and audio is None:
        raise HTTPException(status_code=422, detail="A chat turn needs a message or a voice note")

    async def events():
        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(
            engine.run_turn(session_id, request.message, audio=audio, model=request.model, on_fragment=queue.put_nowait)
        )
        task.add_done_callback(lambda _: queue.put_nowait(None))

        while True:
            fragment = await queue.get()
            if fragment is None:
                break
            yield json.dumps({"type": "fragment", "text": fragment}) + "\n"

        try:
            result = task.result()
        except (SessionNotFoundError, TurnInProgressError, ValueError) as e:
            yield json.dumps({"type": "error", "error": str(e)}) + "\n"
            return
        message = result.message.model_dump(mode="json") if result.message else None
        if result.error:
            error = RATE_LIMIT_MESSAGE if result.rate_limited else result.error
            yield json.dumps({"type": "error", "error": error, "message": message}) + "\n"
        else:
            yield json.dumps({"type": "done", "message": message}) + "\n"

    return StreamingResponse(events(), media_type="application/x-ndjson")


@app.post("/sessions/{session_id}/sculpt", response_model=SculptResponse)
async def sculpt(session_id: str, request: Optional[SculptRequest] = None):
    engine = _require_ai(sculpt_engine)
    result = await engine.sculpt(session_id, model=request.model if request else None)
    if result.rate_limited:
        raise HTTPException(status_code=429, detail=RATE_LIMIT_MESSAGE)
    return SculptResponse(session_id=session_id, document=result.document, error=result.error)


# -- career roadmap -------------------------------------------------------

@app.post("/sessions/{session_id}/career-plan")
async def create_career_plan(session_id: str, request: CareerPlanRequest):
    engine = _require_ai(structured_engine)
    try:
        return await engine.generate_career_plan(session_id, request.main_goal, days=request.days)
    except (SessionNotFoundError, StructuredOutputError):
        raise
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        if is_rate_limit_error(e):
            logger.warning(f"Rate limit hit: {e}")
            raise HTTPException(status_code=429, detail=RATE_LIMIT_MESSAGE)
        logger.error(f"Error generating career plan: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error generating career plan: {str(e)}")


@app.post("/sessions/{session_id}/career-plan/tasks/{task_id}/toggle")
async def toggle_career_task(session_id: str, task_id: str):
    sessions, _ = _stores()
    _session_or_404(session_id)
    task = career_service.toggle_task(sessions, session_id, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@app.post("/sessions/{session_id}/career-plan/logs")
async def log_career_win(session_id: str, request: LogWinRequest):
    sessions, _ = _stores()
    _session_or_404(session_id)
    try:
        entry = career_service.log_win(sessions, session_id, request.date, request.win)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if entry is None:
        raise HTTPException(status_code=404, detail="This session has no career plan")
    return entry


# -- knowledge hub --------------------------------------------------------

@app.post("/knowledge/quiz", response_model=QuizResponse)
async def quiz(request: QuizRequest):
    engine = _require_ai(structured_engine)
    try:
        items = await engine.generate_quiz(request.topic, count=request.count)
    except StructuredOutputError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        if is_rate_limit_error(e):
            logger.warning(f"Rate limit hit: {e}")
            raise HTTPException(status_code=429, detail=RATE_LIMIT_MESSAGE)
        logger.error(f"Error generating quiz: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error generating quiz: {str(e)}")
    return QuizResponse(topic=request.topic, items=items, flashcards=[flashcard(item) for item in items])


# -- export ---------------------------------------------------------------

EXPORT_FORMATS = {
    "docx": (export.export_docx, "application/vnd.openxmlformats-officedocument.wordprocessingml.document"),
    "pdf": (export.export_pdf, "application/pdf"),
}


@app.get("/sessions/{session_id}/export/{fmt}")
async def export_session(session_id: str, fmt: str):
    if fmt not in EXPORT_FORMATS:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {fmt}")
    session = _session_or_404(session_id)
    render, media_type = EXPORT_FORMATS[fmt]
    try:
        content = await asyncio.to_thread(render, session)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    filename = export.export_filename(session, fmt)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": export.content_disposition(filename)},
    )


# -------------------------------------------------------------------------
# STANDALONE RUN (python -m zysculpt.main)
# -------------------------------------------------------------------------
def run():
    """Start the uvicorn server (same as run.py); used if someone does python -m zysculpt.main"""
    uvicorn.run(
        "zysculpt.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )

if __name__ == "__main__":
    run()
