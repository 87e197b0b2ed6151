"""
CHAT ENGINE MODULE
==================

Runs exactly one conversational turn: the user says something, the assistant
answers as a stream of text fragments.

FLOW (run_turn):
  1. Append the user message to the session (visible immediately, synced).
  2. Build the system instruction from the session type, profile and target job.
  3. Append an empty assistant placeholder before any fragment arrives.
  4. For each fragment, in arrival order: add it to the placeholder's buffer and
     publish the new content with SessionStore.patch_message (local only; no
     other session field changes while streaming).
  5. When the stream ends, sync the message list once. The reply is final.
  6. On any error: the placeholder is overwritten with CHAT_ERROR_MESSAGE, so a
     failed turn leaves one assistant message, and the result carries the
     error. Nothing is raised to the caller.

A session can run one turn (or sculpt) at a time; TurnGuard rejects a second
one with TurnInProgressError instead of interleaving two replies.

If the session is deleted while its reply is still streaming, the stream runs
to the end and every write against the missing id is a silent no-op.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Set

from config import CHAT_ERROR_MESSAGE, CHAT_TEMPERATURE
from zysculpt.models import AudioPayload, ChatSession, Message, SessionNotFoundError, TurnInProgressError
from zysculpt.services.ai_service import AIProvider, build_system_instruction, is_rate_limit_error
from zysculpt.services.profile_store import ProfileStore
from zysculpt.services.session_store import SessionStore
from zysculpt.utils.ids import new_id, now_ms

logger = logging.getLogger("Zysculpt")

VOICE_NOTE_LABEL = "[Voice note]"


class TurnGuard:
    """Tracks which sessions have a turn or sculpt running. Shared by both engines."""

    def __init__(self):
        self._busy: Set[str] = set()

    def is_busy(self, session_id: str) -> bool:
        return session_id in self._busy

    @contextmanager
    def hold(self, session_id: str) -> Iterator[None]:
        if session_id in self._busy:
            raise TurnInProgressError(f"Session {session_id} already has a reply in progress")
        self._busy.add(session_id)
        try:
            yield
        finally:
            self._busy.discard(session_id)


@dataclass
class TurnResult:
    session_id: str
    message: Optional[Message]
    error: Optional[str] = None
    rate_limited: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class ChatEngine:

    def __init__(
        self,
        sessions: SessionStore,
        profiles: ProfileStore,
        ai: AIProvider,
        guard: Optional[TurnGuard] = None,
        temperature: float = CHAT_TEMPERATURE,
    ):
        self.sessions = sessions
        self.profiles = profiles
        self.ai = ai
        self.guard = guard or TurnGuard()
        self.temperature = temperature
        # placeholder message id -> text received so far
        self._buffers: Dict[str, str] = {}

    def system_instruction_for(self, session: ChatSession) -> str:
        profile = self.profiles.profile
        background = session.resume_text or profile.base_resume_text
        return build_system_instruction(session.type, profile, session.job_description, background)

    def _append(self, session_id: str, message: Message) -> None:
        current = self.sessions.get(session_id)
        if current is None:
            return
        self.sessions.update_session(session_id, messages=list(current.messages) + [message])

    def _finalize(self, session_id: str, placeholder: Message, content: str) -> Message:
        """Set the placeholder's final text and sync the message list once."""
        self.sessions.patch_message(session_id, placeholder.id, content)
        current = self.sessions.get(session_id)
        if current is not None:
            self.sessions.update_session(session_id, messages=current.messages)
        return placeholder.model_copy(update={"content": content})

    async def run_turn(
        self,
        session_id: str,
        text: str,
        audio: Optional[AudioPayload] = None,
        model: Optional[str] = None,
        on_fragment: Optional[Callable[[str], Any]] = None,
    ) -> TurnResult:
        """
        Send `text` (and/or a voice note) to the assistant and stream the reply
        into the session. on_fragment, if given, sees every fragment in order.
        """
        if not (text or "").strip() and audio is None:
            raise ValueError("A chat turn needs a message or a voice note")
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        with self.guard.hold(session_id):
            history = list(session.messages)
            user_message = Message(
                id=new_id(),
                role="user",
                content=text if (text or "").strip() else VOICE_NOTE_LABEL,
                timestamp=now_ms(),
            )
            self._append(session_id, user_message)

            system_instruction = self.system_instruction_for(session)
            placeholder = Message(id=new_id(), role="assistant", content="", timestamp=now_ms())
            self._append(session_id, placeholder)

            self._buffers[placeholder.id] = ""
            try:
                stream = self.ai.stream(
                    history,
                    text or "",
                    system_instruction,
                    model=model,
                    temperature=self.temperature,
                    audio=audio,
                )
                async for fragment in stream:
                    self._buffers[placeholder.id] += fragment
                    self.sessions.patch_message(session_id, placeholder.id, self._buffers[placeholder.id])
                    if on_fragment is not None:
                        on_fragment(fragment)
                content = self._buffers[placeholder.id]
            except Exception as e:
                logger.error("Chat turn failed for session %s: %s", session_id, e, exc_info=True)
                final = self._finalize(session_id, placeholder, CHAT_ERROR_MESSAGE)
                return TurnResult(session_id, final, error=CHAT_ERROR_MESSAGE, rate_limited=is_rate_limit_error(e))
            finally:
                self._buffers.pop(placeholder.id, None)

            final = self._finalize(session_id, placeholder, content)
            logger.info("Chat turn complete for session %s (%s chars)", session_id, len(content))
            return TurnResult(session_id, final)
