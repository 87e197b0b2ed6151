"""
SCULPT ENGINE MODULE
====================

Turns a whole conversation into the finished document (resume, cover letter,
resignation letter or career brief) with one non-streaming AI call.

PROMPT (assemble_sculpt_prompt), in this order:
  - the directive for the session type (config.SCULPT_DIRECTIVES)
  - background: the session's resume text, else the profile's base resume
  - the transcript: every message's content, one per line
  - the target: the session's job description, else "General professional role"
  - the contact block from the profile
Nothing is truncated.

On success the reply is stored verbatim as the session's final_resume and
show_preview is switched on. On failure the session is left as it was and the
result carries SCULPT_ERROR_MESSAGE.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from config import GENERIC_TARGET_LABEL, SCULPT_DIRECTIVES, SCULPT_ERROR_MESSAGE, SCULPT_TEMPERATURE
from zysculpt.models import ChatSession, SessionNotFoundError, UserProfile
from zysculpt.services.ai_service import AIProvider, is_rate_limit_error
from zysculpt.services.chat_engine import TurnGuard
from zysculpt.services.profile_store import ProfileStore
from zysculpt.services.session_store import SessionStore

logger = logging.getLogger("Zysculpt")


def contact_block(profile: UserProfile) -> str:
    return "\n".join([
        f"Name: {profile.full_name}",
        f"Title: {profile.title}",
        f"Email: {profile.email}",
        f"Phone: {profile.phone}",
        f"Location: {profile.location}",
        f"LinkedIn: {profile.linkedin}",
        f"Website: {profile.website}",
    ])


def assemble_sculpt_prompt(session: ChatSession, profile: UserProfile) -> str:
    background = session.resume_text or profile.base_resume_text or ""
    transcript = "\n".join(message.content for message in session.messages)
    target = session.job_description or GENERIC_TARGET_LABEL

    return (
        f"{SCULPT_DIRECTIVES[session.type]}\n\n"
        f"BACKGROUND / EXPERIENCE:\n{background}\n\n"
        f"CONVERSATION:\n{transcript}\n\n"
        f"TARGET ROLE:\n{target}\n\n"
        f"CONTACT DETAILS:\n{contact_block(profile)}\n\n"
        "Output ONLY the document in Markdown."
    )


@dataclass
class SculptResult:
    session_id: str
    document: Optional[str]
    error: Optional[str] = None
    rate_limited: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class SculptEngine:

    def __init__(
        self,
        sessions: SessionStore,
        profiles: ProfileStore,
        ai: AIProvider,
        guard: Optional[TurnGuard] = None,
        temperature: float = SCULPT_TEMPERATURE,
    ):
        self.sessions = sessions
        self.profiles = profiles
        self.ai = ai
        self.guard = guard or TurnGuard()
        self.temperature = temperature

    async def sculpt(self, session_id: str, model: Optional[str] = None) -> SculptResult:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        with self.guard.hold(session_id):
            prompt = assemble_sculpt_prompt(session, self.profiles.profile)
            try:
                document = await self.ai.complete(prompt, model=model, temperature=self.temperature)
            except Exception as e:
                logger.error("Sculpt failed for session %s: %s", session_id, e, exc_info=True)
                return SculptResult(session_id, None, error=SCULPT_ERROR_MESSAGE, rate_limited=is_rate_limit_error(e))

            self.sessions.update_session(session_id, final_resume=document, show_preview=True)
            logger.info("Sculpted %s for session %s (%s chars)", session.type, session_id, len(document))
            return SculptResult(session_id, document)
