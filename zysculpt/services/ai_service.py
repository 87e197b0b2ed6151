"""
AI SERVICE MODULE
=================

Everything that talks to the LLM goes through here. Three call shapes:

  stream(history, message, system_instruction, ...)  - async iterator of text
      fragments for one chat turn. Built as a LangChain chain:
      ChatPromptTemplate(system + history + human) | ChatGroq, run with astream().
  complete(prompt, ..., json_mode=False)              - one string. With
      json_mode the model is bound to response_format=json_object so it
      answers with JSON only (used for quizzes and roadmaps).
  transcribe(audio)                                   - voice note -> text
      with Groq's Whisper endpoint; stream() calls it when a turn carries audio.

ROUND-ROBIN API KEYS:
  Every call takes the next key from GROQ_API_KEYS (class-level counter shared
  by all instances). Non-streaming calls go through with_retry, and each retry
  picks the next key, so one rate-limited key doesn't fail the request.

The engines only depend on the AIProvider protocol, so tests swap in a fake.
"""

import logging
from typing import AsyncIterator, List, Optional, Protocol, Sequence

from groq import AsyncGroq
from langchain_core.messages import AIMessage, HumanMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from langchain_groq import ChatGroq

from config import (
    BACKGROUND_SNAPSHOT_CHARS,
    CHAT_INSTRUCTIONS,
    CHAT_TEMPERATURE,
    GROQ_API_KEYS,
    GROQ_MODEL,
    GROQ_TRANSCRIBE_MODEL,
    PERSONAS,
    SCULPT_TEMPERATURE,
)
from zysculpt.models import AudioPayload, Message, UserProfile
from zysculpt.utils.retry import with_retry

logger = logging.getLogger("Zysculpt")


def escape_curly_braces(text: str) -> str:
    """Double every brace so ChatPromptTemplate doesn't read user text as template variables."""
    return text.replace("{", "{{").replace("}", "}}")


def is_rate_limit_error(exc: Exception) -> bool:
    """True if the exception is a Groq rate limit (429 / tokens per day)."""
    msg = str(exc).lower()
    return "429" in msg or "rate limit" in msg or "tokens per day" in msg


def build_system_instruction(
    session_type: str,
    profile: Optional[UserProfile] = None,
    job_description: Optional[str] = None,
    background: Optional[str] = None,
) -> str:
    """
    System instruction for a chat turn: persona for the session type, a short
    user snapshot, the target job, and the fixed formatting instructions.
    Pure function of its inputs.
    """
    parts = [PERSONAS.get(session_type, "")]
    if profile is not None:
        snapshot = (background if background else profile.base_resume_text)[:BACKGROUND_SNAPSHOT_CHARS]
        parts.append(
            "USER CONTEXT:\n"
            f"Name: {profile.full_name}\n"
            f"Current Title: {profile.title}\n"
            f"Background Snapshot: {snapshot}"
        )
    if job_description:
        parts.append(f"TARGET GOAL/JOB: {job_description}")
    parts.append(CHAT_INSTRUCTIONS)
    return "\n\n".join(p for p in parts if p)


def to_langchain_history(history: Sequence[Message]) -> List:
    """Our Message list -> LangChain HumanMessage / AIMessage list, order preserved."""
    converted = []
    for message in history:
        if message.role == "user":
            converted.append(HumanMessage(content=message.content))
        else:
            converted.append(AIMessage(content=message.content))
    return converted


class AIProvider(Protocol):
    """What the chat, sculpt and structured engines need from an LLM provider."""

    def stream(
        self,
        history: Sequence[Message],
        message: str,
        system_instruction: str,
        model: Optional[str] = None,
        temperature: float = CHAT_TEMPERATURE,
        audio: Optional[AudioPayload] = None,
    ) -> AsyncIterator[str]:
        ...

    async def complete(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = SCULPT_TEMPERATURE,
        json_mode: bool = False,
    ) -> str:
        ...


# ==============================================================================
# GROQ IMPLEMENTATION
# ==============================================================================

class AIService:
    """Groq-backed AIProvider with round-robin API keys."""

    _shared_key_index = 0

    def __init__(self, api_keys: Optional[Sequence[str]] = None, default_model: str = GROQ_MODEL):
        self.api_keys = list(api_keys if api_keys is not None else GROQ_API_KEYS)
        if not self.api_keys:
            raise ValueError("GROQ_API_KEY is not set. Add it to .env to enable the AI features.")
        self.default_model = default_model
        logger.info("AI service ready: %s Groq key(s), default model %s", len(self.api_keys), default_model)

    def _next_key(self) -> str:
        key = self.api_keys[AIService._shared_key_index % len(self.api_keys)]
        AIService._shared_key_index += 1
        return key

    def _llm(self, model: Optional[str], temperature: float) -> ChatGroq:
        return ChatGroq(api_key=self._next_key(), model=model or self.default_model, temperature=temperature)

    async def stream(
        self,
        history: Sequence[Message],
        message: str,
        system_instruction: str,
        model: Optional[str] = None,
        temperature: float = CHAT_TEMPERATURE,
        audio: Optional[AudioPayload] = None,
    ) -> AsyncIterator[str]:
        if audio is not None:
            transcript = await self.transcribe(audio)
            message = f"{message}\n\n[Voice note]\n{transcript}" if message else transcript

        prompt = ChatPromptTemplate.from_messages([
            ("system", escape_curly_braces(system_instruction)),
            MessagesPlaceholder(variable_name="history"),
            ("human", "{question}"),
        ])
        chain = prompt | self._llm(model, temperature)

        async for chunk in chain.astream({"history": to_langchain_history(history), "question": message}):
            text = chunk.content if isinstance(chunk.content, str) else ""
            if text:
                yield text

    async def complete(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = SCULPT_TEMPERATURE,
        json_mode: bool = False,
    ) -> str:
        async def call():
            llm = self._llm(model, temperature)
            if json_mode:
                llm = llm.bind(response_format={"type": "json_object"})
            response = await llm.ainvoke([HumanMessage(content=prompt)])
            return response.content if isinstance(response.content, str) else str(response.content)

        return await with_retry(call, max_retries=3, initial_delay=1.0)

    async def transcribe(self, audio: AudioPayload) -> str:
        client = AsyncGroq(api_key=self._next_key())
        result = await client.audio.transcriptions.create(
            file=(audio.filename, audio.data),
            model=GROQ_TRANSCRIBE_MODEL,
        )
        text = (result.text or "").strip()
        logger.info("Transcribed voice note (%s chars)", len(text))
        return text
